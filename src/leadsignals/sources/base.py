"""Connector contract for external signal sources."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from typing import Any, Protocol

import httpx
import structlog

from leadsignals.ingest.signals import ProfileFilters, RawSignal
from leadsignals.sources.fetch import JsonFetchResult, fetch_json

logger = structlog.get_logger()


@dataclass(frozen=True)
class ConnectorResult:
    """Payload plus an optional soft error. A non-null error does not imply no signals."""

    signals: list[RawSignal] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ConnectorError(RuntimeError):
    """Raised inside a connector when the upstream cannot be read."""


class SourceConnector(Protocol):
    @property
    def source_type(self) -> str: ...

    def fetch(self, window_days: int, filters: ProfileFilters) -> ConnectorResult: ...


def window_start(window_days: int, today: date | None = None) -> date:
    """First day included in a window of ``window_days`` days ending today (UTC)."""
    if window_days < 1:
        raise ConnectorError(f"window_days must be >= 1, got {window_days}")
    today = today or datetime.now(UTC).date()
    return today - timedelta(days=window_days)


def optional_text(value: Any, name: str) -> str | None:
    """A stripped string field, or None. Non-string values are malformed."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise TypeError(f"{name} is not a string")
    return value.strip() or None


def parse_source_datetime(value: object) -> datetime | None:
    """Parse an ISO-8601 date or datetime reported by a source."""
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            parsed = datetime.combine(date.fromisoformat(text[:10]), datetime.min.time())
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class PagedJsonConnector:
    """Shared fetch loop for sources that publish a paged JSON feed.

    Subclasses build the first request and parse each page's items. Pages are
    followed through ``next_request`` (``links.next`` by default) up to
    ``max_pages``. A connector that needs credentials reports the missing
    setting through ``configuration_error`` and makes no request. A page that cannot be
    fetched ends the loop, keeping the signals parsed so far.
    """

    source_type: str = ""
    items_key: str = ""
    max_pages: int = 5

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 20.0,
        page_size: int = 100,
        max_pages: int | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._page_size = page_size
        self._transport = transport
        if max_pages is not None:
            self.max_pages = max_pages

    def fetch(self, window_days: int, filters: ProfileFilters) -> ConnectorResult:
        try:
            since = window_start(window_days)
        except ConnectorError as exc:
            return ConnectorResult(signals=[], error=str(exc))

        problem = self.configuration_error()
        if problem:
            logger.info("Connector not configured", source=self.source_type)
            return ConnectorResult(signals=[], error=problem)

        fetched_at = datetime.now(UTC)
        signals: list[RawSignal] = []
        problems: list[str] = []
        skipped = 0
        try:
            for items in self._pages(since, filters):
                page_signals, page_skipped = self.parse_items(items, filters, fetched_at, since)
                signals.extend(page_signals)
                skipped += page_skipped
        except ConnectorError as exc:
            logger.warning("Connector fetch failed", source=self.source_type, error=str(exc), partial=len(signals))
            problems.append(str(exc))
        except Exception as exc:
            logger.exception("Connector crashed", source=self.source_type)
            problems.append(f"Unexpected error: {exc}")

        if skipped:
            problems.append(f"Skipped {skipped} malformed record(s)")

        logger.info("Connector finished", source=self.source_type, signals=len(signals), errors=len(problems))
        return ConnectorResult(signals=signals, error="; ".join(problems) or None)

    def configuration_error(self) -> str | None:
        return None

    def first_request(self, since: date, filters: ProfileFilters) -> tuple[str, dict[str, Any]]:
        raise NotImplementedError

    def request_headers(self) -> dict[str, str]:
        return {}

    def parse_items(
        self, items: list[Any], filters: ProfileFilters, fetched_at: datetime, since: date
    ) -> tuple[list[RawSignal], int]:
        raise NotImplementedError

    def next_request(
        self, data: Mapping[str, Any], items: list[Any], url: str, params: dict[str, Any] | None
    ) -> tuple[str, dict[str, Any] | None] | None:
        links = data.get("links")
        next_url = links.get("next") if isinstance(links, Mapping) else None
        return (next_url, None) if next_url else None

    def get_json(self, url: str, params: dict[str, Any] | None = None) -> JsonFetchResult:
        return fetch_json(
            url,
            params=params,
            headers=self.request_headers(),
            timeout_seconds=self._timeout_seconds,
            transport=self._transport,
        )

    def _pages(self, since: date, filters: ProfileFilters) -> Iterator[list[Any]]:
        url, params = self.first_request(since, filters)
        for _ in range(self.max_pages):
            result = self.get_json(url, params)
            if result.error:
                raise ConnectorError(f"{self.source_type} request failed: {result.error}")
            if not isinstance(result.data, Mapping):
                raise ConnectorError(f"{self.source_type} returned an unexpected payload")

            items = result.data.get(self.items_key)
            if items is None:
                items = []
            if not isinstance(items, list):
                raise ConnectorError(f"{self.source_type} returned malformed '{self.items_key}'")
            yield items

            following = self.next_request(result.data, items, url, params) if items else None
            if following is None:
                return
            url, params = following
