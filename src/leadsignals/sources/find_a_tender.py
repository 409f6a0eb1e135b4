"""Find a Tender connector: high-value UK contract awards (OCDS release packages)."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

from leadsignals.ingest.signals import ProfileFilters, RawSignal
from leadsignals.sources.base import PagedJsonConnector
from leadsignals.sources.ocds import parse_award_releases

NOTICE_URL = "https://www.find-tender.service.gov.uk/Notice/{ocid}"
AWARD_TAGS = {"award", "contract"}


class FindATenderConnector(PagedJsonConnector):
    source_type = "find_a_tender"
    items_key = "releases"

    def __init__(self, base_url: str, *, api_key: str | None = None, **kwargs: Any):
        super().__init__(base_url, **kwargs)
        self._api_key = api_key

    def first_request(self, since: date, filters: ProfileFilters) -> tuple[str, dict[str, Any]]:
        return (
            f"{self._base_url}/ocdsReleasePackages",
            {"updatedFrom": f"{since.isoformat()}T00:00:00", "limit": self._page_size},
        )

    def request_headers(self) -> dict[str, str]:
        if self._api_key:
            return {"Authorization": f"Bearer {self._api_key}"}
        return {}

    def parse_items(
        self, items: list[Any], filters: ProfileFilters, fetched_at: datetime, since: date
    ) -> tuple[list[RawSignal], int]:
        parsed = parse_award_releases(
            items,
            include=is_award_release,
            source_type=self.source_type,
            notice_url=NOTICE_URL,
            title_prefix="Won major contract",
            default_title="High-Value Contract Award",
            filters=filters,
            fetched_at=fetched_at,
        )
        return parsed.signals, parsed.skipped


def is_award_release(release: Mapping[str, Any]) -> bool:
    tags = release.get("tag") or []
    if isinstance(tags, str):
        tags = [tags]
    if not isinstance(tags, list) or not all(isinstance(tag, str) for tag in tags):
        raise TypeError(f"malformed release tag: {tags!r}")
    return bool(AWARD_TAGS.intersection(tags))
