"""Adzuna connector: UK job postings, read as hiring signals."""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import UTC, date, datetime
from typing import Any

import structlog

from leadsignals.ingest.signals import ProfileFilters, RawSignal
from leadsignals.models import SignalType
from leadsignals.sources.base import PagedJsonConnector, optional_text, parse_source_datetime

logger = structlog.get_logger()

MAX_RESULTS_PER_PAGE = 50

CATEGORY_TO_INDUSTRY = {
    "it-jobs": "Technology & Software",
    "engineering-jobs": "Engineering & Manufacturing",
    "accounting-finance-jobs": "Financial Services",
    "healthcare-nursing-jobs": "Healthcare & Life Sciences",
    "construction-jobs": "Construction & Infrastructure",
    "legal-jobs": "Legal & Professional Services",
    "hr-jobs": "Legal & Professional Services",
    "consultancy-jobs": "Legal & Professional Services",
    "logistics-warehouse-jobs": "Logistics & Supply Chain",
    "manufacturing-jobs": "Engineering & Manufacturing",
    "property-jobs": "Property & Real Estate",
    "hospitality-catering-jobs": "Hospitality & Leisure",
    "energy-oil-gas-jobs": "Energy & Utilities",
    "teaching-jobs": "Education",
    "retail-jobs": "Retail & Consumer",
    "social-work-jobs": "Healthcare & Life Sciences",
    "scientific-qa-jobs": "Healthcare & Life Sciences",
}

_TAG = re.compile(r"<[^>]+>")


def _plain(value: str | None) -> str | None:
    # Adzuna wraps matched search terms in <strong> tags.
    if not value:
        return None
    return _TAG.sub("", value).strip() or None


def _display_name(value: Any, name: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, Mapping):
        raise TypeError(f"{name} is not an object")
    return optional_text(value.get("display_name"), f"{name}.display_name")


class AdzunaConnector(PagedJsonConnector):
    """Job postings from the Adzuna search API.

    Needs an application id and key; without them every fetch returns a
    "not configured" soft error and no request is made.
    """

    source_type = "adzuna"
    items_key = "results"
    max_pages = 3

    def __init__(self, base_url: str, *, app_id: str | None = None, app_key: str | None = None, **kwargs: Any):
        super().__init__(base_url, **kwargs)
        self._app_id = app_id
        self._app_key = app_key

    def configuration_error(self) -> str | None:
        if self._app_id and self._app_key:
            return None
        return "adzuna not configured: set ADZUNA_APP_ID and ADZUNA_API_KEY"

    @property
    def results_per_page(self) -> int:
        return min(self._page_size, MAX_RESULTS_PER_PAGE)

    def first_request(self, since: date, filters: ProfileFilters) -> tuple[str, dict[str, Any]]:
        params: dict[str, Any] = {
            "app_id": self._app_id,
            "app_key": self._app_key,
            "results_per_page": self.results_per_page,
            "max_days_old": (datetime.now(UTC).date() - since).days,
        }
        if filters.keywords:
            params["what_or"] = " ".join(filters.keywords)
        if filters.excluded_keywords:
            params["what_exclude"] = " ".join(filters.excluded_keywords)
        if filters.location:
            params["where"] = filters.location
        return f"{self._base_url}/search/1", params

    def next_request(
        self, data: Mapping[str, Any], items: list[Any], url: str, params: dict[str, Any] | None
    ) -> tuple[str, dict[str, Any] | None] | None:
        if len(items) < self.results_per_page:
            return None
        prefix, page = url.rsplit("/", 1)
        return f"{prefix}/{int(page) + 1}", params

    def parse_items(
        self, items: list[Any], filters: ProfileFilters, fetched_at: datetime, since: date
    ) -> tuple[list[RawSignal], int]:
        signals: list[RawSignal] = []
        skipped = 0
        for job in items:
            try:
                signal = self._parse_job(job, filters, fetched_at)
            except (ValueError, TypeError, AttributeError, KeyError) as exc:
                skipped += 1
                logger.debug("Skipping malformed job", error=str(exc))
                continue
            if signal is not None:
                signals.append(signal)
        return signals, skipped

    def _parse_job(self, job: Any, filters: ProfileFilters, fetched_at: datetime) -> RawSignal | None:
        if not isinstance(job, Mapping) or not job.get("id"):
            raise ValueError("job has no id")
        title = _plain(optional_text(job.get("title"), "title"))
        if not title:
            raise ValueError("job has no title")
        description = _plain(optional_text(job.get("description"), "description")) or ""
        location = _display_name(job.get("location"), "location")
        if not filters.matches(f"{title} {description}", location):
            return None

        category = job.get("category") or {}
        industry = CATEGORY_TO_INDUSTRY.get(category.get("tag")) or filters.industry
        return RawSignal(
            source_type=self.source_type,
            company_name=_display_name(job.get("company"), "company"),
            title=f"Hiring: {title}",
            detail=description,
            url=optional_text(job.get("redirect_url"), "redirect_url"),
            location=location,
            industry=industry,
            detected_at=parse_source_datetime(job.get("created")) or fetched_at,
            source_ref=str(job["id"]),
            metadata={
                "signal_type": SignalType.JOB_POSTING.value,
                "salary_min": job.get("salary_min"),
                "salary_max": job.get("salary_max"),
            },
        )
