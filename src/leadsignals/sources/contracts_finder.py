"""Contracts Finder connector: UK public sector contract awards (OCDS, no key required)."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from leadsignals.ingest.signals import ProfileFilters, RawSignal
from leadsignals.sources.base import PagedJsonConnector
from leadsignals.sources.ocds import parse_award_releases

NOTICE_URL = "https://www.contractsfinder.service.gov.uk/Notice/{ocid}"


class ContractsFinderConnector(PagedJsonConnector):
    source_type = "contracts_finder"
    items_key = "releases"

    def first_request(self, since: date, filters: ProfileFilters) -> tuple[str, dict[str, Any]]:
        return (
            f"{self._base_url}/Notices/OCDS/Search",
            {"publishedFrom": since.isoformat(), "stages": "award", "size": self._page_size},
        )

    def parse_items(
        self, items: list[Any], filters: ProfileFilters, fetched_at: datetime, since: date
    ) -> tuple[list[RawSignal], int]:
        parsed = parse_award_releases(
            items,
            source_type=self.source_type,
            notice_url=NOTICE_URL,
            title_prefix="Won contract",
            default_title="Contract Award",
            filters=filters,
            fetched_at=fetched_at,
        )
        return parsed.signals, parsed.skipped
