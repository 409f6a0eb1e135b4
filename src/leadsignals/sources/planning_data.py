"""planning.data.gov.uk connector: significant planning applications in England."""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

import structlog

from leadsignals.ingest.signals import ProfileFilters, RawSignal
from leadsignals.models import SignalType
from leadsignals.sources.base import PagedJsonConnector, optional_text, parse_source_datetime

logger = structlog.get_logger()

ENTITY_URL = "https://www.planning.data.gov.uk/entity/{reference}"

SIGNIFICANT_TERMS = (
    "commercial",
    "industrial",
    "office",
    "warehouse",
    "factory",
    "retail",
    "hotel",
    "residential development",
    "mixed use",
    "business park",
    "employment",
    "units",
    "sqm",
    "sq m",
    "hectare",
)

_COMPANY_NAME = r"[A-Z][\w'&-]*(?:\s(?:&|[A-Z][\w'&-]*))*?\s(?:Ltd|Limited|PLC|LLP|Inc)\b"
_APPLICANT_PATTERNS = (
    re.compile(rf"\b(?:[Bb]y|[Ff]or|[Ff]rom)\s+({_COMPANY_NAME})"),
    re.compile(rf"({_COMPANY_NAME})"),
)

_DECISIONS = {
    "approved": "Approved",
    "granted": "Approved",
    "refused": "Refused",
    "withdrawn": "Withdrawn",
    "pending": "Pending",
    "decided": "Decided",
}


def is_significant_development(description: str) -> bool:
    lower = description.lower()
    return any(term in lower for term in SIGNIFICANT_TERMS)


def extract_applicant(description: str) -> str | None:
    for pattern in _APPLICANT_PATTERNS:
        match = pattern.search(description)
        if match:
            return match.group(1).strip()
    return None


def format_decision(decision: str | None) -> str:
    if not decision:
        return "Pending"
    lower = decision.lower()
    for key, label in _DECISIONS.items():
        if key in lower:
            return label
    return decision


class PlanningDataConnector(PagedJsonConnector):
    source_type = "planning_data"
    items_key = "entities"

    def first_request(self, since: date, filters: ProfileFilters) -> tuple[str, dict[str, Any]]:
        return (
            f"{self._base_url}/entity.json",
            {"dataset": "planning-application", "entry_date_since": since.isoformat(), "limit": self._page_size},
        )

    def parse_items(
        self, items: list[Any], filters: ProfileFilters, fetched_at: datetime, since: date
    ) -> tuple[list[RawSignal], int]:
        signals: list[RawSignal] = []
        skipped = 0
        for entity in items:
            try:
                if not isinstance(entity, Mapping) or not entity.get("reference"):
                    raise ValueError("entity has no reference")
                signal = self._parse_entity(entity, filters, fetched_at)
            except (ValueError, TypeError, AttributeError, KeyError) as exc:
                skipped += 1
                logger.debug("Skipping malformed planning entity", error=str(exc))
                continue
            if signal is not None:
                signals.append(signal)
        if skipped:
            logger.warning("Skipping malformed planning entities", skipped=skipped)
        return signals, skipped

    def _parse_entity(
        self, entity: Mapping[str, Any], filters: ProfileFilters, fetched_at: datetime
    ) -> RawSignal | None:
        description = (
            optional_text(entity.get("description"), "description") or optional_text(entity.get("name"), "name") or ""
        )
        if not is_significant_development(description):
            return None
        location = optional_text(entity.get("address"), "address")
        if not filters.matches(description, location):
            return None

        reference = str(entity["reference"])
        decision = entity.get("planning_decision")
        approved = format_decision(decision) == "Approved"
        detected_at = (
            parse_source_datetime(entity.get("planning_decision_date") if approved else None)
            or parse_source_datetime(entity.get("entry_date"))
            or parse_source_datetime(entity.get("start_date"))
            or fetched_at
        )
        label = "Planning approved" if approved else "Planning submitted"

        return RawSignal(
            source_type=self.source_type,
            company_name=extract_applicant(description),
            title=f"{label}: {description[:100]}",
            detail=description,
            url=entity.get("documentation_url") or ENTITY_URL.format(reference=reference),
            location=location,
            industry=filters.industry,
            detected_at=detected_at,
            source_ref=reference,
            metadata={
                "signal_type": (SignalType.PLANNING_APPROVED if approved else SignalType.PLANNING_SUBMITTED).value,
                "decision": format_decision(decision),
            },
        )
