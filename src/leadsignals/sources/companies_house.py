"""Companies House connector: recent executive officer appointments."""

from __future__ import annotations

import base64
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

import structlog

from leadsignals.ingest.signals import ProfileFilters, RawSignal
from leadsignals.models import SignalType
from leadsignals.sources.base import PagedJsonConnector, optional_text, parse_source_datetime

logger = structlog.get_logger()

SITE_URL = "https://find-and-update.company-information.service.gov.uk"
OFFICERS_URL = SITE_URL + "/company/{number}/officers"

EXECUTIVE_ROLES = frozenset({"director", "llp-designated-member", "cic-manager", "member-of-management-organ"})

OFFICER_ROLES = {
    "director": "Director",
    "secretary": "Company Secretary",
    "llp-member": "LLP Member",
    "llp-designated-member": "Designated LLP Member",
    "corporate-director": "Corporate Director",
    "cic-manager": "CIC Manager",
    "member-of-management-organ": "Member of Management Organ",
}

# UK SIC 2007 divisions (first two digits), grouped by section.
SIC_DIVISIONS = (
    (1, 3, "Agriculture, Forestry & Fishing"),
    (5, 9, "Mining & Quarrying"),
    (10, 33, "Engineering & Manufacturing"),
    (35, 39, "Energy & Utilities"),
    (41, 43, "Construction & Infrastructure"),
    (45, 47, "Retail & Consumer"),
    (49, 53, "Logistics & Supply Chain"),
    (55, 56, "Hospitality & Leisure"),
    (58, 63, "Technology & Software"),
    (64, 66, "Financial Services"),
    (68, 68, "Property & Real Estate"),
    (69, 75, "Legal & Professional Services"),
    (77, 82, "Business Support Services"),
    (84, 84, "Public Sector"),
    (85, 85, "Education"),
    (86, 88, "Healthcare & Life Sciences"),
    (90, 93, "Arts & Recreation"),
)


def format_officer_role(role: str) -> str:
    if role in OFFICER_ROLES:
        return OFFICER_ROLES[role]
    return " ".join(word.capitalize() for word in role.split("-"))


def industry_from_sic_codes(codes: Any) -> str | None:
    """Industry of the first SIC code that falls in a known division."""
    for code in codes or []:
        digits = str(code).strip()[:2]
        if not digits.isdigit():
            continue
        division = int(digits)
        for low, high, industry in SIC_DIVISIONS:
            if low <= division <= high:
                return industry
    return None


def _registered_location(company: Mapping[str, Any]) -> str | None:
    address = company.get("registered_office_address") or {}
    return optional_text(address.get("locality"), "locality") or optional_text(address.get("region"), "region")


class CompaniesHouseConnector(PagedJsonConnector):
    """Leadership changes at active companies.

    Lists active companies through the advanced search, then reads each
    company's officers and keeps executive appointments made inside the
    window. Companies House authenticates with the API key as the basic-auth
    user name.
    """

    source_type = "companies_house"
    items_key = "items"
    max_pages = 1

    def __init__(self, base_url: str, *, api_key: str | None = None, max_companies: int = 30, **kwargs: Any):
        super().__init__(base_url, **kwargs)
        self._api_key = api_key
        self._max_companies = max_companies

    def configuration_error(self) -> str | None:
        if self._api_key:
            return None
        return "companies_house not configured: set COMPANIES_HOUSE_API_KEY"

    def request_headers(self) -> dict[str, str]:
        token = base64.b64encode(f"{self._api_key}:".encode()).decode()
        return {"Authorization": f"Basic {token}"}

    def first_request(self, since: date, filters: ProfileFilters) -> tuple[str, dict[str, Any]]:
        params: dict[str, Any] = {"company_status": "active", "size": self._page_size}
        if filters.location:
            params["location"] = filters.location
        return f"{self._base_url}/advanced-search/companies", params

    def parse_items(
        self, items: list[Any], filters: ProfileFilters, fetched_at: datetime, since: date
    ) -> tuple[list[RawSignal], int]:
        signals: list[RawSignal] = []
        skipped = 0
        seen: set[str] = set()
        for company in items[: self._max_companies]:
            try:
                if not isinstance(company, Mapping) or not company.get("company_number"):
                    raise ValueError("company has no number")
                number = str(company["company_number"])
                if number in seen:
                    continue
                seen.add(number)
                signals.extend(self._appointments(company, number, filters, since))
            except (ValueError, TypeError, AttributeError, KeyError) as exc:
                skipped += 1
                logger.debug("Skipping company", error=str(exc))
        return signals, skipped

    def _officers(self, number: str) -> list[Any]:
        result = self.get_json(f"{self._base_url}/company/{number}/officers")
        if result.error:
            raise ValueError(f"officers for {number} unavailable: {result.error}")
        if not isinstance(result.data, Mapping):
            raise ValueError(f"officers for {number} returned an unexpected payload")
        officers = result.data.get("items") or []
        if not isinstance(officers, list):
            raise TypeError(f"officers for {number} is not a list")
        return officers

    def _appointments(
        self, company: Mapping[str, Any], number: str, filters: ProfileFilters, since: date
    ) -> list[RawSignal]:
        company_name = optional_text(company.get("company_name"), "company_name")
        location = _registered_location(company)
        industry = industry_from_sic_codes(company.get("sic_codes")) or filters.industry
        if not filters.matches(f"{company_name or ''} {industry or ''}", location):
            return []

        signals: list[RawSignal] = []
        for officer in self._officers(number):
            if not isinstance(officer, Mapping) or officer.get("officer_role") not in EXECUTIVE_ROLES:
                continue
            if officer.get("resigned_on"):
                continue
            appointed_at = parse_source_datetime(officer.get("appointed_on"))
            if appointed_at is None or appointed_at.date() < since:
                continue

            officer_name = optional_text(officer.get("name"), "name") or "New officer"
            role = format_officer_role(officer["officer_role"])
            signals.append(
                RawSignal(
                    source_type=self.source_type,
                    company_name=company_name,
                    title=f"{officer_name} appointed as {role}",
                    detail=f"New {role} at {company_name}. Appointed {appointed_at.date().isoformat()}.",
                    url=_appointment_url(officer) or OFFICERS_URL.format(number=number),
                    location=location,
                    industry=industry,
                    detected_at=appointed_at,
                    source_ref=f"{number}/{officer_name}/{appointed_at.date().isoformat()}",
                    metadata={"signal_type": SignalType.LEADERSHIP_CHANGE.value},
                )
            )
        return signals


def _appointment_url(officer: Mapping[str, Any]) -> str | None:
    links = officer.get("links") or {}
    path = (links.get("officer") or {}).get("appointments")
    if isinstance(path, str) and path.startswith("/"):
        return SITE_URL + path
    return None
