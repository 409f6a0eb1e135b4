"""Map connector-specific raw signals onto the canonical signal shape."""

from __future__ import annotations

import re
from datetime import UTC, datetime
from urllib.parse import urlsplit

from leadsignals.ingest.signals import NormalizedSignal, RawSignal
from leadsignals.models import SignalType

UNKNOWN_COMPANY = "Unknown Company"
MAX_TITLE_LENGTH = 300
MAX_DETAIL_LENGTH = 500

# Hosts that serve notices about a company rather than the company itself.
PORTAL_HOSTS = frozenset(
    {
        "contractsfinder.service.gov.uk",
        "find-tender.service.gov.uk",
        "planning.data.gov.uk",
        "linkedin.com",
        "indeed.com",
        "adzuna.co.uk",
        "company-information.service.gov.uk",
    }
)

DEFAULT_SIGNAL_TYPES = {
    "contracts_finder": SignalType.CONTRACT_AWARD.value,
    "find_a_tender": SignalType.CONTRACT_AWARD.value,
    "planning_data": SignalType.PLANNING_SUBMITTED.value,
    "adzuna": SignalType.JOB_POSTING.value,
    "companies_house": SignalType.LEADERSHIP_CHANGE.value,
}

_DOMAIN_PATTERN = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?(\.[a-z0-9]([a-z0-9-]*[a-z0-9])?)+$")


def normalize_company_name(name: str | None) -> str:
    """Collapse whitespace and fix shouting or all-lowercase names.

    Mixed-case names are kept as given ("McKinsey & Company" stays intact).
    """
    if not name:
        return UNKNOWN_COMPANY
    collapsed = re.sub(r"\s+", " ", name).strip()
    if not collapsed:
        return UNKNOWN_COMPANY
    if collapsed.isupper() or collapsed.islower():
        return _title_case(collapsed)
    return collapsed


def _title_case(value: str) -> str:
    words = []
    for word in value.split(" "):
        lower = word.lower()
        if lower in {"plc", "llp", "llc", "cic"}:
            words.append(lower.upper())
        else:
            words.append(lower[:1].upper() + lower[1:])
    return " ".join(words)


def _clean_host(url: str | None) -> str | None:
    if not url:
        return None
    candidate = url.strip()
    if "://" not in candidate:
        candidate = f"https://{candidate}"
    try:
        host = urlsplit(candidate).hostname
    except ValueError:
        return None
    if not host:
        return None
    host = host.lower()
    if host.startswith("www."):
        host = host[4:]
    if len(host) < 4 or not _DOMAIN_PATTERN.match(host):
        return None
    return host


def _is_portal(host: str) -> bool:
    return any(host == portal or host.endswith(f".{portal}") for portal in PORTAL_HOSTS)


def derive_company_domain(company_url: str | None, signal_url: str | None = None) -> str | None:
    """Best-effort company domain. Returns None rather than guessing."""
    host = _clean_host(company_url)
    if host and not _is_portal(host):
        return host
    host = _clean_host(signal_url)
    if host and not _is_portal(host):
        return host
    return None


def _one_line(value: str | None) -> str:
    return re.sub(r"\s+", " ", value or "").strip()


def _truncate(value: str, limit: int) -> str:
    if len(value) <= limit:
        return value
    return value[:limit] + "..."


def _format_value(amount) -> str | None:
    try:
        number = float(amount)
    except (TypeError, ValueError):
        return None
    if number <= 0:
        return None
    if number.is_integer():
        return f"£{int(number):,}"
    return f"£{number:,.2f}"


def _salary_range(low, high) -> str | None:
    low, high = _format_value(low), _format_value(high)
    if low and high and low != high:
        return f"{low} - {high}"
    return low or high


def compose_title(raw: RawSignal) -> str:
    title = _one_line(raw.title) or "Untitled signal"
    return _truncate(title, MAX_TITLE_LENGTH)


def compose_detail(raw: RawSignal) -> str:
    parts = [_truncate(_one_line(raw.detail), MAX_DETAIL_LENGTH)] if _one_line(raw.detail) else []
    buyer = _one_line(raw.metadata.get("buyer_name"))
    if buyer:
        parts.append(f"Buyer: {buyer}")
    value = _format_value(raw.metadata.get("value"))
    if value:
        parts.append(f"Value: {value}")
    salary = _salary_range(raw.metadata.get("salary_min"), raw.metadata.get("salary_max"))
    if salary:
        parts.append(f"Salary: {salary}")
    decision = _one_line(raw.metadata.get("decision"))
    if decision:
        parts.append(f"Decision: {decision}")
    return " | ".join(parts)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


def normalize_signal(raw: RawSignal, source_type: str) -> NormalizedSignal:
    """Build a canonical signal from a raw one. Identical input gives identical output."""
    signal_type = raw.metadata.get("signal_type") or DEFAULT_SIGNAL_TYPES.get(
        source_type, SignalType.CONTRACT_AWARD.value
    )
    if isinstance(signal_type, SignalType):
        signal_type = signal_type.value
    signal_url = (raw.url or "").strip() or None
    return NormalizedSignal(
        company_name=normalize_company_name(raw.company_name),
        company_domain=derive_company_domain(raw.company_url, signal_url),
        signal_type=signal_type,
        signal_title=compose_title(raw),
        signal_detail=compose_detail(raw),
        signal_url=signal_url,
        location=_one_line(raw.location) or None,
        industry=_one_line(raw.industry) or None,
        source_type=source_type,
        detected_at=_as_utc(raw.detected_at),
    )
