"""Parsing of OCDS (Open Contracting Data Standard) award releases."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog

from leadsignals.ingest.signals import ProfileFilters, RawSignal
from leadsignals.models import SignalType
from leadsignals.sources.base import parse_source_datetime

logger = structlog.get_logger()


@dataclass(frozen=True)
class ParsedReleases:
    signals: list[RawSignal]
    skipped: int


def _parties_with_role(release: Mapping[str, Any], role: str) -> list[Mapping[str, Any]]:
    parties = release.get("parties") or []
    return [p for p in parties if isinstance(p, Mapping) and role in (p.get("roles") or [])]


def _buyer_name(release: Mapping[str, Any]) -> str | None:
    buyer = release.get("buyer")
    if isinstance(buyer, Mapping) and buyer.get("name"):
        return buyer["name"]
    for party in _parties_with_role(release, "buyer"):
        if party.get("name"):
            return party["name"]
    return None


def _buyer_location(release: Mapping[str, Any]) -> str | None:
    for party in _parties_with_role(release, "buyer"):
        address = party.get("address") or {}
        location = address.get("locality") or address.get("region")
        if location:
            return location
    return None


def supplier_website(release: Mapping[str, Any], supplier: Mapping[str, Any]) -> str | None:
    """Website of a supplier party, from its contact point or identifier URI."""
    supplier_id = supplier.get("id")
    supplier_name = supplier.get("name")
    for party in _parties_with_role(release, "supplier"):
        if party.get("id") != supplier_id and party.get("name") != supplier_name:
            continue
        contact = party.get("contactPoint") or {}
        if contact.get("url"):
            return contact["url"]
        identifier = party.get("identifier") or {}
        if identifier.get("uri"):
            return identifier["uri"]
    return None


def _classification(release: Mapping[str, Any]) -> str | None:
    tender = release.get("tender") or {}
    for item in tender.get("items") or []:
        classification = (item or {}).get("classification") or {}
        if classification.get("description"):
            return classification["description"]
    return tender.get("mainProcurementCategory")


def _amount(*values: Any) -> float | None:
    for value in values:
        if isinstance(value, Mapping) and value.get("amount"):
            return value["amount"]
    return None


def parse_award_release(
    release: Mapping[str, Any],
    *,
    source_type: str,
    notice_url: str,
    title_prefix: str,
    default_title: str,
    filters: ProfileFilters,
    fetched_at: datetime,
) -> list[RawSignal]:
    """One raw signal per active award and supplier in a release."""
    ocid = release.get("ocid")
    if not ocid:
        raise ValueError("release has no ocid")

    tender = release.get("tender") or {}
    buyer_name = _buyer_name(release) or "Unknown Buyer"
    location = _buyer_location(release)
    release_date = parse_source_datetime(release.get("date"))
    industry = _classification(release) or filters.industry

    signals: list[RawSignal] = []
    for award in release.get("awards") or []:
        if not isinstance(award, Mapping) or award.get("status") != "active":
            continue
        detected_at = parse_source_datetime(award.get("date")) or release_date or fetched_at

        tender_title = tender.get("title") or award.get("title") or default_title
        description = tender.get("description") or award.get("description") or ""
        if not filters.matches(f"{tender_title} {description}", location):
            continue

        for supplier in award.get("suppliers") or []:
            if not isinstance(supplier, Mapping) or not supplier.get("name"):
                continue
            signals.append(
                RawSignal(
                    source_type=source_type,
                    company_name=supplier["name"],
                    title=f"{title_prefix}: {tender_title}",
                    detail=description,
                    url=notice_url.format(ocid=ocid),
                    location=location,
                    industry=industry,
                    detected_at=detected_at,
                    source_ref=f"{ocid}/{award.get('id') or ''}/{supplier.get('id') or supplier['name']}",
                    company_url=supplier_website(release, supplier),
                    metadata={
                        "signal_type": SignalType.CONTRACT_AWARD.value,
                        "buyer_name": buyer_name,
                        "value": _amount(award.get("value"), tender.get("value")),
                    },
                )
            )
    return signals


def parse_award_releases(
    releases: Any, *, include: Callable[[Mapping[str, Any]], bool] | None = None, **kwargs: Any
) -> ParsedReleases:
    """Parse many releases, skipping malformed ones instead of failing the batch.

    ``include`` picks which well-formed releases to parse; a release it fails on
    counts as malformed.
    """
    if not isinstance(releases, list):
        raise ValueError("releases is not a list")

    signals: list[RawSignal] = []
    skipped = 0
    for release in releases:
        try:
            if not isinstance(release, Mapping):
                raise ValueError("release is not an object")
            if include is not None and not include(release):
                continue
            signals.extend(parse_award_release(release, **kwargs))
        except (ValueError, TypeError, AttributeError, KeyError) as exc:
            skipped += 1
            logger.warning("Skipping malformed release", source=kwargs.get("source_type"), error=str(exc))
    return ParsedReleases(signals=signals, skipped=skipped)
