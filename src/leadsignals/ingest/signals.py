"""Signal contracts shared by connectors, the normalizer and the deduplicator."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from leadsignals.ingest.keys import compute_identity_key


@dataclass(frozen=True)
class ProfileFilters:
    """Read-only snapshot of a search profile's filters."""

    industry: str | None = None
    location: str | None = None
    keywords: tuple[str, ...] = ()
    excluded_keywords: tuple[str, ...] = ()

    @classmethod
    def from_profile(cls, profile: Any) -> ProfileFilters:
        return cls(
            industry=profile.industry or None,
            location=profile.location or None,
            keywords=_clean_terms(profile.keywords),
            excluded_keywords=_clean_terms(profile.excluded_keywords),
        )

    def matches(self, text: str, location: str | None = None) -> bool:
        haystack = (text or "").lower()
        if any(term.lower() in haystack for term in self.excluded_keywords):
            return False
        if self.keywords and not any(term.lower() in haystack for term in self.keywords):
            return False
        if self.location and location and self.location.lower() not in location.lower():
            return False
        return True


def _clean_terms(terms: Iterable[str] | None) -> tuple[str, ...]:
    return tuple(term.strip() for term in terms or () if term and term.strip())


@dataclass(frozen=True)
class RawSignal:
    source_type: str
    company_name: str | None
    title: str | None
    detail: str | None
    url: str | None
    location: str | None
    industry: str | None
    detected_at: datetime
    source_ref: str
    company_url: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class NormalizedSignal:
    company_name: str
    company_domain: str | None
    signal_type: str
    signal_title: str
    signal_detail: str
    signal_url: str | None
    location: str | None
    industry: str | None
    source_type: str
    detected_at: datetime

    @property
    def identity_key(self) -> str:
        return compute_identity_key(self.source_type, self.signal_url, self.company_domain, self.detected_at)
