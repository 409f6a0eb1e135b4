"""Drop candidates already seen in this run or already stored for the owner."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

import structlog

from leadsignals.ingest.keys import compute_identity_key
from leadsignals.ingest.signals import NormalizedSignal

logger = structlog.get_logger()


def identity_of(signal: Any) -> str:
    """Identity key of a candidate or a persisted signal row."""
    key = getattr(signal, "identity_key", None)
    if key:
        return key
    return compute_identity_key(signal.source_type, signal.signal_url, signal.company_domain, signal.detected_at)


def dedupe(candidates: Sequence[NormalizedSignal], existing: Iterable[Any]) -> list[NormalizedSignal]:
    """Return the net-new candidates.

    A candidate is dropped when its identity key matches an existing signal or an
    earlier candidate; the first occurrence in ``candidates`` wins.
    """
    seen: set[str] = {identity_of(signal) for signal in existing}
    known = len(seen)
    fresh: list[NormalizedSignal] = []
    skipped = 0

    for candidate in candidates:
        key = candidate.identity_key
        if key in seen:
            skipped += 1
            continue
        seen.add(key)
        fresh.append(candidate)

    logger.debug("Deduplicated candidates", candidates=len(candidates), existing=known, new=len(fresh), skipped=skipped)
    return fresh
