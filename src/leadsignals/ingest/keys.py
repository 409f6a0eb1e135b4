"""Helpers for stable signal identity keys across sources."""

from __future__ import annotations

from datetime import datetime
from urllib.parse import urlsplit, urlunsplit


def canonical_url(url: str | None) -> str | None:
    """Normalize a URL for identity comparison.

    Example:
        Input:  HTTPS://Www.Example.COM/Notice/abc/?page=2#top
        Output: https://www.example.com/Notice/abc?page=2
    """
    if not url or not url.strip():
        return None

    parts = urlsplit(url.strip())
    if not parts.netloc:
        return url.strip()

    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, parts.query, ""))


def compute_identity_key(
    source_type: str,
    signal_url: str | None,
    company_domain: str | None,
    detected_at: datetime,
) -> str:
    """Compute the dedup key for a signal.

    Priority:
    1. (source_type, signal_url) when a URL exists
    2. (source_type, company_domain, detected_at date) otherwise
    """
    normalized = canonical_url(signal_url)
    if normalized:
        return f"url:{source_type}:{normalized}"
    domain = (company_domain or "").strip().lower()
    return f"dom:{source_type}:{domain}:{detected_at.date().isoformat()}"
