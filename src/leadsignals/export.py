"""CSV and JSON export of a user's signals with their contacts."""

from __future__ import annotations

import json
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import Any
from uuid import UUID

import structlog

from leadsignals.models import Signal, SignalContact
from leadsignals.search.errors import RunNotFoundError
from leadsignals.store import SignalStore

logger = structlog.get_logger()

SIGNAL_COLUMNS = (
    "company_name",
    "company_domain",
    "signal_type",
    "signal_title",
    "signal_detail",
    "signal_url",
    "location",
    "industry",
    "source_type",
    "detected_at",
)

# (csv column, contact attribute)
CONTACT_COLUMNS = (
    ("contact_name", "full_name"),
    ("contact_title", "job_title"),
    ("contact_seniority", "seniority"),
    ("contact_email", "email"),
    ("contact_email_status", "email_status"),
    ("contact_phone", "phone"),
    ("contact_linkedin", "linkedin_url"),
)

CSV_COLUMNS = SIGNAL_COLUMNS + tuple(column for column, _ in CONTACT_COLUMNS)

CONTACT_FIELDS = (
    "id",
    "full_name",
    "job_title",
    "seniority",
    "email",
    "email_status",
    "phone",
    "linkedin_url",
    "is_primary",
)

SIGNAL_FIELDS = (
    "id",
    "search_run_id",
    *SIGNAL_COLUMNS,
    "is_new",
    "created_at",
)

FORMATS = {
    "csv": "text/csv",
    "json": "application/json",
}


def _render(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def escape_field(value: Any) -> str:
    if value is None or value == "":
        return ""
    text = _render(value)
    if "," in text or '"' in text or "\n" in text:
        return '"' + text.replace('"', '""') + '"'
    return text


def signal_rows(signal: Any, contacts: Iterable[Any] | None = None) -> Iterator[tuple[Any, ...]]:
    """Yield one row per contact, or a single row with empty contact columns."""
    base = tuple(getattr(signal, column, None) for column in SIGNAL_COLUMNS)
    emitted = False
    for contact in contacts or ():
        emitted = True
        yield base + tuple(getattr(contact, attr, None) for _, attr in CONTACT_COLUMNS)
    if not emitted:
        yield base + (None,) * len(CONTACT_COLUMNS)


def _contacts_of(signal: Any) -> Sequence[Any]:
    return getattr(signal, "contacts", None) or ()


def iter_csv_lines(signals: Iterable[Any]) -> Iterator[str]:
    yield ",".join(CSV_COLUMNS)
    for signal in signals:
        for row in signal_rows(signal, _contacts_of(signal)):
            yield ",".join(escape_field(value) for value in row)


def signals_to_csv(signals: Iterable[Any]) -> str:
    return "\n".join(iter_csv_lines(signals))


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    return value


def contact_to_dict(contact: SignalContact) -> dict[str, Any]:
    return {name: _jsonable(getattr(contact, name, None)) for name in CONTACT_FIELDS}


def signal_to_dict(signal: Signal) -> dict[str, Any]:
    data = {name: _jsonable(getattr(signal, name, None)) for name in SIGNAL_FIELDS}
    data["contacts"] = [contact_to_dict(contact) for contact in _contacts_of(signal)]
    return data


def signals_to_json(signals: Iterable[Signal]) -> str:
    return json.dumps([signal_to_dict(signal) for signal in signals], indent=2)


@dataclass(frozen=True)
class ExportFile:
    filename: str
    content_type: str
    content: str


def export_filename(fmt: str, today: date | None = None) -> str:
    today = today or datetime.now(UTC).date()
    return f"signals-{today.isoformat()}.{fmt}"


def export_signals(
    store: SignalStore,
    user_id: str,
    fmt: str = "csv",
    *,
    signal_type: str | None = None,
    search_run_id: str | UUID | None = None,
    ids: Sequence[str | UUID] | None = None,
    today: date | None = None,
) -> ExportFile:
    """Render the user's signals (newest first) as a downloadable file.

    Raises ``ValueError`` for an unknown format and ``RunNotFoundError`` when
    ``search_run_id`` names a run the user does not own.
    """
    fmt = fmt.lower()
    if fmt not in FORMATS:
        raise ValueError(f"Unsupported export format: {fmt}")

    if search_run_id is not None and store.get_run(search_run_id, user_id) is None:
        raise RunNotFoundError(search_run_id)

    signals = store.signals_with_contacts(user_id, signal_type=signal_type, search_run_id=search_run_id, ids=ids)
    content = signals_to_csv(signals) if fmt == "csv" else signals_to_json(signals)
    logger.info("Exporting signals", user_id=user_id, format=fmt, signals=len(signals))
    return ExportFile(filename=export_filename(fmt, today), content_type=FORMATS[fmt], content=content)
