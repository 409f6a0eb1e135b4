"""Owner-scoped access to profiles, signals and search runs."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from contextlib import AbstractContextManager
from typing import Protocol
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from leadsignals.db import session_scope
from leadsignals.models import SearchProfile, SearchRun, Signal

logger = structlog.get_logger()

_KEY_CHUNK = 500


class SignalStore(Protocol):
    def create_profile(self, profile: SearchProfile) -> SearchProfile: ...

    def get_profile(self, profile_id: str | UUID, user_id: str) -> SearchProfile | None: ...

    def find_existing(self, user_id: str, identity_keys: Iterable[str]) -> list[Signal]: ...

    def count_signals(self, user_id: str) -> int: ...

    def save_run(self, run: SearchRun, signals: Sequence[Signal]) -> SearchRun: ...

    def get_run(self, run_id: str | UUID, user_id: str) -> SearchRun | None: ...

    def list_runs(self, user_id: str, profile_id: str | UUID | None = None, limit: int = 20) -> list[SearchRun]: ...

    def signals_with_contacts(
        self,
        user_id: str,
        *,
        signal_type: str | None = None,
        search_run_id: str | UUID | None = None,
        ids: Sequence[str | UUID] | None = None,
    ) -> list[Signal]: ...


def as_uuid(value: str | UUID | None) -> UUID | None:
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


class SqlSignalStore:
    """SignalStore backed by SQLAlchemy sessions."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def _session(self) -> AbstractContextManager[Session]:
        return session_scope(self._session_factory, expire_on_commit=False)

    def create_profile(self, profile: SearchProfile) -> SearchProfile:
        with self._session() as session:
            session.add(profile)
            session.flush()
        logger.info("Search profile created", profile_id=str(profile.id), user_id=profile.user_id)
        return profile

    def get_profile(self, profile_id: str | UUID, user_id: str) -> SearchProfile | None:
        pid = as_uuid(profile_id)
        if pid is None:
            return None
        with self._session() as session:
            return session.scalars(
                select(SearchProfile).where(SearchProfile.id == pid, SearchProfile.user_id == user_id)
            ).first()

    def find_existing(self, user_id: str, identity_keys: Iterable[str]) -> list[Signal]:
        keys = sorted(set(identity_keys))
        found: list[Signal] = []
        with self._session() as session:
            for start in range(0, len(keys), _KEY_CHUNK):
                chunk = keys[start : start + _KEY_CHUNK]
                found.extend(
                    session.scalars(
                        select(Signal).where(Signal.user_id == user_id, Signal.identity_key.in_(chunk))
                    ).all()
                )
        return found

    def count_signals(self, user_id: str) -> int:
        with self._session() as session:
            return session.scalar(select(func.count()).select_from(Signal).where(Signal.user_id == user_id)) or 0

    def save_run(self, run: SearchRun, signals: Sequence[Signal]) -> SearchRun:
        """Insert the run and its signals in one transaction."""
        with self._session() as session:
            session.add(run)
            session.flush()
            for signal in signals:
                signal.search_run_id = run.id
            session.add_all(list(signals))
            session.flush()
        logger.info("Search run saved", run_id=str(run.id), signals=len(signals))
        return run

    def get_run(self, run_id: str | UUID, user_id: str) -> SearchRun | None:
        rid = as_uuid(run_id)
        if rid is None:
            return None
        with self._session() as session:
            return session.scalars(select(SearchRun).where(SearchRun.id == rid, SearchRun.user_id == user_id)).first()

    def list_runs(self, user_id: str, profile_id: str | UUID | None = None, limit: int = 20) -> list[SearchRun]:
        stmt = select(SearchRun).where(SearchRun.user_id == user_id)
        if profile_id is not None:
            pid = as_uuid(profile_id)
            if pid is None:
                return []
            stmt = stmt.where(SearchRun.search_profile_id == pid)
        stmt = stmt.order_by(SearchRun.run_at.desc()).limit(max(limit, 0))
        with self._session() as session:
            return list(session.scalars(stmt).all())

    def signals_with_contacts(
        self,
        user_id: str,
        *,
        signal_type: str | None = None,
        search_run_id: str | UUID | None = None,
        ids: Sequence[str | UUID] | None = None,
    ) -> list[Signal]:
        stmt = select(Signal).options(selectinload(Signal.contacts)).where(Signal.user_id == user_id)
        if signal_type:
            stmt = stmt.where(Signal.signal_type == signal_type)
        if search_run_id is not None:
            run_id = as_uuid(search_run_id)
            if run_id is None:
                return []
            stmt = stmt.where(Signal.search_run_id == run_id)
        if ids:
            stmt = stmt.where(Signal.id.in_([uid for uid in (as_uuid(i) for i in ids) if uid is not None]))
        stmt = stmt.order_by(Signal.detected_at.desc())
        with self._session() as session:
            return list(session.scalars(stmt).all())
