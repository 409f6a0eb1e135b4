"""Pytest fixtures for lead signals tests."""

import threading
from collections.abc import Callable, Generator
from datetime import UTC, datetime
from typing import Any

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from leadsignals.ingest.signals import ProfileFilters, RawSignal
from leadsignals.models import Base, SearchProfile
from leadsignals.sources import fetch
from leadsignals.sources.base import ConnectorResult
from leadsignals.store import SqlSignalStore

USER_ID = "user-1"
OTHER_USER_ID = "user-2"


class FakeConnector:
    """In-memory connector returning canned signals."""

    def __init__(
        self,
        source_type: str,
        signals: list[RawSignal] | None = None,
        *,
        error: str | None = None,
        exc: Exception | None = None,
        block: threading.Event | None = None,
    ):
        self.source_type = source_type
        self.signals = signals or []
        self.error = error
        self.exc = exc
        self.block = block
        self.calls: list[tuple[int, ProfileFilters]] = []

    def fetch(self, window_days: int, filters: ProfileFilters) -> ConnectorResult:
        self.calls.append((window_days, filters))
        if self.block is not None:
            self.block.wait(timeout=10)
        if self.exc is not None:
            raise self.exc
        return ConnectorResult(signals=list(self.signals), error=self.error)


@pytest.fixture(autouse=True)
def no_retry_sleep(monkeypatch):
    """Retries run back to back."""
    monkeypatch.setattr(fetch._get.retry, "sleep", lambda _seconds: None)


@pytest.fixture
def engine():
    """In-memory SQLite engine shared across threads."""
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker:
    return sessionmaker(bind=engine)


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def store(session_factory) -> SqlSignalStore:
    return SqlSignalStore(session_factory)


@pytest.fixture
def make_profile(store) -> Callable[..., SearchProfile]:
    def _make(**overrides: Any) -> SearchProfile:
        fields: dict[str, Any] = {
            "user_id": USER_ID,
            "name": "UK facilities",
            "industry": "Facilities",
            "location": None,
            "keywords": [],
            "excluded_keywords": [],
            "sources": ["contracts_finder", "find_a_tender", "planning_data"],
        }
        fields.update(overrides)
        return store.create_profile(SearchProfile(**fields))

    return _make


@pytest.fixture
def profile(make_profile) -> SearchProfile:
    return make_profile()


@pytest.fixture
def make_raw() -> Callable[..., RawSignal]:
    def _make(**overrides: Any) -> RawSignal:
        fields: dict[str, Any] = {
            "source_type": "contracts_finder",
            "company_name": "Sparkle Cleaning Ltd",
            "title": "Won contract: Office cleaning",
            "detail": "Cleaning of council offices",
            "url": "https://www.contractsfinder.service.gov.uk/Notice/ocds-1",
            "location": "Leeds",
            "industry": "Facilities",
            "detected_at": datetime(2024, 3, 2, 9, 30, tzinfo=UTC),
            "source_ref": "ocds-1/award-1/sup-1",
        }
        fields.update(overrides)
        return RawSignal(**fields)

    return _make


@pytest.fixture
def fake_connector() -> type[FakeConnector]:
    return FakeConnector
