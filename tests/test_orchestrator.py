"""Tests for search run orchestration against an in-memory database."""

import threading
import time
from datetime import UTC, datetime
from uuid import uuid4

import pytest
from sqlalchemy import select

from leadsignals.ingest.normalize import normalize_signal
from leadsignals.models import SearchRun, Signal
from leadsignals.search.errors import PersistenceError, ProfileNotFoundError
from leadsignals.search.orchestrator import SearchOrchestrator, SourceOutcome, enabled_sources, run_status
from leadsignals.store import SqlSignalStore

USER_ID = "user-1"
OTHER_USER_ID = "user-2"

NOW = datetime(2024, 3, 10, 12, 0, tzinfo=UTC)


def _orchestrator(store, connectors, **kwargs) -> SearchOrchestrator:
    kwargs.setdefault("deadline_seconds", 5)
    return SearchOrchestrator(store, connectors, clock=lambda: NOW, **kwargs)


def _stored_keys(db_session, user_id: str = USER_ID) -> set[str]:
    return set(db_session.scalars(select(Signal.identity_key).where(Signal.user_id == user_id)).all())


@pytest.fixture
def three_sources(make_raw, fake_connector):
    return {
        "contracts_finder": fake_connector(
            "contracts_finder",
            [
                make_raw(url="https://example.com/cf/1", source_ref="1"),
                make_raw(url="https://example.com/cf/2", source_ref="2"),
            ],
        ),
        "find_a_tender": fake_connector(
            "find_a_tender",
            [make_raw(source_type="find_a_tender", url="https://example.com/fts/1", source_ref="f1")],
        ),
        "planning_data": fake_connector(
            "planning_data",
            [make_raw(source_type="planning_data", url=None, company_url="https://acme.com", source_ref="p1")],
        ),
    }


class TestRunStatus:
    """Tests for run_status()."""

    def test_clean(self):
        assert run_status([SourceOutcome("a"), SourceOutcome("b")]).value == "completed"

    def test_partial(self, make_raw):
        outcomes = [SourceOutcome("a", [make_raw()]), SourceOutcome("b", error="down")]
        assert run_status(outcomes).value == "completed_with_errors"

    def test_partial_with_soft_error_and_signals(self, make_raw):
        assert run_status([SourceOutcome("a", [make_raw()], error="Skipped 1")]).value == "completed_with_errors"

    def test_all_failed(self):
        outcomes = [SourceOutcome("a", error="down"), SourceOutcome("b", error="down")]
        assert run_status(outcomes).value == "failed"

    def test_nothing_enabled(self):
        assert run_status([]).value == "completed"


class TestSearchOrchestrator:
    """Tests for SearchOrchestrator.run()."""

    def test_persists_new_signals_and_run(self, store, profile, three_sources, db_session):
        result = _orchestrator(store, three_sources).run(profile.id, USER_ID)

        assert result.new_signals == 4
        run = result.search_run
        assert run.status == "completed"
        assert run.errors == []
        assert run.signals_found == 4
        assert run.new_signals == 4
        assert run.window_days == 7
        assert run.run_at == NOW
        assert run.sources_searched == ["contracts_finder", "find_a_tender", "planning_data"]
        assert run.search_profile_id == profile.id

        rows = db_session.scalars(select(Signal)).all()
        assert len(rows) == 4
        assert {row.search_run_id for row in rows} == {run.id}
        assert all(row.user_id == USER_ID and row.is_new for row in rows)
        assert {row.source_type for row in rows} == {"contracts_finder", "find_a_tender", "planning_data"}

    def test_idempotent(self, store, profile, three_sources, db_session):
        orchestrator = _orchestrator(store, three_sources)

        first = orchestrator.run(profile.id, USER_ID)
        second = orchestrator.run(profile.id, USER_ID)

        assert first.new_signals == 4
        assert second.new_signals == 0
        assert second.search_run.signals_found == 4
        assert second.search_run.status == "completed"
        assert store.count_signals(USER_ID) == 4
        assert len(store.list_runs(USER_ID)) == 2

    def test_same_url_from_two_connectors_collapses(self, store, make_profile, make_raw, fake_connector):
        profile = make_profile(sources=["feed_a", "feed_b"])
        url = "https://www.contractsfinder.service.gov.uk/Notice/ocds-1"
        connectors = {
            "feed_a": fake_connector("contracts_finder", [make_raw(url=url, company_name="First Ltd")]),
            "feed_b": fake_connector(
                "contracts_finder", [make_raw(url="https://WWW.ContractsFinder.service.gov.uk/Notice/ocds-1/")]
            ),
        }

        result = _orchestrator(store, connectors).run(profile.id, USER_ID)

        assert result.new_signals == 1
        assert result.search_run.signals_found == 2
        assert store.count_signals(USER_ID) == 1

    def test_collection_order_does_not_change_result(
        self, store, make_profile, make_raw, fake_connector, db_session
    ):
        shared = make_raw(url="https://example.com/shared")
        a_signals = [shared, make_raw(url="https://example.com/a")]
        b_signals = [make_raw(url="https://example.com/b"), shared]

        forward = make_profile(user_id=USER_ID, sources=["a", "b"])
        backward = make_profile(user_id=OTHER_USER_ID, sources=["b", "a"])
        connectors = {
            "a": fake_connector("contracts_finder", a_signals),
            "b": fake_connector("contracts_finder", b_signals),
        }
        orchestrator = _orchestrator(store, connectors)

        first = orchestrator.run(forward.id, USER_ID)
        second = orchestrator.run(backward.id, OTHER_USER_ID)

        assert first.new_signals == second.new_signals == 3
        assert _stored_keys(db_session, USER_ID) == _stored_keys(db_session, OTHER_USER_ID)

    def test_partial_failure_is_contained(self, store, make_profile, make_raw, fake_connector):
        profile = make_profile(sources=["one", "two", "three"])
        connectors = {
            "one": fake_connector(
                "contracts_finder",
                [make_raw(url="https://example.com/1"), make_raw(url="https://example.com/2")],
            ),
            "two": fake_connector("find_a_tender", exc=RuntimeError("upstream down")),
            "three": fake_connector("planning_data", [make_raw(source_type="planning_data", url="https://x.test/3")]),
        }

        result = _orchestrator(store, connectors).run(profile.id, USER_ID)

        assert result.new_signals == 3
        assert result.search_run.status == "completed_with_errors"
        assert result.search_run.errors == [{"source": "two", "error": "Connector failed: upstream down"}]
        assert store.count_signals(USER_ID) == 3

    def test_soft_error_keeps_signals(self, store, make_profile, make_raw, fake_connector):
        profile = make_profile(sources=["contracts_finder"])
        connectors = {
            "contracts_finder": fake_connector(
                "contracts_finder", [make_raw()], error="Skipped 2 malformed record(s)"
            ),
        }

        result = _orchestrator(store, connectors).run(profile.id, USER_ID)

        assert result.new_signals == 1
        assert result.search_run.status == "completed_with_errors"
        assert result.search_run.errors == [{"source": "contracts_finder", "error": "Skipped 2 malformed record(s)"}]

    def test_unnormalizable_signal_is_dropped(self, store, make_profile, make_raw, fake_connector):
        profile = make_profile(sources=["contracts_finder"])
        signals = [make_raw(), make_raw(url="https://example.com/broken", detected_at="last tuesday")]
        connectors = {"contracts_finder": fake_connector("contracts_finder", signals)}

        result = _orchestrator(store, connectors).run(profile.id, USER_ID)

        assert result.new_signals == 1
        assert result.search_run.status == "completed_with_errors"
        assert result.search_run.errors == [
            {"source": "contracts_finder", "error": "Dropped 1 unnormalizable signal(s)"}
        ]

    def test_all_sources_failing(self, store, make_profile, fake_connector):
        profile = make_profile(sources=["a", "b"])
        connectors = {
            "a": fake_connector("contracts_finder", error="HTTP 500"),
            "b": fake_connector("find_a_tender", exc=ValueError("bad")),
        }

        result = _orchestrator(store, connectors).run(profile.id, USER_ID)

        assert result.new_signals == 0
        assert result.search_run.status == "failed"
        assert len(result.search_run.errors) == 2
        assert len(store.list_runs(USER_ID)) == 1

    def test_unknown_source_recorded(self, store, make_profile, make_raw, fake_connector):
        profile = make_profile(sources=["contracts_finder", "job_boards"])
        connectors = {"contracts_finder": fake_connector("contracts_finder", [make_raw()])}

        result = _orchestrator(store, connectors).run(profile.id, USER_ID)

        assert result.new_signals == 1
        assert result.search_run.errors == [{"source": "job_boards", "error": "unknown source"}]
        assert result.search_run.status == "completed_with_errors"

    def test_no_enabled_sources(self, store, make_profile, fake_connector):
        profile = make_profile(sources=[])
        connector = fake_connector("contracts_finder")

        result = _orchestrator(store, {"contracts_finder": connector}).run(profile.id, USER_ID)

        assert result.new_signals == 0
        assert result.search_run.status == "completed"
        assert connector.calls == []

    def test_passes_window_and_filters(self, store, make_profile, fake_connector):
        profile = make_profile(
            sources=["contracts_finder"], keywords=["cleaning", " "], excluded_keywords=["catering"], location="Leeds"
        )
        connector = fake_connector("contracts_finder")

        _orchestrator(store, {"contracts_finder": connector}, window_days=3).run(profile.id, USER_ID)
        _orchestrator(store, {"contracts_finder": connector}).run(profile.id, USER_ID, window_days=14)

        (first_days, filters), (second_days, _) = connector.calls
        assert first_days == 3
        assert second_days == 14
        assert filters.keywords == ("cleaning",)
        assert filters.excluded_keywords == ("catering",)
        assert filters.location == "Leeds"
        assert filters.industry == "Facilities"

    @pytest.mark.parametrize("window_days", [0, -1])
    def test_rejects_invalid_window(self, store, profile, three_sources, db_session, window_days):
        """A zero or negative window is an error, never the default window."""
        with pytest.raises(ValueError):
            _orchestrator(store, three_sources).run(profile.id, USER_ID, window_days=window_days)

        assert all(connector.calls == [] for connector in three_sources.values())
        assert db_session.scalars(select(SearchRun)).all() == []

    def test_rejects_zero_default_window(self, store, profile, three_sources):
        with pytest.raises(ValueError):
            _orchestrator(store, three_sources, window_days=0).run(profile.id, USER_ID)
        assert three_sources["contracts_finder"].calls == []

    def test_existing_signals_are_not_new(self, store, profile, three_sources, db_session, make_raw):
        existing = normalize_signal(make_raw(url="https://example.com/cf/1"), "contracts_finder")
        db_session.add(
            Signal(
                user_id=USER_ID,
                identity_key=existing.identity_key,
                company_name=existing.company_name,
                signal_type=existing.signal_type,
                signal_title=existing.signal_title,
                source_type=existing.source_type,
                detected_at=existing.detected_at,
            )
        )
        db_session.commit()

        result = _orchestrator(store, three_sources).run(profile.id, USER_ID)

        assert result.new_signals == 3
        assert store.count_signals(USER_ID) == 4


class TestOwnership:
    """Profiles are only visible to their owner."""

    def test_other_users_profile_is_not_found(self, store, profile, three_sources, db_session):
        with pytest.raises(ProfileNotFoundError):
            _orchestrator(store, three_sources).run(profile.id, OTHER_USER_ID)

        assert all(connector.calls == [] for connector in three_sources.values())
        assert db_session.scalars(select(SearchRun)).all() == []
        assert db_session.scalars(select(Signal)).all() == []

    def test_missing_profile(self, store, three_sources):
        with pytest.raises(ProfileNotFoundError):
            _orchestrator(store, three_sources).run(uuid4(), USER_ID)

    def test_malformed_profile_id(self, store, three_sources):
        with pytest.raises(ProfileNotFoundError) as excinfo:
            _orchestrator(store, three_sources).run("not-a-uuid", USER_ID)
        assert excinfo.value.profile_id == "not-a-uuid"


class TestDeadline:
    """Slow connectors do not hold up the run."""

    def test_slow_connector_times_out(self, store, make_profile, make_raw, fake_connector):
        profile = make_profile(sources=["fast", "slow"])
        release = threading.Event()
        connectors = {
            "fast": fake_connector("contracts_finder", [make_raw()]),
            "slow": fake_connector("find_a_tender", [make_raw(source_type="find_a_tender")], block=release),
        }
        orchestrator = _orchestrator(store, connectors, deadline_seconds=0.2)

        try:
            started = time.monotonic()
            result = orchestrator.run(profile.id, USER_ID)
            elapsed = time.monotonic() - started
        finally:
            release.set()

        assert elapsed < 3
        assert result.new_signals == 1
        assert result.search_run.status == "completed_with_errors"
        assert result.search_run.errors == [{"source": "slow", "error": "timed out after 0.2s"}]
        assert store.count_signals(USER_ID) == 1


class ExplodingStore(SqlSignalStore):
    """Writes everything, then fails before commit."""

    def save_run(self, run, signals):
        with self._session() as session:
            session.add(run)
            session.flush()
            for signal in signals:
                signal.search_run_id = run.id
            session.add_all(list(signals))
            session.flush()
            raise RuntimeError("disk full")


class BlindStore(SqlSignalStore):
    """Never reports existing signals, so only the unique constraint prevents duplicates."""

    def find_existing(self, user_id, identity_keys):
        return []


class TestPersistence:
    """Signals and the run record are written together or not at all."""

    def test_failure_writes_nothing(self, session_factory, profile, three_sources, db_session):
        store = ExplodingStore(session_factory)

        with pytest.raises(PersistenceError) as excinfo:
            _orchestrator(store, three_sources).run(profile.id, USER_ID)

        assert isinstance(excinfo.value.__cause__, RuntimeError)
        assert db_session.scalars(select(SearchRun)).all() == []
        assert db_session.scalars(select(Signal)).all() == []

    def test_unique_constraint_rejects_whole_run(self, session_factory, profile, three_sources, db_session):
        _orchestrator(SqlSignalStore(session_factory), three_sources).run(profile.id, USER_ID)

        with pytest.raises(PersistenceError):
            _orchestrator(BlindStore(session_factory), three_sources).run(profile.id, USER_ID)

        assert len(db_session.scalars(select(SearchRun)).all()) == 1
        assert len(db_session.scalars(select(Signal)).all()) == 4


class TestEnabledSources:
    def test_dedupes_and_strips(self, make_profile):
        profile = make_profile(sources=["contracts_finder", " planning_data ", "contracts_finder", ""])
        assert enabled_sources(profile) == ["contracts_finder", "planning_data"]
