"""Search run orchestration: fan out to connectors, normalize, dedupe, persist."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID

import structlog

from leadsignals.config import settings
from leadsignals.db import SessionLocal
from leadsignals.ingest.dedupe import dedupe
from leadsignals.ingest.normalize import normalize_signal
from leadsignals.ingest.signals import NormalizedSignal, ProfileFilters, RawSignal
from leadsignals.models import RunStatus, SearchProfile, SearchRun, Signal
from leadsignals.search.errors import PersistenceError, ProfileNotFoundError
from leadsignals.sources.base import ConnectorResult, SourceConnector
from leadsignals.sources.registry import build_registry
from leadsignals.store import SignalStore, SqlSignalStore

logger = structlog.get_logger()


@dataclass(frozen=True)
class SourceOutcome:
    source_type: str
    signals: list[RawSignal] = field(default_factory=list)
    error: str | None = None


@dataclass(frozen=True)
class RunResult:
    new_signals: int
    search_run: SearchRun


def _utcnow() -> datetime:
    return datetime.now(UTC)


def enabled_sources(profile: SearchProfile) -> list[str]:
    """Enabled source types in profile order, without repeats."""
    seen: list[str] = []
    for source in profile.sources or []:
        name = str(source).strip()
        if name and name not in seen:
            seen.append(name)
    return seen


def run_status(outcomes: Sequence[SourceOutcome]) -> RunStatus:
    failed = [outcome for outcome in outcomes if outcome.error]
    if not failed:
        return RunStatus.COMPLETED
    if len(failed) == len(outcomes) and not any(outcome.signals for outcome in outcomes):
        return RunStatus.FAILED
    return RunStatus.COMPLETED_WITH_ERRORS


class SearchOrchestrator:
    """Runs one search profile against its enabled connectors.

    Connectors execute concurrently on a thread pool and only return data; the
    orchestrator is the single place where results are merged and written.
    Connectors still running when the deadline passes are reported as timed
    out and whatever they return later is discarded.
    """

    def __init__(
        self,
        store: SignalStore,
        connectors: Mapping[str, SourceConnector],
        *,
        window_days: int | None = None,
        deadline_seconds: float | None = None,
        max_workers: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._store = store
        self._connectors = dict(connectors)
        self._window_days = window_days if window_days is not None else settings.search_window_days
        self._deadline_seconds = deadline_seconds if deadline_seconds is not None else settings.search_deadline_seconds
        self._max_workers = max_workers or settings.search_max_workers
        self._clock = clock

    def run(self, profile_id: str | UUID, user_id: str, *, window_days: int | None = None) -> RunResult:
        profile = self._store.get_profile(profile_id, user_id)
        if profile is None:
            logger.warning("Search profile not found", profile_id=str(profile_id), user_id=user_id)
            raise ProfileNotFoundError(profile_id)

        days = window_days if window_days is not None else self._window_days
        if days < 1:
            raise ValueError(f"window_days must be >= 1, got {days}")

        log = logger.bind(profile_id=str(profile.id), user_id=user_id)
        sources = enabled_sources(profile)
        filters = ProfileFilters.from_profile(profile)
        log.info("Starting search run", sources=sources, window_days=days)

        outcomes = self.collect(sources, days, filters)
        candidates, normalize_errors = self._normalize(outcomes)

        try:
            existing = self._store.find_existing(user_id, [c.identity_key for c in candidates])
        except Exception as exc:
            log.exception("Loading existing signals failed")
            raise PersistenceError("Could not load existing signals") from exc

        fresh = dedupe(candidates, existing)
        errors = [{"source": o.source_type, "error": o.error} for o in outcomes if o.error] + normalize_errors
        status = run_status(outcomes)
        if normalize_errors and status is RunStatus.COMPLETED:
            status = RunStatus.COMPLETED_WITH_ERRORS

        run = SearchRun(
            search_profile_id=profile.id,
            user_id=user_id,
            run_at=self._clock(),
            window_days=days,
            sources_searched=sources,
            signals_found=len(candidates),
            new_signals=len(fresh),
            errors=errors,
            status=status.value,
        )
        rows = [self._to_row(signal, user_id) for signal in fresh]

        try:
            saved = self._store.save_run(run, rows)
        except Exception as exc:
            log.exception("Persisting search run failed", new_signals=len(rows))
            raise PersistenceError("Could not save search results") from exc

        log.info(
            "Search run complete",
            run_id=str(saved.id),
            status=status.value,
            found=len(candidates),
            new=len(fresh),
            errors=len(errors),
        )
        return RunResult(new_signals=len(rows), search_run=saved)

    def collect(self, sources: Sequence[str], window_days: int, filters: ProfileFilters) -> list[SourceOutcome]:
        """Fetch from every source concurrently. Results come back in ``sources`` order."""
        outcomes: dict[str, SourceOutcome] = {}
        runnable: dict[str, SourceConnector] = {}
        for source in sources:
            connector = self._connectors.get(source)
            if connector is None:
                logger.warning("Unknown source type", source=source)
                outcomes[source] = SourceOutcome(source, error="unknown source")
            else:
                runnable[source] = connector

        if runnable:
            outcomes.update(self._fan_out(runnable, window_days, filters))
        return [outcomes[source] for source in sources]

    def _fan_out(
        self, runnable: Mapping[str, SourceConnector], window_days: int, filters: ProfileFilters
    ) -> dict[str, SourceOutcome]:
        outcomes: dict[str, SourceOutcome] = {}
        executor = ThreadPoolExecutor(
            max_workers=min(self._max_workers, len(runnable)),
            thread_name_prefix="connector",
        )
        try:
            futures: dict[Future[ConnectorResult], str] = {
                executor.submit(connector.fetch, window_days, filters): source
                for source, connector in runnable.items()
            }
            done, _ = wait(futures, timeout=self._deadline_seconds)
            for future, source in futures.items():
                if future in done:
                    outcomes[source] = self._outcome(source, future)
                else:
                    future.cancel()
                    logger.warning("Connector timed out", source=source, deadline_seconds=self._deadline_seconds)
                    outcomes[source] = SourceOutcome(source, error=f"timed out after {self._deadline_seconds:g}s")
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return outcomes

    def _outcome(self, source: str, future: Future[ConnectorResult]) -> SourceOutcome:
        try:
            result = future.result()
        except Exception as exc:
            logger.error("Connector raised", source=source, error=str(exc))
            return SourceOutcome(source, error=f"Connector failed: {exc}")
        if result.error:
            logger.warning("Connector reported error", source=source, error=result.error, signals=len(result.signals))
        return SourceOutcome(source, signals=list(result.signals), error=result.error)

    def _normalize(self, outcomes: Sequence[SourceOutcome]) -> tuple[list[NormalizedSignal], list[dict[str, str]]]:
        candidates: list[NormalizedSignal] = []
        errors: list[dict[str, str]] = []
        for outcome in outcomes:
            dropped = 0
            for raw in outcome.signals:
                try:
                    candidates.append(normalize_signal(raw, raw.source_type or outcome.source_type))
                except (TypeError, ValueError, AttributeError) as exc:
                    dropped += 1
                    logger.warning(
                        "Normalization failed", source=outcome.source_type, ref=raw.source_ref, error=str(exc)
                    )
            if dropped:
                errors.append({"source": outcome.source_type, "error": f"Dropped {dropped} unnormalizable signal(s)"})
        return candidates, errors

    @staticmethod
    def _to_row(signal: NormalizedSignal, user_id: str) -> Signal:
        return Signal(
            user_id=user_id,
            identity_key=signal.identity_key,
            company_name=signal.company_name,
            company_domain=signal.company_domain,
            signal_type=signal.signal_type,
            signal_title=signal.signal_title,
            signal_detail=signal.signal_detail,
            signal_url=signal.signal_url,
            location=signal.location,
            industry=signal.industry,
            source_type=signal.source_type,
            detected_at=signal.detected_at,
            is_new=True,
        )


def build_orchestrator() -> SearchOrchestrator:
    """Orchestrator wired to the configured database and the built-in connectors."""
    return SearchOrchestrator(SqlSignalStore(SessionLocal), build_registry())
