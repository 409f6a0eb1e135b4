"""HTTP interface: search trigger, tender feed preview, run history and export."""

from __future__ import annotations

from dataclasses import asdict
from functools import lru_cache
from typing import Any

import structlog
from fastapi import APIRouter, Depends, FastAPI, Header, Query, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from leadsignals import __version__
from leadsignals.config import settings
from leadsignals.db import SessionLocal
from leadsignals.export import export_signals
from leadsignals.ingest.normalize import normalize_signal
from leadsignals.ingest.signals import ProfileFilters
from leadsignals.models import SearchRun
from leadsignals.search.errors import PersistenceError, ProfileNotFoundError, RunNotFoundError
from leadsignals.search.orchestrator import SearchOrchestrator
from leadsignals.sources.base import SourceConnector
from leadsignals.sources.registry import build_registry
from leadsignals.store import SignalStore, SqlSignalStore

logger = structlog.get_logger()

router = APIRouter(prefix="/api")


class ApiError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class RunSearchRequest(BaseModel):
    profileId: str | None = None


@lru_cache(maxsize=1)
def _default_store() -> SqlSignalStore:
    return SqlSignalStore(SessionLocal)


def get_store() -> SignalStore:
    return _default_store()


def get_connectors() -> dict[str, SourceConnector]:
    return build_registry()


def get_orchestrator(
    store: SignalStore = Depends(get_store),
    connectors: dict[str, SourceConnector] = Depends(get_connectors),
) -> SearchOrchestrator:
    return SearchOrchestrator(store, connectors)


def current_user(user_id: str | None = Header(None, alias=settings.api_user_header)) -> str:
    """Identity supplied by the upstream auth proxy."""
    if not user_id or not user_id.strip():
        raise ApiError(status.HTTP_401_UNAUTHORIZED, "Unauthorized")
    return user_id.strip()


def run_to_dict(run: SearchRun) -> dict[str, Any]:
    return {
        "id": str(run.id),
        "search_profile_id": str(run.search_profile_id) if run.search_profile_id else None,
        "run_at": run.run_at.isoformat() if run.run_at else None,
        "window_days": run.window_days,
        "sources_searched": list(run.sources_searched or []),
        "signals_found": run.signals_found,
        "new_signals": run.new_signals,
        "errors": list(run.errors or []),
        "status": run.status,
    }


@router.post("/search/run")
def run_search(
    payload: RunSearchRequest | None = None,
    user_id: str = Depends(current_user),
    orchestrator: SearchOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    if payload is None or not payload.profileId:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "profileId is required")
    try:
        result = orchestrator.run(payload.profileId, user_id)
    except ProfileNotFoundError as exc:
        raise ApiError(status.HTTP_404_NOT_FOUND, "Search profile not found") from exc
    except PersistenceError as exc:
        logger.error("Search run failed", profile_id=payload.profileId, error=str(exc))
        raise ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, "Search failed") from exc

    run = result.search_run
    return {
        "success": True,
        "newSignals": result.new_signals,
        "run_id": str(run.id),
        "status": run.status,
        "errors": list(run.errors or []),
    }


@router.get("/labs/tenders")
def preview_tenders(
    days_back: int = Query(7, alias="daysBack", gt=0),
    source: str = Query("contracts_finder"),
    connectors: dict[str, SourceConnector] = Depends(get_connectors),
) -> dict[str, Any]:
    """Pull the source's recent awards directly, without saving anything."""
    connector = connectors.get(source)
    if connector is None:
        raise ApiError(status.HTTP_400_BAD_REQUEST, f"Unknown source: {source}")

    result = connector.fetch(days_back, ProfileFilters())
    signals = []
    for raw in result.signals:
        normalized = normalize_signal(raw, raw.source_type)
        item = asdict(normalized)
        item["detected_at"] = normalized.detected_at.isoformat()
        signals.append(item)
    return {"signals": signals, "count": len(signals), "error": result.error}


@router.get("/search/history")
def search_history(
    profile_id: str | None = Query(None),
    limit: int = Query(20, ge=1, le=100),
    user_id: str = Depends(current_user),
    store: SignalStore = Depends(get_store),
) -> list[dict[str, Any]]:
    return [run_to_dict(run) for run in store.list_runs(user_id, profile_id=profile_id, limit=limit)]


@router.get("/signals/export")
def export(
    fmt: str = Query("csv", alias="format", pattern="^(csv|json)$"),
    signal_type: str | None = Query(None),
    search_run_id: str | None = Query(None),
    ids: str | None = Query(None, description="Comma-separated signal ids."),
    user_id: str = Depends(current_user),
    store: SignalStore = Depends(get_store),
) -> Response:
    id_list = [part.strip() for part in ids.split(",") if part.strip()] if ids else None
    try:
        exported = export_signals(
            store, user_id, fmt, signal_type=signal_type or None, search_run_id=search_run_id or None, ids=id_list
        )
    except RunNotFoundError as exc:
        raise ApiError(status.HTTP_404_NOT_FOUND, "Search run not found") from exc
    return Response(
        content=exported.content,
        media_type=exported.content_type,
        headers={"Content-Disposition": f"attachment; filename={exported.filename}"},
    )


def create_app() -> FastAPI:
    app = FastAPI(title="Lead Signals", version=__version__)

    @app.exception_handler(ApiError)
    async def _api_error(request: Request, exc: ApiError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    app.include_router(router)
    return app


app = create_app()
