from __future__ import annotations

from fastapi import APIRouter, Query

from api.schemas import TelemetryRows
from telemetry.singleton import get_store, reset_store

router = APIRouter(prefix="/telemetry", tags=["telemetry"])


@router.get("/summary", response_model=TelemetryRows)
def telemetry_summary(
    engine: str | None = None,
    endpoint: str | None = None,
    sinceMs: int | None = None,
) -> TelemetryRows:
    store = get_store()
    if store is None:
        return TelemetryRows(enabled=False, rows=[])
    return TelemetryRows(
        enabled=True,
        rows=store.summary(engine=engine, endpoint=endpoint, since_ms=sinceMs),
    )


@router.get("/slowest", response_model=TelemetryRows)
def telemetry_slowest(
    engine: str | None = None,
    endpoint: str | None = None,
    limit: int = Query(default=25, ge=1, le=200),
) -> TelemetryRows:
    store = get_store()
    if store is None:
        return TelemetryRows(enabled=False, rows=[])
    return TelemetryRows(
        enabled=True, rows=store.slowest(engine=engine, endpoint=endpoint, limit=limit)
    )


@router.post("/reset", response_model=TelemetryRows)
def telemetry_reset() -> TelemetryRows:
    reset_store()
    return TelemetryRows(enabled=get_store() is not None, rows=[])
