from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class ExpansionZoomResponse(BaseModel):
    clusterId: str
    expansionZoom: int


class ReloadResponse(BaseModel):
    enginesReset: int


class HealthResponse(BaseModel):
    status: str
    profile: str
    engine: str


class TelemetryRows(BaseModel):
    enabled: bool
    rows: list[dict[str, Any]]
