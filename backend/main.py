from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.clusters import router as clusters_router
from api.schemas import HealthResponse
from api.telemetry import router as telemetry_router
from engine import normalize_engine
from settings.logs import configure_logging
from settings.registry import get_settings

configure_logging()

app = FastAPI(title="rentmap")

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().corsOrigins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(clusters_router)
app.include_router(telemetry_router)


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    cfg = get_settings()
    return HealthResponse(
        status="ok", profile=cfg.id, engine=normalize_engine(cfg.data.engine)
    )
