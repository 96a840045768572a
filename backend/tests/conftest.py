import sys
from pathlib import Path

import pytest


# Ensure `backend/` is on sys.path so tests can import local modules
# like `clustering.*`, `geo.*`, and `main`.
BACKEND_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(BACKEND_ROOT))


@pytest.fixture(autouse=True)
def _isolated_runtime(tmp_path, monkeypatch):
    # Keep telemetry out of the repo and start every test from a clean settings/engine state.
    from engine import clear_engines
    from settings.registry import clear_settings_cache

    monkeypatch.setenv("RENTMAP_TELEMETRY_PATH", str(tmp_path / "telemetry.duckdb"))
    for name in (
        "RENTMAP_PROFILE",
        "RENTMAP_ENGINE",
        "RENTMAP_LISTINGS_PATH",
        "RENTMAP_CLUSTER_RADIUS",
        "RENTMAP_CLUSTER_MAX_ZOOM",
        "RENTMAP_CLUSTER_MIN_POINTS",
    ):
        monkeypatch.delenv(name, raising=False)
    clear_settings_cache()
    clear_engines()
    yield
    clear_settings_cache()
    clear_engines()
