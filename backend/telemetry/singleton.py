from __future__ import annotations

import logging
import threading

import duckdb

from telemetry.config import telemetry_enabled, telemetry_path
from telemetry.store import TelemetryStore

logger = logging.getLogger(__name__)

_STORE: TelemetryStore | None = None
_STORE_LOCK = threading.RLock()


def get_store() -> TelemetryStore | None:
    global _STORE
    if not telemetry_enabled():
        return None
    with _STORE_LOCK:
        path = telemetry_path()
        if _STORE is not None:
            # Reopen on the new path if env/config changed it (dev sessions, tests).
            if _STORE.path.resolve() == path.resolve():
                return _STORE
            try:
                _STORE.stop(timeout_s=2.0)
                _STORE.conn.close()
            except Exception:
                pass
            _STORE = None

        path.parent.mkdir(parents=True, exist_ok=True)
        conn = duckdb.connect(str(path))
        _STORE = TelemetryStore(path=path, conn=conn)
        _STORE.ensure_schema()
        _STORE.start()
        logger.info("Telemetry store opened at %s", path)
        return _STORE


def reset_store() -> None:
    global _STORE
    with _STORE_LOCK:
        if _STORE is not None:
            _STORE.reset()
            _STORE = None
        else:
            # Best-effort delete even if not opened yet.
            try:
                telemetry_path().unlink(missing_ok=True)
            except Exception:
                pass


def record_event(**kwargs) -> None:
    """
    Record one request event if telemetry is enabled. Never raises.
    """
    try:
        store = get_store()
        if store is not None:
            store.record(**kwargs)
    except Exception:
        logger.debug("Telemetry record failed", exc_info=True)
