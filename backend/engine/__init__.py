"""
Listing engines.

An engine produces the (filtered) listings for a request and the cluster index built
from them. The in-memory engine reads JSON/GeoJSON files; the DuckDB engine runs SQL
directly against JSON, CSV or Parquet exports.
"""

from __future__ import annotations

import threading
from pathlib import Path

from engine.types import ListingEngine

_ENGINES: dict[tuple[str, str], ListingEngine] = {}
_ENGINES_LOCK = threading.RLock()


def normalize_engine(name: str | None) -> str:
    n = (name or "in_memory").strip().lower()
    if n in {"duckdb", "in_memory"}:
        return n
    return "in_memory"


def get_engine(name: str | None, path: Path | None) -> ListingEngine:
    n = normalize_engine(name)
    key = (n, str(path) if path is not None else "")
    with _ENGINES_LOCK:
        eng = _ENGINES.get(key)
        if eng is None:
            if n == "duckdb":
                from engine.duckdb import DuckDBEngine

                eng = DuckDBEngine(path)
            else:
                from engine.in_memory import InMemoryEngine

                eng = InMemoryEngine(path)
            _ENGINES[key] = eng
        return eng


def reload_engines() -> int:
    """
    Drop loaded listings and built indexes of every engine. Returns how many were reset.
    """
    with _ENGINES_LOCK:
        engines = list(_ENGINES.values())
    for eng in engines:
        eng.reload()
    return len(engines)


def clear_engines() -> None:
    with _ENGINES_LOCK:
        _ENGINES.clear()
