from __future__ import annotations

import json
import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import duckdb

from telemetry.sql import (
    CREATE_EVENTS_TABLE_SQL,
    INSERT_EVENT_SQL,
    SLOWEST_SQL_TEMPLATE,
    SUMMARY_SQL_TEMPLATE,
)

logger = logging.getLogger(__name__)

_BATCH_SIZE = 250
_BATCH_SECONDS = 0.5


def _num(v: Any) -> float | None:
    if v is None or isinstance(v, bool):
        return None
    try:
        return float(v)
    except (TypeError, ValueError):
        return None


def _int(v: Any) -> int | None:
    f = _num(v)
    return None if f is None else int(f)


@dataclass(frozen=True)
class ClusterEvent:
    """
    One served map request, flattened into an `events` row.
    """

    ts_ms: int
    endpoint: str
    engine: str
    zoom: int
    bbox: tuple[float | None, float | None, float | None, float | None]
    total_ms: float | None
    feature_count: int | None
    cluster_count: int | None
    index_cache_hit: bool | None
    stats_json: str

    @classmethod
    def from_request(
        cls,
        *,
        endpoint: str,
        engine: str,
        zoom: int,
        bbox: tuple[float, float, float, float] | None,
        stats: dict[str, Any],
    ) -> "ClusterEvent":
        timings = stats.get("timingsMs") or {}
        hit = stats.get("indexCacheHit")
        return cls(
            ts_ms=int(time.time() * 1000),
            endpoint=str(endpoint),
            engine=str(engine),
            zoom=int(zoom),
            bbox=tuple(_num(v) for v in bbox) if bbox is not None else (None,) * 4,
            total_ms=_num(timings.get("total")),
            feature_count=_int(stats.get("featureCount")),
            cluster_count=_int(stats.get("clusterCount")),
            index_cache_hit=bool(hit) if hit is not None else None,
            stats_json=json.dumps(stats, ensure_ascii=False, default=str),
        )

    def row(self) -> tuple:
        return (
            self.ts_ms,
            self.endpoint,
            self.engine,
            self.zoom,
            *self.bbox,
            self.total_ms,
            self.feature_count,
            self.cluster_count,
            self.index_cache_hit,
            self.stats_json,
        )


@dataclass
class TelemetryStore:
    """
    Request telemetry in a local DuckDB file.

    `record` only enqueues; a single writer thread batches inserts so request
    handlers never wait on disk.
    """

    path: Path
    conn: duckdb.DuckDBPyConnection
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False)
    _q: "queue.Queue[ClusterEvent]" = field(default_factory=queue.Queue, repr=False)
    _stop: threading.Event = field(default_factory=threading.Event, repr=False)
    _written: threading.Condition = field(default_factory=threading.Condition, repr=False)
    _pending: int = field(default=0, repr=False)
    _worker: threading.Thread | None = field(default=None, repr=False)

    def ensure_schema(self) -> None:
        with self._lock:
            self.conn.execute(CREATE_EVENTS_TABLE_SQL)

    def start(self) -> None:
        if self._worker is not None:
            return
        self._stop.clear()
        self._worker = threading.Thread(
            target=self._run, name="telemetry-writer", daemon=True
        )
        self._worker.start()

    def stop(self, *, timeout_s: float = 2.0) -> None:
        """
        Stop the writer thread; events still queued are written on the way out.
        """
        self._stop.set()
        w = self._worker
        if w is not None and w.is_alive():
            w.join(timeout=timeout_s)
        self._worker = None

    def record(
        self,
        *,
        endpoint: str,
        engine: str,
        zoom: int,
        bbox: tuple[float, float, float, float] | None,
        stats: dict[str, Any],
    ) -> None:
        self.start()
        event = ClusterEvent.from_request(
            endpoint=endpoint, engine=engine, zoom=zoom, bbox=bbox, stats=stats
        )
        with self._written:
            self._pending += 1
        self._q.put_nowait(event)

    def flush(self, *, timeout_s: float = 2.0) -> bool:
        """
        Block until every recorded event is in the table. Returns False on timeout.
        """
        deadline = time.monotonic() + timeout_s
        with self._written:
            while self._pending > 0:
                left = deadline - time.monotonic()
                if left <= 0 or self._worker is None:
                    return False
                self._written.wait(timeout=left)
        return True

    def query(self, sql: str, params: list[Any] | None = None) -> list[tuple]:
        """
        Read through the writer's connection; DuckDB allows one process per file.
        """
        with self._lock:
            return self.conn.execute(sql, params or []).fetchall()

    def summary(
        self,
        *,
        engine: str | None = None,
        endpoint: str | None = None,
        since_ms: int | None = None,
    ) -> list[dict[str, Any]]:
        where, params = _filters(engine=engine, endpoint=endpoint)
        if since_ms is not None:
            where.append("ts_ms >= ?")
            params.append(int(since_ms))
        where_sql = f"WHERE {' AND '.join(where)}" if where else ""

        keys = (
            "engine",
            "endpoint",
            "n",
            "avgTotalMs",
            "p50TotalMs",
            "p95TotalMs",
            "avgFeatures",
            "avgClusters",
            "indexCacheHitRate",
        )
        out = []
        for row in self.query(SUMMARY_SQL_TEMPLATE.format(where_sql=where_sql), params):
            item = dict(zip(keys, row))
            item["n"] = int(item["n"])
            for k in keys[3:]:
                item[k] = _num(item[k])
            out.append(item)
        return out

    def slowest(
        self,
        *,
        engine: str | None = None,
        endpoint: str | None = None,
        limit: int = 25,
    ) -> list[dict[str, Any]]:
        where, params = _filters(engine=engine, endpoint=endpoint)
        params.append(max(1, min(200, int(limit))))
        and_sql = "".join(f" AND {w}" for w in where)

        out = []
        for (
            ts_ms,
            engine_v,
            endpoint_v,
            zoom,
            total_ms,
            feature_count,
            cluster_count,
            cache_hit,
            *bbox,
        ) in self.query(SLOWEST_SQL_TEMPLATE.format(and_sql=and_sql), params):
            out.append(
                {
                    "tsMs": int(ts_ms),
                    "engine": engine_v,
                    "endpoint": endpoint_v,
                    "zoom": zoom,
                    "totalMs": _num(total_ms),
                    "featureCount": feature_count,
                    "clusterCount": cluster_count,
                    "indexCacheHit": cache_hit,
                    "bbox": None if bbox[0] is None else list(bbox),
                }
            )
        return out

    def reset(self) -> None:
        # Writer first, so nothing touches the connection after close.
        self.stop(timeout_s=2.0)
        with self._lock:
            try:
                self.conn.close()
            except Exception:
                pass
            try:
                self.path.unlink(missing_ok=True)
            except OSError:
                logger.warning("Could not delete telemetry file %s", self.path)

    def _write(self, batch: list[ClusterEvent]) -> None:
        if not batch:
            return
        try:
            with self._lock:
                self.conn.executemany(INSERT_EVENT_SQL, [e.row() for e in batch])
                self.conn.execute("CHECKPOINT;")
        except Exception:
            logger.exception("Telemetry write failed; dropping %d events", len(batch))
        finally:
            with self._written:
                self._pending -= len(batch)
                self._written.notify_all()

    def _run(self) -> None:
        self.ensure_schema()
        batch: list[ClusterEvent] = []
        started = time.monotonic()
        while not self._stop.is_set():
            try:
                batch.append(self._q.get(timeout=0.1))
            except queue.Empty:
                pass
            if len(batch) >= _BATCH_SIZE or (
                batch and time.monotonic() - started >= _BATCH_SECONDS
            ):
                self._write(batch)
                batch = []
            if not batch:
                started = time.monotonic()

        while True:
            try:
                batch.append(self._q.get_nowait())
            except queue.Empty:
                break
        self._write(batch)


def _filters(*, engine: str | None, endpoint: str | None) -> tuple[list[str], list[Any]]:
    where: list[str] = []
    params: list[Any] = []
    if engine:
        where.append("engine = ?")
        params.append(engine)
    if endpoint:
        where.append("endpoint = ?")
        params.append(endpoint)
    return where, params
