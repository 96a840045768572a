from __future__ import annotations

import logging
import threading
from pathlib import Path

import duckdb

from clustering.errors import EmptyIndexError
from clustering.types import ClusterOptions
from engine.common import IndexCache, build_listing_index, duckdb_threads
from engine.sql import (
    SOURCE_ROW_COLUMN,
    listing_where_sql,
    numbered_source_sql,
    order_sql,
    source_sql,
)
from engine.types import IndexResult, ListingEngine
from geo.projection import Projection
from listings.loaders import listing_from_record
from listings.types import Listing, ListingFilters

logger = logging.getLogger(__name__)


class DuckDBEngine(ListingEngine):
    """
    DuckDB-backed engine.

    Query-on-read: every (uncached) filter set is a SQL query straight against the
    listings file (JSON array / NDJSON, CSV or Parquet), so large exports never have
    to be loaded into Python as a whole.
    """

    name = "duckdb"

    def __init__(self, path: Path | None, *, threads: int | None = None):
        self.path = path
        self.threads = threads or duckdb_threads()
        self._local = threading.local()
        self._columns: set[str] | None = None
        self._lock = threading.RLock()
        self._indexes = IndexCache()

    def _conn(self) -> duckdb.DuckDBPyConnection:
        c = getattr(self._local, "conn", None)
        if c is None:
            c = duckdb.connect(database=":memory:", config={"threads": int(self.threads)})
            self._local.conn = c
        return c

    def _source(self) -> tuple[Path, str]:
        if self.path is None or not self.path.exists():
            raise EmptyIndexError(f"No listings file at {self.path}")
        return self.path, source_sql(self.path)

    def columns(self) -> set[str]:
        with self._lock:
            if self._columns is None:
                path, src = self._source()
                cur = self._conn().execute(f"SELECT * FROM {src} LIMIT 0", [str(path)])
                self._columns = {str(d[0]) for d in cur.description or []}
            return self._columns

    def listings(self, filters: ListingFilters | None = None) -> list[Listing]:
        path, src = self._source()
        cols = self.columns()
        where_sql, params = listing_where_sql(filters, cols)
        cur = self._conn().execute(
            f"""
            SELECT *
              FROM {numbered_source_sql(src)}
             {where_sql}
             {order_sql(cols)}
            """,
            [str(path), *params],
        )
        names = [str(d[0]) for d in cur.description or []]
        out: list[Listing] = []
        for row in cur.fetchall():
            record = dict(zip(names, row))
            position = int(record.pop(SOURCE_ROW_COLUMN))
            out.append(listing_from_record(record, index=position))
        return out

    def index(
        self,
        filters: ListingFilters,
        options: ClusterOptions,
        projection: Projection,
    ) -> IndexResult:
        key = (filters.cache_key(), options, projection)
        return self._indexes.get_or_build(
            key, lambda: build_listing_index(self.listings(filters), options, projection)
        )

    def reload(self) -> None:
        with self._lock:
            self._columns = None
        self._indexes.clear()
        logger.info("DuckDB listings caches cleared (%s)", self.path)
