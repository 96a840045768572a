from __future__ import annotations

import os
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from clustering.index import GeoClusterIndex, build_cluster_index
from clustering.types import ClusterOptions
from engine.types import IndexResult
from geo.projection import Projection
from listings.filters import listing_points
from listings.types import Listing


def duckdb_threads() -> int:
    raw = (os.getenv("RENTMAP_DUCKDB_THREADS") or "").strip()
    if raw:
        try:
            return max(1, int(raw))
        except Exception:
            pass
    return max(1, int(os.cpu_count() or 1))


def bounded_cache_put(cache: dict, key, value, *, max_items: int) -> None:
    cache[key] = value
    if len(cache) > max_items:
        try:
            oldest = next(iter(cache.keys()))
            if oldest != key:
                cache.pop(oldest, None)
        except Exception:
            pass


def build_listing_index(
    listings: Iterable[Listing], options: ClusterOptions, projection: Projection
) -> GeoClusterIndex:
    return build_cluster_index(
        listing_points(listings), options=options, projection=projection
    )


@dataclass
class IndexCache:
    """
    Built indexes keyed by (filters, options, projection).

    Indexes are immutable, so a cleared cache never invalidates an index a request is
    still reading; the next request simply builds a fresh one. An index whose build
    started before a `clear()` is returned to its caller but never cached.
    """

    max_items: int = 32
    _items: dict[Any, GeoClusterIndex] = field(default_factory=dict, repr=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False)
    _generation: int = field(default=0, repr=False)

    def get_or_build(self, key: Any, build: Callable[[], GeoClusterIndex]) -> IndexResult:
        with self._lock:
            cached = self._items.get(key)
            generation = self._generation
        if cached is not None:
            return IndexResult(index=cached, cache_hit=True, build_ms=0.0)

        t0 = time.perf_counter()
        index = build()
        build_ms = (time.perf_counter() - t0) * 1000.0
        with self._lock:
            if generation == self._generation:
                bounded_cache_put(self._items, key, index, max_items=self.max_items)
        return IndexResult(index=index, cache_hit=False, build_ms=build_ms)

    def clear(self) -> None:
        with self._lock:
            self._generation += 1
            self._items.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
