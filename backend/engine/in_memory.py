from __future__ import annotations

import logging
import threading
from pathlib import Path

from clustering.errors import EmptyIndexError
from clustering.types import ClusterOptions
from engine.common import IndexCache, build_listing_index
from engine.types import IndexResult, ListingEngine
from geo.projection import Projection
from listings.filters import filter_listings, sort_newest_first
from listings.loaders import load_listings
from listings.types import Listing, ListingFilters

logger = logging.getLogger(__name__)


class InMemoryEngine(ListingEngine):
    """
    Loads the listings file into memory once, filters per request in Python and
    keeps one cluster index per filter set.
    """

    name = "in_memory"

    def __init__(self, path: Path | None):
        self.path = path
        self._lock = threading.RLock()
        self._all: list[Listing] | None = None
        self._indexes = IndexCache()

    def _base(self) -> list[Listing]:
        with self._lock:
            if self._all is None:
                if self.path is None or not self.path.exists():
                    raise EmptyIndexError(f"No listings file at {self.path}")
                self._all = sort_newest_first(load_listings(self.path))
                logger.info("Loaded %d listings from %s", len(self._all), self.path)
            return self._all

    def listings(self, filters: ListingFilters | None = None) -> list[Listing]:
        return filter_listings(self._base(), filters)

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
            self._all = None
        self._indexes.clear()
        logger.info("In-memory listings cache cleared (%s)", self.path)
