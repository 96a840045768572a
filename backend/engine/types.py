from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from clustering.index import GeoClusterIndex
from clustering.types import ClusterOptions
from geo.projection import Projection
from listings.types import Listing, ListingFilters


@dataclass(frozen=True)
class IndexResult:
    """
    What an engine returns for an index request.
    """

    index: GeoClusterIndex
    cache_hit: bool
    build_ms: float


class ListingEngine(Protocol):
    """
    Listing source interface.

    - InMemoryEngine: loads a JSON/GeoJSON file once and filters in Python
    - DuckDBEngine: query-on-read SQL over JSON/CSV/Parquet files
    """

    name: str

    def listings(self, filters: ListingFilters | None = None) -> list[Listing]: ...

    def index(
        self,
        filters: ListingFilters,
        options: ClusterOptions,
        projection: Projection,
    ) -> IndexResult: ...

    def reload(self) -> None: ...
