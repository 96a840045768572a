from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class GeoPoint:
    id: str
    lat: float
    lon: float
    # Opaque caller payload (a listing record for the map view).
    payload: Any = None


@dataclass(frozen=True)
class ClusterOptions:
    """
    Clustering parameters.

    radius is in screen pixels at tile `extent`; zoom levels min_zoom..max_zoom are
    clustered, max_zoom + 1 always holds the raw points.
    """

    radius: float = 75.0
    min_points: int = 2
    min_zoom: int = 0
    max_zoom: int = 16
    extent: int = 512
    # STRtree node capacity per level.
    node_size: int = 64

    def __post_init__(self) -> None:
        if not self.radius > 0:
            raise ValueError(f"radius must be > 0, got {self.radius}")
        if self.min_points < 1:
            raise ValueError(f"min_points must be >= 1, got {self.min_points}")
        if self.min_zoom < 0 or self.min_zoom > self.max_zoom:
            raise ValueError(
                f"expected 0 <= min_zoom <= max_zoom, got {self.min_zoom}..{self.max_zoom}"
            )
        if self.max_zoom > 30:
            raise ValueError(f"max_zoom must be <= 30, got {self.max_zoom}")
        if self.extent <= 0:
            raise ValueError(f"extent must be > 0, got {self.extent}")
        if self.node_size < 2:
            raise ValueError(f"node_size must be >= 2, got {self.node_size}")


@dataclass(frozen=True)
class ClusterFeature:
    """
    One thing to draw on the map: either a single point (leaf) or an aggregate.

    Aggregates carry a `cluster_id` that is only meaningful for this index; it embeds
    the zoom that produced it, so it stays the same across repeated queries.
    """

    id: str
    lon: float
    lat: float
    zoom: int
    is_cluster: bool
    point_count: int
    cluster_id: str | None = None
    point: GeoPoint | None = None

    @property
    def point_count_abbreviated(self) -> str:
        return abbreviate_count(self.point_count)


def abbreviate_count(count: int) -> str:
    if count >= 10_000:
        return f"{round(count / 1000)}k"
    if count >= 1000:
        return f"{round(count / 100) / 10:g}k"
    return str(count)


def is_cluster(feature: ClusterFeature) -> bool:
    return bool(feature.is_cluster)
