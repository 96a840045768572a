"""
Zoom-dependent point clustering for the listings map.

Build once with `build_cluster_index(points)`, then ask the index what to draw for a
viewport with `get_clusters(bbox, zoom)`.
"""

from clustering.errors import (
    ClusteringError,
    EmptyIndexError,
    InvalidPointError,
    UnknownClusterError,
)
from clustering.index import GeoClusterIndex, build_cluster_index, validate_point
from clustering.types import ClusterFeature, ClusterOptions, GeoPoint, is_cluster

__all__ = [
    "ClusterFeature",
    "ClusterOptions",
    "ClusteringError",
    "EmptyIndexError",
    "GeoClusterIndex",
    "GeoPoint",
    "InvalidPointError",
    "UnknownClusterError",
    "build_cluster_index",
    "is_cluster",
    "validate_point",
]
