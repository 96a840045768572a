from __future__ import annotations


class ClusteringError(Exception):
    """Base class for cluster index errors."""


class InvalidPointError(ClusteringError):
    """
    A point cannot be indexed (non-numeric / non-finite / out-of-range coordinates,
    or an id already used by an earlier point).

    Raised by `validate_point`; `build_cluster_index` catches it and skips the point.
    """

    def __init__(self, point_id: str, reason: str):
        super().__init__(f"invalid point {point_id!r}: {reason}")
        self.point_id = point_id
        self.reason = reason


class UnknownClusterError(ClusteringError, LookupError):
    """The cluster id was not produced by this index (stale, foreign or malformed)."""

    def __init__(self, cluster_id: str):
        super().__init__(f"unknown cluster id {cluster_id!r}")
        self.cluster_id = cluster_id


class EmptyIndexError(ClusteringError):
    """No index has been built yet (no listing source available)."""
