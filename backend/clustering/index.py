from __future__ import annotations

import hashlib
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from shapely.geometry import Point
from shapely.geometry import box as shapely_box
from shapely.strtree import STRtree

from clustering.errors import InvalidPointError, UnknownClusterError
from clustering.types import ClusterFeature, ClusterOptions, GeoPoint
from geo.aoi import BBox, viewport_ranges
from geo.projection import Projection, WebMercatorProjection
from geo.tiles import tile_bbox_4326

logger = logging.getLogger(__name__)

# Unit-square padding for range queries, so zero-area boxes still hit the tree.
_QUERY_PAD = 1e-9


@dataclass(frozen=True)
class _Node:
    x: float
    y: float
    lon: float
    lat: float
    # Indices into GeoClusterIndex.points, ascending.
    members: tuple[int, ...]
    # Node indices in the level one zoom deeper; empty on the raw-point level.
    children: tuple[int, ...] = ()
    cluster_id: str | None = None

    @property
    def count(self) -> int:
        return len(self.members)


@dataclass(frozen=True)
class _Level:
    zoom: int
    nodes: tuple[_Node, ...]
    tree: STRtree = field(repr=False)
    by_cluster_id: dict[str, int] = field(default_factory=dict, repr=False)

    def near(self, x: float, y: float, r: float) -> list[int]:
        """
        Node indices within `r` (inclusive) of (x, y), ascending.
        """
        idxs = _hits(self.tree, shapely_box(x - r, y - r, x + r, y + r))
        r2 = r * r
        out = [
            i
            for i in idxs
            if (self.nodes[i].x - x) ** 2 + (self.nodes[i].y - y) ** 2 <= r2
        ]
        out.sort()
        return out

    def within(self, bbox: BBox, projection: Projection) -> list[int]:
        x0, y0 = projection.project(bbox.min_lon, bbox.max_lat)
        x1, y1 = projection.project(bbox.max_lon, bbox.min_lat)
        query = shapely_box(
            min(x0, x1) - _QUERY_PAD,
            min(y0, y1) - _QUERY_PAD,
            max(x0, x1) + _QUERY_PAD,
            max(y0, y1) + _QUERY_PAD,
        )
        idxs = _hits(self.tree, query)
        # The tree works on projected envelopes; the final test is exact, in degrees.
        return sorted(
            i for i in idxs if bbox.contains(self.nodes[i].lon, self.nodes[i].lat)
        )


@dataclass(frozen=True)
class GeoClusterIndex:
    """
    Zoom-hierarchical point clusters over a fixed set of points.

    Notes:
    - Built once by `build_cluster_index`; never mutated afterwards. Rebuild on data change.
    - One level per zoom in min_zoom..max_zoom + 1. The last level holds the raw points,
      every lower level merges the one above it, so clusters only merge as zoom decreases.
    - Every valid point is in exactly one node of every level.
    """

    options: ClusterOptions
    projection: Projection
    points: tuple[GeoPoint, ...]
    dropped_points: int
    _levels: tuple[_Level, ...] = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.points)

    @property
    def min_zoom(self) -> int:
        return self.options.min_zoom

    @property
    def max_zoom(self) -> int:
        return self.options.max_zoom

    def clamp_zoom(self, zoom: Any) -> int:
        lo = self.options.min_zoom
        hi = self.options.max_zoom + 1
        try:
            z = float(zoom)
        except (TypeError, ValueError):
            return lo
        if math.isnan(z):
            return lo
        if math.isinf(z):
            return hi if z > 0 else lo
        return max(lo, min(hi, int(math.floor(z))))

    def get_clusters(
        self, bbox: BBox | Sequence[float], zoom: Any
    ) -> list[ClusterFeature]:
        """
        Features (aggregates and leaves) of `zoom` whose location lies inside `bbox`.
        An aggregate's location is the mean of its members, so a viewport that cuts
        through an aggregate sees it only if that mean is inside.

        `bbox` is (west, south, east, north) in degrees; antimeridian viewports
        (west > east) are supported. Output order is not part of the contract.
        """
        z = self.clamp_zoom(zoom)
        level = self._level(z)
        if not level.nodes:
            return []

        if isinstance(bbox, BBox):
            west, south, east, north = bbox.as_tuple()
        else:
            west, south, east, north = bbox

        seen: set[int] = set()
        out: list[ClusterFeature] = []
        for rng in viewport_ranges(west, south, east, north):
            for i in level.within(rng, self.projection):
                if i in seen:
                    continue
                seen.add(i)
                out.append(self._feature(level.nodes[i], z))
        return out

    def get_tile(self, z: int, x: int, y: int) -> list[ClusterFeature]:
        """
        Features of zoom `z` inside slippy tile z/x/y.
        """
        tb = tile_bbox_4326(z, x, y)
        return self.get_clusters(tb, z)

    def get_children(self, cluster_id: str) -> list[ClusterFeature]:
        """
        The features one zoom deeper that make up the cluster.
        """
        level, node = self._find(cluster_id)
        child_level = self._level(level.zoom + 1)
        return [
            self._feature(child_level.nodes[c], child_level.zoom) for c in node.children
        ]

    def get_leaves(
        self, cluster_id: str, *, limit: int | None = None, offset: int = 0
    ) -> list[GeoPoint]:
        """
        Points inside the cluster, in input order.
        """
        _level, node = self._find(cluster_id)
        start = max(0, int(offset))
        if limit is None:
            members = node.members[start:]
        else:
            members = node.members[start : start + max(0, int(limit))]
        return [self.points[m] for m in members]

    def get_cluster_expansion_zoom(self, cluster_id: str) -> int:
        """
        Smallest zoom at which the cluster's points are no longer a single feature.
        """
        level, node = self._find(cluster_id)
        zoom = level.zoom
        while zoom <= self.options.max_zoom:
            if len(node.children) != 1:
                return zoom + 1
            zoom += 1
            node = self._level(zoom).nodes[node.children[0]]
        return self.options.max_zoom + 1

    def _level(self, zoom: int) -> _Level:
        return self._levels[zoom - self.options.min_zoom]

    def _find(self, cluster_id: str) -> tuple[_Level, _Node]:
        cid = str(cluster_id or "")
        zoom_s, sep, _digest = cid.partition("-")
        if not sep or not zoom_s.isdigit():
            raise UnknownClusterError(cid)
        zoom = int(zoom_s)
        if zoom < self.options.min_zoom or zoom > self.options.max_zoom:
            raise UnknownClusterError(cid)
        level = self._level(zoom)
        idx = level.by_cluster_id.get(cid)
        if idx is None:
            raise UnknownClusterError(cid)
        return level, level.nodes[idx]

    def _feature(self, node: _Node, zoom: int) -> ClusterFeature:
        if node.cluster_id is None:
            p = self.points[node.members[0]]
            return ClusterFeature(
                id=p.id,
                lon=p.lon,
                lat=p.lat,
                zoom=zoom,
                is_cluster=False,
                point_count=1,
                point=p,
            )
        return ClusterFeature(
            id=node.cluster_id,
            lon=node.lon,
            lat=node.lat,
            zoom=zoom,
            is_cluster=True,
            point_count=node.count,
            cluster_id=node.cluster_id,
        )


def validate_point(point: GeoPoint, *, seen_ids: set[str] | None = None) -> GeoPoint:
    """
    Return `point` with float coordinates and a string id, or raise InvalidPointError.
    """
    pid = str(point.id)
    try:
        lat = float(point.lat)
        lon = float(point.lon)
    except (TypeError, ValueError):
        raise InvalidPointError(pid, "coordinates are not numbers") from None
    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise InvalidPointError(pid, "coordinates are not finite")
    if not -90.0 <= lat <= 90.0:
        raise InvalidPointError(pid, f"latitude {lat} out of range")
    if not -180.0 <= lon <= 180.0:
        raise InvalidPointError(pid, f"longitude {lon} out of range")
    if seen_ids is not None and pid in seen_ids:
        raise InvalidPointError(pid, "duplicate id")
    if pid == point.id and lat == point.lat and lon == point.lon:
        return point
    return GeoPoint(id=pid, lat=lat, lon=lon, payload=point.payload)


def build_cluster_index(
    points: Iterable[GeoPoint],
    *,
    options: ClusterOptions | None = None,
    projection: Projection | None = None,
) -> GeoClusterIndex:
    opts = options or ClusterOptions()
    proj = projection or WebMercatorProjection()

    valid: list[GeoPoint] = []
    seen: set[str] = set()
    dropped = 0
    for p in points:
        try:
            point = validate_point(p, seen_ids=seen)
        except InvalidPointError as e:
            dropped += 1
            logger.warning("Skipping point: %s", e)
            continue
        seen.add(point.id)
        valid.append(point)

    pts = tuple(valid)
    raw_nodes: list[_Node] = []
    for i, p in enumerate(pts):
        x, y = proj.project(p.lon, p.lat)
        raw_nodes.append(_Node(x=x, y=y, lon=p.lon, lat=p.lat, members=(i,)))

    levels: list[_Level] = [
        _make_level(opts.max_zoom + 1, raw_nodes, node_size=opts.node_size)
    ]
    for zoom in range(opts.max_zoom, opts.min_zoom - 1, -1):
        nodes = _cluster_level(levels[-1], zoom, pts, opts, proj)
        levels.append(_make_level(zoom, nodes, node_size=opts.node_size))
    levels.reverse()

    logger.info(
        "Built cluster index: %d points (%d dropped), zoom %d..%d, %d nodes at min zoom",
        len(pts),
        dropped,
        opts.min_zoom,
        opts.max_zoom,
        len(levels[0].nodes),
    )
    return GeoClusterIndex(
        options=opts,
        projection=proj,
        points=pts,
        dropped_points=dropped,
        _levels=tuple(levels),
    )


def _make_level(zoom: int, nodes: list[_Node], *, node_size: int) -> _Level:
    geoms = [Point(n.x, n.y) for n in nodes]
    tree = STRtree(geoms, node_capacity=node_size) if geoms else STRtree([])
    by_id = {n.cluster_id: i for i, n in enumerate(nodes) if n.cluster_id is not None}
    return _Level(zoom=zoom, nodes=tuple(nodes), tree=tree, by_cluster_id=by_id)


def _cluster_level(
    prev: _Level,
    zoom: int,
    points: tuple[GeoPoint, ...],
    opts: ClusterOptions,
    proj: Projection,
) -> list[_Node]:
    """
    Greedy merge of the level one zoom deeper.

    Nodes are visited in order; each unclaimed node claims every unclaimed node within
    the zoom's radius (ascending index, so ties go to the lowest index). Enough points
    form a cluster at the members' mean location; otherwise the group is carried over
    one by one.
    """
    r = opts.radius / (opts.extent * 2**zoom)
    claimed = [False] * len(prev.nodes)
    out: list[_Node] = []

    for i, node in enumerate(prev.nodes):
        if claimed[i]:
            continue
        claimed[i] = True
        neighbors = [j for j in prev.near(node.x, node.y, r) if not claimed[j]]
        count = node.count + sum(prev.nodes[j].count for j in neighbors)

        if neighbors and count >= opts.min_points:
            for j in neighbors:
                claimed[j] = True
            group = (i, *neighbors)
            members = tuple(sorted(m for k in group for m in prev.nodes[k].members))
            out.append(_merged(zoom, members, group, points, proj))
            continue

        out.append(_carried(zoom, node, i, points))
        for j in neighbors:
            claimed[j] = True
            out.append(_carried(zoom, prev.nodes[j], j, points))

    return out


def _merged(
    zoom: int,
    members: tuple[int, ...],
    children: tuple[int, ...],
    points: tuple[GeoPoint, ...],
    proj: Projection,
) -> _Node:
    n = len(members)
    lon = sum(points[m].lon for m in members) / n
    lat = sum(points[m].lat for m in members) / n
    x, y = proj.project(lon, lat)
    return _Node(
        x=x,
        y=y,
        lon=lon,
        lat=lat,
        members=members,
        children=children,
        cluster_id=_cluster_id(zoom, members, points),
    )


def _carried(
    zoom: int, node: _Node, index: int, points: tuple[GeoPoint, ...]
) -> _Node:
    cid = _cluster_id(zoom, node.members, points) if node.count > 1 else None
    return _Node(
        x=node.x,
        y=node.y,
        lon=node.lon,
        lat=node.lat,
        members=node.members,
        children=(index,),
        cluster_id=cid,
    )


def _cluster_id(
    zoom: int, members: tuple[int, ...], points: tuple[GeoPoint, ...]
) -> str:
    # `<zoom>-<digest of the member id set>`: stable across queries, explicit about zoom.
    h = hashlib.sha1(str(zoom).encode("utf-8"))
    for pid in sorted(points[m].id for m in members):
        h.update(b"\x1f")
        h.update(pid.encode("utf-8"))
    return f"{zoom}-{h.hexdigest()[:16]}"


def _hits(tree: STRtree, geom) -> list[int]:
    return tree.query(geom).tolist()
