from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class BBox:
    """
    WGS84 bounding box in lon/lat degrees.

    Convention used throughout this repo:
    - minLon, minLat, maxLon, maxLat (== west, south, east, north)
    """

    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float

    @classmethod
    def world(cls) -> "BBox":
        return cls(min_lon=-180.0, min_lat=-90.0, max_lon=180.0, max_lat=90.0)

    def normalized(self) -> "BBox":
        min_lon = min(self.min_lon, self.max_lon)
        max_lon = max(self.min_lon, self.max_lon)
        min_lat = min(self.min_lat, self.max_lat)
        max_lat = max(self.min_lat, self.max_lat)
        return BBox(min_lon=min_lon, min_lat=min_lat, max_lon=max_lon, max_lat=max_lat)

    def contains(self, lon: float, lat: float) -> bool:
        # Inclusive on every edge so a zero-area bbox still matches its own point.
        return (
            self.min_lon <= lon <= self.max_lon and self.min_lat <= lat <= self.max_lat
        )

    def rounded_key(self, decimals: int = 4) -> tuple[float, float, float, float]:
        """
        A stable, hashable key for caching viewport-derived computations.
        """
        b = self.normalized()
        return (
            round(b.min_lon, decimals),
            round(b.min_lat, decimals),
            round(b.max_lon, decimals),
            round(b.max_lat, decimals),
        )

    def as_tuple(self) -> tuple[float, float, float, float]:
        return (self.min_lon, self.min_lat, self.max_lon, self.max_lat)


def _finite_or(v: float, default: float) -> float:
    try:
        f = float(v)
    except (TypeError, ValueError):
        return default
    return f if math.isfinite(f) else default


def _wrap_lon(lon: float) -> float:
    return ((lon + 180.0) % 360.0) - 180.0


def viewport_ranges(
    west: float, south: float, east: float, north: float
) -> list[BBox]:
    """
    Normalize a map viewport into one or two plain lon/lat ranges.

    - longitudes are wrapped into [-180, 180] (east == 180 is kept as-is)
    - a span of 360 degrees or more covers the whole world
    - west > east after wrapping means the viewport crosses the antimeridian,
      which is split into [west, 180] + [-180, east]
    - latitudes are clamped to [-90, 90]; non-finite values fall back to the world extent
    """
    w = _finite_or(west, -180.0)
    e = _finite_or(east, 180.0)
    s = max(-90.0, min(90.0, _finite_or(south, -90.0)))
    n = max(-90.0, min(90.0, _finite_or(north, 90.0)))
    if s > n:
        s, n = n, s

    if e - w >= 360.0:
        return [BBox(min_lon=-180.0, min_lat=s, max_lon=180.0, max_lat=n)]

    min_lon = _wrap_lon(w)
    max_lon = 180.0 if e == 180.0 else _wrap_lon(e)

    if min_lon > max_lon:
        return [
            BBox(min_lon=min_lon, min_lat=s, max_lon=180.0, max_lat=n),
            BBox(min_lon=-180.0, min_lat=s, max_lon=max_lon, max_lat=n),
        ]
    return [BBox(min_lon=min_lon, min_lat=s, max_lon=max_lon, max_lat=n)]


def parse_bbox(raw: str) -> tuple[float, float, float, float]:
    """
    Parse a `west,south,east,north` query-string value.

    Raises ValueError when the value does not hold exactly four numbers.
    """
    parts = [p.strip() for p in (raw or "").split(",")]
    if len(parts) != 4 or any(not p for p in parts):
        raise ValueError(f"bbox must be 'west,south,east,north', got {raw!r}")
    w, s, e, n = (float(p) for p in parts)
    return (w, s, e, n)
