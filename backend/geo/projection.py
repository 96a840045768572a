from __future__ import annotations

import math
from dataclasses import dataclass
from functools import lru_cache
from typing import Protocol

from pyproj import Transformer


_MAX_MERCATOR_LAT = 85.05112878
# Half the EPSG:3857 world width in meters.
_ORIGIN_SHIFT = 20037508.342789244


class Projection(Protocol):
    """
    Maps lon/lat degrees into the unit square used for pixel-radius clustering.

    x grows east (0 at -180, 1 at 180), y grows south (0 at the northern
    mercator limit, 1 at the southern one). Multiplying by `extent * 2**zoom`
    gives pixel coordinates at that zoom.
    """

    def project(self, lon: float, lat: float) -> tuple[float, float]: ...


@dataclass(frozen=True)
class WebMercatorProjection:
    """
    Closed-form spherical mercator (the projection slippy maps use).
    """

    def project(self, lon: float, lat: float) -> tuple[float, float]:
        x = lon / 360.0 + 0.5
        sin = math.sin(math.radians(lat))
        if sin >= 1.0:
            return x, 0.0
        if sin <= -1.0:
            return x, 1.0
        y = 0.5 - 0.25 * math.log((1.0 + sin) / (1.0 - sin)) / math.pi
        return x, min(1.0, max(0.0, y))


@lru_cache(maxsize=1)
def transformer_4326_to_3857() -> Transformer:
    return Transformer.from_crs("EPSG:4326", "EPSG:3857", always_xy=True)


@dataclass(frozen=True)
class PyprojWebMercatorProjection:
    """
    EPSG:4326 -> EPSG:3857 through pyproj, rescaled to the unit square.

    Slower than `WebMercatorProjection`, but useful to cross-check it or to keep
    the clustering grid aligned with other EPSG:3857 computations.
    """

    def project(self, lon: float, lat: float) -> tuple[float, float]:
        lat = max(-_MAX_MERCATOR_LAT, min(_MAX_MERCATOR_LAT, float(lat)))
        mx, my = transformer_4326_to_3857().transform(float(lon), lat)
        x = (float(mx) + _ORIGIN_SHIFT) / (2.0 * _ORIGIN_SHIFT)
        y = (_ORIGIN_SHIFT - float(my)) / (2.0 * _ORIGIN_SHIFT)
        return x, min(1.0, max(0.0, y))


def projection_by_name(name: str | None) -> Projection:
    n = (name or "mercator").strip().lower()
    if n == "pyproj":
        return PyprojWebMercatorProjection()
    return WebMercatorProjection()
