from __future__ import annotations

import dataclasses
from typing import Any, Callable, Iterable

from clustering.types import ClusterFeature, GeoPoint


PayloadEncoder = Callable[[Any], dict[str, Any]]


def _default_payload(payload: Any) -> dict[str, Any]:
    if payload is None:
        return {}
    if isinstance(payload, dict):
        return dict(payload)
    if dataclasses.is_dataclass(payload) and not isinstance(payload, type):
        return dataclasses.asdict(payload)
    return {"payload": payload}


def feature_to_geojson(
    feature: ClusterFeature, *, encode_payload: PayloadEncoder | None = None
) -> dict[str, Any]:
    """
    GeoJSON Feature in the shape map clients expect from point clustering:
    aggregates carry `cluster`, `cluster_id`, `point_count`, `point_count_abbreviated`;
    leaves carry the point payload under `properties`.
    """
    if feature.is_cluster:
        props: dict[str, Any] = {
            "cluster": True,
            "cluster_id": feature.cluster_id,
            "point_count": feature.point_count,
            "point_count_abbreviated": feature.point_count_abbreviated,
        }
    else:
        enc = encode_payload or _default_payload
        payload = feature.point.payload if feature.point is not None else None
        props = {**enc(payload), "cluster": False}

    return {
        "type": "Feature",
        "id": feature.id,
        "properties": props,
        "geometry": {"type": "Point", "coordinates": [feature.lon, feature.lat]},
    }


def point_to_geojson(
    point: GeoPoint, *, encode_payload: PayloadEncoder | None = None
) -> dict[str, Any]:
    enc = encode_payload or _default_payload
    return {
        "type": "Feature",
        "id": point.id,
        "properties": {**enc(point.payload), "cluster": False},
        "geometry": {"type": "Point", "coordinates": [point.lon, point.lat]},
    }


def feature_collection(
    features: Iterable[dict[str, Any]], *, meta: dict[str, Any] | None = None
) -> dict[str, Any]:
    out: dict[str, Any] = {"type": "FeatureCollection", "features": list(features)}
    if meta is not None:
        out["meta"] = meta
    return out
