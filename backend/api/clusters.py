from __future__ import annotations

import logging
import time
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from api.schemas import ExpansionZoomResponse, ReloadResponse
from clustering.errors import EmptyIndexError, UnknownClusterError
from clustering.geojson import feature_collection, feature_to_geojson, point_to_geojson
from engine import get_engine, normalize_engine, reload_engines
from engine.types import IndexResult, ListingEngine
from geo.aoi import parse_bbox
from geo.projection import projection_by_name
from listings.types import Listing, ListingFilters
from settings.registry import clear_settings_cache, get_settings, listings_path
from telemetry.singleton import record_event

logger = logging.getLogger(__name__)

router = APIRouter(tags=["clusters"])


def listing_filters(
    city: str | None = None,
    minRent: float | None = None,
    maxRent: float | None = None,
    propertyType: str | None = None,
    availableOnly: bool = True,
) -> ListingFilters:
    return ListingFilters(
        city=city or None,
        min_rent=minRent,
        max_rent=maxRent,
        property_type=propertyType or None,
        available_only=availableOnly,
    )


def listing_payload(payload: Any) -> dict[str, Any]:
    if not isinstance(payload, Listing):
        return {}
    return {
        **payload.props,
        "id": payload.id,
        "title": payload.title,
        "city": payload.city,
        "property_type": payload.property_type,
        "rent": payload.rent,
        "latitude": payload.latitude,
        "longitude": payload.longitude,
        "is_available": payload.is_available,
    }


def _resolve(
    engine_name: str | None, filters: ListingFilters
) -> tuple[ListingEngine, IndexResult]:
    cfg = get_settings()
    eng = get_engine(engine_name or cfg.data.engine, listings_path())
    res = eng.index(
        filters,
        cfg.clustering.to_options(),
        projection_by_name(cfg.clustering.projection),
    )
    return eng, res


def _engine_label(engine_name: str | None) -> str:
    return normalize_engine(engine_name or get_settings().data.engine)


@router.get("/clusters")
def get_clusters(
    bbox: str = Query(default="-180,-90,180,90", description="west,south,east,north"),
    zoom: float = Query(default=0.0),
    engine: str | None = None,
    filters: ListingFilters = Depends(listing_filters),
) -> dict[str, Any]:
    t0 = time.perf_counter()
    try:
        west, south, east, north = parse_bbox(bbox)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from None

    try:
        eng, res = _resolve(engine, filters)
    except EmptyIndexError as e:
        logger.info("No listings available: %s", e)
        return feature_collection(
            [], meta={"engine": _engine_label(engine), "empty": True, "featureCount": 0}
        )

    index = res.index
    features = index.get_clusters((west, south, east, north), zoom)
    z = index.clamp_zoom(zoom)
    clusters = [f for f in features if f.is_cluster]
    meta = {
        "engine": eng.name,
        "zoom": z,
        "featureCount": len(features),
        "clusterCount": len(clusters),
        "leafCount": len(features) - len(clusters),
        "pointCount": sum(f.point_count for f in features),
        "indexedPoints": index.size,
        "droppedPoints": index.dropped_points,
        "indexCacheHit": res.cache_hit,
        "timingsMs": {
            "build": round(res.build_ms, 3),
            "total": round((time.perf_counter() - t0) * 1000.0, 3),
        },
    }
    record_event(
        endpoint="/clusters",
        engine=eng.name,
        zoom=z,
        bbox=(west, south, east, north),
        stats=meta,
    )
    return feature_collection(
        (feature_to_geojson(f, encode_payload=listing_payload) for f in features),
        meta=meta,
    )


@router.get("/clusters/{cluster_id}/expansion-zoom", response_model=ExpansionZoomResponse)
def get_expansion_zoom(
    cluster_id: str,
    engine: str | None = None,
    filters: ListingFilters = Depends(listing_filters),
) -> ExpansionZoomResponse:
    _eng, res = _resolve_or_404(engine, filters)
    try:
        z = res.index.get_cluster_expansion_zoom(cluster_id)
    except UnknownClusterError as e:
        logger.info("Expansion zoom lookup failed: %s", e)
        raise HTTPException(status_code=404, detail=str(e)) from None
    return ExpansionZoomResponse(clusterId=cluster_id, expansionZoom=z)


@router.get("/clusters/{cluster_id}/children")
def get_children(
    cluster_id: str,
    engine: str | None = None,
    filters: ListingFilters = Depends(listing_filters),
) -> dict[str, Any]:
    _eng, res = _resolve_or_404(engine, filters)
    try:
        children = res.index.get_children(cluster_id)
    except UnknownClusterError as e:
        logger.info("Children lookup failed: %s", e)
        raise HTTPException(status_code=404, detail=str(e)) from None
    return feature_collection(
        feature_to_geojson(f, encode_payload=listing_payload) for f in children
    )


@router.get("/clusters/{cluster_id}/leaves")
def get_leaves(
    cluster_id: str,
    limit: int | None = Query(default=None, ge=0),
    offset: int = Query(default=0, ge=0),
    engine: str | None = None,
    filters: ListingFilters = Depends(listing_filters),
) -> dict[str, Any]:
    _eng, res = _resolve_or_404(engine, filters)
    try:
        leaves = res.index.get_leaves(cluster_id, limit=limit, offset=offset)
    except UnknownClusterError as e:
        logger.info("Leaves lookup failed: %s", e)
        raise HTTPException(status_code=404, detail=str(e)) from None
    return feature_collection(
        point_to_geojson(p, encode_payload=listing_payload) for p in leaves
    )


@router.get("/tiles/{z}/{x}/{y}")
def get_tile(
    z: int,
    x: int,
    y: int,
    engine: str | None = None,
    filters: ListingFilters = Depends(listing_filters),
) -> dict[str, Any]:
    if z < 0 or z > 30:
        raise HTTPException(status_code=422, detail=f"tile zoom out of range: {z}")
    try:
        _eng, res = _resolve(engine, filters)
    except EmptyIndexError as e:
        logger.info("No listings available: %s", e)
        return feature_collection([])
    features = res.index.get_tile(z, x, y)
    return feature_collection(
        feature_to_geojson(f, encode_payload=listing_payload) for f in features
    )


@router.post("/listings/reload", response_model=ReloadResponse)
def reload_listings() -> ReloadResponse:
    clear_settings_cache()
    n = reload_engines()
    logger.info("Reloaded listings for %d engine(s)", n)
    return ReloadResponse(enginesReset=n)


def _resolve_or_404(
    engine_name: str | None, filters: ListingFilters
) -> tuple[ListingEngine, IndexResult]:
    try:
        return _resolve(engine_name, filters)
    except EmptyIndexError as e:
        raise HTTPException(status_code=404, detail=str(e)) from None
