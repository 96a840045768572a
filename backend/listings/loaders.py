from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Any

from listings.types import Listing


def load_listings(path: Path) -> list[Listing]:
    """
    Load listings from a file.

    - `.geojson`: FeatureCollection of Point features (properties become the record)
    - `.json`: an array of records, or an object with a `properties` / `listings` array
    """
    suffix = path.suffix.lower()
    if suffix not in {".json", ".geojson"}:
        raise ValueError(
            f"In-memory engine reads .json/.geojson listings only, got {path.name}. "
            "Use the DuckDB engine for CSV or Parquet exports."
        )
    data = json.loads(path.read_text(encoding="utf-8"))
    if suffix == ".geojson" or (
        isinstance(data, dict) and data.get("type") == "FeatureCollection"
    ):
        return load_geojson_listings(data)

    if isinstance(data, dict):
        records = data.get("properties") or data.get("listings") or []
    else:
        records = data
    if not isinstance(records, list):
        raise ValueError(f"Expected a list of listing records in {path}")
    return [listing_from_record(r, index=i) for i, r in enumerate(records) if isinstance(r, dict)]


def load_geojson_listings(data: dict[str, Any]) -> list[Listing]:
    out: list[Listing] = []
    for i, feature in enumerate(data.get("features") or []):
        geom = (feature or {}).get("geometry") or {}
        props = dict((feature or {}).get("properties") or {})
        if geom.get("type") != "Point":
            continue
        coords = geom.get("coordinates") or []
        if len(coords) < 2:
            continue
        props.setdefault("longitude", coords[0])
        props.setdefault("latitude", coords[1])
        if feature.get("id") is not None:
            props.setdefault("id", feature.get("id"))
        out.append(listing_from_record(props, index=i))
    return out


def listing_from_record(record: dict[str, Any], *, index: int = 0) -> Listing:
    """
    Build a Listing from a raw record.

    Coordinates may arrive as numeric strings; anything unparseable becomes NaN and is
    dropped later by the cluster index rather than failing the whole load.
    """
    rid = record.get("id")
    lid = str(rid) if rid is not None and str(rid).strip() else f"listing-{index}"
    return Listing(
        id=lid,
        title=str(record.get("title") or ""),
        city=str(record.get("city") or ""),
        property_type=str(record.get("property_type") or ""),
        rent=_to_float_or_none(record.get("rent")),
        latitude=_to_float(record.get("latitude")),
        longitude=_to_float(record.get("longitude")),
        is_available=_to_bool(record.get("is_available"), default=True),
        props=dict(record),
    )


def _to_float(v: Any) -> float:
    if v is None or isinstance(v, bool):
        return math.nan
    try:
        return float(v)
    except (TypeError, ValueError):
        return math.nan


def _to_float_or_none(v: Any) -> float | None:
    f = _to_float(v)
    return None if math.isnan(f) else f


def _to_bool(v: Any, *, default: bool) -> bool:
    if v is None:
        return default
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in {"1", "true", "yes", "y", "t"}:
        return True
    if s in {"0", "false", "no", "n", "f"}:
        return False
    return default
