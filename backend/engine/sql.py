from __future__ import annotations

from pathlib import Path
from typing import Any

from listings.types import ListingFilters


def source_sql(path: Path) -> str:
    """
    DuckDB table function reading the listings file; the path is bound as a parameter.
    """
    suffix = path.suffix.lower()
    if suffix == ".parquet":
        return "read_parquet(?)"
    if suffix in {".csv", ".tsv"}:
        return "read_csv_auto(?)"
    if suffix in {".json", ".ndjson", ".jsonl"}:
        return "read_json_auto(?)"
    raise ValueError(f"Unsupported listings file for DuckDB: {path}")


SOURCE_ROW_COLUMN = "_source_row"


def numbered_source_sql(src: str) -> str:
    """
    `src` with each row's 0-based position in the file, taken before any filter, so
    generated ids (`listing-<row>`) do not depend on the filter set.
    """
    return (
        f"(SELECT *, row_number() OVER () - 1 AS {SOURCE_ROW_COLUMN} FROM {src})"
        " AS numbered"
    )


def listing_where_sql(
    filters: ListingFilters | None, columns: set[str]
) -> tuple[str, list[Any]]:
    """
    WHERE clause + params equivalent to `listings.filters.matches`.

    A filter on a column the source does not have matches nothing, same as the
    in-memory filter does for a missing field.
    """
    if filters is None:
        return "", []

    where: list[str] = []
    params: list[Any] = []

    if filters.available_only and "is_available" in columns:
        where.append("coalesce(TRY_CAST(is_available AS BOOLEAN), TRUE)")

    city = (filters.city or "").strip()
    if city:
        if "city" in columns:
            where.append("CAST(city AS VARCHAR) ILIKE ? ESCAPE '\\'")
            params.append(f"%{_like_literal(city)}%")
        else:
            where.append("FALSE")

    for op, value in ((">=", filters.min_rent), ("<=", filters.max_rent)):
        if value is None:
            continue
        if "rent" in columns:
            where.append(f"TRY_CAST(rent AS DOUBLE) {op} ?")
            params.append(float(value))
        else:
            where.append("FALSE")

    ptype = (filters.property_type or "").strip()
    if ptype:
        if "property_type" in columns:
            where.append("CAST(property_type AS VARCHAR) = ?")
            params.append(ptype)
        else:
            where.append("FALSE")

    if not where:
        return "", []
    return "WHERE " + " AND ".join(where), params


def order_sql(columns: set[str]) -> str:
    if "created_at" in columns:
        return "ORDER BY CAST(created_at AS VARCHAR) DESC NULLS LAST"
    return ""


def _like_literal(value: str) -> str:
    # Plain substring match, same as the in-memory filter.
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
