from __future__ import annotations

import json

import pytest

from clustering.errors import EmptyIndexError
from clustering.types import ClusterOptions
from engine import get_engine, normalize_engine, reload_engines
from engine.common import IndexCache, build_listing_index
from engine.duckdb import DuckDBEngine
from engine.in_memory import InMemoryEngine
from engine.sql import listing_where_sql
from geo.projection import WebMercatorProjection
from listings.types import ListingFilters

RECORDS = [
    {
        "id": "a",
        "title": "Mission studio",
        "city": "San Francisco",
        "property_type": "studio",
        "rent": 2400.0,
        "latitude": 37.7625,
        "longitude": -122.4194,
        "is_available": True,
        "created_at": "2025-01-02T00:00:00Z",
    },
    {
        "id": "b",
        "title": "Mission 1BR",
        "city": "San Francisco",
        "property_type": "apartment",
        "rent": 3100.0,
        "latitude": 37.7609,
        "longitude": -122.4189,
        "is_available": True,
        "created_at": "2025-01-03T00:00:00Z",
    },
    {
        "id": "c",
        "title": "Leased Oakland flat",
        "city": "Oakland",
        "property_type": "apartment",
        "rent": 2800.0,
        "latitude": 37.808,
        "longitude": -122.25,
        "is_available": False,
        "created_at": "2025-01-01T00:00:00Z",
    },
    {
        "id": "d",
        "title": "Broken geocode",
        "city": "Nowhere",
        "property_type": "apartment",
        "rent": 1000.0,
        "latitude": 95.0,
        "longitude": 10.0,
        "is_available": True,
        "created_at": "2024-12-31T00:00:00Z",
    },
]

OPTIONS = ClusterOptions()
PROJECTION = WebMercatorProjection()


@pytest.fixture()
def listings_file(tmp_path):
    path = tmp_path / "listings.json"
    path.write_text(json.dumps(RECORDS), encoding="utf-8")
    return path


@pytest.fixture(params=["in_memory", "duckdb"])
def engine(request, listings_file):
    if request.param == "duckdb":
        return DuckDBEngine(listings_file, threads=1)
    return InMemoryEngine(listings_file)


def test_engines_filter_and_order_newest_first(engine):
    assert [lst.id for lst in engine.listings(ListingFilters())] == ["b", "a", "d"]
    assert [lst.id for lst in engine.listings(None)] == ["b", "a", "c", "d"]
    assert [
        lst.id for lst in engine.listings(ListingFilters(city="oak", available_only=False))
    ] == ["c"]
    assert [
        lst.id
        for lst in engine.listings(ListingFilters(min_rent=2000, max_rent=3000))
    ] == ["a"]
    assert [
        lst.id for lst in engine.listings(ListingFilters(property_type="apartment"))
    ] == ["b", "d"]


def test_engine_index_drops_invalid_rows_and_caches(engine):
    first = engine.index(ListingFilters(), OPTIONS, PROJECTION)
    assert first.cache_hit is False
    assert first.index.size == 2
    assert first.index.dropped_points == 1

    again = engine.index(ListingFilters(), OPTIONS, PROJECTION)
    assert again.cache_hit is True
    assert again.index is first.index

    other = engine.index(ListingFilters(city="san"), OPTIONS, PROJECTION)
    assert other.cache_hit is False

    engine.reload()
    rebuilt = engine.index(ListingFilters(), OPTIONS, PROJECTION)
    assert rebuilt.cache_hit is False
    assert rebuilt.index is not first.index


def test_engines_agree_on_clusters(listings_file):
    mem = InMemoryEngine(listings_file).index(ListingFilters(), OPTIONS, PROJECTION)
    ddb = DuckDBEngine(listings_file, threads=1).index(
        ListingFilters(), OPTIONS, PROJECTION
    )
    world = (-180, -90, 180, 90)
    for zoom in (0, 10, 17):
        a = mem.index.get_clusters(world, zoom)
        b = ddb.index.get_clusters(world, zoom)
        assert [(f.id, f.point_count) for f in a] == [(f.id, f.point_count) for f in b]


def test_duckdb_engine_reads_csv(tmp_path):
    path = tmp_path / "listings.csv"
    path.write_text(
        "id,title,city,property_type,rent,latitude,longitude,is_available\n"
        "x1,Flat,Austin,house,2700,30.249,-97.75,true\n"
        "x2,Room,Austin,room,900,30.25,-97.751,false\n",
        encoding="utf-8",
    )
    eng = DuckDBEngine(path, threads=1)
    assert "rent" in eng.columns()
    (lst,) = eng.listings(ListingFilters())
    assert (lst.id, lst.latitude, lst.longitude) == ("x1", 30.249, -97.75)


def test_missing_file_raises_empty_index(tmp_path):
    missing = tmp_path / "nope.json"
    for eng in (InMemoryEngine(missing), DuckDBEngine(missing, threads=1)):
        with pytest.raises(EmptyIndexError):
            eng.index(ListingFilters(), OPTIONS, PROJECTION)


def test_where_sql_for_missing_columns_matches_nothing():
    sql, params = listing_where_sql(ListingFilters(city="sf"), {"id", "latitude"})
    assert "FALSE" in sql
    assert params == []
    assert listing_where_sql(None, {"city"}) == ("", [])
    sql, params = listing_where_sql(
        ListingFilters(min_rent=1, property_type="house"),
        {"is_available", "rent", "property_type"},
    )
    assert sql.startswith("WHERE ")
    assert params == [1.0, "house"]


def test_engine_registry(listings_file):
    assert normalize_engine("DuckDB") == "duckdb"
    assert normalize_engine("postgres") == "in_memory"
    assert normalize_engine(None) == "in_memory"

    a = get_engine("in_memory", listings_file)
    assert get_engine("in_memory", listings_file) is a
    assert isinstance(get_engine("duckdb", listings_file), DuckDBEngine)
    assert reload_engines() == 2


def test_reload_during_build_does_not_cache_the_old_index(engine, listings_file):
    filters = ListingFilters()
    key = (filters.cache_key(), OPTIONS, PROJECTION)

    def build_then_data_changes():
        old = build_listing_index(engine.listings(filters), OPTIONS, PROJECTION)
        listings_file.write_text(json.dumps(RECORDS[:1]), encoding="utf-8")
        engine.reload()
        return old

    res = engine._indexes.get_or_build(key, build_then_data_changes)
    assert res.cache_hit is False
    assert res.index.size == 2

    fresh = engine.index(filters, OPTIONS, PROJECTION)
    assert fresh.cache_hit is False
    assert fresh.index.size == 1
    assert engine.index(filters, OPTIONS, PROJECTION).cache_hit is True


def test_index_cache_skips_results_built_before_clear():
    cache = IndexCache()
    index = build_listing_index([], OPTIONS, PROJECTION)

    def build():
        cache.clear()
        return index

    assert cache.get_or_build("k", build).index is index
    assert len(cache) == 0
    assert cache.get_or_build("k", lambda: index).cache_hit is False
    assert len(cache) == 1


def test_city_filter_is_a_literal_substring(engine):
    assert engine.listings(ListingFilters(city="%")) == []
    assert engine.listings(ListingFilters(city="_")) == []
    assert [lst.id for lst in engine.listings(ListingFilters(city="SAN FRAN"))] == [
        "b",
        "a",
    ]


def test_generated_ids_do_not_depend_on_filters(tmp_path):
    path = tmp_path / "no_ids.json"
    rows = [{k: v for k, v in r.items() if k != "id"} for r in RECORDS]
    path.write_text(json.dumps(rows), encoding="utf-8")

    for eng in (InMemoryEngine(path), DuckDBEngine(path, threads=1)):
        everything = {lst.title: lst.id for lst in eng.listings(None)}
        assert everything["Leased Oakland flat"] == "listing-2"
        (oak,) = eng.listings(ListingFilters(city="oakland", available_only=False))
        assert oak.id == "listing-2"
        assert "_source_row" not in oak.props
