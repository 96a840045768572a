from __future__ import annotations

import json
import math

import pytest

from listings.filters import filter_listings, listing_points, matches, sort_newest_first
from listings.loaders import listing_from_record, load_listings
from listings.types import ListingFilters


def _record(**kw):
    base = {
        "id": "l1",
        "title": "Flat",
        "city": "San Francisco",
        "property_type": "apartment",
        "rent": 3000,
        "latitude": 37.77,
        "longitude": -122.42,
        "is_available": True,
    }
    base.update(kw)
    return base


def test_listing_from_record_coerces_values():
    lst = listing_from_record(_record(latitude="37.5", longitude="-122.1", rent="2500"))
    assert (lst.latitude, lst.longitude, lst.rent) == (37.5, -122.1, 2500.0)
    assert lst.props["latitude"] == "37.5"

    broken = listing_from_record(_record(latitude="n/a", rent=None, id=None), index=7)
    assert math.isnan(broken.latitude)
    assert broken.rent is None
    assert broken.id == "listing-7"

    assert listing_from_record(_record(is_available="false")).is_available is False
    assert listing_from_record(_record(is_available=None)).is_available is True


def test_load_listings_json_variants(tmp_path):
    plain = tmp_path / "plain.json"
    plain.write_text(json.dumps([_record(id="a"), _record(id="b")]), encoding="utf-8")
    assert [lst.id for lst in load_listings(plain)] == ["a", "b"]

    wrapped = tmp_path / "wrapped.json"
    wrapped.write_text(json.dumps({"properties": [_record(id="c")]}), encoding="utf-8")
    assert [lst.id for lst in load_listings(wrapped)] == ["c"]


def test_load_listings_geojson(tmp_path):
    path = tmp_path / "listings.geojson"
    path.write_text(
        json.dumps(
            {
                "type": "FeatureCollection",
                "features": [
                    {
                        "type": "Feature",
                        "id": "g1",
                        "properties": {"title": "GeoJSON flat", "rent": 1800},
                        "geometry": {"type": "Point", "coordinates": [2.35, 48.85]},
                    },
                    {
                        "type": "Feature",
                        "properties": {},
                        "geometry": {"type": "LineString", "coordinates": [[0, 0], [1, 1]]},
                    },
                ],
            }
        ),
        encoding="utf-8",
    )
    (lst,) = load_listings(path)
    assert lst.id == "g1"
    assert (lst.longitude, lst.latitude) == (2.35, 48.85)


def test_load_listings_rejects_other_formats(tmp_path):
    path = tmp_path / "listings.csv"
    path.write_text("id,latitude,longitude\n1,1,1\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_listings(path)


def test_filters_match_listing_query_semantics():
    a = listing_from_record(_record(id="a", city="San Francisco", rent=2500))
    b = listing_from_record(_record(id="b", city="Oakland", rent=3500, property_type="house"))
    c = listing_from_record(_record(id="c", city="South San Francisco", is_available=False))
    all_ = [a, b, c]

    assert [x.id for x in filter_listings(all_, ListingFilters())] == ["a", "b"]
    assert [x.id for x in filter_listings(all_, None)] == ["a", "b", "c"]
    assert [
        x.id for x in filter_listings(all_, ListingFilters(city="san fran"))
    ] == ["a"]
    assert [
        x.id
        for x in filter_listings(all_, ListingFilters(city="san fran", available_only=False))
    ] == ["a", "c"]
    assert [x.id for x in filter_listings(all_, ListingFilters(min_rent=3000))] == ["b"]
    assert [x.id for x in filter_listings(all_, ListingFilters(max_rent=3000))] == ["a"]
    assert [
        x.id for x in filter_listings(all_, ListingFilters(property_type="house"))
    ] == ["b"]
    no_rent = listing_from_record(_record(id="d", rent=None))
    assert not matches(no_rent, ListingFilters(min_rent=1))


def test_sort_newest_first_and_points():
    old = listing_from_record(_record(id="old", created_at="2024-01-01T00:00:00Z"))
    new = listing_from_record(_record(id="new", created_at="2025-01-01T00:00:00Z"))
    undated = listing_from_record(_record(id="undated"))
    ordered = sort_newest_first([old, undated, new])
    assert [x.id for x in ordered] == ["new", "old", "undated"]

    (p,) = listing_points([new])
    assert (p.id, p.lat, p.lon) == ("new", 37.77, -122.42)
    assert p.payload is new


def test_filters_are_hashable_cache_keys():
    assert ListingFilters(city=" SF ").cache_key() == ListingFilters(city="sf").cache_key()
    assert hash(ListingFilters(city="sf")) == hash(ListingFilters(city="sf"))
