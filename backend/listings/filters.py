from __future__ import annotations

from typing import Iterable

from clustering.types import GeoPoint
from listings.types import Listing, ListingFilters


def matches(listing: Listing, filters: ListingFilters) -> bool:
    if filters.available_only and not listing.is_available:
        return False
    city = (filters.city or "").strip().lower()
    if city and city not in (listing.city or "").lower():
        return False
    if filters.min_rent is not None:
        if listing.rent is None or listing.rent < filters.min_rent:
            return False
    if filters.max_rent is not None:
        if listing.rent is None or listing.rent > filters.max_rent:
            return False
    ptype = (filters.property_type or "").strip()
    if ptype and listing.property_type != ptype:
        return False
    return True


def filter_listings(
    listings: Iterable[Listing], filters: ListingFilters | None
) -> list[Listing]:
    if filters is None:
        return list(listings)
    return [lst for lst in listings if matches(lst, filters)]


def sort_newest_first(listings: list[Listing]) -> list[Listing]:
    """
    Newest `created_at` first; listings without a timestamp keep their order at the end.
    """
    dated = [lst for lst in listings if lst.props.get("created_at")]
    undated = [lst for lst in listings if not lst.props.get("created_at")]
    dated.sort(key=lambda lst: str(lst.props.get("created_at")), reverse=True)
    return [*dated, *undated]


def listing_points(listings: Iterable[Listing]) -> list[GeoPoint]:
    return [
        GeoPoint(id=lst.id, lat=lst.latitude, lon=lst.longitude, payload=lst)
        for lst in listings
    ]
