from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Listing:
    """
    A rental property as shown on the map.

    `props` keeps every raw field of the source record (address, images, bedrooms, ...)
    so the map payload can carry whatever the marker popup needs.
    """

    id: str
    title: str
    city: str
    property_type: str
    rent: float | None
    latitude: float
    longitude: float
    is_available: bool = True
    props: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)


@dataclass(frozen=True)
class ListingFilters:
    # Case-insensitive substring match.
    city: str | None = None
    min_rent: float | None = None
    max_rent: float | None = None
    property_type: str | None = None
    available_only: bool = True

    def cache_key(self) -> tuple:
        return (
            (self.city or "").strip().lower(),
            self.min_rent,
            self.max_rent,
            (self.property_type or "").strip(),
            self.available_only,
        )
