"""
Load ↔ saved-search matching
============================

1. **Spatial binning** -- every load stores the H3 cell of its pickup point
   (resolution 7, ~5.16 km²).  A radius filter expands to the ring of cells
   that covers the circle, which the repository uses as an indexed
   pre-filter.
2. **Exact check** -- candidates are confirmed with the haversine distance,
   since a ring of hexagons over-covers the circle.
3. **Attribute filters** -- cargo type, vehicle types, cities, weight, price,
   pickup window and free text; every filter that is set must match.

Complexity
----------
Per (load, search) pair: O(|vehicle_types|).  Publishing one load against S
saved searches is O(S).
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Optional

import h3

from .distance import haversine_km
from .entities import Load
from .enums import VehicleType


@dataclass(frozen=True)
class SearchFilters:
    cargo_type: Optional[str] = None
    vehicle_types: frozenset[VehicleType] = field(default_factory=frozenset)
    pickup_city: Optional[str] = None
    delivery_city: Optional[str] = None
    min_weight: Optional[float] = None
    max_weight: Optional[float] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    pickup_date_from: Optional[datetime] = None
    pickup_date_to: Optional[datetime] = None
    query: Optional[str] = None
    near_lat: Optional[float] = None
    near_lng: Optional[float] = None
    radius_km: Optional[float] = None

    @property
    def has_radius(self) -> bool:
        return (
            self.near_lat is not None
            and self.near_lng is not None
            and self.radius_km is not None
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe form, as stored on a saved search."""
        data = {k: v for k, v in asdict(self).items() if v is not None}
        if self.vehicle_types:
            data["vehicle_types"] = sorted(vt.value for vt in self.vehicle_types)
        else:
            data.pop("vehicle_types", None)
        for key in ("pickup_date_from", "pickup_date_to"):
            if key in data:
                data[key] = data[key].isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SearchFilters":
        values = dict(data)
        values["vehicle_types"] = frozenset(
            VehicleType(vt) for vt in values.get("vehicle_types") or ()
        )
        for key in ("pickup_date_from", "pickup_date_to"):
            if isinstance(values.get(key), str):
                values[key] = datetime.fromisoformat(values[key])
        known = cls.__dataclass_fields__
        return cls(**{k: v for k, v in values.items() if k in known})


def pickup_cell(lat: float, lng: float, resolution: int = 7) -> str:
    """Map a geo-point to an H3 hexagonal cell index.  O(1)."""
    return h3.latlng_to_cell(lat, lng, resolution)


def cells_within(
    lat: float, lng: float, radius_km: float, resolution: int = 7
) -> set[str]:
    """All H3 cells that may contain a point within *radius_km*."""
    edge_km = h3.average_hexagon_edge_length(resolution, unit="km")
    k = max(1, math.ceil(radius_km / edge_km) + 1)
    return set(h3.grid_disk(pickup_cell(lat, lng, resolution), k))


def _contains(haystack: Optional[str], needle: str) -> bool:
    return haystack is not None and needle.lower() in haystack.lower()


def load_matches(load: Load, filters: SearchFilters) -> bool:
    """True when *load* satisfies every filter that is set."""
    if filters.cargo_type and not _contains(load.cargo_type, filters.cargo_type):
        return False

    if filters.vehicle_types and not (load.vehicle_types & filters.vehicle_types):
        return False

    if filters.pickup_city and not (
        load.pickup and _contains(load.pickup.city, filters.pickup_city)
    ):
        return False
    if filters.delivery_city and not (
        load.delivery and _contains(load.delivery.city, filters.delivery_city)
    ):
        return False

    if filters.min_weight is not None and load.weight < filters.min_weight:
        return False
    if filters.max_weight is not None and load.weight > filters.max_weight:
        return False

    if filters.min_price is not None or filters.max_price is not None:
        price = load.suggested_price
        if price is None:
            return False
        if filters.min_price is not None and price < filters.min_price:
            return False
        if filters.max_price is not None and price > filters.max_price:
            return False

    if load.pickup_date is not None:
        if filters.pickup_date_from and load.pickup_date < filters.pickup_date_from:
            return False
        if filters.pickup_date_to and load.pickup_date > filters.pickup_date_to:
            return False

    if filters.query and not any(
        _contains(text, filters.query)
        for text in (load.title, load.description, load.cargo_type)
    ):
        return False

    if filters.has_radius:
        if load.pickup is None:
            return False
        distance = haversine_km(
            filters.near_lat,
            filters.near_lng,
            load.pickup.latitude,
            load.pickup.longitude,
        )
        if distance > filters.radius_km:
            return False

    return True
