"""
Unit tests for load search matching.

Covers haversine distance, H3 binning, the radius cell ring and every
attribute filter of ``load_matches``.
"""

from datetime import timedelta

import pytest

from src.domain.distance import haversine_km
from src.domain.entities import Load
from src.domain.enums import LoadStatus, VehicleType
from src.domain.matching import SearchFilters, cells_within, load_matches, pickup_cell
from tests.conftest import BULAWAYO, HARARE, MUTARE, START


def _load(**overrides) -> Load:
    values = dict(
        id=1,
        owner_id=1,
        title="Maize bags",
        cargo_type="Grain",
        weight=8000.0,
        pickup=HARARE,
        delivery=BULAWAYO,
        pickup_date=START + timedelta(days=1),
        vehicle_types=frozenset({VehicleType.MEDIUM_TRUCK}),
        suggested_price=650.0,
        description="Fifty kilogram bags, palletised",
        status=LoadStatus.OPEN,
    )
    values.update(overrides)
    return Load(**values)


class TestHaversine:
    def test_same_point_is_zero(self):
        assert haversine_km(-17.83, 31.05, -17.83, 31.05) == 0.0

    def test_harare_to_bulawayo(self):
        d = haversine_km(
            HARARE.latitude, HARARE.longitude, BULAWAYO.latitude, BULAWAYO.longitude
        )
        # Roughly 365 km great-circle
        assert 350 < d < 380

    def test_symmetric(self):
        a = haversine_km(HARARE.latitude, HARARE.longitude, MUTARE.latitude, MUTARE.longitude)
        b = haversine_km(MUTARE.latitude, MUTARE.longitude, HARARE.latitude, HARARE.longitude)
        assert a == pytest.approx(b)


class TestH3Cells:
    def test_same_point_same_cell(self):
        assert pickup_cell(-17.8292, 31.0522) == pickup_cell(-17.8292, 31.0522)

    def test_distant_points_differ(self):
        assert pickup_cell(HARARE.latitude, HARARE.longitude) != pickup_cell(
            BULAWAYO.latitude, BULAWAYO.longitude
        )

    def test_ring_contains_centre_and_nearby_points(self):
        cells = cells_within(HARARE.latitude, HARARE.longitude, 10)
        assert pickup_cell(HARARE.latitude, HARARE.longitude) in cells
        # ~5 km north of the centre
        assert pickup_cell(HARARE.latitude + 0.045, HARARE.longitude) in cells

    def test_ring_excludes_far_points(self):
        cells = cells_within(HARARE.latitude, HARARE.longitude, 10)
        assert pickup_cell(BULAWAYO.latitude, BULAWAYO.longitude) not in cells

    def test_ring_grows_with_radius(self):
        small = cells_within(HARARE.latitude, HARARE.longitude, 5)
        large = cells_within(HARARE.latitude, HARARE.longitude, 50)
        assert small < large


class TestLoadMatches:
    def test_empty_filters_match_everything(self):
        assert load_matches(_load(), SearchFilters())

    def test_cargo_type_is_case_insensitive_substring(self):
        assert load_matches(_load(), SearchFilters(cargo_type="grain"))
        assert not load_matches(_load(), SearchFilters(cargo_type="steel"))

    def test_vehicle_types_need_one_in_common(self):
        wanted = frozenset({VehicleType.MEDIUM_TRUCK, VehicleType.FLATBED})
        assert load_matches(_load(), SearchFilters(vehicle_types=wanted))
        assert not load_matches(
            _load(), SearchFilters(vehicle_types=frozenset({VehicleType.PICKUP}))
        )

    def test_cities(self):
        assert load_matches(_load(), SearchFilters(pickup_city="harare"))
        assert load_matches(_load(), SearchFilters(delivery_city="Bula"))
        assert not load_matches(_load(), SearchFilters(pickup_city="Mutare"))

    def test_weight_bounds_are_inclusive(self):
        assert load_matches(_load(), SearchFilters(min_weight=8000, max_weight=8000))
        assert not load_matches(_load(), SearchFilters(max_weight=7999))

    def test_price_filter_excludes_unpriced_loads(self):
        assert load_matches(_load(), SearchFilters(min_price=600, max_price=700))
        assert not load_matches(_load(), SearchFilters(min_price=700))
        assert not load_matches(_load(suggested_price=None), SearchFilters(max_price=1000))

    def test_pickup_window(self):
        day = START + timedelta(days=1)
        assert load_matches(
            _load(), SearchFilters(pickup_date_from=day, pickup_date_to=day)
        )
        assert not load_matches(
            _load(), SearchFilters(pickup_date_from=day + timedelta(hours=1))
        )

    def test_free_text_searches_title_description_and_cargo(self):
        assert load_matches(_load(), SearchFilters(query="maize"))
        assert load_matches(_load(), SearchFilters(query="palletised"))
        assert load_matches(_load(), SearchFilters(query="GRAIN"))
        assert not load_matches(_load(), SearchFilters(query="cement"))

    def test_radius(self):
        near_harare = SearchFilters(
            near_lat=HARARE.latitude + 0.1, near_lng=HARARE.longitude, radius_km=20
        )
        assert load_matches(_load(), near_harare)
        assert not load_matches(_load(pickup=MUTARE), near_harare)

    def test_radius_needs_all_three_parts(self):
        partial = SearchFilters(near_lat=0.0, near_lng=0.0)
        assert not partial.has_radius
        assert load_matches(_load(), partial)

    def test_all_filters_must_match(self):
        filters = SearchFilters(cargo_type="grain", pickup_city="Mutare")
        assert not load_matches(_load(), filters)


class TestSearchFiltersSerialisation:
    def test_dict_form_is_json_safe(self):
        filters = SearchFilters(
            vehicle_types=frozenset({VehicleType.FLATBED, VehicleType.PICKUP}),
            pickup_date_from=START,
            radius_km=25.0,
        )
        data = filters.to_dict()
        assert data["vehicle_types"] == ["FLATBED", "PICKUP"]
        assert data["pickup_date_from"] == START.isoformat()
        assert "cargo_type" not in data

    def test_from_dict_restores_types_and_ignores_unknown_keys(self):
        filters = SearchFilters.from_dict(
            {
                "vehicle_types": ["FLATBED"],
                "pickup_date_from": START.isoformat(),
                "legacy_field": 1,
            }
        )
        assert filters.vehicle_types == frozenset({VehicleType.FLATBED})
        assert filters.pickup_date_from == START

    def test_from_dict_rejects_unknown_vehicle_type(self):
        with pytest.raises(ValueError):
            SearchFilters.from_dict({"vehicle_types": ["HOVERCRAFT"]})
