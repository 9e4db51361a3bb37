"""Unit tests for the fare calculator and great-circle distance."""

from decimal import Decimal

import pytest

from saferide.domain.distance import EARTH_RADIUS_KM, distance_between, haversine_km
from saferide.domain.entities import Location
from saferide.domain.enums import RideType
from saferide.domain.pricing import (
    FareCalculator,
    FreeFare,
    MeteredFare,
    to_money,
)


class TestHaversine:
    def test_same_point_is_zero(self):
        assert haversine_km(33.7756, -84.3963, 33.7756, -84.3963) == 0.0

    def test_one_degree_of_latitude(self):
        # 6371 km x pi / 180
        assert haversine_km(0.0, 0.0, 1.0, 0.0) == pytest.approx(111.195, abs=0.001)

    def test_symmetric(self):
        a = haversine_km(33.7756, -84.3963, 33.6407, -84.4277)
        b = haversine_km(33.6407, -84.4277, 33.7756, -84.3963)
        assert a == pytest.approx(b)

    def test_antipodes_are_half_the_circumference(self):
        assert haversine_km(0.0, 0.0, 0.0, 180.0) == pytest.approx(EARTH_RADIUS_KM * 3.141592653589793)

    @pytest.mark.parametrize("lat", [86.9738, 45.123456789, 33.7756, -12.3456789, 0.000001])
    def test_near_antipodal_points_do_not_raise(self, lat):
        lng = -73.2269
        distance = haversine_km(lat, lng, -lat, lng + 180.0)
        assert distance == pytest.approx(EARTH_RADIUS_KM * 3.141592653589793, rel=1e-9)

    def test_distance_between_locations(self):
        campus = Location(33.7756, -84.3963)
        airport = Location(33.6407, -84.4277)
        assert 14.5 < distance_between(campus, airport) < 15.5


class TestFareStrategies:
    def test_free_fare_is_absent(self):
        assert FreeFare().calculate(12.0) is None

    def test_metered_fare_base_plus_distance(self):
        assert MeteredFare(5.00, 1.50, 3.50).calculate(10.0) == Decimal("20.00")

    def test_metered_fare_floor(self):
        assert MeteredFare(1.00, 1.00, 4.00).calculate(0.5) == Decimal("4.00")

    def test_money_rounds_half_up(self):
        # float round() would give 2.67 here
        assert to_money(2.675) == Decimal("2.68")
        assert to_money(2.674) == Decimal("2.67")


class TestFareCalculator:
    def setup_method(self):
        self.calculator = FareCalculator()

    @pytest.mark.parametrize("km", [0.0, 3.2, 250.0])
    def test_volunteer_is_always_free(self, km):
        assert self.calculator.fare_for_distance(RideType.VOLUNTEER, km) is None

    def test_weekday_zero_km(self):
        assert self.calculator.fare_for_distance(RideType.WEEKDAY, 0) == Decimal("5.00")

    def test_weekday_ten_km(self):
        assert self.calculator.fare_for_distance(RideType.WEEKDAY, 10) == Decimal("20.00")

    def test_drive_back_zero_km(self):
        assert self.calculator.fare_for_distance(RideType.DRIVE_BACK, 0) == Decimal("10.00")

    def test_drive_back_five_km(self):
        assert self.calculator.fare_for_distance(RideType.DRIVE_BACK, 5) == Decimal("20.00")

    def test_fare_has_two_decimal_places(self):
        fare = self.calculator.fare_for_distance(RideType.WEEKDAY, 1.3333)
        assert fare == Decimal("7.00")
        assert fare.as_tuple().exponent == -2

    def test_accepts_raw_category_value(self):
        assert self.calculator.fare_for_distance("weekday", 10) == Decimal("20.00")

    def test_calculate_fare_uses_great_circle_distance(self):
        pickup, destination = Location(0.0, 0.0), Location(1.0, 0.0)
        # 5.00 + 111.195 x 1.50 = 171.79
        fare = self.calculator.calculate_fare(RideType.WEEKDAY, pickup, destination)
        assert fare == Decimal("171.79")

    def test_custom_strategy_table(self):
        calculator = FareCalculator(
            {
                RideType.VOLUNTEER: FreeFare(),
                RideType.WEEKDAY: MeteredFare(2.00, 1.00, 2.00),
                RideType.DRIVE_BACK: MeteredFare(3.00, 1.00, 3.00),
            }
        )
        assert calculator.fare_for_distance(RideType.WEEKDAY, 4) == Decimal("6.00")
