"""
Fare Calculator  (Strategy Pattern)
===================================

Formula
-------
Fare = max(Base_Fare + Distance_km x Rate_Per_KM, Minimum_Fare)

================  =========  ===========  =========
Category          Base       Rate / km    Minimum
================  =========  ===========  =========
``volunteer``     --         --           --  (no fare)
``weekday``       5.00       1.50         3.50
``drive_back``    10.00      2.00         10.00
================  =========  ===========  =========

Fares are rounded half-up to the cent.  An older client build priced
weekday trips at ``max(5, km x 1.75)`` and drive-back trips at
``max(10, km x 2.25)``; that table is superseded by the one above.

Complexity: O(1) per fare.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from .distance import distance_between
from .entities import Location
from .enums import RideType

CENT = Decimal("0.01")


def to_money(value: float) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


# ── Strategy hierarchy ────────────────────────────────────────────────


class FareStrategy(ABC):
    @abstractmethod
    def calculate(self, distance_km: float) -> Optional[Decimal]: ...


class FreeFare(FareStrategy):
    def calculate(self, distance_km: float) -> Optional[Decimal]:
        return None


class MeteredFare(FareStrategy):
    def __init__(self, base_fare: float, rate_per_km: float, minimum_fare: float):
        self.base_fare = base_fare
        self.rate_per_km = rate_per_km
        self.minimum_fare = minimum_fare

    def calculate(self, distance_km: float) -> Optional[Decimal]:
        raw = self.base_fare + distance_km * self.rate_per_km
        return to_money(max(raw, self.minimum_fare))


DEFAULT_STRATEGIES: dict[RideType, FareStrategy] = {
    RideType.VOLUNTEER: FreeFare(),
    RideType.WEEKDAY: MeteredFare(base_fare=5.00, rate_per_km=1.50, minimum_fare=3.50),
    RideType.DRIVE_BACK: MeteredFare(base_fare=10.00, rate_per_km=2.00, minimum_fare=10.00),
}


# ── Calculator facade ─────────────────────────────────────────────────


class FareCalculator:
    """High-level API used by the ride service at creation time."""

    def __init__(self, strategies: Optional[dict[RideType, FareStrategy]] = None):
        self.strategies = dict(strategies or DEFAULT_STRATEGIES)

    def fare_for_distance(
        self, ride_type: RideType, distance_km: float
    ) -> Optional[Decimal]:
        return self.strategies[RideType(ride_type)].calculate(distance_km)

    def calculate_fare(
        self, ride_type: RideType, pickup: Location, destination: Location
    ) -> Optional[Decimal]:
        distance = distance_between(pickup, destination)
        return self.fare_for_distance(ride_type, distance)
