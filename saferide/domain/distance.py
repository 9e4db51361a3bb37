"""
Distance calculation using the Haversine formula.

Great-circle distance is all the fare policy needs; there is no routing
engine behind it, so the fare for a trip is priced on the straight line
between pickup and destination.

Complexity: O(1) per call.
"""

import math

from .entities import Location

EARTH_RADIUS_KM = 6_371.0


def haversine_km(
    lat1: float, lng1: float, lat2: float, lng2: float
) -> float:
    """Return the great-circle distance in **km** between two points."""
    lat1_r, lat2_r = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlng / 2) ** 2
    )
    # Rounding can push a past 1.0 for near-antipodal points.
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


def distance_between(origin: Location, destination: Location) -> float:
    return haversine_km(
        origin.latitude, origin.longitude,
        destination.latitude, destination.longitude,
    )
