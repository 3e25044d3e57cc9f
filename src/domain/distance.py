"""
Distance calculation using the Haversine formula.

Assumption
----------
Delivery fees are priced on great-circle (Haversine) distance between the
consumer address and the shop, not on road distance.  Merchants configure
their distance tiers with that in mind, so swapping in a routing engine
would silently change every fee.

All distances are returned in **meters**.

Complexity: O(1) per call.
"""

from __future__ import annotations

import math

from .entities import Coordinate, InvalidInputError

EARTH_RADIUS_M = 6_371_000.0


def haversine_m(
    lat1: float, lon1: float, lat2: float, lon2: float
) -> float:
    """Return the great-circle distance in **meters** between two points.

    No validation: NaN in, NaN out.  Use :func:`distance_between` with
    validated coordinates anywhere the result may end up in an order total.
    """
    lat1_r, lat2_r = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlon / 2) ** 2
    )
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def validate_coordinate(latitude: float, longitude: float) -> None:
    """Raise ``InvalidInputError`` unless the point is a finite lat/lon."""
    if not (math.isfinite(latitude) and math.isfinite(longitude)):
        raise InvalidInputError(
            f"Coordinates must be finite, got ({latitude}, {longitude})"
        )
    if not -90.0 <= latitude <= 90.0:
        raise InvalidInputError(f"Latitude out of range: {latitude}")
    if not -180.0 <= longitude <= 180.0:
        raise InvalidInputError(f"Longitude out of range: {longitude}")


def distance_between(a: Coordinate, b: Coordinate) -> float:
    """Meters between two validated coordinates."""
    return haversine_m(a.latitude, a.longitude, b.latitude, b.longitude)
