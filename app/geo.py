from __future__ import annotations

import math
from typing import Optional

EARTH_RADIUS_M = 6371000.0


def haversine_m(lat1, lng1, lat2, lng2) -> Optional[float]:
    """Great-circle distance in meters between two points given in degrees.

    Returns None when any coordinate is missing so it can be used as a SQL
    function over nullable columns.
    """
    if lat1 is None or lng1 is None or lat2 is None or lng2 is None:
        return None
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    # rounding can push a past 1.0 for antipodal points
    a = min(1.0, a)
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(a))


def destination_point(lat: float, lng: float, distance_km: float, bearing_deg: float):
    """Point reached from (lat, lng) after distance_km along bearing_deg."""
    r = EARTH_RADIUS_M / 1000.0
    delta = distance_km / r
    theta = math.radians(bearing_deg)
    phi1 = math.radians(lat)
    lambda1 = math.radians(lng)

    phi2 = math.asin(
        math.sin(phi1) * math.cos(delta)
        + math.cos(phi1) * math.sin(delta) * math.cos(theta)
    )
    lambda2 = lambda1 + math.atan2(
        math.sin(theta) * math.sin(delta) * math.cos(phi1),
        math.cos(delta) - math.sin(phi1) * math.sin(phi2),
    )
    return math.degrees(phi2), math.degrees(lambda2)


def radius_m(radius_km: Optional[float]) -> Optional[float]:
    if radius_km is None:
        return None
    return radius_km * 1000.0


def within_radius(distance_m, radius_km: Optional[float]):
    """Inclusive radius test. Also accepts a SQL distance expression."""
    limit = radius_m(radius_km)
    return limit is None or distance_m <= limit


def to_km(distance_m: float) -> float:
    return round(distance_m / 1000.0, 1)


def valid_point(lat, lng) -> bool:
    try:
        return (
            math.isfinite(lat)
            and math.isfinite(lng)
            and -90 <= lat <= 90
            and -180 <= lng <= 180
        )
    except TypeError:
        return False
