"""
Geo helpers - distance between coordinates and coordinate validation.
"""

import math
from typing import Optional

EARTH_RADIUS_KM = 6371.0


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return min(high, max(low, value))


def is_valid_latitude(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value) and -90.0 <= value <= 90.0


def is_valid_longitude(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value) and -180.0 <= value <= 180.0


def has_valid_coordinates(lat: Optional[float], lng: Optional[float]) -> bool:
    return is_valid_latitude(lat) and is_valid_longitude(lng)


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(max(0.0, 1 - a)))
    return EARTH_RADIUS_KM * c


def distance_km(
    lat1: Optional[float],
    lng1: Optional[float],
    lat2: Optional[float],
    lng2: Optional[float]
) -> Optional[float]:
    """Distance between two points, or None unless both have valid coordinates."""
    if not (has_valid_coordinates(lat1, lng1) and has_valid_coordinates(lat2, lng2)):
        return None
    return haversine_km(lat1, lng1, lat2, lng2)
