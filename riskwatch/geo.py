"""
Geo math: great-circle distance, coordinate validation, point-in-polygon.

Pure functions, no state.
"""

import math
from typing import Iterable, Optional, Sequence

from riskwatch.errors import InvalidCoordinate

EARTH_RADIUS_KM: float = 6371.0


def validate_coordinate(latitude, longitude) -> tuple[float, float]:
    """
    Return (lat, lon) as floats or raise InvalidCoordinate.

    Rejects None, non-numeric values, NaN/inf, and values outside
    lat ∈ [-90, 90], lon ∈ [-180, 180].
    """
    if latitude is None or longitude is None:
        raise InvalidCoordinate(latitude, longitude, "missing component")
    if isinstance(latitude, bool) or isinstance(longitude, bool):
        raise InvalidCoordinate(latitude, longitude, "not numeric")
    try:
        lat = float(latitude)
        lon = float(longitude)
    except (TypeError, ValueError):
        raise InvalidCoordinate(latitude, longitude, "not numeric") from None
    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise InvalidCoordinate(latitude, longitude, "not finite")
    if not -90.0 <= lat <= 90.0 or not -180.0 <= lon <= 180.0:
        raise InvalidCoordinate(latitude, longitude)
    return lat, lon


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def point_in_polygon(x: float, y: float, ring: Sequence[Sequence[float]]) -> bool:
    """
    Even-odd ray casting test.

    `ring` is a sequence of (x, y) vertices; for geofences x is longitude
    and y is latitude. A closing vertex equal to the first is allowed.
    """
    inside = False
    n = len(ring)
    j = n - 1
    for i in range(n):
        xi, yi = ring[i][0], ring[i][1]
        xj, yj = ring[j][0], ring[j][1]
        if (yi > y) != (yj > y):
            x_cross = (xj - xi) * (y - yi) / (yj - yi) + xi
            if x < x_cross:
                inside = not inside
        j = i
    return inside


def centroid(points: Iterable[tuple[float, float]]) -> Optional[tuple[float, float]]:
    """Arithmetic mean of (lat, lon) points; None when there are none."""
    pts = list(points)
    if not pts:
        return None
    lat = sum(p[0] for p in pts) / len(pts)
    lon = sum(p[1] for p in pts) / len(pts)
    return lat, lon
