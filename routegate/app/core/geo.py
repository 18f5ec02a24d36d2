"""Coordinate math and display formatting shared by the endpoint adapters.

Coordinates are ``(lng, lat)`` pairs throughout, matching the primary
provider's wire order.
"""

import math
from typing import Any, Dict, Sequence, Tuple

EARTH_RADIUS_M = 6371000.0
METERS_PER_DEGREE_LAT = 111000.0

LngLat = Tuple[float, float]


def haversine_m(a: Sequence[float], b: Sequence[float]) -> float:
    """Great-circle distance in meters between two (lng, lat) points."""
    lng1, lat1 = a[0], a[1]
    lng2, lat2 = b[0], b[1]
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    h = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def bbox_around(center: Sequence[float], radius_m: float) -> list[list[float]]:
    """Approximate [[west, south], [east, north]] box around a point."""
    lng, lat = center[0], center[1]
    lat_delta = radius_m / METERS_PER_DEGREE_LAT
    cos_lat = math.cos(math.radians(lat))
    lng_delta = lat_delta / cos_lat if cos_lat > 1e-9 else 180.0
    return [[lng - lng_delta, lat - lat_delta], [lng + lng_delta, lat + lat_delta]]


def geometry_bounds(coordinates: Any) -> Dict[str, float]:
    """Bounding box of arbitrarily nested GeoJSON coordinate arrays.

    Returns:
        Dict with north, south, east and west keys
    """
    west = south = math.inf
    east = north = -math.inf
    stack = [coordinates]
    while stack:
        item = stack.pop()
        if not item:
            continue
        if isinstance(item[0], (list, tuple)):
            stack.extend(item)
            continue
        lng, lat = float(item[0]), float(item[1])
        west, east = min(west, lng), max(east, lng)
        south, north = min(south, lat), max(north, lat)
    if west == math.inf:
        return {"north": 0.0, "south": 0.0, "east": 0.0, "west": 0.0}
    return {"north": north, "south": south, "east": east, "west": west}


def format_duration(seconds: float) -> str:
    if seconds < 60:
        return f"{round(seconds)}s"
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def format_distance(meters: float) -> str:
    if meters < 1000:
        return f"{round(meters)} m"
    return f"{meters / 1000:.1f} km"


def format_area(sq_km: float) -> str:
    if sq_km < 1:
        return f"{round(sq_km * 1_000_000):,} m²"
    return f"{sq_km:.1f} km²"
