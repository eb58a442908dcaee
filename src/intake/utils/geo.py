import math
from typing import Iterable, Optional

from intake.models.photo import GeoPoint

# Mean Earth radius in meters
EARTH_RADIUS_M = 6371000.0


def haversine_distance_m(a: GeoPoint, b: GeoPoint) -> float:
    """
    Great-circle distance between two points in meters.

    Args:
        a, b: Points in decimal degrees

    Returns:
        Distance in meters
    """
    lat1_rad = math.radians(a.lat)
    lat2_rad = math.radians(b.lat)
    delta_lat = math.radians(b.lat - a.lat)
    delta_lon = math.radians(b.lon - a.lon)

    h = (
        math.sin(delta_lat / 2) ** 2 +
        math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_M * c


def centroid(points: Iterable[Optional[GeoPoint]]) -> Optional[GeoPoint]:
    """Arithmetic mean of lat and lon, ignoring missing points."""
    valid = [p for p in points if p is not None]
    if not valid:
        return None
    return GeoPoint(
        lat=sum(p.lat for p in valid) / len(valid),
        lon=sum(p.lon for p in valid) / len(valid),
    )
