import math
from collections.abc import Sequence

from makemyway.schemas.route import GeoPoint

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE = 111.0


def haversine(a: GeoPoint, b: GeoPoint) -> float:
    """Distance in km between two points."""
    lat1, lng1, lat2, lng2 = map(math.radians, [a.lat, a.lng, b.lat, b.lng])
    dlat = lat2 - lat1
    dlng = lng2 - lng1
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def destination_point(center: GeoPoint, bearing_rad: float, radius_km: float) -> GeoPoint:
    """
    Offset a point by radius_km along bearing_rad (0 = north, clockwise).

    Flat-earth approximation: 1/111 degree per km on both axes, so east-west
    offsets shrink with latitude. The result is clamped at the poles and
    wrapped across the antimeridian.
    """
    offset_deg = radius_km / KM_PER_DEGREE
    lat = center.lat + math.cos(bearing_rad) * offset_deg
    lng = center.lng + math.sin(bearing_rad) * offset_deg
    return GeoPoint(lat=max(-90.0, min(90.0, lat)), lng=wrap_longitude(lng))


def wrap_longitude(lng: float) -> float:
    """Bring a longitude back into [-180, 180)."""
    if -180.0 <= lng < 180.0:
        return lng
    return (lng + 180.0) % 360.0 - 180.0


def path_length_km(points: Sequence[GeoPoint]) -> float:
    """Sum of great-circle distances between consecutive points."""
    total = 0.0
    for i in range(1, len(points)):
        total += haversine(points[i - 1], points[i])
    return total


def initial_bearing(a: GeoPoint, b: GeoPoint) -> float:
    """Initial bearing in radians from a to b, in [0, 2π)."""
    lat1, lng1, lat2, lng2 = map(math.radians, [a.lat, a.lng, b.lat, b.lng])
    dlng = lng2 - lng1
    x = math.sin(dlng) * math.cos(lat2)
    y = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(dlng)
    return math.atan2(x, y) % (2 * math.pi)


def interpolate(a: GeoPoint, b: GeoPoint, fraction: float) -> GeoPoint:
    """Point at `fraction` of the straight (lat/lng) line from a to b."""
    return GeoPoint(
        lat=a.lat + (b.lat - a.lat) * fraction,
        lng=a.lng + (b.lng - a.lng) * fraction,
    )
