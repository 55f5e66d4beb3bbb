"""Spherical geodesy helpers for the position-stream processor.

All coordinates are WGS84 degrees on a spherical Earth:
  - distances in kilometers (R = 6371 km)
  - bearings in degrees, 0 = north, clockwise, normalized to [0, 360)
"""

from __future__ import annotations

import math
from dataclasses import dataclass

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True, slots=True)
class GeoPoint:
    """WGS84 coordinate."""
    lat: float  # degrees, [-90, 90]
    lon: float  # degrees, [-180, 180]


def is_valid_coordinate(lat: float, lon: float) -> bool:
    """True if lat/lon are finite and inside their legal ranges."""
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0


def normalize_deg(angle: float) -> float:
    """Wrap an angle into [0, 360)."""
    wrapped = angle % 360.0
    # -1e-15 % 360 rounds to 360.0
    return 0.0 if wrapped >= 360.0 else wrapped


def angle_diff_deg(a: float, b: float) -> float:
    """Smallest absolute difference between two headings, in [0, 180]."""
    diff = abs(a - b) % 360.0
    if diff > 180.0:
        diff = 360.0 - diff
    return diff


def haversine_km(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance between two GPS points in kilometers."""
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    dlat = lat2 - lat1
    dlon = math.radians(b.lon - a.lon)
    h = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    )
    h = min(1.0, h)
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(h))


def initial_bearing_deg(a: GeoPoint, b: GeoPoint) -> float:
    """Initial great-circle bearing from a to b, in [0, 360)."""
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    dlon = math.radians(b.lon - a.lon)
    y = math.sin(dlon) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(dlon)
    return normalize_deg(math.degrees(math.atan2(y, x)))


def destination_point(origin: GeoPoint, bearing_deg: float, distance_km: float) -> GeoPoint:
    """Point reached by travelling distance_km from origin on an initial bearing."""
    delta = distance_km / EARTH_RADIUS_KM
    theta = math.radians(bearing_deg)
    lat1 = math.radians(origin.lat)
    lon1 = math.radians(origin.lon)

    lat2 = math.asin(
        math.sin(lat1) * math.cos(delta)
        + math.cos(lat1) * math.sin(delta) * math.cos(theta)
    )
    lon2 = lon1 + math.atan2(
        math.sin(theta) * math.sin(delta) * math.cos(lat1),
        math.cos(delta) - math.sin(lat1) * math.sin(lat2),
    )
    lon_deg = (math.degrees(lon2) + 540.0) % 360.0 - 180.0
    return GeoPoint(lat=math.degrees(lat2), lon=lon_deg)
