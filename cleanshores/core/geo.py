from __future__ import annotations
import math
from typing import NamedTuple

# mean Earth radius (IUGG)
EARTH_RADIUS_M = 6_371_008.8

class Point(NamedTuple):
    lat: float
    lng: float

def distance_meters(a: Point, b: Point) -> float:
    """Great-circle (haversine) distance between two (lat, lng) points, in metres."""
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    dphi = math.radians(b.lat - a.lat)
    dlmb = math.radians(b.lng - a.lng)
    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    # rounding can push h just outside [0, 1] near the poles / antipodes
    h = min(1.0, max(0.0, h))
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(h))

def within_geofence(user: Point, center: Point, radius_km: float) -> bool:
    return distance_meters(user, center) <= radius_km * 1000
