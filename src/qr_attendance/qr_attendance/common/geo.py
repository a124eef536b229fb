"""Great-circle distance helpers used by the geofence check."""

from __future__ import annotations

import math
from dataclasses import dataclass

# Mean equatorial radius, in metres.
EARTH_RADIUS_M = 6378137


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float


def distance_meters(a: GeoPoint, b: GeoPoint) -> int:
    """Haversine distance between two points, rounded to whole metres."""

    phi1, phi2 = math.radians(a.lat), math.radians(b.lat)
    dphi = math.radians(b.lat - a.lat)
    dlambda = math.radians(b.lng - a.lng)
    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    h = min(1.0, max(0.0, h))
    return int(round(EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))))
