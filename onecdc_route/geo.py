"""Great-circle helpers used when the routing service cannot supply distances."""
from __future__ import annotations

import math
from typing import Mapping, Sequence

from .models import LatLng, Waypoint

EARTH_RADIUS_METERS = 6371000.0


def haversine_meters(a: LatLng, b: LatLng) -> float:
    """Approximate distance in meters between two WGS84 coordinates."""
    lat1, lon1 = math.radians(a.lat), math.radians(a.lng)
    lat2, lon2 = math.radians(b.lat), math.radians(b.lng)
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    hav = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.asin(math.sqrt(hav))


def path_distance_meters(points: Sequence[LatLng]) -> float:
    return sum(haversine_meters(points[i], points[i + 1]) for i in range(len(points) - 1))


def validate_coordinates(lat: float, lng: float) -> bool:
    return -90 <= lat <= 90 and -180 <= lng <= 180


def map_center(origin: LatLng, waypoints: Sequence[Waypoint]) -> LatLng:
    """Average of the origin and all displayed waypoints."""
    if not waypoints:
        return origin
    count = len(waypoints) + 1
    lat = (origin.lat + sum(wp.lat for wp in waypoints)) / count
    lng = (origin.lng + sum(wp.lng for wp in waypoints)) / count
    return LatLng(lat=lat, lng=lng)


def default_location(config: Mapping[str, object]) -> LatLng:
    """Fallback origin (Marine Parade, Singapore) unless configured otherwise."""
    return LatLng(lat=float(config.get("DEFAULT_LAT", 1.3016)), lng=float(config.get("DEFAULT_LNG", 103.9056)))
