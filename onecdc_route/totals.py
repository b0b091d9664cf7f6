"""Distance and duration totals scoped to the displayed waypoints."""
from __future__ import annotations

import math
from typing import Any, Iterable, Optional, Sequence

from .geo import path_distance_meters
from .models import LatLng, RouteTotals


def parse_duration_seconds(value: Optional[Any]) -> int:
    """Parse a Routes API duration such as ``"125s"``; anything malformed is 0."""
    if not isinstance(value, str):
        return 0
    text = value.strip()
    if text.endswith("s"):
        text = text[:-1]
    try:
        seconds = float(text)
    except ValueError:
        return 0
    if not math.isfinite(seconds) or seconds < 0:
        return 0
    return int(seconds)


def leg_distance_meters(leg: Any) -> int:
    if not isinstance(leg, dict):
        return 0
    distance = leg.get("distanceMeters")
    if isinstance(distance, bool) or not isinstance(distance, (int, float)) or not math.isfinite(distance):
        return 0
    return int(max(0, distance))


def leg_duration_seconds(leg: Any) -> int:
    if not isinstance(leg, dict):
        return 0
    return parse_duration_seconds(leg.get("duration"))


def sum_leg_totals(legs: Iterable[Any]) -> RouteTotals:
    distance = 0
    duration = 0
    for leg in legs:
        distance += leg_distance_meters(leg)
        duration += leg_duration_seconds(leg)
    return RouteTotals(total_distance_meters=float(distance), total_duration_seconds=duration)


def fallback_totals(points: Sequence[LatLng]) -> RouteTotals:
    """Straight-line distance with an explicitly unknown duration."""
    return RouteTotals(total_distance_meters=path_distance_meters(points), total_duration_seconds=None)
