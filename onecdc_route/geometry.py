"""Fetch, decode and stitch route geometry for an ordered list of waypoints.

Ordering is always supplied by the caller; nothing here reorders stops. When
the Routes API is unavailable the route degrades to straight segments through
every waypoint, with haversine distance and an unknown duration.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, List, Optional, Sequence

import requests

from . import routes_client
from .models import LatLng, RouteLeg, RouteResult, RouteSource, TransportMode, Waypoint
from .polyline import decode_polyline
from .routes_client import RoutesApiError
from .totals import fallback_totals, leg_distance_meters, leg_duration_seconds, sum_leg_totals

logger = logging.getLogger(__name__)

# Failures that degrade a route to straight segments instead of propagating.
ROUTING_FAILURES = (RoutesApiError, requests.RequestException, OSError)


class RouteComputationAborted(RuntimeError):
    """Raised when the consumer gave up on a route before it was committed."""


class AbortSignal:
    """Cancellation flag shared between a route computation and its owner."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def abort(self) -> None:
        self._event.set()

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    def raise_if_aborted(self) -> None:
        if self._event.is_set():
            raise RouteComputationAborted("route computation aborted")


def stitch(path: List[LatLng], segment: Sequence[LatLng]) -> None:
    """Append ``segment`` to ``path``, skipping a junction point shared exactly."""
    if not segment:
        return
    if path and path[-1] == segment[0]:
        path.extend(segment[1:])
    else:
        path.extend(segment)


def _leg_points(leg: Any) -> List[LatLng]:
    encoded = ((leg or {}).get("polyline") or {}).get("encodedPolyline") if isinstance(leg, dict) else None
    if not isinstance(encoded, str) or not encoded:
        return []
    try:
        return decode_polyline(encoded)
    except ValueError as exc:
        logger.warning("Ignoring undecodable leg polyline: %s", exc)
        return []


def _to_route_leg(leg: Any, points: List[LatLng]) -> RouteLeg:
    return RouteLeg(distance_meters=leg_distance_meters(leg), duration_seconds=leg_duration_seconds(leg), path=points)


def straight_line_route(points: Sequence[LatLng], mode: TransportMode) -> RouteResult:
    totals = fallback_totals(points)
    return RouteResult(
        total_distance_meters=totals.total_distance_meters,
        total_duration_seconds=None,
        path=list(points),
        mode=mode,
        source=RouteSource.FALLBACK,
    )


def _stitch_legs(points: Sequence[LatLng], legs: Sequence[Any]) -> tuple:
    """Stitch one multi-stop response; ``legs[i]`` joins ``points[i]`` and ``points[i + 1]``."""
    path: List[LatLng] = []
    route_legs: List[RouteLeg] = []
    for index, leg in enumerate(legs):
        leg_points = _leg_points(leg)
        if not leg_points and index + 1 < len(points):
            leg_points = [points[index], points[index + 1]]
        stitch(path, leg_points)
        route_legs.append(_to_route_leg(leg, leg_points))
    return path, route_legs


def _fetch_multi_stop(points: List[LatLng], mode: TransportMode, client: Any, signal: AbortSignal) -> RouteResult:
    signal.raise_if_aborted()
    try:
        legs = client.compute_route_legs(points[0], points[-1], points[1:-1], mode)
    except ROUTING_FAILURES as exc:
        logger.warning("Routes API failed for %s route, using straight segments: %s", mode.value, exc)
        signal.raise_if_aborted()
        return straight_line_route(points, mode)
    signal.raise_if_aborted()

    path, route_legs = _stitch_legs(points, legs)
    totals = sum_leg_totals(legs)
    if len(path) < 2:
        logger.warning("Routes API returned no geometry, drawing straight segments")
        path = list(points)
    return RouteResult(
        total_distance_meters=totals.total_distance_meters,
        total_duration_seconds=totals.total_duration_seconds,
        path=path,
        mode=mode,
        source=RouteSource.ROUTES_API,
        legs=route_legs,
    )


def _fetch_pairwise(points: List[LatLng], mode: TransportMode, client: Any, signal: AbortSignal) -> RouteResult:
    """Transit cannot take intermediates, so each leg is its own request."""
    path: List[LatLng] = []
    route_legs: List[RouteLeg] = []
    returned: List[Any] = []
    for leg_origin, leg_destination in zip(points, points[1:]):
        signal.raise_if_aborted()
        try:
            legs = client.compute_route_legs(leg_origin, leg_destination, (), mode)
        except ROUTING_FAILURES as exc:
            logger.warning("Transit leg request failed, drawing straight segment: %s", exc)
            stitch(path, [leg_origin, leg_destination])
            continue
        leg = legs[0]
        returned.append(leg)
        leg_points = _leg_points(leg) or [leg_origin, leg_destination]
        stitch(path, leg_points)
        route_legs.append(_to_route_leg(leg, leg_points))
    signal.raise_if_aborted()

    if not returned:
        logger.warning("No transit legs returned, using straight segments")
        return straight_line_route(points, mode)

    totals = sum_leg_totals(returned)
    if len(path) < 2:
        path = list(points)
    return RouteResult(
        total_distance_meters=totals.total_distance_meters,
        total_duration_seconds=totals.total_duration_seconds,
        path=path,
        mode=mode,
        source=RouteSource.ROUTES_API if len(returned) == len(points) - 1 else RouteSource.PARTIAL,
        legs=route_legs,
    )


def fetch_route(
    origin: LatLng,
    waypoints: Sequence[Waypoint],
    mode: TransportMode,
    *,
    client: Any = routes_client,
    signal: Optional[AbortSignal] = None,
) -> RouteResult:
    if not waypoints:
        raise ValueError("route requires at least one waypoint")

    signal = signal or AbortSignal()
    points = [origin] + [waypoint.to_latlng() for waypoint in waypoints]
    if mode == TransportMode.TRANSIT:
        return _fetch_pairwise(points, mode, client, signal)
    return _fetch_multi_stop(points, mode, client, signal)
