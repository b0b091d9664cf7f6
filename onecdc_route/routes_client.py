"""Thin wrapper around the Google Routes API (``directions/v2:computeRoutes``)."""
from __future__ import annotations

import logging
import os
import threading
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

import requests

from .models import LatLng, TransportMode, Waypoint
from .normalizer import Resolved, normalize_waypoint
from .totals import parse_duration_seconds

ROUTES_API_URL = os.getenv("ROUTES_API_URL", "https://routes.googleapis.com/directions/v2:computeRoutes")
REQUEST_TIMEOUT = float(os.getenv("ROUTES_REQUEST_TIMEOUT", "10"))

LEG_FIELD_MASK = "routes.legs.polyline.encodedPolyline,routes.legs.distanceMeters,routes.legs.duration"
OPTIMIZED_FIELD_MASK = (
    "routes.duration,routes.distanceMeters,routes.polyline.encodedPolyline,"
    "routes.legs,routes.optimizedIntermediateWaypointIndex"
)

TRAVEL_MODES = {
    TransportMode.WALKING: "WALK",
    TransportMode.DRIVING: "DRIVE",
    TransportMode.TRANSIT: "TRANSIT",
}

logger = logging.getLogger(__name__)


class RoutesApiError(RuntimeError):
    """Raised when the Routes API cannot produce a usable response."""


class RoutingRateLimitError(RoutesApiError):
    """Raised when the outbound routing quota is exhausted."""


class RoutingQuota:
    """Sliding per-minute and per-day windows for outbound routing calls."""

    def __init__(self, minute_limit: int, daily_limit: int) -> None:
        self.minute_limit = minute_limit
        self.daily_limit = daily_limit
        self._minute_window: deque = deque()
        self._day_window: deque = deque()
        self._lock = threading.Lock()

    def acquire(self) -> None:
        if self.minute_limit <= 0 and self.daily_limit <= 0:
            return

        now = datetime.now(timezone.utc)
        with self._lock:
            if self.daily_limit > 0:
                threshold_day = now - timedelta(days=1)
                while self._day_window and self._day_window[0] < threshold_day:
                    self._day_window.popleft()
            if self.minute_limit > 0:
                threshold_minute = now - timedelta(minutes=1)
                while self._minute_window and self._minute_window[0] < threshold_minute:
                    self._minute_window.popleft()

            if self.daily_limit > 0 and len(self._day_window) >= self.daily_limit:
                raise RoutingRateLimitError("daily routing request limit reached")
            if self.minute_limit > 0 and len(self._minute_window) >= self.minute_limit:
                raise RoutingRateLimitError("per-minute routing request limit reached")

            self._day_window.append(now)
            self._minute_window.append(now)

    def reset(self) -> None:
        with self._lock:
            self._minute_window.clear()
            self._day_window.clear()


routing_quota = RoutingQuota(
    minute_limit=int(os.getenv("ROUTING_MINUTE_LIMIT", "60")),
    daily_limit=int(os.getenv("ROUTING_DAILY_LIMIT", "5000")),
)


def _get_api_key() -> str:
    return os.getenv("GOOGLE_MAPS_API_KEY", "")


def _location(point: Any) -> Dict[str, object]:
    return {"location": {"latLng": {"latitude": point.lat, "longitude": point.lng}}}


def _post(body: Dict[str, object], field_mask: str) -> Dict[str, Any]:
    api_key = _get_api_key()
    if not api_key:
        raise RoutesApiError("GOOGLE_MAPS_API_KEY is not configured")

    routing_quota.acquire()
    headers = {
        "Content-Type": "application/json",
        "X-Goog-Api-Key": api_key,
        "X-Goog-FieldMask": field_mask,
    }
    try:
        response = requests.post(ROUTES_API_URL, json=body, headers=headers, timeout=REQUEST_TIMEOUT)
        response.raise_for_status()
        data = response.json()
    except requests.RequestException as exc:
        raise RoutesApiError(f"Routes API request failed: {exc}") from exc
    except ValueError as exc:
        raise RoutesApiError("Routes API returned invalid JSON") from exc
    if not isinstance(data, dict):
        raise RoutesApiError("Routes API returned an unexpected payload")
    return data


def _first_route(data: Dict[str, Any]) -> Dict[str, Any]:
    routes = data.get("routes")
    if not isinstance(routes, list) or not routes or not isinstance(routes[0], dict):
        raise RoutesApiError("no routes found")
    return routes[0]


def compute_route_legs(
    origin: LatLng,
    destination: LatLng,
    intermediates: Sequence[LatLng] = (),
    mode: TransportMode = TransportMode.WALKING,
) -> List[Dict[str, Any]]:
    """Return ``routes[0].legs`` for origin -> intermediates -> destination."""
    body: Dict[str, object] = {
        "origin": _location(origin),
        "destination": _location(destination),
        "travelMode": TRAVEL_MODES.get(mode, "WALK"),
        "computeAlternativeRoutes": False,
        "polylineEncoding": "ENCODED_POLYLINE",
    }
    if intermediates:
        body["intermediates"] = [_location(point) for point in intermediates]

    route = _first_route(_post(body, LEG_FIELD_MASK))
    legs = route.get("legs")
    if not isinstance(legs, list) or not legs:
        raise RoutesApiError("route has no legs")
    return legs


def compute_optimized_route(
    origin: LatLng,
    destinations: Sequence[Any],
    mode: TransportMode = TransportMode.WALKING,
) -> Dict[str, object]:
    """Ask the Routes API for the most efficient order of the given shops.

    The route is one-way: it ends at the last destination instead of returning
    to the origin, and only the intermediate shops are reordered.
    """
    shops: List[Waypoint] = []
    for record in destinations:
        result = normalize_waypoint(record)
        if isinstance(result, Resolved):
            shops.append(result.waypoint)
        else:
            logger.warning("Skipping destination: %s", result.reason)
    if not shops:
        raise ValueError("no destination has resolvable coordinates")

    last_shop = shops[-1]
    intermediates = shops[:-1]
    body = {
        "origin": _location(origin),
        "destination": _location(last_shop),
        "intermediates": [_location(shop) for shop in intermediates],
        "travelMode": TRAVEL_MODES.get(mode, "WALK"),
        "optimizeWaypointOrder": True,
        "computeAlternativeRoutes": False,
        "routeModifiers": {"avoidTolls": False, "avoidHighways": False, "avoidFerries": False},
        "languageCode": "en-US",
        "units": "METRIC",
    }

    try:
        route = _first_route(_post(body, OPTIMIZED_FIELD_MASK))
    except RoutesApiError as exc:
        logger.error("Route generation error: %s", exc)
        raise

    indices = route.get("optimizedIntermediateWaypointIndex") or []
    ordered: List[Waypoint] = []
    for index in indices:
        if isinstance(index, int) and 0 <= index < len(intermediates):
            ordered.append(intermediates[index])
    if len(ordered) != len(intermediates):
        ordered = list(intermediates)
    ordered.append(last_shop)

    polyline: Optional[str] = (route.get("polyline") or {}).get("encodedPolyline") or ""
    return {
        "totalDistance": route.get("distanceMeters") or 0,
        "totalDuration": parse_duration_seconds(route.get("duration")),
        "optimizedOrder": [
            {"shopId": shop.id, "shopName": shop.name, "address": shop.address, "lat": shop.lat, "lng": shop.lng}
            for shop in ordered
        ],
        "polyline": polyline,
        "legs": route.get("legs") or [],
        "mode": mode.value,
    }
