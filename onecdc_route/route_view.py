"""Assemble the route view shown after the shopper leaves the cart."""
from __future__ import annotations

import logging
from itertools import chain
from typing import Any, Dict, Optional, Sequence
from urllib.parse import urlencode

from . import routes_client
from .geo import map_center
from .geometry import AbortSignal, fetch_route
from .models import LatLng, RouteViewRequest, TransportMode, Waypoint
from .normalizer import Rejected, normalize_waypoint, normalize_waypoints, resolve_displayed_waypoints

CART_VIEW = "/ViewCart"
NAVIGATION_URL = "https://www.google.com/maps/dir/"
DURATION_UNAVAILABLE = "Duration unavailable"

logger = logging.getLogger(__name__)


class RouteUnavailableError(ValueError):
    """There is nothing to draw; the consumer should go back to the cart."""

    redirect = CART_VIEW


def format_distance(meters: float) -> str:
    if meters < 1000:
        return f"{meters:.0f} m"
    return f"{meters / 1000:.2f} km"


def format_duration(seconds: Optional[float]) -> str:
    if seconds is None:
        return DURATION_UNAVAILABLE
    seconds = int(seconds)
    hours, minutes = seconds // 3600, (seconds % 3600) // 60
    return f"{hours}h {minutes}m" if hours > 0 else f"{minutes}m"


def navigation_url(origin: LatLng, waypoints: Sequence[Waypoint], mode: TransportMode) -> str:
    """Google Maps directions link for origin -> waypoints, ending at the last shop."""
    last = waypoints[-1]
    params = {
        "api": "1",
        "origin": f"{origin.lat},{origin.lng}",
        "destination": f"{last.lat},{last.lng}",
    }
    middle = waypoints[:-1]
    if middle:
        params["waypoints"] = "|".join(f"{wp.lat},{wp.lng}" for wp in middle)
    params["travelmode"] = mode.value
    return f"{NAVIGATION_URL}?{urlencode(params, safe=',|')}"


def _backend_covers(request: RouteViewRequest, waypoints: Sequence[Waypoint]) -> bool:
    """Backend totals only describe the displayed stops when both id sets match."""
    route_data = request.route_data
    if route_data is None or not route_data.total_duration:
        return False
    backend_ids = {waypoint.id for waypoint in normalize_waypoints(route_data.optimized_order, source="backend")}
    return backend_ids == {waypoint.id for waypoint in waypoints}


def build_route_view(
    request: RouteViewRequest,
    *,
    client: Any = routes_client,
    signal: Optional[AbortSignal] = None,
) -> Dict[str, Any]:
    if request.origin is None:
        raise RouteUnavailableError("origin is required to show a route")

    backend_order = (request.route_data.optimized_order if request.route_data else None) or []
    cart_selection = request.selected_shops_detailed or []
    waypoints = resolve_displayed_waypoints(
        backend_order,
        cart_selection,
        request.selected_shop_ids,
        request.selected_count,
    )
    if not waypoints:
        raise RouteUnavailableError("no selected shop has usable coordinates")

    mode = request.resolve_mode()
    result = fetch_route(request.origin, waypoints, mode, client=client, signal=signal)

    distance = result.total_distance_meters
    duration = result.total_duration_seconds
    if duration is None and _backend_covers(request, waypoints):
        duration = request.route_data.total_duration
    logger.info(
        "Route view ready: %s stops, %s, source=%s",
        len(waypoints),
        format_distance(distance),
        result.source.value,
    )

    # Dropped records are reported so the client can warn about a shorter route.
    displayed_ids = {waypoint.id for waypoint in waypoints}
    missing_ids = [shop_id for shop_id in request.selected_shop_ids or [] if shop_id not in displayed_ids]
    dropped = sum(
        1
        for record in chain(backend_order, cart_selection)
        if isinstance(normalize_waypoint(record), Rejected)
    )
    return {
        "origin": request.origin.model_dump(),
        "origin_address": request.origin_address,
        "mode": mode.value,
        "stops": [dict(waypoint.model_dump(), stop_number=index + 1) for index, waypoint in enumerate(waypoints)],
        "route": result.model_dump(mode="json"),
        "map_center": map_center(request.origin, waypoints).model_dump(),
        "display": {
            "distance": format_distance(distance),
            "duration": format_duration(duration),
        },
        "navigation_url": navigation_url(request.origin, waypoints, mode),
        "unresolved_shop_ids": missing_ids,
        "dropped_count": dropped,
    }
