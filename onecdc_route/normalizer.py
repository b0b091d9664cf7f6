"""Reconcile backend-ordered and cart-selected shop records into waypoints.

Shops reach the route view from two producers with different schemas: the
backend route generator (``optimizedOrder``) and the cart page
(``selectedShopsDetailed``). Every record goes through :func:`normalize_waypoint`,
which tries an ordered list of extractors per field and either resolves a
:class:`~onecdc_route.models.Waypoint` or rejects the record with a reason.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .geo import validate_coordinates
from .models import Waypoint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Resolved:
    waypoint: Waypoint


@dataclass(frozen=True)
class Rejected:
    reason: str
    record: Any = None


NormalizationResult = Union[Resolved, Rejected]


def _dig(record: Any, *path: str) -> Any:
    current = record
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _text_at(*path: str) -> Callable[[Any], Optional[str]]:
    def extract(record: Any) -> Optional[str]:
        value = _dig(record, *path)
        if isinstance(value, str) and value:
            return value
        return None

    return extract


def _flat_pair(*path: str) -> Callable[[Any], Optional[Tuple[float, float]]]:
    def extract(record: Any) -> Optional[Tuple[float, float]]:
        container = _dig(record, *path) if path else record
        if not isinstance(container, dict):
            return None
        lat, lng = container.get("lat"), container.get("lng")
        if _is_number(lat) and _is_number(lng):
            return float(lat), float(lng)
        return None

    return extract


def _geojson_pair(*path: str) -> Callable[[Any], Optional[Tuple[float, float]]]:
    def extract(record: Any) -> Optional[Tuple[float, float]]:
        coordinates = _dig(record, *path)
        if not isinstance(coordinates, (list, tuple)) or len(coordinates) < 2:
            return None
        lng, lat = coordinates[0], coordinates[1]
        if _is_number(lat) and _is_number(lng):
            return float(lat), float(lng)
        return None

    return extract


ID_EXTRACTORS = (
    _text_at("shopId"),
    _text_at("id"),
    _text_at("_id"),
    _text_at("shop", "id"),
    _text_at("shop", "_id"),
)
NAME_EXTRACTORS = (
    _text_at("shopName"),
    _text_at("name"),
    _text_at("shop", "name"),
)
ADDRESS_EXTRACTORS = (
    _text_at("address"),
    _text_at("shop", "address"),
)
COORDINATE_EXTRACTORS = (
    _flat_pair(),
    _flat_pair("location"),
    _geojson_pair("location", "coordinates"),
    _geojson_pair("coordinates"),
    _geojson_pair("shop", "location", "coordinates"),
)


def _first(extractors: Sequence[Callable[[Any], Any]], record: Any) -> Any:
    for extractor in extractors:
        value = extractor(record)
        if value is not None:
            return value
    return None


def normalize_waypoint(record: Any) -> NormalizationResult:
    if not isinstance(record, dict):
        return Rejected("record is not an object", record)

    shop_id = _first(ID_EXTRACTORS, record)
    if shop_id is None:
        return Rejected("no shop id", record)
    name = _first(NAME_EXTRACTORS, record)
    if name is None:
        return Rejected(f"shop {shop_id} has no name", record)
    coords = _first(COORDINATE_EXTRACTORS, record)
    if coords is None:
        return Rejected(f"shop {shop_id} has no usable coordinates", record)

    lat, lng = coords
    if not validate_coordinates(lat, lng):
        return Rejected(f"shop {shop_id} coordinates out of range", record)
    waypoint = Waypoint(id=shop_id, name=name, address=_first(ADDRESS_EXTRACTORS, record), lat=lat, lng=lng)
    return Resolved(waypoint)


def normalize_waypoints(records: Optional[Iterable[Any]], *, source: str = "records") -> List[Waypoint]:
    waypoints: List[Waypoint] = []
    for record in records or []:
        result = normalize_waypoint(record)
        if isinstance(result, Resolved):
            waypoints.append(result.waypoint)
        else:
            logger.debug("Dropping %s entry: %s", source, result.reason)
    return waypoints


def merge_waypoints(backend_order: Sequence[Waypoint], cart_selection: Sequence[Waypoint]) -> List[Waypoint]:
    """Union keyed by shop id; cart entries override backend ones."""
    by_id: Dict[str, Waypoint] = {}
    for waypoint in backend_order:
        by_id[waypoint.id] = waypoint
    for waypoint in cart_selection:
        by_id[waypoint.id] = waypoint
    return list(by_id.values())


def order_waypoints(
    merged: Sequence[Waypoint],
    selected_ids: Optional[Sequence[str]] = None,
    selected_count: Optional[int] = None,
) -> List[Waypoint]:
    if selected_ids:
        by_id = {waypoint.id: waypoint for waypoint in merged}
        ordered: List[Waypoint] = []
        seen = set()
        for shop_id in selected_ids:
            waypoint = by_id.get(shop_id)
            if waypoint is None or shop_id in seen:
                continue
            seen.add(shop_id)
            ordered.append(waypoint)
        return ordered
    if selected_count is not None and selected_count >= 0:
        return list(merged[:selected_count])
    return list(merged)


def resolve_displayed_waypoints(
    backend_order: Optional[Iterable[Any]],
    cart_selection: Optional[Iterable[Any]],
    selected_ids: Optional[Sequence[str]] = None,
    selected_count: Optional[int] = None,
) -> List[Waypoint]:
    """Normalize both sources, merge them and apply the shopper's selection."""
    merged = merge_waypoints(
        normalize_waypoints(backend_order, source="backend"),
        normalize_waypoints(cart_selection, source="cart"),
    )
    return order_waypoints(merged, selected_ids, selected_count)
