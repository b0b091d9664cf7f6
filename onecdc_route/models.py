"""Data models for route view requests and computed routes."""
from __future__ import annotations

import math
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class TransportMode(str, Enum):
    WALKING = "walking"
    DRIVING = "driving"
    TRANSIT = "transit"

    @classmethod
    def parse(cls, value: Optional[str]) -> "TransportMode":
        """Map a free-form mode string to a mode, defaulting to walking."""
        normalized = str(value or "").strip().lower()
        for mode in cls:
            if mode.value == normalized:
                return mode
        return cls.WALKING


class RouteSource(str, Enum):
    ROUTES_API = "routes_api"
    PARTIAL = "partial"
    FALLBACK = "fallback"


class LatLng(BaseModel):
    """A WGS84 coordinate pair."""

    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float

    @field_validator("lat", "lng")
    def validate_finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("coordinate must be a finite number")
        return value


class Waypoint(BaseModel):
    """A shop location resolved from one of the upstream record shapes."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    address: Optional[str] = None
    lat: float
    lng: float

    @field_validator("lat", "lng")
    def validate_finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("coordinate must be a finite number")
        return value

    def to_latlng(self) -> LatLng:
        return LatLng(lat=self.lat, lng=self.lng)


class RouteLeg(BaseModel):
    """One segment between two consecutive points of the route."""

    distance_meters: int = 0
    duration_seconds: int = 0
    path: List[LatLng] = Field(default_factory=list)


class RouteTotals(BaseModel):
    """Distance and duration for the displayed waypoints.

    ``total_duration_seconds`` is ``None`` when only a straight-line estimate
    is available, which is not the same as a zero-length trip.
    """

    total_distance_meters: float = 0.0
    total_duration_seconds: Optional[int] = None


class RouteResult(BaseModel):
    """Drawable path plus totals for one route computation."""

    total_distance_meters: float
    total_duration_seconds: Optional[int] = None
    path: List[LatLng]
    mode: TransportMode
    source: RouteSource = RouteSource.ROUTES_API
    legs: List[RouteLeg] = Field(default_factory=list)


class BackendRouteData(BaseModel):
    """Route previously generated by the backend and carried over from the cart."""

    model_config = ConfigDict(populate_by_name=True)

    total_distance: Optional[float] = Field(default=None, alias="totalDistance")
    total_duration: Optional[float] = Field(default=None, alias="totalDuration")
    optimized_order: Optional[List[Any]] = Field(default=None, alias="optimizedOrder")
    polyline: Optional[str] = None
    legs: Optional[List[Any]] = None
    mode: Optional[str] = None


class RouteViewRequest(BaseModel):
    """Navigation payload handed from the cart to the route view."""

    model_config = ConfigDict(populate_by_name=True)

    origin: Optional[LatLng] = None
    origin_address: Optional[str] = Field(default=None, alias="originAddress")
    route_data: Optional[BackendRouteData] = Field(default=None, alias="routeData")
    transport_mode: Optional[str] = Field(default=None, alias="transportMode")
    selected_shop_ids: Optional[List[str]] = Field(default=None, alias="selectedShopIds")
    selected_count: Optional[int] = Field(default=None, alias="selectedCount")
    selected_shops_detailed: Optional[List[Any]] = Field(default=None, alias="selectedShopsDetailed")

    def resolve_mode(self) -> TransportMode:
        """Explicit transport mode first, then the backend route's mode."""
        if self.transport_mode:
            return TransportMode.parse(self.transport_mode)
        if self.route_data is not None and self.route_data.mode:
            return TransportMode.parse(self.route_data.mode)
        return TransportMode.WALKING


class GenerateRouteRequest(BaseModel):
    """API payload asking the backend to order the cart's shops."""

    origin: Optional[LatLng] = None
    destinations: List[Any]
    mode: TransportMode = TransportMode.WALKING

    @field_validator("destinations")
    def validate_destinations(cls, value: List[Any]) -> List[Any]:
        if not value:
            raise ValueError("at least one destination is required")
        return value

    @model_validator(mode="before")
    @classmethod
    def normalize_mode(cls, values: Any) -> Any:
        if isinstance(values, dict) and "mode" in values:
            values = dict(values)
            values["mode"] = TransportMode.parse(values.get("mode"))
        return values


class TaskStatus(BaseModel):
    """State of a background route computation."""

    task_id: str
    session_id: str
    status: str
    error: Optional[str] = None
    result: Optional[dict] = None
