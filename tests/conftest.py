import os
from typing import Any, List

import pytest

os.environ["GOOGLE_MAPS_API_KEY"] = "test-maps-key"
os.environ["LOG_LEVEL"] = "DEBUG"

from onecdc_route import create_app  # noqa: E402
from onecdc_route.models import LatLng  # noqa: E402
from onecdc_route.polyline import encode_polyline  # noqa: E402
from onecdc_route.routes_client import RoutesApiError, routing_quota  # noqa: E402


def make_leg(points, distance=0, duration="0s"):
    """Build a Routes API leg whose polyline decodes to ``points``."""
    encoded = encode_polyline([LatLng(lat=lat, lng=lng) for lat, lng in points])
    return {"distanceMeters": distance, "duration": duration, "polyline": {"encodedPolyline": encoded}}


class FakeRoutesClient:
    """Stands in for ``onecdc_route.routes_client``; replays queued responses."""

    def __init__(self, *responses: Any) -> None:
        self.responses: List[Any] = list(responses)
        self.calls: List[dict] = []

    def compute_route_legs(self, origin, destination, intermediates=(), mode=None):
        self.calls.append(
            {"origin": origin, "destination": destination, "intermediates": list(intermediates), "mode": mode}
        )
        if not self.responses:
            raise RoutesApiError("no response queued")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture(autouse=True)
def _reset_quota():
    routing_quota.reset()
    yield
    routing_quota.reset()


@pytest.fixture
def app():
    app = create_app({"TESTING": True, "ROUTE_WORKERS": 2})
    yield app
    app.extensions["route_sessions"].shutdown()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def fake_client():
    return FakeRoutesClient()
