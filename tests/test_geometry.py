import pytest
import requests

from conftest import FakeRoutesClient, make_leg
from onecdc_route.geo import haversine_meters
from onecdc_route.geometry import AbortSignal, RouteComputationAborted, fetch_route, stitch
from onecdc_route.models import LatLng, RouteSource, TransportMode, Waypoint
from onecdc_route.routes_client import RoutesApiError

ORIGIN = LatLng(lat=1.30, lng=103.80)
SHOP_A = Waypoint(id="a", name="Shop A", lat=1.31, lng=103.81)
SHOP_B = Waypoint(id="b", name="Shop B", lat=1.32, lng=103.83)


def _coords(path):
    return [(point.lat, point.lng) for point in path]


def test_stitch_skips_shared_junction_point():
    path = [LatLng(lat=1.0, lng=2.0), LatLng(lat=1.1, lng=2.1)]

    stitch(path, [LatLng(lat=1.1, lng=2.1), LatLng(lat=1.2, lng=2.2)])

    assert _coords(path) == [(1.0, 2.0), (1.1, 2.1), (1.2, 2.2)]


def test_stitch_keeps_distinct_junction_points():
    path = [LatLng(lat=1.0, lng=2.0)]

    stitch(path, [LatLng(lat=1.05, lng=2.05), LatLng(lat=1.2, lng=2.2)])

    assert len(path) == 3


def test_walking_single_leg_uses_service_totals():
    fake = FakeRoutesClient(
        [make_leg([(1.30, 103.80), (1.305, 103.805), (1.31, 103.81)], distance=1500, duration="900s")]
    )

    result = fetch_route(ORIGIN, [SHOP_A], TransportMode.WALKING, client=fake)

    assert result.total_distance_meters == 1500
    assert result.total_duration_seconds == 900
    assert _coords(result.path) == [(1.30, 103.80), (1.305, 103.805), (1.31, 103.81)]
    assert result.source == RouteSource.ROUTES_API
    assert fake.calls[0]["destination"] == SHOP_A.to_latlng()
    assert fake.calls[0]["intermediates"] == []


def test_multi_stop_request_uses_intermediates_and_stitches_legs():
    fake = FakeRoutesClient(
        [
            make_leg([(1.30, 103.80), (1.31, 103.81)], distance=1000, duration="600s"),
            make_leg([(1.31, 103.81), (1.32, 103.83)], distance=2000, duration="700s"),
        ]
    )

    result = fetch_route(ORIGIN, [SHOP_A, SHOP_B], TransportMode.DRIVING, client=fake)

    assert len(fake.calls) == 1
    assert fake.calls[0]["intermediates"] == [SHOP_A.to_latlng()]
    assert fake.calls[0]["destination"] == SHOP_B.to_latlng()
    assert fake.calls[0]["mode"] == TransportMode.DRIVING
    assert _coords(result.path) == [(1.30, 103.80), (1.31, 103.81), (1.32, 103.83)]
    assert _coords(result.path).count((1.31, 103.81)) == 1
    assert result.total_distance_meters == 3000
    assert result.total_duration_seconds == 1300
    assert len(result.legs) == 2


def test_leg_without_polyline_draws_straight_segment():
    fake = FakeRoutesClient(
        [
            make_leg([(1.30, 103.80), (1.31, 103.81)], distance=1000, duration="60s"),
            {"distanceMeters": 500, "duration": "30s"},
        ]
    )

    result = fetch_route(ORIGIN, [SHOP_A, SHOP_B], TransportMode.WALKING, client=fake)

    assert _coords(result.path) == [(1.30, 103.80), (1.31, 103.81), (1.32, 103.83)]
    assert result.total_distance_meters == 1500
    assert result.total_duration_seconds == 90


def test_service_failure_falls_back_to_straight_line():
    fake = FakeRoutesClient(RoutesApiError("boom"))

    result = fetch_route(ORIGIN, [SHOP_A], TransportMode.WALKING, client=fake)

    assert _coords(result.path) == [(1.30, 103.80), (1.31, 103.81)]
    assert result.total_duration_seconds is None
    assert result.source == RouteSource.FALLBACK
    # Geodesic distance for this pair is about 1569 m.
    assert result.total_distance_meters == pytest.approx(1569, rel=0.01)
    assert result.total_distance_meters == pytest.approx(haversine_meters(ORIGIN, SHOP_A.to_latlng()))


def test_fallback_passes_through_every_waypoint():
    fake = FakeRoutesClient(RoutesApiError("boom"))

    result = fetch_route(ORIGIN, [SHOP_A, SHOP_B], TransportMode.DRIVING, client=fake)

    assert _coords(result.path) == [(1.30, 103.80), (1.31, 103.81), (1.32, 103.83)]
    expected = haversine_meters(ORIGIN, SHOP_A.to_latlng()) + haversine_meters(SHOP_A.to_latlng(), SHOP_B.to_latlng())
    assert result.total_distance_meters == pytest.approx(expected)


def test_transit_requests_each_leg_separately():
    fake = FakeRoutesClient(
        [make_leg([(1.30, 103.80), (1.305, 103.806), (1.31, 103.81)], distance=1200, duration="800s")],
        [make_leg([(1.31, 103.81), (1.32, 103.83)], distance=2500, duration="900s")],
    )

    result = fetch_route(ORIGIN, [SHOP_A, SHOP_B], TransportMode.TRANSIT, client=fake)

    assert len(fake.calls) == 2
    assert all(call["intermediates"] == [] for call in fake.calls)
    assert fake.calls[1]["origin"] == SHOP_A.to_latlng()
    assert _coords(result.path) == [(1.30, 103.80), (1.305, 103.806), (1.31, 103.81), (1.32, 103.83)]
    assert result.total_distance_meters == 3700
    assert result.total_duration_seconds == 1700
    assert result.source == RouteSource.ROUTES_API


def test_transit_partial_failure_keeps_service_duration():
    fake = FakeRoutesClient(
        [make_leg([(1.30, 103.80), (1.31, 103.81)], distance=1200, duration="800s")],
        RoutesApiError("leg failed"),
    )

    result = fetch_route(ORIGIN, [SHOP_A, SHOP_B], TransportMode.TRANSIT, client=fake)

    assert result.source == RouteSource.PARTIAL
    assert result.total_distance_meters == 1200
    assert result.total_duration_seconds == 800
    assert _coords(result.path) == [(1.30, 103.80), (1.31, 103.81), (1.32, 103.83)]


def test_transit_total_failure_falls_back():
    fake = FakeRoutesClient(RoutesApiError("down"), RoutesApiError("down"))

    result = fetch_route(ORIGIN, [SHOP_A, SHOP_B], TransportMode.TRANSIT, client=fake)

    assert result.source == RouteSource.FALLBACK
    assert result.total_duration_seconds is None
    assert result.total_distance_meters > 0


def test_aborted_signal_prevents_any_request():
    fake = FakeRoutesClient([make_leg([(1.30, 103.80), (1.31, 103.81)])])
    signal = AbortSignal()
    signal.abort()

    with pytest.raises(RouteComputationAborted):
        fetch_route(ORIGIN, [SHOP_A], TransportMode.WALKING, client=fake, signal=signal)
    assert fake.calls == []


def test_abort_during_request_discards_result():
    signal = AbortSignal()

    class AbortingClient(FakeRoutesClient):
        def compute_route_legs(self, *args, **kwargs):
            legs = super().compute_route_legs(*args, **kwargs)
            signal.abort()
            return legs

    fake = AbortingClient([make_leg([(1.30, 103.80), (1.31, 103.81)], distance=10, duration="1s")])

    with pytest.raises(RouteComputationAborted):
        fetch_route(ORIGIN, [SHOP_A], TransportMode.WALKING, client=fake, signal=signal)


def test_route_requires_waypoints():
    with pytest.raises(ValueError):
        fetch_route(ORIGIN, [], TransportMode.WALKING, client=FakeRoutesClient())


def test_transport_error_falls_back_to_straight_line():
    fake = FakeRoutesClient(ConnectionError("socket closed"))

    result = fetch_route(ORIGIN, [SHOP_A], TransportMode.WALKING, client=fake)

    assert result.source == RouteSource.FALLBACK
    assert result.total_duration_seconds is None
    assert _coords(result.path) == [(1.30, 103.80), (1.31, 103.81)]


def test_transit_leg_timeout_draws_straight_segment():
    fake = FakeRoutesClient(
        [make_leg([(1.30, 103.80), (1.31, 103.81)], distance=1200, duration="800s")],
        requests.Timeout("read timed out"),
    )

    result = fetch_route(ORIGIN, [SHOP_A, SHOP_B], TransportMode.TRANSIT, client=fake)

    assert result.source == RouteSource.PARTIAL
    assert result.total_duration_seconds == 800
    assert _coords(result.path) == [(1.30, 103.80), (1.31, 103.81), (1.32, 103.83)]


@pytest.mark.parametrize("mode", [TransportMode.WALKING, TransportMode.TRANSIT])
def test_single_point_geometry_is_replaced_by_waypoints(mode):
    fake = FakeRoutesClient([make_leg([(1.30, 103.80)], distance=10, duration="5s")])

    result = fetch_route(ORIGIN, [SHOP_A], mode, client=fake)

    assert _coords(result.path) == [(1.30, 103.80), (1.31, 103.81)]
    assert result.total_distance_meters == 10
    assert result.total_duration_seconds == 5
    assert result.source == RouteSource.ROUTES_API


def test_transit_leg_without_polyline_draws_straight_segment():
    fake = FakeRoutesClient(
        [make_leg([(1.30, 103.80), (1.31, 103.81)], distance=10, duration="5s")],
        [{"distanceMeters": 20, "duration": "7s"}],
    )

    result = fetch_route(ORIGIN, [SHOP_A, SHOP_B], TransportMode.TRANSIT, client=fake)

    assert _coords(result.path) == [(1.30, 103.80), (1.31, 103.81), (1.32, 103.83)]
    assert result.total_distance_meters == 30
    assert result.total_duration_seconds == 12
    assert result.source == RouteSource.ROUTES_API
