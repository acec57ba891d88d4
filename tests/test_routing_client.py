import asyncio

import pytest

from birdroute.http import RequestBudget, RequestMetrics
from birdroute.route_assembler import TripOptions
from birdroute.routing_client import (
    OsrmClient,
    OsrmSequentialRouter,
    OsrmTripOptimizer,
    build_coordinates,
    build_trip_params,
    parse_route_response,
    parse_trip_response,
)

from fakes import FakeResponse, make_http_client
from route_helpers import end_wp, start_wp, stop_wp

WAYPOINTS = [start_wp(), stop_wp("A", 10, 40.1, -75.1), stop_wp("B", 20, 40.2, -75.2), end_wp()]


def trip_payload(indexes, legs, geometry=None):
    return {
        "code": "Ok",
        "waypoints": [
            {"waypoint_index": idx, "trips_index": 0, "location": [-75.0, 40.0]} for idx in indexes
        ],
        "trips": [
            {
                "distance": sum(d for d, _ in legs),
                "duration": sum(t for _, t in legs),
                "legs": [{"distance": d, "duration": t} for d, t in legs],
                "geometry": geometry or {"type": "LineString", "coordinates": []},
            }
        ],
    }


def test_build_coordinates_uses_lng_lat_order():
    assert build_coordinates(WAYPOINTS[:2]) == "-75.000000,40.000000;-75.100000,40.100000"


def test_build_trip_params_round_trip():
    params = build_trip_params(TripOptions.for_trip(True))
    assert params["roundtrip"] == "true"
    assert params["source"] == "first"
    assert params["destination"] == "any"


def test_parse_trip_orders_by_waypoint_index():
    payload = trip_payload([0, 2, 1, 3], [(1000, 60), (2500, 150), (4000, 240)])
    route = parse_trip_response(WAYPOINTS, payload, round_trip=False)

    assert route.optimized
    assert [w.name for w in route.ordered_waypoints] == ["Start", "Hotspot B", "Hotspot A", "End"]
    assert [leg.distance_km for leg in route.legs] == [1.0, 2.5, 4.0]
    assert [leg.duration_sec for leg in route.legs] == [60, 150, 240]
    assert route.legs[1].from_index == 1 and route.legs[1].to_index == 2
    assert route.total_distance_km == pytest.approx(7.5)
    assert route.return_leg is None


def test_parse_trip_round_trip_splits_closing_leg():
    waypoints = WAYPOINTS[:3]
    payload = trip_payload([0, 1, 2], [(1000, 60), (1000, 60), (3000, 200)])
    route = parse_trip_response(waypoints, payload, round_trip=True)

    assert len(route.legs) == 2
    assert route.return_leg.from_index == 2
    assert route.return_leg.to_index == 0
    assert route.return_leg.duration_sec == 200
    assert route.is_consistent()


def test_parse_trip_rejects_errors_and_split_trips():
    assert parse_trip_response(WAYPOINTS, {"code": "NoTrips"}, round_trip=False) is None
    payload = trip_payload([0, 1, 2, 3], [(1, 1), (1, 1), (1, 1)])
    payload["waypoints"][2]["trips_index"] = 1
    assert parse_trip_response(WAYPOINTS, payload, round_trip=False) is None
    short = trip_payload([0, 1, 2, 3], [(1, 1), (1, 1)])
    assert parse_trip_response(WAYPOINTS, short, round_trip=False) is None


def test_parse_route_keeps_input_order():
    payload = {
        "code": "Ok",
        "routes": [
            {
                "distance": 6000,
                "duration": 420,
                "legs": [
                    {"distance": 1000, "duration": 60},
                    {"distance": 2000, "duration": 120},
                    {"distance": 3000, "duration": 240},
                ],
                "geometry": None,
            }
        ],
    }
    route = parse_route_response(WAYPOINTS, payload)
    assert not route.optimized
    assert route.ordered_waypoints == tuple(WAYPOINTS)
    assert route.total_duration_sec == 420


def test_trip_optimizer_calls_osrm_and_counts_budget():
    metrics = RequestMetrics()
    budget = RequestBudget(max_geocode=0, max_routing=5, metrics=metrics)
    http_client = make_http_client(
        {"/trip/v1/driving/": trip_payload([0, 2, 1, 3], [(1000, 60), (1000, 60), (1000, 60)])}
    )
    optimizer = OsrmTripOptimizer(OsrmClient(http_client, budget, base_url="http://osrm.test"))

    route = asyncio.run(optimizer.optimize(WAYPOINTS, TripOptions.for_trip(False)))

    assert route is not None
    assert metrics.network_routing == 1
    url, params = http_client.session.calls[0]
    assert url.startswith("http://osrm.test/trip/v1/driving/-75.000000,40.000000;")
    assert params["destination"] == "last"


def test_trip_optimizer_http_error_reads_as_none():
    budget = RequestBudget(max_geocode=0, max_routing=5)
    http_client = make_http_client({"/trip/": FakeResponse({"code": "NoTrips"}, status_code=400)})
    optimizer = OsrmTripOptimizer(OsrmClient(http_client, budget, base_url="http://osrm.test"))
    assert asyncio.run(optimizer.optimize(WAYPOINTS, TripOptions.for_trip(False))) is None


def test_sequential_router_unusable_response_reads_as_none():
    budget = RequestBudget(max_geocode=0, max_routing=5)
    http_client = make_http_client({"/route/": {"code": "NoRoute"}})
    router = OsrmSequentialRouter(OsrmClient(http_client, budget, base_url="http://osrm.test"))
    assert asyncio.run(router.route_in_order(WAYPOINTS)) is None
