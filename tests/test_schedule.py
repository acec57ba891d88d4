from datetime import timedelta

import pytest

from birdroute.models import RouteResult, WaypointKind
from birdroute.schedule import build_schedule, default_visit_minutes

from route_helpers import end_wp, make_route, start_wp, stop_wp


def test_default_visit_minutes():
    assert default_visit_minutes(0) == 30
    assert default_visit_minutes(1) == 31
    assert default_visit_minutes(10) == 31
    assert default_visit_minutes(11) == 32
    assert default_visit_minutes(125) == 43


def test_arrivals_accumulate_leg_durations_and_dwell(trip_start):
    route = make_route([start_wp(), stop_wp("A", 50), end_wp()], [600, 300])
    stops = build_schedule(route, trip_start)

    first, second, third = stops
    assert first.arrival_time is None
    assert first.departure_time == trip_start
    assert first.suggested_visit_minutes == 0

    assert second.arrival_time == trip_start + timedelta(seconds=600)
    assert second.suggested_visit_minutes == 35
    assert second.departure_time == second.arrival_time + timedelta(minutes=35)

    assert third.arrival_time == second.arrival_time + timedelta(minutes=35, seconds=300)
    assert third.suggested_visit_minutes == 0
    assert third.departure_time is None


def test_stop_numbers_and_legs_to_next(trip_start):
    route = make_route([start_wp(), stop_wp("A", 5), stop_wp("B", 20), end_wp()], [60, 120, 180])
    stops = build_schedule(route, trip_start)

    assert [s.stop_number for s in stops] == [1, 2, 3, 4]
    assert [s.leg_to_next.duration_sec if s.leg_to_next else None for s in stops] == [60, 120, 180, None]
    assert [s.kind for s in stops] == [
        WaypointKind.START,
        WaypointKind.STOP,
        WaypointKind.STOP,
        WaypointKind.END,
    ]


def test_round_trip_terminal_stop_has_dwell_but_no_departure(trip_start):
    route = make_route([start_wp(), stop_wp("A", 10), stop_wp("B", 40)], [300, 300])
    stops = build_schedule(route, trip_start)

    last = stops[-1]
    assert last.kind is WaypointKind.STOP
    assert last.suggested_visit_minutes == 34
    assert last.departure_time is None
    assert all(s.departure_time is not None for s in stops[:-1])


def test_custom_visit_time_fn(trip_start):
    route = make_route([start_wp(), stop_wp("A", 99), end_wp()], [0, 0])
    stops = build_schedule(route, trip_start, visit_time_fn=lambda score: 15)
    assert stops[1].suggested_visit_minutes == 15
    assert stops[2].arrival_time == trip_start + timedelta(minutes=15)


def test_schedule_is_deterministic(trip_start):
    route = make_route([start_wp(), stop_wp("A", 7), stop_wp("B", 70), end_wp()], [61.5, 122.25, 5])
    assert build_schedule(route, trip_start) == build_schedule(route, trip_start)


def test_inconsistent_route_rejected(trip_start):
    good = make_route([start_wp(), stop_wp("A", 1), end_wp()], [10, 10])
    broken = RouteResult(
        ordered_waypoints=good.ordered_waypoints,
        legs=good.legs[:1],
        total_distance_km=1.0,
        total_duration_sec=10.0,
    )
    with pytest.raises(ValueError):
        build_schedule(broken, trip_start)
