"""Arrival/departure scheduling over an assembled route."""
from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from . import config
from .models import RouteResult, ScheduledStop, WaypointKind

VisitTimeFn = Callable[[int], int]


def default_visit_minutes(observation_score: int) -> int:
    """Base dwell plus one minute per ten observations, rounded up."""
    return config.VISIT_BASE_MINUTES + math.ceil(observation_score / config.VISIT_SCORE_DIVISOR)


def build_schedule(
    route: RouteResult,
    trip_start_time: datetime,
    visit_time_fn: VisitTimeFn = default_visit_minutes,
) -> List[ScheduledStop]:
    waypoints = route.ordered_waypoints
    legs = route.legs
    if not route.is_consistent():
        raise ValueError(
            f"Route has {len(legs)} legs for {len(waypoints)} waypoints; expected {len(waypoints) - 1}"
        )

    stops: List[ScheduledStop] = []
    last_index = len(waypoints) - 1
    clock = trip_start_time

    for index, waypoint in enumerate(waypoints):
        arrival: Optional[datetime] = None
        if index > 0:
            arrival = clock + timedelta(seconds=legs[index - 1].duration_sec)
            clock = arrival

        if waypoint.kind is WaypointKind.STOP and waypoint.payload is not None:
            visit_minutes = int(visit_time_fn(waypoint.payload.observation_score))
        else:
            visit_minutes = 0

        departure: Optional[datetime] = None
        if index < last_index:
            departure = clock + timedelta(minutes=visit_minutes)
            clock = departure

        stops.append(
            ScheduledStop(
                waypoint=waypoint,
                stop_number=index + 1,
                arrival_time=arrival,
                suggested_visit_minutes=visit_minutes,
                departure_time=departure,
                leg_to_next=legs[index] if index < len(legs) else None,
            )
        )

    return stops
