"""End-to-end itinerary planning: score, select, route, schedule, summarize."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence

from .geo import same_coordinates
from .models import (
    Candidate,
    Itinerary,
    ItinerarySummary,
    Location,
    RouteResult,
    ScheduledStop,
    WaypointKind,
)
from .route_assembler import RouteAssembler
from .schedule import VisitTimeFn, build_schedule, default_visit_minutes
from .scoring import Policy, score_candidates, select_stops

logger = logging.getLogger(__name__)

ProgressFn = Callable[[str, int], None]


class NoCandidates(ValueError):
    def __init__(self, message: str = "No hotspots available for itinerary") -> None:
        super().__init__(message)


@dataclass(frozen=True)
class PlanOptions:
    trip_start_time: datetime
    max_stops: int = 5
    policy: Policy = Policy.BALANCED
    on_progress: Optional[ProgressFn] = None
    visit_time_fn: VisitTimeFn = default_visit_minutes


def is_round_trip(start: Location, end: Location) -> bool:
    return same_coordinates(start.lat, start.lng, end.lat, end.lng)


class ItineraryPlanner:
    def __init__(self, assembler: RouteAssembler) -> None:
        self.assembler = assembler

    async def plan(
        self,
        start: Location,
        end: Location,
        candidates: Sequence[Candidate],
        options: PlanOptions,
    ) -> Itinerary:
        if not candidates:
            raise NoCandidates()
        if options.max_stops < 1:
            raise ValueError(f"max_stops must be >= 1, got {options.max_stops}")

        report = _progress_sink(options.on_progress)
        policy = Policy.parse(options.policy)
        round_trip = is_round_trip(start, end)

        report("Selecting optimal hotspots...", 10)
        scored = score_candidates(candidates, start, policy)
        selected = select_stops(scored, options.max_stops)
        logger.info(
            "Selected %s of %s candidates (policy=%s, round_trip=%s)",
            len(selected),
            len(candidates),
            policy.value,
            round_trip,
        )

        report("Optimizing route...", 30)
        route = await self.assembler.assemble(start, selected, end, round_trip)
        if not route.optimized:
            report("Using fallback routing...", 50)

        report("Calculating visit times...", 70)
        stops = build_schedule(route, options.trip_start_time, options.visit_time_fn)

        report("Finalizing itinerary...", 90)
        summary = summarize(route, stops, options.trip_start_time)
        logger.info(
            "Itinerary: %s stops, %.1f km, %.0f min travel, %s min visiting",
            summary.total_stops,
            summary.total_distance_km,
            summary.total_travel_minutes,
            summary.total_visit_minutes,
        )
        report("Itinerary ready", 100)

        return Itinerary(
            stops=tuple(stops),
            legs=route.legs,
            summary=summary,
            is_round_trip=round_trip,
            optimized=route.optimized,
            geometry=route.geometry,
            return_leg=route.return_leg,
        )


def summarize(route: RouteResult, stops: List[ScheduledStop], trip_start_time: datetime) -> ItinerarySummary:
    legs = list(route.legs)
    if route.return_leg is not None:
        legs.append(route.return_leg)
    travel_minutes = sum(leg.duration_sec for leg in legs) / 60.0
    distance_km = sum(leg.distance_km for leg in legs)
    visit_minutes = sum(s.suggested_visit_minutes for s in stops if s.kind is WaypointKind.STOP)
    trip_minutes = travel_minutes + visit_minutes
    return ItinerarySummary(
        total_stops=sum(1 for s in stops if s.kind is WaypointKind.STOP),
        total_distance_km=distance_km,
        total_travel_minutes=travel_minutes,
        total_visit_minutes=visit_minutes,
        total_trip_minutes=trip_minutes,
        estimated_end_time=trip_start_time + timedelta(minutes=trip_minutes),
    )


def _progress_sink(on_progress: Optional[ProgressFn]) -> ProgressFn:
    def report(message: str, percent: int) -> None:
        logger.debug("Progress %s%%: %s", percent, message)
        if on_progress is not None:
            on_progress(message, percent)

    return report
