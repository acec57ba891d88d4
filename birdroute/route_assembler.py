"""Route assembly: optimized ordering first, in-order routing as fallback."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

from .models import Location, RouteResult, ScoredCandidate, Waypoint, WaypointKind

logger = logging.getLogger(__name__)

ROUTING_UNAVAILABLE_MESSAGE = "Could not calculate route. Please try with fewer stops."


class RoutingUnavailable(RuntimeError):
    def __init__(self, message: str = ROUTING_UNAVAILABLE_MESSAGE) -> None:
        super().__init__(message)


@dataclass(frozen=True)
class TripOptions:
    round_trip: bool
    fix_first: bool = True
    fix_last: bool = True

    @classmethod
    def for_trip(cls, round_trip: bool) -> "TripOptions":
        return cls(round_trip=round_trip, fix_first=True, fix_last=not round_trip)


class TripOptimizer(Protocol):
    async def optimize(self, waypoints: Sequence[Waypoint], options: TripOptions) -> Optional[RouteResult]:
        ...


class SequentialRouter(Protocol):
    async def route_in_order(self, waypoints: Sequence[Waypoint]) -> Optional[RouteResult]:
        ...


def build_waypoints(
    start: Location,
    stops: Sequence[ScoredCandidate],
    end: Location,
    round_trip: bool,
) -> List[Waypoint]:
    waypoints = [
        Waypoint(
            lat=start.lat,
            lng=start.lng,
            name=start.name or "Start",
            kind=WaypointKind.START,
            address=start.address,
        )
    ]
    for stop in stops:
        waypoints.append(
            Waypoint(
                lat=stop.lat,
                lng=stop.lng,
                name=stop.name,
                kind=WaypointKind.STOP,
                payload=stop.candidate,
                address=stop.address,
            )
        )
    if not round_trip:
        waypoints.append(
            Waypoint(
                lat=end.lat,
                lng=end.lng,
                name=end.name or "End",
                kind=WaypointKind.END,
                address=end.address,
            )
        )
    return waypoints


class RouteAssembler:
    def __init__(self, optimizer: TripOptimizer, router: SequentialRouter) -> None:
        self.optimizer = optimizer
        self.router = router

    async def assemble(
        self,
        start: Location,
        stops: Sequence[ScoredCandidate],
        end: Location,
        round_trip: bool,
    ) -> RouteResult:
        waypoints = build_waypoints(start, stops, end, round_trip)
        options = TripOptions.for_trip(round_trip)

        route = await self._try_optimize(waypoints, options)
        if route is not None:
            return route

        logger.info("Trip optimization unavailable; routing %s waypoints in given order", len(waypoints))
        route = await self._try_route_in_order(waypoints)
        if route is not None:
            return route

        raise RoutingUnavailable()

    async def _try_optimize(self, waypoints: List[Waypoint], options: TripOptions) -> Optional[RouteResult]:
        try:
            route = await self.optimizer.optimize(waypoints, options)
        except Exception as exc:
            logger.warning("Trip optimizer failed: %s", exc)
            return None
        if route is None:
            return None
        if not _is_usable(route, waypoints, options):
            logger.warning("Discarding optimized route with inconsistent legs or endpoints")
            return None
        return route

    async def _try_route_in_order(self, waypoints: List[Waypoint]) -> Optional[RouteResult]:
        try:
            route = await self.router.route_in_order(waypoints)
        except Exception as exc:
            logger.warning("Sequential router failed: %s", exc)
            return None
        if route is None:
            return None
        if not route.is_consistent() or len(route.ordered_waypoints) != len(waypoints):
            logger.warning("Discarding in-order route with inconsistent legs")
            return None
        return route


def _is_usable(route: RouteResult, waypoints: List[Waypoint], options: TripOptions) -> bool:
    if not route.is_consistent() or len(route.ordered_waypoints) != len(waypoints):
        return False
    if options.fix_first and route.ordered_waypoints[0] != waypoints[0]:
        return False
    if options.fix_last and route.ordered_waypoints[-1] != waypoints[-1]:
        return False
    return True
