"""OSRM client for trip optimization and in-order routing, with response parsing."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Sequence

import requests

from . import config
from .http import HttpClient, RequestBudget
from .models import RouteLeg, RouteResult, Waypoint
from .route_assembler import TripOptions

logger = logging.getLogger(__name__)


class OsrmClient:
    def __init__(
        self,
        http_client: HttpClient,
        budget: RequestBudget,
        base_url: str = config.OSRM_BASE_URL,
        profile: str = config.OSRM_PROFILE,
    ) -> None:
        self.http = http_client
        self.budget = budget
        self.base_url = base_url.rstrip("/")
        self.profile = profile

    def trip(self, waypoints: Sequence[Waypoint], options: TripOptions) -> Dict[str, Any]:
        url = f"{self.base_url}/trip/v1/{self.profile}/{build_coordinates(waypoints)}"
        self.budget.consume("routing")
        return self.http.get_json(url, params=build_trip_params(options))

    def route(self, waypoints: Sequence[Waypoint]) -> Dict[str, Any]:
        url = f"{self.base_url}/route/v1/{self.profile}/{build_coordinates(waypoints)}"
        self.budget.consume("routing")
        return self.http.get_json(url, params=build_route_params())


def build_coordinates(waypoints: Sequence[Waypoint]) -> str:
    # OSRM wants lng,lat pairs.
    return ";".join(f"{wp.lng:.6f},{wp.lat:.6f}" for wp in waypoints)


def build_trip_params(options: TripOptions) -> Dict[str, str]:
    return {
        "roundtrip": "true" if options.round_trip else "false",
        "source": "first" if options.fix_first else "any",
        "destination": "last" if options.fix_last else "any",
        "geometries": "geojson",
        "overview": "full",
        "annotations": "duration,distance",
    }


def build_route_params() -> Dict[str, str]:
    return {
        "overview": "full",
        "geometries": "geojson",
        "annotations": "duration,distance",
    }


def _parse_leg(leg: Dict[str, Any], from_index: int, to_index: int) -> RouteLeg:
    return RouteLeg(
        from_index=from_index,
        to_index=to_index,
        distance_km=max(0.0, float(leg.get("distance") or 0.0)) / 1000.0,
        duration_sec=max(0.0, float(leg.get("duration") or 0.0)),
    )


def parse_trip_response(
    waypoints: Sequence[Waypoint],
    response: Dict[str, Any],
    round_trip: bool,
) -> Optional[RouteResult]:
    if response.get("code") != "Ok":
        return None
    trips = response.get("trips") or []
    snapped = response.get("waypoints") or []
    if not trips or len(snapped) != len(waypoints):
        return None
    if any(int(wp.get("trips_index", 0)) != 0 for wp in snapped):
        # Split into several trips; cannot be expressed as one route.
        return None

    try:
        # ``waypoints`` in the response follow input order; ``waypoint_index``
        # is each input point's position within the trip.
        order = sorted(range(len(snapped)), key=lambda i: int(snapped[i]["waypoint_index"]))
    except (KeyError, TypeError, ValueError):
        return None
    ordered = tuple(waypoints[i] for i in order)

    trip = trips[0]
    raw_legs = trip.get("legs") or []
    n = len(ordered)
    return_leg = None
    if round_trip and len(raw_legs) == n:
        return_leg = _parse_leg(raw_legs[-1], n - 1, 0)
        raw_legs = raw_legs[:-1]
    if len(raw_legs) != n - 1:
        return None

    legs = tuple(_parse_leg(leg, i, i + 1) for i, leg in enumerate(raw_legs))
    return RouteResult(
        ordered_waypoints=ordered,
        legs=legs,
        total_distance_km=float(trip.get("distance") or 0.0) / 1000.0,
        total_duration_sec=float(trip.get("duration") or 0.0),
        geometry=trip.get("geometry"),
        optimized=True,
        return_leg=return_leg,
    )


def parse_route_response(waypoints: Sequence[Waypoint], response: Dict[str, Any]) -> Optional[RouteResult]:
    if response.get("code") != "Ok":
        return None
    routes = response.get("routes") or []
    if not routes:
        return None
    route = routes[0]
    raw_legs = route.get("legs") or []
    if len(raw_legs) != len(waypoints) - 1:
        return None
    legs = tuple(_parse_leg(leg, i, i + 1) for i, leg in enumerate(raw_legs))
    return RouteResult(
        ordered_waypoints=tuple(waypoints),
        legs=legs,
        total_distance_km=float(route.get("distance") or 0.0) / 1000.0,
        total_duration_sec=float(route.get("duration") or 0.0),
        geometry=route.get("geometry"),
        optimized=False,
    )


class OsrmTripOptimizer:
    """Async adapter over :meth:`OsrmClient.trip`. Provider errors read as "could not optimize"."""

    def __init__(self, client: OsrmClient) -> None:
        self.client = client

    async def optimize(self, waypoints: Sequence[Waypoint], options: TripOptions) -> Optional[RouteResult]:
        if len(waypoints) < 2:
            return None
        waypoints = list(waypoints)
        try:
            response = await asyncio.to_thread(self.client.trip, waypoints, options)
        except (requests.RequestException, ValueError) as exc:
            logger.warning("OSRM trip request failed: %s", exc)
            return None
        route = parse_trip_response(waypoints, response, options.round_trip)
        if route is None:
            logger.warning("OSRM trip response unusable (code=%s)", response.get("code"))
        return route


class OsrmSequentialRouter:
    def __init__(self, client: OsrmClient) -> None:
        self.client = client

    async def route_in_order(self, waypoints: Sequence[Waypoint]) -> Optional[RouteResult]:
        if len(waypoints) < 2:
            return None
        waypoints = list(waypoints)
        try:
            response = await asyncio.to_thread(self.client.route, waypoints)
        except (requests.RequestException, ValueError) as exc:
            logger.warning("OSRM route request failed: %s", exc)
            return None
        route = parse_route_response(waypoints, response)
        if route is None:
            logger.warning("OSRM route response unusable (code=%s)", response.get("code"))
        return route
