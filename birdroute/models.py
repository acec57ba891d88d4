"""Typed records shared by the planner and its collaborators."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Tuple


@dataclass(frozen=True)
class Location:
    lat: float
    lng: float
    name: Optional[str] = None
    address: Optional[str] = None


@dataclass(frozen=True)
class Candidate:
    id: str
    name: str
    lat: float
    lng: float
    observation_score: int = 0
    address: Optional[str] = None

    def __post_init__(self) -> None:
        if self.observation_score < 0:
            raise ValueError(f"observation_score must be non-negative: {self.observation_score}")


@dataclass(frozen=True)
class ScoredCandidate:
    candidate: Candidate
    distance_from_start_km: float
    score: float

    @property
    def id(self) -> str:
        return self.candidate.id

    @property
    def name(self) -> str:
        return self.candidate.name

    @property
    def lat(self) -> float:
        return self.candidate.lat

    @property
    def lng(self) -> float:
        return self.candidate.lng

    @property
    def observation_score(self) -> int:
        return self.candidate.observation_score

    @property
    def address(self) -> Optional[str]:
        return self.candidate.address


class WaypointKind(str, Enum):
    START = "start"
    STOP = "stop"
    END = "end"


@dataclass(frozen=True)
class Waypoint:
    lat: float
    lng: float
    name: str
    kind: WaypointKind
    payload: Optional[Candidate] = None
    address: Optional[str] = None


@dataclass(frozen=True)
class RouteLeg:
    from_index: int
    to_index: int
    distance_km: float
    duration_sec: float


@dataclass(frozen=True)
class RouteResult:
    ordered_waypoints: Tuple[Waypoint, ...]
    legs: Tuple[RouteLeg, ...]
    total_distance_km: float
    total_duration_sec: float
    geometry: Optional[Any] = None
    optimized: bool = False
    # Closing leg of a round trip (last stop back to the start), if routed.
    return_leg: Optional[RouteLeg] = None

    def is_consistent(self) -> bool:
        return len(self.ordered_waypoints) >= 2 and len(self.legs) == len(self.ordered_waypoints) - 1


@dataclass(frozen=True)
class ScheduledStop:
    waypoint: Waypoint
    stop_number: int
    arrival_time: Optional[datetime]
    suggested_visit_minutes: int
    departure_time: Optional[datetime]
    leg_to_next: Optional[RouteLeg] = None

    @property
    def kind(self) -> WaypointKind:
        return self.waypoint.kind

    @property
    def name(self) -> str:
        return self.waypoint.name


@dataclass(frozen=True)
class ItinerarySummary:
    total_stops: int
    total_distance_km: float
    total_travel_minutes: float
    total_visit_minutes: int
    total_trip_minutes: float
    estimated_end_time: datetime


@dataclass(frozen=True)
class Itinerary:
    stops: Tuple[ScheduledStop, ...]
    legs: Tuple[RouteLeg, ...]
    summary: ItinerarySummary
    is_round_trip: bool
    optimized: bool
    geometry: Optional[Any] = None
    return_leg: Optional[RouteLeg] = None
