"""Stop scoring and selection.

A candidate's score blends observation richness with proximity to the trip
start, both normalized against the batch maxima. Higher is always better.
"""
from __future__ import annotations

from enum import Enum
from typing import List, Sequence, Tuple

from .geo import haversine_km
from .models import Candidate, Location, ScoredCandidate


class Policy(str, Enum):
    SPECIES = "species"
    DISTANCE = "distance"
    BALANCED = "balanced"

    @classmethod
    def parse(cls, value: "str | Policy") -> "Policy":
        if isinstance(value, Policy):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            choices = ", ".join(p.value for p in cls)
            raise ValueError(f"Unknown policy {value!r}; expected one of: {choices}") from None


# (observation weight, proximity weight)
POLICY_WEIGHTS = {
    Policy.SPECIES: (0.8, 0.2),
    Policy.DISTANCE: (0.2, 0.8),
    Policy.BALANCED: (0.5, 0.5),
}


def policy_weights(policy: Policy) -> Tuple[float, float]:
    return POLICY_WEIGHTS[Policy.parse(policy)]


def score_candidate(
    observation_score: float,
    distance_km: float,
    max_observed_score: float,
    max_distance_km: float,
    policy: Policy = Policy.BALANCED,
) -> float:
    if max_observed_score > 0:
        observed = observation_score / max_observed_score
    else:
        observed = 1.0
    if max_distance_km > 0:
        proximity = 1.0 - (distance_km / max_distance_km)
    else:
        proximity = 1.0
    w_observed, w_proximity = policy_weights(policy)
    return w_observed * observed + w_proximity * proximity


def score_candidates(
    candidates: Sequence[Candidate],
    start: Location,
    policy: Policy = Policy.BALANCED,
) -> List[ScoredCandidate]:
    distances = [haversine_km(start.lat, start.lng, c.lat, c.lng) for c in candidates]
    return rescore(candidates, distances, policy)


def rescore(
    candidates: Sequence[Candidate],
    distances_km: Sequence[float],
    policy: Policy = Policy.BALANCED,
) -> List[ScoredCandidate]:
    if len(candidates) != len(distances_km):
        raise ValueError("candidates and distances_km must have the same length")
    if not candidates:
        return []
    max_observed = max(c.observation_score for c in candidates)
    max_distance = max(distances_km)
    return [
        ScoredCandidate(
            candidate=c,
            distance_from_start_km=d,
            score=score_candidate(c.observation_score, d, max_observed, max_distance, policy),
        )
        for c, d in zip(candidates, distances_km)
    ]


def select_stops(scored: Sequence[ScoredCandidate], max_stops: int) -> List[ScoredCandidate]:
    if max_stops < 0:
        raise ValueError(f"max_stops must be >= 0, got {max_stops}")
    if len(scored) <= max_stops:
        return list(scored)
    # sorted() is stable, so ties keep input order.
    ranked = sorted(scored, key=lambda s: s.score, reverse=True)
    return ranked[:max_stops]
