"""Address enrichment for candidate locations.

Each distinct coordinate is looked up once per batch, cache first, and the
network misses are paced through :class:`RateLimitedScheduler`. Lookup
failures leave the address empty; budget exhaustion fails the batch.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple

import requests

from . import config
from .cache import AddressCache, make_coord_key
from .http import RequestMetrics
from .models import Candidate
from .scheduler import RateLimitedScheduler

logger = logging.getLogger(__name__)

EnrichProgress = Callable[[int, int], None]


class AddressResolver(Protocol):
    def resolve_address(self, lat: float, lng: float) -> Optional[str]:
        ...


async def enrich_addresses(
    candidates: Sequence[Candidate],
    geocoder: AddressResolver,
    scheduler: RateLimitedScheduler,
    cache: Optional[AddressCache] = None,
    precision: int = config.ADDRESS_CACHE_PRECISION,
    on_progress: Optional[EnrichProgress] = None,
    metrics: Optional[RequestMetrics] = None,
) -> List[Candidate]:
    candidates = list(candidates)
    resolved: Dict[str, Optional[str]] = {}
    misses: List[Tuple[str, float, float]] = []
    seen: set[str] = set()

    for candidate in candidates:
        if candidate.address:
            continue
        key = make_coord_key(candidate.lat, candidate.lng, precision)
        if key in seen:
            if metrics is not None:
                metrics.inc_geocode_dedup_skip()
            continue
        seen.add(key)
        if cache is not None:
            cached = cache.get(key)
            if cached is not None:
                if metrics is not None:
                    metrics.inc_geocode_cache_hit()
                resolved[key] = cached
                continue
        misses.append((key, candidate.lat, candidate.lng))

    logger.info(
        "Address enrichment: %s candidates, %s cached, %s to look up",
        len(candidates),
        len(resolved),
        len(misses),
    )

    completed = 0

    def lookup_task(key: str, lat: float, lng: float):
        async def task() -> Optional[str]:
            nonlocal completed
            try:
                address = await asyncio.to_thread(geocoder.resolve_address, lat, lng)
            except (requests.RequestException, ValueError) as exc:
                logger.warning("Reverse geocoding failed for %s: %s", key, exc)
                address = None
            completed += 1
            if on_progress:
                on_progress(completed, len(misses))
            return address

        return task

    addresses = await scheduler.run([lookup_task(*miss) for miss in misses])

    for (key, _, _), address in zip(misses, addresses):
        resolved[key] = address
        if address is not None and cache is not None:
            cache.set(key, address)
    if cache is not None:
        cache.commit()

    enriched = []
    for candidate in candidates:
        if candidate.address:
            enriched.append(candidate)
            continue
        key = make_coord_key(candidate.lat, candidate.lng, precision)
        enriched.append(replace(candidate, address=resolved.get(key)))
    return enriched
