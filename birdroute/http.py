"""HTTP client with retry/backoff and request budgeting."""
from __future__ import annotations

import logging
import random
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import requests

logger = logging.getLogger(__name__)

REQUEST_KINDS = ("geocode", "routing")


class BudgetExceededError(RuntimeError):
    pass


@dataclass
class RequestMetrics:
    network_geocode: int = 0
    network_routing: int = 0
    cache_hits_geocode: int = 0
    dedup_skips_geocode: int = 0

    @property
    def geocode_count(self) -> int:
        return self.network_geocode

    @property
    def routing_count(self) -> int:
        return self.network_routing

    def inc_network(self, kind: str) -> None:
        _check_kind(kind)
        attr = f"network_{kind}"
        setattr(self, attr, getattr(self, attr) + 1)

    # Only address lookups have a cache and in-batch dedup.
    def inc_geocode_cache_hit(self) -> None:
        self.cache_hits_geocode += 1

    def inc_geocode_dedup_skip(self) -> None:
        self.dedup_skips_geocode += 1


def _check_kind(kind: str) -> None:
    if kind not in REQUEST_KINDS:
        raise ValueError(f"Unknown request kind: {kind}")


class RequestBudget:
    """Per-run request caps.

    Geocoding lookups run in worker threads, so consumption is serialized
    with a lock.
    """

    def __init__(
        self,
        max_geocode: int,
        max_routing: int,
        on_consume: Optional[Callable[[str, int, int], None]] = None,
        metrics: Optional[RequestMetrics] = None,
    ) -> None:
        self.max_geocode = max_geocode
        self.max_routing = max_routing
        self.on_consume = on_consume
        self.metrics = metrics
        self._geocode_count = 0
        self._routing_count = 0
        self._lock = threading.Lock()

    @property
    def geocode_count(self) -> int:
        if self.metrics is not None:
            return int(self.metrics.network_geocode)
        return self._geocode_count

    @property
    def routing_count(self) -> int:
        if self.metrics is not None:
            return int(self.metrics.network_routing)
        return self._routing_count

    def consume(self, kind: str) -> None:
        with self._lock:
            if kind == "geocode":
                if self.geocode_count >= self.max_geocode:
                    raise BudgetExceededError(
                        f"Geocode request budget exceeded: {self.geocode_count} >= {self.max_geocode}"
                    )
                if self.metrics is not None:
                    self.metrics.inc_network("geocode")
                else:
                    self._geocode_count += 1
            elif kind == "routing":
                if self.routing_count >= self.max_routing:
                    raise BudgetExceededError(
                        f"Routing request budget exceeded: {self.routing_count} >= {self.max_routing}"
                    )
                if self.metrics is not None:
                    self.metrics.inc_network("routing")
                else:
                    self._routing_count += 1
            else:
                raise ValueError(f"Unknown budget kind: {kind}")
            geocode_count = self.geocode_count
            routing_count = self.routing_count
        if self.on_consume:
            self.on_consume(kind, geocode_count, routing_count)


class HttpClient:
    def __init__(
        self,
        timeout: int = 20,
        retry_max: int = 5,
        backoff_base: float = 0.5,
        backoff_max: float = 8.0,
        user_agent: Optional[str] = None,
    ) -> None:
        self.timeout = timeout
        self.retry_max = retry_max
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.session = requests.Session()
        if user_agent:
            self.session.headers.update({"User-Agent": user_agent})

    def get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        headers = {"Accept": "application/json"}

        for attempt in range(1, self.retry_max + 1):
            try:
                resp = self.session.get(url, params=params, headers=headers, timeout=self.timeout)
            except requests.RequestException:
                if attempt >= self.retry_max:
                    raise
                self._sleep_backoff(attempt)
                continue

            status = resp.status_code
            if status == 200:
                try:
                    return resp.json()
                except ValueError:
                    logger.error("Non-JSON response from %s", _redact(url))
                    raise

            if status in (429, 500, 502, 503, 504):
                logger.warning("HTTP %s from %s (attempt %s)", status, _redact(url), attempt)
                if attempt >= self.retry_max:
                    resp.raise_for_status()
                if not self._sleep_retry_after(resp):
                    self._sleep_backoff(attempt)
                continue

            # Non-retryable
            logger.error("HTTP %s from %s", status, _redact(url))
            resp.raise_for_status()

        raise RuntimeError("Unexpected HTTP retry loop exit")

    def _sleep_backoff(self, attempt: int) -> None:
        base = min(self.backoff_base * (2 ** (attempt - 1)), self.backoff_max)
        jitter = random.uniform(0, self.backoff_base)
        time.sleep(base + jitter)

    def _sleep_retry_after(self, resp: requests.Response) -> bool:
        retry_after = resp.headers.get("Retry-After")
        if not retry_after:
            return False
        try:
            delay = float(retry_after)
        except ValueError:
            return False
        delay = max(0.0, min(delay, self.backoff_max))
        time.sleep(delay)
        return True


def _redact(url: str) -> str:
    # Keys travel as query params; never log them.
    return url.split("?", 1)[0]
