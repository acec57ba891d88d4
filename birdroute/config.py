"""Project configuration.

Loads user-defined trip parameters from planner_config.json when available,
falling back to sensible defaults. Keep provider endpoints centralized here.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional

_REPO_ROOT = Path(__file__).resolve().parent.parent

# --- API endpoints ---

LOCATIONIQ_REVERSE_URL = "https://us1.locationiq.com/v1/reverse"
OSRM_BASE_URL = "https://router.project-osrm.org"
OSRM_PROFILE = "driving"

# --- Trip defaults (used when no planner_config.json) ---

START: Optional[Dict[str, Any]] = None
END: Optional[Dict[str, Any]] = None
DEFAULT_MAX_STOPS = 5
DEFAULT_POLICY = "balanced"
TRIP_START_HOUR = 7
TRIP_START_MINUTE = 0

# --- Dwell time ---

VISIT_BASE_MINUTES = 30
VISIT_SCORE_DIVISOR = 10

# --- Geocoding pacing (LocationIQ free tier is ~2 req/sec) ---

GEOCODE_MAX_CONCURRENT = 2
GEOCODE_MIN_INTERVAL_MS = 500

# --- Budgets ---

MAX_GEOCODE_REQUESTS_PER_RUN = 100
MAX_ROUTING_REQUESTS_PER_RUN = 10

# --- HTTP ---

HTTP_TIMEOUT_SECONDS = 10
HTTP_RETRY_MAX = 3
HTTP_BACKOFF_BASE = 0.5
HTTP_BACKOFF_MAX = 8.0
HTTP_USER_AGENT = "birdroute/0.1"

# --- Cache and outputs ---

CACHE_DB_PATH = "cache.db"
ADDRESS_CACHE_PRECISION = 4
ADDRESS_CACHE_TTL_DAYS = 30.0
OUTPUT_DIR = "out"


def _location_from(data: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(data, dict):
        return None
    lat = data.get("lat")
    lng = data.get("lng", data.get("lon"))
    if lat is None or lng is None:
        return None
    return {
        "lat": float(lat),
        "lng": float(lng),
        "name": data.get("name"),
        "address": data.get("address"),
    }


def load_planner_config(path: Optional[str] = None) -> bool:
    """Load trip configuration from a JSON file.

    Updates module-level globals with values from the config file.
    Returns True if config was loaded, False if file not found.
    """
    if path is None:
        path = str(_REPO_ROOT / "planner_config.json")

    config_path = Path(path)
    if not config_path.exists():
        return False

    with open(config_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    globals_ref = globals()

    start = _location_from(data.get("start"))
    if start is not None:
        globals_ref["START"] = start
    end = _location_from(data.get("end"))
    if end is not None:
        globals_ref["END"] = end

    max_stops = data.get("max_stops")
    if max_stops is not None:
        globals_ref["DEFAULT_MAX_STOPS"] = int(max_stops)

    policy = data.get("policy")
    if policy:
        globals_ref["DEFAULT_POLICY"] = str(policy).lower()

    hour = data.get("trip_start_hour")
    if hour is not None:
        globals_ref["TRIP_START_HOUR"] = int(hour)
    minute = data.get("trip_start_minute")
    if minute is not None:
        globals_ref["TRIP_START_MINUTE"] = int(minute)

    geocode = data.get("geocode", {})
    if "max_concurrent" in geocode:
        globals_ref["GEOCODE_MAX_CONCURRENT"] = int(geocode["max_concurrent"])
    if "min_interval_ms" in geocode:
        globals_ref["GEOCODE_MIN_INTERVAL_MS"] = int(geocode["min_interval_ms"])

    cache = data.get("cache", {})
    if "ttl_days" in cache:
        globals_ref["ADDRESS_CACHE_TTL_DAYS"] = float(cache["ttl_days"])
    if "precision" in cache:
        globals_ref["ADDRESS_CACHE_PRECISION"] = int(cache["precision"])

    osrm = data.get("osrm", {})
    if osrm.get("base_url"):
        globals_ref["OSRM_BASE_URL"] = str(osrm["base_url"]).rstrip("/")
    if osrm.get("profile"):
        globals_ref["OSRM_PROFILE"] = str(osrm["profile"])

    return True
