"""CLI entrypoint."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from birdroute import config
from birdroute.cache import AddressCache
from birdroute.enrichment import enrich_addresses
from birdroute.geo import validate_coordinates
from birdroute.geocoding_client import ReverseGeocoder
from birdroute.http import BudgetExceededError, HttpClient, RequestBudget, RequestMetrics
from birdroute.models import Candidate, Itinerary, Location
from birdroute.planner import ItineraryPlanner, NoCandidates, PlanOptions
from birdroute.reporting import (
    ProgressReporter,
    ensure_dir,
    render_summary,
    write_itinerary_json,
    write_stops_csv,
    write_summary,
)
from birdroute.route_assembler import RouteAssembler, RoutingUnavailable
from birdroute.routing_client import OsrmClient, OsrmSequentialRouter, OsrmTripOptimizer
from birdroute.scheduler import RateLimitedScheduler, ScheduleConfig, SchedulerTaskFailure
from birdroute.scoring import Policy

logger = logging.getLogger("birdroute")


def _repo_root() -> Path:
    return Path(__file__).resolve().parent


def load_env(path: str = ".env", root_dir: Optional[Path] = None) -> None:
    """Load a repo-root .env file, if any, without overriding real env vars."""
    root = Path(root_dir) if root_dir else _repo_root()
    env_path = (root / path).resolve()
    if not env_path.exists():
        return
    load_dotenv(dotenv_path=env_path, override=False)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Plan a multi-stop birding trip")
    parser.add_argument("candidates", type=str, help="JSON file with candidate hotspots")
    parser.add_argument("--start-lat", type=float, default=None)
    parser.add_argument("--start-lng", type=float, default=None)
    parser.add_argument("--end-lat", type=float, default=None, help="Defaults to the start (round trip)")
    parser.add_argument("--end-lng", type=float, default=None, help="Defaults to the start (round trip)")
    parser.add_argument("--max-stops", type=int, default=None, help="Default: planner_config.json or 5")
    parser.add_argument(
        "--policy",
        choices=[p.value for p in Policy],
        default=None,
        help="Stop selection priority (default: planner_config.json or balanced)",
    )
    parser.add_argument(
        "--start-time",
        type=str,
        default=None,
        help="Trip start as ISO-8601 (default: today at the configured start hour)",
    )
    parser.add_argument("--no-enrich", action="store_true", help="Skip reverse geocoding of stops")
    parser.add_argument("--no-cache", action="store_true", help="Do not read or write the address cache")
    parser.add_argument("--cache-path", type=str, default=config.CACHE_DB_PATH)
    parser.add_argument("--max-geocode", type=int, default=config.MAX_GEOCODE_REQUESTS_PER_RUN)
    parser.add_argument("--max-routing", type=int, default=config.MAX_ROUTING_REQUESTS_PER_RUN)
    parser.add_argument("--out", type=str, default=config.OUTPUT_DIR)
    parser.add_argument("--config", type=str, default=None, help="Path to planner_config.json")
    return parser.parse_args(argv)


def parse_candidate(row: Dict[str, Any]) -> Candidate:
    lat = float(row["lat"])
    lng = float(row["lng"] if "lng" in row else row["lon"])
    validate_coordinates(lat, lng)
    score = row.get("observation_score", row.get("speciesCount", 0)) or 0
    cid = row.get("id") or row.get("locId") or f"{lat:.5f},{lng:.5f}"
    return Candidate(
        id=str(cid),
        name=str(row.get("name") or cid),
        lat=lat,
        lng=lng,
        observation_score=int(score),
        address=row.get("address") or None,
    )


def load_candidates(path: str) -> List[Candidate]:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("candidates") or data.get("hotspots") or []
    return [parse_candidate(row) for row in data]


def default_trip_start(now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now().astimezone()
    return now.replace(
        hour=config.TRIP_START_HOUR, minute=config.TRIP_START_MINUTE, second=0, microsecond=0
    )


def parse_trip_start(value: Optional[str]) -> datetime:
    if not value:
        return default_trip_start()
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise ValueError(f"Invalid trip start {value!r}; expected ISO-8601") from None
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


def resolve_endpoints(args: argparse.Namespace) -> tuple[Location, Location]:
    start_cfg = config.START or {}
    start_lat = args.start_lat if args.start_lat is not None else start_cfg.get("lat")
    start_lng = args.start_lng if args.start_lng is not None else start_cfg.get("lng")
    if start_lat is None or start_lng is None:
        raise ValueError("Trip start is required (--start-lat/--start-lng or planner_config.json)")
    validate_coordinates(start_lat, start_lng)
    start = Location(
        lat=start_lat,
        lng=start_lng,
        name=start_cfg.get("name") or "Start",
        address=start_cfg.get("address"),
    )

    end_cfg = config.END or {}
    end_lat = args.end_lat if args.end_lat is not None else end_cfg.get("lat", start_lat)
    end_lng = args.end_lng if args.end_lng is not None else end_cfg.get("lng", start_lng)
    validate_coordinates(end_lat, end_lng)
    end = Location(
        lat=end_lat,
        lng=end_lng,
        name=end_cfg.get("name") or "End",
        address=end_cfg.get("address"),
    )
    return start, end


def resolve_plan_options(args: argparse.Namespace) -> PlanOptions:
    """Validate trip start, stop cap and policy before any network I/O."""
    max_stops = args.max_stops if args.max_stops is not None else config.DEFAULT_MAX_STOPS
    if max_stops < 1:
        raise ValueError(f"max_stops must be >= 1, got {max_stops}")
    return PlanOptions(
        trip_start_time=parse_trip_start(args.start_time),
        max_stops=max_stops,
        policy=Policy.parse(args.policy or config.DEFAULT_POLICY),
    )


def build_http_client() -> HttpClient:
    return HttpClient(
        timeout=config.HTTP_TIMEOUT_SECONDS,
        retry_max=config.HTTP_RETRY_MAX,
        backoff_base=config.HTTP_BACKOFF_BASE,
        backoff_max=config.HTTP_BACKOFF_MAX,
        user_agent=config.HTTP_USER_AGENT,
    )


def build_planner(http_client: HttpClient, budget: RequestBudget) -> ItineraryPlanner:
    osrm = OsrmClient(
        http_client,
        budget,
        base_url=config.OSRM_BASE_URL,
        profile=config.OSRM_PROFILE,
    )
    return ItineraryPlanner(RouteAssembler(OsrmTripOptimizer(osrm), OsrmSequentialRouter(osrm)))


async def plan_trip(
    args: argparse.Namespace,
    candidates: List[Candidate],
    start: Location,
    end: Location,
    options: PlanOptions,
    progress: ProgressReporter,
    metrics: RequestMetrics,
) -> Itinerary:
    budget = RequestBudget(
        max_geocode=args.max_geocode,
        max_routing=args.max_routing,
        metrics=metrics,
    )
    http_client = build_http_client()

    if not candidates:
        raise NoCandidates()

    if not args.no_enrich:
        api_key = (os.environ.get("LOCATIONIQ_API_KEY") or "").strip()
        if not api_key:
            logger.warning("LOCATIONIQ_API_KEY not set; skipping address enrichment")
        else:
            geocoder = ReverseGeocoder(http_client, api_key, budget)
            scheduler = RateLimitedScheduler(
                ScheduleConfig(
                    max_concurrent=config.GEOCODE_MAX_CONCURRENT,
                    min_interval_ms=config.GEOCODE_MIN_INTERVAL_MS,
                )
            )
            cache = None
            if not args.no_cache:
                cache = AddressCache(
                    args.cache_path,
                    ttl_seconds=config.ADDRESS_CACHE_TTL_DAYS * 86400.0,
                )
            try:
                candidates = await enrich_addresses(
                    candidates,
                    geocoder,
                    scheduler,
                    cache=cache,
                    precision=config.ADDRESS_CACHE_PRECISION,
                    on_progress=progress.on_enrich_progress,
                    metrics=metrics,
                )
            finally:
                if cache is not None:
                    cache.close()

    planner = build_planner(http_client, budget)
    return await planner.plan(
        start, end, candidates, replace(options, on_progress=progress.on_plan_progress)
    )


def main(argv: Optional[List[str]] = None) -> int:
    load_env()
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    try:
        config.load_planner_config(args.config)
        start, end = resolve_endpoints(args)
        candidates = load_candidates(args.candidates)
        options = resolve_plan_options(args)
    except (OSError, ValueError, KeyError) as exc:
        print(f"Input error: {exc}", file=sys.stderr)
        return 2

    ensure_dir(args.out)
    metrics = RequestMetrics()
    progress = ProgressReporter(
        output_path=os.path.join(args.out, "progress.json"),
        logger=logger,
        counters=metrics,
    )

    try:
        itinerary = asyncio.run(plan_trip(args, candidates, start, end, options, progress, metrics))
    except NoCandidates as exc:
        print(f"{exc}", file=sys.stderr)
        return 1
    except RoutingUnavailable as exc:
        print(f"Routing error: {exc}", file=sys.stderr)
        return 1
    except (SchedulerTaskFailure, BudgetExceededError) as exc:
        print(f"Address lookup aborted: {exc}", file=sys.stderr)
        return 1
    finally:
        progress.flush()

    write_itinerary_json(os.path.join(args.out, "itinerary.json"), itinerary)
    write_stops_csv(os.path.join(args.out, "itinerary.csv"), itinerary)
    lines = render_summary(itinerary)
    write_summary(os.path.join(args.out, "summary.txt"), lines)
    for line in lines:
        print(line)
    logger.info(
        "Requests: geocode=%s (cached=%s) routing=%s",
        metrics.network_geocode,
        metrics.cache_hits_geocode,
        metrics.network_routing,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
