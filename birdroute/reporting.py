"""Output reporting helpers."""
from __future__ import annotations

import csv
import json
import logging
import os
import tempfile
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Protocol, TextIO, Tuple
from urllib.parse import urlencode

from .geocoding_client import fallback_label
from .models import Itinerary, RouteLeg, ScheduledStop


class RequestCounters(Protocol):
    geocode_count: int
    routing_count: int


def ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def _fsync_dir(path: str) -> None:
    try:
        dir_fd = os.open(path, os.O_DIRECTORY)
    except OSError:
        return
    try:
        os.fsync(dir_fd)
    except OSError:
        pass
    finally:
        os.close(dir_fd)


@contextmanager
def atomic_writer(
    path: str,
    mode: str = "w",
    encoding: str = "utf-8",
    newline: Optional[str] = None,
) -> Iterator[TextIO]:
    dir_path = os.path.dirname(path) or "."
    base = os.path.basename(path)
    fd, tmp_path = tempfile.mkstemp(prefix=f".{base}.", suffix=".tmp", dir=dir_path)
    try:
        with os.fdopen(fd, mode, encoding=encoding, newline=newline) as f:
            yield f
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
        _fsync_dir(dir_path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def atomic_write_text(path: str, text: str) -> None:
    with atomic_writer(path, mode="w", encoding="utf-8") as f:
        f.write(text)


def write_json_object(path: str, payload: Dict[str, Any]) -> None:
    with atomic_writer(path, mode="w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)


def format_duration(minutes: float) -> str:
    """Format minutes like "45m", "2h" or "2h 30m"."""
    if minutes < 60:
        return f"{round(minutes)}m"
    hours = int(minutes // 60)
    mins = round(minutes % 60)
    if mins == 60:
        hours, mins = hours + 1, 0
    return f"{hours}h {mins}m" if mins > 0 else f"{hours}h"


def format_clock_time(value: Optional[datetime]) -> str:
    """Format a timestamp like "7:30 AM"; empty for missing times."""
    if value is None:
        return ""
    hour = value.hour % 12 or 12
    suffix = "AM" if value.hour < 12 else "PM"
    return f"{hour}:{value.minute:02d} {suffix}"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def leg_to_dict(leg: Optional[RouteLeg]) -> Optional[Dict[str, Any]]:
    if leg is None:
        return None
    return {
        "from_index": leg.from_index,
        "to_index": leg.to_index,
        "distance_km": round(leg.distance_km, 3),
        "duration_sec": round(leg.duration_sec, 1),
    }


def stop_to_dict(stop: ScheduledStop) -> Dict[str, Any]:
    wp = stop.waypoint
    payload = wp.payload
    return {
        "stop_number": stop.stop_number,
        "kind": wp.kind.value,
        "name": wp.name,
        "id": payload.id if payload is not None else None,
        "lat": wp.lat,
        "lng": wp.lng,
        "address": wp.address or (payload.address if payload is not None else None),
        "observation_score": payload.observation_score if payload is not None else None,
        "arrival_time": _iso(stop.arrival_time),
        "suggested_visit_minutes": stop.suggested_visit_minutes,
        "departure_time": _iso(stop.departure_time),
        "leg_to_next": leg_to_dict(stop.leg_to_next),
    }


GOOGLE_MAPS_DIR_URL = "https://www.google.com/maps/dir/"


def google_maps_route_url(itinerary: Itinerary) -> str:
    """Driving directions link through every stop, in itinerary order.

    Round trips end back at the first waypoint. Returns "" when there is
    nothing to route between.
    """
    points = [(s.waypoint.lat, s.waypoint.lng) for s in itinerary.stops]
    if itinerary.is_round_trip and points:
        points.append(points[0])
    if len(points) < 2:
        return ""

    params = {
        "api": "1",
        "origin": f"{points[0][0]},{points[0][1]}",
        "destination": f"{points[-1][0]},{points[-1][1]}",
    }
    if len(points) > 2:
        params["waypoints"] = "|".join(f"{lat},{lng}" for lat, lng in points[1:-1])
    params["travelmode"] = "driving"
    return f"{GOOGLE_MAPS_DIR_URL}?{urlencode(params)}"


def itinerary_to_dict(itinerary: Itinerary, include_geometry: bool = True) -> Dict[str, Any]:
    summary = itinerary.summary
    out: Dict[str, Any] = {
        "is_round_trip": itinerary.is_round_trip,
        "optimized": itinerary.optimized,
        "stops": [stop_to_dict(s) for s in itinerary.stops],
        "legs": [leg_to_dict(leg) for leg in itinerary.legs],
        "return_leg": leg_to_dict(itinerary.return_leg),
        "summary": {
            "total_stops": summary.total_stops,
            "total_distance_km": round(summary.total_distance_km, 3),
            "total_travel_minutes": round(summary.total_travel_minutes, 1),
            "total_visit_minutes": summary.total_visit_minutes,
            "total_trip_minutes": round(summary.total_trip_minutes, 1),
            "estimated_end_time": _iso(summary.estimated_end_time),
        },
        "maps_url": google_maps_route_url(itinerary),
    }
    if include_geometry:
        out["geometry"] = itinerary.geometry
    return out


def write_itinerary_json(path: str, itinerary: Itinerary) -> None:
    write_json_object(path, itinerary_to_dict(itinerary))


def write_stops_csv(path: str, itinerary: Itinerary) -> None:
    fieldnames = [
        "stop_number",
        "kind",
        "name",
        "address",
        "lat",
        "lng",
        "arrival",
        "visit_minutes",
        "departure",
        "drive_to_next_minutes",
    ]
    with atomic_writer(path, mode="w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()
        for stop in itinerary.stops:
            row = stop_to_dict(stop)
            leg = stop.leg_to_next
            writer.writerow(
                {
                    "stop_number": row["stop_number"],
                    "kind": row["kind"],
                    "name": row["name"],
                    "address": row["address"] or fallback_label(row["lat"], row["lng"]),
                    "lat": row["lat"],
                    "lng": row["lng"],
                    "arrival": format_clock_time(stop.arrival_time),
                    "visit_minutes": row["suggested_visit_minutes"],
                    "departure": format_clock_time(stop.departure_time),
                    "drive_to_next_minutes": round(leg.duration_sec / 60.0, 1) if leg else "",
                }
            )


def render_summary(itinerary: Itinerary) -> List[str]:
    summary = itinerary.summary
    lines = [
        f"Stops: {summary.total_stops} ({'round trip' if itinerary.is_round_trip else 'one way'}, "
        f"{'optimized' if itinerary.optimized else 'in given order'})",
        f"Distance: {summary.total_distance_km:.1f} km",
        f"Driving: {format_duration(summary.total_travel_minutes)}",
        f"Birding: {format_duration(summary.total_visit_minutes)}",
        f"Total: {format_duration(summary.total_trip_minutes)}",
        f"Estimated end: {format_clock_time(summary.estimated_end_time)}",
        f"Map: {google_maps_route_url(itinerary) or '-'}",
        "",
    ]
    for stop in itinerary.stops:
        wp = stop.waypoint
        address = wp.address or (wp.payload.address if wp.payload else None)
        arrive = format_clock_time(stop.arrival_time) or "-"
        depart = format_clock_time(stop.departure_time) or "-"
        line = f"{stop.stop_number:>2}. {wp.name} [{arrive} -> {depart}]"
        if stop.suggested_visit_minutes:
            line += f" visit {stop.suggested_visit_minutes}m"
        lines.append(line)
        lines.append(f"    {address or fallback_label(wp.lat, wp.lng)}")
    return lines


def write_summary(path: str, summary_lines: List[str]) -> None:
    atomic_write_text(path, "\n".join(summary_lines) + "\n")


class ProgressReporter:
    """Progress sink for planning and enrichment.

    Logs each milestone and, when ``output_path`` is set, mirrors the latest
    state to a JSON file at most every ``write_interval_seconds``.
    """

    def __init__(
        self,
        output_path: Optional[str],
        write_interval_seconds: float = 1.0,
        logger: Optional[logging.Logger] = None,
        counters: Optional[RequestCounters] = None,
    ) -> None:
        self.output_path = output_path
        self.write_interval_seconds = float(write_interval_seconds)
        self.logger = logger or logging.getLogger(__name__)
        self._counters = counters
        self.stage = "init"
        self.percent = 0
        self.processed_count = 0
        self.total_estimate: Optional[int] = None
        self._last_write = 0.0

    def on_plan_progress(self, message: str, percent: int) -> None:
        self.stage = message
        self.percent = int(percent)
        self.logger.info("[%3s%%] %s", self.percent, message)
        self._write_if_due(force=True)

    def on_enrich_progress(self, done: int, total: int) -> None:
        self.stage = "enrich"
        self.processed_count = done
        self.total_estimate = total
        geocode_requests, _ = self._get_counts()
        self.logger.info("Addresses: %s/%s (geocode_requests=%s)", done, total, geocode_requests)
        self._write_if_due(force=done >= total)

    def flush(self) -> None:
        self._write_if_due(force=True)

    def _get_counts(self) -> Tuple[int, int]:
        if self._counters is None:
            return (0, 0)
        return (
            int(getattr(self._counters, "geocode_count", 0)),
            int(getattr(self._counters, "routing_count", 0)),
        )

    def _write_if_due(self, force: bool = False) -> None:
        if not self.output_path:
            return
        now = time.monotonic()
        if not force and (now - self._last_write) < self.write_interval_seconds:
            return
        geocode_requests, routing_requests = self._get_counts()
        payload = {
            "stage": self.stage,
            "percent": self.percent,
            "processed_count": self.processed_count,
            "total_estimate": self.total_estimate,
            "geocode_requests": geocode_requests,
            "routing_requests": routing_requests,
            "timestamp": utc_now_iso(),
        }
        write_json_object(self.output_path, payload)
        self._last_write = now
