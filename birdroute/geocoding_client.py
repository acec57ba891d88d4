"""LocationIQ reverse-geocoding client with response parsing."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from . import config
from .http import HttpClient, RequestBudget


@dataclass(frozen=True)
class GeocodeResult:
    display_name: str
    address: Optional[str]


class ReverseGeocoder:
    def __init__(
        self,
        http_client: HttpClient,
        api_key: str,
        budget: RequestBudget,
        url: str = config.LOCATIONIQ_REVERSE_URL,
    ) -> None:
        if not api_key:
            raise ValueError("LocationIQ API key is required for reverse geocoding")
        self.http = http_client
        self.api_key = api_key
        self.budget = budget
        self.url = url

    def reverse_geocode(self, lat: float, lng: float) -> Optional[GeocodeResult]:
        self.budget.consume("geocode")
        params = {"key": self.api_key, "lat": f"{lat}", "lon": f"{lng}", "format": "json"}
        response = self.http.get_json(self.url, params=params)
        return parse_reverse_response(response)

    def resolve_address(self, lat: float, lng: float) -> Optional[str]:
        result = self.reverse_geocode(lat, lng)
        if result is None:
            return None
        return result.address or result.display_name


def parse_reverse_response(response: Dict[str, Any]) -> Optional[GeocodeResult]:
    if not isinstance(response, dict):
        return None
    display_name = response.get("display_name")
    if not display_name:
        return None
    return GeocodeResult(
        display_name=str(display_name),
        address=format_navigation_address(response.get("address")),
    )


def format_navigation_address(parts: Optional[Dict[str, Any]]) -> Optional[str]:
    """Build a GPS-friendly one-line address: street, city, state, postcode."""
    if not parts:
        return None

    out = []
    house = parts.get("house_number")
    road = parts.get("road")
    if house and road:
        out.append(f"{house} {road}")
    elif road:
        out.append(road)
    elif parts.get("neighbourhood"):
        out.append(parts["neighbourhood"])

    city = parts.get("city") or parts.get("town") or parts.get("village") or parts.get("county")
    if city:
        out.append(city)
    if parts.get("state"):
        out.append(parts["state"])
    if parts.get("postcode"):
        out.append(parts["postcode"])

    if not out and parts.get("country"):
        out.append(parts["country"])

    return ", ".join(str(p) for p in out) if out else None


def fallback_label(lat: float, lng: float) -> str:
    return f"{lat:.4f}, {lng:.4f}"
