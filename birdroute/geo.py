"""Geospatial helpers."""
from __future__ import annotations

import math


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    r = 6371.0
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)

    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return r * c


def same_coordinates(lat1: float, lng1: float, lat2: float, lng2: float) -> bool:
    # Exact match only: a round trip is the same point, not a nearby one.
    return lat1 == lat2 and lng1 == lng2


def validate_coordinates(lat: float, lng: float) -> None:
    if not (-90.0 <= lat <= 90.0) or not (-180.0 <= lng <= 180.0):
        raise ValueError(
            f"Invalid coordinates ({lat}, {lng}): latitude must be -90 to 90, "
            "longitude must be -180 to 180"
        )
