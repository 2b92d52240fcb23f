"""Straight-line and polyline distances in kilometres."""

from __future__ import annotations

import math
from typing import Sequence

from modules.geo.entities import Coordinates

EARTH_RADIUS_KM = 6371.0


def haversine_km(start: Coordinates, end: Coordinates) -> float:
    """Great-circle distance between two points."""
    d_lat = math.radians(end.lat - start.lat)
    d_lng = math.radians(end.lng - start.lng)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(start.lat))
        * math.cos(math.radians(end.lat))
        * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def route_length_km(waypoints: Sequence[Coordinates]) -> float:
    """Sum of the legs of a polyline; 0.0 for fewer than two points."""
    return sum(
        haversine_km(waypoints[i], waypoints[i + 1])
        for i in range(len(waypoints) - 1)
    )
