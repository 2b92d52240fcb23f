"""Geo port: abstract interface for geocoding and routing providers.

The dispatch service programs against the port; adapters are swapped
via the ``DISPATCH_GEO_ADAPTER`` setting.  Providers never raise for
network or lookup failures: they return ``None`` or an empty route and
the caller falls back to straight-line distance, or to no distance at all.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from modules.geo.entities import Coordinates


class GeoPort(ABC):
    """Abstract interface for geo adapters."""

    @abstractmethod
    def geocode(self, address: str) -> Coordinates | None:
        """Resolve a free-text address to a point, or ``None``."""
        ...

    @abstractmethod
    def route(self, start: Coordinates, end: Coordinates) -> list[Coordinates]:
        """Return the driving polyline between two points, or ``[]``."""
        ...
