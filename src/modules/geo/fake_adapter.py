"""Fake geo adapter: deterministic provider for tests and offline development.

Known addresses resolve to registered points; everything else resolves
to nothing unless a default point is configured.  Routes are straight
two-point lines.
"""

from __future__ import annotations

from modules.geo.entities import Coordinates
from modules.geo.port import GeoPort


class FakeGeoAdapter(GeoPort):
    """In-memory geocoder that succeeds only for what it was taught."""

    def __init__(self) -> None:
        self.should_succeed = True
        self.default_point: Coordinates | None = None
        self._points: dict[str, Coordinates] = {}
        self.geocode_calls: list[str] = []

    def configure(
        self,
        should_succeed: bool = True,
        default_point: Coordinates | None = None,
    ) -> None:
        """Configure the fake behavior for testing."""
        self.should_succeed = should_succeed
        self.default_point = default_point

    def register(self, address: str, point: Coordinates) -> None:
        self._points[address.strip().lower()] = point

    def clear(self) -> None:
        self._points.clear()
        self.geocode_calls.clear()
        self.configure()

    def geocode(self, address: str) -> Coordinates | None:
        self.geocode_calls.append(address)
        if not self.should_succeed:
            return None
        key = address.strip().lower()
        for known, point in self._points.items():
            if known in key:
                return point
        return self.default_point

    def route(self, start: Coordinates, end: Coordinates) -> list[Coordinates]:
        if not self.should_succeed:
            return []
        return [start, end]
