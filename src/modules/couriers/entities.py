"""Courier entity shared by reference between the pool and the orders."""

from __future__ import annotations

from dataclasses import dataclass

from modules.geo.entities import Coordinates


@dataclass(eq=False)
class Courier:
    """A delivery agent.

    Orders hold a reference to the same instance the pool holds, so a
    position update made by the roaming loop is visible everywhere.
    Identity is the ``id``.
    """

    id: str
    name: str
    vehicle_plate: str = ""
    phone: str = ""
    photo_url: str = ""
    lat: float | None = None
    lng: float | None = None

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Courier) and other.id == self.id

    def __hash__(self) -> int:
        return hash(self.id)

    @property
    def position(self) -> Coordinates | None:
        if self.lat is None or self.lng is None:
            return None
        return Coordinates(lat=self.lat, lng=self.lng)

    def move_to(self, point: Coordinates) -> None:
        self.lat = point.lat
        self.lng = point.lng

    @property
    def label(self) -> str:
        return f"{self.name} ({self.vehicle_plate})" if self.vehicle_plate else self.name
