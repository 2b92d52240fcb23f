"""Courier DTOs for API output."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from modules.couriers.entities import Courier


class CourierOutputDTO(BaseModel):
    """A pooled courier with its current availability."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    vehicle_plate: str
    phone: str
    photo_url: str
    lat: Optional[float]
    lng: Optional[float]
    available: bool
    order_ids: List[str]

    @classmethod
    def from_entity(
        cls, courier: Courier, available: bool, order_ids: List[str] | None = None
    ) -> CourierOutputDTO:
        return cls(
            id=courier.id,
            name=courier.name,
            vehicle_plate=courier.vehicle_plate,
            phone=courier.phone,
            photo_url=courier.photo_url,
            lat=courier.lat,
            lng=courier.lng,
            available=available,
            order_ids=list(order_ids or []),
        )
