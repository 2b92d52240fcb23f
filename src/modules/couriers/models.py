"""Courier registry persisted in the ``courier_profiles`` table."""

from __future__ import annotations

from django.db import models

from modules.core.models import SoftDeleteModel
from modules.couriers.entities import Courier


class CourierProfile(SoftDeleteModel):
    """Registered courier.

    Pool membership (available/engaged) is runtime state and is never
    stored here; only identity, contact and last known position.
    """

    name = models.CharField(max_length=255)
    vehicle_plate = models.CharField(max_length=10, blank=True, default="")
    phone = models.CharField(max_length=20, blank=True, default="")
    photo_url = models.URLField(blank=True, default="")
    lat = models.FloatField(null=True, blank=True, default=None)
    lng = models.FloatField(null=True, blank=True, default=None)
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = "courier_profiles"
        ordering = ["name"]
        indexes = [
            models.Index(fields=["is_active"], name="couriers_active_idx"),
        ]

    def to_entity(self) -> Courier:
        return Courier(
            id=str(self.id),
            name=self.name,
            vehicle_plate=self.vehicle_plate,
            phone=self.phone,
            photo_url=self.photo_url,
            lat=self.lat,
            lng=self.lng,
        )

    def __str__(self) -> str:
        return f"{self.name} ({self.vehicle_plate or 'sem placa'})"
