"""Backing-store record of a delivery (``deliveries`` table).

This is the shared store the board writes through to and polls from.
Its ``status`` column uses the store vocabulary (``pending``,
``arrived_pickup``, ``completed``...), translated by ``status_mapping``.
Board-only details travel in the ``items`` JSON document.
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models

from modules.core.models import SoftDeleteModel
from modules.deliveries.constants import ExternalStatus


class Delivery(SoftDeleteModel):
    store_id = models.CharField(max_length=64, db_index=True)
    store_name = models.CharField(max_length=255, blank=True, default="")
    store_address = models.CharField(max_length=255, blank=True, default="")
    customer_name = models.CharField(max_length=255)
    customer_address = models.TextField(blank=True, default="")
    customer_phone_suffix = models.CharField(max_length=4, blank=True, default="")
    collection_code = models.CharField(max_length=8)
    status = models.CharField(
        max_length=32,
        choices=ExternalStatus.choices,
        default=ExternalStatus.PENDING,
    )
    total_distance = models.FloatField(null=True, blank=True, default=None)
    earnings = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal("0.00")
    )
    courier = models.ForeignKey(
        "couriers.CourierProfile",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="deliveries",
    )
    cancellation_reason = models.TextField(blank=True, default="")
    items = models.JSONField(default=dict, blank=True)

    class Meta:
        db_table = "deliveries"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["store_id", "-created_at"], name="deliveries_store_idx"),
            models.Index(fields=["status"], name="deliveries_status_idx"),
        ]

    def __str__(self) -> str:
        return f"#{self.items.get('display_id', '----')} {self.customer_name} [{self.status}]"
