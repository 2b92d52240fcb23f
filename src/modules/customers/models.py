"""Customer CRM aggregate.

A customer is created or updated by every successfully created delivery:
order count and total spend grow, the last order date moves forward and
the delivery address is remembered (most recent first, one entry per
street + number).  ``notes`` is free text kept across orders.
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models
from django.utils import timezone

from modules.core.models import BaseModel, SoftDeleteModel


class Customer(SoftDeleteModel):
    """Customer aggregate root, matched by phone or (case-insensitive) name."""

    name = models.CharField(max_length=255)
    phone = models.CharField(max_length=20, blank=True, default="", db_index=True)
    total_orders = models.PositiveIntegerField(default=0)
    total_spent = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00")
    )
    last_order_date = models.DateTimeField(null=True, blank=True, default=None)
    average_wait_minutes = models.PositiveIntegerField(default=0)
    notes = models.TextField(blank=True, default="")

    class Meta:
        db_table = "customers"
        ordering = ["-last_order_date", "-created_at"]
        indexes = [
            models.Index(fields=["-last_order_date"], name="customers_last_order_idx"),
        ]

    def __str__(self) -> str:
        suffix = self.phone[-4:] if self.phone else "????"
        return f"{self.name} (tel: ***{suffix})"


class SavedAddress(BaseModel):
    """Delivery address remembered for a customer."""

    customer = models.ForeignKey(
        Customer, on_delete=models.CASCADE, related_name="addresses"
    )
    street = models.CharField(max_length=255)
    number = models.CharField(max_length=20, blank=True, default="")
    complement = models.CharField(max_length=255, blank=True, default="")
    neighborhood = models.CharField(max_length=120, blank=True, default="")
    city = models.CharField(max_length=120, blank=True, default="")
    cep = models.CharField(max_length=9, blank=True, default="")
    last_used = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "customer_addresses"
        ordering = ["-last_used"]

    def matches(self, street: str, number: str) -> bool:
        return (
            self.street.strip().lower() == street.strip().lower()
            and self.number.strip().lower() == number.strip().lower()
        )

    def __str__(self) -> str:
        return f"{self.street}, {self.number}".strip(", ")
