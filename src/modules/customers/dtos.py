"""Customer DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
DTOs are immutable (``frozen=True``).

- ``CustomerOrderDTO``: a delivery as seen by the CRM (input of ``record_order``).
- ``UpdateCustomerDTO``: editable fields (notes, name, phone).
- ``CustomerOutputDTO``: API output with masked phone and loyalty tier.
"""

from __future__ import annotations

import re
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, List, Mapping, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator

from modules.customers.tiers import classify_customer

if TYPE_CHECKING:
    from modules.customers.models import Customer


def digits_only(value: str) -> str:
    return re.sub(r"\D", "", value or "")


# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class CustomerOrderDTO(BaseModel):
    """Immutable snapshot of a created delivery, as recorded in the CRM."""

    model_config = ConfigDict(frozen=True)

    name: str
    phone: str = ""
    amount: Decimal = Decimal("0.00")
    ordered_at: datetime
    street: str = ""
    number: str = ""
    complement: str = ""
    neighborhood: str = ""
    city: str = ""
    cep: str = ""

    @field_validator("name")
    @classmethod
    def name_must_not_be_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Customer name is required.")
        return v

    @field_validator("phone", "cep", mode="before")
    @classmethod
    def sanitize_digits(cls, v: str) -> str:
        if not isinstance(v, str):
            return v
        return digits_only(v)

    @field_validator("amount")
    @classmethod
    def amount_must_not_be_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Amount cannot be negative.")
        return v


class UpdateCustomerDTO(BaseModel):
    """Immutable DTO for customer updates; ``None`` fields are left untouched."""

    model_config = ConfigDict(frozen=True)

    name: str | None = None
    phone: str | None = None
    notes: str | None = None

    @field_validator("phone", mode="before")
    @classmethod
    def sanitize_phone(cls, v: str | None) -> str | None:
        if not isinstance(v, str):
            return v
        return digits_only(v)


# ---------------------------------------------------------------------------
# Output DTOs
# ---------------------------------------------------------------------------


class SavedAddressDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    street: str
    number: str
    complement: str
    neighborhood: str
    city: str
    cep: str
    last_used: datetime


class CustomerOutputDTO(BaseModel):
    """Immutable DTO for customer API responses.

    Only the last four digits of the phone are exposed.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID
    name: str
    phone: str
    total_orders: int
    total_spent: Decimal
    last_order_date: Optional[datetime]
    average_wait_minutes: int
    notes: str
    tier: str
    tier_label: str
    orders_to_next_tier: int
    addresses: List[SavedAddressDTO]

    @staticmethod
    def mask_phone(raw_phone: str) -> str:
        suffix = raw_phone[-4:] if raw_phone else "????"
        return f"***{suffix}"

    @classmethod
    def from_entity(
        cls, customer: Customer, goals: Mapping[str, int] | None = None
    ) -> CustomerOutputDTO:
        tier = classify_customer(customer.total_orders, goals)
        return cls(
            id=customer.id,
            name=customer.name,
            phone=cls.mask_phone(customer.phone),
            total_orders=customer.total_orders,
            total_spent=customer.total_spent,
            last_order_date=customer.last_order_date,
            average_wait_minutes=customer.average_wait_minutes,
            notes=customer.notes,
            tier=tier.tier,
            tier_label=tier.label,
            orders_to_next_tier=tier.orders_to_next,
            addresses=[
                SavedAddressDTO(
                    street=a.street,
                    number=a.number,
                    complement=a.complement,
                    neighborhood=a.neighborhood,
                    city=a.city,
                    cep=a.cep,
                    last_used=a.last_used,
                )
                for a in customer.addresses.all()
            ],
        )
