"""Delivery DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
DTOs are immutable (``frozen=True``).

- ``CreateDeliveryDTO``: input for order creation from the board.
- ``QuoteRequestDTO``: input for a fee preview.
- ``ExternalDeliveryRecord``: a row of the backing delivery store.
- ``OrderOutputDTO`` / ``BatchOutputDTO``: board entries for the API.
- ``TrackingOutputDTO``: the public tracking page.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from modules.deliveries.constants import OrderSource, PaymentMethod

if TYPE_CHECKING:
    from modules.deliveries.batching import BoardEntry, OrderBatch
    from modules.deliveries.entities import Order


# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class CreateDeliveryDTO(BaseModel):
    """Immutable DTO for delivery creation requests.

    Validates:
    - ``client_name`` and the destination must not be blank.
    - ``delivery_value`` must not be negative.
    - ``lat``/``lng`` come together or not at all.

    ``change_for`` is kept only for cash payments above the order value.
    When ``courier_id`` is given the order is accepted right away by that
    courier, batching onto its route if it is already out.
    """

    model_config = ConfigDict(frozen=True)

    client_name: str
    destination: str = ""
    client_phone: str = ""
    address_street: str = ""
    address_number: str = ""
    address_complement: str = ""
    address_neighborhood: str = ""
    address_city: str = ""
    address_cep: str = ""
    delivery_value: Decimal = Decimal("0.00")
    payment_method: PaymentMethod = PaymentMethod.PIX
    change_for: Optional[Decimal] = None
    is_return_required: bool = False
    courier_id: Optional[str] = None
    distance_km: Optional[float] = Field(default=None, ge=0)
    lat: Optional[float] = None
    lng: Optional[float] = None
    source: OrderSource = OrderSource.DASHBOARD

    @model_validator(mode="before")
    @classmethod
    def fill_destination(cls, data: Any) -> Any:
        if not isinstance(data, dict) or (data.get("destination") or "").strip():
            return data
        street = (data.get("address_street") or "").strip()
        number = (data.get("address_number") or "").strip()
        neighborhood = (data.get("address_neighborhood") or "").strip()
        line = ", ".join(p for p in (street, number) if p)
        if neighborhood:
            line = f"{line} - {neighborhood}" if line else neighborhood
        return {**data, "destination": line}

    @field_validator("client_name", "destination")
    @classmethod
    def must_not_be_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Field is required.")
        return v

    @field_validator("delivery_value")
    @classmethod
    def value_must_not_be_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Delivery value cannot be negative.")
        return v

    @model_validator(mode="after")
    def coordinates_come_in_pairs(self):
        if (self.lat is None) != (self.lng is None):
            raise ValueError("lat and lng must be provided together.")
        return self

    @property
    def effective_change_for(self) -> Optional[Decimal]:
        if self.payment_method != PaymentMethod.CASH or self.change_for is None:
            return None
        return self.change_for if self.change_for > self.delivery_value else None


class QuoteRequestDTO(BaseModel):
    """Fee preview input; ``distance_km`` or ``destination`` locates the drop-off."""

    model_config = ConfigDict(frozen=True)

    distance_km: Optional[float] = Field(default=None, ge=0)
    destination: str = ""
    payment_method: PaymentMethod = PaymentMethod.PIX
    is_return_required: bool = False
    courier_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Backing store records
# ---------------------------------------------------------------------------


class ExternalDeliveryRecord(BaseModel):
    """One row of the ``deliveries`` store as read by the sync loop.

    Board-only details (display id, payment, events...) live in ``items``;
    rows written by other systems may lack them, so every accessor has a
    fallback.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    store_id: str = ""
    customer_name: str = ""
    customer_address: str = ""
    customer_phone_suffix: str = ""
    collection_code: str = ""
    status: str = ""
    total_distance: Optional[float] = None
    earnings: Decimal = Decimal("0.00")
    courier_id: Optional[str] = None
    cancellation_reason: str = ""
    items: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    @field_validator("id", "courier_id", mode="before")
    @classmethod
    def stringify_ids(cls, v: Any) -> Any:
        return str(v) if v is not None else None

    @field_validator("items", mode="before")
    @classmethod
    def items_default(cls, v: Any) -> Any:
        return v if isinstance(v, dict) else {}

    def detail(self, key: str, default: Any = None) -> Any:
        value = self.items.get(key)
        return default if value in (None, "") else value

    @property
    def display_id(self) -> str:
        return str(self.detail("display_id", self.id[-4:]))

    @property
    def pickup_code(self) -> str:
        return self.collection_code or str(self.detail("pickup_code", ""))


# ---------------------------------------------------------------------------
# Output DTOs
# ---------------------------------------------------------------------------


class OrderEventDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str
    label: str
    timestamp: datetime
    description: str


class CourierRefDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    vehicle_plate: str
    phone: str
    photo_url: str
    lat: Optional[float]
    lng: Optional[float]


class OrderOutputDTO(BaseModel):
    """Immutable DTO for a single order on the board.

    The pickup code is never exposed: the courier brings it from their app.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    display_id: str
    is_batch: bool = False
    client_name: str
    client_phone: str
    destination: str
    status: str
    courier: Optional[CourierRefDTO]
    delivery_value: Decimal
    estimated_price: Decimal
    return_fee: Decimal
    payment_method: str
    change_for: Optional[Decimal]
    change_due: Optional[Decimal]
    is_return_required: bool
    distance_km: Optional[float]
    destination_lat: Optional[float]
    destination_lng: Optional[float]
    cancellation_reason: str
    cancellation_fee: Decimal
    tracking_token: str
    source: str
    created_at: datetime
    events: List[OrderEventDTO]

    @classmethod
    def from_entity(cls, order: Order) -> OrderOutputDTO:
        point = order.destination_point
        return cls(
            id=order.id,
            display_id=order.display_id,
            client_name=order.client_name,
            client_phone=order.client_phone,
            destination=order.destination,
            status=str(order.status),
            courier=courier_ref(order.courier),
            delivery_value=order.delivery_value,
            estimated_price=order.estimated_price,
            return_fee=order.return_fee,
            payment_method=str(order.payment_method),
            change_for=order.change_for,
            change_due=order.change_due,
            is_return_required=order.is_return_required,
            distance_km=order.distance_km,
            destination_lat=point.lat if point else None,
            destination_lng=point.lng if point else None,
            cancellation_reason=order.cancellation_reason,
            cancellation_fee=order.cancellation_fee,
            tracking_token=order.tracking_token,
            source=str(order.source),
            created_at=order.created_at,
            events=[
                OrderEventDTO(
                    status=str(e.status),
                    label=e.label,
                    timestamp=e.timestamp,
                    description=e.description,
                )
                for e in order.events
            ],
        )


class BatchOutputDTO(BaseModel):
    """Immutable DTO for a courier batch on the board."""

    model_config = ConfigDict(frozen=True)

    id: str
    is_batch: bool = True
    client_name: str
    destination: str
    status: str
    courier: CourierRefDTO
    delivery_value: Decimal
    estimated_price: Decimal
    is_return_required: bool
    created_at: datetime
    batch_orders: List[OrderOutputDTO]

    @classmethod
    def from_entity(cls, batch: OrderBatch) -> BatchOutputDTO:
        return cls(
            id=batch.id,
            client_name=batch.client_name,
            destination=batch.destination,
            status=str(batch.status),
            courier=courier_ref(batch.courier),
            delivery_value=batch.delivery_value,
            estimated_price=batch.estimated_price,
            is_return_required=batch.is_return_required,
            created_at=batch.created_at,
            batch_orders=[OrderOutputDTO.from_entity(o) for o in batch.orders],
        )


class TrackingOutputDTO(BaseModel):
    """What the customer sees on the public tracking page."""

    model_config = ConfigDict(frozen=True)

    display_id: str
    client_name: str
    destination: str
    status: str
    courier_name: Optional[str]
    vehicle_plate: Optional[str]
    courier_lat: Optional[float]
    courier_lng: Optional[float]
    created_at: datetime
    events: List[OrderEventDTO]

    @classmethod
    def from_entity(cls, order: Order) -> TrackingOutputDTO:
        courier = order.courier
        return cls(
            display_id=order.display_id,
            client_name=order.client_name.split(" ")[0],
            destination=order.destination,
            status=str(order.status),
            courier_name=courier.name if courier else None,
            vehicle_plate=courier.vehicle_plate if courier else None,
            courier_lat=courier.lat if courier else None,
            courier_lng=courier.lng if courier else None,
            created_at=order.created_at,
            events=[
                OrderEventDTO(
                    status=str(e.status),
                    label=e.label,
                    timestamp=e.timestamp,
                    description=e.description,
                )
                for e in order.events
            ],
        )


def courier_ref(courier) -> Optional[CourierRefDTO]:
    if courier is None:
        return None
    return CourierRefDTO(
        id=courier.id,
        name=courier.name,
        vehicle_plate=courier.vehicle_plate,
        phone=courier.phone,
        photo_url=courier.photo_url,
        lat=courier.lat,
        lng=courier.lng,
    )


def board_entry_output(entry: BoardEntry) -> Dict[str, Any]:
    """JSON-ready payload of an order or a batch."""
    if entry.is_batch:
        return BatchOutputDTO.from_entity(entry).model_dump(mode="json")
    return OrderOutputDTO.from_entity(entry).model_dump(mode="json")
