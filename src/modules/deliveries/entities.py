"""In-memory delivery entities owned by the dispatch board.

``Order`` is the board's working copy of a delivery.  It references a
``Courier`` (never owns it) and keeps an append-only event trail whose
first entry is always the creation (PENDING) event.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, ClassVar

from modules.couriers.entities import Courier
from modules.deliveries.constants import (
    EVENT_LABELS,
    TERMINAL_STATES,
    OrderSource,
    OrderStatus,
    PaymentMethod,
)
from modules.geo.entities import Coordinates
from shared.domain.events import DomainEventMixin


@dataclass(frozen=True)
class OrderEvent:
    status: str
    label: str
    timestamp: datetime
    description: str = ""

    def as_dict(self) -> dict[str, Any]:
        return {
            "status": str(self.status),
            "label": self.label,
            "timestamp": self.timestamp.isoformat(),
            "description": self.description,
        }


@dataclass(eq=False)
class Order(DomainEventMixin):
    """A single delivery request on the board."""

    id: str
    display_id: str
    client_name: str
    destination: str
    pickup_code: str
    created_at: datetime
    status: str = OrderStatus.PENDING
    courier: Courier | None = None
    client_phone: str = ""
    address_street: str = ""
    address_number: str = ""
    address_complement: str = ""
    address_neighborhood: str = ""
    address_city: str = ""
    delivery_value: Decimal = Decimal("0.00")
    estimated_price: Decimal = Decimal("0.00")
    return_fee: Decimal = Decimal("0.00")
    payment_method: str = PaymentMethod.PIX
    change_for: Decimal | None = None
    is_return_required: bool = False
    distance_km: float | None = None
    destination_point: Coordinates | None = None
    events: list[OrderEvent] = field(default_factory=list)
    cancellation_reason: str = ""
    cancellation_fee: Decimal = Decimal("0.00")
    tracking_token: str = ""
    source: str = OrderSource.DASHBOARD
    store_arrival_at: datetime | None = None

    is_batch: ClassVar[bool] = False

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "pickup_code" and "pickup_code" in self.__dict__:
            raise AttributeError("pickup_code is immutable once assigned")
        super().__setattr__(name, value)

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    @property
    def is_active(self) -> bool:
        return not self.is_terminal

    @property
    def courier_id(self) -> str | None:
        return self.courier.id if self.courier else None

    @property
    def change_due(self) -> Decimal | None:
        """Change the courier must carry (cash payments only)."""
        if self.payment_method != PaymentMethod.CASH or self.change_for is None:
            return None
        if self.change_for <= self.delivery_value:
            return None
        return self.change_for - self.delivery_value

    @property
    def last_event(self) -> OrderEvent | None:
        return self.events[-1] if self.events else None

    # ------------------------------------------------------------------
    # Event trail
    # ------------------------------------------------------------------

    def record_event(
        self,
        status: str,
        at: datetime,
        description: str = "",
        label: str | None = None,
    ) -> OrderEvent:
        event = OrderEvent(
            status=status,
            label=label or EVENT_LABELS[status],
            timestamp=at,
            description=description,
        )
        self.events.append(event)
        return event
