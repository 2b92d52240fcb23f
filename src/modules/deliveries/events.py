"""Domain events for the Deliveries bounded context."""

from __future__ import annotations

from dataclasses import dataclass

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class DeliveryCreated(DomainEvent):
    """Raised when the store creates a delivery or sync discovers one."""

    source: str = ""


@dataclass(frozen=True)
class DeliveryStatusChanged(DomainEvent):
    """Raised on every applied status transition."""

    old_status: str = ""
    new_status: str = ""
    courier_id: str | None = None


@dataclass(frozen=True)
class DeliveryCanceled(DomainEvent):
    """Raised when a delivery is canceled, locally or by the store."""

    reason: str = ""
    courier_id: str | None = None
