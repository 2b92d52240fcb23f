"""Event handlers for Deliveries domain events."""

from __future__ import annotations

import structlog

from modules.deliveries.events import (
    DeliveryCanceled,
    DeliveryCreated,
    DeliveryStatusChanged,
)
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class DeliveryCreatedHandler(IEventHandler[DeliveryCreated]):
    def handle(self, event: DeliveryCreated) -> None:
        logger.info(
            f"Nova entrega {event.aggregate_id} no painel",
            delivery_id=event.aggregate_id,
            source=event.source,
        )


class DeliveryStatusChangedHandler(IEventHandler[DeliveryStatusChanged]):
    def handle(self, event: DeliveryStatusChanged) -> None:
        logger.info(
            f"Entrega {event.aggregate_id}: {event.old_status} -> {event.new_status}",
            delivery_id=event.aggregate_id,
            old_status=event.old_status,
            new_status=event.new_status,
            courier_id=event.courier_id,
        )


class DeliveryCanceledHandler(IEventHandler[DeliveryCanceled]):
    def handle(self, event: DeliveryCanceled) -> None:
        logger.info(
            f"Entrega {event.aggregate_id} cancelada",
            delivery_id=event.aggregate_id,
            reason=event.reason,
            courier_id=event.courier_id,
        )


delivery_created_handler = DeliveryCreatedHandler()
delivery_status_changed_handler = DeliveryStatusChangedHandler()
delivery_canceled_handler = DeliveryCanceledHandler()
