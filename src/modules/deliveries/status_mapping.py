"""Single translation table between the store vocabulary and ``OrderStatus``.

No other module compares status strings coming from the backing store:
reads go through ``map_external_status`` and every write goes through
``to_external_status``.
"""

from __future__ import annotations

import structlog

from modules.deliveries.constants import ExternalStatus, OrderStatus

logger = structlog.get_logger(__name__)

EXTERNAL_TO_STATUS: dict[str, OrderStatus] = {
    ExternalStatus.PENDING: OrderStatus.PENDING,
    ExternalStatus.ACCEPTED: OrderStatus.ACCEPTED,
    ExternalStatus.ARRIVED_PICKUP: OrderStatus.ARRIVED_AT_STORE,
    ExternalStatus.READY_FOR_PICKUP: OrderStatus.READY_FOR_PICKUP,
    ExternalStatus.IN_TRANSIT: OrderStatus.IN_TRANSIT,
    # The board has no "at the customer's door" state
    ExternalStatus.ARRIVED_AT_CUSTOMER: OrderStatus.IN_TRANSIT,
    ExternalStatus.COMPLETED: OrderStatus.DELIVERED,
    ExternalStatus.CANCELED: OrderStatus.CANCELED,
    "cancelled": OrderStatus.CANCELED,
}

STATUS_TO_EXTERNAL: dict[OrderStatus, str] = {
    OrderStatus.PENDING: ExternalStatus.PENDING,
    OrderStatus.ACCEPTED: ExternalStatus.ACCEPTED,
    OrderStatus.TO_STORE: ExternalStatus.ACCEPTED,
    OrderStatus.ARRIVED_AT_STORE: ExternalStatus.ARRIVED_PICKUP,
    OrderStatus.READY_FOR_PICKUP: ExternalStatus.READY_FOR_PICKUP,
    OrderStatus.IN_TRANSIT: ExternalStatus.IN_TRANSIT,
    OrderStatus.RETURNING: ExternalStatus.ARRIVED_AT_CUSTOMER,
    OrderStatus.DELIVERED: ExternalStatus.COMPLETED,
    OrderStatus.CANCELED: ExternalStatus.CANCELED,
}

DEFAULT_STATUS = OrderStatus.PENDING


def map_external_status(value: str | None) -> OrderStatus:
    """Translate a store status; unknown or empty values fall back to PENDING."""
    key = (value or "").strip().lower()
    status = EXTERNAL_TO_STATUS.get(key)
    if status is None:
        logger.debug("status_mapping.unknown_external_status", value=value)
        return DEFAULT_STATUS
    return status


def to_external_status(status: str) -> str:
    """Translate an ``OrderStatus`` into the store vocabulary (always a plain str)."""
    return str(STATUS_TO_EXTERNAL[OrderStatus(status)].value)
