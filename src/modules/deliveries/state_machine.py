"""Order lifecycle state machine.

``VALID_TRANSITIONS`` (constants) is the only source of legality.  Each
helper here mutates one ``Order``: when the transition is legal it sets
the new status, appends exactly one ``OrderEvent`` and records a domain
event; otherwise it changes nothing and reports ``changed=False``.
Terminal orders never move again.

Pool updates, batch fan-out, notifications and persistence belong to
the dispatch service, which orchestrates these helpers.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

import structlog
from django.utils import timezone

from modules.couriers.entities import Courier
from modules.deliveries.constants import (
    EVENT_LABELS,
    READY_SOURCE_STATES,
    STATUS_RANK,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    OrderStatus,
)
from modules.deliveries.entities import Order, OrderEvent
from modules.deliveries.events import DeliveryCanceled, DeliveryStatusChanged
from modules.deliveries.exceptions import MissingCancellationReason

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TransitionResult:
    order: Order
    changed: bool
    old_status: str
    new_status: str
    event: OrderEvent | None = None
    previous_courier: Courier | None = None


def can_transition(current: str, target: str) -> bool:
    return target in VALID_TRANSITIONS.get(current, set())


def is_regression(local: str, incoming: str) -> bool:
    """True when an external status would move the order backwards.

    Any update to a terminal order counts as a regression.
    """
    if local in TERMINAL_STATES:
        return True
    return STATUS_RANK[incoming] < STATUS_RANK[local]


class OrderStateMachine:
    """Applies lifecycle transitions to orders."""

    def __init__(self, clock: Callable[[], datetime] = timezone.now) -> None:
        self._clock = clock

    # ------------------------------------------------------------------
    # Store / courier actions
    # ------------------------------------------------------------------

    def accept(self, order: Order, courier: Courier, at: datetime | None = None) -> TransitionResult:
        """PENDING -> ACCEPTED; only while the order has no courier."""
        if order.courier is not None or not can_transition(order.status, OrderStatus.ACCEPTED):
            return self._ignored(order, OrderStatus.ACCEPTED)
        order.courier = courier
        return self._apply(
            order,
            OrderStatus.ACCEPTED,
            f"{courier.label} aceitou a corrida.",
            at,
        )

    def advance(self, order: Order, target: str, at: datetime | None = None) -> TransitionResult:
        """Courier progress before pickup: TO_STORE or ARRIVED_AT_STORE."""
        descriptions = {
            OrderStatus.TO_STORE: "Entregador a caminho da loja.",
            OrderStatus.ARRIVED_AT_STORE: "Entregador chegou ao estabelecimento.",
        }
        if target not in descriptions:
            return self._ignored(order, target)
        result = self._apply(order, target, descriptions[target], at)
        if result.changed and target == OrderStatus.ARRIVED_AT_STORE:
            order.store_arrival_at = result.event.timestamp
        return result

    def mark_ready(self, order: Order, at: datetime | None = None) -> TransitionResult:
        if order.status not in READY_SOURCE_STATES:
            return self._ignored(order, OrderStatus.READY_FOR_PICKUP)
        return self._apply(
            order, OrderStatus.READY_FOR_PICKUP, "Lojista marcou como pronto.", at
        )

    def dispatch(self, order: Order, at: datetime | None = None) -> TransitionResult:
        """READY_FOR_PICKUP -> IN_TRANSIT, after the pickup code was validated."""
        return self._apply(
            order, OrderStatus.IN_TRANSIT, "Segurança confirmada. Despachado.", at
        )

    def reach_destination(self, order: Order, at: datetime | None = None) -> TransitionResult:
        """IN_TRANSIT -> RETURNING when a return is required, else DELIVERED."""
        if order.status != OrderStatus.IN_TRANSIT:
            target = OrderStatus.RETURNING if order.is_return_required else OrderStatus.DELIVERED
            return self._ignored(order, target)
        if order.is_return_required:
            return self._apply(
                order, OrderStatus.RETURNING, "Entrega realizada. Retornando.", at
            )
        return self._apply(order, OrderStatus.DELIVERED, "Entregue ao cliente.", at)

    def confirm_return(self, order: Order, at: datetime | None = None) -> TransitionResult:
        if order.status != OrderStatus.RETURNING:
            return self._ignored(order, OrderStatus.DELIVERED)
        return self._apply(
            order,
            OrderStatus.DELIVERED,
            "Lojista confirmou recebimento da maquininha/dinheiro. Pedido finalizado.",
            at,
            label="Devolução Confirmada",
        )

    def cancel(
        self,
        order: Order,
        reason: str,
        at: datetime | None = None,
        *,
        by: str = "lojista",
    ) -> TransitionResult:
        """Cancel from any non-terminal state, releasing the courier reference.

        Raises:
            MissingCancellationReason: blank reason.
        """
        reason = (reason or "").strip()
        if not reason:
            raise MissingCancellationReason("A cancellation reason is required.")
        if not can_transition(order.status, OrderStatus.CANCELED):
            return self._ignored(order, OrderStatus.CANCELED)

        previous = order.courier
        result = self._apply(
            order, OrderStatus.CANCELED, f"Cancelado pelo {by}. Motivo: {reason}", at
        )
        order.courier = None
        order.cancellation_reason = reason
        order.add_domain_event(
            DeliveryCanceled(
                aggregate_id=order.id,
                reason=reason,
                courier_id=previous.id if previous else None,
            )
        )
        return TransitionResult(
            order=order,
            changed=True,
            old_status=result.old_status,
            new_status=result.new_status,
            event=result.event,
            previous_courier=previous,
        )

    # ------------------------------------------------------------------
    # External updates (sync)
    # ------------------------------------------------------------------

    def apply_external(
        self,
        order: Order,
        incoming: str,
        at: datetime | None = None,
        *,
        courier: Courier | None = None,
        reason: str = "",
    ) -> TransitionResult:
        """Move an order forward to a status reported by the backing store.

        The store may skip intermediate states; any forward move is taken.
        Equal, backward or post-terminal updates are discarded.
        """
        if incoming == order.status or is_regression(order.status, incoming):
            if incoming != order.status:
                logger.debug(
                    "delivery.regression_ignored",
                    delivery_id=order.id,
                    local_status=order.status,
                    incoming_status=incoming,
                )
            return self._ignored(order, incoming)

        if incoming == OrderStatus.CANCELED:
            return self.cancel(order, reason or "Cancelado na plataforma", at, by="sistema")

        if courier is not None and order.courier is None:
            order.courier = courier
        if incoming == OrderStatus.ACCEPTED and order.courier is not None:
            description = f"{order.courier.label} aceitou a corrida."
        else:
            description = "Atualizado pela plataforma."
        result = self._apply(order, incoming, description, at, force=True)
        if incoming == OrderStatus.ARRIVED_AT_STORE:
            order.store_arrival_at = result.event.timestamp
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _apply(
        self,
        order: Order,
        target: str,
        description: str,
        at: datetime | None,
        *,
        label: str | None = None,
        force: bool = False,
    ) -> TransitionResult:
        old = order.status
        if not force and not can_transition(old, target):
            return self._ignored(order, target)

        order.status = target
        event = order.record_event(
            target, at or self._clock(), description, label or EVENT_LABELS[target]
        )
        order.add_domain_event(
            DeliveryStatusChanged(
                aggregate_id=order.id,
                old_status=str(old),
                new_status=str(target),
                courier_id=order.courier_id,
            )
        )
        logger.info(
            "delivery.status_changed",
            delivery_id=order.id,
            old_status=str(old),
            new_status=str(target),
        )
        return TransitionResult(order, True, old, target, event)

    @staticmethod
    def _ignored(order: Order, target: str) -> TransitionResult:
        logger.debug(
            "delivery.transition_ignored",
            delivery_id=order.id,
            status=str(order.status),
            target=str(target),
        )
        return TransitionResult(order, False, order.status, order.status)
