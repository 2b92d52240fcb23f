"""Reconciliation of backing-store records with the board's local orders.

Polling is the only source of truth for remote changes.  Each tick the
dispatch service fetches the store's live records and hands them to
``SyncReconciler.reconcile`` together with the current local orders:

- unknown ids become new local orders (merged by id, never duplicated);
- known ids move forward through the state machine, never backwards;
- terminal local orders are left alone.

Conflicts (regressions, duplicates, updates to finished orders) are
expected under eventual consistency and are dropped with a debug log.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, Sequence

import structlog
from pydantic import ValidationError

from modules.couriers.entities import Courier
from modules.couriers.pool import CourierPool
from modules.couriers.repositories.interfaces import ICourierDirectory
from modules.deliveries.constants import (
    NOTIFICATION_TTL_SECONDS,
    PRE_STORE_STATES,
    OrderSource,
    OrderStatus,
    PaymentMethod,
)
from modules.deliveries.dtos import ExternalDeliveryRecord
from modules.deliveries.entities import Order
from modules.deliveries.events import DeliveryCreated
from modules.deliveries.notifications import Notification
from modules.deliveries.state_machine import (
    OrderStateMachine,
    TransitionResult,
    is_regression,
)
from modules.deliveries.status_mapping import map_external_status
from modules.geo.entities import Coordinates

logger = structlog.get_logger(__name__)


@dataclass
class SyncOutcome:
    new_orders: list[Order] = field(default_factory=list)
    updated: list[TransitionResult] = field(default_factory=list)
    released_couriers: list[Courier] = field(default_factory=list)
    engaged_couriers: list[Courier] = field(default_factory=list)
    notifications: list[Notification] = field(default_factory=list)
    skipped: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.new_orders or self.updated or self.engaged_couriers)


def parse_records(rows: Iterable[Mapping[str, Any]]) -> list[ExternalDeliveryRecord]:
    """Validate raw store rows; malformed rows are logged and skipped."""
    records = []
    for row in rows:
        try:
            records.append(ExternalDeliveryRecord.model_validate(dict(row)))
        except ValidationError as exc:
            logger.warning("sync.record_invalid", record_id=str(row.get("id")), error=str(exc))
    return records


def filter_since(
    records: Iterable[ExternalDeliveryRecord], watermark: datetime | None
) -> list[ExternalDeliveryRecord]:
    """Drop records created at or before the reset watermark."""
    if watermark is None:
        return list(records)
    return [r for r in records if r.created_at > watermark]


def _decimal(value: Any, default: str = "0.00") -> Decimal:
    try:
        return Decimal(str(value if value not in (None, "") else default))
    except InvalidOperation:
        return Decimal(default)


class SyncReconciler:
    """Merges store records into the local order list."""

    def __init__(
        self,
        courier_directory: ICourierDirectory,
        pool: CourierPool,
        state_machine: OrderStateMachine | None = None,
        *,
        notification_ttl: float = NOTIFICATION_TTL_SECONDS,
    ) -> None:
        self._directory = courier_directory
        self._pool = pool
        self._machine = state_machine or OrderStateMachine()
        self._ttl = notification_ttl

    def reconcile(
        self,
        records: Sequence[ExternalDeliveryRecord],
        orders: Sequence[Order],
        now: datetime,
        *,
        announce: bool = True,
    ) -> SyncOutcome:
        """Apply ``records`` to ``orders`` in place; returns what changed.

        ``announce=False`` suppresses "new order" notifications (used for
        the first load after start-up).
        """
        outcome = SyncOutcome()
        index: dict[str, Order] = {o.id: o for o in orders}
        live: list[Order] = list(orders)

        for record in records:
            local = index.get(record.id)
            if local is None:
                order = self._build_order(record, now, outcome)
                index[order.id] = order
                live.append(order)
                outcome.new_orders.append(order)
                if announce and order.status == OrderStatus.PENDING:
                    outcome.notifications.append(
                        self._notify(
                            "Novo Pedido",
                            f"Pedido #{order.display_id} de {order.client_name} recebido.",
                            now,
                            play_sound=True,
                        )
                    )
                continue
            self._merge(local, record, now, live, outcome)

        if outcome.new_orders or outcome.updated:
            logger.info(
                "sync.reconciled",
                new=len(outcome.new_orders),
                updated=len(outcome.updated),
                skipped=outcome.skipped,
            )
        return outcome

    # ------------------------------------------------------------------
    # New records
    # ------------------------------------------------------------------

    def _build_order(
        self, record: ExternalDeliveryRecord, now: datetime, outcome: SyncOutcome
    ) -> Order:
        status = map_external_status(record.status)
        courier = None
        if status != OrderStatus.PENDING:
            courier = self._resolve_courier(record.courier_id)

        lat, lng = record.detail("lat"), record.detail("lng")
        point = Coordinates(lat=float(lat), lng=float(lng)) if lat is not None and lng is not None else None
        payment = record.detail("payment_method", PaymentMethod.PIX)
        change_for = record.detail("change_for")

        order = Order(
            id=record.id,
            display_id=record.display_id,
            client_name=record.customer_name or "Cliente",
            destination=record.customer_address,
            pickup_code=record.pickup_code,
            created_at=record.created_at,
            client_phone=str(record.detail("client_phone", record.customer_phone_suffix)),
            address_street=record.detail("address_street", ""),
            address_number=record.detail("address_number", ""),
            address_complement=record.detail("address_complement", ""),
            address_neighborhood=record.detail("address_neighborhood", ""),
            address_city=record.detail("address_city", ""),
            delivery_value=_decimal(record.detail("delivery_value")),
            estimated_price=_decimal(record.detail("estimated_price"), str(record.earnings)),
            return_fee=_decimal(record.detail("return_fee")),
            payment_method=payment if payment in PaymentMethod.values else PaymentMethod.PIX,
            change_for=_decimal(change_for) if change_for is not None else None,
            is_return_required=bool(record.detail("is_return_required", False)),
            distance_km=record.total_distance,
            destination_point=point,
            tracking_token=str(record.detail("tracking_token", "")),
            source=record.detail("source", OrderSource.SYNC),
        )
        order.record_event(
            OrderStatus.PENDING, record.created_at, "Pedido recebido da plataforma."
        )
        order.add_domain_event(DeliveryCreated(aggregate_id=order.id, source=str(order.source)))

        if status == OrderStatus.PENDING:
            return order

        if status == OrderStatus.CANCELED:
            self._settle(courier)
            order.status = status
            order.cancellation_reason = record.cancellation_reason
            order.record_event(
                status, now, f"Cancelado na plataforma. Motivo: {record.cancellation_reason or '-'}"
            )
            return order

        order.status = status
        order.record_event(status, now, "Sincronizado da plataforma.")
        if courier is None:
            return order
        if order.is_active:
            order.courier = self._engage(courier, outcome)
        else:
            order.courier = self._pool.register(courier)
        return order

    # ------------------------------------------------------------------
    # Known records
    # ------------------------------------------------------------------

    def _merge(
        self,
        local: Order,
        record: ExternalDeliveryRecord,
        now: datetime,
        live: Sequence[Order],
        outcome: SyncOutcome,
    ) -> None:
        if local.is_terminal:
            outcome.skipped += 1
            return

        incoming = map_external_status(record.status)
        courier = None
        if local.courier is None and incoming != OrderStatus.PENDING:
            courier = self._resolve_courier(record.courier_id)

        if incoming == local.status:
            if courier is not None and local.is_active:
                local.courier = self._engage(courier, outcome)
            else:
                self._settle(courier)
                outcome.skipped += 1
            return

        if is_regression(local.status, incoming):
            logger.debug(
                "sync.regression_ignored",
                delivery_id=local.id,
                local_status=str(local.status),
                incoming_status=str(incoming),
            )
            self._settle(courier)
            outcome.skipped += 1
            return

        old_status = local.status
        result = self._machine.apply_external(
            local, incoming, now, courier=courier, reason=record.cancellation_reason
        )
        if not result.changed:
            self._settle(courier)
            outcome.skipped += 1
            return
        outcome.updated.append(result)

        if local.is_active:
            if local.courier is not None:
                local.courier = self._engage(local.courier, outcome)
        else:
            served_by = result.previous_courier or local.courier
            at = local.destination_point if local.status == OrderStatus.DELIVERED else None
            self._release_if_idle(served_by, at, live, outcome)
            self._settle(courier)

        notification = self._status_notification(local, old_status, now)
        if notification is not None:
            outcome.notifications.append(notification)

    # ------------------------------------------------------------------
    # Couriers
    # ------------------------------------------------------------------

    def _resolve_courier(self, courier_id: str | None) -> Courier | None:
        """Look a courier up in the pool, then the directory; never registers."""
        if not courier_id:
            return None
        known = self._pool.get(courier_id)
        if known is not None:
            return known
        courier = self._directory.get_by_id(courier_id)
        if courier is None:
            logger.debug("sync.courier_unknown", courier_id=courier_id)
            return None
        return courier

    def _settle(self, courier: Courier | None) -> None:
        """Register a resolved courier no active order holds as available."""
        if courier is not None and courier.id not in self._pool:
            self._pool.register(courier)

    def _engage(self, courier: Courier, outcome: SyncOutcome) -> Courier:
        was_available = self._pool.is_available(courier.id)
        pooled = self._pool.engage(courier)
        if was_available:
            outcome.engaged_couriers.append(pooled)
        return pooled

    def _release_if_idle(
        self,
        courier: Courier | None,
        at: Coordinates | None,
        live: Sequence[Order],
        outcome: SyncOutcome,
    ) -> None:
        if courier is None:
            return
        if any(o.is_active and o.courier_id == courier.id for o in live):
            return
        if self._pool.release(courier, at):
            outcome.released_couriers.append(courier)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def _notify(
        self, title: str, message: str, now: datetime, *, play_sound: bool = False
    ) -> Notification:
        return Notification.create(title, message, now, play_sound=play_sound, ttl=self._ttl)

    def _status_notification(
        self, order: Order, old_status: str, now: datetime
    ) -> Notification | None:
        who = order.courier.name if order.courier else "Entregador"
        if order.status == OrderStatus.ACCEPTED:
            return self._notify(
                "Entregador Encontrado",
                f"{who} aceitou o pedido #{order.display_id}.",
                now,
            )
        if order.status == OrderStatus.IN_TRANSIT:
            return self._notify(
                "Saiu para Entrega",
                f"Pedido #{order.display_id} a caminho de {order.client_name}.",
                now,
            )
        if order.status == OrderStatus.ARRIVED_AT_STORE:
            return self._notify(
                "Entregador na Loja",
                f"{who} chegou para retirar o pedido #{order.display_id}.",
                now,
                play_sound=old_status in PRE_STORE_STATES,
            )
        if order.status == OrderStatus.DELIVERED:
            return self._notify(
                "Entrega Finalizada",
                f"Pedido #{order.display_id} entregue a {order.client_name}.",
                now,
            )
        return None
