"""Dispatch service layer (Use Cases).

``DispatchService`` owns the board state (orders, courier pool,
notifications, selection) and is the only writer of it.  Every user
action, sync tick and roaming tick runs under one lock, so each one
sees the current state and leaves it consistent.

Write-through contract:
- local state changes first (optimistic) and is the source of truth;
- exactly one persistence call follows (``insert`` / multi-row
  ``update`` / ``delete``), issued after the lock is released;
- a ``PersistenceError`` is logged and shown as an error notification,
  local state is never rolled back; the next sync converges.

Courier conservation: a courier is released to the pool only when no
active order still references it, so batch actions release it once.
"""

from __future__ import annotations

import random
import secrets
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Sequence

import structlog
import uuid6
from django.db import DatabaseError
from django.utils import timezone

from modules.couriers.entities import Courier
from modules.couriers.exceptions import CourierNotFound, CourierUnavailable
from modules.couriers.pool import CourierPool
from modules.couriers.roaming import roam_idle_couriers
from modules.deliveries.batching import BoardEntry, batch_members, group_orders
from modules.deliveries.constants import (
    NOTIFICATION_TTL_SECONDS,
    PRE_STORE_STATES,
    OrderStatus,
)
from modules.deliveries.entities import Order
from modules.deliveries.events import DeliveryCreated
from modules.deliveries.exceptions import (
    InvalidOrderStatus,
    InvalidPickupCode,
    MissingCancellationReason,
    OrderNotFound,
    PersistenceError,
    ResetNotConfirmed,
)
from modules.deliveries.notifications import Notification, NotificationCenter
from modules.deliveries.pickup import PickupOutcome, PickupValidator
from modules.deliveries.pricing import (
    FeeBreakdown,
    QuoteDraft,
    cancellation_fee,
    resolve_return_required,
)
from modules.deliveries.reports import Summary, filter_history, summarize
from modules.deliveries.state_machine import OrderStateMachine, TransitionResult
from modules.deliveries.status_mapping import to_external_status
from modules.deliveries.sync import SyncOutcome, SyncReconciler, filter_since, parse_records
from modules.geo.distance import haversine_km, route_length_km
from modules.geo.entities import Coordinates

if TYPE_CHECKING:
    from modules.couriers.repositories.interfaces import ICourierDirectory
    from modules.customers.services import CustomerService
    from modules.deliveries.checkpoints import WatermarkStore
    from modules.deliveries.dtos import CreateDeliveryDTO, QuoteRequestDTO
    from modules.deliveries.repositories.interfaces import IDeliveryStore
    from modules.deliveries.store import StoreProfile, StoreSettings
    from modules.geo.port import GeoPort
    from shared.domain.bus import IEventBus

logger = structlog.get_logger(__name__)


@dataclass
class BoardState:
    """Everything the board shows, owned by one ``DispatchService``."""

    pool: CourierPool
    notifications: NotificationCenter
    orders: List[Order] = field(default_factory=list)
    active_order_id: Optional[str] = None
    selected_order_id: Optional[str] = None
    bootstrapped: bool = False


@dataclass(frozen=True)
class Quote:
    draft: QuoteDraft
    fee: FeeBreakdown


@dataclass
class _Write:
    """A persistence call prepared under the lock, executed after it."""

    action: str
    call: Callable[[], Any]
    ids: List[str] = field(default_factory=list)


class DispatchService:
    """Application service for the dispatch board.

    Receives its collaborators via constructor injection (DIP).
    """

    def __init__(
        self,
        store: IDeliveryStore,
        courier_directory: ICourierDirectory,
        geo: GeoPort,
        *,
        profile: StoreProfile,
        settings: StoreSettings,
        watermarks: WatermarkStore,
        customer_service: CustomerService | None = None,
        event_bus: IEventBus | None = None,
        pool: CourierPool | None = None,
        clock: Callable[[], datetime] = timezone.now,
        rng: random.Random | None = None,
        notification_ttl: float = NOTIFICATION_TTL_SECONDS,
    ) -> None:
        self._store = store
        self._directory = courier_directory
        self._geo = geo
        self._profile = profile
        self._settings = settings
        self._watermarks = watermarks
        self._customers = customer_service
        self._bus = event_bus
        self._clock = clock
        self._rng = rng or random.SystemRandom()
        self._lock = threading.RLock()
        self._machine = OrderStateMachine(clock=clock)

        if pool is None:
            pool = CourierPool(courier_directory.list_active())
        self.state = BoardState(pool=pool, notifications=NotificationCenter(notification_ttl))
        self._reconciler = SyncReconciler(
            courier_directory, pool, self._machine, notification_ttl=notification_ttl
        )

    @property
    def pool(self) -> CourierPool:
        return self.state.pool

    @property
    def profile(self) -> StoreProfile:
        return self._profile

    @property
    def settings(self) -> StoreSettings:
        return self._settings

    # ------------------------------------------------------------------
    # Create / accept
    # ------------------------------------------------------------------

    def create_order(self, dto: CreateDeliveryDTO) -> Order:
        """Price, register and write through a new delivery.

        With ``dto.courier_id`` the order is accepted immediately; a
        courier already on a route gets the batch discount.

        Raises:
            CourierNotFound: ``courier_id`` is not a known courier.
            CourierUnavailable: the courier was taken concurrently.
        """
        log = logger.bind(client_name=dto.client_name)
        log.info("delivery.creation_started")

        if dto.courier_id and dto.courier_id not in self.pool:
            raise CourierNotFound(f"Courier {dto.courier_id} not found.")

        point, distance = self._locate(dto.destination, dto.lat, dto.lng, dto.distance_km)
        draft = QuoteDraft(
            distance_km=distance,
            payment_method=dto.payment_method,
            is_return_required=dto.is_return_required,
        )

        order_id = str(uuid6.uuid7())
        with self._lock:
            courier = None
            if dto.courier_id:
                courier, draft.is_batching = self._claim_courier(order_id, dto.courier_id)
            fee = self._fee(draft)
            now = self._clock()
            order = Order(
                id=order_id,
                display_id=str(self._rng.randint(1000, 9999)),
                client_name=dto.client_name,
                destination=dto.destination,
                pickup_code=self._pickup_code_for(courier if draft.is_batching else None),
                created_at=now,
                client_phone=dto.client_phone,
                address_street=dto.address_street,
                address_number=dto.address_number,
                address_complement=dto.address_complement,
                address_neighborhood=dto.address_neighborhood,
                address_city=dto.address_city,
                delivery_value=dto.delivery_value,
                estimated_price=fee.total,
                return_fee=fee.surcharge,
                payment_method=dto.payment_method,
                change_for=dto.effective_change_for,
                is_return_required=draft.is_return_required,
                distance_km=distance,
                destination_point=point,
                tracking_token=secrets.token_urlsafe(9),
                source=dto.source,
            )
            order.record_event(OrderStatus.PENDING, now, "Pedido criado pelo lojista.")
            order.add_domain_event(DeliveryCreated(aggregate_id=order.id, source=str(order.source)))
            self.state.orders.insert(0, order)
            if courier is not None:
                self._machine.accept(order, courier, now)
            write = _Write("create", lambda: self._store.insert(self._to_record(order)), [order.id])

        self._flush(write)
        self._record_customer(order, dto.address_cep)
        self._publish([order])
        log.info(
            "delivery.created",
            delivery_id=order.id,
            display_id=order.display_id,
            fee=str(order.estimated_price),
            status=str(order.status),
        )
        return order

    def accept_order(self, order_id: str, courier_id: str | None = None) -> Order:
        """Assign a courier to a pending order.

        Without ``courier_id`` the first available courier takes it.  An
        engaged courier takes it as an extra stop on their route.

        Raises:
            OrderNotFound: unknown order.
            InvalidOrderStatus: order is not pending or already has a courier.
            CourierNotFound: unknown courier.
            CourierUnavailable: no courier free, or it was taken concurrently.
        """
        with self._lock:
            order = self._require(order_id)
            if order.status != OrderStatus.PENDING or order.courier is not None:
                raise InvalidOrderStatus(
                    f"Order {order_id} cannot be accepted in status {order.status}."
                )
            courier, _ = self._claim_courier(order.id, courier_id)
            self._machine.accept(order, courier, self._clock())
            self.state.active_order_id = order.id
            write = self._status_write("accept", [order], courier_id=courier.id)

        self._flush(write)
        self._publish([order])
        return order

    # ------------------------------------------------------------------
    # Store / courier progress
    # ------------------------------------------------------------------

    def advance_order(self, target_id: str, status: str) -> List[Order]:
        """Courier progress on the way to the store (TO_STORE / ARRIVED_AT_STORE).

        Applies to every order the courier is carrying.
        """
        if status not in (OrderStatus.TO_STORE, OrderStatus.ARRIVED_AT_STORE):
            raise InvalidOrderStatus(f"Cannot advance an order to {status}.")

        with self._lock:
            now = self._clock()
            members = self._members(target_id)
            previous = {o.id: o.status for o in members}
            changed = self._apply_all(
                members, lambda o: self._machine.advance(o, status, now), status
            )
            if status == OrderStatus.ARRIVED_AT_STORE:
                first = changed[0]
                who = first.courier.name if first.courier else "Entregador"
                self.state.notifications.push(
                    "Entregador na Loja",
                    f"{who} chegou para retirar o pedido #{first.display_id}.",
                    now,
                    play_sound=any(previous[o.id] in PRE_STORE_STATES for o in changed),
                )
            write = self._status_write("advance", changed)

        self._flush(write)
        self._publish(changed)
        return changed

    def mark_ready(self, target_id: str) -> List[Order]:
        """Store marks an order, or every order of its batch, ready for pickup."""
        with self._lock:
            now = self._clock()
            changed = self._apply_all(
                self._members(target_id),
                lambda o: self._machine.mark_ready(o, now),
                OrderStatus.READY_FOR_PICKUP,
            )
            write = self._status_write("mark_ready", changed)

        self._flush(write)
        self._publish(changed)
        return changed

    def pickup_session(self, target_id: str) -> PickupValidator:
        """Digit-entry validator loaded with the codes of the target's ready orders."""
        with self._lock:
            ready = self._ready_members(target_id)
            return PickupValidator([o.pickup_code for o in ready])

    def validate_pickup(self, target_id: str, code: str) -> List[Order]:
        """Check the courier's code and dispatch every ready order it covers.

        Raises:
            OrderNotFound: unknown order or batch.
            InvalidOrderStatus: nothing is ready for pickup.
            InvalidPickupCode: the code matches no order of the target.
        """
        with self._lock:
            now = self._clock()
            ready = self._ready_members(target_id)
            validator = PickupValidator([o.pickup_code for o in ready])
            if validator.submit(code, now) != PickupOutcome.ACCEPTED:
                logger.info("delivery.pickup_rejected", target_id=target_id)
                raise InvalidPickupCode("Código inválido.")
            changed = self._apply_all(
                ready, lambda o: self._machine.dispatch(o, now), OrderStatus.IN_TRANSIT
            )
            write = self._status_write("validate_pickup", changed)

        self._flush(write)
        self._publish(changed)
        return changed

    def reach_destination(self, order_id: str) -> Order:
        """Courier reached the customer: DELIVERED, or RETURNING when a return is due.

        A delivered order frees its courier at the destination.
        """
        with self._lock:
            order = self._require(order_id)
            now = self._clock()
            result = self._machine.reach_destination(order, now)
            if not result.changed:
                raise InvalidOrderStatus(
                    f"Order {order_id} is not in transit (status {order.status})."
                )
            if order.status == OrderStatus.RETURNING:
                who = order.courier.name if order.courier else "Entregador"
                self.state.notifications.push(
                    "Retorno à Loja",
                    f"{who} volta à loja com a maquininha/troco do pedido #{order.display_id}.",
                    now,
                )
            else:
                self._release_if_idle(order.courier, order.destination_point)
            write = self._status_write("reach_destination", [order])

        self._flush(write)
        self._publish([order])
        return order

    def confirm_return(self, target_id: str) -> List[Order]:
        """Store got the card machine/cash back: RETURNING orders become DELIVERED.

        The courier is released once, at the store.
        """
        with self._lock:
            now = self._clock()
            changed = self._apply_all(
                self._members(target_id),
                lambda o: self._machine.confirm_return(o, now),
                OrderStatus.DELIVERED,
            )
            self._release_if_idle(changed[0].courier, self._profile.coordinates)
            write = self._status_write("confirm_return", changed)

        self._flush(write)
        self._publish(changed)
        return changed

    def cancel_order(self, order_id: str, reason: str) -> Order:
        """Cancel a non-terminal order and free its courier.

        Raises:
            MissingCancellationReason: blank reason (checked before anything else).
            OrderNotFound: unknown order.
            InvalidOrderStatus: order already finished.
        """
        reason = (reason or "").strip()
        if not reason:
            raise MissingCancellationReason("A cancellation reason is required.")

        with self._lock:
            order = self._require(order_id)
            old_status = order.status
            result = self._machine.cancel(order, reason, self._clock())
            if not result.changed:
                raise InvalidOrderStatus(f"Order {order_id} is already {order.status}.")
            order.cancellation_fee = cancellation_fee(old_status)
            self._release_if_idle(result.previous_courier, None)
            if self.state.active_order_id == order.id:
                self.state.active_order_id = None
            if self.state.selected_order_id == order.id:
                self.state.selected_order_id = None
            write = self._status_write(
                "cancel", [order], courier_id=None, cancellation_reason=reason
            )

        self._flush(write)
        self._publish([order])
        logger.info(
            "delivery.canceled",
            delivery_id=order.id,
            fee=str(order.cancellation_fee),
        )
        return order

    def select_order(self, order_id: str | None) -> Order | None:
        """Focus an order on the board; ``None`` clears the selection."""
        with self._lock:
            if order_id is None:
                self.state.selected_order_id = None
                return None
            order = self._require(order_id)
            self.state.selected_order_id = order.id
            return order

    def reset_all_data(self, confirm: bool) -> int:
        """Wipe the board and the store's records for this merchant.

        The reset watermark is stamped first and local state is cleared
        even when the store delete fails, so pre-reset records never come
        back.  Returns how many store records were deleted.

        Raises:
            ResetNotConfirmed: ``confirm`` is not true.
        """
        if confirm is not True:
            raise ResetNotConfirmed("Reset requires explicit confirmation.")

        with self._lock:
            now = self._clock()
            self._watermarks.stamp(now)
            cleared = len(self.state.orders)
            self.state.orders.clear()
            self.state.notifications.clear()
            self.state.active_order_id = None
            self.state.selected_order_id = None
            self.pool.reset()

        deleted = 0
        try:
            deleted = self._store.delete({"store_id": self._profile.store_id})
        except PersistenceError as exc:
            logger.error("delivery.reset_store_failed", error=str(exc))
            self.state.notifications.error(
                "Erro ao Limpar Dados",
                "Os pedidos foram removidos do painel, mas não do servidor.",
                self._clock(),
            )
        logger.warning("delivery.board_reset", cleared=cleared, deleted=deleted)
        return deleted

    # ------------------------------------------------------------------
    # Periodic activities
    # ------------------------------------------------------------------

    def sync_tick(self) -> SyncOutcome:
        """Pull the store's records and merge them into the board.

        A failed read is logged and leaves the board untouched.
        """
        try:
            rows = self._store.query(
                {"store_id": self._profile.store_id}, order_by=["-created_at"]
            )
        except PersistenceError as exc:
            logger.warning("sync.fetch_failed", error=str(exc))
            return SyncOutcome()
        records = parse_records(rows)

        with self._lock:
            records = filter_since(records, self._watermarks.current())
            now = self._clock()
            outcome = self._reconciler.reconcile(
                records, self.state.orders, now, announce=self.state.bootstrapped
            )
            self.state.orders[:0] = outcome.new_orders
            for notification in outcome.notifications:
                self.state.notifications.add(notification)
            self.state.bootstrapped = True

        self._publish(outcome.new_orders + [r.order for r in outcome.updated])
        logger.debug(
            "sync.tick_completed",
            records=len(records),
            new=len(outcome.new_orders),
            updated=len(outcome.updated),
        )
        return outcome

    def roam_tick(self) -> int:
        with self._lock:
            return roam_idle_couriers(self.pool, self._rng)

    def refresh_roster(self) -> int:
        """Register couriers added to the directory since start-up."""
        added = 0
        with self._lock:
            for courier in self._directory.list_active():
                if courier.id not in self.pool:
                    self.pool.register(courier)
                    added += 1
        return added

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def board_entries(self) -> List[BoardEntry]:
        with self._lock:
            return group_orders(self.state.orders)

    def get_order(self, order_id: str) -> Order:
        with self._lock:
            return self._require(order_id)

    def orders(self) -> List[Order]:
        with self._lock:
            return list(self.state.orders)

    def track(self, token: str) -> Order:
        with self._lock:
            for order in self.state.orders:
                if token and order.tracking_token == token:
                    return order
        raise OrderNotFound("Tracking code not found.")

    def notifications(self) -> List[Notification]:
        return self.state.notifications.active(self._clock())

    def dismiss_notification(self, notification_id: str) -> bool:
        return self.state.notifications.dismiss(notification_id)

    def history(
        self,
        status_filter: str = "all",
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> List[Order]:
        return filter_history(self.orders(), status_filter, start, end)

    def summary(self, start: datetime | None = None, end: datetime | None = None) -> Summary:
        return summarize(self.history("all", start, end))

    def courier_snapshot(self) -> List[Dict[str, Any]]:
        """Every pooled courier with its availability and active order ids."""
        with self._lock:
            active: Dict[str, List[str]] = {}
            for order in self.state.orders:
                if order.is_active and order.courier_id:
                    active.setdefault(order.courier_id, []).append(order.id)
            return [
                {
                    "courier": courier,
                    "available": self.pool.is_available(courier.id),
                    "order_ids": active.get(courier.id, []),
                }
                for courier in self.pool.available() + self.pool.engaged()
            ]

    def quote(self, dto: QuoteRequestDTO) -> Quote:
        """Fee preview for the creation form; nothing is stored."""
        is_batching = bool(
            dto.courier_id
            and dto.courier_id in self.pool
            and not self.pool.is_available(dto.courier_id)
        )
        _, distance = self._locate(dto.destination, None, None, dto.distance_km)
        draft = QuoteDraft(
            distance_km=distance,
            payment_method=dto.payment_method,
            is_return_required=resolve_return_required(
                dto.payment_method, dto.is_return_required
            ),
            is_batching=is_batching,
        )
        return Quote(draft=draft, fee=self._fee(draft))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require(self, order_id: str) -> Order:
        for order in self.state.orders:
            if order.id == order_id:
                return order
        raise OrderNotFound(f"Order {order_id} not found.")

    def _members(self, target_id: str) -> List[Order]:
        members = batch_members(target_id, self.state.orders)
        if not members:
            raise OrderNotFound(f"Order {target_id} not found.")
        return members

    def _ready_members(self, target_id: str) -> List[Order]:
        ready = [
            o for o in self._members(target_id) if o.status == OrderStatus.READY_FOR_PICKUP
        ]
        if not ready:
            raise InvalidOrderStatus(f"Nothing in {target_id} is ready for pickup.")
        return ready

    def _apply_all(
        self,
        members: Sequence[Order],
        transition: Callable[[Order], TransitionResult],
        target: str,
    ) -> List[Order]:
        results = [transition(order) for order in members]
        changed = [r.order for r in results if r.changed]
        if not changed:
            raise InvalidOrderStatus(f"No order can move to {target}.")
        return changed

    def _claim_courier(self, order_id: str, courier_id: str | None) -> tuple[Courier, bool]:
        """Take a courier for an order; the flag tells whether it joined a route."""
        if courier_id is None:
            courier = self.pool.first_available()
            if courier is None:
                raise CourierUnavailable("No courier available.")
            return self.pool.assign(courier.id, order_id), False
        if courier_id not in self.pool:
            raise CourierNotFound(f"Courier {courier_id} not found.")
        if self.pool.is_available(courier_id):
            return self.pool.assign(courier_id, order_id), False
        return self.pool.attach(courier_id, order_id), True

    def _pickup_code_for(self, courier: Courier | None) -> str:
        """Pickup code for a new order: the route's code when joining one."""
        if courier is not None:
            for order in self.state.orders:
                if order.is_active and order.courier_id == courier.id:
                    return order.pickup_code
        return str(self._rng.randint(1000, 9999))

    def _release_if_idle(self, courier: Courier | None, at: Coordinates | None) -> bool:
        if courier is None:
            return False
        if any(o.is_active and o.courier_id == courier.id for o in self.state.orders):
            return False
        return self.pool.release(courier, at)

    def _locate(
        self,
        destination: str,
        lat: float | None,
        lng: float | None,
        distance_km: float | None,
    ) -> tuple[Coordinates | None, float | None]:
        if lat is not None and lng is not None:
            point = Coordinates(lat=lat, lng=lng)
        elif destination:
            point = self._geo.geocode(destination)
        else:
            point = None

        if distance_km is not None or point is None:
            return point, distance_km

        route = self._geo.route(self._profile.coordinates, point)
        if len(route) >= 2:
            distance = route_length_km(route)
        else:
            distance = haversine_km(self._profile.coordinates, point)
        return point, round(distance, 2)

    def _fee(self, draft: QuoteDraft) -> FeeBreakdown:
        return draft.fee(
            return_fee_active=self._settings.return_fee_active,
            fallback=self._settings.base_freight,
        )

    def _status_write(self, action: str, orders: Sequence[Order], **extra: Any) -> _Write:
        ids = [o.id for o in orders]
        patch = {"status": to_external_status(orders[0].status), **extra}
        return _Write(action, lambda: self._store.update(ids, patch), ids)

    def _flush(self, write: _Write) -> None:
        try:
            write.call()
        except PersistenceError as exc:
            logger.error(
                "delivery.persistence_failed",
                action=write.action,
                ids=write.ids,
                error=str(exc),
            )
            self.state.notifications.error(
                "Erro de Sincronização",
                "A alteração foi aplicada no painel, mas não foi salva no servidor.",
                self._clock(),
            )

    def _record_customer(self, order: Order, cep: str) -> None:
        if self._customers is None:
            return
        from modules.customers.dtos import CustomerOrderDTO

        try:
            self._customers.record_order(
                CustomerOrderDTO(
                    name=order.client_name,
                    phone=order.client_phone,
                    amount=order.delivery_value,
                    ordered_at=order.created_at,
                    street=order.address_street,
                    number=order.address_number,
                    complement=order.address_complement,
                    neighborhood=order.address_neighborhood,
                    city=order.address_city,
                    cep=cep,
                )
            )
        except DatabaseError as exc:
            logger.error("delivery.customer_record_failed", delivery_id=order.id, error=str(exc))

    def _publish(self, orders: Sequence[Order]) -> None:
        events = [event for order in orders for event in order.pull_domain_events()]
        if self._bus is not None and events:
            self._bus.publish_all(events)

    def _to_record(self, order: Order) -> Dict[str, Any]:
        point = order.destination_point
        return {
            "id": order.id,
            "store_id": self._profile.store_id,
            "store_name": self._profile.name,
            "store_address": self._profile.address,
            "customer_name": order.client_name,
            "customer_address": order.destination,
            "customer_phone_suffix": "".join(c for c in order.client_phone if c.isdigit())[-4:],
            "collection_code": order.pickup_code,
            "status": to_external_status(order.status),
            "total_distance": order.distance_km,
            "earnings": order.estimated_price,
            "courier_id": order.courier_id,
            "created_at": order.created_at,
            "items": {
                "display_id": order.display_id,
                "client_phone": order.client_phone,
                "address_street": order.address_street,
                "address_number": order.address_number,
                "address_complement": order.address_complement,
                "address_neighborhood": order.address_neighborhood,
                "address_city": order.address_city,
                "delivery_value": str(order.delivery_value),
                "estimated_price": str(order.estimated_price),
                "return_fee": str(order.return_fee),
                "payment_method": str(order.payment_method),
                "change_for": str(order.change_for) if order.change_for is not None else None,
                "is_return_required": order.is_return_required,
                "lat": point.lat if point else None,
                "lng": point.lng if point else None,
                "tracking_token": order.tracking_token,
                "source": str(order.source),
            },
        }
