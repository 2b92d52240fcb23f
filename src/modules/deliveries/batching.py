"""Courier batches: orders sharing one courier shown and operated as a unit.

Batches are a view, recomputed from the live order list on every read
and never persisted.  ``group_orders`` builds the board; ``batch_members``
resolves the fan-out set of a batch-level action.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import ClassVar, Iterable, Sequence, Union

from modules.couriers.entities import Courier
from modules.deliveries.constants import PRIORITY_STATES, STATUS_RANK, OrderStatus
from modules.deliveries.entities import Order

BATCH_PREFIX = "batch-"
DESTINATION_SEPARATOR = " • "


@dataclass(frozen=True)
class OrderBatch:
    """Two or more active orders riding with the same courier."""

    courier: Courier
    orders: tuple[Order, ...]

    is_batch: ClassVar[bool] = True

    @property
    def id(self) -> str:
        return f"{BATCH_PREFIX}{self.courier.id}"

    @property
    def client_name(self) -> str:
        return f"{len(self.orders)} Pedidos - Rota {self.courier.name}"

    @property
    def destination(self) -> str:
        return DESTINATION_SEPARATOR.join(o.destination for o in self.orders)

    @property
    def status(self) -> str:
        """The least advanced member status: what still blocks the route."""
        return min((o.status for o in self.orders), key=lambda s: STATUS_RANK[s])

    @property
    def statuses(self) -> set[str]:
        return {o.status for o in self.orders}

    @property
    def created_at(self) -> datetime:
        return max(o.created_at for o in self.orders)

    @property
    def pickup_codes(self) -> list[str]:
        return [o.pickup_code for o in self.orders]

    @property
    def order_ids(self) -> list[str]:
        return [o.id for o in self.orders]

    @property
    def estimated_price(self) -> Decimal:
        return sum((o.estimated_price for o in self.orders), Decimal("0.00"))

    @property
    def delivery_value(self) -> Decimal:
        return sum((o.delivery_value for o in self.orders), Decimal("0.00"))

    @property
    def is_return_required(self) -> bool:
        return any(o.is_return_required for o in self.orders)


BoardEntry = Union[Order, OrderBatch]


def _entry_statuses(entry: BoardEntry) -> set[str]:
    return entry.statuses if isinstance(entry, OrderBatch) else {entry.status}


def _is_pending(entry: BoardEntry) -> bool:
    return isinstance(entry, Order) and (
        entry.status == OrderStatus.PENDING or entry.courier is None
    )


def _sort_key(entry: BoardEntry) -> tuple[int, float]:
    if _is_pending(entry):
        bucket = 0
    elif _entry_statuses(entry) & PRIORITY_STATES:
        bucket = 1
    else:
        bucket = 2
    return bucket, -entry.created_at.timestamp()


def group_orders(orders: Iterable[Order]) -> list[BoardEntry]:
    """Board view of the active orders.

    Pending or courier-less orders stay individual; the rest are grouped
    by courier, and groups of two or more collapse into an ``OrderBatch``.
    Sorted: pending (newest first), then entries waiting on the store
    (ready for pickup / returning), then everything else newest first.
    """
    entries: list[BoardEntry] = []
    by_courier: dict[str, list[Order]] = {}
    couriers: dict[str, Courier] = {}

    for order in orders:
        if order.is_terminal:
            continue
        if order.status == OrderStatus.PENDING or order.courier is None:
            entries.append(order)
            continue
        by_courier.setdefault(order.courier.id, []).append(order)
        couriers.setdefault(order.courier.id, order.courier)

    for courier_id, members in by_courier.items():
        if len(members) == 1:
            entries.append(members[0])
        else:
            members.sort(key=lambda o: o.created_at)
            entries.append(OrderBatch(courier=couriers[courier_id], orders=tuple(members)))

    entries.sort(key=_sort_key)
    return entries


def is_batch_id(target_id: str) -> bool:
    return target_id.startswith(BATCH_PREFIX)


def batch_members(target_id: str, orders: Sequence[Order]) -> list[Order]:
    """Orders affected by an action aimed at ``target_id``.

    A batch id, or the id of any order riding with a courier, expands to
    every active non-pending order of that courier.  A pending or
    courier-less order expands to itself.  Unknown ids give ``[]``.
    """
    if is_batch_id(target_id):
        courier_id = target_id[len(BATCH_PREFIX):]
    else:
        target = next((o for o in orders if o.id == target_id), None)
        if target is None:
            return []
        if target.courier is None or target.status == OrderStatus.PENDING or target.is_terminal:
            return [target]
        courier_id = target.courier.id

    return [
        o
        for o in orders
        if o.is_active
        and o.status != OrderStatus.PENDING
        and o.courier_id == courier_id
    ]
