"""History filtering and financial summaries over the board's orders."""

from __future__ import annotations

from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import Iterable, Sequence

from django.utils import timezone

from modules.customers.dtos import digits_only
from modules.deliveries.constants import OrderStatus, PaymentMethod
from modules.deliveries.entities import Order
from modules.deliveries.pricing import quantize

ZERO = Decimal("0.00")


class HistoryFilter(StrEnum):
    ALL = "all"
    PENDING = "pending"
    COMPLETED = "completed"


def filter_history(
    orders: Iterable[Order],
    status_filter: str = HistoryFilter.ALL,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[Order]:
    """Orders created in ``[start, end]``, newest first.

    ``pending`` keeps orders still in progress; ``completed`` keeps
    delivered ones.
    """
    status_filter = HistoryFilter(status_filter)
    selected = []
    for order in orders:
        if start is not None and order.created_at < start:
            continue
        if end is not None and order.created_at > end:
            continue
        if status_filter == HistoryFilter.PENDING and not order.is_active:
            continue
        if status_filter == HistoryFilter.COMPLETED and order.status != OrderStatus.DELIVERED:
            continue
        selected.append(order)
    return sorted(selected, key=lambda o: o.created_at, reverse=True)


@dataclass(frozen=True)
class TopCustomer:
    name: str
    orders: int
    spent: Decimal


@dataclass(frozen=True)
class Summary:
    total_orders: int
    completed: int
    canceled: int
    in_progress: int
    cancellation_rate: float
    total_sales: Decimal
    total_fees: Decimal
    cancellation_fees: Decimal
    average_ticket: Decimal
    unique_customers: int
    by_payment_method: dict[str, int] = field(default_factory=dict)
    hourly_distribution: dict[int, int] = field(default_factory=dict)
    top_customers: list[TopCustomer] = field(default_factory=list)

    def as_dict(self) -> dict:
        data = asdict(self)
        for key in ("total_sales", "total_fees", "cancellation_fees", "average_ticket"):
            data[key] = str(data[key])
        data["top_customers"] = [
            {"name": c.name, "orders": c.orders, "spent": str(c.spent)}
            for c in self.top_customers
        ]
        return data


def _customer_key(order: Order) -> str:
    phone = digits_only(order.client_phone)
    return phone or order.client_name.strip().lower()


def summarize(orders: Sequence[Order], *, top: int = 5) -> Summary:
    """Financial summary of ``orders``.

    Sales count the goods value of delivered orders; fees add the
    delivery fee of delivered orders to the fees owed for late
    cancellations.
    """
    delivered = [o for o in orders if o.status == OrderStatus.DELIVERED]
    canceled = [o for o in orders if o.status == OrderStatus.CANCELED]

    total_sales = sum((o.delivery_value for o in delivered), ZERO)
    delivery_fees = sum((o.estimated_price for o in delivered), ZERO)
    cancellation_fees = sum((o.cancellation_fee for o in canceled), ZERO)
    average_ticket = quantize(total_sales / len(delivered)) if delivered else ZERO

    by_payment = {str(method): 0 for method in PaymentMethod.values}
    by_payment.update(Counter(str(o.payment_method) for o in orders))

    hourly = Counter(timezone.localtime(o.created_at).hour for o in orders)

    names: dict[str, str] = {}
    counts: Counter[str] = Counter()
    spent: dict[str, Decimal] = {}
    for order in orders:
        key = _customer_key(order)
        names.setdefault(key, order.client_name)
        counts[key] += 1
        if order.status == OrderStatus.DELIVERED:
            spent[key] = spent.get(key, ZERO) + order.delivery_value

    top_customers = [
        TopCustomer(name=names[key], orders=count, spent=quantize(spent.get(key, ZERO)))
        for key, count in counts.most_common(top)
    ]

    return Summary(
        total_orders=len(orders),
        completed=len(delivered),
        canceled=len(canceled),
        in_progress=sum(1 for o in orders if o.is_active),
        cancellation_rate=round(len(canceled) / len(orders) * 100, 1) if orders else 0.0,
        total_sales=quantize(total_sales),
        total_fees=quantize(delivery_fees + cancellation_fees),
        cancellation_fees=quantize(cancellation_fees),
        average_ticket=average_ticket,
        unique_customers=len(counts),
        by_payment_method=by_payment,
        hourly_distribution=dict(sorted(hourly.items())),
        top_customers=top_customers,
    )
