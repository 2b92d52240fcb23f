"""Unit tests for history filtering and the financial summary."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from modules.deliveries.constants import OrderStatus, PaymentMethod
from modules.deliveries.reports import filter_history, summarize

pytestmark = pytest.mark.unit

DAY = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture()
def orders(make_order, make_courier):
    courier = make_courier()
    return [
        make_order(
            "d1",
            OrderStatus.DELIVERED,
            courier,
            created_at=DAY,
            delivery_value=Decimal("50.00"),
            estimated_price=Decimal("9.00"),
            payment_method=PaymentMethod.CARD,
            client_phone="11988887777",
        ),
        make_order(
            "d2",
            OrderStatus.DELIVERED,
            courier,
            created_at=DAY + timedelta(hours=2),
            delivery_value=Decimal("30.00"),
            estimated_price=Decimal("7.50"),
            client_name="maria souza",
            client_phone="(11) 98888-7777",
        ),
        make_order(
            "c1",
            OrderStatus.CANCELED,
            created_at=DAY + timedelta(hours=3),
            delivery_value=Decimal("20.00"),
            cancellation_fee=Decimal("4.90"),
            client_name="João Lima",
        ),
        make_order(
            "p1",
            OrderStatus.PENDING,
            created_at=DAY + timedelta(days=1),
            delivery_value=Decimal("15.00"),
            payment_method=PaymentMethod.CASH,
            client_name="Ana Paula",
        ),
    ]


class TestFilterHistory:
    def test_all_newest_first(self, orders):
        assert [o.id for o in filter_history(orders)] == ["p1", "c1", "d2", "d1"]

    def test_pending_keeps_active_orders(self, orders):
        assert [o.id for o in filter_history(orders, "pending")] == ["p1"]

    def test_completed_keeps_delivered(self, orders):
        assert [o.id for o in filter_history(orders, "completed")] == ["d2", "d1"]

    def test_date_range_is_inclusive(self, orders):
        selected = filter_history(orders, start=DAY, end=DAY + timedelta(hours=2))
        assert [o.id for o in selected] == ["d2", "d1"]

    def test_unknown_filter(self, orders):
        with pytest.raises(ValueError):
            filter_history(orders, "archived")


class TestSummarize:
    def test_totals(self, orders):
        summary = summarize(orders)

        assert summary.total_orders == 4
        assert summary.completed == 2
        assert summary.canceled == 1
        assert summary.in_progress == 1
        assert summary.cancellation_rate == 25.0
        assert summary.total_sales == Decimal("80.00")
        assert summary.cancellation_fees == Decimal("4.90")
        assert summary.total_fees == Decimal("21.40")
        assert summary.average_ticket == Decimal("40.00")

    def test_customers_matched_by_phone(self, orders):
        summary = summarize(orders)
        assert summary.unique_customers == 3
        top = summary.top_customers[0]
        assert top.name == "Maria Souza"
        assert top.orders == 2
        assert top.spent == Decimal("80.00")

    def test_payment_breakdown_lists_every_method(self, orders):
        assert summarize(orders).by_payment_method == {"PIX": 2, "CARD": 1, "CASH": 1}

    def test_empty(self):
        summary = summarize([])
        assert summary.total_orders == 0
        assert summary.cancellation_rate == 0.0
        assert summary.average_ticket == Decimal("0.00")
        assert summary.by_payment_method == {"PIX": 0, "CARD": 0, "CASH": 0}

    def test_as_dict_is_json_ready(self, orders):
        data = summarize(orders, top=1).as_dict()
        assert data["total_sales"] == "80.00"
        assert data["top_customers"] == [{"name": "Maria Souza", "orders": 2, "spent": "80.00"}]
        assert sum(data["hourly_distribution"].values()) == 4
