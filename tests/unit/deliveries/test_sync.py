"""Unit tests for store-to-board reconciliation.

Covers:
- Parsing and watermark filtering of raw store rows.
- New records: merge by id, event trail, courier engagement, announcements.
- Known records: forward moves, regressions, terminal orders.
- Courier release when the store finishes an order.
- Status notifications.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from modules.couriers.entities import Courier
from modules.deliveries.constants import OrderStatus
from modules.deliveries.state_machine import OrderStateMachine
from modules.deliveries.sync import SyncReconciler, filter_since, parse_records
from modules.geo.entities import Coordinates

pytestmark = pytest.mark.unit

NOW = datetime(2026, 3, 2, 12, 30, tzinfo=timezone.utc)


@pytest.fixture()
def reconciler(mock_directory, pool):
    return SyncReconciler(mock_directory, pool, OrderStateMachine(clock=lambda: NOW))


# ===========================================================================
# Parsing
# ===========================================================================


class TestParseRecords:
    def test_valid_rows(self, store_row):
        records = parse_records([store_row("r1"), store_row("r2")])
        assert [r.id for r in records] == ["r1", "r2"]
        assert records[0].display_id == "5555"
        assert records[0].pickup_code == "4321"

    def test_invalid_row_is_skipped(self, store_row):
        broken = store_row("r2")
        del broken["created_at"]
        records = parse_records([store_row("r1"), broken])
        assert [r.id for r in records] == ["r1"]

    def test_numeric_ids_become_strings(self, store_row):
        records = parse_records([store_row(42, courier_id=7)])
        assert records[0].id == "42"
        assert records[0].courier_id == "7"

    def test_display_id_falls_back_to_id_suffix(self, store_row):
        row = store_row("abcdef")
        row["items"] = None
        assert parse_records([row])[0].display_id == "cdef"


class TestFilterSince:
    def test_drops_records_at_or_before_watermark(self, store_row):
        base = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)
        records = parse_records(
            [
                store_row("old", created_at=base - timedelta(minutes=1)),
                store_row("same", created_at=base),
                store_row("new", created_at=base + timedelta(seconds=1)),
            ]
        )
        assert [r.id for r in filter_since(records, base)] == ["new"]

    def test_no_watermark_keeps_everything(self, store_row):
        records = parse_records([store_row("a"), store_row("b")])
        assert len(filter_since(records, None)) == 2


# ===========================================================================
# New records
# ===========================================================================


class TestNewRecords:
    def test_pending_record_becomes_order(self, reconciler, store_row):
        outcome = reconciler.reconcile(parse_records([store_row("r1")]), [], NOW)

        assert len(outcome.new_orders) == 1
        order = outcome.new_orders[0]
        assert order.id == "r1"
        assert order.status == OrderStatus.PENDING
        assert order.pickup_code == "4321"
        assert order.display_id == "5555"
        assert [e.status for e in order.events] == [OrderStatus.PENDING]
        assert outcome.notifications[0].title == "Novo Pedido"
        assert outcome.notifications[0].play_sound is True

    def test_first_load_is_not_announced(self, reconciler, store_row):
        outcome = reconciler.reconcile(
            parse_records([store_row("r1")]), [], NOW, announce=False
        )
        assert len(outcome.new_orders) == 1
        assert outcome.notifications == []

    def test_duplicate_rows_produce_one_order(self, reconciler, store_row):
        records = parse_records([store_row("r1"), store_row("r1")])
        outcome = reconciler.reconcile(records, [], NOW)
        assert len(outcome.new_orders) == 1

    def test_known_id_is_never_duplicated(self, reconciler, store_row, make_order):
        local = make_order("r1")
        outcome = reconciler.reconcile(parse_records([store_row("r1")]), [local], NOW)
        assert outcome.new_orders == []
        assert outcome.skipped == 1

    def test_record_with_courier_engages_it(self, reconciler, store_row, pool):
        outcome = reconciler.reconcile(
            parse_records([store_row("r1", status="in_transit", courier_id="c2")]), [], NOW
        )
        order = outcome.new_orders[0]
        assert order.status == OrderStatus.IN_TRANSIT
        assert order.courier is pool.get("c2")
        assert [e.status for e in order.events] == [
            OrderStatus.PENDING,
            OrderStatus.IN_TRANSIT,
        ]
        assert pool.is_available("c2") is False
        assert outcome.engaged_couriers == [pool.get("c2")]
        assert outcome.notifications == []

    def test_unknown_courier_comes_from_directory(
        self, reconciler, store_row, pool, mock_directory
    ):
        mock_directory.get_by_id.return_value = Courier(id="c9", name="Diego")
        outcome = reconciler.reconcile(
            parse_records([store_row("r1", status="accepted", courier_id="c9")]), [], NOW
        )
        assert outcome.new_orders[0].courier.name == "Diego"
        assert "c9" in pool
        assert pool.is_available("c9") is False

    def test_canceled_record(self, reconciler, store_row, pool):
        row = store_row("r1", status="canceled", courier_id="c1")
        row["cancellation_reason"] = "Cliente desistiu do pedido"
        outcome = reconciler.reconcile(parse_records([row]), [], NOW)

        order = outcome.new_orders[0]
        assert order.status == OrderStatus.CANCELED
        assert order.courier is None
        assert order.cancellation_reason == "Cliente desistiu do pedido"
        assert pool.is_available("c1") is True

    def test_board_details_are_read_from_items(self, reconciler, store_row):
        row = store_row(
            "r1",
            payment_method="CASH",
            delivery_value="50.00",
            change_for="100.00",
            lat=-23.26,
            lng=-47.30,
            is_return_required=True,
        )
        order = reconciler.reconcile(parse_records([row]), [], NOW).new_orders[0]
        assert order.payment_method == "CASH"
        assert str(order.change_due) == "50.00"
        assert order.destination_point == Coordinates(lat=-23.26, lng=-47.30)
        assert order.is_return_required is True


# ===========================================================================
# Known records
# ===========================================================================


class TestKnownRecords:
    def test_forward_move(self, reconciler, store_row, make_order, pool):
        courier = pool.assign("c1", "o1")
        local = make_order("o1", OrderStatus.ACCEPTED, courier)

        outcome = reconciler.reconcile(
            parse_records([store_row("o1", status="in_transit", courier_id="c1")]), [local], NOW
        )

        assert local.status == OrderStatus.IN_TRANSIT
        assert len(outcome.updated) == 1
        assert outcome.notifications[0].title == "Saiu para Entrega"

    def test_regression_is_ignored(self, reconciler, store_row, make_order, pool):
        courier = pool.assign("c1", "o1")
        local = make_order("o1", OrderStatus.IN_TRANSIT, courier)
        events_before = list(local.events)

        outcome = reconciler.reconcile(
            parse_records([store_row("o1", status="accepted", courier_id="c1")]), [local], NOW
        )

        assert local.status == OrderStatus.IN_TRANSIT
        assert local.events == events_before
        assert outcome.updated == []
        assert outcome.skipped == 1

    def test_terminal_order_is_left_alone(self, reconciler, store_row, make_order):
        local = make_order("o1", OrderStatus.CANCELED)
        outcome = reconciler.reconcile(
            parse_records([store_row("o1", status="in_transit", courier_id="c1")]), [local], NOW
        )
        assert local.status == OrderStatus.CANCELED
        assert outcome.skipped == 1

    def test_acceptance_attaches_courier(self, reconciler, store_row, make_order, pool):
        local = make_order("o1")
        outcome = reconciler.reconcile(
            parse_records([store_row("o1", status="accepted", courier_id="c2")]), [local], NOW
        )
        assert local.status == OrderStatus.ACCEPTED
        assert local.courier is pool.get("c2")
        assert pool.is_available("c2") is False
        assert outcome.notifications[0].title == "Entregador Encontrado"

    def test_same_status_fills_missing_courier(self, reconciler, store_row, make_order, pool):
        local = make_order("o1", OrderStatus.ACCEPTED)
        outcome = reconciler.reconcile(
            parse_records([store_row("o1", status="accepted", courier_id="c3")]), [local], NOW
        )
        assert local.courier is pool.get("c3")
        assert outcome.updated == []
        assert outcome.engaged_couriers == [pool.get("c3")]

    def test_arrival_plays_sound(self, reconciler, store_row, make_order, pool):
        courier = pool.assign("c1", "o1")
        local = make_order("o1", OrderStatus.ACCEPTED, courier)
        outcome = reconciler.reconcile(
            parse_records([store_row("o1", status="arrived_pickup", courier_id="c1")]),
            [local],
            NOW,
        )
        assert outcome.notifications[0].title == "Entregador na Loja"
        assert outcome.notifications[0].play_sound is True


class TestCourierRelease:
    def test_completion_releases_courier_at_destination(
        self, reconciler, store_row, make_order, pool
    ):
        destination = Coordinates(lat=-23.27, lng=-47.31)
        courier = pool.assign("c1", "o1")
        local = make_order("o1", OrderStatus.IN_TRANSIT, courier, destination_point=destination)

        outcome = reconciler.reconcile(
            parse_records([store_row("o1", status="completed", courier_id="c1")]), [local], NOW
        )

        assert local.status == OrderStatus.DELIVERED
        assert pool.is_available("c1") is True
        assert pool.get("c1").position == destination
        assert outcome.released_couriers == [courier]
        assert outcome.notifications[0].title == "Entrega Finalizada"

    def test_courier_with_other_active_orders_stays_engaged(
        self, reconciler, store_row, make_order, pool
    ):
        courier = pool.assign("c1", "o1")
        finished = make_order("o1", OrderStatus.IN_TRANSIT, courier)
        still_going = make_order("o2", OrderStatus.IN_TRANSIT, courier)

        outcome = reconciler.reconcile(
            parse_records([store_row("o1", status="completed", courier_id="c1")]),
            [finished, still_going],
            NOW,
        )

        assert finished.status == OrderStatus.DELIVERED
        assert pool.is_available("c1") is False
        assert outcome.released_couriers == []

    def test_external_cancel_releases_without_moving(
        self, reconciler, store_row, make_order, pool
    ):
        courier = pool.assign("c1", "o1")
        position = courier.position
        local = make_order("o1", OrderStatus.ACCEPTED, courier)

        reconciler.reconcile(
            parse_records([store_row("o1", status="canceled", courier_id="c1")]), [local], NOW
        )

        assert local.status == OrderStatus.CANCELED
        assert local.courier is None
        assert pool.is_available("c1") is True
        assert pool.get("c1").position == position


class TestCourierPlacement:
    """A courier resolved during sync always lands in exactly one pool set."""

    @staticmethod
    def _held_by_active(orders, courier_id):
        return any(o.is_active and o.courier_id == courier_id for o in orders)

    @pytest.mark.parametrize("status", ["completed", "canceled"])
    def test_finished_record_leaves_new_courier_available(
        self, reconciler, store_row, pool, mock_directory, status
    ):
        mock_directory.get_by_id.return_value = Courier(id="c9", name="Diego")

        outcome = reconciler.reconcile(
            parse_records([store_row("r1", status=status, courier_id="c9")]), [], NOW
        )

        assert not self._held_by_active(outcome.new_orders, "c9")
        assert "c9" in pool
        assert pool.is_available("c9") is True
        assert "c9" not in [c.id for c in pool.engaged()]

    def test_pending_order_canceled_with_new_courier(
        self, reconciler, store_row, make_order, pool, mock_directory
    ):
        mock_directory.get_by_id.return_value = Courier(id="c9", name="Diego")
        local = make_order("o1")

        reconciler.reconcile(
            parse_records([store_row("o1", status="canceled", courier_id="c9")]), [local], NOW
        )

        assert local.status == OrderStatus.CANCELED
        assert pool.is_available("c9") is True
        assert [c.id for c in pool.engaged()] == []

    def test_active_record_engages_pooled_instance(
        self, reconciler, store_row, pool, mock_directory
    ):
        mock_directory.get_by_id.return_value = Courier(id="c9", name="Diego")

        outcome = reconciler.reconcile(
            parse_records([store_row("r1", status="in_transit", courier_id="c9")]), [], NOW
        )

        assert outcome.new_orders[0].courier is pool.get("c9")
        assert pool.is_available("c9") is False
