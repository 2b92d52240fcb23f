"""Unit tests for the courier pool.

Covers:
- Registry and views (available / engaged).
- assign / attach / engage / release transitions.
- Conservation: every courier in exactly one view.
"""

from __future__ import annotations

import pytest

from modules.couriers.entities import Courier
from modules.couriers.exceptions import CourierUnavailable
from modules.couriers.pool import CourierPool
from modules.geo.entities import Coordinates

pytestmark = pytest.mark.unit


def _assert_conserved(pool: CourierPool) -> None:
    snapshot = pool.snapshot()
    available, engaged = set(snapshot["available"]), set(snapshot["engaged"])
    assert available.isdisjoint(engaged)
    assert len(available) + len(engaged) == len(pool)


# ===========================================================================
# Registry
# ===========================================================================


class TestRegistry:
    def test_all_available_at_start(self, pool):
        assert [c.id for c in pool.available()] == ["c1", "c2", "c3"]
        assert pool.engaged() == []
        assert len(pool) == 3

    def test_register_known_id_keeps_instance(self, pool):
        original = pool.get("c1")
        again = pool.register(Courier(id="c1", name="Outro"))
        assert again is original
        assert len(pool) == 3

    def test_register_engaged(self, pool):
        pool.register(Courier(id="c9", name="Diego"), available=False)
        assert pool.is_available("c9") is False
        assert "c9" in pool
        _assert_conserved(pool)

    def test_replace(self, pool):
        pool.assign("c1", "o1")
        pool.replace([Courier(id="x", name="Xavier")])
        assert [c.id for c in pool.available()] == ["x"]
        assert "c1" not in pool

    def test_reset_frees_everyone(self, pool):
        pool.assign("c1", "o1")
        pool.assign("c2", "o2")
        pool.reset()
        assert len(pool.available()) == 3
        _assert_conserved(pool)

    def test_first_available_follows_insertion_order(self, pool):
        pool.assign("c1", "o1")
        assert pool.first_available().id == "c2"

    def test_first_available_when_empty(self):
        assert CourierPool().first_available() is None


# ===========================================================================
# Transitions
# ===========================================================================


class TestAssign:
    def test_moves_to_engaged(self, pool):
        courier = pool.assign("c2", "o1")
        assert courier.id == "c2"
        assert pool.is_available("c2") is False
        assert [c.id for c in pool.engaged()] == ["c2"]
        _assert_conserved(pool)

    def test_cannot_assign_twice(self, pool):
        pool.assign("c2", "o1")
        with pytest.raises(CourierUnavailable):
            pool.assign("c2", "o2")

    def test_unknown_courier(self, pool):
        with pytest.raises(CourierUnavailable):
            pool.assign("ghost", "o1")


class TestAttach:
    def test_joins_engaged_route(self, pool):
        pool.assign("c1", "o1")
        assert pool.attach("c1", "o2") is pool.get("c1")
        assert pool.is_available("c1") is False

    def test_idle_courier_cannot_be_attached(self, pool):
        with pytest.raises(CourierUnavailable):
            pool.attach("c1", "o1")

    def test_unknown_courier(self, pool):
        with pytest.raises(CourierUnavailable):
            pool.attach("ghost", "o1")


class TestEngage:
    def test_available_courier_becomes_engaged(self, pool):
        pooled = pool.engage(Courier(id="c3", name="Bruno"))
        assert pooled is pool.get("c3")
        assert pool.is_available("c3") is False

    def test_unknown_courier_is_registered(self, pool):
        pooled = pool.engage(Courier(id="c7", name="Rita"))
        assert pool.get("c7") is pooled
        assert pool.is_available("c7") is False
        _assert_conserved(pool)


class TestRelease:
    def test_back_to_available_and_moved(self, pool):
        pool.assign("c1", "o1")
        point = Coordinates(lat=-23.2, lng=-47.2)

        assert pool.release(pool.get("c1"), point) is True

        assert pool.is_available("c1") is True
        assert pool.get("c1").position == point
        _assert_conserved(pool)

    def test_idempotent(self, pool):
        pool.assign("c1", "o1")
        pool.release(pool.get("c1"))
        moved_to = Coordinates(lat=0.0, lng=0.0)

        assert pool.release(pool.get("c1"), moved_to) is False
        assert pool.get("c1").position != moved_to
        assert pool.snapshot()["available"].count("c1") == 1

    def test_without_point_keeps_position(self, pool):
        position = pool.get("c2").position
        pool.assign("c2", "o1")
        pool.release(pool.get("c2"))
        assert pool.get("c2").position == position

    def test_release_moves_to_end_of_queue(self, pool):
        pool.assign("c1", "o1")
        pool.release(pool.get("c1"))
        assert [c.id for c in pool.available()] == ["c2", "c3", "c1"]
