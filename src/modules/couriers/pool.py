"""Courier pool: which couriers are free and which are serving orders.

Every registered courier is in exactly one of two views at any time:

- **available**: ordered set of couriers with no active order;
- **engaged**: the rest of the registry.

``assign`` is the only path from available to engaged for user actions
and performs its check-and-remove under one lock, so two concurrent
assignments of the same courier can never both succeed.
"""

from __future__ import annotations

import threading
from typing import Iterable

import structlog

from modules.couriers.entities import Courier
from modules.couriers.exceptions import CourierUnavailable
from modules.geo.entities import Coordinates

logger = structlog.get_logger(__name__)


class CourierPool:
    """Thread-safe registry of couriers split into available/engaged."""

    def __init__(self, couriers: Iterable[Courier] = ()) -> None:
        self._lock = threading.RLock()
        self._registry: dict[str, Courier] = {}
        # dict keys keep insertion order; values unused
        self._available: dict[str, None] = {}
        for courier in couriers:
            self.register(courier)

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def register(self, courier: Courier, *, available: bool = True) -> Courier:
        """Add a courier to the registry; an already known id keeps its instance."""
        with self._lock:
            known = self._registry.get(courier.id)
            if known is not None:
                return known
            self._registry[courier.id] = courier
            if available:
                self._available[courier.id] = None
            return courier

    def replace(self, couriers: Iterable[Courier]) -> None:
        """Rebuild the registry with every courier available."""
        with self._lock:
            self._registry.clear()
            self._available.clear()
            for courier in couriers:
                self.register(courier)

    def reset(self) -> None:
        """Return every registered courier to the available pool."""
        with self._lock:
            for courier_id in self._registry:
                self._available.setdefault(courier_id, None)
        logger.info("courier.pool_reset", size=len(self._registry))

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def get(self, courier_id: str) -> Courier | None:
        with self._lock:
            return self._registry.get(courier_id)

    def is_available(self, courier_id: str) -> bool:
        with self._lock:
            return courier_id in self._available

    def available(self) -> list[Courier]:
        with self._lock:
            return [self._registry[cid] for cid in self._available]

    def engaged(self) -> list[Courier]:
        with self._lock:
            return [
                courier
                for cid, courier in self._registry.items()
                if cid not in self._available
            ]

    def first_available(self) -> Courier | None:
        with self._lock:
            for cid in self._available:
                return self._registry[cid]
            return None

    def __len__(self) -> int:
        return len(self._registry)

    def __contains__(self, courier_id: object) -> bool:
        return courier_id in self._registry

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def assign(self, courier_id: str, order_id: str) -> Courier:
        """Move an available courier to engaged.

        Raises:
            CourierUnavailable: courier unknown or already engaged.
        """
        with self._lock:
            if courier_id not in self._available:
                raise CourierUnavailable(f"Courier {courier_id} is not available.")
            del self._available[courier_id]
            courier = self._registry[courier_id]
        logger.info("courier.assigned", courier_id=courier_id, order_id=order_id)
        return courier

    def attach(self, courier_id: str, order_id: str) -> Courier:
        """Join an order to the route of an already engaged courier (batching).

        Raises:
            CourierUnavailable: courier unknown or currently idle.
        """
        with self._lock:
            courier = self._registry.get(courier_id)
            if courier is None or courier_id in self._available:
                raise CourierUnavailable(f"Courier {courier_id} has no active route.")
        logger.info("courier.batched", courier_id=courier_id, order_id=order_id)
        return courier

    def engage(self, courier: Courier) -> Courier:
        """Mark a courier engaged because an external source assigned it.

        Unknown couriers are registered on the fly.  Returns the pooled
        instance, which callers should reference from then on.
        """
        with self._lock:
            known = self.register(courier, available=False)
            was_available = self._available.pop(known.id, False) is None
        if was_available:
            logger.info("courier.engaged_by_sync", courier_id=known.id)
        return known

    def release(self, courier: Courier, at: Coordinates | None = None) -> bool:
        """Return a courier to the available pool, optionally relocating it.

        Idempotent: a courier already available stays where it is and
        ``False`` is returned.
        """
        with self._lock:
            known = self._registry.setdefault(courier.id, courier)
            if known.id in self._available:
                return False
            if at is not None:
                known.move_to(at)
            self._available[known.id] = None
        logger.info(
            "courier.released",
            courier_id=known.id,
            lat=known.lat,
            lng=known.lng,
        )
        return True

    def snapshot(self) -> dict[str, list[str]]:
        with self._lock:
            return {
                "available": list(self._available),
                "engaged": [cid for cid in self._registry if cid not in self._available],
            }
