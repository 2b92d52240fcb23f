"""Idle-courier roaming used while no live position feed is connected."""

from __future__ import annotations

import random

from modules.couriers.pool import CourierPool
from modules.geo.entities import Coordinates

ROAM_PROBABILITY = 0.3
ROAM_JITTER_DEGREES = 0.00005


def roam_idle_couriers(pool: CourierPool, rng: random.Random | None = None) -> int:
    """Nudge available couriers around their position; returns how many moved.

    Engaged couriers are never touched: their position belongs to the
    route they are on.
    """
    rng = rng or random.Random()
    moved = 0
    for courier in pool.available():
        position = courier.position
        if position is None or rng.random() >= ROAM_PROBABILITY:
            continue
        courier.move_to(
            Coordinates(
                lat=position.lat + (rng.random() - 0.5) * ROAM_JITTER_DEGREES,
                lng=position.lng + (rng.random() - 0.5) * ROAM_JITTER_DEGREES,
            )
        )
        moved += 1
    return moved
