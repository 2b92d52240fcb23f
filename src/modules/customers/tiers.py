"""Loyalty tiers derived from a customer's order count."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Mapping

DEFAULT_TIER_GOALS = {"bronze": 3, "silver": 5, "gold": 10}


class CustomerTier(StrEnum):
    NEW = "NEW"
    BRONZE = "BRONZE"
    SILVER = "SILVER"
    GOLD = "GOLD"


TIER_LABELS = {
    CustomerTier.NEW: "Novo Cliente",
    CustomerTier.BRONZE: "Cliente Bronze",
    CustomerTier.SILVER: "Cliente Prata",
    CustomerTier.GOLD: "Cliente Ouro",
}


@dataclass(frozen=True)
class TierStatus:
    tier: CustomerTier
    label: str
    min_orders: int
    next_tier: CustomerTier | None
    orders_to_next: int


def classify_customer(
    total_orders: int, goals: Mapping[str, int] | None = None
) -> TierStatus:
    """A tier is reached by *exceeding* its goal (``gold=10`` means 11+ orders)."""
    goals = goals or DEFAULT_TIER_GOALS
    ladder = [
        (CustomerTier.GOLD, goals["gold"]),
        (CustomerTier.SILVER, goals["silver"]),
        (CustomerTier.BRONZE, goals["bronze"]),
    ]
    tier, min_orders = CustomerTier.NEW, 0
    for candidate, goal in ladder:
        if total_orders > goal:
            tier, min_orders = candidate, goal + 1
            break

    order = [CustomerTier.NEW, CustomerTier.BRONZE, CustomerTier.SILVER, CustomerTier.GOLD]
    position = order.index(tier)
    if position == len(order) - 1:
        next_tier, orders_to_next = None, 0
    else:
        next_tier = order[position + 1]
        orders_to_next = goals[next_tier.lower()] + 1 - total_orders

    return TierStatus(
        tier=tier,
        label=TIER_LABELS[tier],
        min_orders=min_orders,
        next_tier=next_tier,
        orders_to_next=orders_to_next,
    )
