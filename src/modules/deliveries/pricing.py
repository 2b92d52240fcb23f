"""Delivery fee calculation.

Pure functions over ``Decimal``: the same inputs always give the same
fee, quantized to cents.

- ``base_freight``: tiered by distance; beyond 10 km the fee grows by
  R$ 2,00 per started kilometre.
- ``batch_discount``: 25 % off when the order joins a courier already
  on a route, never below the minimum tier.
- ``return_surcharge``: +50 % of the charged base when the courier must
  come back to the store (card machine, change, receipt).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal, InvalidOperation

from modules.deliveries.constants import (
    BATCH_DISCOUNT_RATE,
    CANCELLATION_FEE,
    CANCELLATION_FEE_STATES,
    DEFAULT_BASE_FREIGHT,
    MIN_FREIGHT,
    RETURN_SURCHARGE_RATE,
    PaymentMethod,
)
from modules.deliveries.exceptions import InvalidDistance

CENTS = Decimal("0.01")

# (max distance in km, fee); first tier whose limit is >= distance wins.
FREIGHT_TIERS: tuple[tuple[Decimal, Decimal], ...] = (
    (Decimal("2"), Decimal("7.50")),
    (Decimal("3"), Decimal("8.00")),
    (Decimal("3.5"), Decimal("8.50")),
    (Decimal("4"), Decimal("8.75")),
    (Decimal("4.5"), Decimal("9.00")),
    (Decimal("5"), Decimal("10.00")),
    (Decimal("6"), Decimal("12.00")),
    (Decimal("7"), Decimal("14.00")),
    (Decimal("8"), Decimal("16.00")),
    (Decimal("9"), Decimal("19.00")),
    (Decimal("10"), Decimal("22.00")),
)
LONG_DISTANCE_BASE = Decimal("22.00")
LONG_DISTANCE_THRESHOLD = Decimal("10")
LONG_DISTANCE_STEP = Decimal("2.00")


def quantize(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def _to_distance(distance_km: float | Decimal | str) -> Decimal:
    if isinstance(distance_km, float) and not math.isfinite(distance_km):
        raise InvalidDistance(f"Distance must be finite, got {distance_km}.")
    try:
        distance = Decimal(str(distance_km))
    except InvalidOperation as exc:
        raise InvalidDistance(f"Invalid distance: {distance_km!r}.") from exc
    if not distance.is_finite() or distance < 0:
        raise InvalidDistance(f"Distance must be a non-negative number, got {distance_km}.")
    return distance


def base_freight(
    distance_km: float | Decimal | str | None,
    fallback: Decimal | None = None,
) -> Decimal:
    """Tier fee for a distance; unknown distance charges ``fallback``.

    Raises:
        InvalidDistance: negative, infinite or non-numeric distance.
    """
    if distance_km is None:
        return quantize(Decimal(fallback if fallback is not None else DEFAULT_BASE_FREIGHT))

    distance = _to_distance(distance_km)
    for limit, fee in FREIGHT_TIERS:
        if distance <= limit:
            return fee
    extra_km = (distance - LONG_DISTANCE_THRESHOLD).to_integral_value(rounding=ROUND_CEILING)
    return quantize(LONG_DISTANCE_BASE + extra_km * LONG_DISTANCE_STEP)


def batch_discount(fee: Decimal) -> Decimal:
    return quantize(max(MIN_FREIGHT, fee * BATCH_DISCOUNT_RATE))


def return_surcharge(
    fee: Decimal, is_return_required: bool, return_fee_active: bool = True
) -> Decimal:
    if not (is_return_required and return_fee_active):
        return Decimal("0.00")
    return quantize(fee * RETURN_SURCHARGE_RATE)


@dataclass(frozen=True)
class FeeBreakdown:
    base: Decimal
    charged_base: Decimal
    surcharge: Decimal

    @property
    def total(self) -> Decimal:
        return quantize(self.charged_base + self.surcharge)

    @property
    def discount(self) -> Decimal:
        return quantize(self.base - self.charged_base)


def compute_fee(
    distance_km: float | Decimal | str | None,
    *,
    is_batching: bool = False,
    is_return_required: bool = False,
    return_fee_active: bool = True,
    fallback: Decimal | None = None,
) -> FeeBreakdown:
    """Full fee for one delivery: base, optional batch discount, return surcharge."""
    base = base_freight(distance_km, fallback=fallback)
    charged = batch_discount(base) if is_batching else base
    surcharge = return_surcharge(charged, is_return_required, return_fee_active)
    return FeeBreakdown(base=base, charged_base=charged, surcharge=surcharge)


def resolve_return_required(payment_method: str, requested: bool) -> bool:
    """Card payments always bring the card machine back to the store."""
    return requested or payment_method == PaymentMethod.CARD


def cancellation_fee(status: str) -> Decimal:
    """Fee owed by the store when it cancels after a courier accepted."""
    return CANCELLATION_FEE if status in CANCELLATION_FEE_STATES else Decimal("0.00")


@dataclass
class QuoteDraft:
    """Fee preview while the store fills in a new delivery.

    Choosing CARD switches the return flag on and keeps it locked while
    CARD is selected.  Switching to another method leaves the flag on
    until the user explicitly turns it off.
    """

    distance_km: float | None = None
    payment_method: str = PaymentMethod.PIX
    is_return_required: bool = False
    is_batching: bool = False

    def __post_init__(self) -> None:
        self.payment_method = PaymentMethod(self.payment_method)
        self.is_return_required = resolve_return_required(
            self.payment_method, self.is_return_required
        )

    def select_payment_method(self, method: str) -> None:
        self.payment_method = PaymentMethod(method)
        if self.payment_method == PaymentMethod.CARD:
            self.is_return_required = True

    def set_return_required(self, value: bool) -> None:
        self.is_return_required = resolve_return_required(self.payment_method, value)

    def fee(
        self, *, return_fee_active: bool = True, fallback: Decimal | None = None
    ) -> FeeBreakdown:
        return compute_fee(
            self.distance_km,
            is_batching=self.is_batching,
            is_return_required=self.is_return_required,
            return_fee_active=return_fee_active,
            fallback=fallback,
        )
