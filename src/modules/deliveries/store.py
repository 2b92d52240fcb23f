"""Merchant profile and settings snapshot used by pricing and the board.

Both are frozen Pydantic models built from the ``DISPATCH_*`` Django
settings, so a running dispatch service always works from one
consistent snapshot.
"""

from __future__ import annotations

from datetime import time
from decimal import Decimal
from typing import Dict

from django.conf import settings
from pydantic import BaseModel, ConfigDict, Field, field_validator

from modules.geo.entities import Coordinates


class StoreProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    store_id: str
    name: str
    address: str = ""
    lat: float
    lng: float

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(lat=self.lat, lng=self.lng)


class StoreSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    base_freight: Decimal = Decimal("8.50")
    return_fee_active: bool = True
    open_time: time = time(8, 0)
    close_time: time = time(22, 0)
    is_store_open: bool = True
    delivery_radius_km: float = Field(default=10.0, gt=0)
    prep_time_minutes: int = Field(default=15, ge=0)
    tier_goals: Dict[str, int] = Field(
        default_factory=lambda: {"bronze": 3, "silver": 5, "gold": 10}
    )
    alert_sound: str = "default"

    @field_validator("base_freight")
    @classmethod
    def base_freight_must_be_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Base freight must be positive.")
        return v

    @field_validator("tier_goals")
    @classmethod
    def tier_goals_must_increase(cls, v: Dict[str, int]) -> Dict[str, int]:
        if not v["bronze"] < v["silver"] < v["gold"]:
            raise ValueError("Tier goals must satisfy bronze < silver < gold.")
        return v

    def is_open_at(self, moment: time) -> bool:
        return self.is_store_open and self.open_time <= moment < self.close_time


def load_store_profile() -> StoreProfile:
    return StoreProfile(
        store_id=settings.DISPATCH_STORE_ID,
        name=settings.DISPATCH_STORE_NAME,
        address=settings.DISPATCH_STORE_ADDRESS,
        lat=settings.DISPATCH_STORE_LAT,
        lng=settings.DISPATCH_STORE_LNG,
    )


def load_store_settings() -> StoreSettings:
    return StoreSettings(
        base_freight=Decimal(str(settings.DISPATCH_BASE_FREIGHT)),
        return_fee_active=settings.DISPATCH_RETURN_FEE_ACTIVE,
        open_time=settings.DISPATCH_OPEN_TIME,
        close_time=settings.DISPATCH_CLOSE_TIME,
        is_store_open=settings.DISPATCH_IS_STORE_OPEN,
        delivery_radius_km=settings.DISPATCH_DELIVERY_RADIUS_KM,
        prep_time_minutes=settings.DISPATCH_PREP_TIME_MINUTES,
        tier_goals=dict(settings.DISPATCH_TIER_GOALS),
        alert_sound=settings.DISPATCH_ALERT_SOUND,
    )
