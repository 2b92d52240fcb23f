"""Django ORM implementation of the courier directory.

Returns ``Courier`` entities, never model instances, so the pool and
the orders can share them without touching the ORM.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from django.core.exceptions import ValidationError

from modules.couriers.entities import Courier
from modules.couriers.models import CourierProfile
from modules.couriers.repositories.interfaces import ICourierDirectory


class CourierDjangoDirectory(ICourierDirectory):
    """Concrete courier directory backed by Django ORM."""

    def get_by_id(self, id: str) -> Optional[Courier]:
        """Returns ``None`` for unknown, inactive or malformed IDs."""
        try:
            profile = CourierProfile.objects.alive().filter(id=id, is_active=True).first()
        except (ValueError, ValidationError):
            return None
        return profile.to_entity() if profile else None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Courier]:
        queryset = CourierProfile.objects.alive()
        if filters:
            queryset = queryset.filter(**filters)
        return [profile.to_entity() for profile in queryset]

    def list_active(self) -> List[Courier]:
        return self.list({"is_active": True})
