"""Django ORM implementation of the Customer repository.

Satisfies ``ICustomerRepository`` using Django's QuerySet API.
Methods return ``None`` for missing entities; the Service Layer decides
how to translate that into an API response.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction

from modules.customers.models import Customer, SavedAddress
from modules.customers.repositories.interfaces import ICustomerRepository

logger = structlog.get_logger(__name__)


class CustomerDjangoRepository(ICustomerRepository):
    """Concrete Customer repository backed by Django ORM."""

    def get_by_id(self, id: str) -> Optional[Customer]:
        """Returns ``None`` for non-existent or malformed IDs."""
        try:
            return (
                Customer.objects.alive()
                .prefetch_related("addresses")
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Customer]:
        """List live customers with optional Django ORM look-ups.

        Examples of valid filters::

            {"name__icontains": "silva"}
            {"total_orders__gt": 10}
        """
        queryset = Customer.objects.alive().prefetch_related("addresses")
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    @transaction.atomic
    def save(self, entity: Customer) -> Customer:
        is_new = entity._state.adding
        entity.save()
        logger.info("customer.saved", customer_id=str(entity.id), is_new=is_new)
        return entity

    def get_by_phone(self, phone: str) -> Optional[Customer]:
        if not phone:
            return None
        return Customer.objects.alive().filter(phone=phone).first()

    def get_by_name(self, name: str) -> Optional[Customer]:
        return Customer.objects.alive().filter(name__iexact=name.strip()).first()

    @transaction.atomic
    def remember_address(
        self, customer: Customer, address: Dict[str, Any], used_at: datetime
    ) -> SavedAddress:
        street = address.get("street", "")
        number = address.get("number", "")
        for saved in customer.addresses.all():
            if saved.matches(street, number):
                saved.last_used = used_at
                saved.save(update_fields=["last_used"])
                return saved
        saved = SavedAddress.objects.create(
            customer=customer, last_used=used_at, **address
        )
        logger.info("customer.address_added", customer_id=str(customer.id))
        return saved
