"""Django ORM implementation of the delivery store.

Every database failure is re-raised as ``PersistenceError`` so the
dispatch service can apply its best-effort write-through policy without
knowing about Django.  Multi-row updates are a single ``UPDATE`` keyed
by the full id set.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import structlog
from django.core.exceptions import FieldError, ValidationError
from django.db import DatabaseError, transaction
from django.utils import timezone

from modules.deliveries.exceptions import PersistenceError
from modules.deliveries.models import Delivery
from modules.deliveries.repositories.interfaces import IDeliveryStore

logger = structlog.get_logger(__name__)

STORE_ERRORS = (DatabaseError, ValidationError, FieldError, ValueError, TypeError)

RECORD_FIELDS = (
    "id",
    "store_id",
    "store_name",
    "store_address",
    "customer_name",
    "customer_address",
    "customer_phone_suffix",
    "collection_code",
    "status",
    "total_distance",
    "earnings",
    "courier_id",
    "cancellation_reason",
    "items",
    "created_at",
    "updated_at",
)


class DeliveryDjangoStore(IDeliveryStore):
    """Concrete delivery store backed by Django ORM."""

    def insert(self, record: Dict[str, Any]) -> Dict[str, Any]:
        try:
            with transaction.atomic():
                delivery = Delivery.objects.create(**record)
        except STORE_ERRORS as exc:
            logger.error("delivery_store.insert_failed", error=str(exc))
            raise PersistenceError(f"Insert failed: {exc}") from exc
        logger.info("delivery_store.inserted", delivery_id=str(delivery.id))
        return Delivery.objects.filter(id=delivery.id).values(*RECORD_FIELDS).first()

    def update(self, ids: Sequence[str], patch: Dict[str, Any]) -> int:
        if not ids:
            return 0
        try:
            with transaction.atomic():
                count = (
                    Delivery.objects.alive()
                    .filter(id__in=list(ids))
                    .update(**patch, updated_at=timezone.now())
                )
        except STORE_ERRORS as exc:
            logger.error("delivery_store.update_failed", ids=list(ids), error=str(exc))
            raise PersistenceError(f"Update failed: {exc}") from exc
        logger.info("delivery_store.updated", ids=list(ids), count=count, fields=sorted(patch))
        return count

    def delete(self, filters: Dict[str, Any]) -> int:
        try:
            with transaction.atomic():
                count, _ = Delivery.objects.filter(**filters).delete()
        except STORE_ERRORS as exc:
            logger.error("delivery_store.delete_failed", error=str(exc))
            raise PersistenceError(f"Delete failed: {exc}") from exc
        logger.info("delivery_store.deleted", count=count)
        return count

    def query(
        self,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[Sequence[str]] = None,
    ) -> List[Dict[str, Any]]:
        try:
            queryset = Delivery.objects.alive().filter(**(filters or {}))
            if order_by:
                queryset = queryset.order_by(*order_by)
            return list(queryset.values(*RECORD_FIELDS))
        except STORE_ERRORS as exc:
            logger.error("delivery_store.query_failed", error=str(exc))
            raise PersistenceError(f"Query failed: {exc}") from exc
