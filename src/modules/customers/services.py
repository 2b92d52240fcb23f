"""Customer service layer (Use Cases).

Keeps the CRM in step with deliveries: every created delivery is
recorded against the matching customer (phone first, then name),
creating the customer on first contact.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Mapping, Optional

import structlog
from django.db import transaction

from modules.customers.exceptions import CustomerNotFound
from modules.customers.models import Customer
from modules.customers.tiers import TierStatus, classify_customer

if TYPE_CHECKING:
    from modules.customers.dtos import CustomerOrderDTO, UpdateCustomerDTO
    from modules.customers.repositories.interfaces import ICustomerRepository

logger = structlog.get_logger(__name__)

ADDRESS_FIELDS = ("street", "number", "complement", "neighborhood", "city", "cep")


class CustomerService:
    """Application service for Customer use-cases.

    Receives an ``ICustomerRepository`` via constructor injection (DIP).
    """

    def __init__(
        self,
        repository: ICustomerRepository,
        tier_goals: Mapping[str, int] | None = None,
    ) -> None:
        self._repo = repository
        self._tier_goals = tier_goals

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def record_order(self, dto: CustomerOrderDTO) -> Customer:
        """Upsert the customer of a delivery and accumulate its totals."""
        customer = self._match(dto.name, dto.phone)
        is_new = customer is None
        if customer is None:
            customer = Customer(name=dto.name, phone=dto.phone)

        customer.total_orders += 1
        customer.total_spent += dto.amount
        if customer.last_order_date is None or dto.ordered_at > customer.last_order_date:
            customer.last_order_date = dto.ordered_at
        if dto.phone and not customer.phone:
            customer.phone = dto.phone
        customer = self._repo.save(customer)

        if dto.street:
            address = {field: getattr(dto, field) for field in ADDRESS_FIELDS}
            self._repo.remember_address(customer, address, dto.ordered_at)

        logger.info(
            "customer.order_recorded",
            customer_id=str(customer.id),
            is_new=is_new,
            total_orders=customer.total_orders,
        )
        return customer

    @transaction.atomic
    def update_customer(self, id: str, dto: UpdateCustomerDTO) -> Customer:
        """Apply the supplied fields.

        Raises:
            CustomerNotFound: if the customer does not exist.
        """
        customer = self.get_customer(id)
        for field in ("name", "phone", "notes"):
            value = getattr(dto, field)
            if value is not None:
                setattr(customer, field, value)
        customer = self._repo.save(customer)
        logger.info("customer.updated", customer_id=str(id))
        return customer

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_customer(self, id: str) -> Customer:
        """Retrieve a single customer by ID.

        Raises:
            CustomerNotFound: if the customer does not exist.
        """
        customer = self._repo.get_by_id(id)
        if not customer:
            raise CustomerNotFound(f"Customer {id} not found.")
        return customer

    def tier_of(self, customer: Customer) -> TierStatus:
        return classify_customer(customer.total_orders, self._tier_goals)

    def _match(self, name: str, phone: str) -> Optional[Customer]:
        if phone:
            customer = self._repo.get_by_phone(phone)
            if customer:
                return customer
        return self._repo.get_by_name(name)
