"""Customer repository interface.

Extends ``IRepository[Customer]`` with the look-ups used to match a
delivery to an existing customer, and with address bookkeeping.
"""

from __future__ import annotations

from abc import abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.customers.models import Customer, SavedAddress


class ICustomerRepository(IRepository["Customer"]):
    """Repository contract for the Customer aggregate."""

    @abstractmethod
    def save(self, entity: Customer) -> Customer:
        """Persist (create or update) a customer."""

    @abstractmethod
    def get_by_phone(self, phone: str) -> Optional[Customer]:
        """Retrieve a customer by phone (digits only)."""

    @abstractmethod
    def get_by_name(self, name: str) -> Optional[Customer]:
        """Retrieve a customer by name, case-insensitively."""

    @abstractmethod
    def remember_address(
        self, customer: Customer, address: Dict[str, Any], used_at: datetime
    ) -> SavedAddress:
        """Store an address (or refresh an existing street + number) as most recent."""
