"""Unit tests for CustomerService.

Covers:
- record_order: match by phone, then by name; first contact creates the
  customer; totals, last order date and address bookkeeping.
- update_customer / get_customer: happy path and not found.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from modules.customers.dtos import CustomerOrderDTO, UpdateCustomerDTO
from modules.customers.exceptions import CustomerNotFound
from modules.customers.models import Customer
from modules.customers.services import CustomerService
from modules.customers.tiers import CustomerTier

pytestmark = pytest.mark.unit

ORDERED_AT = datetime(2026, 3, 2, 19, 30, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def mock_repo():
    repo = MagicMock()
    repo.get_by_phone.return_value = None
    repo.get_by_name.return_value = None
    repo.save.side_effect = lambda customer: customer
    return repo


@pytest.fixture()
def service(mock_repo):
    return CustomerService(repository=mock_repo)


def _order(**overrides) -> CustomerOrderDTO:
    defaults = {
        "name": "Maria Souza",
        "phone": "(11) 98888-7777",
        "amount": Decimal("45.90"),
        "ordered_at": ORDERED_AT,
        "street": "Rua Paula Souza",
        "number": "120",
        "neighborhood": "Centro",
        "city": "Itu",
        "cep": "13300-000",
    }
    defaults.update(overrides)
    return CustomerOrderDTO(**defaults)


# ===========================================================================
# record_order
# ===========================================================================


class TestRecordOrder:
    def test_first_contact_creates_customer(self, service, mock_repo):
        customer = service.record_order(_order())

        assert customer.name == "Maria Souza"
        assert customer.phone == "11988887777"
        assert customer.total_orders == 1
        assert customer.total_spent == Decimal("45.90")
        assert customer.last_order_date == ORDERED_AT
        mock_repo.save.assert_called_once()

    def test_matches_by_phone_first(self, service, mock_repo):
        known = Customer(name="Maria S.", phone="11988887777", total_orders=3)
        mock_repo.get_by_phone.return_value = known

        customer = service.record_order(_order())

        assert customer is known
        assert customer.total_orders == 4
        mock_repo.get_by_name.assert_not_called()

    def test_falls_back_to_name(self, service, mock_repo):
        known = Customer(name="maria souza", phone="")
        mock_repo.get_by_name.return_value = known

        customer = service.record_order(_order())

        assert customer is known
        assert customer.phone == "11988887777"
        mock_repo.get_by_name.assert_called_once_with("Maria Souza")

    def test_without_phone_only_name_is_used(self, service, mock_repo):
        service.record_order(_order(phone=""))
        mock_repo.get_by_phone.assert_not_called()
        mock_repo.get_by_name.assert_called_once()

    def test_last_order_date_never_moves_back(self, service, mock_repo):
        known = Customer(name="Maria Souza", last_order_date=ORDERED_AT)
        mock_repo.get_by_name.return_value = known

        service.record_order(_order(phone="", ordered_at=ORDERED_AT - timedelta(days=1)))

        assert known.last_order_date == ORDERED_AT

    def test_address_is_remembered(self, service, mock_repo):
        customer = service.record_order(_order())

        mock_repo.remember_address.assert_called_once()
        saved_for, address, used_at = mock_repo.remember_address.call_args.args
        assert saved_for is customer
        assert address["street"] == "Rua Paula Souza"
        assert address["cep"] == "13300000"
        assert used_at == ORDERED_AT

    def test_no_street_no_address(self, service, mock_repo):
        service.record_order(_order(street=""))
        mock_repo.remember_address.assert_not_called()


# ===========================================================================
# Queries / updates
# ===========================================================================


class TestGetCustomer:
    def test_found(self, service, mock_repo):
        customer = Customer(name="Ana")
        mock_repo.get_by_id.return_value = customer
        assert service.get_customer("abc") is customer

    def test_not_found(self, service, mock_repo):
        mock_repo.get_by_id.return_value = None
        with pytest.raises(CustomerNotFound):
            service.get_customer("missing")


class TestUpdateCustomer:
    def test_only_supplied_fields_change(self, service, mock_repo):
        customer = Customer(name="Ana", phone="11911112222", notes="")
        mock_repo.get_by_id.return_value = customer

        service.update_customer("abc", UpdateCustomerDTO(notes="Portão azul"))

        assert customer.notes == "Portão azul"
        assert customer.name == "Ana"
        assert customer.phone == "11911112222"
        mock_repo.save.assert_called_once_with(customer)

    def test_not_found(self, service, mock_repo):
        mock_repo.get_by_id.return_value = None
        with pytest.raises(CustomerNotFound):
            service.update_customer("missing", UpdateCustomerDTO(notes="x"))


class TestTierOf:
    def test_uses_configured_goals(self, mock_repo):
        service = CustomerService(mock_repo, tier_goals={"bronze": 1, "silver": 2, "gold": 3})
        assert service.tier_of(Customer(name="Ana", total_orders=2)).tier == CustomerTier.BRONZE
