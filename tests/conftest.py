import random
from datetime import datetime, timedelta
from datetime import timezone as dt_timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.utils import timezone

from rest_framework.test import APIClient

from modules.couriers.entities import Courier
from modules.couriers.pool import CourierPool
from modules.deliveries.checkpoints import WatermarkStore
from modules.deliveries.constants import OrderStatus
from modules.deliveries.entities import Order
from modules.deliveries.repositories.interfaces import IDeliveryStore
from modules.deliveries.services import DispatchService
from modules.deliveries.store import StoreProfile, StoreSettings
from modules.geo.entities import Coordinates
from modules.geo.fake_adapter import FakeGeoAdapter

STORE_POINT = Coordinates(lat=-23.257217, lng=-47.300549)


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture(autouse=True)
def _fresh_dispatch():
    """Every test starts with a new board, geo adapter and watermark."""
    from modules.deliveries.runtime import reset_dispatch_service
    from modules.geo import reset_geo_adapter

    cache.clear()
    reset_dispatch_service()
    reset_geo_adapter()
    yield
    reset_dispatch_service()
    reset_geo_adapter()


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def auth_client():
    """APIClient with a force-authenticated Django user."""
    client = APIClient()
    user = get_user_model().objects.create_user(username="lojista", password="testpass123")
    client.force_authenticate(user=user)
    return client


# ---------------------------------------------------------------------------
# Dispatch domain
# ---------------------------------------------------------------------------


@pytest.fixture()
def store_profile():
    return StoreProfile(
        store_id="store-1",
        name="Padaria Teste",
        address="Rua dos Andradas, 468",
        lat=STORE_POINT.lat,
        lng=STORE_POINT.lng,
    )


@pytest.fixture()
def store_settings():
    return StoreSettings(base_freight=Decimal("8.50"), return_fee_active=True)


@pytest.fixture()
def fake_geo():
    return FakeGeoAdapter()


@pytest.fixture()
def mock_store():
    store = MagicMock(spec=IDeliveryStore)
    store.insert.side_effect = lambda record: record
    store.update.side_effect = lambda ids, patch: len(ids)
    store.delete.return_value = 0
    store.query.return_value = []
    return store


@pytest.fixture()
def mock_directory():
    directory = MagicMock()
    directory.list_active.return_value = []
    directory.get_by_id.return_value = None
    return directory


@pytest.fixture()
def make_courier():
    def _make(id="c1", name="Carlos", plate="ABC-1D23", lat=-23.25, lng=-47.29):
        return Courier(id=id, name=name, vehicle_plate=plate, lat=lat, lng=lng)

    return _make


@pytest.fixture()
def couriers(make_courier):
    return [
        make_courier("c1", "Carlos", "ABC-1D23", -23.250, -47.290),
        make_courier("c2", "Ana", "DEF-4G56", -23.260, -47.310),
        make_courier("c3", "Bruno", "HIJ-7K89", -23.255, -47.305),
    ]


@pytest.fixture()
def pool(couriers):
    return CourierPool(couriers)


@pytest.fixture()
def make_order():
    """Build an ``Order`` already in ``status`` with a consistent event trail."""

    def _make(
        id="o1",
        status=OrderStatus.PENDING,
        courier=None,
        pickup_code="1234",
        is_return_required=False,
        created_at=None,
        destination_point=None,
        client_name="Maria Souza",
        **extra,
    ):
        created_at = created_at or timezone.now() - timedelta(minutes=10)
        order = Order(
            id=id,
            display_id=id[-4:],
            client_name=client_name,
            destination=f"Rua {id}, 100",
            pickup_code=pickup_code,
            created_at=created_at,
            courier=courier,
            is_return_required=is_return_required,
            destination_point=destination_point,
            **extra,
        )
        order.record_event(OrderStatus.PENDING, created_at, "Pedido criado.")
        if status != OrderStatus.PENDING:
            order.status = status
            order.record_event(status, created_at + timedelta(minutes=1), "Preparado no teste.")
        return order

    return _make


@pytest.fixture()
def dispatch_service(mock_store, mock_directory, fake_geo, store_profile, store_settings, pool):
    return DispatchService(
        mock_store,
        mock_directory,
        fake_geo,
        profile=store_profile,
        settings=store_settings,
        watermarks=WatermarkStore(store_profile.store_id),
        pool=pool,
        rng=random.Random(7),
    )


@pytest.fixture()
def store_row():
    """Raw ``deliveries`` row as returned by ``IDeliveryStore.query``."""

    def _row(id="r1", status="pending", courier_id=None, created_at=None, **items):
        return {
            "id": id,
            "store_id": "store-1",
            "customer_name": "João Lima",
            "customer_address": "Rua Sete, 70",
            "customer_phone_suffix": "7777",
            "collection_code": "4321",
            "status": status,
            "total_distance": 3.2,
            "earnings": Decimal("8.50"),
            "courier_id": courier_id,
            "cancellation_reason": "",
            "items": {"display_id": "5555", **items},
            "created_at": created_at or datetime(2026, 3, 2, 12, 0, tzinfo=dt_timezone.utc),
        }

    return _row
