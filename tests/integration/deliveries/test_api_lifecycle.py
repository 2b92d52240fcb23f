"""Integration tests for the delivery lifecycle actions.

Covers:
- Happy path: accept -> to store -> ready -> pickup code -> delivered.
- Return flow: card payment goes RETURNING and back to the store.
- Batch actions fan out to every order of the courier.
- Errors: 404 unknown, 409 illegal transition / no courier, 400 bad code.
- Cancellation: reason required, late-cancel fee, courier released.
- Public tracking and notification toasts.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from modules.couriers.models import CourierProfile
from modules.deliveries.models import Delivery
from modules.deliveries.runtime import get_dispatch_service

pytestmark = pytest.mark.integration

URL = "/api/v1/deliveries/"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def courier():
    return CourierProfile.objects.create(
        name="Ana", vehicle_plate="DEF-4G56", lat=-23.26, lng=-47.31
    )


@pytest.fixture()
def create(auth_client):
    def _create(**overrides):
        payload = {
            "client_name": "Maria Souza",
            "destination": "Rua Sete, 70",
            "delivery_value": "30.00",
            "distance_km": 3.0,
            "lat": -23.27,
            "lng": -47.29,
        }
        payload.update(overrides)
        response = auth_client.post(URL, payload, format="json")
        assert response.status_code == 201, response.json()
        return response.json()

    return _create


def _post(client, order_id, action, data=None):
    return client.post(f"{URL}{order_id}/{action}/", data or {}, format="json")


def _pickup_code(order_id):
    return get_dispatch_service().get_order(order_id).pickup_code


def _ready(client, order_id):
    _post(client, order_id, "advance", {"status": "ARRIVED_AT_STORE"})
    response = _post(client, order_id, "mark-ready")
    assert response.status_code == 200, response.json()


# ===========================================================================
# Happy path
# ===========================================================================


class TestDeliveryFlow:
    def test_full_delivery(self, auth_client, create, courier):
        order = create()
        order_id = order["id"]

        accepted = _post(auth_client, order_id, "accept").json()
        assert accepted["status"] == "ACCEPTED"
        assert accepted["courier"]["id"] == str(courier.id)

        moved = _post(auth_client, order_id, "advance", {"status": "TO_STORE"}).json()
        assert moved["orders"][0]["status"] == "TO_STORE"

        _ready(auth_client, order_id)

        dispatched = _post(
            auth_client, order_id, "validate-pickup", {"code": _pickup_code(order_id)}
        ).json()
        assert dispatched["orders"][0]["status"] == "IN_TRANSIT"

        delivered = _post(auth_client, order_id, "arrive").json()
        assert delivered["status"] == "DELIVERED"
        assert [e["status"] for e in delivered["events"]] == [
            "PENDING",
            "ACCEPTED",
            "TO_STORE",
            "ARRIVED_AT_STORE",
            "READY_FOR_PICKUP",
            "IN_TRANSIT",
            "DELIVERED",
        ]

        row = Delivery.objects.get(id=order_id)
        assert row.status == "completed"

        service = get_dispatch_service()
        assert service.pool.is_available(str(courier.id))
        released = service.pool.get(str(courier.id))
        assert (released.lat, released.lng) == (-23.27, -47.29)

    def test_return_flow(self, auth_client, create, courier):
        order_id = create(payment_method="CARD")["id"]
        _post(auth_client, order_id, "accept")
        _ready(auth_client, order_id)
        _post(auth_client, order_id, "validate-pickup", {"code": _pickup_code(order_id)})

        returning = _post(auth_client, order_id, "arrive").json()
        assert returning["status"] == "RETURNING"
        assert not get_dispatch_service().pool.is_available(str(courier.id))

        confirmed = _post(auth_client, order_id, "confirm-return").json()
        assert confirmed["orders"][0]["status"] == "DELIVERED"
        assert confirmed["orders"][0]["events"][-1]["label"] == "Devolução Confirmada"
        assert get_dispatch_service().pool.is_available(str(courier.id))
        assert Delivery.objects.get(id=order_id).status == "completed"

    def test_batch_pickup_moves_every_ready_order(self, auth_client, create, courier):
        first = create(courier_id=str(courier.id))["id"]
        second = create(courier_id=str(courier.id))["id"]
        batch_id = f"batch-{courier.id}"

        response = _post(auth_client, batch_id, "advance", {"status": "ARRIVED_AT_STORE"})
        assert len(response.json()["orders"]) == 2
        _post(auth_client, batch_id, "mark-ready")

        response = _post(auth_client, batch_id, "validate-pickup", {"code": _pickup_code(second)})

        assert response.status_code == 200
        assert {o["id"] for o in response.json()["orders"]} == {first, second}
        assert set(Delivery.objects.values_list("status", flat=True)) == {"in_transit"}


# ===========================================================================
# Errors
# ===========================================================================


class TestLifecycleErrors:
    def test_unknown_order_returns_404(self, auth_client):
        assert _post(auth_client, "missing", "accept").status_code == 404
        assert _post(auth_client, "missing", "mark-ready").status_code == 404

    def test_no_courier_available_returns_409(self, auth_client, create):
        order_id = create()["id"]
        response = _post(auth_client, order_id, "accept")
        assert response.status_code == 409
        assert "detail" in response.json()

    def test_accepting_twice_returns_409(self, auth_client, create, courier):
        order_id = create()["id"]
        _post(auth_client, order_id, "accept")
        assert _post(auth_client, order_id, "accept").status_code == 409

    def test_pending_order_cannot_be_marked_ready(self, auth_client, create):
        order_id = create()["id"]
        assert _post(auth_client, order_id, "mark-ready").status_code == 409

    def test_advance_rejects_other_statuses(self, auth_client, create):
        order_id = create()["id"]
        response = _post(auth_client, order_id, "advance", {"status": "DELIVERED"})
        assert response.status_code == 400

    def test_wrong_pickup_code_returns_400(self, auth_client, create, courier):
        order_id = create()["id"]
        _post(auth_client, order_id, "accept")
        _ready(auth_client, order_id)
        code = _pickup_code(order_id)
        wrong = "0000" if code != "0000" else "1111"

        response = _post(auth_client, order_id, "validate-pickup", {"code": wrong})

        assert response.status_code == 400
        assert get_dispatch_service().get_order(order_id).status == "READY_FOR_PICKUP"

    def test_pickup_code_must_have_four_digits(self, auth_client, create):
        order_id = create()["id"]
        response = _post(auth_client, order_id, "validate-pickup", {"code": "12"})
        assert response.status_code == 400


# ===========================================================================
# Cancellation
# ===========================================================================


class TestCancel:
    def test_reason_is_required(self, auth_client, create):
        order_id = create()["id"]
        response = _post(auth_client, order_id, "cancel", {"reason": "  "})
        assert response.status_code == 400
        assert get_dispatch_service().get_order(order_id).status == "PENDING"

    def test_pending_cancel_is_free(self, auth_client, create):
        order_id = create()["id"]

        data = _post(auth_client, order_id, "cancel", {"reason": "Cliente desistiu do pedido"}).json()

        assert data["status"] == "CANCELED"
        assert Decimal(data["cancellation_fee"]) == Decimal("0.00")
        row = Delivery.objects.get(id=order_id)
        assert row.status == "canceled"
        assert row.cancellation_reason == "Cliente desistiu do pedido"

    def test_late_cancel_charges_fee_and_frees_courier(self, auth_client, create, courier):
        order_id = create()["id"]
        _post(auth_client, order_id, "accept")

        data = _post(auth_client, order_id, "cancel", {"reason": "Erro no cadastro"}).json()

        assert Decimal(data["cancellation_fee"]) == Decimal("4.90")
        assert data["courier"] is None
        assert get_dispatch_service().pool.is_available(str(courier.id))
        assert Delivery.objects.get(id=order_id).courier_id is None

    def test_cancel_twice_returns_409(self, auth_client, create):
        order_id = create()["id"]
        _post(auth_client, order_id, "cancel", {"reason": "Erro"})
        assert _post(auth_client, order_id, "cancel", {"reason": "Erro"}).status_code == 409


# ===========================================================================
# Selection, tracking, notifications
# ===========================================================================


class TestSelect:
    def test_select_and_clear(self, auth_client, create):
        order_id = create()["id"]
        assert _post(auth_client, order_id, "select").json() == {"selected_order_id": order_id}
        cleared = _post(auth_client, order_id, "select", {"selected": False}).json()
        assert cleared == {"selected_order_id": None}


class TestTracking:
    def test_tracking_is_public(self, api_client, create):
        order = create(client_name="Maria Souza")

        response = api_client.get(f"/api/v1/track/{order['tracking_token']}/")

        assert response.status_code == 200
        data = response.json()
        assert data["client_name"] == "Maria"
        assert data["status"] == "PENDING"
        assert "pickup_code" not in data

    def test_unknown_token_returns_404(self, api_client):
        assert api_client.get("/api/v1/track/nope/").status_code == 404


class TestNotifications:
    def test_courier_at_store_toast(self, auth_client, create, courier):
        order_id = create()["id"]
        _post(auth_client, order_id, "accept")
        _post(auth_client, order_id, "advance", {"status": "ARRIVED_AT_STORE"})

        toasts = auth_client.get("/api/v1/notifications/").json()

        assert [t["title"] for t in toasts] == ["Entregador na Loja"]
        response = auth_client.post(f"/api/v1/notifications/{toasts[0]['id']}/dismiss/")
        assert response.status_code == 204
        assert auth_client.get("/api/v1/notifications/").json() == []

    def test_dismiss_unknown_returns_404(self, auth_client):
        assert auth_client.post("/api/v1/notifications/nope/dismiss/").status_code == 404
