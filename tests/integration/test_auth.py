"""Integration tests for JWT authentication (SimpleJWT).

Validates:
  - /health, tracking and the intake webhook are public.
  - Board endpoints return 401 without, or with a bad, token.
  - A token obtained from /api/v1/auth/token/ opens the board.
"""

import pytest
from django.contrib.auth import get_user_model

pytestmark = pytest.mark.integration

BOARD = "/api/v1/deliveries/"


@pytest.fixture()
def user():
    return get_user_model().objects.create_user(username="lojista", password="testpass123")


class TestPublicEndpoints:
    """Endpoints reachable without credentials."""

    def test_health_is_public(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_tracking_is_public(self, api_client):
        assert api_client.get("/api/v1/track/unknown/").status_code == 404

    def test_intake_is_public(self, api_client):
        response = api_client.post("/api/v1/intake/whatsapp/", {"event": "ping"}, format="json")
        assert response.status_code == 202


class TestProtectedEndpoints:
    """Every board endpoint requires a valid JWT by default (Fail Closed)."""

    @pytest.mark.parametrize(
        "path",
        [BOARD, "/api/v1/couriers/", "/api/v1/customers/", "/api/v1/notifications/"],
    )
    def test_no_token_returns_401(self, api_client, path):
        assert api_client.get(path).status_code == 401

    def test_actions_require_token(self, api_client):
        assert api_client.post(f"{BOARD}reset/", {"confirm": True}, format="json").status_code == 401

    def test_invalid_token_returns_401(self, api_client):
        api_client.credentials(HTTP_AUTHORIZATION="Bearer invalid.token.here")
        assert api_client.get(BOARD).status_code == 401

    def test_malformed_auth_header_returns_401(self, api_client):
        api_client.credentials(HTTP_AUTHORIZATION="Token some-token")
        assert api_client.get(BOARD).status_code == 401

    def test_401_includes_www_authenticate_header(self, api_client):
        response = api_client.get(BOARD)
        assert "Bearer" in response.get("WWW-Authenticate", "")


class TestTokenFlow:
    def test_obtained_token_opens_the_board(self, api_client, user):
        response = api_client.post(
            "/api/v1/auth/token/",
            {"username": "lojista", "password": "testpass123"},
            format="json",
        )
        assert response.status_code == 200

        api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.json()['access']}")

        assert api_client.get(BOARD).status_code == 200

    def test_wrong_password(self, api_client, user):
        response = api_client.post(
            "/api/v1/auth/token/",
            {"username": "lojista", "password": "errada"},
            format="json",
        )
        assert response.status_code == 401
