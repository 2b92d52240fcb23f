"""Testes de integração para configuração do Celery e da task de ingestão."""

import pytest

from modules.deliveries.models import Delivery

pytestmark = pytest.mark.integration

ORDER_MESSAGE = {
    "event": "messages.upsert",
    "data": {
        "pushName": "Maria",
        "key": {"remoteJid": "5511988887777@s.whatsapp.net"},
        "message": {
            "conversation": (
                "Gerar pedido\n"
                "Cliente: Maria Souza\n"
                "Valor: 45,90\n"
                "Dinheiro\n"
                "Rua Paula Souza, 120 - Centro"
            )
        },
    },
}


@pytest.fixture(autouse=True)
def _celery_eager(settings):
    """Executa tasks de forma síncrona no processo de teste."""
    settings.CELERY_TASK_ALWAYS_EAGER = True
    settings.CELERY_TASK_EAGER_PROPAGATES = True


class TestCeleryConfig:
    """Verifica que o Celery carrega corretamente via Django."""

    def test_celery_app_exported_from_init(self):
        from config import celery_app

        assert celery_app.main == "dispatch"

    def test_celery_broker_url_configured(self, settings):
        assert "redis" in settings.CELERY_BROKER_URL
        assert "redis" in settings.CELERY_RESULT_BACKEND

    def test_celery_serializer_is_json(self, settings):
        assert settings.CELERY_TASK_SERIALIZER == "json"
        assert settings.CELERY_RESULT_SERIALIZER == "json"
        assert settings.CELERY_ACCEPT_CONTENT == ["json"]

    def test_celery_timezone_matches_django(self, settings):
        assert settings.CELERY_TIMEZONE == settings.TIME_ZONE


class TestIngestMessageTask:
    """Execução da task de ingestão em modo eager."""

    def test_order_message_creates_pending_delivery(self):
        from modules.deliveries.tasks import ingest_message

        result = ingest_message.delay(ORDER_MESSAGE)

        assert result.successful()
        row = Delivery.objects.get(id=result.result["id"])
        assert row.status == "pending"
        assert row.customer_name == "Maria Souza"
        assert row.customer_phone_suffix == "7777"
        assert row.items["payment_method"] == "CASH"
        assert row.items["delivery_value"] == "45.90"
        assert row.items["source"] == "WHATSAPP"
        assert row.items["display_id"] == result.result["display_id"]

    def test_chat_message_is_ignored(self):
        from modules.deliveries.tasks import ingest_message

        payload = {**ORDER_MESSAGE, "data": {"message": {"conversation": "Bom dia!"}}}

        result = ingest_message.delay(payload)

        assert result.result is None
        assert not Delivery.objects.exists()

    def test_other_events_are_ignored(self):
        from modules.deliveries.tasks import ingest_message

        result = ingest_message.delay({"event": "connection.update"})

        assert result.result is None
