"""Tasks assíncronas do módulo deliveries."""

from __future__ import annotations

import structlog
from celery import shared_task

from modules.deliveries.exceptions import PersistenceError

logger = structlog.get_logger(__name__)


@shared_task(
    name="deliveries.ingest_message",
    autoretry_for=(PersistenceError,),
    retry_backoff=True,
    max_retries=3,
)
def ingest_message(payload: dict) -> dict | None:
    """Cria uma entrega pendente a partir de uma mensagem "gerar pedido".

    Retorna o id e o número exibido do pedido, ou ``None`` quando a
    mensagem não é um comando de pedido.
    """
    from modules.deliveries.intake import ingest
    from modules.deliveries.repositories.django_repository import DeliveryDjangoStore
    from modules.deliveries.store import load_store_profile, load_store_settings
    from modules.geo import get_geo_adapter

    record = ingest(
        payload,
        store=DeliveryDjangoStore(),
        geo=get_geo_adapter(),
        profile=load_store_profile(),
        settings=load_store_settings(),
    )
    if record is None:
        return None
    logger.info("ingest_message.executed", delivery_id=str(record["id"]))
    return {"id": str(record["id"]), "display_id": record["items"].get("display_id")}
