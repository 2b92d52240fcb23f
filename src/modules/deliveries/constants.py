"""Delivery domain constants.

Defines the order lifecycle, the valid status transitions and the
timing/pricing constants shared by the dispatch core.
"""

from decimal import Decimal

from django.db import models


class OrderStatus(models.TextChoices):
    PENDING = "PENDING", "Pendente"
    ACCEPTED = "ACCEPTED", "Aceito"
    TO_STORE = "TO_STORE", "A caminho da loja"
    ARRIVED_AT_STORE = "ARRIVED_AT_STORE", "Na loja"
    READY_FOR_PICKUP = "READY_FOR_PICKUP", "Pronto p/ coleta"
    IN_TRANSIT = "IN_TRANSIT", "Em rota"
    RETURNING = "RETURNING", "Em retorno"
    DELIVERED = "DELIVERED", "Entregue"
    CANCELED = "CANCELED", "Cancelado"


class PaymentMethod(models.TextChoices):
    PIX = "PIX", "Pix"
    CARD = "CARD", "Cartão"
    CASH = "CASH", "Dinheiro"


class OrderSource(models.TextChoices):
    DASHBOARD = "DASHBOARD", "Painel"
    WHATSAPP = "WHATSAPP", "WhatsApp"
    SYNC = "SYNC", "Sincronização"


class ExternalStatus(models.TextChoices):
    """Status vocabulary of the backing delivery store."""

    PENDING = "pending", "pending"
    ACCEPTED = "accepted", "accepted"
    ARRIVED_PICKUP = "arrived_pickup", "arrived_pickup"
    READY_FOR_PICKUP = "ready_for_pickup", "ready_for_pickup"
    IN_TRANSIT = "in_transit", "in_transit"
    ARRIVED_AT_CUSTOMER = "arrived_at_customer", "arrived_at_customer"
    COMPLETED = "completed", "completed"
    CANCELED = "canceled", "canceled"


VALID_TRANSITIONS: dict[str, set[str]] = {
    OrderStatus.PENDING: {OrderStatus.ACCEPTED, OrderStatus.CANCELED},
    OrderStatus.ACCEPTED: {
        OrderStatus.TO_STORE,
        OrderStatus.ARRIVED_AT_STORE,
        OrderStatus.READY_FOR_PICKUP,
        OrderStatus.CANCELED,
    },
    OrderStatus.TO_STORE: {
        OrderStatus.ARRIVED_AT_STORE,
        OrderStatus.READY_FOR_PICKUP,
        OrderStatus.CANCELED,
    },
    OrderStatus.ARRIVED_AT_STORE: {OrderStatus.READY_FOR_PICKUP, OrderStatus.CANCELED},
    OrderStatus.READY_FOR_PICKUP: {OrderStatus.IN_TRANSIT, OrderStatus.CANCELED},
    OrderStatus.IN_TRANSIT: {
        OrderStatus.RETURNING,
        OrderStatus.DELIVERED,
        OrderStatus.CANCELED,
    },
    OrderStatus.RETURNING: {OrderStatus.DELIVERED, OrderStatus.CANCELED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELED: set(),
}

TERMINAL_STATES: set[str] = {OrderStatus.DELIVERED, OrderStatus.CANCELED}

# Forward order of the lifecycle, used by the regression guard.
LIFECYCLE: tuple[str, ...] = (
    OrderStatus.PENDING,
    OrderStatus.ACCEPTED,
    OrderStatus.TO_STORE,
    OrderStatus.ARRIVED_AT_STORE,
    OrderStatus.READY_FOR_PICKUP,
    OrderStatus.IN_TRANSIT,
    OrderStatus.RETURNING,
    OrderStatus.DELIVERED,
    OrderStatus.CANCELED,
)
STATUS_RANK: dict[str, int] = {status: rank for rank, status in enumerate(LIFECYCLE)}

PRE_STORE_STATES: set[str] = {
    OrderStatus.PENDING,
    OrderStatus.ACCEPTED,
    OrderStatus.TO_STORE,
}
READY_SOURCE_STATES: set[str] = {
    OrderStatus.ACCEPTED,
    OrderStatus.TO_STORE,
    OrderStatus.ARRIVED_AT_STORE,
}
# Board entries in these states jump to the front: the store has to act.
PRIORITY_STATES: set[str] = {OrderStatus.READY_FOR_PICKUP, OrderStatus.RETURNING}
# A courier is already on the way: canceling costs the store a fee.
CANCELLATION_FEE_STATES: set[str] = {
    OrderStatus.ACCEPTED,
    OrderStatus.TO_STORE,
    OrderStatus.ARRIVED_AT_STORE,
    OrderStatus.READY_FOR_PICKUP,
    OrderStatus.IN_TRANSIT,
}

EVENT_LABELS: dict[str, str] = {
    OrderStatus.PENDING: "Pedido Feito",
    OrderStatus.ACCEPTED: "Aceite do Entregador",
    OrderStatus.TO_STORE: "A Caminho da Loja",
    OrderStatus.ARRIVED_AT_STORE: "Chegou na Loja",
    OrderStatus.READY_FOR_PICKUP: "Pronto p/ Coleta",
    OrderStatus.IN_TRANSIT: "Código Validado",
    OrderStatus.RETURNING: "Em Retorno",
    OrderStatus.DELIVERED: "Pedido Entregue",
    OrderStatus.CANCELED: "Cancelado",
}

CANCELLATION_REASONS: tuple[str, ...] = (
    "Demora na busca do entregador",
    "Motoboy não chegou ao estabelecimento",
    "Cliente desistiu do pedido",
    "Erro no cadastro do pedido",
)

# Pricing
MIN_FREIGHT = Decimal("7.50")
DEFAULT_BASE_FREIGHT = Decimal("8.50")
BATCH_DISCOUNT_RATE = Decimal("0.75")
RETURN_SURCHARGE_RATE = Decimal("0.5")
CANCELLATION_FEE = Decimal("4.90")

# Pickup / notifications
PICKUP_CODE_LENGTH = 4
PICKUP_ERROR_RESET_SECONDS = 1.0
NOTIFICATION_TTL_SECONDS = 4.0
