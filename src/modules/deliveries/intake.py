"""Chat intake: turns a "gerar pedido" WhatsApp message into a pending delivery.

The webhook payload follows the ``messages.upsert`` event format of the
WhatsApp gateway.  The message is parsed line by line, in any order:

    Gerar pedido
    Cliente: Maria Souza
    Tel: (11) 98888-7777
    Valor: 45,90
    Cartão
    Rua Paula Souza, 120 - Centro CEP: 13300-000

The delivery is written straight to the backing store as ``pending``;
the next sync brings it onto the board.
"""

from __future__ import annotations

import random
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any, Mapping

import structlog
import uuid6

from modules.deliveries.constants import ExternalStatus, OrderSource, PaymentMethod
from modules.deliveries.pricing import compute_fee, resolve_return_required
from modules.geo.distance import haversine_km

if TYPE_CHECKING:
    from modules.deliveries.repositories.interfaces import IDeliveryStore
    from modules.deliveries.store import StoreProfile, StoreSettings
    from modules.geo.port import GeoPort

logger = structlog.get_logger(__name__)

TRIGGER = "gerar pedido"
UPSERT_EVENT = "messages.upsert"
DEFAULT_CUSTOMER = "Cliente WhatsApp"
DEFAULT_ADDRESS = "Centro"

_CUSTOMER_RE = re.compile(r"^cliente:", re.IGNORECASE)
_PHONE_RE = re.compile(r"^tel:", re.IGNORECASE)
_VALUE_RE = re.compile(r"^valor", re.IGNORECASE)
_AMOUNT_RE = re.compile(r"\d+(?:[.,]\d+)*")
_PAYMENT_RE = re.compile(r"cart[aã]o|card|dinheiro|cash|pix", re.IGNORECASE)
_ADDRESS_RE = re.compile(r"rua|av|alameda|pra[cç]a|cep", re.IGNORECASE)


@dataclass(frozen=True)
class IncomingMessage:
    text: str
    push_name: str = ""
    sender: str = ""


@dataclass(frozen=True)
class ParsedOrder:
    customer_name: str
    phone: str
    address: str
    value: Decimal
    payment_method: str


def extract_message(payload: Mapping[str, Any]) -> IncomingMessage | None:
    """Text message of a ``messages.upsert`` webhook; ``None`` for anything else."""
    if payload.get("event") != UPSERT_EVENT:
        return None
    data = payload.get("data") or {}
    message = data.get("message") or {}
    text = message.get("conversation") or (message.get("extendedTextMessage") or {}).get("text") or ""
    if not text:
        return None
    remote_jid = (data.get("key") or {}).get("remoteJid") or ""
    return IncomingMessage(
        text=text,
        push_name=data.get("pushName") or "",
        sender=remote_jid.split("@")[0],
    )


def parse_amount(raw: str) -> Decimal:
    """``"R$ 1.234,50"`` -> ``Decimal("1234.50")``; unparsable gives zero."""
    match = _AMOUNT_RE.search(raw)
    if not match:
        return Decimal("0.00")
    number = match.group(0)
    if "," in number:
        number = number.replace(".", "").replace(",", ".")
    try:
        return Decimal(number).quantize(Decimal("0.01"))
    except InvalidOperation:
        return Decimal("0.00")


def parse_order_message(message: IncomingMessage) -> ParsedOrder | None:
    """Parse an order command; messages without the trigger give ``None``."""
    if TRIGGER not in message.text.lower():
        return None

    name = message.push_name or DEFAULT_CUSTOMER
    phone = message.sender
    address = DEFAULT_ADDRESS
    value = Decimal("0.00")
    payment = PaymentMethod.PIX

    for line in (raw.strip() for raw in message.text.splitlines()):
        if _CUSTOMER_RE.match(line):
            name = _CUSTOMER_RE.sub("", line).strip() or name
        elif _PHONE_RE.match(line):
            phone = _PHONE_RE.sub("", line).strip() or phone
        elif _VALUE_RE.match(line):
            value = parse_amount(line)
        elif _PAYMENT_RE.search(line):
            lowered = line.lower()
            if "cart" in lowered or "card" in lowered:
                payment = PaymentMethod.CARD
            elif "dinheiro" in lowered or "cash" in lowered:
                payment = PaymentMethod.CASH
            else:
                payment = PaymentMethod.PIX
        elif _ADDRESS_RE.search(line) and len(line) > 10:
            address = line

    return ParsedOrder(
        customer_name=name,
        phone=phone,
        address=address,
        value=value,
        payment_method=payment,
    )


def build_record(
    parsed: ParsedOrder,
    *,
    geo: GeoPort,
    profile: StoreProfile,
    settings: StoreSettings,
    rng: random.Random | None = None,
) -> dict[str, Any]:
    """Price and geocode a parsed message into a ``pending`` store record."""
    rng = rng or random.SystemRandom()
    point = geo.geocode(parsed.address)
    distance = round(haversine_km(profile.coordinates, point), 2) if point else None
    is_return = resolve_return_required(parsed.payment_method, False)
    fee = compute_fee(
        distance,
        is_return_required=is_return,
        return_fee_active=settings.return_fee_active,
        fallback=settings.base_freight,
    )
    phone_digits = re.sub(r"\D", "", parsed.phone)
    return {
        "id": str(uuid6.uuid7()),
        "store_id": profile.store_id,
        "store_name": profile.name,
        "store_address": profile.address,
        "customer_name": parsed.customer_name,
        "customer_address": parsed.address,
        "customer_phone_suffix": phone_digits[-4:],
        "collection_code": str(rng.randint(1000, 9999)),
        "status": ExternalStatus.PENDING.value,
        "total_distance": distance,
        "earnings": fee.total,
        "items": {
            "display_id": str(rng.randint(1000, 9999)),
            "client_phone": phone_digits,
            "payment_method": str(parsed.payment_method),
            "delivery_value": str(parsed.value),
            "estimated_price": str(fee.total),
            "return_fee": str(fee.surcharge),
            "is_return_required": is_return,
            "lat": point.lat if point else None,
            "lng": point.lng if point else None,
            "source": OrderSource.WHATSAPP.value,
        },
    }


def ingest(
    payload: Mapping[str, Any],
    *,
    store: IDeliveryStore,
    geo: GeoPort,
    profile: StoreProfile,
    settings: StoreSettings,
    rng: random.Random | None = None,
) -> dict[str, Any] | None:
    """Handle one webhook payload; returns the inserted record or ``None``.

    Raises:
        PersistenceError: the store rejected the insert.
    """
    message = extract_message(payload)
    parsed = parse_order_message(message) if message else None
    if parsed is None:
        logger.debug("intake.message_ignored")
        return None

    record = build_record(parsed, geo=geo, profile=profile, settings=settings, rng=rng)
    stored = store.insert(record)
    logger.info(
        "intake.order_received",
        delivery_id=record["id"],
        display_id=record["items"]["display_id"],
        payment_method=record["items"]["payment_method"],
        fee=str(record["earnings"]),
    )
    return stored
