"""Delivery DRF serializers for API input.

The serializer operates at the Interface layer (API Views).
Business logic lives in the Service Layer, which receives
Pydantic DTOs from ``dtos.py``; responses are rendered from the
output DTOs.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.deliveries.constants import OrderStatus, PaymentMethod
from modules.deliveries.reports import HistoryFilter


class CreateDeliverySerializer(serializers.Serializer):
    """Validates the delivery creation payload."""

    client_name = serializers.CharField(max_length=255)
    destination = serializers.CharField(required=False, allow_blank=True, default="")
    client_phone = serializers.CharField(required=False, allow_blank=True, default="", max_length=20)
    address_street = serializers.CharField(required=False, allow_blank=True, default="")
    address_number = serializers.CharField(required=False, allow_blank=True, default="")
    address_complement = serializers.CharField(required=False, allow_blank=True, default="")
    address_neighborhood = serializers.CharField(required=False, allow_blank=True, default="")
    address_city = serializers.CharField(required=False, allow_blank=True, default="")
    address_cep = serializers.CharField(required=False, allow_blank=True, default="")
    delivery_value = serializers.DecimalField(
        max_digits=10, decimal_places=2, min_value=0, required=False, default="0.00"
    )
    payment_method = serializers.ChoiceField(
        choices=PaymentMethod.choices, required=False, default=PaymentMethod.PIX
    )
    change_for = serializers.DecimalField(
        max_digits=10, decimal_places=2, min_value=0, required=False, allow_null=True, default=None
    )
    is_return_required = serializers.BooleanField(required=False, default=False)
    courier_id = serializers.CharField(required=False, allow_null=True, default=None)
    distance_km = serializers.FloatField(required=False, allow_null=True, min_value=0, default=None)
    lat = serializers.FloatField(required=False, allow_null=True, default=None)
    lng = serializers.FloatField(required=False, allow_null=True, default=None)


class QuoteSerializer(serializers.Serializer):
    distance_km = serializers.FloatField(required=False, allow_null=True, min_value=0, default=None)
    destination = serializers.CharField(required=False, allow_blank=True, default="")
    payment_method = serializers.ChoiceField(
        choices=PaymentMethod.choices, required=False, default=PaymentMethod.PIX
    )
    is_return_required = serializers.BooleanField(required=False, default=False)
    courier_id = serializers.CharField(required=False, allow_null=True, default=None)


class AcceptSerializer(serializers.Serializer):
    courier_id = serializers.CharField(required=False, allow_null=True, default=None)


class AdvanceSerializer(serializers.Serializer):
    status = serializers.ChoiceField(
        choices=[OrderStatus.TO_STORE, OrderStatus.ARRIVED_AT_STORE]
    )


class PickupCodeSerializer(serializers.Serializer):
    code = serializers.RegexField(r"^\d{4}$", error_messages={"invalid": "Enter 4 digits."})


class CancelSerializer(serializers.Serializer):
    """``reason`` may be one of ``CANCELLATION_REASONS`` or free text."""

    reason = serializers.CharField(allow_blank=True, trim_whitespace=True)


class SelectSerializer(serializers.Serializer):
    selected = serializers.BooleanField(required=False, default=True)


class ResetSerializer(serializers.Serializer):
    confirm = serializers.BooleanField(required=False, default=False)


class HistoryQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(
        choices=[f.value for f in HistoryFilter], required=False, default=HistoryFilter.ALL
    )
    start = serializers.DateTimeField(required=False, allow_null=True, default=None)
    end = serializers.DateTimeField(required=False, allow_null=True, default=None)
