"""Customer DRF serializers for API input."""

from __future__ import annotations

from rest_framework import serializers


class UpdateCustomerSerializer(serializers.Serializer):
    """Validates the editable customer fields (all optional)."""

    name = serializers.CharField(required=False, max_length=255)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=20)
    notes = serializers.CharField(required=False, allow_blank=True)
