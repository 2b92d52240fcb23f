"""Delivery URL configuration."""

from __future__ import annotations

from django.urls import path
from rest_framework.routers import DefaultRouter

from modules.deliveries.views import (
    DeliveryViewSet,
    IntakeWebhookView,
    NotificationViewSet,
    TrackingView,
)

router = DefaultRouter(trailing_slash=True)
router.register("deliveries", DeliveryViewSet, basename="delivery")
router.register("notifications", NotificationViewSet, basename="notification")

urlpatterns = [
    path("track/<str:token>/", TrackingView.as_view(), name="delivery-tracking"),
    path("intake/whatsapp/", IntakeWebhookView.as_view(), name="intake-whatsapp"),
    *router.urls,
]
