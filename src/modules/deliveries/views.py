"""Delivery API views.

Exposes the ``DispatchService`` via HTTP using DRF ViewSets.
Domain exceptions are caught and translated into appropriate
HTTP status codes; the view never swallows generic exceptions.
"""

from __future__ import annotations

import secrets

from django.conf import settings
from django.utils import timezone
from pydantic import ValidationError as PydanticValidationError
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.views import APIView
from rest_framework.viewsets import GenericViewSet

from modules.couriers.exceptions import CourierNotFound, CourierUnavailable
from modules.deliveries.batching import is_batch_id
from modules.deliveries.constants import CANCELLATION_REASONS
from modules.deliveries.dtos import (
    CreateDeliveryDTO,
    OrderOutputDTO,
    QuoteRequestDTO,
    TrackingOutputDTO,
    board_entry_output,
)
from modules.deliveries.exceptions import (
    InvalidDistance,
    InvalidOrderStatus,
    InvalidPickupCode,
    MissingCancellationReason,
    OrderNotFound,
    ResetNotConfirmed,
)
from modules.deliveries.runtime import get_dispatch_service
from modules.deliveries.serializers import (
    AcceptSerializer,
    AdvanceSerializer,
    CancelSerializer,
    CreateDeliverySerializer,
    HistoryQuerySerializer,
    PickupCodeSerializer,
    QuoteSerializer,
    ResetSerializer,
    SelectSerializer,
)
from modules.deliveries.tasks import ingest_message

# (exception, status) pairs, checked in order
DOMAIN_ERRORS = (
    (OrderNotFound, status.HTTP_404_NOT_FOUND),
    (CourierNotFound, status.HTTP_404_NOT_FOUND),
    (CourierUnavailable, status.HTTP_409_CONFLICT),
    (InvalidOrderStatus, status.HTTP_409_CONFLICT),
    (InvalidPickupCode, status.HTTP_400_BAD_REQUEST),
    (MissingCancellationReason, status.HTTP_400_BAD_REQUEST),
    (ResetNotConfirmed, status.HTTP_400_BAD_REQUEST),
    (InvalidDistance, status.HTTP_400_BAD_REQUEST),
    (PydanticValidationError, status.HTTP_400_BAD_REQUEST),
)
HANDLED = tuple(exc for exc, _ in DOMAIN_ERRORS)


def error_response(exc: Exception) -> Response:
    for exc_class, code in DOMAIN_ERRORS:
        if isinstance(exc, exc_class):
            return Response({"detail": str(exc)}, status=code)
    raise exc


def render_orders(orders) -> dict:
    return {"orders": [OrderOutputDTO.from_entity(o).model_dump(mode="json") for o in orders]}


def render_order(order) -> dict:
    return OrderOutputDTO.from_entity(order).model_dump(mode="json")


class DeliveryViewSet(GenericViewSet):
    """ViewSet for the dispatch board.

    Board state lives in the process ``DispatchService``; there is no
    queryset.  Batch-level actions accept either a batch id
    (``batch-<courier_id>``) or the id of any order in the batch.
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = get_dispatch_service()

    def get_throttles(self) -> list[BaseThrottle]:
        """Define escopos de throttling por ação."""
        throttle_scope: str | None
        if self.action == "create":
            throttle_scope = "delivery_creation"
        elif self.action in {"list", "retrieve", "summary", "history"}:
            throttle_scope = "board_polling"
        else:
            throttle_scope = None
        self.throttle_scope = throttle_scope
        return super().get_throttles()

    # ------------------------------------------------------------------
    # Board
    # ------------------------------------------------------------------

    def list(self, request: Request) -> Response:
        """GET /api/v1/deliveries/ (board entries, batches collapsed)"""
        return Response([board_entry_output(e) for e in self._service.board_entries()])

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/deliveries/{pk}/"""
        if pk and is_batch_id(pk):
            for entry in self._service.board_entries():
                if entry.id == pk:
                    return Response(board_entry_output(entry))
            return Response({"detail": "Batch not found."}, status=status.HTTP_404_NOT_FOUND)
        try:
            order = self._service.get_order(pk or "")
        except OrderNotFound:
            return Response({"detail": "Order not found."}, status=status.HTTP_404_NOT_FOUND)
        return Response(render_order(order))

    def create(self, request: Request) -> Response:
        """POST /api/v1/deliveries/"""
        serializer = CreateDeliverySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            dto = CreateDeliveryDTO(**serializer.validated_data)
            order = self._service.create_order(dto)
        except HANDLED as exc:
            return error_response(exc)
        return Response(render_order(order), status=status.HTTP_201_CREATED)

    # ------------------------------------------------------------------
    # Lifecycle actions
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"])
    def accept(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/deliveries/{pk}/accept/"""
        serializer = AcceptSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            order = self._service.accept_order(pk or "", serializer.validated_data["courier_id"])
        except HANDLED as exc:
            return error_response(exc)
        return Response(render_order(order))

    @action(detail=True, methods=["post"])
    def advance(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/deliveries/{pk}/advance/"""
        serializer = AdvanceSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            orders = self._service.advance_order(pk or "", serializer.validated_data["status"])
        except HANDLED as exc:
            return error_response(exc)
        return Response(render_orders(orders))

    @action(detail=True, methods=["post"], url_path="mark-ready")
    def mark_ready(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/deliveries/{pk}/mark-ready/"""
        try:
            orders = self._service.mark_ready(pk or "")
        except HANDLED as exc:
            return error_response(exc)
        return Response(render_orders(orders))

    @action(detail=True, methods=["post"], url_path="validate-pickup")
    def validate_pickup(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/deliveries/{pk}/validate-pickup/"""
        serializer = PickupCodeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            orders = self._service.validate_pickup(pk or "", serializer.validated_data["code"])
        except HANDLED as exc:
            return error_response(exc)
        return Response(render_orders(orders))

    @action(detail=True, methods=["post"])
    def arrive(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/deliveries/{pk}/arrive/ (courier at the customer's door)"""
        try:
            order = self._service.reach_destination(pk or "")
        except HANDLED as exc:
            return error_response(exc)
        return Response(render_order(order))

    @action(detail=True, methods=["post"], url_path="confirm-return")
    def confirm_return(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/deliveries/{pk}/confirm-return/"""
        try:
            orders = self._service.confirm_return(pk or "")
        except HANDLED as exc:
            return error_response(exc)
        return Response(render_orders(orders))

    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/deliveries/{pk}/cancel/"""
        serializer = CancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            order = self._service.cancel_order(pk or "", serializer.validated_data["reason"])
        except HANDLED as exc:
            return error_response(exc)
        return Response(render_order(order))

    @action(detail=True, methods=["post"])
    def select(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/deliveries/{pk}/select/ (``selected=false`` clears)"""
        serializer = SelectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        target = pk if serializer.validated_data["selected"] else None
        try:
            order = self._service.select_order(target)
        except HANDLED as exc:
            return error_response(exc)
        return Response({"selected_order_id": order.id if order else None})

    # ------------------------------------------------------------------
    # Board-wide actions
    # ------------------------------------------------------------------

    @action(detail=False, methods=["post"])
    def quote(self, request: Request) -> Response:
        """POST /api/v1/deliveries/quote/"""
        serializer = QuoteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            quote = self._service.quote(QuoteRequestDTO(**serializer.validated_data))
        except HANDLED as exc:
            return error_response(exc)
        return Response(
            {
                "distance_km": quote.draft.distance_km,
                "payment_method": str(quote.draft.payment_method),
                "is_return_required": quote.draft.is_return_required,
                "is_batching": quote.draft.is_batching,
                "base": str(quote.fee.base),
                "discount": str(quote.fee.discount),
                "return_fee": str(quote.fee.surcharge),
                "total": str(quote.fee.total),
            }
        )

    @action(detail=False, methods=["get"])
    def history(self, request: Request) -> Response:
        """GET /api/v1/deliveries/history/?status=all|pending|completed&start=&end="""
        serializer = HistoryQuerySerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        orders = self._service.history(data["status"], data["start"], data["end"])
        return Response(render_orders(orders))

    @action(detail=False, methods=["get"])
    def summary(self, request: Request) -> Response:
        """GET /api/v1/deliveries/summary/?start=&end="""
        serializer = HistoryQuerySerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        return Response(self._service.summary(data["start"], data["end"]).as_dict())

    @action(detail=False, methods=["get"], url_path="cancellation-reasons")
    def cancellation_reasons(self, request: Request) -> Response:
        """GET /api/v1/deliveries/cancellation-reasons/"""
        return Response({"reasons": list(CANCELLATION_REASONS)})

    @action(detail=False, methods=["get"])
    def store(self, request: Request) -> Response:
        """GET /api/v1/deliveries/store/ (merchant profile and settings)"""
        profile = self._service.profile
        store_settings = self._service.settings
        return Response(
            {
                "profile": profile.model_dump(mode="json"),
                "settings": store_settings.model_dump(mode="json"),
                "is_open": store_settings.is_open_at(timezone.localtime().time()),
            }
        )

    @action(detail=False, methods=["post"])
    def sync(self, request: Request) -> Response:
        """POST /api/v1/deliveries/sync/ (run one sync tick now)"""
        outcome = self._service.sync_tick()
        return Response(
            {
                "new": len(outcome.new_orders),
                "updated": len(outcome.updated),
                "skipped": outcome.skipped,
            }
        )

    @action(detail=False, methods=["post"])
    def reset(self, request: Request) -> Response:
        """POST /api/v1/deliveries/reset/ with ``{"confirm": true}``"""
        serializer = ResetSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            deleted = self._service.reset_all_data(serializer.validated_data["confirm"])
        except HANDLED as exc:
            return error_response(exc)
        return Response({"deleted": deleted})


class NotificationViewSet(GenericViewSet):
    """Live toasts; they expire on their own after a few seconds."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = get_dispatch_service()

    def list(self, request: Request) -> Response:
        """GET /api/v1/notifications/"""
        return Response([n.as_dict() for n in self._service.notifications()])

    @action(detail=True, methods=["post"])
    def dismiss(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/notifications/{pk}/dismiss/"""
        if not self._service.dismiss_notification(pk or ""):
            return Response(
                {"detail": "Notification not found."},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response(status=status.HTTP_204_NO_CONTENT)


class TrackingView(APIView):
    """Public tracking page data: GET /api/v1/track/{token}/"""

    authentication_classes: list = []
    permission_classes = [AllowAny]
    throttle_scope = "tracking"

    def get(self, request: Request, token: str) -> Response:
        try:
            order = get_dispatch_service().track(token)
        except OrderNotFound:
            return Response({"detail": "Order not found."}, status=status.HTTP_404_NOT_FOUND)
        return Response(TrackingOutputDTO.from_entity(order).model_dump(mode="json"))


class IntakeWebhookView(APIView):
    """Chat gateway webhook: POST /api/v1/intake/whatsapp/

    Parsing and the store insert run in the ``deliveries.ingest_message``
    task; the gateway only needs a quick acknowledgement.
    """

    authentication_classes: list = []
    permission_classes = [AllowAny]
    throttle_scope = "intake"

    def post(self, request: Request) -> Response:
        expected = settings.DISPATCH_WEBHOOK_TOKEN
        provided = request.headers.get("X-Webhook-Token", "")
        if expected and not secrets.compare_digest(expected, provided):
            return Response({"detail": "Invalid webhook token."}, status=status.HTTP_403_FORBIDDEN)
        if not isinstance(request.data, dict):
            return Response({"detail": "Expected a JSON object."}, status=status.HTTP_400_BAD_REQUEST)
        ingest_message.delay(dict(request.data))
        return Response({"detail": "accepted"}, status=status.HTTP_202_ACCEPTED)
