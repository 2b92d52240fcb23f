"""Courier API views.

Couriers are read from the dispatch service's pool, so availability is
the live one the board works with.
"""

from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import action
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from modules.couriers.dtos import CourierOutputDTO
from modules.deliveries.runtime import get_dispatch_service


def _render(entry: dict) -> dict:
    return CourierOutputDTO.from_entity(
        entry["courier"], entry["available"], entry["order_ids"]
    ).model_dump(mode="json")


class CourierViewSet(GenericViewSet):
    """Read-only view of the courier pool."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = get_dispatch_service()

    def list(self, request: Request) -> Response:
        """GET /api/v1/couriers/?available=true|false"""
        entries = self._service.courier_snapshot()
        available = request.query_params.get("available")
        if available is not None:
            wanted = available.lower() in {"1", "true", "yes"}
            entries = [e for e in entries if e["available"] is wanted]
        return Response([_render(e) for e in entries])

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/couriers/{pk}/"""
        for entry in self._service.courier_snapshot():
            if entry["courier"].id == pk:
                return Response(_render(entry))
        return Response(
            {"detail": "Courier not found."},
            status=status.HTTP_404_NOT_FOUND,
        )

    @action(detail=False, methods=["post"])
    def refresh(self, request: Request) -> Response:
        """POST /api/v1/couriers/refresh/ (load couriers registered since start-up)"""
        added = self._service.refresh_roster()
        return Response({"added": added})
