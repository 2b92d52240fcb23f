"""Customer API views.

Exposes the ``CustomerService`` via HTTP using DRF ViewSets.
Domain exceptions are caught and translated into appropriate
HTTP status codes; the view never swallows generic exceptions.
"""

from __future__ import annotations

from django.conf import settings
from django_filters.rest_framework import DjangoFilterBackend
from pydantic import ValidationError as PydanticValidationError
from rest_framework import status
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from modules.core.pagination import StandardResultsSetPagination
from modules.customers.dtos import CustomerOutputDTO, UpdateCustomerDTO
from modules.customers.exceptions import CustomerNotFound
from modules.customers.filters import CustomerFilter
from modules.customers.models import Customer
from modules.customers.repositories.django_repository import CustomerDjangoRepository
from modules.customers.serializers import UpdateCustomerSerializer
from modules.customers.services import CustomerService


class CustomerViewSet(GenericViewSet):
    """Read the CRM and edit customer notes.

    Customers are created by deliveries, never directly through the API.
    """

    queryset = Customer.objects.alive().prefetch_related("addresses")
    filterset_class = CustomerFilter
    search_fields = ["name", "phone"]
    ordering_fields = ["name", "total_orders", "total_spent", "last_order_date"]
    ordering = ["-last_order_date", "-id"]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    pagination_class = StandardResultsSetPagination

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = CustomerService(
            repository=CustomerDjangoRepository(),
            tier_goals=settings.DISPATCH_TIER_GOALS,
        )

    def _render(self, customer: Customer) -> dict:
        return CustomerOutputDTO.from_entity(
            customer, settings.DISPATCH_TIER_GOALS
        ).model_dump(mode="json")

    # ------------------------------------------------------------------
    # List / Retrieve
    # ------------------------------------------------------------------

    def list(self, request: Request) -> Response:
        """GET /api/v1/customers/"""
        queryset = self.filter_queryset(self.get_queryset())
        page = self.paginate_queryset(queryset)
        if page is not None:
            return self.get_paginated_response([self._render(c) for c in page])
        return Response([self._render(c) for c in queryset])

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/customers/{pk}/"""
        try:
            customer = self._service.get_customer(pk or "")
        except CustomerNotFound:
            return Response(
                {"detail": "Customer not found."},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response(self._render(customer))

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def partial_update(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/v1/customers/{pk}/"""
        serializer = UpdateCustomerSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            dto = UpdateCustomerDTO(**serializer.validated_data)
        except PydanticValidationError as exc:
            return Response(
                {"detail": str(exc)},
                status=status.HTTP_400_BAD_REQUEST,
            )

        try:
            customer = self._service.update_customer(pk or "", dto)
        except CustomerNotFound:
            return Response(
                {"detail": "Customer not found."},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response(self._render(customer))
