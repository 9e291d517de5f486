"""Fulfillment API views.

Exposes ``FulfillmentService`` over HTTP using DRF ViewSets.  Domain
exceptions are translated into the standard error envelope; the views never
swallow generic exceptions.
"""

from __future__ import annotations

from typing import Dict
from uuid import UUID

import structlog
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.views import APIView
from rest_framework.viewsets import GenericViewSet

from modules.core.exceptions import error_response
from modules.core.pagination import StandardResultsSetPagination
from modules.fulfillment.dtos import (
    AddTrackingDTO,
    BulkTransitionDTO,
    CancelItemDTO,
    CancelOrderDTO,
    ClearOrderStatusOverrideDTO,
    CreateOrderDTO,
    CreateOrderItemDTO,
    LockItemDTO,
    OrderFromSupplierDTO,
    OverrideOrderStatusDTO,
    TransitionItemDTO,
    UnlockItemDTO,
)
from modules.fulfillment.exceptions import (
    Conflict,
    FulfillmentError,
    InvalidTransition,
    ItemLocked,
    NotFound,
    ReasonRequired,
)
from modules.fulfillment.filters import OrderFilter
from modules.fulfillment.models import FulfillmentSettings, Order
from modules.fulfillment.repositories.django_repository import OrderDjangoRepository
from modules.fulfillment.serializers import (
    AddTrackingSerializer,
    BulkTransitionSerializer,
    CancelSerializer,
    CreateOrderSerializer,
    FulfillmentSettingsSerializer,
    ItemStatusHistorySerializer,
    LockItemSerializer,
    OrderFromSupplierSerializer,
    OrderItemSerializer,
    OrderListSerializer,
    OrderSerializer,
    OrderStatusOverrideSerializer,
    TransitionItemSerializer,
    UnlockItemSerializer,
)
from modules.fulfillment.services import FulfillmentService

logger = structlog.get_logger(__name__)

_ERROR_STATUS: Dict[type, int] = {
    InvalidTransition: status.HTTP_400_BAD_REQUEST,
    ItemLocked: status.HTTP_423_LOCKED,
    ReasonRequired: status.HTTP_400_BAD_REQUEST,
    Conflict: status.HTTP_409_CONFLICT,
    NotFound: status.HTTP_404_NOT_FOUND,
}


def _domain_error(exc: FulfillmentError) -> Response:
    for error_class, http_status in _ERROR_STATUS.items():
        if isinstance(exc, error_class):
            return error_response(exc.code, str(exc), http_status)
    raise exc


def _actor(request: Request) -> str:
    return str(request.user.pk)


def _parse_id(pk: str | None) -> UUID | None:
    try:
        return UUID(str(pk))
    except ValueError:
        return None


def _not_found(kind: str) -> Response:
    return error_response("not_found", f"{kind} not found.", status.HTTP_404_NOT_FOUND)


class OrderViewSet(GenericViewSet):
    """Order placement, reads with dashboard evaluation, status override and
    cancellation.

    Does **not** extend ``ModelViewSet``; all ORM access goes through the
    service/repository layer.
    """

    queryset = Order.objects.all()
    filterset_class = OrderFilter
    search_fields = ["order_number", "customer_reference", "items__name"]
    ordering_fields = ["created_at", "total_amount", "status", "completion_percentage"]
    ordering = ["-created_at", "-id"]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = FulfillmentService(order_repository=OrderDjangoRepository())

    def get_queryset(self):
        return self._service.list_orders()

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, request: Request) -> Response:
        """POST /api/v1/orders/

        Supports idempotency via the ``Idempotency-Key`` header.
        """
        create_serializer = CreateOrderSerializer(data=request.data)
        create_serializer.is_valid(raise_exception=True)

        data = create_serializer.validated_data
        dto = CreateOrderDTO(
            items=[CreateOrderItemDTO(**item) for item in data["items"]],
            customer_reference=data["customer_reference"],
            shipping_cost=data["shipping_cost"],
            payment_status=data["payment_status"],
            notes=data["notes"],
            idempotency_key=request.headers.get("Idempotency-Key"),
            actor=_actor(request),
        )
        order = self._service.create_order(dto)
        return Response(self._render(order), status=status.HTTP_201_CREATED)

    # ------------------------------------------------------------------
    # List / Retrieve
    # ------------------------------------------------------------------

    def list(self, request: Request) -> Response:
        """GET /api/v1/orders/

        Derived fields and ``urgency_level`` are evaluated fresh for each
        row; the cached columns only back the status filter and ordering.
        """
        queryset = self.filter_queryset(self.get_queryset())

        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(queryset, request, view=self)
        policy = self._service.current_policy()
        evaluations = {
            order.id: self._service.evaluate_order(order, policy) for order in page
        }
        serializer = OrderListSerializer(
            page, many=True, context={"evaluations": evaluations}
        )
        return paginator.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/"""
        if _parse_id(pk) is None:
            return _not_found("Order")
        try:
            order = self._service.get_order(pk)
        except NotFound as exc:
            return _domain_error(exc)
        return Response(self._render(order))

    @action(detail=True, methods=["get"])
    def evaluation(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/evaluation/"""
        if _parse_id(pk) is None:
            return _not_found("Order")
        try:
            order = self._service.get_order(pk)
        except NotFound as exc:
            return _domain_error(exc)
        return Response(self._service.evaluate_order(order).model_dump(mode="json"))

    # ------------------------------------------------------------------
    # Cancel (dedicated action)
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/cancel/"""
        order_id = _parse_id(pk)
        if order_id is None:
            return _not_found("Order")

        serializer = CancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            order = self._service.cancel_order(
                CancelOrderDTO(
                    order_id=order_id,
                    reason=serializer.validated_data["reason"],
                    actor=_actor(request),
                )
            )
        except FulfillmentError as exc:
            return _domain_error(exc)
        return Response(self._render(order))

    @action(detail=True, methods=["post"], url_path="status-override")
    def status_override(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/status-override/

        ``{"status", "reason"}`` pins the order status;
        ``{"clear_override": true}`` releases it.
        """
        order_id = _parse_id(pk)
        if order_id is None:
            return _not_found("Order")

        serializer = OrderStatusOverrideSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            if data["clear_override"]:
                order = self._service.clear_order_status_override(
                    ClearOrderStatusOverrideDTO(order_id=order_id, actor=_actor(request))
                )
            else:
                order = self._service.override_order_status(
                    OverrideOrderStatusDTO(
                        order_id=order_id,
                        status=data["status"],
                        reason=data["reason"],
                        actor=_actor(request),
                    )
                )
        except FulfillmentError as exc:
            return _domain_error(exc)
        return Response(self._render(order))

    def _render(self, order: Order) -> dict:
        evaluations = {order.id: self._service.evaluate_order(order)}
        return OrderSerializer(order, context={"evaluations": evaluations}).data


class ItemViewSet(GenericViewSet):
    """Per-item commands: transition, supplier order, tracking, lock, unlock,
    cancel, history and bulk jobs."""

    serializer_class = OrderItemSerializer

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = FulfillmentService(order_repository=OrderDjangoRepository())

    def get_throttles(self) -> list[BaseThrottle]:
        self.throttle_scope = (
            "bulk_transition" if self.action == "bulk_transition" else None
        )
        return super().get_throttles()

    @action(detail=True, methods=["post"], url_path="status")
    def transition(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/items/{pk}/status/"""
        item_id = _parse_id(pk)
        if item_id is None:
            return _not_found("Item")

        serializer = TransitionItemSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            item = self._service.transition_item(
                TransitionItemDTO(
                    item_id=item_id,
                    new_status=data["status"],
                    actor=_actor(request),
                    notes=data["notes"],
                    expected_version=data.get("expected_version"),
                )
            )
        except FulfillmentError as exc:
            return _domain_error(exc)
        return Response(OrderItemSerializer(item).data)

    @action(detail=True, methods=["post"])
    def lock(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/items/{pk}/lock/"""
        item_id = _parse_id(pk)
        if item_id is None:
            return _not_found("Item")

        serializer = LockItemSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            item = self._service.lock_item(
                LockItemDTO(
                    item_id=item_id,
                    status=data["status"],
                    reason=data["reason"],
                    actor=_actor(request),
                    expected_version=data.get("expected_version"),
                )
            )
        except FulfillmentError as exc:
            return _domain_error(exc)
        return Response(OrderItemSerializer(item).data)

    @action(detail=True, methods=["post"])
    def unlock(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/items/{pk}/unlock/"""
        item_id = _parse_id(pk)
        if item_id is None:
            return _not_found("Item")

        serializer = UnlockItemSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            item = self._service.unlock_item(
                UnlockItemDTO(
                    item_id=item_id,
                    actor=_actor(request),
                    expected_version=serializer.validated_data.get("expected_version"),
                )
            )
        except FulfillmentError as exc:
            return _domain_error(exc)
        return Response(OrderItemSerializer(item).data)

    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/items/{pk}/cancel/"""
        item_id = _parse_id(pk)
        if item_id is None:
            return _not_found("Item")

        serializer = CancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            item = self._service.cancel_item(
                CancelItemDTO(
                    item_id=item_id,
                    reason=data["reason"],
                    actor=_actor(request),
                    expected_version=data.get("expected_version"),
                )
            )
        except FulfillmentError as exc:
            return _domain_error(exc)
        return Response(OrderItemSerializer(item).data)

    @action(detail=True, methods=["post"], url_path="order-from-supplier")
    def order_from_supplier(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/items/{pk}/order-from-supplier/"""
        item_id = _parse_id(pk)
        if item_id is None:
            return _not_found("Item")

        serializer = OrderFromSupplierSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            item = self._service.order_from_supplier(
                OrderFromSupplierDTO(
                    item_id=item_id, **serializer.validated_data, actor=_actor(request)
                )
            )
        except FulfillmentError as exc:
            return _domain_error(exc)
        return Response(OrderItemSerializer(item).data)

    @action(detail=True, methods=["post"])
    def tracking(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/items/{pk}/tracking/ (``leg`` is israel or customer)"""
        item_id = _parse_id(pk)
        if item_id is None:
            return _not_found("Item")

        serializer = AddTrackingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            item = self._service.add_tracking(
                AddTrackingDTO(
                    item_id=item_id,
                    leg=data["leg"],
                    tracking_number=data["tracking_number"],
                    carrier=data["carrier"],
                    estimated_date=data["estimated_date"],
                    actor=_actor(request),
                    expected_version=data.get("expected_version"),
                )
            )
        except FulfillmentError as exc:
            return _domain_error(exc)
        return Response(OrderItemSerializer(item).data)

    @action(detail=True, methods=["get"])
    def history(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/items/{pk}/history/ (newest first)"""
        item_id = _parse_id(pk)
        if item_id is None:
            return _not_found("Item")
        try:
            history = self._service.get_item_history(item_id)
        except NotFound as exc:
            return _domain_error(exc)
        return Response(ItemStatusHistorySerializer(history, many=True).data)

    @action(detail=False, methods=["post"], url_path="bulk-transition")
    def bulk_transition(self, request: Request) -> Response:
        """POST /api/v1/items/bulk-transition/

        Always 200: per-item failures are reported in ``failed``.
        """
        serializer = BulkTransitionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = self._service.bulk_transition(
            BulkTransitionDTO(**serializer.validated_data, actor=_actor(request))
        )
        return Response(result.model_dump(mode="json"))


class FulfillmentSettingsView(APIView):
    """GET/PATCH /api/v1/fulfillment/settings/

    Anyone authenticated may read the policy; only staff may change it.
    """

    def get_permissions(self):
        if self.request.method == "PATCH":
            return [IsAdminUser()]
        return [IsAuthenticated()]

    def get(self, request: Request) -> Response:
        return Response(FulfillmentSettingsSerializer(FulfillmentSettings.load()).data)

    def patch(self, request: Request) -> Response:
        instance = FulfillmentSettings.load()
        serializer = FulfillmentSettingsSerializer(
            instance, data=request.data, partial=True
        )
        serializer.is_valid(raise_exception=True)
        serializer.save()
        logger.info(
            "fulfillment_settings.updated",
            actor=_actor(request),
            changed=sorted(serializer.validated_data),
        )
        return Response(serializer.data)
