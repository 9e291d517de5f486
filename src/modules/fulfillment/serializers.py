"""Fulfillment DRF serializers for API input/output.

Serializers validate the HTTP payload shape only.  Workflow rules (lock
reasons, the transition table, version checks) are enforced by the service,
which receives pydantic DTOs built from the validated data.
"""

from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers

from modules.fulfillment.constants import (
    CARRIERS_BY_LEG,
    NOTE_MAX_LENGTH,
    OTHER_CARRIER,
    ItemStatus,
    PaymentStatus,
    TrackingLeg,
    allowed_next,
    display_label,
    next_recommended,
)
from modules.fulfillment.models import (
    FulfillmentSettings,
    ItemStatusHistory,
    Order,
    OrderItem,
    OrderTimelineEntry,
)

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class CreateOrderItemSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    supplier = serializers.CharField(
        max_length=120, required=False, default="", allow_blank=True
    )
    unit_price = serializers.DecimalField(
        max_digits=10, decimal_places=2, min_value=Decimal("0")
    )
    quantity = serializers.IntegerField(min_value=1, default=1)


class CreateOrderSerializer(serializers.Serializer):
    """Validates the order placement payload."""

    customer_reference = serializers.CharField(
        max_length=255, required=False, default="", allow_blank=True
    )
    items = CreateOrderItemSerializer(many=True, allow_empty=False)
    shipping_cost = serializers.DecimalField(
        max_digits=10,
        decimal_places=2,
        min_value=Decimal("0"),
        required=False,
        default=Decimal("0.00"),
    )
    payment_status = serializers.ChoiceField(
        choices=PaymentStatus.choices, required=False, default=PaymentStatus.PENDING
    )
    notes = serializers.CharField(required=False, default="", allow_blank=True)


class TransitionItemSerializer(serializers.Serializer):
    status = serializers.CharField(max_length=24)
    notes = serializers.CharField(
        max_length=NOTE_MAX_LENGTH, required=False, default="", allow_blank=True
    )
    expected_version = serializers.IntegerField(min_value=1, required=False)


class LockItemSerializer(serializers.Serializer):
    """A blank reason passes here and is rejected by the service."""

    status = serializers.CharField(max_length=24)
    reason = serializers.CharField(
        max_length=NOTE_MAX_LENGTH,
        required=False,
        default="",
        allow_blank=True,
        trim_whitespace=False,
    )
    expected_version = serializers.IntegerField(min_value=1, required=False)


class UnlockItemSerializer(serializers.Serializer):
    expected_version = serializers.IntegerField(min_value=1, required=False)


class CancelSerializer(serializers.Serializer):
    reason = serializers.CharField(
        max_length=NOTE_MAX_LENGTH,
        required=False,
        default="",
        allow_blank=True,
        trim_whitespace=False,
    )
    expected_version = serializers.IntegerField(min_value=1, required=False)


class OrderFromSupplierSerializer(serializers.Serializer):
    supplier_order_number = serializers.CharField(
        max_length=120, required=False, default="", allow_blank=True
    )
    supplier_tracking_number = serializers.CharField(
        max_length=120, required=False, default="", allow_blank=True
    )
    actual_cost = serializers.DecimalField(
        max_digits=10,
        decimal_places=2,
        min_value=Decimal("0"),
        required=False,
        allow_null=True,
        default=None,
    )
    notes = serializers.CharField(
        max_length=NOTE_MAX_LENGTH, required=False, default="", allow_blank=True
    )
    expected_version = serializers.IntegerField(min_value=1, required=False)


class AddTrackingSerializer(serializers.Serializer):
    """``carrier`` is a code from the leg's list; ``other`` needs ``custom_carrier``.

    The validated ``carrier`` is the name stored on the item.
    """

    leg = serializers.ChoiceField(choices=TrackingLeg.choices)
    tracking_number = serializers.CharField(max_length=120)
    carrier = serializers.CharField(max_length=120)
    custom_carrier = serializers.CharField(
        max_length=120, required=False, default="", allow_blank=True
    )
    estimated_date = serializers.DateField(required=False, allow_null=True, default=None)
    expected_version = serializers.IntegerField(min_value=1, required=False)

    def validate(self, attrs):
        carriers = CARRIERS_BY_LEG[attrs["leg"]]
        if attrs["carrier"] not in carriers:
            raise serializers.ValidationError(
                {"carrier": f"Choose one of: {', '.join(carriers)}."}
            )
        if attrs["carrier"] == OTHER_CARRIER:
            custom = attrs["custom_carrier"].strip()
            if not custom:
                raise serializers.ValidationError(
                    {"custom_carrier": "Name the carrier when choosing 'other'."}
                )
            attrs["carrier"] = custom
        return attrs


class OrderStatusOverrideSerializer(serializers.Serializer):
    """Lock with ``status`` + ``reason``, or unlock with ``clear_override``."""

    status = serializers.CharField(max_length=20, required=False)
    reason = serializers.CharField(
        max_length=NOTE_MAX_LENGTH,
        required=False,
        default="",
        allow_blank=True,
        trim_whitespace=False,
    )
    clear_override = serializers.BooleanField(required=False, default=False)

    def validate(self, attrs):
        if not attrs["clear_override"] and not attrs.get("status"):
            raise serializers.ValidationError(
                {"status": "Provide a status, or clear_override to unlock."}
            )
        return attrs


class BulkTransitionSerializer(serializers.Serializer):
    new_status = serializers.CharField(max_length=24)
    item_ids = serializers.ListField(
        child=serializers.UUIDField(), required=False, default=list
    )
    from_status = serializers.ChoiceField(choices=ItemStatus.choices, required=False)
    supplier = serializers.CharField(max_length=120, required=False)
    notes = serializers.CharField(
        max_length=NOTE_MAX_LENGTH, required=False, default="", allow_blank=True
    )

    def validate(self, attrs):
        if not attrs.get("item_ids") and not attrs.get("from_status"):
            raise serializers.ValidationError(
                "Provide item_ids or a from_status selector."
            )
        return attrs


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class ItemStatusHistorySerializer(serializers.ModelSerializer):
    class Meta:
        model = ItemStatusHistory
        fields = [
            "id",
            "old_status",
            "new_status",
            "actor",
            "notes",
            "is_manual_override",
            "created_at",
        ]
        read_only_fields = fields


class OrderItemSerializer(serializers.ModelSerializer):
    """Item with its lock, cancellation, supplier order, tracking and hints."""

    status_label = serializers.SerializerMethodField()
    override = serializers.SerializerMethodField()
    supplier_order = serializers.SerializerMethodField()
    israel_tracking = serializers.SerializerMethodField()
    customer_tracking = serializers.SerializerMethodField()
    allowed_next = serializers.SerializerMethodField()
    next_recommended = serializers.SerializerMethodField()

    class Meta:
        model = OrderItem
        fields = [
            "id",
            "name",
            "supplier",
            "quantity",
            "unit_price",
            "subtotal",
            "status",
            "status_label",
            "status_changed_at",
            "version",
            "stuck_flagged_at",
            "override",
            "cancelled",
            "cancellation_reason",
            "cancelled_at",
            "supplier_order",
            "israel_tracking",
            "customer_tracking",
            "allowed_next",
            "next_recommended",
        ]
        read_only_fields = fields

    def get_status_label(self, obj: OrderItem) -> str:
        return display_label(obj.status)

    def get_override(self, obj: OrderItem):
        if not obj.override_locked:
            return None
        return {
            "locked": True,
            "status": obj.override_status,
            "reason": obj.override_reason,
            "set_by": obj.override_set_by,
            "set_at": obj.override_set_at,
        }

    def get_supplier_order(self, obj: OrderItem):
        if obj.ordered_from_supplier_at is None:
            return None
        return {
            "order_number": obj.supplier_order_number,
            "tracking_number": obj.supplier_tracking_number,
            "actual_cost": (
                str(obj.actual_cost) if obj.actual_cost is not None else None
            ),
            "ordered_at": obj.ordered_from_supplier_at,
        }

    def get_israel_tracking(self, obj: OrderItem):
        if not obj.israel_tracking_number:
            return None
        return {
            "tracking_number": obj.israel_tracking_number,
            "carrier": obj.israel_carrier,
            "estimated_arrival": obj.israel_estimated_arrival,
        }

    def get_customer_tracking(self, obj: OrderItem):
        if not obj.customer_tracking_number:
            return None
        return {
            "tracking_number": obj.customer_tracking_number,
            "carrier": obj.customer_carrier,
            "estimated_delivery": obj.customer_estimated_delivery,
        }

    def get_allowed_next(self, obj: OrderItem) -> list:
        return list(allowed_next(obj.status))

    def get_next_recommended(self, obj: OrderItem):
        return next_recommended(obj.status)


class OrderItemDetailSerializer(OrderItemSerializer):
    status_history = ItemStatusHistorySerializer(many=True, read_only=True)

    class Meta(OrderItemSerializer.Meta):
        fields = OrderItemSerializer.Meta.fields + ["status_history"]
        read_only_fields = fields


class OrderTimelineEntrySerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderTimelineEntry
        fields = ["id", "message", "actor", "created_at"]
        read_only_fields = fields


_ORDER_LIST_FIELDS = [
    "id",
    "order_number",
    "customer_reference",
    "status",
    "status_label",
    "legacy_status",
    "payment_status",
    "total_amount",
    "completion_percentage",
    "needs_attention",
    "all_items_delivered",
    "has_active_items",
    "urgency_level",
    "status_override",
    "created_at",
]


class OrderListSerializer(serializers.ModelSerializer):
    """Dashboard row.

    The derived fields come from the ``evaluations`` context (a fresh
    ``OrderEvaluationDTO`` per order); the cached columns are only a fallback
    when no evaluation was passed.
    """

    status = serializers.SerializerMethodField()
    status_label = serializers.SerializerMethodField()
    completion_percentage = serializers.SerializerMethodField()
    needs_attention = serializers.SerializerMethodField()
    all_items_delivered = serializers.SerializerMethodField()
    has_active_items = serializers.SerializerMethodField()
    urgency_level = serializers.SerializerMethodField()
    status_override = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = _ORDER_LIST_FIELDS
        read_only_fields = fields

    def _evaluation(self, obj: Order):
        return self.context.get("evaluations", {}).get(obj.id)

    def _summary_value(self, obj: Order, field: str):
        evaluation = self._evaluation(obj)
        if evaluation is None:
            return getattr(obj, field)
        return getattr(evaluation.summary, field)

    def get_status(self, obj: Order) -> str:
        return self._summary_value(obj, "status")

    def get_status_label(self, obj: Order) -> str:
        return display_label(obj.legacy_status or self.get_status(obj))

    def get_completion_percentage(self, obj: Order) -> int:
        return self._summary_value(obj, "completion_percentage")

    def get_needs_attention(self, obj: Order) -> bool:
        return self._summary_value(obj, "needs_attention")

    def get_all_items_delivered(self, obj: Order) -> bool:
        return self._summary_value(obj, "all_items_delivered")

    def get_has_active_items(self, obj: Order) -> bool:
        return self._summary_value(obj, "has_active_items")

    def get_urgency_level(self, obj: Order):
        evaluation = self._evaluation(obj)
        return evaluation.urgency_level if evaluation else None

    def get_status_override(self, obj: Order):
        if not obj.status_override:
            return None
        return {
            "status": obj.status_override,
            "reason": obj.status_override_reason,
            "set_by": obj.status_override_by,
            "set_at": obj.status_override_at,
        }


class OrderSerializer(OrderListSerializer):
    """Full order with items, their history, the timeline and the evaluation."""

    items = OrderItemDetailSerializer(many=True, read_only=True)
    timeline = OrderTimelineEntrySerializer(many=True, read_only=True)
    evaluation = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = _ORDER_LIST_FIELDS + [
            "subtotal",
            "shipping_cost",
            "notes",
            "cancelled_at",
            "cancellation_reason",
            "updated_at",
            "items",
            "timeline",
            "evaluation",
        ]
        read_only_fields = fields

    def get_evaluation(self, obj: Order):
        evaluation = self._evaluation(obj)
        return evaluation.model_dump(mode="json") if evaluation else None


class FulfillmentSettingsSerializer(serializers.ModelSerializer):
    class Meta:
        model = FulfillmentSettings
        fields = [
            "minimum_order_amount",
            "minimum_item_count",
            "staleness_days",
            "critical_staleness_days",
            "updated_at",
        ]
        read_only_fields = ["updated_at"]
