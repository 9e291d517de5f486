"""Order, OrderItem, item status history, order timeline and policy settings.

Rules carried by the schema:
- Items start in ``pending``; ``status`` only moves through the service layer.
- ``OrderItem.version`` is the optimistic-concurrency token.  Every item write
  is ``UPDATE ... WHERE id = %s AND version = %s`` and bumps it.
- ``ItemStatusHistory`` rows are append-only and never edited.
- ``Order.status`` and the other derived order columns are a cache of
  ``aggregation.summarize``; they are rewritten after every item mutation.
- ``unit_price`` is a snapshot taken when the order is placed.
"""

from __future__ import annotations

import secrets
from decimal import Decimal
from typing import Any

import structlog
from django.conf import settings
from django.core.validators import MaxLengthValidator, MinValueValidator
from django.db import models
from django.utils import timezone

from modules.core.models import BaseModel
from modules.fulfillment.constants import (
    NOTE_MAX_LENGTH,
    ItemStatus,
    OrderStatus,
    PaymentStatus,
)
from shared.domain.events import DomainEventMixin

logger = structlog.get_logger(__name__)

ORDER_NUMBER_MAX_RETRIES = 5


class Order(DomainEventMixin, BaseModel):
    """Order aggregate root.

    ``order_number`` is the human-readable identifier
    (``ORD-YYYYMMDD-XXXXXX``); the UUIDv7 ``id`` is used everywhere else.
    ``legacy_status`` is only populated for orders imported from the old
    storefront and is shown as-is.
    """

    order_number = models.CharField(max_length=20, unique=True, editable=False)
    customer_reference = models.CharField(max_length=255, blank=True, default="")
    status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
    )
    legacy_status = models.CharField(max_length=40, blank=True, default="")
    payment_status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    subtotal = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal("0.00")
    )
    shipping_cost = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal("0.00")
    )
    total_amount = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal("0.00")
    )

    # Derived cache, see aggregation.summarize
    completion_percentage = models.PositiveSmallIntegerField(default=0)
    needs_attention = models.BooleanField(default=False)
    all_items_delivered = models.BooleanField(default=False)
    has_active_items = models.BooleanField(default=True)

    # Operator-pinned order status; wins over the derived one until cleared
    status_override = models.CharField(
        max_length=20, choices=OrderStatus.choices, blank=True, default=""
    )
    status_override_reason = models.TextField(blank=True, default="")
    status_override_by = models.CharField(max_length=150, blank=True, default="")
    status_override_at = models.DateTimeField(null=True, blank=True, default=None)

    cancelled_at = models.DateTimeField(null=True, blank=True, default=None)
    cancellation_reason = models.TextField(blank=True, default="")
    notes = models.TextField(blank=True, default="")
    idempotency_key = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
    )

    class Meta:
        db_table = "fulfillment_orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="ff_orders_status_idx"),
            models.Index(fields=["-created_at"], name="ff_orders_created_idx"),
            models.Index(fields=["needs_attention"], name="ff_orders_attention_idx"),
        ]

    @property
    def is_cancelled(self) -> bool:
        return self.cancelled_at is not None

    @staticmethod
    def generate_order_number() -> str:
        now = timezone.now()
        suffix = secrets.token_hex(3).upper()
        return f"ORD-{now:%Y%m%d}-{suffix}"

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self.order_number:
            for attempt in range(ORDER_NUMBER_MAX_RETRIES):
                candidate = self.generate_order_number()
                if not Order.objects.filter(order_number=candidate).exists():
                    self.order_number = candidate
                    break
            else:
                raise RuntimeError(
                    f"Failed to generate unique order_number after "
                    f"{ORDER_NUMBER_MAX_RETRIES} attempts"
                )
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.order_number} ({self.status})"


class OrderItem(BaseModel):
    """One product line of an order with its own fulfillment status.

    The override lock is stored inline (``override_*`` columns) and the
    cancellation record likewise (``cancelled``, ``cancellation_reason``,
    ``cancelled_at``).  ``stuck_flagged_at`` is a transient marker set by the
    health job and cleared by any successful transition.
    """

    order = models.ForeignKey(
        "fulfillment.Order",
        on_delete=models.CASCADE,
        related_name="items",
    )
    name = models.CharField(max_length=255)
    supplier = models.CharField(max_length=120, blank=True, default="")
    quantity = models.PositiveIntegerField(
        default=1,
        validators=[MinValueValidator(1)],
    )
    unit_price = models.DecimalField(max_digits=10, decimal_places=2)
    subtotal = models.DecimalField(max_digits=10, decimal_places=2, editable=False)

    status = models.CharField(
        max_length=24,
        choices=ItemStatus.choices,
        default=ItemStatus.PENDING,
    )
    status_changed_at = models.DateTimeField(default=timezone.now)
    version = models.PositiveIntegerField(default=1)
    stuck_flagged_at = models.DateTimeField(null=True, blank=True, default=None)

    override_locked = models.BooleanField(default=False)
    override_status = models.CharField(max_length=24, blank=True, default="")
    override_reason = models.TextField(blank=True, default="")
    override_set_by = models.CharField(max_length=150, blank=True, default="")
    override_set_at = models.DateTimeField(null=True, blank=True, default=None)

    cancelled = models.BooleanField(default=False)
    cancellation_reason = models.TextField(blank=True, default="")
    cancelled_at = models.DateTimeField(null=True, blank=True, default=None)

    # Supplier purchase
    supplier_order_number = models.CharField(max_length=120, blank=True, default="")
    supplier_tracking_number = models.CharField(
        max_length=120, blank=True, default=""
    )
    actual_cost = models.DecimalField(
        max_digits=10, decimal_places=2, null=True, blank=True, default=None
    )
    ordered_from_supplier_at = models.DateTimeField(
        null=True, blank=True, default=None
    )

    # Shipping legs
    israel_tracking_number = models.CharField(max_length=120, blank=True, default="")
    israel_carrier = models.CharField(max_length=120, blank=True, default="")
    israel_estimated_arrival = models.DateField(null=True, blank=True, default=None)
    customer_tracking_number = models.CharField(
        max_length=120, blank=True, default=""
    )
    customer_carrier = models.CharField(max_length=120, blank=True, default="")
    customer_estimated_delivery = models.DateField(
        null=True, blank=True, default=None
    )

    class Meta:
        db_table = "fulfillment_order_items"
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(
                fields=["status", "supplier"], name="ff_items_status_supplier_idx"
            ),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1),
                name="ff_order_items_quantity_positive",
            ),
        ]

    @property
    def line_total(self) -> Decimal:
        return self.quantity * self.unit_price

    def save(self, *args: Any, **kwargs: Any) -> None:
        self.subtotal = self.line_total
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.name} x{self.quantity} [{self.status}]"


class ItemStatusHistory(BaseModel):
    """Append-only audit trail of item status changes.

    ``actor`` is ``"system"`` for automated jobs, otherwise the operator's
    user id.  ``old_status`` is ``None`` for the creation entry.
    """

    item = models.ForeignKey(
        "fulfillment.OrderItem",
        on_delete=models.CASCADE,
        related_name="status_history",
    )
    old_status = models.CharField(  # noqa: DJ01
        max_length=24,
        choices=ItemStatus.choices,
        null=True,
        blank=True,
    )
    new_status = models.CharField(max_length=24, choices=ItemStatus.choices)
    actor = models.CharField(max_length=150)
    notes = models.TextField(
        blank=True,
        default="",
        validators=[MaxLengthValidator(NOTE_MAX_LENGTH)],
    )
    is_manual_override = models.BooleanField(default=False)

    class Meta:
        db_table = "fulfillment_item_status_history"
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(
                fields=["item", "-created_at"],
                name="ff_ish_item_created_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.item_id} : {self.old_status} -> {self.new_status}"


class OrderTimelineEntry(BaseModel):
    """Free-text audit message on an order (operator-facing timeline)."""

    order = models.ForeignKey(
        "fulfillment.Order",
        on_delete=models.CASCADE,
        related_name="timeline",
    )
    message = models.TextField()
    actor = models.CharField(max_length=150)

    class Meta:
        db_table = "fulfillment_order_timeline"
        ordering = ["-created_at", "-id"]

    def __str__(self) -> str:
        return f"{self.order_id} [{self.actor}] {self.message[:40]}"


class FulfillmentSettings(BaseModel):
    """Runtime-tunable policy values (single row).

    Seeded from the ``FULFILLMENT_*`` Django settings the first time it is
    read; operators change it through the settings endpoint.
    """

    minimum_order_amount = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0"))],
    )
    minimum_item_count = models.PositiveIntegerField()
    staleness_days = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    critical_staleness_days = models.PositiveIntegerField(
        validators=[MinValueValidator(1)]
    )

    class Meta:
        db_table = "fulfillment_settings"

    @classmethod
    def load(cls) -> FulfillmentSettings:
        instance = cls.objects.order_by("created_at").first()
        if instance is None:
            instance = cls.objects.create(
                minimum_order_amount=settings.FULFILLMENT_MIN_ORDER_AMOUNT,
                minimum_item_count=settings.FULFILLMENT_MIN_ITEM_COUNT,
                staleness_days=settings.FULFILLMENT_STALENESS_DAYS,
                critical_staleness_days=settings.FULFILLMENT_CRITICAL_STALENESS_DAYS,
            )
            logger.info("fulfillment_settings.seeded", settings_id=str(instance.id))
        return instance

    def __str__(self) -> str:
        return (
            f"min {self.minimum_order_amount} / {self.minimum_item_count} items, "
            f"stale after {self.staleness_days}d"
        )
