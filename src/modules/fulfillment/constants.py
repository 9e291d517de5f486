"""Fulfillment status taxonomy.

Item statuses follow the import supply chain: supplier -> transit ->
Israel warehouse -> customer.  ``ITEM_TRANSITIONS`` is the only transition
graph; order-level status is derived from item states (see ``aggregation``)
and has no transition table of its own.

Legacy statuses are kept in a separate, read-only label map so historical
records still render.  Nothing in the live workflow produces them.
"""

from __future__ import annotations

from datetime import timedelta
from types import MappingProxyType
from typing import Mapping, Optional

from django.db import models


class ItemStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    ORDERED = "ordered", "Ordered from supplier"
    IN_TRANSIT = "in_transit", "In transit"
    ARRIVED_ISRAEL = "arrived_israel", "Arrived in Israel"
    SHIPPED_TO_CUSTOMER = "shipped_to_customer", "Shipped to customer"
    DELIVERED = "delivered", "Delivered"
    CANCELLED = "cancelled", "Cancelled"


class OrderStatus(models.TextChoices):
    AWAITING_PAYMENT = "awaiting_payment", "Awaiting payment"
    PENDING = "pending", "Pending"
    IN_PROGRESS = "in_progress", "In progress"
    READY_TO_SHIP = "ready_to_ship", "Ready to ship"
    SHIPPED = "shipped", "Shipped"
    DELIVERED = "delivered", "Delivered"
    CANCELLED = "cancelled", "Cancelled"


class PaymentStatus(models.TextChoices):
    PENDING = "pending", "Awaiting payment"
    HOLD = "hold", "Credit hold"
    READY_TO_CHARGE = "ready_to_charge", "Ready to charge"
    CHARGED = "charged", "Charged"
    CANCELLED = "cancelled", "Cancelled"
    FAILED = "failed", "Failed"
    PARTIAL_REFUND = "partial_refund", "Partial refund"
    FULL_REFUND = "full_refund", "Full refund"


class UrgencyLevel(models.TextChoices):
    CRITICAL = "critical", "Critical"
    HIGH = "high", "High"
    MEDIUM = "medium", "Medium"
    LOW = "low", "Low"


# Tuples keep the listed order: the first entry is the recommended next step.
ITEM_TRANSITIONS: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        ItemStatus.PENDING: (ItemStatus.ORDERED,),
        ItemStatus.ORDERED: (ItemStatus.IN_TRANSIT,),
        ItemStatus.IN_TRANSIT: (ItemStatus.ARRIVED_ISRAEL,),
        ItemStatus.ARRIVED_ISRAEL: (
            ItemStatus.SHIPPED_TO_CUSTOMER,
            ItemStatus.DELIVERED,
        ),
        ItemStatus.SHIPPED_TO_CUSTOMER: (ItemStatus.DELIVERED,),
        ItemStatus.DELIVERED: (),
        ItemStatus.CANCELLED: (),
    }
)

TERMINAL_ITEM_STATES: frozenset[str] = frozenset(
    {ItemStatus.DELIVERED, ItemStatus.CANCELLED}
)

# Statuses offered in the operator status selector.  ``pending`` only exists
# at creation and ``cancelled`` only through the cancellation flow.
OPERATOR_SELECTABLE_STATUSES: tuple[str, ...] = tuple(
    status
    for status in ItemStatus.values
    if status not in (ItemStatus.PENDING, ItemStatus.CANCELLED)
)

# Waiting on the supplier or the carrier; staleness is measured here only.
STALLABLE_ITEM_STATES: frozenset[str] = frozenset(
    {ItemStatus.ORDERED, ItemStatus.IN_TRANSIT}
)

# Item states at or past the Israel warehouse.
LANDED_ITEM_STATES: frozenset[str] = frozenset(
    {
        ItemStatus.ARRIVED_ISRAEL,
        ItemStatus.SHIPPED_TO_CUSTOMER,
        ItemStatus.DELIVERED,
    }
)

OUTBOUND_ITEM_STATES: frozenset[str] = frozenset(
    {ItemStatus.SHIPPED_TO_CUSTOMER, ItemStatus.DELIVERED}
)

# Order-level manual override targets.  Cancelling goes through the order
# cancellation flow so the items are cancelled with it.
ORDER_OVERRIDE_STATUSES: tuple[str, ...] = tuple(
    status for status in OrderStatus.values if status != OrderStatus.CANCELLED
)


class TrackingLeg(models.TextChoices):
    ISRAEL = "israel", "Shipment to Israel"
    CUSTOMER = "customer", "Delivery to customer"


# (status the tracking number is normally entered at, status it moves to).
# Entering it on an item already at the second status only records it.
TRACKING_STAGES: Mapping[str, tuple[str, str]] = MappingProxyType(
    {
        TrackingLeg.ISRAEL: (ItemStatus.ORDERED, ItemStatus.IN_TRANSIT),
        TrackingLeg.CUSTOMER: (
            ItemStatus.ARRIVED_ISRAEL,
            ItemStatus.SHIPPED_TO_CUSTOMER,
        ),
    }
)

OTHER_CARRIER = "other"

CARRIERS_BY_LEG: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        TrackingLeg.ISRAEL: ("regular", OTHER_CARRIER),
        TrackingLeg.CUSTOMER: (
            "israel_post",
            "cheetah",
            "ups",
            "fedex",
            "baldar",
            OTHER_CARRIER,
        ),
    }
)


class LegacyStatus(models.TextChoices):
    PAYMENT_HOLD = "payment_hold", "Payment hold"
    ORDERED_FROM_SUPPLIER = "ordered_from_supplier", "Ordered from supplier"
    ARRIVED_US_WAREHOUSE = "arrived_us_warehouse", "Arrived at US warehouse"
    SHIPPED_TO_ISRAEL = "shipped_to_israel", "Shipped to Israel"
    CUSTOMS_ISRAEL = "customs_israel", "In Israeli customs"
    ARRIVED_ISRAEL_WAREHOUSE = "arrived_israel_warehouse", "Arrived at Israel warehouse"
    READY_FOR_DELIVERY = "ready_for_delivery", "Ready for delivery"
    PROCESSING = "processing", "Processing"


LEGACY_STATUS_LABELS: Mapping[str, str] = MappingProxyType(
    {status.value: status.label for status in LegacyStatus}
)

STATUS_LABELS: Mapping[str, str] = MappingProxyType(
    {
        **{status.value: status.label for status in ItemStatus},
        **{status.value: status.label for status in OrderStatus},
    }
)

PAYMENT_STATUS_LABELS: Mapping[str, str] = MappingProxyType(
    {status.value: status.label for status in PaymentStatus}
)

SYSTEM_ACTOR = "system"
NOTE_MAX_LENGTH = 500
DEFAULT_STALENESS_THRESHOLD = timedelta(days=14)


def allowed_next(current: str) -> tuple[str, ...]:
    """Statuses reachable from *current* in one step (empty for unknown)."""
    return ITEM_TRANSITIONS.get(current, ())


def is_valid_transition(current: str, requested: str) -> bool:
    return requested in allowed_next(current)


def next_recommended(current: str) -> Optional[str]:
    """First listed target of *current*; a UI default, never enforced."""
    options = allowed_next(current)
    return options[0] if options else None


def display_label(status: str) -> str:
    """Human label for live or legacy statuses; unknown values pass through."""
    if status in STATUS_LABELS:
        return STATUS_LABELS[status]
    return LEGACY_STATUS_LABELS.get(status, status)
