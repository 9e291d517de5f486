"""Urgency scorer for operator triage.

The ladder is evaluated top-down and the first match wins:

1. ``critical``: an active item has waited in ``ordered`` / ``in_transit``
   longer than ``policy.critical_staleness``, or the order has between one
   and ``minimum_item_count - 1`` active items.
2. ``high``: the order needs attention, or it is ``pending`` (including the
   legacy ``payment_hold`` status on imported orders).
3. ``medium``: some active item is still ``ordered`` from the supplier.
4. ``low``: everything else, including orders with no active items.

Dashboards sort and colour by this value, so the ladder must not change
order.
"""

from __future__ import annotations

from datetime import datetime

from modules.fulfillment.aggregation import (
    active_items,
    below_minimum_count,
    derive_order_status,
    is_stale,
    needs_attention,
)
from modules.fulfillment.constants import (
    ItemStatus,
    LegacyStatus,
    OrderStatus,
    UrgencyLevel,
)
from modules.fulfillment.dtos import OrderSnapshot
from modules.fulfillment.policy import FulfillmentPolicy


def is_critical(order: OrderSnapshot, policy: FulfillmentPolicy, now: datetime) -> bool:
    items = active_items(order)
    if any(is_stale(item, policy.critical_staleness, now) for item in items):
        return True
    return below_minimum_count(order, policy)


def score_urgency(
    order: OrderSnapshot, policy: FulfillmentPolicy, now: datetime
) -> str:
    if is_critical(order, policy, now):
        return UrgencyLevel.CRITICAL
    if (
        needs_attention(order, policy, now)
        or derive_order_status(order) == OrderStatus.PENDING
        or order.legacy_status == LegacyStatus.PAYMENT_HOLD
    ):
        return UrgencyLevel.HIGH
    if any(item.status == ItemStatus.ORDERED for item in active_items(order)):
        return UrgencyLevel.MEDIUM
    return UrgencyLevel.LOW
