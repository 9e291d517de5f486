"""Order aggregator: order-level fields derived from item states.

Every function here is pure and works on an ``OrderSnapshot``; calling them
twice on the same snapshot gives the same answer.  ``summarize`` is the single
canonical derivation, used both to refresh the cached columns on ``Order``
and to annotate dashboard reads.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import List

from modules.fulfillment.constants import (
    LANDED_ITEM_STATES,
    OUTBOUND_ITEM_STATES,
    STALLABLE_ITEM_STATES,
    ItemStatus,
    OrderStatus,
)
from modules.fulfillment.dtos import ItemSnapshot, OrderSnapshot, OrderSummaryDTO
from modules.fulfillment.policy import FulfillmentPolicy


def active_items(order: OrderSnapshot) -> List[ItemSnapshot]:
    return [item for item in order.items if not item.cancelled]


def has_active_items(order: OrderSnapshot) -> bool:
    return bool(active_items(order))


def completion_percentage(order: OrderSnapshot) -> int:
    """Share of active items delivered, 0-100, halves rounded up.

    No active items means nothing is left to do: 100.
    """
    items = active_items(order)
    if not items:
        return 100
    delivered = sum(1 for item in items if item.status == ItemStatus.DELIVERED)
    ratio = Decimal(100 * delivered) / Decimal(len(items))
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def all_items_delivered(order: OrderSnapshot) -> bool:
    return all(item.status == ItemStatus.DELIVERED for item in active_items(order))


def time_in_status(item: ItemSnapshot, now: datetime) -> timedelta:
    return now - item.status_changed_at


def is_stale(item: ItemSnapshot, threshold: timedelta, now: datetime) -> bool:
    """Waiting on supplier or carrier for longer than *threshold*."""
    if item.cancelled or item.status not in STALLABLE_ITEM_STATES:
        return False
    return time_in_status(item, now) > threshold


def below_minimum_count(order: OrderSnapshot, policy: FulfillmentPolicy) -> bool:
    count = len(active_items(order))
    return 0 < count < policy.minimum_item_count


def needs_attention(
    order: OrderSnapshot, policy: FulfillmentPolicy, now: datetime
) -> bool:
    if any(is_stale(item, policy.staleness_threshold, now) for item in active_items(order)):
        return True
    return below_minimum_count(order, policy)


def derive_order_status(order: OrderSnapshot) -> str:
    """Display status of the order.

    Explicit whole-order cancellation, or every item cancelled, wins.  The
    rest is read from the least advanced active item.
    """
    items = active_items(order)
    if order.is_cancelled or not items:
        return OrderStatus.CANCELLED
    statuses = {item.status for item in items}
    if statuses == {ItemStatus.DELIVERED}:
        return OrderStatus.DELIVERED
    if statuses <= OUTBOUND_ITEM_STATES:
        return OrderStatus.SHIPPED
    if statuses <= LANDED_ITEM_STATES:
        return OrderStatus.READY_TO_SHIP
    if statuses == {ItemStatus.PENDING}:
        return OrderStatus.PENDING
    return OrderStatus.IN_PROGRESS


def effective_order_status(order: OrderSnapshot) -> str:
    """``derive_order_status`` unless an operator pinned the order status.

    An explicit whole-order cancellation still wins over the override.
    """
    if order.status_override and not order.is_cancelled:
        return order.status_override
    return derive_order_status(order)


def summarize(
    order: OrderSnapshot, policy: FulfillmentPolicy, now: datetime
) -> OrderSummaryDTO:
    return OrderSummaryDTO(
        status=effective_order_status(order),
        completion_percentage=completion_percentage(order),
        needs_attention=needs_attention(order, policy, now),
        all_items_delivered=all_items_delivered(order),
        has_active_items=has_active_items(order),
        active_item_count=len(active_items(order)),
    )
