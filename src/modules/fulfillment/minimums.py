"""Minimum-order validator.

Checks whether the active (non-cancelled) part of an order still meets the
configured amount and item-count minimums.  It reports shortfalls and never
raises; an order that meets both minimums is the normal, silent case.
"""

from __future__ import annotations

from decimal import Decimal

from modules.fulfillment.aggregation import active_items
from modules.fulfillment.dtos import MinimumOrderReportDTO, OrderSnapshot
from modules.fulfillment.policy import FulfillmentPolicy


def active_total(order: OrderSnapshot) -> Decimal:
    return sum((item.line_total for item in active_items(order)), Decimal("0"))


def evaluate_minimum(
    order: OrderSnapshot, policy: FulfillmentPolicy
) -> MinimumOrderReportDTO:
    total = active_total(order)
    count = len(active_items(order))
    return MinimumOrderReportDTO(
        meets_amount=total >= policy.minimum_order_amount,
        meets_count=count >= policy.minimum_item_count,
        active_total=total,
        active_count=count,
        amount_deficit=max(Decimal("0"), policy.minimum_order_amount - total),
        count_deficit=max(0, policy.minimum_item_count - count),
    )
