"""Event handlers for fulfillment domain events."""

from __future__ import annotations

import structlog

from modules.fulfillment.events import (
    ItemCancelled,
    ItemOverrideSet,
    ItemStatusChanged,
    OrderCancelled,
    OrderStatusOverrideSet,
)
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class ItemStatusChangedHandler(IEventHandler[ItemStatusChanged]):
    def handle(self, event: ItemStatusChanged) -> None:
        logger.info(
            "item.event.status_changed",
            order_id=str(event.aggregate_id),
            item_id=str(event.item_id),
            old_status=event.old_status,
            new_status=event.new_status,
            actor=event.actor,
        )


class ItemOverrideSetHandler(IEventHandler[ItemOverrideSet]):
    def handle(self, event: ItemOverrideSet) -> None:
        logger.warning(
            "item.event.override_set",
            order_id=str(event.aggregate_id),
            item_id=str(event.item_id),
            new_status=event.new_status,
            reason=event.reason,
            actor=event.actor,
        )


class ItemCancelledHandler(IEventHandler[ItemCancelled]):
    """Re-checks the order minimums once a cancellation is committed."""

    def handle(self, event: ItemCancelled) -> None:
        from modules.fulfillment.dtos import OrderSnapshot
        from modules.fulfillment.minimums import evaluate_minimum
        from modules.fulfillment.models import Order
        from modules.fulfillment.policy import load_policy

        log = logger.bind(order_id=str(event.aggregate_id), item_id=str(event.item_id))
        order = Order.objects.prefetch_related("items").filter(id=event.aggregate_id).first()
        if order is None:
            log.warning("item.event.cancelled_order_missing")
            return

        if order.is_cancelled:
            log.info("item.event.cancelled", order_cancelled=True)
            return

        report = evaluate_minimum(OrderSnapshot.from_entity(order), load_policy())
        if report.meets_minimum:
            log.info("item.event.cancelled")
            return
        log.warning(
            "order.below_minimum",
            active_total=str(report.active_total),
            active_count=report.active_count,
            amount_deficit=str(report.amount_deficit),
            count_deficit=report.count_deficit,
        )


class OrderStatusOverrideSetHandler(IEventHandler[OrderStatusOverrideSet]):
    def handle(self, event: OrderStatusOverrideSet) -> None:
        logger.warning(
            "order.event.status_locked",
            order_id=str(event.aggregate_id),
            status=event.status,
            reason=event.reason,
            actor=event.actor,
        )


class OrderCancelledHandler(IEventHandler[OrderCancelled]):
    def handle(self, event: OrderCancelled) -> None:
        logger.info(
            "order.event.cancelled",
            order_id=str(event.aggregate_id),
            reason=event.reason,
            actor=event.actor,
        )


item_status_changed_handler = ItemStatusChangedHandler()
item_override_set_handler = ItemOverrideSetHandler()
item_cancelled_handler = ItemCancelledHandler()
order_cancelled_handler = OrderCancelledHandler()
order_status_override_set_handler = OrderStatusOverrideSetHandler()
