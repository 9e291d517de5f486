"""Django ORM implementation of the Order repository.

Item writes are optimistic: ``compare_and_swap_item`` issues a single
``UPDATE ... WHERE id = %s AND version = %s`` and bumps ``version``, so two
writers racing on the same snapshot cannot both succeed.  Order rows are
locked with ``select_for_update()`` while the derived fields are recomputed.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import F, Prefetch
from django.utils import timezone

from modules.core.models import OutboxEvent
from modules.fulfillment.constants import ItemStatus
from modules.fulfillment.models import (
    ItemStatusHistory,
    Order,
    OrderItem,
    OrderTimelineEntry,
)
from modules.fulfillment.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)

_HISTORY_PREFETCH = Prefetch(
    "items__status_history",
    queryset=ItemStatusHistory.objects.order_by("-created_at", "-id"),
)


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Create (aggregate root + children)
    # ------------------------------------------------------------------

    @transaction.atomic
    def create(self, data: Dict[str, Any]) -> Order:
        order = Order(
            customer_reference=data.get("customer_reference", ""),
            shipping_cost=data.get("shipping_cost", Decimal("0.00")),
            payment_status=data["payment_status"],
            idempotency_key=data.get("idempotency_key"),
            notes=data.get("notes", ""),
        )
        order.save()

        subtotal = Decimal("0.00")
        items = data.get("items", [])
        for item_data in items:
            item = OrderItem(
                order=order,
                name=item_data["name"],
                supplier=item_data.get("supplier", ""),
                quantity=item_data["quantity"],
                unit_price=item_data["unit_price"],
            )
            item.save()
            subtotal += item.subtotal
            self.add_item_history(
                item_id=item.id,
                old_status=None,
                new_status=ItemStatus.PENDING,
                actor=data["actor"],
                notes="Item created",
            )

        order.subtotal = subtotal
        order.total_amount = subtotal + order.shipping_cost
        order.save(update_fields=["subtotal", "total_amount"])

        log = logger.bind(order_id=str(order.id), item_count=len(items))
        log.info("order.created")
        return order

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: str) -> Optional[Order]:
        """Retrieve an order with eager-loaded items, history and timeline.

        Returns ``None`` for non-existent or invalid IDs.
        """
        try:
            return (
                Order.objects.prefetch_related("items", _HISTORY_PREFETCH, "timeline")
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def get_for_update(self, id: str) -> Optional[Order]:
        """Lock the order row, then load every item in one query.

        The items are read after the lock is held, so concurrent recomputes
        of the same order see each other's committed item writes.
        """
        try:
            return (
                Order.objects.select_for_update()
                .prefetch_related("items")
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        return (
            Order.objects.prefetch_related("items", _HISTORY_PREFETCH, "timeline")
            .filter(idempotency_key=key)
            .first()
        )

    def list(self, filters: Optional[Dict[str, Any]] = None):
        """Queryset of orders with items prefetched.

        Supported filter keys are any ``Order`` lookups, e.g. ``status``,
        ``needs_attention`` or ``created_at__range``.
        """
        queryset = Order.objects.prefetch_related("items")
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def get_item(self, item_id: UUID) -> Optional[OrderItem]:
        try:
            return OrderItem.objects.filter(id=item_id).first()
        except (ValueError, ValidationError):
            return None

    def get_item_history(self, item_id: UUID) -> List[ItemStatusHistory]:
        return list(
            ItemStatusHistory.objects.filter(item_id=item_id).order_by(
                "-created_at", "-id"
            )
        )

    def find_item_ids(
        self, status: str, supplier: Optional[str] = None
    ) -> List[UUID]:
        queryset = OrderItem.objects.filter(status=status, cancelled=False)
        if supplier:
            queryset = queryset.filter(supplier=supplier)
        return list(queryset.order_by("created_at", "id").values_list("id", flat=True))

    def list_open_order_ids(self) -> List[UUID]:
        return list(
            Order.objects.filter(cancelled_at__isnull=True, has_active_items=True)
            .exclude(all_items_delivered=True)
            .order_by("created_at")
            .values_list("id", flat=True)
        )

    # ------------------------------------------------------------------
    # Item writes
    # ------------------------------------------------------------------

    def compare_and_swap_item(
        self, item_id: UUID, expected_version: int, changes: Dict[str, Any]
    ) -> bool:
        updated = OrderItem.objects.filter(
            id=item_id, version=expected_version
        ).update(
            **changes,
            version=F("version") + 1,
            updated_at=timezone.now(),
        )
        if not updated:
            logger.warning(
                "item.version_conflict",
                item_id=str(item_id),
                expected_version=expected_version,
            )
        return updated == 1

    def flag_stuck_item(
        self, item_id: UUID, expected_version: int, flagged_at: datetime
    ) -> bool:
        """Set ``stuck_flagged_at`` without bumping ``version``.

        The flag is bookkeeping, not an operator-visible change, so versions
        clients already hold stay valid.  Still conditional on
        *expected_version* so a concurrent transition (which clears the flag)
        is never overwritten.
        """
        updated = OrderItem.objects.filter(
            id=item_id, version=expected_version, stuck_flagged_at__isnull=True
        ).update(stuck_flagged_at=flagged_at)
        return updated == 1

    def add_item_history(
        self,
        item_id: UUID,
        old_status: Optional[str],
        new_status: str,
        actor: str,
        notes: str = "",
        is_manual_override: bool = False,
    ) -> ItemStatusHistory:
        history = ItemStatusHistory(
            item_id=item_id,
            old_status=old_status,
            new_status=new_status,
            actor=actor,
            notes=notes,
            is_manual_override=is_manual_override,
        )
        history.full_clean(exclude=["item"])
        history.save()
        logger.info(
            "item.history_added",
            item_id=str(item_id),
            old_status=old_status,
            new_status=new_status,
            is_manual_override=is_manual_override,
        )
        return history

    def add_timeline(
        self, order_id: UUID, message: str, actor: str
    ) -> OrderTimelineEntry:
        return OrderTimelineEntry.objects.create(
            order_id=order_id, message=message, actor=actor
        )

    # ------------------------------------------------------------------
    # Save (IRepository contract)
    # ------------------------------------------------------------------

    @transaction.atomic
    def save(self, entity: Order) -> Order:
        """Persist the order and write its pending domain events to the outbox."""
        entity.save()

        events = entity.domain_events
        for event in events:
            OutboxEvent.objects.create(
                event_type=event.event_name,
                aggregate_id=str(event.aggregate_id),
                payload=_serialize_event_payload(event),
                topic=event.topic,
            )
        entity.clear_domain_events()

        logger.info("order.saved", order_id=str(entity.id), event_count=len(events))
        return entity


def _serialize_event_payload(event: Any) -> Dict[str, Any]:
    data = asdict(event)
    normalized = _normalize_for_json(data)
    return json.loads(json.dumps(normalized))


def _normalize_for_json(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [_normalize_for_json(item) for item in value]
    if isinstance(value, dict):
        return {key: _normalize_for_json(val) for key, val in value.items()}
    return value
