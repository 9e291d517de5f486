"""Integration tests for the stale-item health refresh."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import patch
from uuid import uuid4

import pytest

from modules.fulfillment.constants import ItemStatus, OrderStatus
from modules.fulfillment.dtos import CancelOrderDTO, TransitionItemDTO
from modules.fulfillment.exceptions import OrderNotFound
from modules.fulfillment.models import OrderItem
from modules.fulfillment.repositories.django_repository import OrderDjangoRepository

pytestmark = pytest.mark.integration


@pytest.fixture()
def ordered_item(place_order, advance):
    order = place_order()
    item = advance(order.items.first().id, ItemStatus.ORDERED)
    return order, item


def test_stale_item_is_flagged(service, ordered_item, age_item):
    order, item = ordered_item
    age_item(item.id, 20)

    refreshed = service.refresh_order_health(order.id)

    item.refresh_from_db()
    assert item.stuck_flagged_at is not None
    assert refreshed.needs_attention is True


def test_pending_items_never_go_stale(service, place_order, age_item):
    order = place_order()
    for item in order.items.all():
        age_item(item.id, 60)

    refreshed = service.refresh_order_health(order.id)

    assert not OrderItem.objects.filter(stuck_flagged_at__isnull=False).exists()
    assert refreshed.needs_attention is False


def test_threshold_is_strict(service, ordered_item):
    """An item exactly at the threshold is not yet stale."""
    order, item = ordered_item
    changed_at = item.status_changed_at
    service._clock = lambda: changed_at + timedelta(days=14)

    service.refresh_order_health(order.id)

    item.refresh_from_db()
    assert item.stuck_flagged_at is None


def test_transition_clears_flag(service, ordered_item, age_item):
    order, item = ordered_item
    age_item(item.id, 30)
    service.refresh_order_health(order.id)

    service.transition_item(
        TransitionItemDTO(item_id=item.id, new_status=ItemStatus.IN_TRANSIT)
    )

    item.refresh_from_db()
    assert item.stuck_flagged_at is None


def test_flagging_keeps_the_item_version(service, ordered_item, age_item):
    order, item = ordered_item
    age_item(item.id, 30)
    version = item.version

    service.refresh_order_health(order.id)

    item.refresh_from_db()
    assert item.stuck_flagged_at is not None
    assert item.version == version

    moved = service.transition_item(
        TransitionItemDTO(
            item_id=item.id,
            new_status=ItemStatus.IN_TRANSIT,
            expected_version=version,
        )
    )
    assert moved.version == version + 1
    assert moved.stuck_flagged_at is None


def test_flag_is_written_once(service, ordered_item, age_item):
    order, item = ordered_item
    age_item(item.id, 30)
    service.refresh_order_health(order.id)
    item.refresh_from_db()
    first_flag = item.stuck_flagged_at

    service._clock = lambda: first_flag + timedelta(days=1)
    service.refresh_order_health(order.id)

    item.refresh_from_db()
    assert item.stuck_flagged_at == first_flag


def test_lost_race_is_skipped(service, ordered_item, age_item):
    order, item = ordered_item
    age_item(item.id, 30)

    with patch.object(
        OrderDjangoRepository, "flag_stuck_item", return_value=False
    ):
        service.refresh_order_health(order.id)

    item.refresh_from_db()
    assert item.stuck_flagged_at is None


def test_missing_order(service):
    with pytest.raises(OrderNotFound):
        service.refresh_order_health(uuid4())


def test_open_order_ids_skip_closed_orders(service, place_order, advance):
    open_order = place_order()
    delivered = place_order(items=[{"name": "Lens", "unit_price": "450.00"}])
    advance(delivered.items.first().id, ItemStatus.DELIVERED)
    cancelled = place_order()
    service.cancel_order(
        CancelOrderDTO(order_id=cancelled.id, reason="customer request", actor="1")
    )

    assert service.list_open_order_ids() == [open_order.id]
    delivered.refresh_from_db()
    assert delivered.status == OrderStatus.DELIVERED
