"""Unit tests for the order aggregator."""

from __future__ import annotations

from datetime import timedelta

import pytest

from modules.fulfillment.aggregation import (
    active_items,
    all_items_delivered,
    completion_percentage,
    derive_order_status,
    effective_order_status,
    has_active_items,
    is_stale,
    needs_attention,
    summarize,
)
from modules.fulfillment.constants import ItemStatus, OrderStatus

pytestmark = pytest.mark.unit

S = ItemStatus


class TestActiveItems:
    def test_cancelled_items_are_excluded(self, make_item, make_order):
        keep = make_item(status=S.ORDERED)
        order = make_order(keep, make_item(cancelled=True))
        assert active_items(order) == [keep]
        assert has_active_items(order) is True

    def test_all_cancelled(self, make_item, make_order):
        order = make_order(make_item(cancelled=True))
        assert has_active_items(order) is False


class TestCompletionPercentage:
    def test_zero_active_items_is_complete(self, make_item, make_order):
        assert completion_percentage(make_order()) == 100
        assert completion_percentage(make_order(make_item(cancelled=True))) == 100

    def test_counts_only_active_items(self, make_item, make_order):
        order = make_order(
            make_item(status=S.DELIVERED),
            make_item(status=S.ORDERED),
            make_item(cancelled=True),
        )
        assert completion_percentage(order) == 50

    def test_rounds_half_up(self, make_item, make_order):
        # 1/8 = 12.5%
        items = [make_item(status=S.DELIVERED)] + [make_item() for _ in range(7)]
        assert completion_percentage(make_order(*items)) == 13

    def test_thirds(self, make_item, make_order):
        order = make_order(
            make_item(status=S.DELIVERED),
            make_item(status=S.DELIVERED),
            make_item(status=S.IN_TRANSIT),
        )
        assert completion_percentage(order) == 67


class TestAllItemsDelivered:
    def test_true_when_every_active_item_delivered(self, make_item, make_order):
        order = make_order(
            make_item(status=S.DELIVERED), make_item(status=S.DELIVERED)
        )
        assert all_items_delivered(order) is True

    def test_cancelled_items_do_not_count(self, make_item, make_order):
        order = make_order(make_item(status=S.DELIVERED), make_item(cancelled=True))
        assert all_items_delivered(order) is True

    def test_false_with_an_undelivered_item(self, make_item, make_order):
        order = make_order(
            make_item(status=S.DELIVERED), make_item(status=S.SHIPPED_TO_CUSTOMER)
        )
        assert all_items_delivered(order) is False


class TestStaleness:
    @pytest.mark.parametrize("status", [S.ORDERED, S.IN_TRANSIT])
    def test_waiting_states_go_stale(self, make_item, now, status):
        item = make_item(status=status, days_in_status=15)
        assert is_stale(item, timedelta(days=14), now) is True

    @pytest.mark.parametrize(
        "status", [S.PENDING, S.ARRIVED_ISRAEL, S.SHIPPED_TO_CUSTOMER, S.DELIVERED]
    )
    def test_other_states_never_stale(self, make_item, now, status):
        item = make_item(status=status, days_in_status=90)
        assert is_stale(item, timedelta(days=14), now) is False

    def test_exactly_at_threshold_is_not_stale(self, make_item, now):
        item = make_item(status=S.ORDERED, days_in_status=14)
        assert is_stale(item, timedelta(days=14), now) is False


class TestNeedsAttention:
    def test_stale_item(self, make_item, make_order, policy, now):
        order = make_order(
            make_item(status=S.ORDERED, days_in_status=20),
            make_item(status=S.ORDERED),
        )
        assert needs_attention(order, policy, now) is True

    def test_below_minimum_count(self, make_item, make_order, policy, now):
        order = make_order(make_item(status=S.ORDERED), make_item(cancelled=True))
        assert needs_attention(order, policy, now) is True

    def test_no_active_items_does_not_need_attention(
        self, make_item, make_order, policy, now
    ):
        order = make_order(make_item(cancelled=True), make_item(cancelled=True))
        assert needs_attention(order, policy, now) is False

    def test_healthy_order(self, make_item, make_order, policy, now):
        order = make_order(make_item(status=S.ORDERED), make_item(status=S.IN_TRANSIT))
        assert needs_attention(order, policy, now) is False

    def test_stale_cancelled_item_ignored(self, make_item, make_order, policy, now):
        stale_cancelled = make_item(
            status=S.ORDERED, days_in_status=30
        ).model_copy(update={"cancelled": True})
        order = make_order(stale_cancelled, make_item(), make_item())
        assert needs_attention(order, policy, now) is False


class TestDeriveOrderStatus:
    @pytest.mark.parametrize(
        "statuses, expected",
        [
            ([S.PENDING, S.PENDING], OrderStatus.PENDING),
            ([S.PENDING, S.ORDERED], OrderStatus.IN_PROGRESS),
            ([S.ARRIVED_ISRAEL, S.IN_TRANSIT], OrderStatus.IN_PROGRESS),
            ([S.ARRIVED_ISRAEL, S.DELIVERED], OrderStatus.READY_TO_SHIP),
            ([S.SHIPPED_TO_CUSTOMER, S.ARRIVED_ISRAEL], OrderStatus.READY_TO_SHIP),
            ([S.SHIPPED_TO_CUSTOMER, S.DELIVERED], OrderStatus.SHIPPED),
            ([S.DELIVERED, S.DELIVERED], OrderStatus.DELIVERED),
        ],
    )
    def test_from_active_items(self, make_item, make_order, statuses, expected):
        order = make_order(*(make_item(status=status) for status in statuses))
        assert derive_order_status(order) == expected

    def test_cancelled_items_ignored(self, make_item, make_order):
        order = make_order(make_item(status=S.DELIVERED), make_item(cancelled=True))
        assert derive_order_status(order) == OrderStatus.DELIVERED

    def test_every_item_cancelled(self, make_item, make_order):
        order = make_order(make_item(cancelled=True), make_item(cancelled=True))
        assert derive_order_status(order) == OrderStatus.CANCELLED

    def test_explicit_cancellation_wins(self, make_item, make_order):
        order = make_order(make_item(status=S.ORDERED), is_cancelled=True)
        assert derive_order_status(order) == OrderStatus.CANCELLED


class TestEffectiveOrderStatus:
    def test_without_override_is_derived(self, make_item, make_order):
        order = make_order(make_item(status=S.ORDERED), make_item())
        assert effective_order_status(order) == OrderStatus.IN_PROGRESS

    def test_override_replaces_derived_status(self, make_item, make_order):
        order = make_order(
            make_item(status=S.DELIVERED), status_override=OrderStatus.AWAITING_PAYMENT
        )
        assert effective_order_status(order) == OrderStatus.AWAITING_PAYMENT

    def test_cancellation_beats_override(self, make_item, make_order):
        order = make_order(
            make_item(), is_cancelled=True, status_override=OrderStatus.SHIPPED
        )
        assert effective_order_status(order) == OrderStatus.CANCELLED

    def test_summary_uses_override(self, make_item, make_order, policy, now):
        order = make_order(
            make_item(), make_item(), status_override=OrderStatus.READY_TO_SHIP
        )
        summary = summarize(order, policy, now)
        assert summary.status == OrderStatus.READY_TO_SHIP
        assert summary.completion_percentage == 0


class TestSummarize:
    def test_is_idempotent(self, make_item, make_order, policy, now):
        order = make_order(
            make_item(status=S.DELIVERED),
            make_item(status=S.ORDERED, days_in_status=30),
            make_item(cancelled=True),
        )
        first = summarize(order, policy, now)
        second = summarize(order, policy, now)
        assert first == second

    def test_bundles_all_fields(self, make_item, make_order, policy, now):
        order = make_order(make_item(status=S.DELIVERED), make_item(status=S.DELIVERED))
        summary = summarize(order, policy, now)
        assert summary.status == OrderStatus.DELIVERED
        assert summary.completion_percentage == 100
        assert summary.all_items_delivered is True
        assert summary.has_active_items is True
        assert summary.needs_attention is False
        assert summary.active_item_count == 2
