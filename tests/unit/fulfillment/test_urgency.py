"""Unit tests for the urgency scorer ladder."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from modules.fulfillment.constants import ItemStatus, LegacyStatus, UrgencyLevel
from modules.fulfillment.policy import FulfillmentPolicy
from modules.fulfillment.urgency import is_critical, score_urgency

pytestmark = pytest.mark.unit

S = ItemStatus


class TestCritical:
    def test_item_ordered_for_twenty_days(self, make_item, make_order, policy, now):
        order = make_order(
            make_item(status=S.ORDERED, days_in_status=20),
            make_item(status=S.IN_TRANSIT),
            make_item(status=S.ARRIVED_ISRAEL),
        )
        assert score_urgency(order, policy, now) == UrgencyLevel.CRITICAL

    def test_single_active_item_below_minimum_count(
        self, make_item, make_order, policy, now
    ):
        order = make_order(make_item(status=S.DELIVERED), make_item(cancelled=True))
        assert score_urgency(order, policy, now) == UrgencyLevel.CRITICAL

    def test_critical_beats_every_other_predicate(
        self, make_item, make_order, policy, now
    ):
        order = make_order(
            make_item(status=S.IN_TRANSIT, days_in_status=30),
            make_item(status=S.ORDERED),
            legacy_status=LegacyStatus.PAYMENT_HOLD,
        )
        assert is_critical(order, policy, now) is True
        assert score_urgency(order, policy, now) == UrgencyLevel.CRITICAL

    def test_critical_threshold_is_separate_from_attention_threshold(
        self, make_item, make_order, now
    ):
        policy = FulfillmentPolicy(
            minimum_order_amount=Decimal("0"),
            minimum_item_count=1,
            staleness_threshold=timedelta(days=7),
            critical_staleness=timedelta(days=21),
        )
        order = make_order(make_item(status=S.ORDERED, days_in_status=10))
        assert is_critical(order, policy, now) is False
        assert score_urgency(order, policy, now) == UrgencyLevel.HIGH


class TestHigh:
    def test_pending_order(self, make_item, make_order, policy, now):
        order = make_order(make_item(), make_item())
        assert score_urgency(order, policy, now) == UrgencyLevel.HIGH

    def test_legacy_payment_hold(self, make_item, make_order, policy, now):
        order = make_order(
            make_item(status=S.ARRIVED_ISRAEL),
            make_item(status=S.ARRIVED_ISRAEL),
            legacy_status=LegacyStatus.PAYMENT_HOLD,
        )
        assert score_urgency(order, policy, now) == UrgencyLevel.HIGH


class TestMediumAndLow:
    def test_item_awaiting_supplier(self, make_item, make_order, policy, now):
        order = make_order(make_item(status=S.ORDERED), make_item(status=S.DELIVERED))
        assert score_urgency(order, policy, now) == UrgencyLevel.MEDIUM

    def test_all_delivered_is_low(self, make_item, make_order, policy, now):
        order = make_order(make_item(status=S.DELIVERED), make_item(status=S.DELIVERED))
        assert score_urgency(order, policy, now) == UrgencyLevel.LOW

    def test_in_transit_only_is_low(self, make_item, make_order, policy, now):
        order = make_order(
            make_item(status=S.IN_TRANSIT), make_item(status=S.ARRIVED_ISRAEL)
        )
        assert score_urgency(order, policy, now) == UrgencyLevel.LOW

    def test_no_active_items_is_low(self, make_item, make_order, policy, now):
        order = make_order(make_item(cancelled=True), make_item(cancelled=True))
        assert score_urgency(order, policy, now) == UrgencyLevel.LOW

    def test_cancelled_ordered_item_does_not_make_medium(
        self, make_item, make_order, policy, now
    ):
        cancelled_ordered = make_item(status=S.ORDERED).model_copy(
            update={"cancelled": True}
        )
        order = make_order(
            cancelled_ordered,
            make_item(status=S.DELIVERED),
            make_item(status=S.DELIVERED),
        )
        assert score_urgency(order, policy, now) == UrgencyLevel.LOW


@pytest.mark.parametrize("days", [15, 30, 90])
@pytest.mark.parametrize("legacy", ["", LegacyStatus.PAYMENT_HOLD])
def test_critical_is_never_downgraded(make_item, make_order, policy, now, days, legacy):
    order = make_order(
        make_item(status=S.IN_TRANSIT, days_in_status=days),
        make_item(),
        make_item(status=S.ORDERED),
        legacy_status=legacy,
    )
    assert score_urgency(order, policy, now) == UrgencyLevel.CRITICAL
