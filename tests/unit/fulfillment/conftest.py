from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from modules.fulfillment.constants import ItemStatus
from modules.fulfillment.dtos import ItemSnapshot, OrderSnapshot, OverrideLockDTO
from modules.fulfillment.policy import FulfillmentPolicy

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def now():
    return NOW


@pytest.fixture()
def policy():
    return FulfillmentPolicy(
        minimum_order_amount=Decimal("200"),
        minimum_item_count=2,
        staleness_threshold=timedelta(days=14),
        critical_staleness=timedelta(days=14),
    )


@pytest.fixture()
def make_item():
    """Factory for ``ItemSnapshot`` values anchored at ``NOW``."""

    def _make(
        status=ItemStatus.PENDING,
        days_in_status=0,
        unit_price="100.00",
        quantity=1,
        cancelled=False,
        locked_reason=None,
        version=1,
    ):
        override = None
        if locked_reason is not None:
            override = OverrideLockDTO(
                status=status, reason=locked_reason, set_by="7", set_at=NOW
            )
        return ItemSnapshot(
            id=uuid4(),
            name="Item",
            unit_price=Decimal(unit_price),
            quantity=quantity,
            status=ItemStatus.CANCELLED if cancelled else status,
            status_changed_at=NOW - timedelta(days=days_in_status),
            version=version,
            override=override,
            cancelled=cancelled,
        )

    return _make


@pytest.fixture()
def make_order():
    def _make(*items, is_cancelled=False, legacy_status="", status_override=""):
        return OrderSnapshot(
            id=uuid4(),
            items=tuple(items),
            is_cancelled=is_cancelled,
            legacy_status=legacy_status,
            status_override=status_override,
        )

    return _make
