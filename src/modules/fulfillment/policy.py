"""Runtime fulfillment policy.

``FulfillmentPolicy`` is the immutable value the pure rule modules receive.
``load_policy`` reads it from the ``FulfillmentSettings`` row (seeded from the
``FULFILLMENT_*`` Django settings on first use), so thresholds can be tuned
without a deploy.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from modules.fulfillment.constants import DEFAULT_STALENESS_THRESHOLD


class FulfillmentPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    minimum_order_amount: Decimal = Field(default=Decimal("400"), ge=Decimal("0"))
    minimum_item_count: int = Field(default=2, ge=0)
    staleness_threshold: timedelta = DEFAULT_STALENESS_THRESHOLD
    critical_staleness: timedelta = DEFAULT_STALENESS_THRESHOLD


def load_policy() -> FulfillmentPolicy:
    from modules.fulfillment.models import FulfillmentSettings

    row = FulfillmentSettings.load()
    return FulfillmentPolicy(
        minimum_order_amount=row.minimum_order_amount,
        minimum_item_count=row.minimum_item_count,
        staleness_threshold=timedelta(days=row.staleness_days),
        critical_staleness=timedelta(days=row.critical_staleness_days),
    )
