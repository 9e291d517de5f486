"""Domain events for the fulfillment workflow.

``aggregate_id`` is always the owning order.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional
from uuid import UUID

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class OrderPlaced(DomainEvent):
    """Raised when an order and its pending items are created."""

    item_count: int = 0


@dataclass(frozen=True)
class ItemStatusChanged(DomainEvent):
    item_id: Optional[UUID] = None
    old_status: str = ""
    new_status: str = ""
    actor: str = ""


@dataclass(frozen=True)
class ItemOverrideSet(DomainEvent):
    """Raised when an operator pins an item status with a lock."""

    item_id: Optional[UUID] = None
    old_status: str = ""
    new_status: str = ""
    reason: str = ""
    actor: str = ""


@dataclass(frozen=True)
class ItemOverrideCleared(DomainEvent):
    item_id: Optional[UUID] = None
    actor: str = ""


@dataclass(frozen=True)
class ItemCancelled(DomainEvent):
    item_id: Optional[UUID] = None
    reason: str = ""
    actor: str = ""


@dataclass(frozen=True)
class OrderCancelled(DomainEvent):
    reason: str = ""
    actor: str = ""


@dataclass(frozen=True)
class ItemOrderedFromSupplier(DomainEvent):
    item_id: Optional[UUID] = None
    supplier_order_number: str = ""
    actual_cost: Optional[Decimal] = None
    actor: str = ""


@dataclass(frozen=True)
class ItemTrackingAdded(DomainEvent):
    """Raised for both shipping legs; ``leg`` is ``israel`` or ``customer``."""

    item_id: Optional[UUID] = None
    leg: str = ""
    tracking_number: str = ""
    carrier: str = ""
    actor: str = ""


@dataclass(frozen=True)
class OrderStatusOverrideSet(DomainEvent):
    status: str = ""
    reason: str = ""
    actor: str = ""


@dataclass(frozen=True)
class OrderStatusOverrideCleared(DomainEvent):
    actor: str = ""
