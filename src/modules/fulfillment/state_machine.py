"""Item state machine guards.

Pure checks over ``ItemSnapshot`` (and ``OrderSnapshot`` for order
overrides); the service applies the change with a compare-and-swap write
once a guard passes.  Guards raise, they never mutate.
"""

from __future__ import annotations

from typing import Optional

from modules.fulfillment.constants import (
    ORDER_OVERRIDE_STATUSES,
    TERMINAL_ITEM_STATES,
    TRACKING_STAGES,
    ItemStatus,
    OrderStatus,
    allowed_next,
)
from modules.fulfillment.dtos import ItemSnapshot, OrderSnapshot
from modules.fulfillment.exceptions import (
    Conflict,
    InvalidTransition,
    ItemLocked,
    ReasonRequired,
)


def require_reason(reason: Optional[str]) -> str:
    """Return the stripped reason or raise ``ReasonRequired``."""
    cleaned = (reason or "").strip()
    if not cleaned:
        raise ReasonRequired("A non-empty reason is required.")
    return cleaned


def check_version(item: ItemSnapshot, expected_version: Optional[int]) -> None:
    if expected_version is not None and expected_version != item.version:
        raise Conflict(
            f"Item {item.id} is at version {item.version}, "
            f"request was based on version {expected_version}."
        )


def check_transition(item: ItemSnapshot, requested_status: str) -> None:
    """Guard a regular transition.

    Raises:
        ItemLocked: the item carries an override lock.
        InvalidTransition: *requested_status* is not an allowed next step.
    """
    if item.is_locked:
        raise ItemLocked(item.override.reason)
    if requested_status not in allowed_next(item.status):
        raise InvalidTransition(item.status, requested_status)


def check_override(item: ItemSnapshot, target_status: str, reason: Optional[str]) -> str:
    """Guard a manual override (lock).  Returns the cleaned reason.

    Bypasses the transition table.  Any live status except ``cancelled`` may
    be forced; cancelled items cannot be locked at all.
    """
    cleaned = require_reason(reason)
    if item.cancelled or item.status == ItemStatus.CANCELLED:
        raise InvalidTransition(
            item.status, target_status, "Cancelled items cannot be locked."
        )
    if target_status not in ItemStatus.values or target_status == ItemStatus.CANCELLED:
        raise InvalidTransition(
            item.status,
            target_status,
            f"{target_status} cannot be set by a manual override.",
        )
    return cleaned


def check_cancellation(item: ItemSnapshot, reason: Optional[str]) -> str:
    """Guard an item cancellation.  Returns the cleaned reason."""
    cleaned = require_reason(reason)
    if item.is_locked:
        raise ItemLocked(item.override.reason)
    if item.status in TERMINAL_ITEM_STATES or item.cancelled:
        raise InvalidTransition(
            item.status,
            ItemStatus.CANCELLED,
            f"Cannot cancel an item that is already {item.status}.",
        )
    return cleaned


def check_tracking(item: ItemSnapshot, leg: str) -> Optional[str]:
    """Guard a tracking-number entry for *leg*.

    Returns the status the item moves to, or ``None`` when the item is
    already at that status and the entry only records tracking data.
    """
    entry_status, target_status = TRACKING_STAGES[leg]
    if item.status == target_status:
        return None
    if item.status != entry_status:
        raise InvalidTransition(
            item.status,
            target_status,
            f"{leg} tracking cannot be added to a {item.status} item.",
        )
    check_transition(item, target_status)
    return target_status


def check_order_override(
    order: OrderSnapshot, target_status: str, reason: Optional[str]
) -> str:
    """Guard an order-level status override.  Returns the cleaned reason."""
    cleaned = require_reason(reason)
    if order.is_cancelled:
        raise InvalidTransition(
            OrderStatus.CANCELLED, target_status, "Order is already cancelled."
        )
    if target_status not in ORDER_OVERRIDE_STATUSES:
        raise InvalidTransition(
            order.status,
            target_status,
            f"{target_status} cannot be set by an order override.",
        )
    return cleaned
