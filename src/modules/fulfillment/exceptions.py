"""Fulfillment domain exceptions.

All of these are recoverable, caller-correctable errors.  The API layer maps
them to HTTP responses; bulk jobs record them per item and move on.
"""

from __future__ import annotations

from typing import Optional


class FulfillmentError(Exception):
    """Base class; ``code`` is the machine-readable error kind."""

    code = "fulfillment_error"


class InvalidTransition(FulfillmentError):
    """Requested status is not reachable from the item's current status."""

    code = "invalid_transition"

    def __init__(self, current: str, requested: str, message: Optional[str] = None):
        self.current = current
        self.requested = requested
        super().__init__(
            message or f"Cannot transition item from {current} to {requested}."
        )


class ItemLocked(FulfillmentError):
    """An active override lock blocks a non-override change."""

    code = "item_locked"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"item is locked: reason={reason}")


class ReasonRequired(FulfillmentError):
    """A lock or cancellation was attempted without a reason."""

    code = "reason_required"


class Conflict(FulfillmentError):
    """The item changed since it was read; retry against fresh state."""

    code = "conflict"


class NotFound(FulfillmentError):
    code = "not_found"


class OrderNotFound(NotFound):
    """The requested order does not exist."""


class ItemNotFound(NotFound):
    """The requested order item does not exist."""
