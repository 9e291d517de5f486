"""Order repository interface.

Extends ``IRepository[Order]`` with what the fulfillment workflow needs:
atomic order placement, item reads, the compare-and-swap item write, the
append-only item history and the order timeline.

The service layer depends only on this contract.
"""

from __future__ import annotations

from abc import abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.fulfillment.models import (
        ItemStatusHistory,
        Order,
        OrderItem,
        OrderTimelineEntry,
    )


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root.

    The aggregate includes ``OrderItem`` children with their status history
    and the order timeline.
    """

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Order:
        """Create an order with its items (all ``pending``) atomically.

        ``data`` must include ``items`` (list of dicts with ``name``,
        ``unit_price``, ``quantity`` and optionally ``supplier``) and
        ``actor``; optionally ``customer_reference``, ``shipping_cost``,
        ``payment_status``, ``notes`` and ``idempotency_key``.
        """

    @abstractmethod
    def get_by_id(self, id: str) -> Optional[Order]:
        """Retrieve an order with prefetched items, history and timeline."""

    @abstractmethod
    def get_for_update(self, id: str) -> Optional[Order]:
        """Retrieve an order under a row lock, with all items loaded."""

    @abstractmethod
    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        """Retrieve an order by its idempotency key."""

    @abstractmethod
    def get_item(self, item_id: UUID) -> Optional[OrderItem]:
        """Retrieve a single item, or ``None``."""

    @abstractmethod
    def compare_and_swap_item(
        self, item_id: UUID, expected_version: int, changes: Dict[str, Any]
    ) -> bool:
        """Apply *changes* only if the item is still at *expected_version*.

        Bumps ``version`` on success.  Returns ``False`` when no row matched.
        """

    @abstractmethod
    def flag_stuck_item(
        self, item_id: UUID, expected_version: int, flagged_at: datetime
    ) -> bool:
        """Mark an item stale if it is still at *expected_version*.

        Leaves ``version`` untouched.  Returns ``False`` when no row matched.
        """

    @abstractmethod
    def add_item_history(
        self,
        item_id: UUID,
        old_status: Optional[str],
        new_status: str,
        actor: str,
        notes: str = "",
        is_manual_override: bool = False,
    ) -> ItemStatusHistory:
        """Append an entry to the item's status history."""

    @abstractmethod
    def get_item_history(self, item_id: UUID) -> List[ItemStatusHistory]:
        """Return the item's history, newest first."""

    @abstractmethod
    def add_timeline(
        self, order_id: UUID, message: str, actor: str
    ) -> OrderTimelineEntry:
        """Append a free-text audit message to the order timeline."""

    @abstractmethod
    def find_item_ids(
        self, status: str, supplier: Optional[str] = None
    ) -> List[UUID]:
        """Ids of active items currently in *status* (and of *supplier*)."""

    @abstractmethod
    def list_open_order_ids(self) -> List[UUID]:
        """Ids of orders that still have active, undelivered items."""
