"""Fulfillment service layer (use cases).

Orchestrates the item workflow: regular transitions, supplier orders and
tracking entries, override locks, cancellations and bulk jobs, plus the
order-level status override.  Each single-item command is one transaction:

1. read the item and build a snapshot,
2. run the pure guard from ``state_machine``,
3. apply the change with a compare-and-swap on ``version``,
4. append history and a timeline message,
5. lock the order row and refresh its cached derived fields,
6. write the domain events to the outbox and publish them after commit.

Bulk jobs call the single-item command once per item, each in its own
transaction, and collect failures instead of aborting.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Sequence
from uuid import UUID

import structlog
from django.db import transaction
from django.utils import timezone

from modules.fulfillment import aggregation, state_machine
from modules.fulfillment.constants import ItemStatus, TrackingLeg, display_label
from modules.fulfillment.dtos import (
    BulkItemFailureDTO,
    BulkTransitionResultDTO,
    ItemSnapshot,
    OrderEvaluationDTO,
    OrderSnapshot,
    TransitionItemDTO,
)
from modules.fulfillment.events import (
    ItemCancelled,
    ItemOrderedFromSupplier,
    ItemOverrideCleared,
    ItemOverrideSet,
    ItemStatusChanged,
    ItemTrackingAdded,
    OrderCancelled,
    OrderPlaced,
    OrderStatusOverrideCleared,
    OrderStatusOverrideSet,
)
from modules.fulfillment.exceptions import (
    Conflict,
    FulfillmentError,
    InvalidTransition,
    ItemLocked,
    ItemNotFound,
    OrderNotFound,
)
from modules.fulfillment.minimums import evaluate_minimum
from modules.fulfillment.policy import FulfillmentPolicy, load_policy
from modules.fulfillment.urgency import score_urgency
from shared.domain.events import DomainEvent
from shared.infrastructure.bus import event_bus

if TYPE_CHECKING:
    from modules.fulfillment.dtos import (
        AddTrackingDTO,
        BulkTransitionDTO,
        CancelItemDTO,
        CancelOrderDTO,
        ClearOrderStatusOverrideDTO,
        CreateOrderDTO,
        LockItemDTO,
        OrderFromSupplierDTO,
        OverrideOrderStatusDTO,
        UnlockItemDTO,
    )
    from modules.fulfillment.models import ItemStatusHistory, Order, OrderItem
    from modules.fulfillment.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


class FulfillmentService:
    """Application service for the fulfillment workflow.

    Receives the repository, the policy source and the clock via constructor
    injection, so tests can pin time and thresholds.
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        policy_provider: Callable[[], FulfillmentPolicy] = load_policy,
        clock: Callable[[], datetime] = timezone.now,
    ) -> None:
        self._order_repo = order_repository
        self._policy_provider = policy_provider
        self._clock = clock

    # ------------------------------------------------------------------
    # Commands: orders
    # ------------------------------------------------------------------

    @transaction.atomic
    def create_order(self, dto: CreateOrderDTO) -> Order:
        """Place an order; every item starts ``pending``.

        Replays return the existing order when ``idempotency_key`` was
        already used.
        """
        log = logger.bind(customer_reference=dto.customer_reference)
        log.info("order.creation_started", item_count=len(dto.items))

        if dto.idempotency_key:
            existing = self._order_repo.get_by_idempotency_key(dto.idempotency_key)
            if existing:
                log.info(
                    "order.idempotency_hit",
                    order_id=str(existing.id),
                    key=dto.idempotency_key,
                )
                return existing

        order = self._order_repo.create(
            {
                "customer_reference": dto.customer_reference,
                "shipping_cost": dto.shipping_cost,
                "payment_status": dto.payment_status,
                "notes": dto.notes or "",
                "idempotency_key": dto.idempotency_key,
                "actor": dto.actor,
                "items": [
                    {
                        "name": item.name,
                        "supplier": item.supplier,
                        "unit_price": item.unit_price,
                        "quantity": item.quantity,
                    }
                    for item in dto.items
                ],
            }
        )
        self._order_repo.add_timeline(order.id, "Order placed", dto.actor)
        self._recompute_order(
            order.id, [OrderPlaced(aggregate_id=order.id, item_count=len(dto.items))]
        )

        log.info("order.placed", order_id=str(order.id))
        return self.get_order(str(order.id))

    @transaction.atomic
    def cancel_order(self, dto: CancelOrderDTO) -> Order:
        """Cancel the whole order and every active item.

        Override locks on the cancelled items are cleared; an explicit
        whole-order cancellation is an operator decision that outranks them.

        Raises:
            OrderNotFound: order does not exist.
            ReasonRequired: blank reason.
            InvalidTransition: already cancelled, or an item was delivered.
        """
        reason = state_machine.require_reason(dto.reason)
        order = self._order_repo.get_for_update(str(dto.order_id))
        if not order:
            raise OrderNotFound(f"Order {dto.order_id} not found.")

        log = logger.bind(order_id=str(order.id), actor=dto.actor)
        if order.is_cancelled:
            raise InvalidTransition(
                order.status, ItemStatus.CANCELLED, "Order is already cancelled."
            )

        active = [item for item in order.items.all() if not item.cancelled]
        if any(item.status == ItemStatus.DELIVERED for item in active):
            log.warning("order.cancel_not_allowed", reason="delivered_items")
            raise InvalidTransition(
                order.status,
                ItemStatus.CANCELLED,
                "Cannot cancel an order with delivered items.",
            )

        now = self._clock()
        events: List[DomainEvent] = []
        for item in active:
            self._apply(
                item,
                item.version,
                {
                    "status": ItemStatus.CANCELLED,
                    "status_changed_at": now,
                    "stuck_flagged_at": None,
                    "cancelled": True,
                    "cancellation_reason": reason,
                    "cancelled_at": now,
                    **_CLEARED_OVERRIDE,
                },
            )
            self._order_repo.add_item_history(
                item_id=item.id,
                old_status=item.status,
                new_status=ItemStatus.CANCELLED,
                actor=dto.actor,
                notes=reason,
            )
            events.append(
                ItemCancelled(
                    aggregate_id=order.id,
                    item_id=item.id,
                    reason=reason,
                    actor=dto.actor,
                )
            )

        order.cancelled_at = now
        order.cancellation_reason = reason
        for field, value in _CLEARED_ORDER_OVERRIDE.items():
            setattr(order, field, value)
        self._order_repo.save(order)
        self._order_repo.add_timeline(
            order.id, f"Order cancelled: {reason}", dto.actor
        )
        events.append(
            OrderCancelled(aggregate_id=order.id, reason=reason, actor=dto.actor)
        )
        self._recompute_order(order.id, events)

        log.info("order.cancelled", cancelled_items=len(active))
        return self.get_order(str(order.id))

    @transaction.atomic
    def override_order_status(self, dto: OverrideOrderStatusDTO) -> Order:
        """Pin the order-level status until the override is cleared.

        Item statuses are untouched; only the derived order status is
        replaced.  A repeated override replaces the previous one.

        Raises:
            OrderNotFound: order does not exist.
            ReasonRequired: blank reason.
            InvalidTransition: cancelled order, or an unusable target status.
        """
        order = self._order_repo.get_for_update(str(dto.order_id))
        if not order:
            raise OrderNotFound(f"Order {dto.order_id} not found.")

        log = logger.bind(order_id=str(order.id), status=dto.status, actor=dto.actor)
        try:
            reason = state_machine.check_order_override(
                OrderSnapshot.from_entity(order), dto.status, dto.reason
            )
        except InvalidTransition:
            log.warning("order.override_rejected")
            raise

        order.status_override = dto.status
        order.status_override_reason = reason
        order.status_override_by = dto.actor
        order.status_override_at = self._clock()
        self._order_repo.save(order)
        self._order_repo.add_timeline(
            order.id,
            f"Order status locked at {display_label(dto.status)} ({reason})",
            dto.actor,
        )
        self._recompute_order(
            order.id,
            [
                OrderStatusOverrideSet(
                    aggregate_id=order.id,
                    status=dto.status,
                    reason=reason,
                    actor=dto.actor,
                )
            ],
        )

        log.info("order.status_locked")
        return self.get_order(str(order.id))

    @transaction.atomic
    def clear_order_status_override(self, dto: ClearOrderStatusOverrideDTO) -> Order:
        """Return the order to its derived status; a no-op when not pinned."""
        order = self._order_repo.get_for_update(str(dto.order_id))
        if not order:
            raise OrderNotFound(f"Order {dto.order_id} not found.")

        log = logger.bind(order_id=str(order.id), actor=dto.actor)
        if not order.status_override:
            log.info("order.unlock_skipped", reason="not_locked")
            return self.get_order(str(order.id))

        for field, value in _CLEARED_ORDER_OVERRIDE.items():
            setattr(order, field, value)
        self._order_repo.save(order)
        self._order_repo.add_timeline(order.id, "Order status lock released", dto.actor)
        self._recompute_order(
            order.id,
            [OrderStatusOverrideCleared(aggregate_id=order.id, actor=dto.actor)],
        )

        log.info("order.status_unlocked")
        return self.get_order(str(order.id))

    # ------------------------------------------------------------------
    # Commands: items
    # ------------------------------------------------------------------

    @transaction.atomic
    def transition_item(self, dto: TransitionItemDTO) -> OrderItem:
        """Move one item along the transition table.

        Raises:
            ItemNotFound: item does not exist.
            Conflict: ``expected_version`` is stale or a concurrent write won.
            ItemLocked: the item carries an override lock.
            InvalidTransition: the target is not an allowed next status.
        """
        item = self._get_item(dto.item_id)
        snapshot = ItemSnapshot.from_entity(item)
        log = logger.bind(
            item_id=str(item.id),
            order_id=str(item.order_id),
            current_status=item.status,
            new_status=dto.new_status,
            actor=dto.actor,
        )

        state_machine.check_version(snapshot, dto.expected_version)
        try:
            state_machine.check_transition(snapshot, dto.new_status)
        except ItemLocked:
            log.warning("item.transition_blocked_by_lock")
            raise
        except InvalidTransition:
            log.warning("item.invalid_transition")
            raise

        self._apply(
            item,
            snapshot.version,
            {
                "status": dto.new_status,
                "status_changed_at": self._clock(),
                "stuck_flagged_at": None,
            },
        )
        self._order_repo.add_item_history(
            item_id=item.id,
            old_status=item.status,
            new_status=dto.new_status,
            actor=dto.actor,
            notes=dto.notes,
        )
        self._order_repo.add_timeline(
            item.order_id,
            f"{item.name}: {display_label(item.status)} -> "
            f"{display_label(dto.new_status)}",
            dto.actor,
        )
        self._recompute_order(
            item.order_id,
            [
                ItemStatusChanged(
                    aggregate_id=item.order_id,
                    item_id=item.id,
                    old_status=item.status,
                    new_status=dto.new_status,
                    actor=dto.actor,
                )
            ],
        )

        log.info("item.status_updated")
        return self._get_item(item.id)

    @transaction.atomic
    def lock_item(self, dto: LockItemDTO) -> OrderItem:
        """Force an item to ``dto.status`` and pin it with an override lock.

        Bypasses the transition table.  A repeated lock replaces the previous
        record and needs its own reason.

        Raises:
            ItemNotFound: item does not exist.
            ReasonRequired: blank reason.
            Conflict: stale ``expected_version`` or lost race.
            InvalidTransition: cancelled item, or an unusable target status.
        """
        item = self._get_item(dto.item_id)
        snapshot = ItemSnapshot.from_entity(item)
        log = logger.bind(
            item_id=str(item.id),
            order_id=str(item.order_id),
            current_status=item.status,
            locked_status=dto.status,
            actor=dto.actor,
        )

        state_machine.check_version(snapshot, dto.expected_version)
        reason = state_machine.check_override(snapshot, dto.status, dto.reason)

        now = self._clock()
        changes: Dict[str, Any] = {
            "override_locked": True,
            "override_status": dto.status,
            "override_reason": reason,
            "override_set_by": dto.actor,
            "override_set_at": now,
            "stuck_flagged_at": None,
        }
        if dto.status != item.status:
            changes["status"] = dto.status
            changes["status_changed_at"] = now
        self._apply(item, snapshot.version, changes)

        self._order_repo.add_item_history(
            item_id=item.id,
            old_status=item.status,
            new_status=dto.status,
            actor=dto.actor,
            notes=reason,
            is_manual_override=True,
        )
        self._order_repo.add_timeline(
            item.order_id,
            f"{item.name}: locked at {display_label(dto.status)} ({reason})",
            dto.actor,
        )
        self._recompute_order(
            item.order_id,
            [
                ItemOverrideSet(
                    aggregate_id=item.order_id,
                    item_id=item.id,
                    old_status=item.status,
                    new_status=dto.status,
                    reason=reason,
                    actor=dto.actor,
                )
            ],
        )

        log.info("item.locked")
        return self._get_item(item.id)

    @transaction.atomic
    def unlock_item(self, dto: UnlockItemDTO) -> OrderItem:
        """Clear the override lock; the status is left as it is.

        Unlocking an item that is not locked is a no-op.
        """
        item = self._get_item(dto.item_id)
        snapshot = ItemSnapshot.from_entity(item)
        log = logger.bind(
            item_id=str(item.id), order_id=str(item.order_id), actor=dto.actor
        )

        state_machine.check_version(snapshot, dto.expected_version)
        if not snapshot.is_locked:
            log.info("item.unlock_skipped", reason="not_locked")
            return item

        self._apply(item, snapshot.version, dict(_CLEARED_OVERRIDE))
        self._order_repo.add_timeline(
            item.order_id, f"{item.name}: override lock released", dto.actor
        )
        self._recompute_order(
            item.order_id,
            [
                ItemOverrideCleared(
                    aggregate_id=item.order_id, item_id=item.id, actor=dto.actor
                )
            ],
        )

        log.info("item.unlocked")
        return self._get_item(item.id)

    @transaction.atomic
    def cancel_item(self, dto: CancelItemDTO) -> OrderItem:
        """Cancel one item; the order minimums are re-checked after commit.

        Raises:
            ItemNotFound: item does not exist.
            ReasonRequired: blank reason.
            Conflict: stale ``expected_version`` or lost race.
            ItemLocked: the item carries an override lock.
            InvalidTransition: the item is already delivered or cancelled.
        """
        item = self._get_item(dto.item_id)
        snapshot = ItemSnapshot.from_entity(item)
        log = logger.bind(
            item_id=str(item.id),
            order_id=str(item.order_id),
            current_status=item.status,
            actor=dto.actor,
        )

        state_machine.check_version(snapshot, dto.expected_version)
        try:
            reason = state_machine.check_cancellation(snapshot, dto.reason)
        except ItemLocked:
            log.warning("item.cancel_blocked_by_lock")
            raise

        now = self._clock()
        self._apply(
            item,
            snapshot.version,
            {
                "status": ItemStatus.CANCELLED,
                "status_changed_at": now,
                "stuck_flagged_at": None,
                "cancelled": True,
                "cancellation_reason": reason,
                "cancelled_at": now,
            },
        )
        self._order_repo.add_item_history(
            item_id=item.id,
            old_status=item.status,
            new_status=ItemStatus.CANCELLED,
            actor=dto.actor,
            notes=reason,
        )
        self._order_repo.add_timeline(
            item.order_id, f"{item.name}: cancelled ({reason})", dto.actor
        )
        self._recompute_order(
            item.order_id,
            [
                ItemCancelled(
                    aggregate_id=item.order_id,
                    item_id=item.id,
                    reason=reason,
                    actor=dto.actor,
                )
            ],
        )

        log.info("item.cancelled")
        return self._get_item(item.id)

    @transaction.atomic
    def order_from_supplier(self, dto: OrderFromSupplierDTO) -> OrderItem:
        """Record the supplier purchase and move the item ``pending -> ordered``.

        Raises:
            ItemNotFound: item does not exist.
            Conflict: stale ``expected_version`` or lost race.
            ItemLocked: the item carries an override lock.
            InvalidTransition: the item is not ``pending``.
        """
        item = self._get_item(dto.item_id)
        snapshot = ItemSnapshot.from_entity(item)
        log = logger.bind(
            item_id=str(item.id),
            order_id=str(item.order_id),
            current_status=item.status,
            actor=dto.actor,
        )

        state_machine.check_version(snapshot, dto.expected_version)
        try:
            state_machine.check_transition(snapshot, ItemStatus.ORDERED)
        except (ItemLocked, InvalidTransition):
            log.warning("item.supplier_order_rejected")
            raise

        now = self._clock()
        actual_cost = item.unit_price if dto.actual_cost is None else dto.actual_cost
        self._apply(
            item,
            snapshot.version,
            {
                "status": ItemStatus.ORDERED,
                "status_changed_at": now,
                "stuck_flagged_at": None,
                "supplier_order_number": dto.supplier_order_number,
                "supplier_tracking_number": dto.supplier_tracking_number,
                "actual_cost": actual_cost,
                "ordered_from_supplier_at": now,
            },
        )
        self._order_repo.add_item_history(
            item_id=item.id,
            old_status=item.status,
            new_status=ItemStatus.ORDERED,
            actor=dto.actor,
            notes=dto.notes,
        )
        message = f"{item.name}: ordered from supplier"
        if dto.supplier_order_number:
            message += f" (order {dto.supplier_order_number})"
        self._order_repo.add_timeline(item.order_id, message, dto.actor)
        self._recompute_order(
            item.order_id,
            [
                ItemStatusChanged(
                    aggregate_id=item.order_id,
                    item_id=item.id,
                    old_status=item.status,
                    new_status=ItemStatus.ORDERED,
                    actor=dto.actor,
                ),
                ItemOrderedFromSupplier(
                    aggregate_id=item.order_id,
                    item_id=item.id,
                    supplier_order_number=dto.supplier_order_number,
                    actual_cost=actual_cost,
                    actor=dto.actor,
                ),
            ],
        )

        log.info("item.ordered_from_supplier", actual_cost=str(actual_cost))
        return self._get_item(item.id)

    @transaction.atomic
    def add_tracking(self, dto: AddTrackingDTO) -> OrderItem:
        """Record the tracking number of one shipping leg.

        An item still at the leg's entry status (``ordered`` for the Israel
        leg, ``arrived_israel`` for the customer leg) moves on with it.  An
        item already at the leg's shipping status only has its tracking data
        recorded or replaced.

        Raises:
            ItemNotFound: item does not exist.
            Conflict: stale ``expected_version`` or lost race.
            ItemLocked: the entry would move a locked item.
            InvalidTransition: the item is at neither status of the leg.
        """
        item = self._get_item(dto.item_id)
        snapshot = ItemSnapshot.from_entity(item)
        log = logger.bind(
            item_id=str(item.id),
            order_id=str(item.order_id),
            current_status=item.status,
            leg=dto.leg,
            actor=dto.actor,
        )

        state_machine.check_version(snapshot, dto.expected_version)
        try:
            new_status = state_machine.check_tracking(snapshot, dto.leg)
        except (ItemLocked, InvalidTransition):
            log.warning("item.tracking_rejected")
            raise

        number_field, carrier_field, date_field = _TRACKING_COLUMNS[dto.leg]
        changes: Dict[str, Any] = {
            number_field: dto.tracking_number,
            carrier_field: dto.carrier,
            date_field: dto.estimated_date,
        }
        if new_status is not None:
            changes["status"] = new_status
            changes["status_changed_at"] = self._clock()
            changes["stuck_flagged_at"] = None
        self._apply(item, snapshot.version, changes)

        events: List[DomainEvent] = []
        if new_status is not None:
            self._order_repo.add_item_history(
                item_id=item.id,
                old_status=item.status,
                new_status=new_status,
                actor=dto.actor,
                notes=f"Tracking {dto.tracking_number} ({dto.carrier})",
            )
            events.append(
                ItemStatusChanged(
                    aggregate_id=item.order_id,
                    item_id=item.id,
                    old_status=item.status,
                    new_status=new_status,
                    actor=dto.actor,
                )
            )
        self._order_repo.add_timeline(
            item.order_id,
            f"{item.name}: {TrackingLeg(dto.leg).label} tracking "
            f"{dto.tracking_number} via {dto.carrier}",
            dto.actor,
        )
        events.append(
            ItemTrackingAdded(
                aggregate_id=item.order_id,
                item_id=item.id,
                leg=dto.leg,
                tracking_number=dto.tracking_number,
                carrier=dto.carrier,
                actor=dto.actor,
            )
        )
        self._recompute_order(item.order_id, events)

        log.info("item.tracking_added", new_status=new_status)
        return self._get_item(item.id)

    def bulk_transition(
        self,
        dto: BulkTransitionDTO,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> BulkTransitionResultDTO:
        """Transition many items, one transaction per item.

        A failing item (locked, invalid, conflicting, missing) is recorded
        and the job moves on; nothing already applied is rolled back.
        ``should_stop`` is polled before each item for cooperative
        cancellation.
        """
        item_ids = self._resolve_bulk_targets(dto)
        log = logger.bind(
            new_status=dto.new_status, actor=dto.actor, target_count=len(item_ids)
        )
        log.info("bulk_transition.started")

        succeeded: List[UUID] = []
        failed: List[BulkItemFailureDTO] = []
        stopped_early = False
        for item_id in item_ids:
            if should_stop is not None and should_stop():
                stopped_early = True
                log.info("bulk_transition.stopped", processed=len(succeeded) + len(failed))
                break
            try:
                self.transition_item(
                    TransitionItemDTO(
                        item_id=item_id,
                        new_status=dto.new_status,
                        actor=dto.actor,
                        notes=dto.notes,
                    )
                )
            except FulfillmentError as exc:
                log.warning(
                    "bulk_transition.item_failed",
                    item_id=str(item_id),
                    error_code=exc.code,
                    detail=str(exc),
                )
                failed.append(
                    BulkItemFailureDTO(item_id=item_id, code=exc.code, detail=str(exc))
                )
            else:
                succeeded.append(item_id)

        log.info(
            "bulk_transition.completed",
            succeeded=len(succeeded),
            failed=len(failed),
            stopped_early=stopped_early,
        )
        return BulkTransitionResultDTO(
            new_status=dto.new_status,
            succeeded=succeeded,
            failed=failed,
            stopped_early=stopped_early,
        )

    @transaction.atomic
    def refresh_order_health(self, order_id: UUID) -> Order:
        """Flag stale items and refresh the cached derived order fields.

        Flagging leaves item versions alone, so an operator holding an
        ``expected_version`` is not bounced by the hourly job.
        """
        order = self._order_repo.get_for_update(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")

        policy = self._policy_provider()
        now = self._clock()
        flagged = 0
        for item in order.items.all():
            snapshot = ItemSnapshot.from_entity(item)
            if item.stuck_flagged_at is not None:
                continue
            if not aggregation.is_stale(snapshot, policy.staleness_threshold, now):
                continue
            # A concurrent transition wins; the next run re-checks the item.
            if self._order_repo.flag_stuck_item(item.id, snapshot.version, now):
                flagged += 1

        order = self._recompute_order(order.id, [])
        if flagged:
            logger.warning(
                "order.stale_items_flagged", order_id=str(order.id), flagged=flagged
            )
        return order

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: str) -> Order:
        """Retrieve a single order by ID.

        Raises:
            OrderNotFound: if the order does not exist.
        """
        order = self._order_repo.get_by_id(order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def list_orders(self, filters: Optional[Dict[str, Any]] = None):
        return self._order_repo.list(filters)

    def current_policy(self) -> FulfillmentPolicy:
        return self._policy_provider()

    def get_item(self, item_id: UUID) -> OrderItem:
        return self._get_item(item_id)

    def list_open_order_ids(self) -> List[UUID]:
        return self._order_repo.list_open_order_ids()

    def get_item_history(self, item_id: UUID) -> List[ItemStatusHistory]:
        self._get_item(item_id)
        return self._order_repo.get_item_history(item_id)

    def evaluate_order(
        self, order: Order, policy: Optional[FulfillmentPolicy] = None
    ) -> OrderEvaluationDTO:
        """Dashboard annotation: summary, urgency and minimum shortfall.

        Always derived from the item rows, never from the cached columns.
        """
        policy = policy or self._policy_provider()
        now = self._clock()
        snapshot = OrderSnapshot.from_entity(order)
        return OrderEvaluationDTO(
            order_id=order.id,
            summary=aggregation.summarize(snapshot, policy, now),
            urgency_level=score_urgency(snapshot, policy, now),
            minimum=evaluate_minimum(snapshot, policy),
            evaluated_at=now,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get_item(self, item_id: UUID) -> OrderItem:
        item = self._order_repo.get_item(item_id)
        if not item:
            raise ItemNotFound(f"Item {item_id} not found.")
        return item

    def _apply(self, item: OrderItem, version: int, changes: Dict[str, Any]) -> None:
        if not self._order_repo.compare_and_swap_item(item.id, version, changes):
            raise Conflict(
                f"Item {item.id} was modified concurrently; reload and retry."
            )

    def _resolve_bulk_targets(self, dto: BulkTransitionDTO) -> Sequence[UUID]:
        if dto.item_ids:
            return list(dict.fromkeys(dto.item_ids))
        return self._order_repo.find_item_ids(dto.from_status, dto.supplier)

    def _recompute_order(self, order_id: UUID, events: List[DomainEvent]) -> Order:
        """Rewrite the cached derived columns from a locked, consistent read."""
        order = self._order_repo.get_for_update(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")

        summary = aggregation.summarize(
            OrderSnapshot.from_entity(order), self._policy_provider(), self._clock()
        )
        order.status = summary.status
        order.completion_percentage = summary.completion_percentage
        order.needs_attention = summary.needs_attention
        order.all_items_delivered = summary.all_items_delivered
        order.has_active_items = summary.has_active_items
        for event in events:
            order.add_domain_event(event)

        self._order_repo.save(order)
        event_bus.publish_after_commit(events)
        return order


_CLEARED_OVERRIDE: Dict[str, Any] = {
    "override_locked": False,
    "override_status": "",
    "override_reason": "",
    "override_set_by": "",
    "override_set_at": None,
}

_CLEARED_ORDER_OVERRIDE: Dict[str, Any] = {
    "status_override": "",
    "status_override_reason": "",
    "status_override_by": "",
    "status_override_at": None,
}

# leg -> (tracking number, carrier, estimated date) columns
_TRACKING_COLUMNS: Dict[str, tuple] = {
    TrackingLeg.ISRAEL: (
        "israel_tracking_number",
        "israel_carrier",
        "israel_estimated_arrival",
    ),
    TrackingLeg.CUSTOMER: (
        "customer_tracking_number",
        "customer_carrier",
        "customer_estimated_delivery",
    ),
}


def build_fulfillment_service() -> FulfillmentService:
    from modules.fulfillment.repositories.django_repository import (
        OrderDjangoRepository,
    )

    return FulfillmentService(order_repository=OrderDjangoRepository())
