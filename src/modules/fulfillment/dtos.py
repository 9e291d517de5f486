"""Fulfillment DTOs.

Framework-agnostic data transfer objects using Pydantic v2, all immutable
(``frozen=True``).

- Command DTOs: the contracts between the API / Celery layer and the
  service (``CreateOrderDTO``, ``TransitionItemDTO``, ``LockItemDTO``, ...).
- Snapshots: ``ItemSnapshot`` and ``OrderSnapshot`` are read-consistent
  copies of persisted rows.  The state machine, aggregator, minimum-order
  validator and urgency scorer only ever see snapshots, so they run the same
  way in a request, a batch job or a test.
- Results: ``OrderSummaryDTO``, ``MinimumOrderReportDTO``,
  ``OrderEvaluationDTO`` and ``BulkTransitionResultDTO``.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional, Tuple
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)

from modules.fulfillment.constants import (
    NOTE_MAX_LENGTH,
    SYSTEM_ACTOR,
    ItemStatus,
    PaymentStatus,
    TrackingLeg,
)

if TYPE_CHECKING:
    from modules.fulfillment.models import Order, OrderItem


# ---------------------------------------------------------------------------
# Command DTOs
# ---------------------------------------------------------------------------


class CreateOrderItemDTO(BaseModel):
    """One product line of a new order; the price is snapshotted as given."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1, max_length=255)
    unit_price: Decimal = Field(ge=Decimal("0"))
    quantity: int = 1
    supplier: str = ""

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Quantity must be at least 1.")
        return v


class CreateOrderDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    items: List[CreateOrderItemDTO]
    customer_reference: str = ""
    shipping_cost: Decimal = Field(default=Decimal("0.00"), ge=Decimal("0"))
    payment_status: str = PaymentStatus.PENDING
    notes: Optional[str] = ""
    idempotency_key: Optional[str] = None
    actor: str = SYSTEM_ACTOR

    @field_validator("items")
    @classmethod
    def items_must_not_be_empty(
        cls, v: List[CreateOrderItemDTO]
    ) -> List[CreateOrderItemDTO]:
        if not v:
            raise ValueError("Order must have at least one item.")
        return v

    @field_validator("payment_status")
    @classmethod
    def payment_status_must_be_known(cls, v: str) -> str:
        if v not in PaymentStatus.values:
            raise ValueError(f"Unknown payment status: {v}.")
        return v


class TransitionItemDTO(BaseModel):
    """A regular (non-override) status change request."""

    model_config = ConfigDict(frozen=True)

    item_id: UUID
    new_status: str
    actor: str = SYSTEM_ACTOR
    notes: str = Field(default="", max_length=NOTE_MAX_LENGTH)
    expected_version: Optional[int] = None


class LockItemDTO(BaseModel):
    """Manual override: force *status* and pin it with a lock.

    The reason is deliberately not validated here; the override manager
    rejects blank reasons with ``ReasonRequired``.
    """

    model_config = ConfigDict(frozen=True)

    item_id: UUID
    status: str
    reason: str = Field(default="", max_length=NOTE_MAX_LENGTH)
    actor: str
    expected_version: Optional[int] = None


class UnlockItemDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    item_id: UUID
    actor: str
    expected_version: Optional[int] = None


class CancelItemDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    item_id: UUID
    reason: str = Field(default="", max_length=NOTE_MAX_LENGTH)
    actor: str
    expected_version: Optional[int] = None


class CancelOrderDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: UUID
    reason: str = Field(default="", max_length=NOTE_MAX_LENGTH)
    actor: str


class OrderFromSupplierDTO(BaseModel):
    """Record the supplier purchase and move the item ``pending -> ordered``.

    ``actual_cost`` defaults to the item's unit price when omitted.
    """

    model_config = ConfigDict(frozen=True)

    item_id: UUID
    supplier_order_number: str = Field(default="", max_length=120)
    supplier_tracking_number: str = Field(default="", max_length=120)
    actual_cost: Optional[Decimal] = Field(default=None, ge=Decimal("0"))
    notes: str = Field(default="", max_length=NOTE_MAX_LENGTH)
    actor: str = SYSTEM_ACTOR
    expected_version: Optional[int] = None


class AddTrackingDTO(BaseModel):
    """Tracking number for one shipping leg (see ``TRACKING_STAGES``)."""

    model_config = ConfigDict(frozen=True)

    item_id: UUID
    leg: str
    tracking_number: str = Field(min_length=1, max_length=120)
    carrier: str = Field(min_length=1, max_length=120)
    estimated_date: Optional[date] = None
    actor: str = SYSTEM_ACTOR
    expected_version: Optional[int] = None

    @field_validator("leg")
    @classmethod
    def leg_must_be_known(cls, v: str) -> str:
        if v not in TrackingLeg.values:
            raise ValueError(f"Unknown tracking leg: {v}.")
        return v

    @field_validator("tracking_number", "carrier")
    @classmethod
    def strip_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Must not be blank.")
        return v.strip()


class OverrideOrderStatusDTO(BaseModel):
    """Pin the order-level status; the reason is checked by the service."""

    model_config = ConfigDict(frozen=True)

    order_id: UUID
    status: str
    reason: str = Field(default="", max_length=NOTE_MAX_LENGTH)
    actor: str


class ClearOrderStatusOverrideDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: UUID
    actor: str


class BulkTransitionDTO(BaseModel):
    """Bulk job input: explicit ``item_ids`` or a ``from_status`` selector.

    With a selector, every active item currently in ``from_status`` (and of
    ``supplier`` when given) is targeted.
    """

    model_config = ConfigDict(frozen=True)

    new_status: str
    item_ids: List[UUID] = Field(default_factory=list)
    from_status: Optional[str] = None
    supplier: Optional[str] = None
    actor: str = SYSTEM_ACTOR
    notes: str = Field(default="", max_length=NOTE_MAX_LENGTH)

    @model_validator(mode="after")
    def needs_a_target(self):
        if not self.item_ids and not self.from_status:
            raise ValueError("Provide item_ids or a from_status selector.")
        if self.from_status and self.from_status not in ItemStatus.values:
            raise ValueError(f"Unknown item status: {self.from_status}.")
        return self


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


class OverrideLockDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str
    reason: str
    set_by: str
    set_at: datetime


class ItemSnapshot(BaseModel):
    """Read-consistent copy of one order item."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    name: str
    unit_price: Decimal
    quantity: int
    status: str
    status_changed_at: datetime
    version: int = 1
    supplier: str = ""
    override: Optional[OverrideLockDTO] = None
    cancelled: bool = False

    @property
    def is_locked(self) -> bool:
        return self.override is not None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    @classmethod
    def from_entity(cls, item: OrderItem) -> ItemSnapshot:
        override = None
        if item.override_locked:
            override = OverrideLockDTO(
                status=item.override_status,
                reason=item.override_reason,
                set_by=item.override_set_by,
                set_at=item.override_set_at,
            )
        return cls(
            id=item.id,
            name=item.name,
            unit_price=item.unit_price,
            quantity=item.quantity,
            status=item.status,
            status_changed_at=item.status_changed_at,
            version=item.version,
            supplier=item.supplier,
            override=override,
            cancelled=item.cancelled,
        )


class OrderSnapshot(BaseModel):
    """Read-consistent copy of an order and all of its items."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    items: Tuple[ItemSnapshot, ...] = ()
    status: str = "pending"
    legacy_status: str = ""
    is_cancelled: bool = False
    status_override: str = ""

    @classmethod
    def from_entity(cls, order: Order) -> OrderSnapshot:
        """Build a snapshot; assumes ``items`` are prefetched in one query."""
        return cls(
            id=order.id,
            items=tuple(ItemSnapshot.from_entity(item) for item in order.items.all()),
            status=order.status,
            legacy_status=order.legacy_status,
            is_cancelled=order.is_cancelled,
            status_override=order.status_override,
        )


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class OrderSummaryDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str
    completion_percentage: int
    needs_attention: bool
    all_items_delivered: bool
    has_active_items: bool
    active_item_count: int


class MinimumOrderReportDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    meets_amount: bool
    meets_count: bool
    active_total: Decimal
    active_count: int
    amount_deficit: Decimal
    count_deficit: int

    @computed_field  # type: ignore[prop-decorator]
    @property
    def meets_minimum(self) -> bool:
        return self.meets_amount and self.meets_count


class OrderEvaluationDTO(BaseModel):
    """Everything a dashboard row needs; all values are derived."""

    model_config = ConfigDict(frozen=True)

    order_id: UUID
    summary: OrderSummaryDTO
    urgency_level: str
    minimum: MinimumOrderReportDTO
    evaluated_at: datetime


class BulkItemFailureDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    item_id: UUID
    code: str
    detail: str


class BulkTransitionResultDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    new_status: str
    succeeded: List[UUID] = Field(default_factory=list)
    failed: List[BulkItemFailureDTO] = Field(default_factory=list)
    stopped_early: bool = False
