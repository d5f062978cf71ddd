"""
Data Transfer Objects -- Immutable value objects for inter-layer communication.

Responsibility:
    Defines the frozen dataclasses returned by services and selectors so that
    ORM instances never leave the kernel: products, ledger movements, stock
    levels, document snapshots and daily aggregates.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - All DTOs are frozen (immutable after construction).
    - Collections are tuples, never lists.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from stock_kernel.domain.values import (
    DocumentKind,
    DocumentState,
    MovementOperation,
    MovementReason,
    SourceRef,
)


@dataclass(frozen=True)
class ProductInfo:
    """Read-only view of a catalog product."""

    product_id: UUID
    name: str
    unit: str
    cost: Decimal
    min_stock: Decimal
    sku: str | None = None
    is_active: bool = True


@dataclass(frozen=True)
class Movement:
    """
    One immutable ledger fact.

    ``delta`` is signed; ``quantity`` is its absolute value.  ``unit_cost``
    is the product cost captured when the movement was written.
    """

    movement_id: UUID
    product_id: UUID
    delta: Decimal
    quantity: Decimal
    operation: MovementOperation
    reason: MovementReason
    source: SourceRef
    occurred_at: datetime
    movement_date: date
    actor_id: UUID
    unit_cost: Decimal | None = None


@dataclass(frozen=True)
class StockLevel:
    product_id: UUID
    name: str
    unit: str
    quantity: Decimal
    min_stock: Decimal
    is_low: bool
    is_out: bool


@dataclass(frozen=True)
class DocumentLine:
    """
    A document line item.

    For stocktaking lines ``quantity`` equals ``real_quantity`` and
    ``stock_quantity`` holds the system quantity captured when the line was
    added or last updated.  Other kinds leave both snapshot fields as None.
    """

    item_id: UUID
    product_id: UUID
    position: int
    quantity: Decimal
    price: Decimal
    total: Decimal
    stock_quantity: Decimal | None = None
    real_quantity: Decimal | None = None

    @property
    def difference(self) -> Decimal | None:
        if self.stock_quantity is None or self.real_quantity is None:
            return None
        return self.real_quantity - self.stock_quantity


@dataclass(frozen=True)
class DocumentSnapshot:
    """Header plus ordered lines of a stock-affecting document."""

    document_id: UUID
    kind: DocumentKind
    state: DocumentState
    total: Decimal
    created_by_id: UUID
    lines: tuple[DocumentLine, ...] = ()
    supplier_id: UUID | None = None
    notes: str | None = None
    closed_at: datetime | None = None
    closed_by_id: UUID | None = None

    @property
    def is_open(self) -> bool:
        return self.state == DocumentState.OPEN


@dataclass(frozen=True)
class DailyAggregate:
    """One product's movement totals for one day, plus quantity snapshots."""

    product_id: UUID
    day: date
    start_quantity: Decimal
    incoming_quantity: Decimal
    sales_quantity: Decimal
    sales_return_quantity: Decimal
    return_waste_quantity: Decimal
    adjustment_quantity: Decimal
    increments_total: Decimal
    decrements_total: Decimal
    net_delta: Decimal
    closing_quantity: Decimal
    movement_count: int
    is_stale: bool = False

    def same_figures(self, other: DailyAggregate) -> bool:
        """Compare every computed figure, ignoring the staleness flag."""
        return (
            self.start_quantity == other.start_quantity
            and self.incoming_quantity == other.incoming_quantity
            and self.sales_quantity == other.sales_quantity
            and self.sales_return_quantity == other.sales_return_quantity
            and self.return_waste_quantity == other.return_waste_quantity
            and self.adjustment_quantity == other.adjustment_quantity
            and self.increments_total == other.increments_total
            and self.decrements_total == other.decrements_total
            and self.net_delta == other.net_delta
            and self.closing_quantity == other.closing_quantity
            and self.movement_count == other.movement_count
        )


@dataclass(frozen=True)
class AggregateDifference:
    """A stored daily row that disagrees with a fresh recomputation."""

    product_id: UUID
    day: date
    stored: DailyAggregate | None
    recomputed: DailyAggregate


@dataclass(frozen=True)
class AggregationSummary:
    """Outcome of aggregating one day."""

    day: date
    rows_written: int
    products: tuple[UUID, ...] = ()
    dry_run: bool = False
    differences: tuple[AggregateDifference, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class LedgerDrift:
    """A product whose cached quantity disagrees with its ledger sum."""

    product_id: UUID
    cached_quantity: Decimal
    ledger_quantity: Decimal

    @property
    def difference(self) -> Decimal:
        return self.cached_quantity - self.ledger_quantity
