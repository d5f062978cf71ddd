"""
Movement totals -- pure folding of ledger movements into report buckets.

Responsibility:
    Turns a stream of (reason, delta) pairs into the bucketed totals shared by
    the daily aggregator and the reconciliation engine.  Keeping one fold
    means a daily row and a live ledger scan always agree on what "incoming"
    or "return_waste" means.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - incoming, sales, sales_returns and return_waste are absolute values.
    - adjustments is signed (stocktaking can go either way).
    - increments_total - decrements_total == net_delta.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from stock_kernel.domain.dtos import DailyAggregate
from stock_kernel.domain.values import MovementReason

_ZERO = Decimal("0")


@dataclass(frozen=True)
class MovementTotals:
    incoming: Decimal = _ZERO
    sales: Decimal = _ZERO
    sales_returns: Decimal = _ZERO
    return_waste: Decimal = _ZERO
    adjustments: Decimal = _ZERO
    increments_total: Decimal = _ZERO
    decrements_total: Decimal = _ZERO
    movement_count: int = 0

    @property
    def net_delta(self) -> Decimal:
        return self.increments_total - self.decrements_total

    @property
    def total_consumed(self) -> Decimal:
        return self.sales + self.return_waste

    def add(self, reason: MovementReason, delta: Decimal) -> MovementTotals:
        """Return a new total including one more movement."""
        incoming = self.incoming
        sales = self.sales
        sales_returns = self.sales_returns
        return_waste = self.return_waste
        adjustments = self.adjustments

        match reason:
            case MovementReason.PURCHASE:
                incoming += abs(delta)
            case MovementReason.SALE_CONSUMPTION:
                sales += abs(delta)
            case MovementReason.SALE_RETURN:
                sales_returns += abs(delta)
            case MovementReason.WASTE | MovementReason.PURCHASE_RETURN:
                return_waste += abs(delta)
            case MovementReason.STOCKTAKING_ADJUSTMENT:
                adjustments += delta

        return MovementTotals(
            incoming=incoming,
            sales=sales,
            sales_returns=sales_returns,
            return_waste=return_waste,
            adjustments=adjustments,
            increments_total=self.increments_total + (delta if delta > 0 else _ZERO),
            decrements_total=self.decrements_total + (-delta if delta < 0 else _ZERO),
            movement_count=self.movement_count + 1,
        )

    def merge(self, other: MovementTotals) -> MovementTotals:
        return MovementTotals(
            incoming=self.incoming + other.incoming,
            sales=self.sales + other.sales,
            sales_returns=self.sales_returns + other.sales_returns,
            return_waste=self.return_waste + other.return_waste,
            adjustments=self.adjustments + other.adjustments,
            increments_total=self.increments_total + other.increments_total,
            decrements_total=self.decrements_total + other.decrements_total,
            movement_count=self.movement_count + other.movement_count,
        )


def fold_movements(pairs: Iterable[tuple[MovementReason, Decimal]]) -> MovementTotals:
    totals = MovementTotals()
    for reason, delta in pairs:
        totals = totals.add(reason, delta)
    return totals


def build_daily(
    product_id: UUID,
    day: date,
    totals: MovementTotals,
    closing_quantity: Decimal,
) -> DailyAggregate:
    """
    Daily row for one product from that day's totals.

    ``closing_quantity`` is the quantity at the end of ``day``; the start
    quantity is derived from it so the row never depends on earlier rows.
    """
    return DailyAggregate(
        product_id=product_id,
        day=day,
        start_quantity=closing_quantity - totals.net_delta,
        incoming_quantity=totals.incoming,
        sales_quantity=totals.sales,
        sales_return_quantity=totals.sales_returns,
        return_waste_quantity=totals.return_waste,
        adjustment_quantity=totals.adjustments,
        increments_total=totals.increments_total,
        decrements_total=totals.decrements_total,
        net_delta=totals.net_delta,
        closing_quantity=closing_quantity,
        movement_count=totals.movement_count,
    )
