"""
Reconciliation -- pure ideal-versus-actual stock computation.

Responsibility:
    Builds one reconciliation row per product from three inputs: the actual
    quantity at the end of the range, the movement totals inside the range,
    and the product cost.  No I/O; ReconciliationService gathers the inputs.

        start_quantity   = actual_at_end - net_delta(range)
        total_consumed   = sales + return_waste
        ideal_remaining  = start + incoming + sales_returns - total_consumed
        deviation        = ideal_remaining - actual_remaining
        deviation_value  = deviation * cost
        deviation_pct    = deviation / ideal_remaining * 100   (0 if ideal == 0)

    Stocktaking adjustments are not part of the ideal figure, so they are
    what surfaces as deviation.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - A range without movements yields start == ideal == actual, deviation 0.
    - deviation_percentage never divides by zero.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from stock_kernel.db.types import round_money, round_percentage
from stock_kernel.domain.aggregation import MovementTotals
from stock_kernel.domain.dtos import ProductInfo

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


def deviation_percentage(deviation: Decimal, ideal_remaining: Decimal) -> Decimal:
    if ideal_remaining == 0:
        return _ZERO
    return round_percentage(deviation / ideal_remaining * _HUNDRED)


@dataclass(frozen=True)
class ReconciliationRow:
    product_id: UUID
    product_name: str
    unit: str
    cost: Decimal
    start_quantity: Decimal
    incoming: Decimal
    sales: Decimal
    sales_returns: Decimal
    return_waste: Decimal
    adjustments: Decimal
    total_consumed: Decimal
    ideal_remaining: Decimal
    actual_remaining_quantity: Decimal
    deviation: Decimal
    deviation_value: Decimal
    deviation_percentage: Decimal
    movement_count: int = 0

    @property
    def has_deviation(self) -> bool:
        return self.deviation != 0


def build_row(
    product: ProductInfo,
    actual_at_end: Decimal,
    totals: MovementTotals,
) -> ReconciliationRow:
    start_quantity = actual_at_end - totals.net_delta
    total_consumed = totals.total_consumed
    ideal = start_quantity + totals.incoming + totals.sales_returns - total_consumed
    deviation = ideal - actual_at_end
    return ReconciliationRow(
        product_id=product.product_id,
        product_name=product.name,
        unit=product.unit,
        cost=product.cost,
        start_quantity=start_quantity,
        incoming=totals.incoming,
        sales=totals.sales,
        sales_returns=totals.sales_returns,
        return_waste=totals.return_waste,
        adjustments=totals.adjustments,
        total_consumed=total_consumed,
        ideal_remaining=ideal,
        actual_remaining_quantity=actual_at_end,
        deviation=deviation,
        deviation_value=round_money(deviation * product.cost),
        deviation_percentage=deviation_percentage(deviation, ideal),
        movement_count=totals.movement_count,
    )


@dataclass(frozen=True)
class ReconciliationReport:
    """Per-product rows for ``[start, end]`` plus report-level totals."""

    start: date
    end: date
    generated_at: datetime
    rows: tuple[ReconciliationRow, ...]
    used_aggregates: bool = False

    @property
    def total_deviation_value(self) -> Decimal:
        return sum((r.deviation_value for r in self.rows), _ZERO)

    @property
    def products_with_deviation(self) -> int:
        return sum(1 for r in self.rows if r.has_deviation)

    def row_for(self, product_id: UUID) -> ReconciliationRow | None:
        for row in self.rows:
            if row.product_id == product_id:
                return row
        return None
