"""
stock_services.reconciliation_service -- Ideal versus actual stock report.

Responsibility:
    Gathers, per product, the actual quantity at the end of a date range
    and the bucketed movement totals inside it, then hands both to the pure
    ``build_row`` in stock_kernel.domain.reconciliation.

Architecture position:
    Services -- read-only composition of kernel selectors.  Takes no locks
    and never writes.

Sources:
    actual_at_end  = cached quantity - sum(delta after end)
    range totals   = non-stale daily rows for days strictly before today
                     + live ledger movements for every (product, day) not
                     covered by such a row
    With aggregates disabled the totals are a pure ledger scan.  Both
    paths yield identical figures.

Failure modes:
    - InvalidDateRangeError when start > end.
    - UnknownProductError when a requested product does not exist.
"""

from __future__ import annotations

import time
from datetime import date, timedelta
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.domain.aggregation import MovementTotals
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import DailyAggregate, ProductInfo
from stock_kernel.domain.reconciliation import ReconciliationReport, build_row
from stock_kernel.exceptions import InvalidDateRangeError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.movement import InventoryItemMovement
from stock_kernel.models.movement_daily import InventoryItemMovementDaily
from stock_kernel.models.product import Product
from stock_kernel.selectors.daily_selector import DailySelector
from stock_kernel.selectors.movement_selector import MovementSelector
from stock_kernel.selectors.stock_selector import StockSelector
from stock_kernel.services.product_service import ProductService

logger = get_logger("services.reconciliation")

_D = InventoryItemMovementDaily
_M = InventoryItemMovement


def totals_from_daily(row: DailyAggregate) -> MovementTotals:
    return MovementTotals(
        incoming=row.incoming_quantity,
        sales=row.sales_quantity,
        sales_returns=row.sales_return_quantity,
        return_waste=row.return_waste_quantity,
        adjustments=row.adjustment_quantity,
        increments_total=row.increments_total,
        decrements_total=row.decrements_total,
        movement_count=row.movement_count,
    )


class ReconciliationService:
    """Builds ReconciliationReports for a date range."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        use_aggregates: bool = True,
    ) -> None:
        self._session = session
        self._clock = clock or SystemClock()
        self._use_aggregates = use_aggregates
        self._movements = MovementSelector(session)
        self._daily = DailySelector(session)
        self._stock = StockSelector(session)
        self._products = ProductService(session)

    def report(
        self,
        start: date,
        end: date,
        product_ids: Sequence[UUID] | None = None,
        use_aggregates: bool | None = None,
    ) -> ReconciliationReport:
        """
        Reconcile every requested product (default: all active) over
        ``[start, end]``.
        """
        if start > end:
            raise InvalidDateRangeError(start.isoformat(), end.isoformat())
        if use_aggregates is None:
            use_aggregates = self._use_aggregates

        t0 = time.monotonic()
        products = self._resolve_products(product_ids)
        ids = [p.product_id for p in products]

        if use_aggregates:
            totals = self._totals_with_aggregates(start, end, ids)
        else:
            totals = self._movements.totals_by_product(start, end, ids) if ids else {}

        after_end = self._movements.sums_after(end, ids) if ids else {}
        rows = []
        for product in products:
            actual_at_end = (
                self._stock.quantity_of(product.product_id)
                - after_end.get(product.product_id, Decimal("0"))
            )
            rows.append(
                build_row(
                    product,
                    actual_at_end,
                    totals.get(product.product_id, MovementTotals()),
                )
            )

        report = ReconciliationReport(
            start=start,
            end=end,
            generated_at=self._clock.now(),
            rows=tuple(rows),
            used_aggregates=use_aggregates,
        )
        logger.info(
            "reconciliation_report_built",
            extra={
                "start": start.isoformat(),
                "end": end.isoformat(),
                "product_count": len(rows),
                "used_aggregates": use_aggregates,
                "duration_ms": round((time.monotonic() - t0) * 1000, 2),
            },
        )
        return report

    def _resolve_products(self, product_ids: Sequence[UUID] | None) -> list[ProductInfo]:
        if product_ids is not None:
            return [self._products.require(pid).to_dto() for pid in dict.fromkeys(product_ids)]
        rows = self._session.execute(
            select(Product)
            .where(Product.is_active.is_(True))
            .order_by(Product.name, Product.id)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def _totals_with_aggregates(
        self,
        start: date,
        end: date,
        product_ids: list[UUID],
    ) -> dict[UUID, MovementTotals]:
        if not product_ids:
            return {}
        today = self._clock.today()
        aggregate_end = min(end, today - timedelta(days=1))

        totals: dict[UUID, MovementTotals] = {}
        if start <= aggregate_end:
            for row in self._daily.rows_for_range(start, aggregate_end, product_ids):
                totals[row.product_id] = totals.get(row.product_id, MovementTotals()).merge(
                    totals_from_daily(row)
                )

        # Ledger tail: movements whose (product, day) has no usable daily row
        covered = (
            select(_D.id)
            .where(
                _D.product_id == _M.product_id,
                _D.day == _M.movement_date,
                _D.is_stale.is_(False),
                _D.day < today,
            )
            .exists()
        )
        live = self._movements.totals_by_product(start, end, product_ids, extra_filters=(~covered,))
        for product_id, bucket in live.items():
            totals[product_id] = totals.get(product_id, MovementTotals()).merge(bucket)
        return totals
