"""
AggregationService -- rebuilds the daily movement aggregates from the ledger.

Responsibility:
    Folds one day of ledger movements per product into an
    InventoryItemMovementDaily row, and repairs rows that are stale or
    disagree with the ledger.

Architecture position:
    Kernel > Services -- flush-only, never commits.  Called by the
    ``inventory.daily_aggregation`` batch task and the repair CLI.

Computation for (product, day):
    totals           = bucketed movements with movement_date == day
    closing_quantity = cached quantity - sum(delta after day)
    start_quantity   = closing_quantity - net_delta

Invariants enforced:
    - Rows are always recomputed from the ledger and the Stock Cache, never
      from an earlier daily row, so re-running a day is idempotent.
    - Upsert is delete + insert inside the caller's transaction.
    - A dry run computes differences and writes nothing.
    - A write locks the products' InventoryItem rows before reading the
      ledger, so it serializes with concurrent movements on PostgreSQL.

Failure modes:
    - InvalidDateRangeError from recalculate_range() when start > end.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import delete, select

from stock_kernel.db.types import to_decimal
from stock_kernel.domain.aggregation import MovementTotals, build_daily
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import AggregateDifference, AggregationSummary, DailyAggregate
from stock_kernel.exceptions import InvalidDateRangeError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.inventory_item import InventoryItem
from stock_kernel.models.movement_daily import InventoryItemMovementDaily
from stock_kernel.selectors.daily_selector import DailySelector
from stock_kernel.selectors.movement_selector import MovementSelector
from stock_kernel.services.base import BaseService

logger = get_logger("services.aggregation")

_D = InventoryItemMovementDaily


class AggregationService(BaseService[InventoryItemMovementDaily]):

    def __init__(self, session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._movements = MovementSelector(session)
        self._daily = DailySelector(session)

    def compute_day(
        self,
        day: date,
        product_ids: Sequence[UUID],
    ) -> dict[UUID, DailyAggregate]:
        """Recompute (without writing) the rows for ``day`` for the given products."""
        product_ids = list(product_ids)
        if not product_ids:
            return {}
        totals = self._movements.totals_by_product(day, day, product_ids)
        after = self._movements.sums_after(day, product_ids)
        cached = self._cached_quantities(product_ids)

        rows = {}
        for product_id in product_ids:
            closing = cached.get(product_id, Decimal("0")) - after.get(product_id, Decimal("0"))
            rows[product_id] = build_daily(
                product_id,
                day,
                totals.get(product_id, MovementTotals()),
                closing,
            )
        return rows

    def aggregate_day(
        self,
        day: date,
        product_ids: Sequence[UUID] | None = None,
        dry_run: bool = False,
        create_missing: bool = False,
    ) -> AggregationSummary:
        """
        Rebuild the daily rows for ``day``.

        Without ``product_ids`` the day covers every product that moved that
        day plus every product that already has a row for it.  With
        ``create_missing`` products with stock history up to that day get a
        zero-movement row as well.
        """
        products = self._products_for_day(day, product_ids, create_missing)
        if not dry_run:
            self._lock_stock_rows(products)
        recomputed = self.compute_day(day, products)
        stored = {
            row.product_id: row
            for row in self._daily.rows_for_range(day, day, products, include_stale=True)
        } if products else {}

        differences = tuple(
            AggregateDifference(product_id, day, stored.get(product_id), row)
            for product_id, row in recomputed.items()
            if product_id not in stored
            or stored[product_id].is_stale
            or not stored[product_id].same_figures(row)
        )

        rows_written = 0
        if not dry_run and recomputed:
            self.session.execute(
                delete(_D).where(_D.day == day, _D.product_id.in_(list(recomputed)))
            )
            aggregated_at = self._clock.now()
            for row in recomputed.values():
                self.session.add(_D.from_dto(row, aggregated_at))
            self.session.flush()
            rows_written = len(recomputed)

            logger.info(
                "daily_aggregate_written",
                extra={
                    "day": day.isoformat(),
                    "rows_written": rows_written,
                    "differences": len(differences),
                },
            )

        return AggregationSummary(
            day=day,
            rows_written=rows_written,
            products=tuple(recomputed),
            dry_run=dry_run,
            differences=differences,
        )

    def recalculate_range(
        self,
        start: date,
        end: date,
        product_ids: Sequence[UUID] | None = None,
        dry_run: bool = False,
        create_missing: bool = False,
    ) -> tuple[AggregationSummary, ...]:
        """Run aggregate_day for every day in ``[start, end]``."""
        if start > end:
            raise InvalidDateRangeError(start.isoformat(), end.isoformat())
        summaries = []
        day = start
        while day <= end:
            summaries.append(
                self.aggregate_day(
                    day,
                    product_ids=product_ids,
                    dry_run=dry_run,
                    create_missing=create_missing,
                )
            )
            day += timedelta(days=1)
        return tuple(summaries)

    def refresh_stale(self, limit: int | None = None) -> tuple[AggregationSummary, ...]:
        """Re-aggregate rows flagged stale, grouped by day."""
        by_day: dict[date, list[UUID]] = defaultdict(list)
        for row in self._daily.stale_rows(limit=limit):
            by_day[row.day].append(row.product_id)

        summaries = tuple(
            self.aggregate_day(day, product_ids=products)
            for day, products in sorted(by_day.items())
        )
        if summaries:
            logger.info(
                "stale_aggregates_refreshed",
                extra={"days": len(summaries), "rows": sum(s.rows_written for s in summaries)},
            )
        return summaries

    def compare_day(
        self,
        day: date,
        product_ids: Sequence[UUID] | None = None,
    ) -> tuple[AggregateDifference, ...]:
        """Stored rows that are missing, stale or disagree with the ledger."""
        return self.aggregate_day(day, product_ids=product_ids, dry_run=True).differences

    def _products_for_day(
        self,
        day: date,
        product_ids: Sequence[UUID] | None,
        create_missing: bool,
    ) -> list[UUID]:
        if product_ids is not None:
            return list(dict.fromkeys(product_ids))

        found = list(self._movements.products_with_movements(day, day))
        found.extend(
            self.session.execute(select(_D.product_id).where(_D.day == day)).scalars().all()
        )
        if create_missing:
            found.extend(self._movements.products_with_history_until(day))
        return sorted(set(found), key=str)

    def _lock_stock_rows(self, product_ids: Sequence[UUID]) -> None:
        """
        Row-lock the products' cache rows until the caller commits.

        LedgerService.record updates these rows, so a concurrent movement
        either commits before the ledger is read here or waits and then
        marks the rewritten daily row stale.
        """
        if not product_ids:
            return
        self.session.execute(
            select(InventoryItem.product_id)
            .where(InventoryItem.product_id.in_(list(product_ids)))
            .order_by(InventoryItem.product_id)
            .with_for_update()
        ).all()

    def _cached_quantities(self, product_ids: Sequence[UUID]) -> dict[UUID, Decimal]:
        rows = self.session.execute(
            select(InventoryItem.product_id, InventoryItem.quantity)
            .where(InventoryItem.product_id.in_(list(product_ids)))
        ).all()
        return {product_id: to_decimal(quantity) for product_id, quantity in rows}
