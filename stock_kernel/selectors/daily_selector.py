"""
Module: stock_kernel.selectors.daily_selector
Responsibility: Read-only access to the daily movement aggregates.
Architecture position: Kernel > Selectors.
"""

from __future__ import annotations

from datetime import date
from typing import Sequence
from uuid import UUID

from sqlalchemy import select

from stock_kernel.domain.dtos import DailyAggregate
from stock_kernel.models.movement_daily import InventoryItemMovementDaily
from stock_kernel.selectors.base import BaseSelector

_D = InventoryItemMovementDaily


class DailySelector(BaseSelector[InventoryItemMovementDaily]):

    def get_row(self, product_id: UUID, day: date) -> DailyAggregate | None:
        row = self.session.execute(
            select(_D)
            .where(_D.product_id == product_id, _D.day == day)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return row.to_dto() if row is not None else None

    def rows_for_day(self, day: date) -> tuple[DailyAggregate, ...]:
        rows = self.session.execute(
            select(_D)
            .where(_D.day == day)
            .order_by(_D.product_id)
            .execution_options(populate_existing=True)
        ).scalars().all()
        return tuple(row.to_dto() for row in rows)

    def rows_for_range(
        self,
        start: date,
        end: date,
        product_ids: Sequence[UUID] | None = None,
        include_stale: bool = False,
    ) -> tuple[DailyAggregate, ...]:
        """Rows in ``[start, end]`` ordered by (day, product).  Stale rows are skipped unless asked for."""
        stmt = select(_D).where(_D.day >= start, _D.day <= end)
        if product_ids is not None:
            stmt = stmt.where(_D.product_id.in_(list(product_ids)))
        if not include_stale:
            stmt = stmt.where(_D.is_stale.is_(False))
        rows = self.session.execute(
            stmt.order_by(_D.day, _D.product_id).execution_options(populate_existing=True)
        ).scalars().all()
        return tuple(row.to_dto() for row in rows)

    def stale_rows(self, limit: int | None = None) -> tuple[DailyAggregate, ...]:
        """Stale rows, oldest day first."""
        stmt = (
            select(_D)
            .where(_D.is_stale.is_(True))
            .order_by(_D.day, _D.product_id)
            .execution_options(populate_existing=True)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return tuple(row.to_dto() for row in self.session.execute(stmt).scalars().all())
