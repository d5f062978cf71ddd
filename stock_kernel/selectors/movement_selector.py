"""
Module: stock_kernel.selectors.movement_selector
Responsibility: Read-only queries over the Movement Ledger: ordered movement
    history, ledger sums, and per-product bucket totals for a date range.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Movements are returned in (occurred_at, id) order, which is stable
      across calls and restartable with a keyset cursor.
    - Range bounds are inclusive.  A ``date`` bound filters on
      movement_date; a ``datetime`` bound filters on occurred_at.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal
from typing import Iterator, Sequence
from uuid import UUID

from sqlalchemy import and_, func, or_, select

from stock_kernel.db.types import to_decimal
from stock_kernel.domain.aggregation import MovementTotals
from stock_kernel.domain.dtos import Movement
from stock_kernel.domain.values import MovementReason, SourceRef
from stock_kernel.models.movement import InventoryItemMovement
from stock_kernel.selectors.base import BaseSelector

_M = InventoryItemMovement


def _bound_filters(start: date | datetime | None, end: date | datetime | None) -> list:
    filters = []
    if start is not None:
        if isinstance(start, datetime):
            filters.append(_M.occurred_at >= start)
        else:
            filters.append(_M.movement_date >= start)
    if end is not None:
        if isinstance(end, datetime):
            filters.append(_M.occurred_at <= end)
        else:
            filters.append(_M.movement_date <= end)
    return filters


class MovementSelector(BaseSelector[InventoryItemMovement]):
    """Ledger read model."""

    def movements_for(
        self,
        product_id: UUID,
        start: date | datetime | None = None,
        end: date | datetime | None = None,
    ) -> tuple[Movement, ...]:
        """All movements of one product in ``[start, end]``, oldest first."""
        rows = self.session.execute(
            select(_M)
            .where(_M.product_id == product_id, *_bound_filters(start, end))
            .order_by(_M.occurred_at, _M.id)
        ).scalars().all()
        return tuple(row.to_dto() for row in rows)

    def iter_movements_for(
        self,
        product_id: UUID,
        start: date | datetime | None = None,
        end: date | datetime | None = None,
        page_size: int = 500,
        after: tuple[datetime, UUID] | None = None,
    ) -> Iterator[Movement]:
        """
        Keyset-paginated movement stream.

        Pass the ``(occurred_at, movement_id)`` of the last movement seen as
        ``after`` to resume an interrupted scan.
        """
        cursor = after
        while True:
            stmt = select(_M).where(_M.product_id == product_id, *_bound_filters(start, end))
            if cursor is not None:
                last_ts, last_id = cursor
                stmt = stmt.where(
                    or_(
                        _M.occurred_at > last_ts,
                        and_(_M.occurred_at == last_ts, _M.id > last_id),
                    )
                )
            page = self.session.execute(
                stmt.order_by(_M.occurred_at, _M.id).limit(page_size)
            ).scalars().all()
            if not page:
                return
            for row in page:
                yield row.to_dto()
            cursor = (page[-1].occurred_at, page[-1].id)

    def movements_for_source(self, source: SourceRef) -> tuple[Movement, ...]:
        rows = self.session.execute(
            select(_M)
            .where(_M.source_kind == source.kind.value, _M.source_id == source.source_id)
            .order_by(_M.occurred_at, _M.id)
        ).scalars().all()
        return tuple(row.to_dto() for row in rows)

    def ledger_sum(
        self,
        product_id: UUID,
        after: date | None = None,
    ) -> Decimal:
        """Sum of deltas for a product, optionally only for days after ``after``."""
        stmt = select(func.coalesce(func.sum(_M.delta), 0)).where(_M.product_id == product_id)
        if after is not None:
            stmt = stmt.where(_M.movement_date > after)
        return to_decimal(self.session.execute(stmt).scalar_one())

    def sums_after(
        self,
        day: date,
        product_ids: Sequence[UUID] | None = None,
    ) -> dict[UUID, Decimal]:
        """Per-product sum of deltas strictly after ``day``."""
        stmt = (
            select(_M.product_id, func.sum(_M.delta))
            .where(_M.movement_date > day)
            .group_by(_M.product_id)
        )
        if product_ids is not None:
            stmt = stmt.where(_M.product_id.in_(list(product_ids)))
        return {pid: to_decimal(total) for pid, total in self.session.execute(stmt).all()}

    def totals_by_product(
        self,
        start: date,
        end: date,
        product_ids: Sequence[UUID] | None = None,
        extra_filters: Sequence = (),
    ) -> dict[UUID, MovementTotals]:
        """
        Bucketed totals per product over ``[start, end]``.

        Groups by (product, reason, sign) in SQL so each product costs a
        handful of rows regardless of movement volume.
        """
        is_increment = _M.delta > 0
        stmt = (
            select(
                _M.product_id,
                _M.reason,
                is_increment.label("is_increment"),
                func.sum(_M.delta),
                func.count(_M.id),
            )
            .where(_M.movement_date >= start, _M.movement_date <= end, *extra_filters)
            .group_by(_M.product_id, _M.reason, is_increment)
        )
        if product_ids is not None:
            stmt = stmt.where(_M.product_id.in_(list(product_ids)))

        totals: dict[UUID, MovementTotals] = defaultdict(MovementTotals)
        for product_id, reason, _inc, delta_sum, count in self.session.execute(stmt).all():
            bucket = MovementTotals().add(MovementReason(reason), to_decimal(delta_sum))
            # add() counted one movement; carry the real count
            bucket = replace(bucket, movement_count=int(count))
            totals[product_id] = totals[product_id].merge(bucket)
        return dict(totals)

    def products_with_movements(
        self,
        start: date,
        end: date | None = None,
    ) -> tuple[UUID, ...]:
        """Distinct products with at least one movement in ``[start, end]``."""
        stmt = select(_M.product_id).where(_M.movement_date >= start).distinct()
        if end is not None:
            stmt = stmt.where(_M.movement_date <= end)
        return tuple(self.session.execute(stmt).scalars().all())

    def products_with_history_until(self, day: date) -> tuple[UUID, ...]:
        """Distinct products with any movement on or before ``day``."""
        return tuple(
            self.session.execute(
                select(_M.product_id).where(_M.movement_date <= day).distinct()
            ).scalars().all()
        )

    def movement_days(self, start: date, end: date) -> tuple[date, ...]:
        return tuple(
            self.session.execute(
                select(_M.movement_date)
                .where(_M.movement_date >= start, _M.movement_date <= end)
                .distinct()
                .order_by(_M.movement_date)
            ).scalars().all()
        )

    def first_movement_date(self) -> date | None:
        return self.session.execute(select(func.min(_M.movement_date))).scalar_one_or_none()
