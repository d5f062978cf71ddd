"""
LedgerService -- the single write path into the Movement Ledger.

Responsibility:
    Appends immutable movements and keeps the Stock Cache in step with them.
    Every stock change in the system (document close, order consumption,
    order return) enters through ``record``.

Architecture position:
    Kernel > Services -- flush-only, never commits.  The caller's
    transaction makes "movement row + cache delta (+ document state flip)"
    one atomic unit.

Record flow:
    record(product_id, delta, operation, reason, source, actor_id, occurred_at)
      1. Product must exist (UnknownProductError, before any write)
      2. delta must be non-zero and agree with operation and reason
      3. INSERT movement (unit_cost captured from the product)
      4. StockCache._apply_delta(product_id, delta)
      5. Mark the product's daily aggregates from that day on stale

Invariants enforced:
    - Append-only: there is no update or delete method.  Corrections are
      new, opposite-signed movements.
    - Ledger sum: cache quantity changes by exactly the recorded delta.

Failure modes:
    - UnknownProductError: product id does not exist.
    - InvalidMovementError: zero delta, sign/operation mismatch, or a
      reason recorded against its fixed direction.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Iterable
from uuid import UUID

from sqlalchemy import update

from stock_kernel.db.types import to_decimal
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.closing_rules import MovementSpec
from stock_kernel.domain.values import MovementOperation, MovementReason, SourceRef
from stock_kernel.exceptions import InvalidMovementError, UnknownProductError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.movement import InventoryItemMovement
from stock_kernel.models.movement_daily import InventoryItemMovementDaily
from stock_kernel.models.product import Product
from stock_kernel.services.base import BaseService
from stock_kernel.services.stock_cache_service import StockCacheService

logger = get_logger("services.ledger")


def movement_date_of(occurred_at: datetime) -> date:
    """UTC calendar date of a movement timestamp (naive values are UTC)."""
    if occurred_at.tzinfo is None:
        return occurred_at.date()
    return occurred_at.astimezone(timezone.utc).date()


class LedgerService(BaseService[InventoryItemMovement]):

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        stock_cache: StockCacheService | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._stock_cache = stock_cache or StockCacheService(session)

    def record(
        self,
        product_id: UUID,
        delta: Decimal | int | str,
        operation: MovementOperation,
        reason: MovementReason,
        source: SourceRef,
        actor_id: UUID,
        occurred_at: datetime | None = None,
    ) -> UUID:
        """
        Append one movement and apply it to the stock cache.

        Preconditions:
            - ``source`` is a SourceRef naming the producing document/order.
        Postconditions:
            - One new InventoryItemMovement row (flushed).
            - InventoryItem.quantity increased by ``delta``.

        Returns:
            The new movement id.
        """
        product = self.session.get(Product, product_id)
        if product is None:
            raise UnknownProductError(str(product_id))

        signed, operation, reason = self._validate(product_id, delta, operation, reason)
        when = occurred_at or self._clock.now()
        day = movement_date_of(when)

        movement = InventoryItemMovement(
            product_id=product_id,
            delta=signed,
            quantity=abs(signed),
            operation=operation.value,
            reason=reason.value,
            source_kind=source.kind.value,
            source_id=source.source_id,
            unit_cost=product.cost,
            occurred_at=when,
            movement_date=day,
            actor_id=actor_id,
        )
        self.session.add(movement)
        self.session.flush()

        self._stock_cache._apply_delta(product_id, signed)
        self._mark_daily_stale(product_id, day)

        logger.info(
            "movement_recorded",
            extra={
                "movement_id": str(movement.id),
                "product_id": str(product_id),
                "delta": str(signed),
                "reason": movement.reason,
                "source": str(source),
                "movement_date": day.isoformat(),
            },
        )
        return movement.id

    def record_specs(
        self,
        specs: Iterable[MovementSpec],
        actor_id: UUID,
        occurred_at: datetime | None = None,
    ) -> tuple[UUID, ...]:
        """Record derived movements in order; all share one timestamp."""
        when = occurred_at or self._clock.now()
        return tuple(
            self.record(
                product_id=spec.product_id,
                delta=spec.delta,
                operation=spec.operation,
                reason=spec.reason,
                source=spec.source,
                actor_id=actor_id,
                occurred_at=when,
            )
            for spec in specs
        )

    def _validate(
        self,
        product_id: UUID,
        delta: Decimal | int | str,
        operation: MovementOperation | str,
        reason: MovementReason | str,
    ) -> tuple[Decimal, MovementOperation, MovementReason]:
        try:
            operation = MovementOperation(operation)
            reason = MovementReason(reason)
        except ValueError as e:
            raise InvalidMovementError(str(product_id), str(e)) from None

        try:
            signed = to_decimal(delta)
        except (InvalidOperation, TypeError):
            raise InvalidMovementError(str(product_id), f"delta {delta!r} is not a number") from None

        if not signed.is_finite() or signed == 0:
            raise InvalidMovementError(str(product_id), "delta must be a non-zero finite number")

        if MovementOperation.for_delta(signed) != operation:
            raise InvalidMovementError(
                str(product_id),
                f"delta {signed} does not match operation '{operation.value}'",
            )

        fixed = reason.fixed_operation
        if fixed is not None and fixed != operation:
            raise InvalidMovementError(
                str(product_id),
                f"reason '{reason.value}' is always a {fixed.value}",
            )
        return signed, operation, reason

    def _mark_daily_stale(self, product_id: UUID, day: date) -> None:
        # Later rows carry this movement in their start and closing quantities.
        self.session.execute(
            update(InventoryItemMovementDaily)
            .where(
                InventoryItemMovementDaily.product_id == product_id,
                InventoryItemMovementDaily.day >= day,
                InventoryItemMovementDaily.is_stale.is_(False),
            )
            .values(is_stale=True)
            .execution_options(synchronize_session=False)
        )
