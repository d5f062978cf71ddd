"""
stock_services.sales_integration -- Stock effects of the order subsystem.

Responsibility:
    Entry point for the order subsystem: a completed order consumes stock
    (``sale_consumption``) and an order return puts it back
    (``sale_return``).  Both go through LedgerService.record, so the cache
    and the daily aggregates see them exactly like document movements.

Architecture position:
    Services -- flush-only like the kernel services it composes; the order
    subsystem commits together with its own order rows.

Failure modes:
    - InvalidQuantityError for a zero, negative or non-numeric line.
    - UnknownProductError for a missing product (nothing is written for
      any line when validation fails, since lines are checked first).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Mapping
from uuid import UUID

from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.closing_rules import MovementSpec
from stock_kernel.domain.values import MovementReason, SourceRef, validate_quantity
from stock_kernel.logging_config import get_logger
from stock_kernel.services.ledger_service import LedgerService
from stock_kernel.services.product_service import ProductService

logger = get_logger("services.sales_integration")

SaleLines = Mapping[UUID, Decimal | int | str] | Iterable[tuple[UUID, Decimal | int | str]]


def _pairs(lines: SaleLines) -> list[tuple[UUID, Decimal | int | str]]:
    if isinstance(lines, Mapping):
        return list(lines.items())
    return list(lines)


class SalesIntegrationService:

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        ledger: LedgerService | None = None,
    ) -> None:
        self._session = session
        self._clock = clock or SystemClock()
        self._ledger = ledger or LedgerService(session, clock=self._clock)
        self._products = ProductService(session)

    def record_sale(
        self,
        order_id: UUID,
        lines: SaleLines,
        actor_id: UUID,
        occurred_at: datetime | None = None,
    ) -> tuple[UUID, ...]:
        """Record stock consumed by an order.  Returns the movement ids."""
        return self._record(
            SourceRef.order(order_id),
            MovementReason.SALE_CONSUMPTION,
            Decimal("-1"),
            lines,
            actor_id,
            occurred_at,
        )

    def record_sale_return(
        self,
        return_id: UUID,
        lines: SaleLines,
        actor_id: UUID,
        occurred_at: datetime | None = None,
    ) -> tuple[UUID, ...]:
        """Record stock put back by an order return.  Returns the movement ids."""
        return self._record(
            SourceRef.order_return(return_id),
            MovementReason.SALE_RETURN,
            Decimal("1"),
            lines,
            actor_id,
            occurred_at,
        )

    def _record(
        self,
        source: SourceRef,
        reason: MovementReason,
        sign: Decimal,
        lines: SaleLines,
        actor_id: UUID,
        occurred_at: datetime | None,
    ) -> tuple[UUID, ...]:
        specs = []
        for product_id, quantity in _pairs(lines):
            qty = validate_quantity(quantity, allow_zero=False)
            self._products.require(product_id)
            specs.append(MovementSpec(product_id, sign * qty, reason, source))

        movement_ids = self._ledger.record_specs(
            specs, actor_id, occurred_at=occurred_at or self._clock.now(),
        )
        logger.info(
            "sale_movements_recorded",
            extra={
                "source": str(source),
                "reason": reason.value,
                "line_count": len(movement_ids),
            },
        )
        return movement_ids
