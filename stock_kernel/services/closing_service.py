"""
ClosingService -- the OPEN -> CLOSED transition of a stock-affecting document.

Responsibility:
    Applies a document's effect to inventory exactly once: derives the
    movements from the lines, records them through LedgerService (which
    also moves the Stock Cache) and flips the document to CLOSED.

Architecture position:
    Kernel > Services -- flush-only, never commits.  CloseOrchestrator owns
    the transaction, so everything below commits or rolls back together.

Close flow:
    close(kind, document_id, actor_id)
      1. SELECT header ... FOR UPDATE          (serializes concurrent closes)
      2. not found          -> DocumentNotFoundError
         state == CLOSED    -> AlreadyClosedError (nothing written)
      3. re-validate line quantities           (InvalidQuantityError)
      4. derive_movements(kind, id, lines)     (pure, closing_rules)
      5. LedgerService.record_specs(...)       (movements + cache deltas)
      6. UPDATE header SET state='closed', closed_at, closed_by_id, total
         WHERE id = :id AND state = 'open'     (compare-and-set)
         rowcount == 0  -> ConcurrencyConflictError

Invariants enforced:
    - Exactly-once: a CLOSED document is never closed again, and the
      compare-and-set guarantees only one transaction wins the flip even
      where row locks are unavailable.
    - closed_at is an audit timestamp taken from the injected clock; the
      state column is the only source of truth for "closed".
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.closing_rules import ClosingLine, derive_movements
from stock_kernel.domain.dtos import DocumentSnapshot
from stock_kernel.domain.values import (
    DocumentKind,
    DocumentState,
    validate_quantity,
    validate_stock_quantity,
)
from stock_kernel.exceptions import (
    AlreadyClosedError,
    ConcurrencyConflictError,
    DocumentNotFoundError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.documents import StockDocument, models_for
from stock_kernel.selectors.document_selector import document_to_dto
from stock_kernel.services.base import BaseService
from stock_kernel.services.ledger_service import LedgerService

logger = get_logger("services.closing")


@dataclass(frozen=True)
class ClosedDocument:
    snapshot: DocumentSnapshot
    movement_ids: tuple[UUID, ...]


def closing_lines(kind: DocumentKind, document: StockDocument) -> tuple[ClosingLine, ...]:
    """Validated ClosingLine views of a document's items."""
    is_stocktaking = kind == DocumentKind.STOCKTAKING
    lines = []
    for item in document.items:
        if is_stocktaking:
            real = validate_quantity(item.real_quantity)
            lines.append(
                ClosingLine(
                    product_id=item.product_id,
                    quantity=real,
                    stock_quantity=validate_stock_quantity(item.stock_quantity),
                    real_quantity=real,
                )
            )
        else:
            lines.append(
                ClosingLine(
                    product_id=item.product_id,
                    quantity=validate_quantity(item.quantity, allow_zero=False),
                )
            )
    return tuple(lines)


class ClosingService(BaseService[StockDocument]):

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        ledger: LedgerService | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._ledger = ledger or LedgerService(session, clock=self._clock)

    def close(self, kind: DocumentKind, document_id: UUID, actor_id: UUID) -> ClosedDocument:
        """
        Close an OPEN document and apply its stock effect.

        Raises:
            DocumentNotFoundError: No such document.
            AlreadyClosedError: The document is already CLOSED.
            InvalidQuantityError: A line quantity is not a valid number.
            UnknownProductError: A line names a product that does not exist.
            ConcurrencyConflictError: Another transaction closed it first.
        """
        kind = DocumentKind(kind)
        header = models_for(kind).header

        document = self.session.execute(
            select(header)
            .where(header.id == document_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if document is None:
            raise DocumentNotFoundError(kind.value, str(document_id))
        match document.document_state:
            case DocumentState.CLOSED:
                raise AlreadyClosedError(kind.value, str(document_id))
            case DocumentState.OPEN:
                pass

        lines = closing_lines(kind, document)
        specs = derive_movements(kind, document_id, lines)
        now = self._clock.now()
        movement_ids = self._ledger.record_specs(specs, actor_id, occurred_at=now)

        total = sum((item.total for item in document.items), Decimal("0"))
        result = self.session.execute(
            update(header)
            .where(header.id == document_id, header.state == DocumentState.OPEN.value)
            .values(
                state=DocumentState.CLOSED.value,
                closed_at=now,
                closed_by_id=actor_id,
                total=total,
                updated_by_id=actor_id,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ConcurrencyConflictError(type(document).__name__, str(document_id))

        self.session.refresh(document)

        logger.info(
            "document_state_flipped",
            extra={
                "document_kind": kind.value,
                "document_id": str(document_id),
                "movement_count": len(movement_ids),
                "total": str(total),
            },
        )
        return ClosedDocument(
            snapshot=document_to_dto(kind, document),
            movement_ids=movement_ids,
        )
