"""
Closing rules -- pure derivation of ledger movements from a document.

Responsibility:
    Given a document kind and its line items, decide which signed movements
    closing the document must write.  This is the single place where the
    per-kind delta and reason mapping lives:

        purchase_invoice         +quantity          purchase
        return_purchase_invoice  -quantity          purchase_return
        waste                    -quantity          waste
        stocktaking              real - stock       stocktaking_adjustment
                                 (zero => no movement)

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Called by
    ClosingService inside the close unit of work.

Invariants enforced:
    - Exactly one movement per line item, except stocktaking lines whose
      counted quantity equals the system snapshot.
      Purchase, return and waste lines are validated positive at edit time,
      so for those kinds every line yields a movement.
    - Line order is preserved.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from stock_kernel.domain.values import (
    DocumentKind,
    MovementOperation,
    MovementReason,
    SourceRef,
)


@dataclass(frozen=True)
class ClosingLine:
    """Minimal line view needed to derive a movement."""

    product_id: UUID
    quantity: Decimal
    stock_quantity: Decimal | None = None
    real_quantity: Decimal | None = None


@dataclass(frozen=True)
class MovementSpec:
    """A movement the close must write (not yet persisted)."""

    product_id: UUID
    delta: Decimal
    reason: MovementReason
    source: SourceRef

    @property
    def operation(self) -> MovementOperation:
        return MovementOperation.for_delta(self.delta)


def line_delta(kind: DocumentKind, line: ClosingLine) -> tuple[Decimal, MovementReason]:
    """Signed delta and reason for one line of a document of ``kind``."""
    match kind:
        case DocumentKind.PURCHASE_INVOICE:
            return line.quantity, MovementReason.PURCHASE
        case DocumentKind.RETURN_PURCHASE_INVOICE:
            return -line.quantity, MovementReason.PURCHASE_RETURN
        case DocumentKind.WASTE:
            return -line.quantity, MovementReason.WASTE
        case DocumentKind.STOCKTAKING:
            if line.stock_quantity is None or line.real_quantity is None:
                raise ValueError("stocktaking line requires stock and real quantity")
            return (
                line.real_quantity - line.stock_quantity,
                MovementReason.STOCKTAKING_ADJUSTMENT,
            )
    raise ValueError(f"Unsupported document kind: {kind!r}")


def derive_movements(
    kind: DocumentKind,
    document_id: UUID,
    lines: Iterable[ClosingLine],
) -> tuple[MovementSpec, ...]:
    """Return the movements closing this document writes, in line order."""
    source = SourceRef.for_document(kind, document_id)
    specs: list[MovementSpec] = []
    for line in lines:
        delta, reason = line_delta(kind, line)
        if delta == 0:
            continue
        specs.append(
            MovementSpec(
                product_id=line.product_id,
                delta=delta,
                reason=reason,
                source=source,
            )
        )
    return tuple(specs)
