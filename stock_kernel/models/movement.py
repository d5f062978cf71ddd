"""
Module: stock_kernel.models.movement
Responsibility: ORM persistence for the Movement Ledger -- the append-only
    record of every stock quantity change.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Rows are never updated or deleted (db/immutability.py blocks both at
      the ORM layer).  Corrections are new, opposite-signed rows.
    - delta != 0 and sign(delta) matches operation (LedgerService checks
      before insert).
    - source_kind + source_id form a tagged reference to the producing
      document or order; no polymorphic foreign key.
    - movement_date is the UTC date of occurred_at, stored for portable
      per-day grouping.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
    - IntegrityError on unknown product_id (FK), though LedgerService
      rejects unknown products before insert.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, DateTime, ForeignKey, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base, UUIDString


class InventoryItemMovement(Base):
    """One immutable, attributable stock quantity change."""

    __tablename__ = "inventory_item_movements"

    __table_args__ = (
        Index("idx_movement_product_time", "product_id", "occurred_at"),
        Index("idx_movement_product_date", "product_id", "movement_date"),
        Index("idx_movement_source", "source_kind", "source_id"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    # Signed change; quantity is abs(delta)
    delta: Mapped[Decimal] = mapped_column(nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    # MovementOperation / MovementReason values
    operation: Mapped[str] = mapped_column(String(20), nullable=False)
    reason: Mapped[str] = mapped_column(String(50), nullable=False)

    # SourceRef
    source_kind: Mapped[str] = mapped_column(String(50), nullable=False)
    source_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    unit_cost: Mapped[Decimal | None] = mapped_column(nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    movement_date: Mapped[date] = mapped_column(Date, nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def to_dto(self):
        from stock_kernel.domain.dtos import Movement
        from stock_kernel.domain.values import (
            MovementOperation,
            MovementReason,
            SourceKind,
            SourceRef,
        )

        return Movement(
            movement_id=self.id,
            product_id=self.product_id,
            delta=self.delta,
            quantity=self.quantity,
            operation=MovementOperation(self.operation),
            reason=MovementReason(self.reason),
            source=SourceRef(SourceKind(self.source_kind), self.source_id),
            occurred_at=self.occurred_at,
            movement_date=self.movement_date,
            actor_id=self.actor_id,
            unit_cost=self.unit_cost,
        )

    def __repr__(self) -> str:
        return (
            f"<InventoryItemMovement {self.id} product={self.product_id} "
            f"delta={self.delta} reason={self.reason}>"
        )
