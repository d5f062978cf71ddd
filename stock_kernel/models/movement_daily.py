"""
Module: stock_kernel.models.movement_daily
Responsibility: ORM persistence for per-product per-day movement aggregates.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One row per (product_id, date) (uq_movement_daily_product_date).
    - Every figure is derivable from the ledger.  The table is a read cache;
      AggregationService rebuilds rows from InventoryItemMovement and never
      from earlier rows of this table.
    - is_stale is set when a movement is recorded for a day that already
      has a row; stale rows are ignored by reconciliation.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base, UUIDString


class InventoryItemMovementDaily(Base):
    """Daily rollup of one product's ledger movements."""

    __tablename__ = "inventory_item_movements_daily"

    __table_args__ = (
        UniqueConstraint("product_id", "date", name="uq_movement_daily_product_date"),
        Index("idx_movement_daily_date", "date"),
        Index("idx_movement_daily_stale", "is_stale"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )
    day: Mapped[date] = mapped_column("date", Date, nullable=False)

    start_quantity: Mapped[Decimal] = mapped_column(nullable=False)
    incoming_quantity: Mapped[Decimal] = mapped_column(nullable=False)
    sales_quantity: Mapped[Decimal] = mapped_column(nullable=False)
    sales_return_quantity: Mapped[Decimal] = mapped_column(nullable=False)
    return_waste_quantity: Mapped[Decimal] = mapped_column(nullable=False)
    adjustment_quantity: Mapped[Decimal] = mapped_column(nullable=False)
    increments_total: Mapped[Decimal] = mapped_column(nullable=False)
    decrements_total: Mapped[Decimal] = mapped_column(nullable=False)
    net_delta: Mapped[Decimal] = mapped_column(nullable=False)
    closing_quantity: Mapped[Decimal] = mapped_column(nullable=False)
    movement_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    is_stale: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    aggregated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )

    def to_dto(self):
        from stock_kernel.domain.dtos import DailyAggregate

        return DailyAggregate(
            product_id=self.product_id,
            day=self.day,
            start_quantity=self.start_quantity,
            incoming_quantity=self.incoming_quantity,
            sales_quantity=self.sales_quantity,
            sales_return_quantity=self.sales_return_quantity,
            return_waste_quantity=self.return_waste_quantity,
            adjustment_quantity=self.adjustment_quantity,
            increments_total=self.increments_total,
            decrements_total=self.decrements_total,
            net_delta=self.net_delta,
            closing_quantity=self.closing_quantity,
            movement_count=self.movement_count,
            is_stale=self.is_stale,
        )

    @classmethod
    def from_dto(cls, dto, aggregated_at: datetime) -> "InventoryItemMovementDaily":
        return cls(
            product_id=dto.product_id,
            day=dto.day,
            start_quantity=dto.start_quantity,
            incoming_quantity=dto.incoming_quantity,
            sales_quantity=dto.sales_quantity,
            sales_return_quantity=dto.sales_return_quantity,
            return_waste_quantity=dto.return_waste_quantity,
            adjustment_quantity=dto.adjustment_quantity,
            increments_total=dto.increments_total,
            decrements_total=dto.decrements_total,
            net_delta=dto.net_delta,
            closing_quantity=dto.closing_quantity,
            movement_count=dto.movement_count,
            is_stale=False,
            aggregated_at=aggregated_at,
        )

    def __repr__(self) -> str:
        return (
            f"<InventoryItemMovementDaily product={self.product_id} "
            f"day={self.day} net={self.net_delta} stale={self.is_stale}>"
        )
