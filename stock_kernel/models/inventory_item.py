"""
Module: stock_kernel.models.inventory_item
Responsibility: ORM persistence for the Stock Cache -- one current-quantity
    counter per stocked product.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One row per product (uq_inventory_item_product).
    - quantity == sum(movement.delta) for the product.  Maintained by
      StockCacheService._apply_delta in the same transaction as the ledger
      write; never recomputed on read.

Failure modes:
    - IntegrityError when two transactions create the row for the same product
      concurrently; StockCacheService re-selects in that case.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base, UUIDString


class InventoryItem(Base):
    """Materialized current quantity for one product.  Quantity is signed."""

    __tablename__ = "inventory_items"

    __table_args__ = (
        UniqueConstraint("product_id", name="uq_inventory_item_product"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    quantity: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<InventoryItem product={self.product_id} qty={self.quantity}>"
