"""
Module: stock_kernel.models.product
Responsibility: ORM persistence for the minimal product catalog the stock
    kernel reads: identity, unit, cost and the min-stock threshold.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - cost and min_stock are Decimal (Numeric(38,9)), never float.
    - sku is unique when present.

Failure modes:
    - IntegrityError on duplicate sku.
"""

from decimal import Decimal

from sqlalchemy import Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase


class Product(TrackedBase):
    """
    A stocked product (raw material, consumable or manufactured good).

    Only ``cost`` is expected to change from the kernel's point of view; it
    is read at movement time and copied onto each ledger row.
    """

    __tablename__ = "products"

    __table_args__ = (
        Index("idx_product_active", "is_active"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    sku: Mapped[str | None] = mapped_column(String(50), unique=True, nullable=True)
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="unit")
    cost: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    min_stock: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def to_dto(self):
        from stock_kernel.domain.dtos import ProductInfo

        return ProductInfo(
            product_id=self.id,
            name=self.name,
            unit=self.unit,
            cost=self.cost,
            min_stock=self.min_stock,
            sku=self.sku,
            is_active=self.is_active,
        )

    def __repr__(self) -> str:
        return f"<Product {self.id} {self.name!r} cost={self.cost}>"
