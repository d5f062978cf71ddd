"""
Module: stock_kernel.models.documents
Responsibility: ORM persistence for the four stock-affecting document kinds
    (purchase invoice, purchase return, waste, stocktaking) and their line
    items.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/values.py only.

Invariants enforced:
    - state is an explicit DocumentState value ("open" | "closed");
      closed_at / closed_by_id are audit fields, not the state flag.
    - OPEN -> CLOSED only.  The flip is a compare-and-set UPDATE issued by
      ClosingService; DocumentService refuses every mutation of a CLOSED
      document.
    - total is the sum of line totals, recomputed on every edit and frozen
      at close.
    - Lines are ordered by position and cascade-deleted with their header
      (only possible while OPEN).

Failure modes:
    - IntegrityError on unknown product_id (FK).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import Base, TrackedBase, UUIDString
from stock_kernel.domain.values import DocumentKind, DocumentState


class StockDocument(TrackedBase):
    """Common header columns for every stock-affecting document."""

    __abstract__ = True

    state: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DocumentState.OPEN.value,
    )
    closed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    closed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    total: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def document_state(self) -> DocumentState:
        return DocumentState(self.state)


class StockDocumentItem(Base):
    """Common line columns: product, ordering, price and computed total."""

    __abstract__ = True

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=False,
    )
    position: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    price: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))


# =============================================================================
# Purchase invoice
# =============================================================================


class PurchaseInvoice(StockDocument):
    __tablename__ = "purchase_invoices"

    __table_args__ = (
        Index("idx_purchase_invoice_state", "state"),
        Index("idx_purchase_invoice_supplier", "supplier_id"),
    )

    # Supplier lives outside this kernel (no FK)
    supplier_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    items: Mapped[list[PurchaseInvoiceItem]] = relationship(
        back_populates="document",
        order_by="PurchaseInvoiceItem.position",
        cascade="all, delete-orphan",
    )


class PurchaseInvoiceItem(StockDocumentItem):
    __tablename__ = "purchase_invoice_items"

    document_id: Mapped[UUID] = mapped_column(
        "purchase_invoice_id",
        UUIDString(),
        ForeignKey("purchase_invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    document: Mapped[PurchaseInvoice] = relationship(back_populates="items")


# =============================================================================
# Return purchase invoice
# =============================================================================


class ReturnPurchaseInvoice(StockDocument):
    __tablename__ = "return_purchase_invoices"

    __table_args__ = (
        Index("idx_return_purchase_invoice_state", "state"),
        Index("idx_return_purchase_invoice_supplier", "supplier_id"),
    )

    supplier_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    items: Mapped[list[ReturnPurchaseInvoiceItem]] = relationship(
        back_populates="document",
        order_by="ReturnPurchaseInvoiceItem.position",
        cascade="all, delete-orphan",
    )


class ReturnPurchaseInvoiceItem(StockDocumentItem):
    __tablename__ = "return_purchase_invoice_items"

    document_id: Mapped[UUID] = mapped_column(
        "return_purchase_invoice_id",
        UUIDString(),
        ForeignKey("return_purchase_invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    document: Mapped[ReturnPurchaseInvoice] = relationship(back_populates="items")


# =============================================================================
# Waste
# =============================================================================


class Waste(StockDocument):
    __tablename__ = "wastes"

    __table_args__ = (
        Index("idx_waste_state", "state"),
    )

    items: Mapped[list[WastedItem]] = relationship(
        back_populates="document",
        order_by="WastedItem.position",
        cascade="all, delete-orphan",
    )


class WastedItem(StockDocumentItem):
    __tablename__ = "wasted_items"

    document_id: Mapped[UUID] = mapped_column(
        "waste_id",
        UUIDString(),
        ForeignKey("wastes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    document: Mapped[Waste] = relationship(back_populates="items")


# =============================================================================
# Stocktaking
# =============================================================================


class Stocktaking(StockDocument):
    __tablename__ = "stocktakings"

    __table_args__ = (
        Index("idx_stocktaking_state", "state"),
    )

    items: Mapped[list[StocktakingItem]] = relationship(
        back_populates="document",
        order_by="StocktakingItem.position",
        cascade="all, delete-orphan",
    )


class StocktakingItem(StockDocumentItem):
    """Counted line: system snapshot versus counted quantity."""

    __tablename__ = "stocktaking_items"

    document_id: Mapped[UUID] = mapped_column(
        "stocktaking_id",
        UUIDString(),
        ForeignKey("stocktakings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Stock cache quantity captured when the line was added
    stock_quantity: Mapped[Decimal] = mapped_column(nullable=False)
    real_quantity: Mapped[Decimal] = mapped_column(nullable=False)

    document: Mapped[Stocktaking] = relationship(back_populates="items")

    @property
    def quantity(self) -> Decimal:
        return self.real_quantity


# =============================================================================
# Kind registry
# =============================================================================


@dataclass(frozen=True)
class DocumentModels:
    header: type[StockDocument]
    item: type[StockDocumentItem]
    has_supplier: bool


DOCUMENT_MODELS: dict[DocumentKind, DocumentModels] = {
    DocumentKind.PURCHASE_INVOICE: DocumentModels(
        PurchaseInvoice, PurchaseInvoiceItem, has_supplier=True,
    ),
    DocumentKind.RETURN_PURCHASE_INVOICE: DocumentModels(
        ReturnPurchaseInvoice, ReturnPurchaseInvoiceItem, has_supplier=True,
    ),
    DocumentKind.WASTE: DocumentModels(Waste, WastedItem, has_supplier=False),
    DocumentKind.STOCKTAKING: DocumentModels(
        Stocktaking, StocktakingItem, has_supplier=False,
    ),
}


def models_for(kind: DocumentKind) -> DocumentModels:
    return DOCUMENT_MODELS[DocumentKind(kind)]
