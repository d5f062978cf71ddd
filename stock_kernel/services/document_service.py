"""
DocumentService -- editing of open stock-affecting documents.

Responsibility:
    Create, edit and delete purchase invoices, purchase returns, waste
    write-offs and stocktakings while they are OPEN.  Closing is not here:
    ClosingService owns the OPEN -> CLOSED transition.

Architecture position:
    Kernel > Services -- flush-only, never commits.

Line rules per kind:
    purchase_invoice / return_purchase_invoice
        quantity > 0, price required, total = quantity * price
    waste
        quantity > 0, price defaults to product cost
    stocktaking
        quantity is the counted (real) quantity, may be 0;
        stock_quantity is captured from the Stock Cache when the line is
        added; price defaults to product cost;
        total = (real - stock) * price; one line per product

Invariants enforced:
    - Every mutation checks ``DocumentState.is_mutable`` first.
    - Header total == sum of line totals after every edit.
    - At most one OPEN stocktaking exists.

Failure modes:
    - DocumentNotFoundError, DocumentItemNotFoundError
    - DocumentClosedError on any mutation of a CLOSED document
    - OpenStocktakingExistsError, DuplicateDocumentLineError
    - InvalidQuantityError, InvalidPriceError, UnknownProductError
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from stock_kernel.db.types import round_money
from stock_kernel.domain.dtos import DocumentSnapshot
from stock_kernel.domain.values import (
    DocumentKind,
    DocumentState,
    validate_price,
    validate_quantity,
)
from stock_kernel.exceptions import (
    DocumentClosedError,
    DocumentItemNotFoundError,
    DocumentNotFoundError,
    DuplicateDocumentLineError,
    InvalidPriceError,
    OpenStocktakingExistsError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.documents import StockDocument, StockDocumentItem, models_for
from stock_kernel.selectors.document_selector import document_to_dto
from stock_kernel.services.base import BaseService
from stock_kernel.services.product_service import ProductService
from stock_kernel.services.stock_cache_service import StockCacheService

logger = get_logger("services.document")

_UNSET = object()

_PRICE_REQUIRED = frozenset({
    DocumentKind.PURCHASE_INVOICE,
    DocumentKind.RETURN_PURCHASE_INVOICE,
})


def _line_total(kind: DocumentKind, item: StockDocumentItem) -> Decimal:
    if kind == DocumentKind.STOCKTAKING:
        return round_money((item.real_quantity - item.stock_quantity) * item.price)
    return round_money(item.quantity * item.price)


class DocumentService(BaseService[StockDocument]):

    def __init__(self, session, stock_cache: StockCacheService | None = None):
        super().__init__(session)
        self._stock_cache = stock_cache or StockCacheService(session)
        self._products = ProductService(session)

    # ------------------------------------------------------------------
    # Header
    # ------------------------------------------------------------------

    def create(
        self,
        kind: DocumentKind,
        actor_id: UUID,
        supplier_id: UUID | None = None,
        notes: str | None = None,
    ) -> DocumentSnapshot:
        """
        Create an OPEN document with no lines.

        Raises:
            OpenStocktakingExistsError: ``kind`` is stocktaking and another
                stocktaking is still open.
            ValueError: ``supplier_id`` given for a kind without a supplier.
        """
        kind = DocumentKind(kind)
        models = models_for(kind)
        if supplier_id is not None and not models.has_supplier:
            raise ValueError(f"{kind.value} documents have no supplier")

        if kind == DocumentKind.STOCKTAKING:
            existing = self.session.execute(
                select(models.header.id)
                .where(models.header.state == DocumentState.OPEN.value)
                .limit(1)
            ).scalar_one_or_none()
            if existing is not None:
                raise OpenStocktakingExistsError(str(existing))

        fields = {
            "state": DocumentState.OPEN.value,
            "total": Decimal("0"),
            "notes": notes,
            "created_by_id": actor_id,
        }
        if models.has_supplier:
            fields["supplier_id"] = supplier_id
        document = models.header(**fields)
        self.session.add(document)
        self.session.flush()

        logger.info(
            "document_created",
            extra={"document_kind": kind.value, "document_id": str(document.id)},
        )
        return document_to_dto(kind, document)

    def update_header(
        self,
        kind: DocumentKind,
        document_id: UUID,
        actor_id: UUID,
        supplier_id=_UNSET,
        notes=_UNSET,
    ) -> DocumentSnapshot:
        """Change supplier and/or notes.  Omitted arguments are left as they are."""
        kind = DocumentKind(kind)
        document = self._require_open(kind, document_id, "update_header")
        if supplier_id is not _UNSET:
            if not models_for(kind).has_supplier:
                raise ValueError(f"{kind.value} documents have no supplier")
            document.supplier_id = supplier_id
        if notes is not _UNSET:
            document.notes = notes
        document.updated_by_id = actor_id
        self.session.flush()
        return document_to_dto(kind, document)

    def delete(self, kind: DocumentKind, document_id: UUID, actor_id: UUID) -> None:
        """Delete an OPEN document and its lines."""
        kind = DocumentKind(kind)
        document = self._require_open(kind, document_id, "delete")
        self.session.delete(document)
        self.session.flush()
        logger.info(
            "document_deleted",
            extra={
                "document_kind": kind.value,
                "document_id": str(document_id),
                "deleted_by": str(actor_id),
            },
        )

    # ------------------------------------------------------------------
    # Lines
    # ------------------------------------------------------------------

    def add_item(
        self,
        kind: DocumentKind,
        document_id: UUID,
        product_id: UUID,
        quantity: Decimal | int | str,
        actor_id: UUID,
        price: Decimal | int | str | None = None,
    ) -> DocumentSnapshot:
        """
        Append a line.

        For stocktaking ``quantity`` is the counted quantity and the current
        cached quantity is captured as the line's ``stock_quantity``.
        """
        kind = DocumentKind(kind)
        document = self._require_open(kind, document_id, "add_item")
        product = self._products.require(product_id)
        is_stocktaking = kind == DocumentKind.STOCKTAKING

        qty = validate_quantity(quantity, allow_zero=is_stocktaking)
        if price is None:
            if kind in _PRICE_REQUIRED:
                raise InvalidPriceError(price, f"is required on {kind.label} lines")
            unit_price = validate_price(product.cost)
        else:
            unit_price = validate_price(price)

        item_model = models_for(kind).item
        position = max((item.position for item in document.items), default=0) + 1
        if is_stocktaking:
            if any(item.product_id == product_id for item in document.items):
                raise DuplicateDocumentLineError(kind.value, str(document_id), str(product_id))
            item = item_model(
                product_id=product_id,
                position=position,
                stock_quantity=self._stock_cache.current_quantity(product_id),
                real_quantity=qty,
                price=unit_price,
            )
        else:
            item = item_model(
                product_id=product_id,
                position=position,
                quantity=qty,
                price=unit_price,
            )
        item.total = _line_total(kind, item)
        document.items.append(item)
        self._touch(kind, document, actor_id)

        logger.info(
            "document_item_added",
            extra={
                "document_kind": kind.value,
                "document_id": str(document_id),
                "item_id": str(item.id),
                "product_id": str(product_id),
                "quantity": str(qty),
            },
        )
        return document_to_dto(kind, document)

    def update_item(
        self,
        kind: DocumentKind,
        document_id: UUID,
        item_id: UUID,
        actor_id: UUID,
        quantity: Decimal | int | str | None = None,
        price: Decimal | int | str | None = None,
    ) -> DocumentSnapshot:
        """
        Change a line's quantity (counted quantity for stocktaking) and/or price.

        A stocktaking line also re-captures the current cached quantity as
        its ``stock_quantity``, whichever field changed.
        """
        kind = DocumentKind(kind)
        document = self._require_open(kind, document_id, "update_item")
        item = self._require_item(kind, document, item_id)

        if quantity is not None:
            qty = validate_quantity(quantity, allow_zero=kind == DocumentKind.STOCKTAKING)
            if kind == DocumentKind.STOCKTAKING:
                item.real_quantity = qty
            else:
                item.quantity = qty
        if price is not None:
            item.price = validate_price(price)
        if kind == DocumentKind.STOCKTAKING:
            item.stock_quantity = self._stock_cache.current_quantity(item.product_id)
        item.total = _line_total(kind, item)
        self._touch(kind, document, actor_id)
        return document_to_dto(kind, document)

    def remove_item(
        self,
        kind: DocumentKind,
        document_id: UUID,
        item_id: UUID,
        actor_id: UUID,
    ) -> DocumentSnapshot:
        kind = DocumentKind(kind)
        document = self._require_open(kind, document_id, "remove_item")
        item = self._require_item(kind, document, item_id)
        document.items.remove(item)
        self._touch(kind, document, actor_id)
        return document_to_dto(kind, document)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_open(self, kind: DocumentKind, document_id: UUID, operation: str) -> StockDocument:
        document = self.session.get(models_for(kind).header, document_id)
        if document is None:
            raise DocumentNotFoundError(kind.value, str(document_id))
        if not document.document_state.is_mutable:
            raise DocumentClosedError(kind.value, str(document_id), operation)
        return document

    def _require_item(
        self,
        kind: DocumentKind,
        document: StockDocument,
        item_id: UUID,
    ) -> StockDocumentItem:
        for item in document.items:
            if item.id == item_id:
                return item
        raise DocumentItemNotFoundError(kind.value, str(document.id), str(item_id))

    def _touch(self, kind: DocumentKind, document: StockDocument, actor_id: UUID) -> None:
        document.total = sum((_line_total(kind, item) for item in document.items), Decimal("0"))
        document.updated_by_id = actor_id
        self.session.flush()
