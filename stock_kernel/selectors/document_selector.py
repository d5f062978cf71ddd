"""
Module: stock_kernel.selectors.document_selector
Responsibility: Read-only access to stock-affecting documents as
    DocumentSnapshot DTOs.
Architecture position: Kernel > Selectors.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from stock_kernel.domain.dtos import DocumentLine, DocumentSnapshot
from stock_kernel.domain.values import DocumentKind, DocumentState
from stock_kernel.exceptions import DocumentNotFoundError
from stock_kernel.models.documents import StockDocument, StockDocumentItem, models_for
from stock_kernel.selectors.base import BaseSelector


def line_to_dto(kind: DocumentKind, item: StockDocumentItem) -> DocumentLine:
    if kind == DocumentKind.STOCKTAKING:
        return DocumentLine(
            item_id=item.id,
            product_id=item.product_id,
            position=item.position,
            quantity=item.real_quantity,
            price=item.price,
            total=item.total,
            stock_quantity=item.stock_quantity,
            real_quantity=item.real_quantity,
        )
    return DocumentLine(
        item_id=item.id,
        product_id=item.product_id,
        position=item.position,
        quantity=item.quantity,
        price=item.price,
        total=item.total,
    )


def document_to_dto(kind: DocumentKind, document: StockDocument) -> DocumentSnapshot:
    kind = DocumentKind(kind)
    return DocumentSnapshot(
        document_id=document.id,
        kind=kind,
        state=DocumentState(document.state),
        total=document.total,
        created_by_id=document.created_by_id,
        lines=tuple(line_to_dto(kind, item) for item in document.items),
        supplier_id=getattr(document, "supplier_id", None),
        notes=document.notes,
        closed_at=document.closed_at,
        closed_by_id=document.closed_by_id,
    )


class DocumentSelector(BaseSelector[StockDocument]):

    def get(self, kind: DocumentKind, document_id: UUID) -> DocumentSnapshot:
        """
        Snapshot of one document with its lines in position order.

        Raises:
            DocumentNotFoundError: No document of ``kind`` has this id.
        """
        kind = DocumentKind(kind)
        header = models_for(kind).header
        document = self.session.get(header, document_id)
        if document is None:
            raise DocumentNotFoundError(kind.value, str(document_id))
        return document_to_dto(kind, document)

    def list_documents(
        self,
        kind: DocumentKind,
        state: DocumentState | None = None,
    ) -> tuple[DocumentSnapshot, ...]:
        kind = DocumentKind(kind)
        header = models_for(kind).header
        stmt = select(header).order_by(header.created_at, header.id)
        if state is not None:
            stmt = stmt.where(header.state == DocumentState(state).value)
        return tuple(
            document_to_dto(kind, doc)
            for doc in self.session.execute(stmt).scalars().all()
        )

    def open_stocktaking_id(self) -> UUID | None:
        """Id of the open stocktaking, if any (at most one exists)."""
        header = models_for(DocumentKind.STOCKTAKING).header
        return self.session.execute(
            select(header.id).where(header.state == DocumentState.OPEN.value).limit(1)
        ).scalar_one_or_none()
