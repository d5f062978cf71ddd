"""
Tests for CloseOrchestrator -- the transaction around a document close.

Each failure status must leave the document OPEN and the ledger and stock
cache untouched.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import update

from stock_kernel.domain.values import DocumentKind, DocumentState, MovementReason
from stock_kernel.exceptions import UnknownProductError
from stock_kernel.models.documents import models_for
from stock_kernel.selectors.document_selector import DocumentSelector
from stock_kernel.selectors.stock_selector import StockSelector
from stock_services._close_types import CloseStatus
from stock_services.close_orchestrator import CloseOrchestrator

PI = DocumentKind.PURCHASE_INVOICE
WASTE = DocumentKind.WASTE


@pytest.fixture
def open_invoice(make_document, create_product, session):
    """A committed OPEN purchase invoice for 5 units of one product."""
    product = create_product()
    doc = make_document(PI, [(product.product_id, 5, "2")])
    session.commit()
    return product, doc


def _assert_untouched(product, doc, document_selector, stock_selector, movement_selector):
    assert document_selector.get(PI, doc.document_id).state == DocumentState.OPEN
    assert stock_selector.quantity_of(product.product_id) == Decimal("0")
    assert movement_selector.movements_for(product.product_id) == ()


class TestSuccessfulClose:
    def test_returns_closed_result_and_commits(
        self, close_orchestrator, open_invoice, session_factory, actor_id,
    ):
        product, doc = open_invoice
        result = close_orchestrator.close(PI, doc.document_id, actor_id)

        assert result.is_success
        assert result.status == CloseStatus.CLOSED
        assert result.snapshot.state == DocumentState.CLOSED
        assert len(result.movement_ids) == 1
        assert result.error_code is None

        # Visible from a fresh session: the close was committed
        other = session_factory()
        try:
            assert StockSelector(other).quantity_of(product.product_id) == Decimal("5")
        finally:
            other.close()

    def test_logs_start_and_outcome(self, close_orchestrator, open_invoice, captured_logs, actor_id):
        _, doc = open_invoice
        close_orchestrator.close(PI, doc.document_id, actor_id)

        records = captured_logs()
        started = [r for r in records if r["message"] == "document_close_started"]
        closed = [r for r in records if r["message"] == "document_closed"]
        assert len(started) == 1 and len(closed) == 1
        assert closed[0]["document_id"] == str(doc.document_id)
        assert closed[0]["document_kind"] == PI.value
        assert closed[0]["movement_count"] == 1
        assert closed[0]["correlation_id"] == started[0]["correlation_id"]

    def test_auto_commit_off_leaves_transaction_to_caller(
        self, session, clock, open_invoice, actor_id,
    ):
        product, doc = open_invoice
        orchestrator = CloseOrchestrator(session, clock=clock, auto_commit=False)
        assert orchestrator.close(PI, doc.document_id, actor_id).is_success
        session.rollback()

        assert DocumentSelector(session).get(PI, doc.document_id).state == DocumentState.OPEN


    def test_oversold_stocktaking_closes(
        self, close_orchestrator, make_document, create_product, receive_stock,
        sales_service, stock_selector, movement_selector, actor_id,
    ):
        product = create_product()
        receive_stock(product.product_id, 10)
        sales_service.record_sale(uuid4(), {product.product_id: 15}, actor_id)
        doc = make_document(DocumentKind.STOCKTAKING, [(product.product_id, 0)])
        assert doc.lines[0].stock_quantity == Decimal("-5")

        result = close_orchestrator.close(DocumentKind.STOCKTAKING, doc.document_id, actor_id)

        assert result.status == CloseStatus.CLOSED, result.message
        assert stock_selector.quantity_of(product.product_id) == Decimal("0")
        (adjustment,) = [
            m for m in movement_selector.movements_for(product.product_id)
            if m.reason == MovementReason.STOCKTAKING_ADJUSTMENT
        ]
        assert adjustment.delta == Decimal("5")


class TestFailureStatuses:
    def test_not_found(self, close_orchestrator, actor_id):
        result = close_orchestrator.close(PI, uuid4(), actor_id)
        assert result.status == CloseStatus.NOT_FOUND
        assert result.error_code == "DOCUMENT_NOT_FOUND"
        assert not result.is_success
        assert result.snapshot is None

    def test_already_closed_is_not_applied_twice(
        self, close_orchestrator, open_invoice, stock_selector, movement_selector, actor_id,
    ):
        product, doc = open_invoice
        assert close_orchestrator.close(PI, doc.document_id, actor_id).is_success

        second = close_orchestrator.close(PI, doc.document_id, actor_id)
        assert second.status == CloseStatus.ALREADY_CLOSED
        assert stock_selector.quantity_of(product.product_id) == Decimal("5")
        assert len(movement_selector.movements_for(product.product_id)) == 1

    def test_invalid_quantity_rolls_back(
        self, close_orchestrator, open_invoice, session, document_selector, stock_selector,
        movement_selector, actor_id,
    ):
        product, doc = open_invoice
        item = models_for(PI).item
        session.execute(
            update(item).where(item.id == doc.lines[0].item_id).values(quantity=Decimal("0"))
        )
        session.commit()
        session.expire_all()

        result = close_orchestrator.close(PI, doc.document_id, actor_id)
        assert result.status == CloseStatus.INVALID_QUANTITY
        assert result.error_code == "INVALID_QUANTITY"
        _assert_untouched(product, doc, document_selector, stock_selector, movement_selector)

    def test_unknown_product_rolls_back_earlier_lines(
        self, close_orchestrator, make_document, create_product, session, document_selector,
        stock_selector, movement_selector, monkeypatch, actor_id,
    ):
        """The second line's product vanishes: the first line's movement must not survive."""
        first, second = create_product(), create_product()
        doc = make_document(PI, [(first.product_id, 3), (second.product_id, 4)])
        session.commit()

        ledger = close_orchestrator._closing._ledger
        original_record = ledger.record

        def record(product_id, *args, **kwargs):
            if product_id == second.product_id:
                raise UnknownProductError(str(product_id))
            return original_record(product_id, *args, **kwargs)

        monkeypatch.setattr(ledger, "record", record)

        result = close_orchestrator.close(PI, doc.document_id, actor_id)
        assert result.status == CloseStatus.UNKNOWN_PRODUCT
        _assert_untouched(first, doc, document_selector, stock_selector, movement_selector)

    def test_concurrency_conflict_rolls_back(
        self, close_orchestrator, open_invoice, session, stock_selector, movement_selector,
        monkeypatch, actor_id,
    ):
        product, doc = open_invoice
        header = models_for(PI).header
        ledger = close_orchestrator._closing._ledger
        original = ledger.record_specs

        def record_then_lose_race(specs, actor, occurred_at=None):
            ids = original(specs, actor, occurred_at=occurred_at)
            session.execute(
                update(header)
                .where(header.id == doc.document_id)
                .values(state=DocumentState.CLOSED.value)
                .execution_options(synchronize_session=False)
            )
            return ids

        monkeypatch.setattr(ledger, "record_specs", record_then_lose_race)

        result = close_orchestrator.close(PI, doc.document_id, actor_id)
        assert result.status == CloseStatus.CONCURRENCY_CONFLICT
        assert stock_selector.quantity_of(product.product_id) == Decimal("0")
        assert movement_selector.movements_for(product.product_id) == ()

    def test_conflict_without_auto_commit_undoes_only_the_close(
        self, session, clock, open_invoice, create_product, product_service,
        stock_selector, movement_selector, monkeypatch, actor_id,
    ):
        """The caller's own pending work survives; the close's writes do not."""
        product, doc = open_invoice
        pending = create_product("Salt")
        orchestrator = CloseOrchestrator(session, clock=clock, auto_commit=False)
        header = models_for(PI).header
        ledger = orchestrator._closing._ledger
        original = ledger.record_specs

        def record_then_lose_race(specs, actor, occurred_at=None):
            ids = original(specs, actor, occurred_at=occurred_at)
            session.execute(
                update(header)
                .where(header.id == doc.document_id)
                .values(state=DocumentState.CLOSED.value)
                .execution_options(synchronize_session=False)
            )
            return ids

        monkeypatch.setattr(ledger, "record_specs", record_then_lose_race)

        result = orchestrator.close(PI, doc.document_id, actor_id)
        assert result.status == CloseStatus.CONCURRENCY_CONFLICT
        assert stock_selector.quantity_of(product.product_id) == Decimal("0")
        assert movement_selector.movements_for(product.product_id) == ()
        assert product_service.get_product(pending.product_id).name == "Salt"

    def test_failure_is_logged_as_warning(self, close_orchestrator, captured_logs, actor_id):
        close_orchestrator.close(WASTE, uuid4(), actor_id)
        (failed,) = [r for r in captured_logs() if r["message"] == "close_failed"]
        assert failed["level"] == "WARNING"
        assert failed["status"] == CloseStatus.NOT_FOUND.value
        assert failed["exc_code"] == "DOCUMENT_NOT_FOUND"

    def test_unexpected_error_is_reraised(
        self, close_orchestrator, open_invoice, monkeypatch, actor_id,
    ):
        _, doc = open_invoice

        def boom(*args, **kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(close_orchestrator._closing._ledger, "record_specs", boom)
        with pytest.raises(RuntimeError):
            close_orchestrator.close(PI, doc.document_id, actor_id)
