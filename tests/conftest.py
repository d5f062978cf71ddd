"""
Pytest fixtures for the stock ledger test suite.

Provides:
- An in-memory SQLite database per test (fresh schema, ledger immutability
  listeners registered)
- Service, selector and factory fixtures wired to a DeterministicClock
- Structured log capture

Environment Variables:
- DATABASE_URL: PostgreSQL connection URL for tests marked ``postgres``.
  Those tests are skipped when it is not set to a PostgreSQL URL.
"""

import json
import logging
import os
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session, sessionmaker

import stock_batch.models  # noqa: F401  (registers batch tables)
from stock_kernel.db.engine import create_schema, make_engine
from stock_kernel.domain.clock import DeterministicClock
from stock_kernel.domain.values import DocumentKind
from stock_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from stock_kernel.selectors.daily_selector import DailySelector
from stock_kernel.selectors.document_selector import DocumentSelector
from stock_kernel.selectors.movement_selector import MovementSelector
from stock_kernel.selectors.stock_selector import StockSelector
from stock_kernel.services.aggregation_service import AggregationService
from stock_kernel.services.closing_service import ClosingService
from stock_kernel.services.document_service import DocumentService
from stock_kernel.services.ledger_service import LedgerService
from stock_kernel.services.product_service import ProductService
from stock_kernel.services.stock_cache_service import StockCacheService
from stock_services.close_orchestrator import CloseOrchestrator
from stock_services.reconciliation_service import ReconciliationService
from stock_services.sales_integration import SalesIntegrationService

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

# Noon on a Friday; "today" for every test unless a test moves the clock.
TEST_NOW = datetime(2024, 3, 15, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture stock_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, close_orchestrator):
            close_orchestrator.close(...)
            logs = captured_logs()
            assert any(r["message"] == "document_closed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("stock_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


def get_postgres_url() -> str | None:
    url = os.environ.get("DATABASE_URL", "")
    return url if url.startswith("postgresql") else None


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine():
    """Fresh in-memory SQLite engine with the full schema."""
    eng = make_engine("sqlite://")
    create_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    """One session per test; the database disappears with the engine."""
    s = session_factory()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def file_database_url(tmp_path) -> str:
    """
    URL of an on-disk SQLite database with the full schema.

    For code that opens its own engine (scripts) or several sessions at once
    (scheduler).
    """
    url = f"sqlite:///{tmp_path / 'stock.db'}"
    eng = make_engine(url)
    create_schema(eng)
    eng.dispose()
    return url


# =============================================================================
# Actors and clock
# =============================================================================


@pytest.fixture
def actor_id() -> UUID:
    return TEST_ACTOR_ID


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(fixed_time=TEST_NOW)


# =============================================================================
# Services and selectors
# =============================================================================


@pytest.fixture
def product_service(session) -> ProductService:
    return ProductService(session)


@pytest.fixture
def stock_cache(session) -> StockCacheService:
    return StockCacheService(session)


@pytest.fixture
def ledger_service(session, clock, stock_cache) -> LedgerService:
    return LedgerService(session, clock=clock, stock_cache=stock_cache)


@pytest.fixture
def document_service(session, stock_cache) -> DocumentService:
    return DocumentService(session, stock_cache=stock_cache)


@pytest.fixture
def closing_service(session, clock, ledger_service) -> ClosingService:
    return ClosingService(session, clock=clock, ledger=ledger_service)


@pytest.fixture
def close_orchestrator(session, clock) -> CloseOrchestrator:
    return CloseOrchestrator(session, clock=clock)


@pytest.fixture
def aggregation_service(session, clock) -> AggregationService:
    return AggregationService(session, clock=clock)


@pytest.fixture
def reconciliation_service(session, clock) -> ReconciliationService:
    return ReconciliationService(session, clock=clock)


@pytest.fixture
def sales_service(session, clock, ledger_service) -> SalesIntegrationService:
    return SalesIntegrationService(session, clock=clock, ledger=ledger_service)


@pytest.fixture
def movement_selector(session) -> MovementSelector:
    return MovementSelector(session)


@pytest.fixture
def stock_selector(session) -> StockSelector:
    return StockSelector(session)


@pytest.fixture
def document_selector(session) -> DocumentSelector:
    return DocumentSelector(session)


@pytest.fixture
def daily_selector(session) -> DailySelector:
    return DailySelector(session)


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def create_product(product_service, actor_id):
    """Factory fixture: create a catalog product and return its ProductInfo."""
    counter = {"n": 0}

    def _create(
        name: str | None = None,
        cost: Decimal | int | str = Decimal("2.50"),
        min_stock: Decimal | int | str = Decimal("0"),
        unit: str = "kg",
    ):
        counter["n"] += 1
        return product_service.create_product(
            name=name or f"Product {counter['n']:03d}",
            actor_id=actor_id,
            unit=unit,
            cost=cost,
            min_stock=min_stock,
        )

    return _create


@pytest.fixture
def make_document(document_service, actor_id):
    """
    Factory fixture: create an OPEN document with lines.

    ``lines`` is a list of ``(product_id, quantity)`` or
    ``(product_id, quantity, price)`` tuples.  Purchase kinds default the
    price to 1.
    """

    def _make(kind: DocumentKind, lines=(), supplier_id=None):
        snapshot = document_service.create(kind, actor_id, supplier_id=supplier_id)
        for line in lines:
            product_id, quantity, *rest = line
            price = rest[0] if rest else None
            if price is None and kind in (
                DocumentKind.PURCHASE_INVOICE,
                DocumentKind.RETURN_PURCHASE_INVOICE,
            ):
                price = Decimal("1")
            snapshot = document_service.add_item(
                kind, snapshot.document_id, product_id, quantity, actor_id, price=price,
            )
        return snapshot

    return _make


@pytest.fixture
def receive_stock(make_document, close_orchestrator, actor_id):
    """Factory fixture: put stock on hand by closing a purchase invoice."""

    def _receive(product_id: UUID, quantity: Decimal | int | str, price="1"):
        doc = make_document(DocumentKind.PURCHASE_INVOICE, [(product_id, quantity, price)])
        result = close_orchestrator.close(
            DocumentKind.PURCHASE_INVOICE, doc.document_id, actor_id,
        )
        assert result.is_success, result.message
        return result

    return _receive
