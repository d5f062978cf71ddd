"""
Fixtures for the command-line scripts.

Scripts open their own engine, so data is seeded through a separate engine
on the same on-disk database and committed before the script runs.
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.orm import sessionmaker

from stock_kernel.db.engine import make_engine, reset_engine
from stock_kernel.domain.values import MovementOperation, MovementReason, SourceRef
from stock_kernel.services.ledger_service import LedgerService
from stock_kernel.services.product_service import ProductService
from stock_kernel.services.stock_cache_service import StockCacheService


@pytest.fixture(autouse=True)
def _reset_module_engine():
    yield
    reset_engine()


@pytest.fixture
def db_session_factory(file_database_url):
    eng = make_engine(file_database_url)
    yield sessionmaker(bind=eng, expire_on_commit=False)
    eng.dispose()


@pytest.fixture
def seed(db_session_factory, clock, actor_id):
    """
    Factory fixture: ``seed(name, [(delta, reason, datetime), ...], min_stock=0)``.

    Creates the product, records its movements and commits.
    """

    def _seed(name, movements, min_stock=0, cost="2.00"):
        with db_session_factory() as s:
            product = ProductService(s).create_product(
                name=name, actor_id=actor_id, cost=cost, min_stock=min_stock,
            )
            ledger = LedgerService(s, clock=clock, stock_cache=StockCacheService(s))
            src = SourceRef.order(uuid4())
            for delta, reason, when in movements:
                op = (
                    MovementOperation.INCREMENT
                    if Decimal(str(delta)) > 0
                    else MovementOperation.DECREMENT
                )
                ledger.record(product.product_id, delta, op, reason, src, actor_id, occurred_at=when)
            s.commit()
            return product

    return _seed


def _at(day: int, hour: int = 10) -> datetime:
    return datetime(2024, 3, day, hour, tzinfo=timezone.utc)


@pytest.fixture
def flour(seed):
    """+100 on Mar 10, -20 waste on Mar 11."""
    return seed(
        "Flour",
        [
            (100, MovementReason.PURCHASE, _at(10)),
            (-20, MovementReason.WASTE, _at(11)),
        ],
    )
