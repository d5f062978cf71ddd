"""
PostgreSQL fixtures for the multi-connection race tests.
"""

import pytest
from sqlalchemy import text
from sqlalchemy.orm import sessionmaker

from stock_kernel.db.engine import create_schema, make_engine

from tests.conftest import get_postgres_url

_TABLES = (
    "job_schedules", "batch_items", "batch_jobs",
    "inventory_item_movements_daily", "inventory_item_movements", "inventory_items",
    "stocktaking_items", "stocktakings", "wasted_items", "wastes",
    "return_purchase_invoice_items", "return_purchase_invoices",
    "purchase_invoice_items", "purchase_invoices", "products",
)


@pytest.fixture
def pg_factory():
    url = get_postgres_url()
    if url is None:
        pytest.skip("DATABASE_URL does not point at PostgreSQL")
    eng = make_engine(url, pool_size=10)
    create_schema(eng)
    factory = sessionmaker(bind=eng, expire_on_commit=False)
    yield factory
    with eng.begin() as conn:
        conn.execute(text(f"TRUNCATE {', '.join(_TABLES)} CASCADE"))
    eng.dispose()
