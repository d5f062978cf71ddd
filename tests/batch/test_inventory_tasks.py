"""
Tests for stock_batch.tasks.inventory_tasks -- daily aggregation as a batch job.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from stock_batch.domain.types import BatchItemStatus, BatchJobStatus
from stock_batch.services.executor import BatchExecutor
from stock_batch.tasks import DAILY_AGGREGATION, default_task_registry
from stock_batch.tasks.inventory_tasks import days_to_aggregate
from stock_kernel.domain.values import MovementOperation, MovementReason, SourceRef
from stock_kernel.exceptions import InvalidDateRangeError

TODAY = date(2024, 3, 15)


# =============================================================================
# days_to_aggregate
# =============================================================================


class TestDaysToAggregate:
    def test_default_is_yesterday(self):
        assert days_to_aggregate({}, TODAY) == [date(2024, 3, 14)]

    def test_days_back(self):
        assert days_to_aggregate({"days_back": 3}, TODAY) == [
            date(2024, 3, 12), date(2024, 3, 13), date(2024, 3, 14),
        ]

    def test_days_back_zero_is_empty(self):
        assert days_to_aggregate({"days_back": 0}, TODAY) == []

    def test_explicit_range_wins(self):
        days = days_to_aggregate({"start": "2024-02-28", "end": "2024-03-01", "days_back": 9}, TODAY)
        assert days == [date(2024, 2, 28), date(2024, 2, 29), date(2024, 3, 1)]

    def test_start_only_is_single_day(self):
        assert days_to_aggregate({"start": "2024-03-02"}, TODAY) == [date(2024, 3, 2)]

    def test_inverted_range(self):
        with pytest.raises(InvalidDateRangeError):
            days_to_aggregate({"start": "2024-03-05", "end": "2024-03-01"}, TODAY)


# =============================================================================
# DailyAggregationTask through the executor
# =============================================================================


@pytest.fixture
def executor(session, clock):
    return BatchExecutor(session=session, task_registry=default_task_registry(clock), clock=clock)


@pytest.fixture
def flour(ledger_service, create_product, actor_id):
    """+40 on Mar 12, -15 waste on Mar 13."""
    product = create_product("Flour")
    src = SourceRef.order(uuid4())
    ledger_service.record(
        product.product_id, 40, MovementOperation.INCREMENT, MovementReason.PURCHASE, src,
        actor_id, occurred_at=datetime(2024, 3, 12, 9, tzinfo=timezone.utc),
    )
    ledger_service.record(
        product.product_id, -15, MovementOperation.DECREMENT, MovementReason.WASTE, src,
        actor_id, occurred_at=datetime(2024, 3, 13, 9, tzinfo=timezone.utc),
    )
    return product


def _run(executor, actor_id, parameters):
    job = executor.submit_job(
        job_name="daily aggregation",
        task_type=DAILY_AGGREGATION,
        idempotency_key=f"agg-{uuid4()}",
        actor_id=actor_id,
        parameters=parameters,
    )
    result = executor.execute_job(job.job_id, actor_id)
    return result, executor.get_job_items(job.job_id)


class TestDailyAggregationTask:
    def test_one_item_per_day_plus_stale(self, executor, flour, actor_id):
        result, items = _run(executor, actor_id, {"days_back": 4})
        assert result.status == BatchJobStatus.COMPLETED
        assert [i.item_key for i in items] == [
            "2024-03-11", "2024-03-12", "2024-03-13", "2024-03-14", "stale",
        ]
        by_key = {i.item_key: i.result_data for i in items}
        assert by_key["2024-03-11"]["rows_written"] == 0
        assert by_key["2024-03-12"] == {"day": "2024-03-12", "rows_written": 1, "differences": 1}
        assert by_key["2024-03-13"]["rows_written"] == 1
        assert by_key["stale"] == {"days": [], "rows_written": 0}

    def test_rows_written(self, executor, flour, daily_selector, actor_id):
        _run(executor, actor_id, {"start": "2024-03-12", "end": "2024-03-13", "refresh_stale": False})
        row = daily_selector.get_row(flour.product_id, date(2024, 3, 13))
        assert row.start_quantity == Decimal("40")
        assert row.return_waste_quantity == Decimal("15")
        assert row.closing_quantity == Decimal("25")

    def test_create_missing_writes_quiet_days(self, executor, flour, daily_selector, actor_id):
        _, items = _run(
            executor, actor_id,
            {"start": "2024-03-14", "create_missing": True, "refresh_stale": False},
        )
        assert items[0].result_data["rows_written"] == 1
        assert daily_selector.get_row(flour.product_id, date(2024, 3, 14)).closing_quantity == Decimal("25")

    def test_product_filter(self, executor, flour, create_product, ledger_service, actor_id):
        other = create_product("Salt")
        ledger_service.record(
            other.product_id, 3, MovementOperation.INCREMENT, MovementReason.PURCHASE,
            SourceRef.order(uuid4()), actor_id,
            occurred_at=datetime(2024, 3, 12, 9, tzinfo=timezone.utc),
        )
        _, items = _run(
            executor, actor_id,
            {"start": "2024-03-12", "product_ids": [str(other.product_id)], "refresh_stale": False},
        )
        assert items[0].result_data["rows_written"] == 1

    def test_stale_item_repairs_rows(
        self, executor, flour, ledger_service, daily_selector, actor_id,
    ):
        _run(executor, actor_id, {"start": "2024-03-12", "end": "2024-03-13", "refresh_stale": False})
        ledger_service.record(
            flour.product_id, 5, MovementOperation.INCREMENT, MovementReason.PURCHASE,
            SourceRef.order(uuid4()), actor_id,
            occurred_at=datetime(2024, 3, 12, 18, tzinfo=timezone.utc),
        )
        assert daily_selector.stale_rows(limit=10)

        _, items = _run(executor, actor_id, {"days_back": 0})
        (stale,) = items
        assert stale.status == BatchItemStatus.SUCCEEDED
        assert "2024-03-12" in stale.result_data["days"]
        assert daily_selector.stale_rows(limit=10) == ()
        row = daily_selector.get_row(flour.product_id, date(2024, 3, 12))
        assert row.incoming_quantity == Decimal("45")
        assert row.closing_quantity == Decimal("45")
