"""
Tests for ReconciliationService -- ideal versus actual stock over a date range.

The aggregate path and the pure ledger path must agree whatever state the
daily rows are in (missing, fresh, stale).
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from stock_kernel.domain.values import MovementOperation, MovementReason, SourceRef
from stock_kernel.exceptions import InvalidDateRangeError, UnknownProductError
from stock_services.reconciliation_service import ReconciliationService

INC = MovementOperation.INCREMENT
DEC = MovementOperation.DECREMENT

MAR_1 = date(2024, 3, 1)
MAR_10 = date(2024, 3, 10)
MAR_11 = date(2024, 3, 11)
MAR_14 = date(2024, 3, 14)
MAR_15 = date(2024, 3, 15)  # "today" in the test clock


def _at(day: date, hour: int = 10) -> datetime:
    return datetime(day.year, day.month, day.day, hour, tzinfo=timezone.utc)


@pytest.fixture
def record(ledger_service, actor_id):
    src = SourceRef.order(uuid4())

    def _record(product, delta, reason, day, hour=10):
        op = INC if Decimal(str(delta)) > 0 else DEC
        ledger_service.record(
            product.product_id, delta, op, reason, src, actor_id, occurred_at=_at(day, hour),
        )

    return _record


@pytest.fixture
def flour_history(create_product, record):
    """
    Flour at 2.00: start 100 before the range, then in Mar 10..15:
    +50 purchase, -8 sales, +1 sale return, -20 waste, -5 stocktaking.
    """
    flour = create_product("Flour", cost="2.00")
    record(flour, 100, MovementReason.PURCHASE, MAR_1)
    record(flour, 50, MovementReason.PURCHASE, MAR_10)
    record(flour, -8, MovementReason.SALE_CONSUMPTION, MAR_11)
    record(flour, 1, MovementReason.SALE_RETURN, MAR_11, hour=15)
    record(flour, -20, MovementReason.WASTE, MAR_14)
    record(flour, -5, MovementReason.STOCKTAKING_ADJUSTMENT, MAR_15)
    return flour


class TestReport:
    def test_figures(self, reconciliation_service, flour_history):
        report = reconciliation_service.report(MAR_10, MAR_15)
        row = report.row_for(flour_history.product_id)

        assert row.start_quantity == Decimal("100")
        assert row.incoming == Decimal("50")
        assert row.sales == Decimal("8")
        assert row.sales_returns == Decimal("1")
        assert row.return_waste == Decimal("20")
        assert row.adjustments == Decimal("-5")
        assert row.total_consumed == Decimal("28")
        # 100 + 50 + 1 - 28
        assert row.ideal_remaining == Decimal("123")
        assert row.actual_remaining_quantity == Decimal("118")
        assert row.deviation == Decimal("5")
        assert row.deviation_value == Decimal("10.00")
        assert row.deviation_percentage == Decimal("4.07")
        assert row.movement_count == 5
        assert report.products_with_deviation == 1
        assert report.total_deviation_value == Decimal("10.00")

    def test_actual_at_end_of_past_range(self, reconciliation_service, flour_history):
        row = reconciliation_service.report(MAR_10, MAR_11).row_for(flour_history.product_id)
        assert row.actual_remaining_quantity == Decimal("143")
        assert row.deviation == Decimal("0")

    def test_product_without_movements(self, reconciliation_service, create_product):
        idle = create_product("Idle")
        row = reconciliation_service.report(MAR_10, MAR_15).row_for(idle.product_id)
        assert row.start_quantity == row.ideal_remaining == row.actual_remaining_quantity == 0
        assert row.deviation_percentage == Decimal("0")

    def test_inactive_products_skipped_by_default(
        self, reconciliation_service, product_service, create_product, actor_id,
    ):
        gone = create_product("Gone")
        product_service.deactivate(gone.product_id, actor_id)
        report = reconciliation_service.report(MAR_10, MAR_15)
        assert report.row_for(gone.product_id) is None
        explicit = reconciliation_service.report(MAR_10, MAR_15, product_ids=[gone.product_id])
        assert explicit.row_for(gone.product_id) is not None

    def test_unknown_product(self, reconciliation_service):
        with pytest.raises(UnknownProductError):
            reconciliation_service.report(MAR_10, MAR_15, product_ids=[uuid4()])

    def test_range_must_be_ordered(self, reconciliation_service):
        with pytest.raises(InvalidDateRangeError):
            reconciliation_service.report(MAR_15, MAR_10)


class TestAggregatePathMatchesLedger:
    def _both(self, session, clock, start=MAR_10, end=MAR_15):
        service = ReconciliationService(session, clock=clock)
        with_aggregates = service.report(start, end, use_aggregates=True)
        ledger_only = service.report(start, end, use_aggregates=False)
        assert with_aggregates.used_aggregates and not ledger_only.used_aggregates
        return with_aggregates.rows, ledger_only.rows

    def test_without_daily_rows(self, session, clock, flour_history):
        aggregated, scanned = self._both(session, clock)
        assert aggregated == scanned

    def test_with_fresh_daily_rows(self, session, clock, aggregation_service, flour_history):
        aggregation_service.recalculate_range(MAR_1, MAR_15)
        aggregated, scanned = self._both(session, clock)
        assert aggregated == scanned

    def test_with_stale_daily_row(
        self, session, clock, aggregation_service, daily_selector, record, flour_history,
    ):
        aggregation_service.recalculate_range(MAR_1, MAR_14)
        record(flour_history, -3, MovementReason.WASTE, MAR_11, hour=20)
        assert daily_selector.get_row(flour_history.product_id, MAR_11).is_stale

        aggregated, scanned = self._both(session, clock)
        assert aggregated == scanned
        assert aggregated[0].return_waste == Decimal("23")

    def test_todays_row_is_ignored(
        self, session, clock, aggregation_service, record, flour_history,
    ):
        """A row for today may be outdated without being marked stale."""
        aggregation_service.aggregate_day(MAR_15)
        aggregated, scanned = self._both(session, clock, start=MAR_15, end=MAR_15)
        assert aggregated == scanned
        assert aggregated[0].adjustments == Decimal("-5")

    def test_configured_default(self, session, clock, flour_history):
        service = ReconciliationService(session, clock=clock, use_aggregates=False)
        assert not service.report(MAR_10, MAR_15).used_aggregates
