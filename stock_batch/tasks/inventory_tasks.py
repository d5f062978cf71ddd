"""
Batch tasks: inventory daily movement aggregation.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from stock_batch.domain.types import BatchItemStatus
from stock_batch.tasks.base import BatchItemInput, BatchTaskResult
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.exceptions import InvalidDateRangeError, StockLedgerError
from stock_kernel.services.aggregation_service import AggregationService

DAILY_AGGREGATION = "inventory.daily_aggregation"
_STALE_ITEM_KEY = "stale"


def days_to_aggregate(parameters: dict[str, Any], today: date) -> list[date]:
    """
    Days named by the job parameters.

    ``start``/``end`` (ISO dates) select an explicit range; otherwise the
    ``days_back`` days before ``today`` are used (default 1, i.e. yesterday).
    """
    if parameters.get("start"):
        start = date.fromisoformat(parameters["start"])
        end = date.fromisoformat(parameters.get("end") or parameters["start"])
    else:
        days_back = int(parameters.get("days_back", 1))
        if days_back < 1:
            return []
        start = today - timedelta(days=days_back)
        end = today - timedelta(days=1)
    if start > end:
        raise InvalidDateRangeError(start.isoformat(), end.isoformat())
    return [start + timedelta(days=n) for n in range((end - start).days + 1)]


class DailyAggregationTask:
    """One item per day, plus an optional item that repairs stale rows."""

    def __init__(self, clock: Clock | None = None):
        self._clock = clock or SystemClock()

    @property
    def task_type(self) -> str:
        return DAILY_AGGREGATION

    @property
    def description(self) -> str:
        return "Rebuild daily inventory movement aggregates from the ledger"

    def prepare_items(
        self,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> tuple[BatchItemInput, ...]:
        days = days_to_aggregate(parameters, as_of.date())
        items = [
            BatchItemInput(item_index=i, item_key=day.isoformat(), payload={"day": day.isoformat()})
            for i, day in enumerate(days)
        ]
        if parameters.get("refresh_stale", True):
            items.append(
                BatchItemInput(
                    item_index=len(items),
                    item_key=_STALE_ITEM_KEY,
                    payload={"limit": parameters.get("stale_limit")},
                )
            )
        return tuple(items)

    def execute_item(
        self,
        item: BatchItemInput,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> BatchTaskResult:
        service = AggregationService(session, clock=self._clock)
        try:
            if item.item_key == _STALE_ITEM_KEY:
                summaries = service.refresh_stale(limit=item.payload.get("limit"))
                return BatchTaskResult(
                    status=BatchItemStatus.SUCCEEDED,
                    result_data={
                        "days": [s.day.isoformat() for s in summaries],
                        "rows_written": sum(s.rows_written for s in summaries),
                    },
                )

            product_ids = parameters.get("product_ids")
            summary = service.aggregate_day(
                date.fromisoformat(item.payload["day"]),
                product_ids=[UUID(p) for p in product_ids] if product_ids else None,
                create_missing=bool(parameters.get("create_missing", False)),
            )
            return BatchTaskResult(
                status=BatchItemStatus.SUCCEEDED,
                result_data={
                    "day": summary.day.isoformat(),
                    "rows_written": summary.rows_written,
                    "differences": len(summary.differences),
                },
            )
        except StockLedgerError as exc:
            return BatchTaskResult(
                status=BatchItemStatus.FAILED,
                error_code=exc.code,
                error_message=str(exc),
            )
