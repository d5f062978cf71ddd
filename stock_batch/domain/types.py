"""
Value types for batch jobs and their schedules.

A job is the unit the scheduler submits (for example "aggregate yesterday's
movements"); it is split into items (one per day) that succeed or fail on
their own.  Nothing here touches the database.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


class BatchItemStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class BatchJobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIALLY_COMPLETED = "partially_completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self not in (BatchJobStatus.PENDING, BatchJobStatus.RUNNING)

    @classmethod
    def from_counts(cls, succeeded: int, failed: int, skipped: int) -> BatchJobStatus:
        """
        COMPLETED when no item failed (an empty job included), FAILED when
        every item failed, PARTIALLY_COMPLETED otherwise.
        """
        if not failed:
            return cls.COMPLETED
        if succeeded or skipped:
            return cls.PARTIALLY_COMPLETED
        return cls.FAILED


class ScheduleFrequency(str, Enum):
    ONCE = "once"
    INTERVAL = "interval"
    HOURLY = "hourly"
    DAILY = "daily"
    # Registered but only run when submitted by hand.
    ON_DEMAND = "on_demand"


@dataclass(frozen=True)
class BatchJob:
    job_id: UUID
    job_name: str
    task_type: str
    status: BatchJobStatus
    idempotency_key: str
    parameters: dict[str, Any] = field(default_factory=dict)
    total_items: int = 0
    succeeded_items: int = 0
    failed_items: int = 0
    skipped_items: int = 0
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    correlation_id: str | None = None
    error_summary: str | None = None


@dataclass(frozen=True)
class BatchItemResult:
    item_index: int
    item_key: str
    status: BatchItemStatus
    result_data: dict[str, Any] | None = None
    error_code: str | None = None
    error_message: str | None = None
    duration_ms: int = 0


@dataclass(frozen=True)
class BatchRunResult:
    """What one ``BatchExecutor.execute_job`` call did."""

    job_id: UUID
    status: BatchJobStatus
    item_results: tuple[BatchItemResult, ...] = ()
    duration_ms: int = 0

    def _count(self, status: BatchItemStatus) -> int:
        return sum(1 for r in self.item_results if r.status == status)

    @property
    def total_items(self) -> int:
        return len(self.item_results)

    @property
    def succeeded(self) -> int:
        return self._count(BatchItemStatus.SUCCEEDED)

    @property
    def failed(self) -> int:
        return self._count(BatchItemStatus.FAILED)

    @property
    def skipped(self) -> int:
        return self._count(BatchItemStatus.SKIPPED)


@dataclass(frozen=True)
class JobSchedule:
    schedule_id: UUID
    job_name: str
    task_type: str
    frequency: ScheduleFrequency
    parameters: dict[str, Any] = field(default_factory=dict)
    interval_seconds: int | None = None
    next_run_at: datetime | None = None
    last_run_at: datetime | None = None
    last_run_status: BatchJobStatus | None = None
    is_active: bool = True
