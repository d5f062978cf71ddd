"""
stock_batch.domain -- Pure types and schedule evaluation for batch jobs.

ZERO I/O.  All types are frozen dataclasses.
"""

from stock_batch.domain.schedule import compute_next_run, should_fire
from stock_batch.domain.types import (
    BatchItemResult,
    BatchItemStatus,
    BatchJob,
    BatchJobStatus,
    BatchRunResult,
    JobSchedule,
    ScheduleFrequency,
)

__all__ = [
    "BatchItemResult",
    "BatchItemStatus",
    "BatchJob",
    "BatchJobStatus",
    "BatchRunResult",
    "JobSchedule",
    "ScheduleFrequency",
    "compute_next_run",
    "should_fire",
]
