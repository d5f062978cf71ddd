"""stock_batch.services -- Batch execution and scheduling."""

from stock_batch.services.executor import BatchExecutor
from stock_batch.services.scheduler import BatchScheduler, ensure_schedule

__all__ = [
    "BatchExecutor",
    "BatchScheduler",
    "ensure_schedule",
]
