"""
stock_batch.tasks -- Task protocol, registry and the inventory tasks.
"""

from stock_batch.tasks.base import (
    BatchItemInput,
    BatchTask,
    BatchTaskResult,
    TaskRegistry,
)
from stock_batch.tasks.inventory_tasks import DAILY_AGGREGATION, DailyAggregationTask


def default_task_registry(clock=None) -> TaskRegistry:
    """Registry with every built-in task registered."""
    registry = TaskRegistry()
    registry.register(DailyAggregationTask(clock=clock))
    return registry


__all__ = [
    "DAILY_AGGREGATION",
    "BatchItemInput",
    "BatchTask",
    "BatchTaskResult",
    "DailyAggregationTask",
    "TaskRegistry",
    "default_task_registry",
]
