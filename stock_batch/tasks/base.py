"""
What a batch task looks like, and where tasks are looked up.

A task turns job parameters into a list of items, then handles the items
one at a time.  Each ``execute_item`` call runs inside a SAVEPOINT opened
by BatchExecutor; the task flushes but never commits, and a failed item is
simply reported (the next scheduled run picks the work up again).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from sqlalchemy.orm import Session

from stock_batch.domain.types import BatchItemStatus
from stock_kernel.exceptions import TaskNotRegisteredError


@dataclass(frozen=True)
class BatchItemInput:
    item_index: int
    item_key: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BatchTaskResult:
    status: BatchItemStatus
    result_data: dict[str, Any] | None = None
    error_code: str | None = None
    error_message: str | None = None


@runtime_checkable
class BatchTask(Protocol):
    task_type: str
    description: str

    def prepare_items(
        self, parameters: dict[str, Any], session: Session, as_of: datetime,
    ) -> tuple[BatchItemInput, ...]: ...

    def execute_item(
        self, item: BatchItemInput, parameters: dict[str, Any], session: Session, as_of: datetime,
    ) -> BatchTaskResult: ...


class TaskRegistry:
    def __init__(self) -> None:
        self._by_type: dict[str, BatchTask] = {}

    def register(self, task: BatchTask) -> None:
        if task.task_type in self._by_type:
            raise ValueError(f"Task type '{task.task_type}' is already registered")
        self._by_type[task.task_type] = task

    def get(self, task_type: str) -> BatchTask:
        try:
            return self._by_type[task_type]
        except KeyError:
            raise TaskNotRegisteredError(task_type, self.list_tasks()) from None

    def list_tasks(self) -> tuple[str, ...]:
        return tuple(sorted(self._by_type))

    def __contains__(self, task_type: str) -> bool:
        return task_type in self._by_type

    def __len__(self) -> int:
        return len(self._by_type)
