"""
BatchExecutor -- runs a submitted job item by item.

Each item runs inside its own SAVEPOINT.  An item that fails (by returning
FAILED or by raising) rolls back only what it wrote; a SKIPPED item is
rolled back too, since it has nothing to keep.  The job carries on with the
next item either way, so one bad day does not stop a week-long
re-aggregation.

The executor only flushes.  Whoever calls it (the scheduler, a CLI, a test)
commits or rolls back the surrounding transaction.
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_batch.domain.types import (
    BatchItemResult,
    BatchItemStatus,
    BatchJob,
    BatchJobStatus,
    BatchRunResult,
)
from stock_batch.models.batch import BatchItemModel, BatchJobModel
from stock_batch.tasks.base import BatchItemInput, BatchTask, TaskRegistry
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.exceptions import (
    BatchAlreadyRunningError,
    BatchIdempotencyError,
    BatchJobNotFoundError,
    TaskNotRegisteredError,
)
from stock_kernel.logging_config import LogContext, get_logger

logger = get_logger("batch.executor")

UNHANDLED = "UNHANDLED_EXCEPTION"


class _Stopwatch:
    def __init__(self) -> None:
        self._start = time.monotonic()

    @property
    def ms(self) -> int:
        return int((time.monotonic() - self._start) * 1000)


class BatchExecutor:
    def __init__(
        self,
        session: Session,
        task_registry: TaskRegistry,
        clock: Clock | None = None,
    ):
        self._session = session
        self._tasks = task_registry
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Job lifecycle
    # ------------------------------------------------------------------

    def submit_job(
        self,
        job_name: str,
        task_type: str,
        idempotency_key: str,
        actor_id: UUID,
        parameters: dict[str, Any] | None = None,
        correlation_id: str | None = None,
    ) -> BatchJob:
        """
        Record a PENDING job.

        Raises:
            TaskNotRegisteredError: No task handles ``task_type``.
            BatchIdempotencyError: A job with ``idempotency_key`` exists.
        """
        if task_type not in self._tasks:
            raise TaskNotRegisteredError(task_type, self._tasks.list_tasks())

        previous = self._session.scalar(
            select(BatchJobModel.id).where(BatchJobModel.idempotency_key == idempotency_key)
        )
        if previous is not None:
            raise BatchIdempotencyError(idempotency_key, str(previous))

        job = BatchJobModel(
            id=uuid4(),
            job_name=job_name,
            task_type=task_type,
            status=BatchJobStatus.PENDING.value,
            idempotency_key=idempotency_key,
            correlation_id=correlation_id,
            parameters=parameters or None,
            created_at=self._clock.now(),
            created_by_id=actor_id,
        )
        self._session.add(job)
        self._session.flush()
        logger.info(
            "batch_job_submitted",
            extra={"job_id": str(job.id), "task_type": task_type, "idempotency_key": idempotency_key},
        )
        return job.to_dto()

    def execute_job(self, job_id: UUID, actor_id: UUID) -> BatchRunResult:
        """
        Run a PENDING job to completion.

        The job row is locked for the duration, and a job that has left
        PENDING is refused, so two callers can never run the same job.

        Raises:
            BatchJobNotFoundError: No such job.
            BatchAlreadyRunningError: The job is not PENDING.
            TaskNotRegisteredError: The job's task is no longer registered.
        """
        watch = _Stopwatch()
        job = self._lock_job(job_id)
        if job.status != BatchJobStatus.PENDING.value:
            raise BatchAlreadyRunningError(job.job_name, str(job_id))
        task = self._tasks.get(job.task_type)
        parameters = dict(job.parameters or {})

        with LogContext.bind(job_id=str(job_id), correlation_id=job.correlation_id):
            as_of = self._clock.now()
            job.status = BatchJobStatus.RUNNING.value
            job.started_at = as_of
            self._session.flush()
            logger.info("batch_job_started", extra={"task_type": job.task_type})

            try:
                items = task.prepare_items(parameters=parameters, session=self._session, as_of=as_of)
            except Exception as exc:
                logger.error("batch_prepare_failed", exc_info=True)
                self._finish(job, BatchJobStatus.FAILED, f"prepare_items failed: {exc}")
                return BatchRunResult(job_id=job_id, status=BatchJobStatus.FAILED, duration_ms=watch.ms)

            results = tuple(
                self._run_item(task, item, parameters, as_of, job_id, actor_id) for item in items
            )
            status = job.record_counts(results)
            self._finish(job, status)
            logger.info(
                "batch_job_finished",
                extra={
                    "status": status.value,
                    "succeeded": job.succeeded_items,
                    "failed": job.failed_items,
                    "skipped": job.skipped_items,
                    "duration_ms": watch.ms,
                },
            )

        return BatchRunResult(
            job_id=job_id, status=status, item_results=results, duration_ms=watch.ms,
        )

    def cancel_job(self, job_id: UUID, reason: str, actor_id: UUID) -> BatchJob:
        """
        Stop a job that has not finished.

        Raises:
            BatchJobNotFoundError: No such job.
            ValueError: The job already reached a final status.
        """
        job = self._lock_job(job_id)
        if BatchJobStatus(job.status).is_terminal:
            raise ValueError(f"Cannot cancel job in status {job.status}")
        job.updated_by_id = actor_id
        self._finish(job, BatchJobStatus.CANCELLED, f"Cancelled: {reason}")
        logger.info("batch_job_cancelled", extra={"job_id": str(job_id), "reason": reason})
        return job.to_dto()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_job(self, job_id: UUID) -> BatchJob:
        job = self._session.get(BatchJobModel, job_id)
        if job is None:
            raise BatchJobNotFoundError(str(job_id))
        return job.to_dto()

    def get_job_items(self, job_id: UUID) -> tuple[BatchItemResult, ...]:
        rows = self._session.scalars(
            select(BatchItemModel)
            .where(BatchItemModel.job_id == job_id)
            .order_by(BatchItemModel.item_index)
        )
        return tuple(row.to_dto() for row in rows)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lock_job(self, job_id: UUID) -> BatchJobModel:
        job = self._session.scalar(
            select(BatchJobModel).where(BatchJobModel.id == job_id).with_for_update()
        )
        if job is None:
            raise BatchJobNotFoundError(str(job_id))
        return job

    def _finish(self, job: BatchJobModel, status: BatchJobStatus, summary: str | None = None) -> None:
        job.status = status.value
        job.completed_at = self._clock.now()
        if summary is not None:
            job.error_summary = summary
        self._session.flush()

    def _run_item(
        self,
        task: BatchTask,
        item: BatchItemInput,
        parameters: dict[str, Any],
        as_of: datetime,
        job_id: UUID,
        actor_id: UUID,
    ) -> BatchItemResult:
        watch = _Stopwatch()
        savepoint = self._session.begin_nested()
        try:
            outcome = task.execute_item(
                item=item, parameters=parameters, session=self._session, as_of=as_of,
            )
        except Exception as exc:
            savepoint.rollback()
            logger.warning(
                "batch_item_failed",
                extra={"item_key": item.item_key, "error_code": UNHANDLED},
                exc_info=True,
            )
            status, data, code, message = BatchItemStatus.FAILED, None, UNHANDLED, str(exc)
        else:
            if outcome.status == BatchItemStatus.SUCCEEDED:
                savepoint.commit()
            else:
                savepoint.rollback()
            if outcome.status == BatchItemStatus.FAILED:
                logger.warning(
                    "batch_item_failed",
                    extra={
                        "item_key": item.item_key,
                        "error_code": outcome.error_code,
                        "error_message": outcome.error_message,
                    },
                )
            status, data = outcome.status, outcome.result_data
            code, message = outcome.error_code, outcome.error_message

        result = BatchItemResult(
            item_index=item.item_index,
            item_key=item.item_key,
            status=status,
            result_data=data,
            error_code=code,
            error_message=message,
            duration_ms=watch.ms,
        )
        self._session.add(
            BatchItemModel.from_result(
                result, job_id, created_at=self._clock.now(), created_by_id=actor_id,
            )
        )
        return result
