"""
BatchScheduler -- polls job_schedules and runs whatever is due.

One ``tick`` opens a session, walks the active schedules in name order and,
for each one that is due, submits and executes a job and records the run
on the schedule.  The tick commits once at the end.

Every schedule fires inside its own SAVEPOINT: an unknown task type or a
reused idempotency key undoes that schedule's job and leaves the others
alone.  The idempotency key is the schedule id plus the current minute, so
two ticks in the same minute (two scheduler processes, or a restart) can
not run the same schedule twice.

This is a single-process poller: there is no leader election between
schedulers and all times are UTC.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Any, Callable
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_batch.domain.schedule import compute_next_run, should_fire
from stock_batch.domain.types import JobSchedule, ScheduleFrequency
from stock_batch.models.batch import JobScheduleModel
from stock_batch.services.executor import BatchExecutor
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.logging_config import get_logger

logger = get_logger("batch.scheduler")


def idempotency_key_for(schedule_id: UUID, now: datetime) -> str:
    return f"schedule-{schedule_id}-{now:%Y%m%d-%H%M}"


def ensure_schedule(
    session: Session,
    *,
    job_name: str,
    task_type: str,
    frequency: ScheduleFrequency,
    actor_id: UUID,
    parameters: dict[str, Any] | None = None,
    interval_seconds: int | None = None,
) -> JobSchedule:
    """
    Create the named schedule, or bring an existing one in line with the
    given definition.  Run history (last/next run) is kept.  Flush only.
    """
    row = session.scalar(select(JobScheduleModel).where(JobScheduleModel.job_name == job_name))
    if row is None:
        row = JobScheduleModel(job_name=job_name, created_by_id=actor_id)
        session.add(row)
    else:
        row.updated_by_id = actor_id
    row.task_type = task_type
    row.frequency = frequency.value
    row.interval_seconds = interval_seconds
    row.parameters = parameters or None
    row.is_active = True
    session.flush()
    return row.to_dto()


class BatchScheduler:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        executor_factory: Callable[[Session], BatchExecutor],
        clock: Clock | None = None,
        actor_id: UUID | None = None,
        tick_interval_seconds: int = 60,
    ):
        self._sessions = session_factory
        self._executor_for = executor_factory
        self._clock = clock or SystemClock()
        self._actor_id = actor_id or uuid4()
        self._interval = tick_interval_seconds
        self._stopping = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def tick(self) -> int:
        """Fire every due schedule once; returns how many fired."""
        with self._sessions() as session:
            try:
                fired = self._fire_due(session)
                session.commit()
            except Exception:
                session.rollback()
                logger.exception("scheduler_tick_failed")
                return 0
            return fired

    def start(self) -> None:
        """Tick every ``tick_interval_seconds`` on a daemon thread."""
        if self.is_running:
            return
        self._stopping.clear()
        self._thread = threading.Thread(target=self._loop, name="batch-scheduler", daemon=True)
        self._thread.start()
        logger.info("scheduler_started", extra={"tick_interval": self._interval})

    def stop(self, timeout: float = 30.0) -> None:
        """Ask the thread to stop after the current schedule and wait for it."""
        self._stopping.set()
        if self.is_running:
            self._thread.join(timeout=timeout)
        logger.info("scheduler_stopped")

    def _loop(self) -> None:
        while not self._stopping.is_set():
            self.tick()
            self._stopping.wait(timeout=self._interval)

    def _fire_due(self, session: Session) -> int:
        now = self._clock.now()
        schedules = session.scalars(
            select(JobScheduleModel)
            .where(JobScheduleModel.is_active.is_(True))
            .order_by(JobScheduleModel.job_name)
        ).all()

        fired = 0
        for row in schedules:
            if self._stopping.is_set():
                break
            schedule = row.to_dto()
            if not should_fire(schedule, now):
                continue
            if self._fire(session, row, schedule, now):
                fired += 1
        return fired

    def _fire(
        self, session: Session, row: JobScheduleModel, schedule: JobSchedule, now: datetime,
    ) -> bool:
        log_fields = {"schedule_id": str(schedule.schedule_id), "job_name": schedule.job_name}
        savepoint = session.begin_nested()
        try:
            executor = self._executor_for(session)
            job = executor.submit_job(
                job_name=schedule.job_name,
                task_type=schedule.task_type,
                idempotency_key=idempotency_key_for(schedule.schedule_id, now),
                actor_id=self._actor_id,
                parameters=schedule.parameters,
            )
            result = executor.execute_job(job.job_id, self._actor_id)
            next_run = compute_next_run(schedule.frequency, now, schedule.interval_seconds)
            row.record_run(now, result.status, next_run, self._actor_id)
            savepoint.commit()
        except Exception:
            savepoint.rollback()
            logger.exception("schedule_fire_failed", extra=log_fields)
            return False

        logger.info(
            "schedule_fired",
            extra={
                **log_fields,
                "batch_job_id": str(job.job_id),
                "status": result.status.value,
                "next_run_at": next_run,
            },
        )
        return True
