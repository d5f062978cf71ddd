"""
Tables behind the batch executor and scheduler.

    batch_jobs     one row per submitted job; idempotency_key is unique
    batch_items    per-item outcome, written after the item's SAVEPOINT ends
    job_schedules  recurring job definitions polled by BatchScheduler

Column types come from the annotation map on stock_kernel.db.base.Base.
"""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_batch.domain.types import (
    BatchItemResult,
    BatchItemStatus,
    BatchJob,
    BatchJobStatus,
    JobSchedule,
    ScheduleFrequency,
)
from stock_kernel.db.base import TrackedBase

Name = String(200)
Status = String(50)


def _utc(value: datetime | None) -> datetime | None:
    """Re-attach UTC to datetimes read back naive (SQLite)."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class BatchJobModel(TrackedBase):
    __tablename__ = "batch_jobs"
    __table_args__ = (
        Index("ix_batch_jobs_status", "status"),
        Index("ix_batch_jobs_task_type", "task_type"),
    )

    job_name: Mapped[str] = mapped_column(Name)
    task_type: Mapped[str] = mapped_column(Name)
    status: Mapped[str] = mapped_column(Status)
    idempotency_key: Mapped[str] = mapped_column(Name, unique=True)
    correlation_id: Mapped[str | None] = mapped_column(Name)
    parameters: Mapped[dict | None] = mapped_column(JSON)

    total_items: Mapped[int] = mapped_column(default=0)
    succeeded_items: Mapped[int] = mapped_column(default=0)
    failed_items: Mapped[int] = mapped_column(default=0)
    skipped_items: Mapped[int] = mapped_column(default=0)

    started_at: Mapped[datetime | None]
    completed_at: Mapped[datetime | None]
    error_summary: Mapped[str | None] = mapped_column(Text)

    items: Mapped[list[BatchItemModel]] = relationship(
        back_populates="job", order_by="BatchItemModel.item_index",
    )

    def record_counts(self, results: tuple[BatchItemResult, ...]) -> BatchJobStatus:
        """Store per-status item counts and return the job's final status."""
        by_status = {s: 0 for s in BatchItemStatus}
        for result in results:
            by_status[result.status] += 1
        self.total_items = len(results)
        self.succeeded_items = by_status[BatchItemStatus.SUCCEEDED]
        self.failed_items = by_status[BatchItemStatus.FAILED]
        self.skipped_items = by_status[BatchItemStatus.SKIPPED]
        if self.failed_items:
            self.error_summary = f"{self.failed_items} item(s) failed"
        return BatchJobStatus.from_counts(
            self.succeeded_items, self.failed_items, self.skipped_items,
        )

    def to_dto(self) -> BatchJob:
        return BatchJob(
            job_id=self.id,
            job_name=self.job_name,
            task_type=self.task_type,
            status=BatchJobStatus(self.status),
            idempotency_key=self.idempotency_key,
            parameters=dict(self.parameters or {}),
            total_items=self.total_items,
            succeeded_items=self.succeeded_items,
            failed_items=self.failed_items,
            skipped_items=self.skipped_items,
            created_at=_utc(self.created_at),
            started_at=_utc(self.started_at),
            completed_at=_utc(self.completed_at),
            correlation_id=self.correlation_id,
            error_summary=self.error_summary,
        )


class BatchItemModel(TrackedBase):
    __tablename__ = "batch_items"
    __table_args__ = (Index("ix_batch_items_job_status", "job_id", "status"),)

    job_id: Mapped[UUID] = mapped_column(ForeignKey("batch_jobs.id", ondelete="CASCADE"))
    item_index: Mapped[int]
    item_key: Mapped[str] = mapped_column(Name)
    status: Mapped[str] = mapped_column(Status)
    result_data: Mapped[dict | None] = mapped_column(JSON)
    error_code: Mapped[str | None] = mapped_column(String(100))
    error_message: Mapped[str | None] = mapped_column(Text)
    duration_ms: Mapped[int] = mapped_column(default=0)

    job: Mapped[BatchJobModel] = relationship(back_populates="items")

    @classmethod
    def from_result(cls, result: BatchItemResult, job_id: UUID, **tracking) -> BatchItemModel:
        return cls(
            job_id=job_id,
            item_index=result.item_index,
            item_key=result.item_key,
            status=result.status.value,
            result_data=result.result_data,
            error_code=result.error_code,
            error_message=result.error_message,
            duration_ms=result.duration_ms,
            **tracking,
        )

    def to_dto(self) -> BatchItemResult:
        return BatchItemResult(
            item_index=self.item_index,
            item_key=self.item_key,
            status=BatchItemStatus(self.status),
            result_data=self.result_data,
            error_code=self.error_code,
            error_message=self.error_message,
            duration_ms=self.duration_ms,
        )


class JobScheduleModel(TrackedBase):
    __tablename__ = "job_schedules"
    __table_args__ = (
        Index("ix_job_schedules_active", "is_active"),
        Index("ix_job_schedules_next_run", "next_run_at"),
    )

    job_name: Mapped[str] = mapped_column(Name)
    task_type: Mapped[str] = mapped_column(Name)
    frequency: Mapped[str] = mapped_column(Status)
    interval_seconds: Mapped[int | None]
    parameters: Mapped[dict | None] = mapped_column(JSON)
    is_active: Mapped[bool] = mapped_column(default=True)

    next_run_at: Mapped[datetime | None]
    last_run_at: Mapped[datetime | None]
    last_run_status: Mapped[str | None] = mapped_column(Status)

    def record_run(
        self, ran_at: datetime, status: BatchJobStatus, next_run_at: datetime | None,
        actor_id: UUID,
    ) -> None:
        self.last_run_at = ran_at
        self.last_run_status = status.value
        self.next_run_at = next_run_at
        self.updated_by_id = actor_id

    def to_dto(self) -> JobSchedule:
        return JobSchedule(
            schedule_id=self.id,
            job_name=self.job_name,
            task_type=self.task_type,
            frequency=ScheduleFrequency(self.frequency),
            parameters=dict(self.parameters or {}),
            interval_seconds=self.interval_seconds,
            next_run_at=_utc(self.next_run_at),
            last_run_at=_utc(self.last_run_at),
            last_run_status=(
                None if self.last_run_status is None else BatchJobStatus(self.last_run_status)
            ),
            is_active=self.is_active,
        )
