"""
Tests for stock_batch.services.scheduler.

Validates BatchScheduler: tick() evaluation, schedule firing, next_run_at
updates, isolation between schedules and the start/stop lifecycle.

Uses an on-disk SQLite database because each tick opens its own session.
"""

import time
from datetime import datetime, timedelta
from typing import Any

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from stock_batch.domain.types import BatchItemStatus, BatchJobStatus, ScheduleFrequency
from stock_batch.models.batch import BatchJobModel, JobScheduleModel
from stock_batch.services.executor import BatchExecutor
from stock_batch.services.scheduler import BatchScheduler
from stock_batch.tasks.base import BatchItemInput, BatchTaskResult, TaskRegistry
from stock_kernel.db.engine import make_engine

# =============================================================================
# Test task implementations
# =============================================================================


class SchedulerTestTask:
    """Always succeeds with a single item."""

    task_type = "test.scheduler_task"
    description = "Scheduler test task"

    def prepare_items(
        self, parameters: dict[str, Any], session: Session, as_of: datetime,
    ) -> tuple[BatchItemInput, ...]:
        return (BatchItemInput(item_index=0, item_key="item-000"),)

    def execute_item(
        self, item: BatchItemInput, parameters: dict[str, Any],
        session: Session, as_of: datetime,
    ) -> BatchTaskResult:
        return BatchTaskResult(status=BatchItemStatus.SUCCEEDED)


class FailingSchedulerTask:
    """Every item fails."""

    task_type = "test.failing_task"
    description = "Failing scheduler task"

    def prepare_items(self, parameters, session, as_of):
        return (BatchItemInput(item_index=0, item_key="item-000"),)

    def execute_item(self, item, parameters, session, as_of):
        return BatchTaskResult(
            status=BatchItemStatus.FAILED, error_code="FAIL", error_message="always fails",
        )


def _make_registry() -> TaskRegistry:
    registry = TaskRegistry()
    registry.register(SchedulerTestTask())
    registry.register(FailingSchedulerTask())
    return registry


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def scheduler_factory(file_database_url):
    eng = make_engine(file_database_url)
    yield sessionmaker(bind=eng, expire_on_commit=False)
    eng.dispose()


@pytest.fixture
def scheduler(scheduler_factory, clock, actor_id):
    registry = _make_registry()
    return BatchScheduler(
        session_factory=scheduler_factory,
        executor_factory=lambda s: BatchExecutor(session=s, task_registry=registry, clock=clock),
        clock=clock,
        actor_id=actor_id,
        tick_interval_seconds=1,
    )


def _create_schedule(
    factory,
    actor_id,
    *,
    job_name: str = "nightly",
    task_type: str = "test.scheduler_task",
    frequency: ScheduleFrequency = ScheduleFrequency.DAILY,
    next_run_at: datetime | None = None,
    **fields,
) -> JobScheduleModel:
    with factory() as s:
        schedule = JobScheduleModel(
            job_name=job_name,
            task_type=task_type,
            frequency=frequency.value,
            next_run_at=next_run_at,
            created_by_id=actor_id,
            **fields,
        )
        s.add(schedule)
        s.commit()
        return schedule


def _reload(factory, schedule_id):
    with factory() as s:
        return s.get(JobScheduleModel, schedule_id).to_dto()


def _jobs(factory) -> list[BatchJobModel]:
    with factory() as s:
        return list(s.execute(select(BatchJobModel).order_by(BatchJobModel.job_name)).scalars())


# =============================================================================
# tick() basics
# =============================================================================


class TestTickBasic:
    def test_no_schedules(self, scheduler):
        assert scheduler.tick() == 0

    def test_due_schedule_fires(self, scheduler, scheduler_factory, clock, actor_id):
        _create_schedule(scheduler_factory, actor_id, next_run_at=clock.now() - timedelta(minutes=1))
        assert scheduler.tick() == 1
        (job,) = _jobs(scheduler_factory)
        assert job.status == BatchJobStatus.COMPLETED.value
        assert job.job_name == "nightly"

    def test_future_schedule_waits(self, scheduler, scheduler_factory, clock, actor_id):
        _create_schedule(scheduler_factory, actor_id, next_run_at=clock.now() + timedelta(hours=1))
        assert scheduler.tick() == 0
        assert _jobs(scheduler_factory) == []

    def test_inactive_schedule_skipped(self, scheduler, scheduler_factory, clock, actor_id):
        _create_schedule(
            scheduler_factory, actor_id, next_run_at=clock.now(), is_active=False,
        )
        assert scheduler.tick() == 0

    def test_on_demand_never_fires(self, scheduler, scheduler_factory, clock, actor_id):
        _create_schedule(
            scheduler_factory, actor_id,
            frequency=ScheduleFrequency.ON_DEMAND, next_run_at=clock.now(),
        )
        assert scheduler.tick() == 0

    def test_once_fires_a_single_time(self, scheduler, scheduler_factory, clock, actor_id):
        _create_schedule(scheduler_factory, actor_id, frequency=ScheduleFrequency.ONCE)
        assert scheduler.tick() == 1
        clock.advance(3600)
        assert scheduler.tick() == 0
        assert len(_jobs(scheduler_factory)) == 1


# =============================================================================
# tick() schedule updates
# =============================================================================


class TestTickUpdates:
    def test_success_updates_schedule(self, scheduler, scheduler_factory, clock, actor_id):
        schedule = _create_schedule(scheduler_factory, actor_id, next_run_at=clock.now())
        scheduler.tick()
        dto = _reload(scheduler_factory, schedule.id)
        assert dto.last_run_status == BatchJobStatus.COMPLETED
        assert dto.last_run_at == clock.now()
        assert dto.next_run_at == clock.now() + timedelta(days=1)

    def test_failure_recorded(self, scheduler, scheduler_factory, clock, actor_id):
        schedule = _create_schedule(
            scheduler_factory, actor_id, task_type="test.failing_task", next_run_at=clock.now(),
        )
        assert scheduler.tick() == 1
        assert _reload(scheduler_factory, schedule.id).last_run_status == BatchJobStatus.FAILED

    def test_interval_schedule(self, scheduler, scheduler_factory, clock, actor_id):
        schedule = _create_schedule(
            scheduler_factory, actor_id,
            frequency=ScheduleFrequency.INTERVAL, interval_seconds=600,
        )
        scheduler.tick()
        assert _reload(scheduler_factory, schedule.id).next_run_at == clock.now() + timedelta(minutes=10)

    def test_parameters_reach_job(self, scheduler, scheduler_factory, clock, actor_id):
        _create_schedule(
            scheduler_factory, actor_id, next_run_at=clock.now(), parameters={"days_back": 3},
        )
        scheduler.tick()
        (job,) = _jobs(scheduler_factory)
        assert job.parameters == {"days_back": 3}


# =============================================================================
# Idempotency and isolation
# =============================================================================


class TestTickIdempotency:
    def test_idempotency_key_names_schedule_and_minute(
        self, scheduler, scheduler_factory, clock, actor_id,
    ):
        schedule = _create_schedule(scheduler_factory, actor_id, next_run_at=clock.now())
        scheduler.tick()
        (job,) = _jobs(scheduler_factory)
        assert job.idempotency_key == f"schedule-{schedule.id}-{clock.now():%Y%m%d-%H%M}"

    def test_refire_in_same_minute_is_refused(
        self, scheduler, scheduler_factory, clock, actor_id,
    ):
        _create_schedule(
            scheduler_factory, actor_id,
            frequency=ScheduleFrequency.INTERVAL, interval_seconds=1,
        )
        assert scheduler.tick() == 1
        clock.advance(5)
        # Same minute, same key: the duplicate submission is rolled back.
        assert scheduler.tick() == 0
        assert len(_jobs(scheduler_factory)) == 1

    def test_broken_schedule_does_not_block_others(
        self, scheduler, scheduler_factory, clock, actor_id,
    ):
        broken = _create_schedule(
            scheduler_factory, actor_id, job_name="a-broken",
            task_type="test.unregistered", next_run_at=clock.now(),
        )
        _create_schedule(scheduler_factory, actor_id, job_name="b-healthy", next_run_at=clock.now())

        assert scheduler.tick() == 1
        assert [j.job_name for j in _jobs(scheduler_factory)] == ["b-healthy"]
        assert _reload(scheduler_factory, broken.id).last_run_at is None


# =============================================================================
# Lifecycle
# =============================================================================


class TestLifecycle:
    def test_start_and_stop(self, scheduler):
        assert not scheduler.is_running
        scheduler.start()
        assert scheduler.is_running
        scheduler.stop(timeout=5)
        assert not scheduler.is_running

    def test_start_twice_keeps_one_thread(self, scheduler):
        scheduler.start()
        thread = scheduler._thread
        scheduler.start()
        assert scheduler._thread is thread
        scheduler.stop(timeout=5)

    def test_background_loop_fires_due_schedule(
        self, scheduler, scheduler_factory, clock, actor_id,
    ):
        _create_schedule(scheduler_factory, actor_id, next_run_at=clock.now())
        scheduler.start()
        deadline = time.monotonic() + 5
        while not _jobs(scheduler_factory) and time.monotonic() < deadline:
            time.sleep(0.05)
        scheduler.stop(timeout=5)
        assert len(_jobs(scheduler_factory)) == 1

    def test_stop_without_start(self, scheduler):
        scheduler.stop(timeout=1)
        assert not scheduler.is_running
