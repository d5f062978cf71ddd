"""
Pure schedule evaluation.

``should_fire`` and ``compute_next_run`` take every timestamp from the
caller and perform no I/O, so the scheduler's decisions can be tested with
a fixed clock.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from stock_batch.domain.types import JobSchedule, ScheduleFrequency

_FIXED_PERIODS: dict[ScheduleFrequency, timedelta] = {
    ScheduleFrequency.HOURLY: timedelta(hours=1),
    ScheduleFrequency.DAILY: timedelta(days=1),
}


def should_fire(schedule: JobSchedule, as_of: datetime) -> bool:
    """Whether ``schedule`` is due at ``as_of``.

    Rules:
        - Inactive and ON_DEMAND schedules never fire.
        - ONCE fires only if it has never run.
        - Recurring schedules fire once ``as_of`` reaches ``next_run_at``;
          a schedule with no ``next_run_at`` yet is due immediately.
    """
    if not schedule.is_active:
        return False

    match schedule.frequency:
        case ScheduleFrequency.ON_DEMAND:
            return False
        case ScheduleFrequency.ONCE:
            return schedule.last_run_at is None

    if schedule.next_run_at is None:
        return True
    return as_of >= schedule.next_run_at


def compute_next_run(
    frequency: ScheduleFrequency,
    last_run_at: datetime | None,
    interval_seconds: int | None = None,
) -> datetime | None:
    """Next due time after a run at ``last_run_at``.

    Returns None for ONCE and ON_DEMAND, and for INTERVAL schedules without
    a positive interval.
    """
    if last_run_at is None:
        return None

    if frequency == ScheduleFrequency.INTERVAL:
        if not interval_seconds or interval_seconds <= 0:
            return None
        return last_run_at + timedelta(seconds=interval_seconds)

    period = _FIXED_PERIODS.get(frequency)
    if period is None:
        return None
    return last_run_at + period
