"""
Time source for the stock ledger.

Every timestamp the ledger writes (movement ``occurred_at``, document
``closed_at``, batch job start and finish) and the "today" boundary used
when a report range ends in the current day are taken from a Clock passed
in by the caller.  Nothing outside this module reads the wall clock.

All clocks work in UTC.  A business day is the UTC calendar date of the
moment a movement happened.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone

UTC = timezone.utc


class Clock(ABC):
    """Source of the current moment, always timezone-aware and in UTC."""

    @abstractmethod
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        """Business day of ``now()``."""
        return self.now().date()


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(UTC)


class DeterministicClock(Clock):
    """
    Frozen clock for tests and replays.

    The time only moves when asked to: ``set_time`` jumps to a moment,
    ``advance`` steps forward by a number of seconds.  A naive ``fixed_time``
    is taken to be UTC.
    """

    DEFAULT_TIME = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def __init__(self, fixed_time: datetime | None = None):
        self._current = self._normalise(fixed_time or self.DEFAULT_TIME)

    @staticmethod
    def _normalise(moment: datetime) -> datetime:
        if moment.tzinfo is None:
            return moment.replace(tzinfo=UTC)
        return moment.astimezone(UTC)

    def now(self) -> datetime:
        return self._current

    def set_time(self, moment: datetime) -> None:
        self._current = self._normalise(moment)

    def advance(self, seconds: float = 1) -> datetime:
        self._current += timedelta(seconds=seconds)
        return self._current
