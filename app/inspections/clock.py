"""
SafeCheck Inspections — Clock

All scheduling and expiry logic reads "now" through a Clock so it can be
pinned in tests. Timestamps are epoch milliseconds; calendar math is done
on naive local datetimes.
"""
import datetime
import threading
from typing import Optional

MS_PER_DAY = 24 * 60 * 60 * 1000


def to_ms(dt: datetime.datetime) -> int:
    return int(dt.timestamp() * 1000)


def from_ms(ts: int) -> datetime.datetime:
    return datetime.datetime.fromtimestamp(ts / 1000)


def start_of_day_ms(ts: int) -> int:
    """Local midnight of the day containing ts."""
    dt = from_ms(ts)
    return to_ms(datetime.datetime(dt.year, dt.month, dt.day))


class Clock:
    """Wall clock."""

    def now(self) -> datetime.datetime:
        return datetime.datetime.now()

    def now_ms(self) -> int:
        return to_ms(self.now())

    def start_of_today_ms(self) -> int:
        return start_of_day_ms(self.now_ms())


class ManualClock(Clock):
    """Clock that only moves when told to."""

    def __init__(self, start: Optional[datetime.datetime] = None):
        self._lock = threading.Lock()
        self._now = start or datetime.datetime.now()

    def now(self) -> datetime.datetime:
        with self._lock:
            return self._now

    def set(self, dt: datetime.datetime):
        with self._lock:
            self._now = dt

    def advance(self, **kwargs) -> datetime.datetime:
        """Move forward by a timedelta built from kwargs (days=, hours=, ...)."""
        with self._lock:
            self._now = self._now + datetime.timedelta(**kwargs)
            return self._now


_default_clock = Clock()


def get_clock() -> Clock:
    return _default_clock
