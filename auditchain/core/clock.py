"""
Commit clocks for the appender.

Timestamps are truncated to milliseconds because the hash input carries
exactly three fractional digits; the stored created_at must be the same
instant that was hashed.
"""

import threading
from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        ...


def truncate_to_millis(ts: datetime) -> datetime:
    return ts.replace(microsecond=(ts.microsecond // 1000) * 1000)


class SystemClock:
    """Wall clock in UTC, millisecond precision."""

    def now(self) -> datetime:
        return truncate_to_millis(datetime.now(timezone.utc))


class SteppingClock:
    """
    Deterministic clock for tests.

    Each call to now() returns the next instant, starting at `start` and
    advancing by `step`.
    """

    def __init__(self, start: datetime, step: timedelta = timedelta(milliseconds=1)) -> None:
        if start.tzinfo is None:
            raise ValueError("start must be timezone-aware")
        self._next = truncate_to_millis(start.astimezone(timezone.utc))
        self._step = step
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            current = self._next
            self._next = current + self._step
            return current
