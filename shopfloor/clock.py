"""Time sources used by the lifecycle engine."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock returning timezone aware UTC timestamps."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self._now = start or datetime(2024, 1, 1, 6, 0, tzinfo=timezone.utc)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def advance(self, *, seconds: float = 0, minutes: float = 0, hours: float = 0) -> datetime:
        delta = timedelta(seconds=seconds, minutes=minutes, hours=hours)
        if delta < timedelta(0):
            raise ValueError("A clock cannot move backwards")
        with self._lock:
            self._now += delta
            return self._now

    def set(self, moment: datetime) -> None:
        with self._lock:
            self._now = moment


__all__ = ["Clock", "SystemClock", "ManualClock"]
