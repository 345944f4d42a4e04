"""Productive time of an operation instance, net of pauses."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, Optional

from .clock import Clock, SystemClock
from .domain import OperationInstance, OperationStatus, PauseEvent
from .pause_ledger import PauseLedger


def active_seconds(
    instance: OperationInstance,
    pause_events: Iterable[PauseEvent],
    now: datetime,
) -> int:
    """Whole seconds the instance has been worked on.

    ``end - start`` minus every closed pause, minus the open pause when the
    instance is currently paused. Once ``actual_end_time`` is set the result
    no longer depends on ``now``.
    """
    if instance.actual_start_time is None:
        return 0
    end = instance.actual_end_time or now
    raw = end - instance.actual_start_time
    paused = timedelta(0)
    for event in pause_events:
        if event.end_time is not None:
            paused += event.end_time - event.start_time
        elif instance.status is OperationStatus.PAUSED:
            paused += max(end - event.start_time, timedelta(0))
    return max(0, int((raw - paused).total_seconds()))


class ActiveTimeCalculator:
    """Binds :func:`active_seconds` to a pause ledger and a clock."""

    def __init__(self, ledger: PauseLedger, clock: Optional[Clock] = None) -> None:
        self._ledger = ledger
        self._clock = clock or SystemClock()

    def active_seconds(self, instance: OperationInstance) -> int:
        return active_seconds(
            instance, self._ledger.events_for(instance.id), self._clock.now()
        )


__all__ = ["active_seconds", "ActiveTimeCalculator"]
