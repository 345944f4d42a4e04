"""Pause bookkeeping for operation instances."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import List, Optional
from uuid import uuid4

from .clock import Clock, SystemClock
from .domain import OperationStatus, PauseEvent
from .repository import TrackingStore
from .state_machine import InvalidStateError, NoOpenPauseError, OperationAction

logger = logging.getLogger(__name__)


class PauseLedger:
    """Records the start and end of every pause of an operation instance.

    The ledger guarantees that at most one pause event per instance is open
    at any time and answers duration queries. Moving the instance between
    ``in_progress`` and ``paused`` is the caller's job.
    """

    def __init__(self, store: TrackingStore, clock: Optional[Clock] = None) -> None:
        self._store = store
        self._clock = clock or SystemClock()

    def events_for(self, instance_id: str) -> List[PauseEvent]:
        """Pause events of an instance, newest first."""
        events = self._store.pause_events.find(
            lambda event: event.instance_id == instance_id
        )
        events.sort(key=lambda event: event.start_time, reverse=True)
        return events

    def open_event(self, instance_id: str) -> Optional[PauseEvent]:
        for event in self.events_for(instance_id):
            if event.is_open:
                return event
        return None

    def open_pause(
        self,
        instance_id: str,
        reason_id: str,
        notes: Optional[str] = None,
        *,
        status: OperationStatus,
        team_id: str = "",
    ) -> PauseEvent:
        """Open a pause; ``status`` is the instance status the caller holds."""
        with self._store.transaction():
            if self.open_event(instance_id) is not None:
                raise InvalidStateError(
                    status,
                    OperationAction.PAUSE,
                    f"Operation {instance_id!r} already has an open pause",
                )
            event = PauseEvent(
                id=str(uuid4()),
                team_id=team_id,
                instance_id=instance_id,
                pause_reason_id=reason_id,
                start_time=self._clock.now(),
                notes=notes,
            )
            self._store.pause_events.add(event.id, event)
        logger.debug("Opened pause %s on operation %s", event.id, instance_id)
        return event

    def close_open_pause(self, instance_id: str) -> PauseEvent:
        with self._store.transaction():
            event = self.open_event(instance_id)
            if event is None:
                raise NoOpenPauseError(instance_id)
            event.end_time = max(self._clock.now(), event.start_time)
            self._store.pause_events.upsert(event.id, event)
        logger.debug("Closed pause %s on operation %s", event.id, instance_id)
        return event

    def closed_duration(self, instance_id: str) -> timedelta:
        total = timedelta(0)
        for event in self.events_for(instance_id):
            if event.end_time is not None:
                total += event.end_time - event.start_time
        return total

    def open_duration(self, instance_id: str, as_of: Optional[datetime] = None) -> timedelta:
        event = self.open_event(instance_id)
        if event is None:
            return timedelta(0)
        as_of = as_of or self._clock.now()
        return max(as_of - event.start_time, timedelta(0))


__all__ = ["PauseLedger"]
