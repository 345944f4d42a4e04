"""Transition table for the operation instance lifecycle.

No I/O here: the table answers "may this action be applied to an instance in
this status, and what status does it lead to". The service layer applies the
answer to the store inside a transaction.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

from .domain import OperationStatus


class OperationAction(str, Enum):
    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    COMPLETE = "complete"
    CANCEL = "cancel"


class TrackingError(Exception):
    """Base class for lifecycle errors."""


class InvalidStateError(TrackingError):
    """Raised when an action is not permitted from the current status."""

    def __init__(
        self,
        status: OperationStatus,
        action: OperationAction,
        message: Optional[str] = None,
    ) -> None:
        self.status = status
        self.action = action
        super().__init__(
            message
            or f"Invalid state transition: cannot {action.value} an operation "
            f"that is {status.value}"
        )


class NoOpenPauseError(InvalidStateError):
    """Raised when resuming an instance that has no open pause event."""

    def __init__(
        self, instance_id: str, status: OperationStatus = OperationStatus.PAUSED
    ) -> None:
        self.instance_id = instance_id
        super().__init__(
            status,
            OperationAction.RESUME,
            f"Operation {instance_id!r} has no open pause to resume",
        )


TRANSITIONS: Dict[Tuple[OperationStatus, OperationAction], OperationStatus] = {
    (OperationStatus.PENDING, OperationAction.START): OperationStatus.IN_PROGRESS,
    (OperationStatus.IN_PROGRESS, OperationAction.PAUSE): OperationStatus.PAUSED,
    (OperationStatus.PAUSED, OperationAction.RESUME): OperationStatus.IN_PROGRESS,
    (OperationStatus.IN_PROGRESS, OperationAction.COMPLETE): OperationStatus.COMPLETED,
    (OperationStatus.WAITING, OperationAction.CANCEL): OperationStatus.CANCELLED,
    (OperationStatus.PENDING, OperationAction.CANCEL): OperationStatus.CANCELLED,
    (OperationStatus.IN_PROGRESS, OperationAction.CANCEL): OperationStatus.CANCELLED,
    (OperationStatus.PAUSED, OperationAction.CANCEL): OperationStatus.CANCELLED,
}

# Statuses from which an action may be taken, derived from the table.
SOURCE_STATUSES: Dict[OperationAction, FrozenSet[OperationStatus]] = {
    action: frozenset(status for (status, act) in TRANSITIONS if act is action)
    for action in OperationAction
}


def next_status(status: OperationStatus, action: OperationAction) -> OperationStatus:
    """Return the status ``action`` leads to, or raise :class:`InvalidStateError`."""
    try:
        return TRANSITIONS[(status, action)]
    except KeyError:
        if status is OperationStatus.WAITING and action is OperationAction.START:
            raise InvalidStateError(
                status,
                action,
                "Invalid state transition: operation is waiting for the previous "
                "operation to complete",
            ) from None
        raise InvalidStateError(status, action) from None


def can_apply(status: OperationStatus, action: OperationAction) -> bool:
    return (status, action) in TRANSITIONS


__all__ = [
    "OperationAction",
    "TrackingError",
    "InvalidStateError",
    "NoOpenPauseError",
    "TRANSITIONS",
    "SOURCE_STATUSES",
    "next_status",
    "can_apply",
]
