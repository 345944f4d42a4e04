"""Shop floor execution tracking for discrete manufacturing orders.

This package provides the operation lifecycle engine (state machine, pause
ledger, active time, sequential gating, order status aggregation), in-memory
and SQLite persistence, a batch reconciliation routine, and a JSON web API.
"""

from .clock import ManualClock, SystemClock
from .domain import (
    OperationInstance,
    OperationStatus,
    OrderPriority,
    OrderStatus,
    PauseCategory,
    PauseEvent,
    PauseReason,
    ProductionOrder,
    Routing,
    RoutingOperation,
)
from .repository import InMemoryStore, RecordNotFoundError
from .services import ShopFloorService
from .state_machine import InvalidStateError, NoOpenPauseError

__all__ = [
    "ManualClock",
    "SystemClock",
    "OperationInstance",
    "OperationStatus",
    "OrderPriority",
    "OrderStatus",
    "PauseCategory",
    "PauseEvent",
    "PauseReason",
    "ProductionOrder",
    "Routing",
    "RoutingOperation",
    "InMemoryStore",
    "RecordNotFoundError",
    "ShopFloorService",
    "InvalidStateError",
    "NoOpenPauseError",
]
