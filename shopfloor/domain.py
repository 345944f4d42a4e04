"""Core data structures for shop floor operation tracking."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OperationStatus(str, Enum):
    """Lifecycle stages of a single operation instance."""

    WAITING = "waiting"
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (OperationStatus.COMPLETED, OperationStatus.CANCELLED)


class OrderStatus(str, Enum):
    """Aggregate status of a production order.

    ``WAITING`` is used both for an order whose instances are all gated and
    for an order sitting between two operations (earlier operations done,
    the next one released but not yet started).
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    WAITING = "waiting"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class OrderPriority(IntEnum):
    """Priority levels for production orders; higher runs first."""

    LOW = 1
    NORMAL = 2
    HIGH = 3
    CRITICAL = 4


class PauseCategory(str, Enum):
    """Grouping used by the pause reason catalog."""

    PLANNED = "planned"
    UNPLANNED = "unplanned"
    MAINTENANCE = "maintenance"
    QUALITY = "quality"
    MATERIAL = "material"
    OTHER = "other"


@dataclass(slots=True)
class Department:
    """Organisational unit that owns a set of work centres."""

    id: str
    team_id: str
    name: str
    description: str = ""
    is_active: bool = True


@dataclass(slots=True)
class RoutingOperation:
    """A template step of a routing."""

    id: str
    operation_number: int
    name: str
    description: str = ""
    setup_time_minutes: float = 0.0
    run_time_minutes: float = 0.0
    instructions: str = ""
    department_id: Optional[str] = None
    parallel_instances: int = 1


@dataclass(slots=True)
class Routing:
    """Ordered template of operations a product passes through."""

    id: str
    team_id: str
    name: str
    operations: List[RoutingOperation] = field(default_factory=list)
    description: str = ""
    version: str = "1.0"
    is_active: bool = True
    created_at: datetime = field(default_factory=_utcnow)

    def sorted_operations(self) -> List[RoutingOperation]:
        return sorted(self.operations, key=lambda op: op.operation_number)


@dataclass(slots=True)
class ProductionOrder:
    """A production request for a quantity of a product following a routing."""

    id: str
    team_id: str
    order_number: str
    routing_id: str
    quantity: int
    priority: OrderPriority = OrderPriority.NORMAL
    status: OrderStatus = OrderStatus.PENDING
    scheduled_start_date: Optional[datetime] = None
    scheduled_end_date: Optional[datetime] = None
    actual_start_date: Optional[datetime] = None
    actual_end_date: Optional[datetime] = None
    notes: str = ""
    custom_fields: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)


@dataclass(slots=True)
class OperationInstance:
    """The stateful occurrence of a routing operation for one order.

    ``operation_number`` and ``operation_name`` are copied from the routing
    operation when the order is created so the lifecycle engine never has
    to consult the routing catalog.
    """

    id: str
    team_id: str
    order_id: str
    routing_operation_id: str
    operation_number: int
    operation_name: str = ""
    department_id: Optional[str] = None
    status: OperationStatus = OperationStatus.WAITING
    operator_id: Optional[str] = None
    actual_start_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None
    quantity_completed: int = 0
    quantity_rejected: int = 0
    captured_data: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)


@dataclass(slots=True)
class PauseEvent:
    """An interval during which an operation instance was not worked."""

    id: str
    team_id: str
    instance_id: str
    pause_reason_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    notes: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.end_time is None


@dataclass(slots=True)
class PauseReason:
    """Team scoped catalog entry explaining why work was interrupted."""

    id: str
    team_id: str
    name: str
    category: PauseCategory = PauseCategory.OTHER
    description: str = ""
    is_active: bool = True


DEFAULT_PAUSE_REASONS = (
    ("Machine Breakdown", "Equipment failure or malfunction", PauseCategory.UNPLANNED),
    ("Material Shortage", "Waiting for materials or components", PauseCategory.MATERIAL),
    ("Quality Issue", "Quality check failure or defect found", PauseCategory.QUALITY),
    ("Preventive Maintenance", "Scheduled maintenance activities", PauseCategory.MAINTENANCE),
    ("Setup/Changeover", "Machine setup or product changeover", PauseCategory.PLANNED),
    ("Break Time", "Operator break or lunch", PauseCategory.PLANNED),
    ("Training", "Operator training or instruction", PauseCategory.OTHER),
    ("Tool Change", "Changing tools or fixtures", PauseCategory.PLANNED),
    ("Power Outage", "Electrical power interruption", PauseCategory.UNPLANNED),
    ("Safety Issue", "Safety concern or incident", PauseCategory.UNPLANNED),
)


__all__ = [
    "OperationStatus",
    "OrderStatus",
    "OrderPriority",
    "PauseCategory",
    "Department",
    "RoutingOperation",
    "Routing",
    "ProductionOrder",
    "OperationInstance",
    "PauseEvent",
    "PauseReason",
    "DEFAULT_PAUSE_REASONS",
]
