"""Sequential gating of operations within an order.

Pure functions over snapshots of an order's operation instances. Both the
live completion path and the reconciliation routine take their decisions
from here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .domain import OperationInstance, OperationStatus

# Never moved by reconciliation: work has started or finished on these.
PROTECTED_STATUSES = frozenset(
    {
        OperationStatus.COMPLETED,
        OperationStatus.IN_PROGRESS,
        OperationStatus.PAUSED,
        OperationStatus.CANCELLED,
    }
)


@dataclass(slots=True)
class GateDecision:
    """Outcome of evaluating the gate after an instance completed."""

    operation_number: int
    released: bool = False
    next_operation_number: Optional[int] = None
    promote: List[str] = field(default_factory=list)
    complete_order: bool = False


def group_by_operation(
    instances: Iterable[OperationInstance],
) -> Dict[int, List[OperationInstance]]:
    """Instances keyed by operation number in ascending order; cancelled ones are dropped."""
    groups: Dict[int, List[OperationInstance]] = {}
    for instance in instances:
        if instance.status is OperationStatus.CANCELLED:
            continue
        groups.setdefault(instance.operation_number, []).append(instance)
    return dict(sorted(groups.items()))


def operation_done(instances: Iterable[OperationInstance]) -> bool:
    return all(instance.status is OperationStatus.COMPLETED for instance in instances)


def current_operation_number(instances: Iterable[OperationInstance]) -> Optional[int]:
    """Lowest operation number that still has unfinished instances."""
    for number, members in group_by_operation(instances).items():
        if not operation_done(members):
            return number
    return None


def initial_status(operation_number: int, first_operation_number: int) -> OperationStatus:
    if operation_number == first_operation_number:
        return OperationStatus.PENDING
    return OperationStatus.WAITING


def evaluate_gate(
    instances: Iterable[OperationInstance], operation_number: int
) -> GateDecision:
    """Decide what completing operation ``operation_number`` unlocks.

    Nothing happens until every instance sharing the operation number is
    completed. Then the waiting instances of the next higher operation number
    are released, or the order is finished when there is none.
    """
    groups = group_by_operation(instances)
    decision = GateDecision(operation_number=operation_number)
    if not operation_done(groups.get(operation_number, [])):
        return decision
    decision.released = True
    later = [number for number in groups if number > operation_number]
    if not later:
        decision.complete_order = True
        return decision
    decision.next_operation_number = later[0]
    decision.promote = [
        instance.id
        for instance in groups[later[0]]
        if instance.status is OperationStatus.WAITING
    ]
    return decision


def plan_reconciliation(
    instances: Iterable[OperationInstance],
) -> Dict[str, OperationStatus]:
    """Status corrections that bring an order back in line with the gate.

    Instances of the current operation become ``pending``, later ones
    ``waiting``. Instances in :data:`PROTECTED_STATUSES` are left alone.
    """
    instances = list(instances)
    groups = group_by_operation(instances)
    current = current_operation_number(instances)
    if current is None:
        return {}

    changes: Dict[str, OperationStatus] = {}
    for number, members in groups.items():
        if number < current:
            continue
        target = OperationStatus.PENDING if number == current else OperationStatus.WAITING
        for instance in members:
            if instance.status in PROTECTED_STATUSES:
                continue
            if instance.status is not target:
                changes[instance.id] = target
    return changes


__all__ = [
    "GateDecision",
    "PROTECTED_STATUSES",
    "group_by_operation",
    "operation_done",
    "current_operation_number",
    "initial_status",
    "evaluate_gate",
    "plan_reconciliation",
]
