"""Service layer that implements shop floor tracking use-cases."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import (
    Any,
    Callable,
    Collection,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    TypeVar,
)
from uuid import uuid4

from .active_time import ActiveTimeCalculator
from .aggregation import apply_order_status, derive_order_status, order_progress
from .clock import Clock, SystemClock
from .domain import (
    DEFAULT_PAUSE_REASONS,
    Department,
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
from .gating import evaluate_gate, initial_status
from .pause_ledger import PauseLedger
from .repository import (
    DuplicateRecordError,
    InMemoryStore,
    RecordNotFoundError,
    RepositoryError,
    TrackingStore,
)
from .state_machine import InvalidStateError, OperationAction, can_apply, next_status

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _as_utc(moment: Optional[datetime]) -> Optional[datetime]:
    if moment is not None and moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


@dataclass(slots=True)
class PauseReasonUsage:
    """How often and how long a pause reason was used."""

    pause_reason: PauseReason
    event_count: int
    total_duration_seconds: int
    avg_duration_seconds: int


class ShopFloorService:
    """Facade that exposes shop floor tracking use-cases to clients.

    Every mutating operation runs inside one store transaction: the status
    precondition is checked against the stored record and the new state is
    written before any other caller can observe or change it.
    """

    def __init__(
        self,
        store: Optional[TrackingStore] = None,
        clock: Optional[Clock] = None,
        *,
        validate_pause_reasons: bool = False,
    ) -> None:
        self.store = store or InMemoryStore()
        self.clock = clock or SystemClock()
        self.validate_pause_reasons = validate_pause_reasons
        self.ledger = PauseLedger(self.store, self.clock)
        self.active_time = ActiveTimeCalculator(self.ledger, self.clock)

    @staticmethod
    def _scoped(record: T, team_id: Optional[str], label: str, record_id: str) -> T:
        if team_id is not None and record.team_id != team_id:  # type: ignore[attr-defined]
            raise RecordNotFoundError(f"{label} {record_id!r} not found")
        return record

    # ------------------------------------------------------------------
    # Departments
    # ------------------------------------------------------------------
    def create_department(self, team_id: str, name: str, *, description: str = "") -> Department:
        if not name.strip():
            raise ValueError("A department needs a name")
        department = Department(
            id=str(uuid4()), team_id=team_id, name=name.strip(), description=description
        )
        self.store.departments.add(department.id, department)
        return department

    def list_departments(self, team_id: str) -> List[Department]:
        departments = self.store.departments.find(lambda dep: dep.team_id == team_id)
        departments.sort(key=lambda dep: dep.name.lower())
        return departments

    # ------------------------------------------------------------------
    # Routings
    # ------------------------------------------------------------------
    @staticmethod
    def build_operation(
        operation_number: int,
        name: str,
        *,
        setup_time_minutes: float = 0.0,
        run_time_minutes: float = 0.0,
        description: str = "",
        instructions: str = "",
        department_id: Optional[str] = None,
        parallel_instances: int = 1,
    ) -> RoutingOperation:
        if operation_number < 1:
            raise ValueError("Operation numbers start at 1")
        if parallel_instances < 1:
            raise ValueError("An operation needs at least one instance")
        return RoutingOperation(
            id=str(uuid4()),
            operation_number=operation_number,
            name=name,
            description=description,
            setup_time_minutes=setup_time_minutes,
            run_time_minutes=run_time_minutes,
            instructions=instructions,
            department_id=department_id,
            parallel_instances=parallel_instances,
        )

    def _check_department(self, team_id: str, department_id: Optional[str]) -> None:
        if department_id is None:
            return
        department = self.store.departments.get(department_id)
        self._scoped(department, team_id, "Department", department_id)

    def create_routing(
        self,
        team_id: str,
        name: str,
        operations: Sequence[RoutingOperation],
        *,
        description: str = "",
        version: str = "1.0",
    ) -> Routing:
        numbers = [operation.operation_number for operation in operations]
        if len(numbers) != len(set(numbers)):
            raise ValueError("Operation numbers must be unique within a routing")
        for operation in operations:
            self._check_department(team_id, operation.department_id)
        routing = Routing(
            id=str(uuid4()),
            team_id=team_id,
            name=name,
            operations=sorted(operations, key=lambda op: op.operation_number),
            description=description,
            version=version,
        )
        self.store.routings.add(routing.id, routing)
        return routing

    def add_routing_operation(
        self, routing_id: str, operation: RoutingOperation, *, team_id: Optional[str] = None
    ) -> Routing:
        with self.store.transaction():
            routing = self.get_routing(routing_id, team_id=team_id)
            if any(
                existing.operation_number == operation.operation_number
                for existing in routing.operations
            ):
                raise ValueError(
                    f"Operation number {operation.operation_number} already exists "
                    f"in routing {routing.name!r}"
                )
            self._check_department(routing.team_id, operation.department_id)
            routing.operations.append(operation)
            routing.operations.sort(key=lambda op: op.operation_number)
            self.store.routings.upsert(routing.id, routing)
        return routing

    def get_routing(self, routing_id: str, *, team_id: Optional[str] = None) -> Routing:
        return self._scoped(self.store.routings.get(routing_id), team_id, "Routing", routing_id)

    def list_routings(self, team_id: str, *, active_only: bool = False) -> List[Routing]:
        routings = self.store.routings.find(
            lambda routing: routing.team_id == team_id
            and (routing.is_active or not active_only)
        )
        routings.sort(key=lambda routing: routing.name.lower())
        return routings

    # ------------------------------------------------------------------
    # Pause reason catalog
    # ------------------------------------------------------------------
    def create_pause_reason(
        self,
        team_id: str,
        name: str,
        *,
        category: PauseCategory = PauseCategory.OTHER,
        description: str = "",
    ) -> PauseReason:
        reason = PauseReason(
            id=str(uuid4()),
            team_id=team_id,
            name=name,
            category=PauseCategory(category),
            description=description,
        )
        self.store.pause_reasons.add(reason.id, reason)
        return reason

    def create_default_pause_reasons(self, team_id: str) -> List[PauseReason]:
        with self.store.transaction():
            return [
                self.create_pause_reason(
                    team_id, name, category=category, description=description
                )
                for name, description, category in DEFAULT_PAUSE_REASONS
            ]

    def get_pause_reason(self, reason_id: str, *, team_id: Optional[str] = None) -> PauseReason:
        return self._scoped(
            self.store.pause_reasons.get(reason_id), team_id, "Pause reason", reason_id
        )

    def list_pause_reasons(self, team_id: str, *, active_only: bool = True) -> List[PauseReason]:
        reasons = self.store.pause_reasons.find(
            lambda reason: reason.team_id == team_id
            and (reason.is_active or not active_only)
        )
        reasons.sort(key=lambda reason: (reason.category.value, reason.name))
        return reasons

    def deactivate_pause_reason(self, reason_id: str, *, team_id: Optional[str] = None) -> PauseReason:
        with self.store.transaction():
            reason = self.get_pause_reason(reason_id, team_id=team_id)
            reason.is_active = False
            self.store.pause_reasons.upsert(reason.id, reason)
        return reason

    def delete_pause_reason(self, reason_id: str, *, team_id: Optional[str] = None) -> bool:
        """Remove a reason; one already referenced by pause events is only deactivated.

        Returns True when the record was removed.
        """
        with self.store.transaction():
            reason = self.get_pause_reason(reason_id, team_id=team_id)
            in_use = self.store.pause_events.find(
                lambda event: event.pause_reason_id == reason.id
            )
            if in_use:
                self.deactivate_pause_reason(reason.id)
                return False
            self.store.pause_reasons.remove(reason.id)
            return True

    def pause_reason_category_counts(self, team_id: str) -> List[Dict[str, Any]]:
        counts: Dict[str, Dict[str, int]] = {}
        for reason in self.list_pause_reasons(team_id, active_only=False):
            entry = counts.setdefault(reason.category.value, {"count": 0, "active_count": 0})
            entry["count"] += 1
            if reason.is_active:
                entry["active_count"] += 1
        return [
            {"category": category, **entry} for category, entry in sorted(counts.items())
        ]

    def pause_reason_usage(
        self,
        team_id: str,
        *,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[PauseReasonUsage]:
        """Event count and closed pause time per reason, most used first.

        Bounds without a timezone are taken as UTC.
        """
        start = _as_utc(start)
        end = _as_utc(end)
        events = self.store.pause_events.find(
            lambda event: event.team_id == team_id
            and (start is None or event.start_time >= start)
            and (end is None or event.start_time <= end)
        )
        grouped: Dict[str, List[PauseEvent]] = {}
        for event in events:
            grouped.setdefault(event.pause_reason_id, []).append(event)

        usage: List[PauseReasonUsage] = []
        for reason_id, reason_events in grouped.items():
            try:
                reason = self.store.pause_reasons.get(reason_id)
            except RecordNotFoundError:
                reason = PauseReason(id=reason_id, team_id=team_id, name="Unknown reason")
            total = sum(
                int((event.end_time - event.start_time).total_seconds())
                for event in reason_events
                if event.end_time is not None
            )
            usage.append(
                PauseReasonUsage(
                    pause_reason=reason,
                    event_count=len(reason_events),
                    total_duration_seconds=total,
                    avg_duration_seconds=int(total / len(reason_events) + 0.5),
                )
            )
        usage.sort(key=lambda entry: entry.event_count, reverse=True)
        return usage

    # ------------------------------------------------------------------
    # Production orders
    # ------------------------------------------------------------------
    def create_production_order(
        self,
        team_id: str,
        order_number: str,
        routing_id: str,
        quantity: int,
        *,
        priority: OrderPriority = OrderPriority.NORMAL,
        scheduled_start_date: Optional[datetime] = None,
        scheduled_end_date: Optional[datetime] = None,
        notes: str = "",
        custom_fields: Optional[Mapping[str, Any]] = None,
    ) -> ProductionOrder:
        """Create an order and seed one instance per routing operation and station.

        Instances of the first operation are ``pending``; all others wait.
        """
        if quantity <= 0:
            raise ValueError("Order quantity must be positive")
        with self.store.transaction():
            routing = self.get_routing(routing_id, team_id=team_id)
            operations = routing.sorted_operations()
            if not operations:
                raise ValueError(f"Routing {routing.name!r} has no operations")
            if any(
                order.order_number == order_number
                for order in self.store.orders.find(lambda order: order.team_id == team_id)
            ):
                raise DuplicateRecordError(f"Order number {order_number!r} already exists")

            now = self.clock.now()
            order = ProductionOrder(
                id=str(uuid4()),
                team_id=team_id,
                order_number=order_number,
                routing_id=routing.id,
                quantity=quantity,
                priority=OrderPriority(priority),
                scheduled_start_date=scheduled_start_date,
                scheduled_end_date=scheduled_end_date,
                notes=notes,
                custom_fields=dict(custom_fields or {}),
                created_at=now,
                updated_at=now,
            )
            first_number = operations[0].operation_number
            instances: List[OperationInstance] = []
            for operation in operations:
                for _ in range(operation.parallel_instances):
                    instances.append(
                        OperationInstance(
                            id=str(uuid4()),
                            team_id=team_id,
                            order_id=order.id,
                            routing_operation_id=operation.id,
                            operation_number=operation.operation_number,
                            operation_name=operation.name,
                            department_id=operation.department_id,
                            status=initial_status(operation.operation_number, first_number),
                            created_at=now,
                            updated_at=now,
                        )
                    )
            order.status = derive_order_status(instance.status for instance in instances)
            self.store.orders.add(order.id, order)
            for instance in instances:
                self.store.instances.add(instance.id, instance)
        logger.info(
            "Created order %s with %d operation instances", order.order_number, len(instances)
        )
        return order

    def get_order(self, order_id: str, *, team_id: Optional[str] = None) -> ProductionOrder:
        return self._scoped(self.store.orders.get(order_id), team_id, "Order", order_id)

    def list_orders(
        self, team_id: str, *, status: Optional[OrderStatus] = None
    ) -> List[ProductionOrder]:
        orders = self.store.orders.find(
            lambda order: order.team_id == team_id
            and (status is None or order.status is OrderStatus(status))
        )
        orders.sort(key=lambda order: order.created_at, reverse=True)
        return orders

    def cancel_order(self, order_id: str, *, team_id: Optional[str] = None) -> ProductionOrder:
        """Cancel an order and every instance that is not finished yet."""
        with self.store.transaction():
            order = self.get_order(order_id, team_id=team_id)
            if order.status is OrderStatus.COMPLETED:
                raise ValueError(f"Order {order.order_number!r} is already completed")
            now = self.clock.now()
            for instance in self.instances_for_order(order.id):
                if can_apply(instance.status, OperationAction.CANCEL):
                    self._stop_for_cancel(instance, now)
                    instance.status = OperationStatus.CANCELLED
                    instance.updated_at = now
                    self.store.instances.upsert(instance.id, instance)
            order.status = OrderStatus.CANCELLED
            order.updated_at = now
            self.store.orders.upsert(order.id, order)
        logger.info("Cancelled order %s", order.order_number)
        return order

    def get_order_progress(self, order_id: str, *, team_id: Optional[str] = None) -> int:
        order = self.get_order(order_id, team_id=team_id)
        return order_progress(instance.status for instance in self.instances_for_order(order.id))

    # ------------------------------------------------------------------
    # Operation instances: reads and bulk writes
    # ------------------------------------------------------------------
    def get_operation_instance(
        self, instance_id: str, *, team_id: Optional[str] = None
    ) -> OperationInstance:
        return self._scoped(
            self.store.instances.get(instance_id), team_id, "Operation", instance_id
        )

    def instances_for_order(self, order_id: str) -> List[OperationInstance]:
        instances = self.store.instances.find(lambda instance: instance.order_id == order_id)
        instances.sort(key=lambda instance: (instance.operation_number, instance.created_at))
        return instances

    def set_status_where(
        self,
        instance_ids: Sequence[str],
        status: OperationStatus,
        *,
        current_in: Collection[OperationStatus],
    ) -> List[str]:
        """Move instances to ``status`` if they are still in one of ``current_in``.

        Returns the ids that were actually changed.
        """
        changed: List[str] = []
        with self.store.transaction():
            now = self.clock.now()
            for instance_id in instance_ids:
                instance = self.store.instances.get(instance_id)
                if instance.status not in current_in:
                    continue
                instance.status = status
                instance.updated_at = now
                self.store.instances.upsert(instance.id, instance)
                changed.append(instance.id)
        return changed

    def pause_events_for(
        self, instance_id: str, *, team_id: Optional[str] = None
    ) -> List[PauseEvent]:
        self.get_operation_instance(instance_id, team_id=team_id)
        return self.ledger.events_for(instance_id)

    def operator_queue(
        self, team_id: str, *, department_id: Optional[str] = None
    ) -> List[OperationInstance]:
        """Work an operator can pick up or resume, most urgent first."""
        candidates = self.store.instances.find(
            lambda instance: instance.team_id == team_id
            and instance.status in (OperationStatus.PENDING, OperationStatus.PAUSED)
            and (department_id is None or instance.department_id == department_id)
        )
        orders = {order.id: order for order in self.list_orders(team_id)}

        def queue_key(instance: OperationInstance):
            order = orders.get(instance.order_id)
            if order is None:
                return (0, True, 0.0, instance.operation_number)
            start = order.scheduled_start_date
            return (
                -int(order.priority),
                start is None,
                start.timestamp() if start is not None else 0.0,
                instance.operation_number,
            )

        candidates.sort(key=queue_key)
        return candidates

    def active_instance_for_operator(
        self, operator_id: str, team_id: str
    ) -> Optional[OperationInstance]:
        for instance in self.store.instances.find(
            lambda instance: instance.team_id == team_id
            and instance.operator_id == operator_id
            and instance.status is OperationStatus.IN_PROGRESS
        ):
            return instance
        return None

    # ------------------------------------------------------------------
    # Lifecycle transitions
    # ------------------------------------------------------------------
    def _transition(
        self,
        instance_id: str,
        action: OperationAction,
        team_id: Optional[str],
        apply: Optional[Callable[[OperationInstance, datetime], None]] = None,
    ) -> OperationInstance:
        with self.store.transaction():
            instance = self.get_operation_instance(instance_id, team_id=team_id)
            try:
                target = next_status(instance.status, action)
            except InvalidStateError as exc:
                logger.warning("Rejected %s on operation %s: %s", action.value, instance_id, exc)
                raise
            now = self.clock.now()
            if apply is not None:
                apply(instance, now)
            instance.status = target
            instance.updated_at = now
            self.store.instances.upsert(instance.id, instance)
            self._recalculate(instance, action, now)
        logger.info(
            "Operation %s (order %s, op %d) is now %s",
            instance.id,
            instance.order_id,
            instance.operation_number,
            instance.status.value,
        )
        return instance

    def start_operation(
        self, instance_id: str, operator_id: str, *, team_id: Optional[str] = None
    ) -> OperationInstance:
        if not operator_id:
            raise ValueError("operator_id is required to start an operation")

        def apply(instance: OperationInstance, now: datetime) -> None:
            instance.operator_id = operator_id
            instance.actual_start_time = now

        return self._transition(instance_id, OperationAction.START, team_id, apply)

    def pause_operation(
        self,
        instance_id: str,
        pause_reason_id: str,
        notes: Optional[str] = None,
        *,
        team_id: Optional[str] = None,
    ) -> OperationInstance:
        if not pause_reason_id:
            raise ValueError("pause_reason_id is required to pause an operation")

        def apply(instance: OperationInstance, now: datetime) -> None:
            if self.validate_pause_reasons:
                reason = self.get_pause_reason(pause_reason_id, team_id=instance.team_id)
                if not reason.is_active:
                    raise RecordNotFoundError(
                        f"Pause reason {pause_reason_id!r} is not active"
                    )
            self.ledger.open_pause(
                instance.id,
                pause_reason_id,
                notes,
                status=instance.status,
                team_id=instance.team_id,
            )

        return self._transition(instance_id, OperationAction.PAUSE, team_id, apply)

    def resume_operation(
        self, instance_id: str, *, team_id: Optional[str] = None
    ) -> OperationInstance:
        def apply(instance: OperationInstance, now: datetime) -> None:
            self.ledger.close_open_pause(instance.id)

        return self._transition(instance_id, OperationAction.RESUME, team_id, apply)

    def complete_operation(
        self,
        instance_id: str,
        captured_data: Optional[Mapping[str, Any]] = None,
        quantity_completed: Optional[int] = None,
        quantity_rejected: Optional[int] = None,
        notes: Optional[str] = None,
        *,
        team_id: Optional[str] = None,
    ) -> OperationInstance:
        """Finish an instance and release whatever its completion unlocks."""
        completed = quantity_completed or 0
        rejected = quantity_rejected or 0
        if completed < 0 or rejected < 0:
            raise ValueError("Quantities cannot be negative")

        def apply(instance: OperationInstance, now: datetime) -> None:
            instance.actual_end_time = now
            instance.captured_data = dict(captured_data) if captured_data is not None else None
            instance.quantity_completed = completed
            instance.quantity_rejected = rejected
            instance.notes = notes

        return self._transition(instance_id, OperationAction.COMPLETE, team_id, apply)

    def cancel_operation(
        self, instance_id: str, *, team_id: Optional[str] = None
    ) -> OperationInstance:
        """Administrative override; closes an open pause and never releases the gate."""
        return self._transition(
            instance_id,
            OperationAction.CANCEL,
            team_id,
            self._stop_for_cancel,
        )

    def _close_pause_if_open(self, instance: OperationInstance) -> None:
        if self.ledger.open_event(instance.id) is not None:
            self.ledger.close_open_pause(instance.id)

    def _stop_for_cancel(self, instance: OperationInstance, now: datetime) -> None:
        self._close_pause_if_open(instance)
        # Active time stops at cancellation.
        if instance.actual_start_time is not None and instance.actual_end_time is None:
            instance.actual_end_time = now

    def get_active_seconds(self, instance_id: str, *, team_id: Optional[str] = None) -> int:
        with self.store.transaction():
            return self.active_time.active_seconds(
                self.get_operation_instance(instance_id, team_id=team_id)
            )

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------
    def _recalculate(
        self, instance: OperationInstance, action: OperationAction, now: datetime
    ) -> None:
        # Gate and aggregate are recomputable; reconciliation repairs a miss.
        try:
            if action is OperationAction.COMPLETE:
                self._apply_gate(instance, now)
            self.recompute_order_status(instance.order_id, now=now)
        except RepositoryError:
            logger.exception(
                "Could not update derived state of order %s after %s",
                instance.order_id,
                action.value,
            )

    def _apply_gate(self, instance: OperationInstance, now: datetime) -> None:
        decision = evaluate_gate(
            self.instances_for_order(instance.order_id), instance.operation_number
        )
        if decision.promote:
            released = self.set_status_where(
                decision.promote,
                OperationStatus.PENDING,
                current_in={OperationStatus.WAITING},
            )
            logger.info(
                "Released %d instance(s) of operation %s on order %s",
                len(released),
                decision.next_operation_number,
                instance.order_id,
            )
        if decision.complete_order:
            order = self.store.orders.get(instance.order_id)
            if apply_order_status(order, OrderStatus.COMPLETED, now):
                self.store.orders.upsert(order.id, order)
                logger.info("Order %s completed", order.order_number)

    def recompute_order_status(
        self, order_id: str, *, now: Optional[datetime] = None
    ) -> OrderStatus:
        """Re-derive and store the order status; cancelled orders are left as they are."""
        with self.store.transaction():
            order = self.store.orders.get(order_id)
            if order.status is OrderStatus.CANCELLED:
                return order.status
            status = derive_order_status(
                instance.status for instance in self.instances_for_order(order_id)
            )
            if apply_order_status(order, status, now or self.clock.now()):
                self.store.orders.upsert(order.id, order)
                logger.debug("Order %s is now %s", order.order_number, status.value)
            return order.status


__all__ = ["ShopFloorService", "PauseReasonUsage"]
