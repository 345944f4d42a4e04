"""FastAPI-based JSON interface for shop floor tracking."""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..clock import Clock
from ..config import TrackingSettings
from ..domain import (
    OperationInstance,
    OrderPriority,
    OrderStatus,
    PauseCategory,
    ProductionOrder,
)
from ..reconciliation import reconcile_team
from ..repository import DuplicateRecordError, RecordNotFoundError
from ..services import ShopFloorService
from ..state_machine import InvalidStateError, NoOpenPauseError
from ..storage import TrackingDatabase


class DepartmentIn(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""


class RoutingOperationIn(BaseModel):
    operation_number: int = Field(ge=1)
    name: str = Field(min_length=1)
    description: str = ""
    setup_time_minutes: float = Field(0.0, ge=0)
    run_time_minutes: float = Field(0.0, ge=0)
    instructions: str = ""
    department_id: Optional[str] = None
    parallel_instances: int = Field(1, ge=1)


class RoutingIn(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""
    version: str = "1.0"
    operations: List[RoutingOperationIn] = Field(default_factory=list)


class PauseReasonIn(BaseModel):
    name: str = Field(min_length=1)
    category: PauseCategory = PauseCategory.OTHER
    description: str = ""


class OrderIn(BaseModel):
    order_number: str = Field(min_length=1)
    routing_id: str
    quantity: int = Field(gt=0)
    priority: OrderPriority = OrderPriority.NORMAL
    scheduled_start_date: Optional[datetime] = None
    scheduled_end_date: Optional[datetime] = None
    notes: str = ""
    custom_fields: Dict[str, Any] = Field(default_factory=dict)


class StartIn(BaseModel):
    operator_id: str = Field(min_length=1)


class PauseIn(BaseModel):
    pause_reason_id: str = Field(min_length=1)
    notes: Optional[str] = None


class CompleteIn(BaseModel):
    captured_data: Optional[Dict[str, Any]] = None
    quantity_completed: int = Field(0, ge=0)
    quantity_rejected: int = Field(0, ge=0)
    notes: Optional[str] = None


def _error(status_code: int, code: str, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": code, "message": str(exc)})


def instance_payload(service: ShopFloorService, instance: OperationInstance) -> Dict[str, Any]:
    payload = asdict(instance)
    payload["total_active_time_seconds"] = service.active_time.active_seconds(instance)
    return payload


def order_payload(service: ShopFloorService, order: ProductionOrder) -> Dict[str, Any]:
    instances = service.instances_for_order(order.id)
    payload = asdict(order)
    payload["progress"] = service.get_order_progress(order.id)
    payload["operations"] = [instance_payload(service, instance) for instance in instances]
    return payload


def create_app(
    database_path: Optional[str] = None,
    *,
    settings: Optional[TrackingSettings] = None,
    clock: Optional[Clock] = None,
) -> FastAPI:
    settings = settings or TrackingSettings.from_env()
    database = TrackingDatabase(database_path or settings.database_path)
    service = ShopFloorService(
        database,
        clock,
        validate_pause_reasons=settings.validate_pause_reasons,
    )

    app = FastAPI(title="Shop Floor Tracking")
    app.state.tracking_service = service
    app.state.database = database
    app.state.known_teams = set()

    @app.on_event("shutdown")
    async def shutdown_event() -> None:  # pragma: no cover - framework hook
        database.close()

    @app.exception_handler(RecordNotFoundError)
    async def not_found_handler(request: Request, exc: RecordNotFoundError):
        return _error(404, "NOT_FOUND", exc)

    @app.exception_handler(DuplicateRecordError)
    async def duplicate_handler(request: Request, exc: DuplicateRecordError):
        return _error(409, "DUPLICATE", exc)

    @app.exception_handler(NoOpenPauseError)
    async def no_open_pause_handler(request: Request, exc: NoOpenPauseError):
        return _error(409, "NO_OPEN_PAUSE", exc)

    @app.exception_handler(InvalidStateError)
    async def invalid_state_handler(request: Request, exc: InvalidStateError):
        return _error(409, "INVALID_STATE_TRANSITION", exc)

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return _error(400, "VALIDATION_ERROR", exc)

    def team_service(request: Request, team_id: str) -> ShopFloorService:
        service: ShopFloorService = request.app.state.tracking_service
        known = request.app.state.known_teams
        if team_id not in known:
            if settings.seed_default_pause_reasons and not service.list_pause_reasons(
                team_id, active_only=False
            ):
                service.create_default_pause_reasons(team_id)
            known.add(team_id)
        return service

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    # ------------------------------------------------------------------
    # Catalogs
    # ------------------------------------------------------------------
    @app.post("/teams/{team_id}/departments", status_code=201)
    async def create_department(team_id: str, body: DepartmentIn, request: Request):
        service = team_service(request, team_id)
        return asdict(service.create_department(team_id, body.name, description=body.description))

    @app.get("/teams/{team_id}/departments")
    async def list_departments(team_id: str, request: Request):
        service = team_service(request, team_id)
        return [asdict(department) for department in service.list_departments(team_id)]

    @app.post("/teams/{team_id}/routings", status_code=201)
    async def create_routing(team_id: str, body: RoutingIn, request: Request):
        service = team_service(request, team_id)
        operations = [
            service.build_operation(
                operation.operation_number,
                operation.name,
                setup_time_minutes=operation.setup_time_minutes,
                run_time_minutes=operation.run_time_minutes,
                description=operation.description,
                instructions=operation.instructions,
                department_id=operation.department_id,
                parallel_instances=operation.parallel_instances,
            )
            for operation in body.operations
        ]
        routing = service.create_routing(
            team_id,
            body.name,
            operations,
            description=body.description,
            version=body.version,
        )
        return asdict(routing)

    @app.get("/teams/{team_id}/routings")
    async def list_routings(team_id: str, request: Request, active_only: bool = False):
        service = team_service(request, team_id)
        return [asdict(routing) for routing in service.list_routings(team_id, active_only=active_only)]

    @app.get("/teams/{team_id}/routings/{routing_id}")
    async def get_routing(team_id: str, routing_id: str, request: Request):
        service = team_service(request, team_id)
        return asdict(service.get_routing(routing_id, team_id=team_id))

    @app.post("/teams/{team_id}/routings/{routing_id}/operations", status_code=201)
    async def add_routing_operation(
        team_id: str, routing_id: str, body: RoutingOperationIn, request: Request
    ):
        service = team_service(request, team_id)
        operation = service.build_operation(
            body.operation_number,
            body.name,
            setup_time_minutes=body.setup_time_minutes,
            run_time_minutes=body.run_time_minutes,
            description=body.description,
            instructions=body.instructions,
            department_id=body.department_id,
            parallel_instances=body.parallel_instances,
        )
        return asdict(service.add_routing_operation(routing_id, operation, team_id=team_id))

    @app.post("/teams/{team_id}/pause-reasons", status_code=201)
    async def create_pause_reason(team_id: str, body: PauseReasonIn, request: Request):
        service = team_service(request, team_id)
        reason = service.create_pause_reason(
            team_id, body.name, category=body.category, description=body.description
        )
        return asdict(reason)

    @app.get("/teams/{team_id}/pause-reasons")
    async def list_pause_reasons(team_id: str, request: Request, active_only: bool = True):
        service = team_service(request, team_id)
        return [
            asdict(reason)
            for reason in service.list_pause_reasons(team_id, active_only=active_only)
        ]

    @app.get("/teams/{team_id}/pause-reasons/categories")
    async def pause_reason_categories(team_id: str, request: Request):
        service = team_service(request, team_id)
        return service.pause_reason_category_counts(team_id)

    @app.get("/teams/{team_id}/pause-reasons/usage")
    async def pause_reason_usage(
        team_id: str,
        request: Request,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ):
        service = team_service(request, team_id)
        return [
            asdict(entry)
            for entry in service.pause_reason_usage(team_id, start=start_date, end=end_date)
        ]

    @app.delete("/teams/{team_id}/pause-reasons/{reason_id}")
    async def delete_pause_reason(team_id: str, reason_id: str, request: Request):
        service = team_service(request, team_id)
        removed = service.delete_pause_reason(reason_id, team_id=team_id)
        return {"id": reason_id, "deleted": removed, "deactivated": not removed}

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------
    @app.post("/teams/{team_id}/orders", status_code=201)
    async def create_order(team_id: str, body: OrderIn, request: Request):
        service = team_service(request, team_id)
        order = service.create_production_order(
            team_id,
            body.order_number,
            body.routing_id,
            body.quantity,
            priority=body.priority,
            scheduled_start_date=body.scheduled_start_date,
            scheduled_end_date=body.scheduled_end_date,
            notes=body.notes,
            custom_fields=body.custom_fields,
        )
        return order_payload(service, order)

    @app.get("/teams/{team_id}/orders")
    async def list_orders(
        team_id: str, request: Request, status: Optional[OrderStatus] = None
    ):
        service = team_service(request, team_id)
        return [asdict(order) for order in service.list_orders(team_id, status=status)]

    @app.get("/teams/{team_id}/orders/{order_id}")
    async def get_order(team_id: str, order_id: str, request: Request):
        service = team_service(request, team_id)
        return order_payload(service, service.get_order(order_id, team_id=team_id))

    @app.post("/teams/{team_id}/orders/{order_id}/cancel")
    async def cancel_order(team_id: str, order_id: str, request: Request):
        service = team_service(request, team_id)
        return order_payload(service, service.cancel_order(order_id, team_id=team_id))

    @app.post("/teams/{team_id}/reconcile")
    async def reconcile(team_id: str, request: Request, dry_run: bool = False):
        service = team_service(request, team_id)
        return asdict(reconcile_team(service, team_id, dry_run=dry_run))

    # ------------------------------------------------------------------
    # Operation instances
    # ------------------------------------------------------------------
    @app.get("/teams/{team_id}/operator-queue")
    async def operator_queue(
        team_id: str, request: Request, department_id: Optional[str] = None
    ):
        service = team_service(request, team_id)
        return [
            instance_payload(service, instance)
            for instance in service.operator_queue(team_id, department_id=department_id)
        ]

    @app.get("/teams/{team_id}/work-order-operations/{instance_id}")
    async def get_operation(team_id: str, instance_id: str, request: Request):
        service = team_service(request, team_id)
        instance = service.get_operation_instance(instance_id, team_id=team_id)
        payload = instance_payload(service, instance)
        payload["pause_events"] = [
            asdict(event) for event in service.pause_events_for(instance_id, team_id=team_id)
        ]
        return payload

    @app.get("/teams/{team_id}/work-order-operations/{instance_id}/active-time")
    async def get_active_time(team_id: str, instance_id: str, request: Request):
        service = team_service(request, team_id)
        return {
            "id": instance_id,
            "active_seconds": service.get_active_seconds(instance_id, team_id=team_id),
        }

    @app.post("/teams/{team_id}/work-order-operations/{instance_id}/start")
    async def start_operation(team_id: str, instance_id: str, body: StartIn, request: Request):
        service = team_service(request, team_id)
        instance = service.start_operation(instance_id, body.operator_id, team_id=team_id)
        return instance_payload(service, instance)

    @app.post("/teams/{team_id}/work-order-operations/{instance_id}/pause")
    async def pause_operation(team_id: str, instance_id: str, body: PauseIn, request: Request):
        service = team_service(request, team_id)
        instance = service.pause_operation(
            instance_id, body.pause_reason_id, body.notes, team_id=team_id
        )
        return instance_payload(service, instance)

    @app.post("/teams/{team_id}/work-order-operations/{instance_id}/resume")
    async def resume_operation(team_id: str, instance_id: str, request: Request):
        service = team_service(request, team_id)
        return instance_payload(service, service.resume_operation(instance_id, team_id=team_id))

    @app.post("/teams/{team_id}/work-order-operations/{instance_id}/complete")
    async def complete_operation(
        team_id: str,
        instance_id: str,
        request: Request,
        body: Optional[CompleteIn] = None,
    ):
        service = team_service(request, team_id)
        body = body or CompleteIn()
        instance = service.complete_operation(
            instance_id,
            body.captured_data,
            body.quantity_completed,
            body.quantity_rejected,
            body.notes,
            team_id=team_id,
        )
        return instance_payload(service, instance)

    @app.post("/teams/{team_id}/work-order-operations/{instance_id}/cancel")
    async def cancel_operation(team_id: str, instance_id: str, request: Request):
        service = team_service(request, team_id)
        return instance_payload(service, service.cancel_operation(instance_id, team_id=team_id))

    return app


__all__ = ["create_app", "instance_payload", "order_payload"]
