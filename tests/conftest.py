"""Shared fixtures for the tracking tests."""

from typing import Sequence, Tuple

import pytest

from shopfloor.clock import ManualClock
from shopfloor.domain import OperationInstance, OperationStatus, OrderPriority
from shopfloor.services import ShopFloorService

TEAM = "team-alpha"


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def service(clock):
    return ShopFloorService(clock=clock)


@pytest.fixture
def make_order(service):
    """Create an order from ``(operation_number, parallel_instances)`` pairs."""
    counter = {"n": 0}

    def factory(
        operations: Sequence[Tuple[int, int]] = ((1, 1), (2, 1)),
        *,
        team_id: str = TEAM,
        priority: OrderPriority = OrderPriority.NORMAL,
        **order_kwargs,
    ):
        counter["n"] += 1
        routing = service.create_routing(
            team_id,
            f"Routing {counter['n']}",
            [
                service.build_operation(number, f"Op {number}", parallel_instances=stations)
                for number, stations in operations
            ],
        )
        return service.create_production_order(
            team_id,
            f"ORD-{counter['n']:04d}",
            routing.id,
            10,
            priority=priority,
            **order_kwargs,
        )

    return factory


def make_instance(
    instance_id: str, operation_number: int, status: OperationStatus
) -> OperationInstance:
    return OperationInstance(
        id=instance_id,
        team_id=TEAM,
        order_id="order-1",
        routing_operation_id=f"rop-{operation_number}",
        operation_number=operation_number,
        status=status,
    )
