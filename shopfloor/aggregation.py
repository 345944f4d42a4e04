"""Derivation of an order's status from its operation instances."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from .domain import OperationStatus, OrderStatus, ProductionOrder

_RELEASED_OR_GATED = frozenset({OperationStatus.PENDING, OperationStatus.WAITING})


def derive_order_status(statuses: Iterable[OperationStatus]) -> OrderStatus:
    """Aggregate status for a multiset of instance statuses.

    Cancelled instances do not count; an order whose instances are all
    cancelled is itself cancelled.
    """
    all_statuses = list(statuses)
    live = [status for status in all_statuses if status is not OperationStatus.CANCELLED]
    if not live:
        return OrderStatus.CANCELLED if all_statuses else OrderStatus.PENDING
    present = set(live)

    if present == {OperationStatus.COMPLETED}:
        return OrderStatus.COMPLETED
    if OperationStatus.PAUSED in present:
        return OrderStatus.PAUSED
    if OperationStatus.IN_PROGRESS in present:
        return OrderStatus.IN_PROGRESS
    if present == {OperationStatus.WAITING}:
        return OrderStatus.WAITING
    if OperationStatus.PENDING in present:
        if present <= _RELEASED_OR_GATED:
            return OrderStatus.PENDING
        # Between operations: something finished, the next step is released
        # but nobody picked it up yet.
        return OrderStatus.WAITING
    return OrderStatus.PENDING


def apply_order_status(
    order: ProductionOrder, status: OrderStatus, now: datetime
) -> bool:
    """Write ``status`` onto the order snapshot; return False when nothing changed."""
    if order.status is status:
        return False
    order.status = status
    if status in (OrderStatus.IN_PROGRESS, OrderStatus.PAUSED) and order.actual_start_date is None:
        order.actual_start_date = now
    if status is OrderStatus.COMPLETED and order.actual_end_date is None:
        order.actual_end_date = now
    order.updated_at = now
    return True


def order_progress(statuses: Iterable[OperationStatus]) -> int:
    """Percentage of non-cancelled instances that are completed."""
    live = [status for status in statuses if status is not OperationStatus.CANCELLED]
    if not live:
        return 0
    completed = sum(1 for status in live if status is OperationStatus.COMPLETED)
    return int(completed * 100 / len(live) + 0.5)


__all__ = ["derive_order_status", "apply_order_status", "order_progress"]
