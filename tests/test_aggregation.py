"""Tests for order status derivation."""

from datetime import datetime, timezone

import pytest

from shopfloor.aggregation import apply_order_status, derive_order_status, order_progress
from shopfloor.domain import OperationStatus as S
from shopfloor.domain import OrderStatus, ProductionOrder


class TestDeriveOrderStatus:

    @pytest.mark.parametrize(
        "statuses,expected",
        [
            ([S.COMPLETED, S.COMPLETED], OrderStatus.COMPLETED),
            ([S.COMPLETED, S.PAUSED, S.IN_PROGRESS], OrderStatus.PAUSED),
            ([S.IN_PROGRESS, S.WAITING], OrderStatus.IN_PROGRESS),
            ([S.WAITING, S.WAITING], OrderStatus.WAITING),
            ([S.PENDING, S.WAITING], OrderStatus.PENDING),
            ([S.COMPLETED, S.PENDING], OrderStatus.WAITING),
            ([S.COMPLETED, S.PENDING, S.WAITING], OrderStatus.WAITING),
            ([S.COMPLETED, S.WAITING], OrderStatus.PENDING),
            ([], OrderStatus.PENDING),
        ],
    )
    def test_rules(self, statuses, expected):
        assert derive_order_status(statuses) is expected

    def test_cancelled_instances_are_ignored(self):
        assert derive_order_status([S.CANCELLED, S.COMPLETED]) is OrderStatus.COMPLETED
        assert derive_order_status([S.CANCELLED, S.PENDING]) is OrderStatus.PENDING

    def test_all_cancelled(self):
        assert derive_order_status([S.CANCELLED, S.CANCELLED]) is OrderStatus.CANCELLED


class TestApplyOrderStatus:

    @pytest.fixture
    def order(self):
        return ProductionOrder(
            id="o-1", team_id="t", order_number="A-1", routing_id="r", quantity=5
        )

    def test_unchanged_status_is_not_written(self, order):
        before = order.updated_at
        assert apply_order_status(order, OrderStatus.PENDING, datetime.now(timezone.utc)) is False
        assert order.updated_at == before

    def test_completion_stamps_end_date_once(self, order):
        first = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
        assert apply_order_status(order, OrderStatus.COMPLETED, first)
        assert order.actual_end_date == first
        order.status = OrderStatus.IN_PROGRESS
        apply_order_status(order, OrderStatus.COMPLETED, datetime(2024, 3, 2, tzinfo=timezone.utc))
        assert order.actual_end_date == first

    def test_work_starting_stamps_start_date(self, order):
        now = datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)
        apply_order_status(order, OrderStatus.IN_PROGRESS, now)
        assert order.actual_start_date == now


class TestOrderProgress:

    def test_rounds_half_up(self):
        statuses = [S.COMPLETED] + [S.WAITING] * 7
        assert order_progress(statuses) == 13

    def test_ignores_cancelled(self):
        assert order_progress([S.COMPLETED, S.CANCELLED]) == 100

    def test_empty(self):
        assert order_progress([]) == 0
