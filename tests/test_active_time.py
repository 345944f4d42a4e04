"""Tests for active time calculation."""

from datetime import timedelta

from conftest import make_instance

from shopfloor.active_time import active_seconds
from shopfloor.domain import OperationStatus, PauseEvent


class TestActiveSecondsFunction:

    def test_not_started(self, clock):
        instance = make_instance("woo-1", 1, OperationStatus.PENDING)
        assert active_seconds(instance, [], clock.now()) == 0

    def test_never_negative(self, clock):
        instance = make_instance("woo-1", 1, OperationStatus.IN_PROGRESS)
        instance.actual_start_time = clock.now()
        pause = PauseEvent(
            id="p-1",
            team_id="t",
            instance_id="woo-1",
            pause_reason_id="r",
            start_time=clock.now() - timedelta(hours=2),
            end_time=clock.now(),
        )
        assert active_seconds(instance, [pause], clock.now() + timedelta(minutes=1)) == 0

    def test_open_pause_ignored_unless_paused(self, clock):
        start = clock.now()
        instance = make_instance("woo-1", 1, OperationStatus.IN_PROGRESS)
        instance.actual_start_time = start
        dangling = PauseEvent(
            id="p-1",
            team_id="t",
            instance_id="woo-1",
            pause_reason_id="r",
            start_time=start + timedelta(minutes=5),
        )
        now = start + timedelta(minutes=10)
        assert active_seconds(instance, [dangling], now) == 600
        instance.status = OperationStatus.PAUSED
        assert active_seconds(instance, [dangling], now) == 300


class TestActiveTimeThroughService:

    def test_grows_while_in_progress(self, service, clock, make_order):
        order = make_order()
        first = service.instances_for_order(order.id)[0]
        service.start_operation(first.id, "op-1")
        readings = []
        for _ in range(3):
            clock.advance(seconds=30)
            readings.append(service.get_active_seconds(first.id))
        assert readings == [30, 60, 90]

    def test_frozen_while_paused(self, service, clock, make_order):
        order = make_order()
        first = service.instances_for_order(order.id)[0]
        service.start_operation(first.id, "op-1")
        clock.advance(minutes=10)
        service.pause_operation(first.id, "reason-1")
        clock.advance(minutes=3)
        assert service.get_active_seconds(first.id) == 600
        clock.advance(minutes=3)
        assert service.get_active_seconds(first.id) == 600

    def test_excludes_pauses_and_freezes_after_completion(self, service, clock, make_order):
        order = make_order()
        first = service.instances_for_order(order.id)[0]
        service.start_operation(first.id, "op-1")
        clock.advance(minutes=20)
        service.pause_operation(first.id, "reason-1")
        clock.advance(minutes=8)
        service.resume_operation(first.id)
        clock.advance(minutes=15)
        service.complete_operation(first.id)

        assert service.get_active_seconds(first.id) == 35 * 60
        clock.advance(hours=5)
        assert service.get_active_seconds(first.id) == 35 * 60

    def test_frozen_after_cancelling_the_operation(self, service, clock, make_order):
        order = make_order()
        first = service.instances_for_order(order.id)[0]
        service.start_operation(first.id, "op-1")
        clock.advance(minutes=5)
        cancelled = service.cancel_operation(first.id)

        assert cancelled.actual_end_time == clock.now()
        assert service.get_active_seconds(first.id) == 300
        clock.advance(hours=10)
        assert service.get_active_seconds(first.id) == 300

    def test_frozen_after_cancelling_while_paused(self, service, clock, make_order):
        order = make_order()
        first = service.instances_for_order(order.id)[0]
        service.start_operation(first.id, "op-1")
        clock.advance(minutes=5)
        service.pause_operation(first.id, "reason-1")
        clock.advance(minutes=2)
        service.cancel_order(order.id)

        assert service.get_active_seconds(first.id) == 300
        clock.advance(hours=1)
        assert service.get_active_seconds(first.id) == 300

    def test_cancel_before_start_leaves_no_end_time(self, service, make_order):
        order = make_order()
        first = service.instances_for_order(order.id)[0]
        cancelled = service.cancel_operation(first.id)
        assert cancelled.actual_end_time is None
        assert service.get_active_seconds(first.id) == 0
