"""Tests for the reconciliation routine and its command line entry point."""

import pytest
from click.testing import CliRunner

from conftest import TEAM

from shopfloor.clock import ManualClock
from shopfloor.domain import OperationStatus, OrderStatus
from shopfloor.reconciliation import main, reconcile_team
from shopfloor.services import ShopFloorService
from shopfloor.storage import TrackingDatabase


def force_status(service, instance, status):
    service.set_status_where([instance.id], status, current_in=set(OperationStatus))


class TestReconcileTeam:

    def test_repairs_a_missed_release(self, service, make_order):
        order = make_order([(1, 1), (2, 1), (3, 1)])
        first, second, third = service.instances_for_order(order.id)
        force_status(service, first, OperationStatus.COMPLETED)

        report = reconcile_team(service, TEAM)

        assert report.orders_checked == 1
        assert report.instances_updated == 1
        assert report.order_status_changes == {order.order_number: OrderStatus.WAITING}
        assert service.get_operation_instance(second.id).status is OperationStatus.PENDING
        assert service.get_operation_instance(third.id).status is OperationStatus.WAITING

    def test_second_run_changes_nothing(self, service, make_order):
        order = make_order([(1, 1), (2, 1), (3, 1)])
        force_status(service, service.instances_for_order(order.id)[0], OperationStatus.COMPLETED)
        reconcile_team(service, TEAM)
        before = [instance.status for instance in service.instances_for_order(order.id)]

        report = reconcile_team(service, TEAM)

        assert report.changed is False
        assert [instance.status for instance in service.instances_for_order(order.id)] == before

    def test_dry_run_reports_without_writing(self, service, make_order):
        order = make_order()
        first, second = service.instances_for_order(order.id)
        force_status(service, first, OperationStatus.COMPLETED)

        report = reconcile_team(service, TEAM, dry_run=True)

        assert report.dry_run is True
        assert report.instances_updated == 1
        assert report.order_status_changes == {}
        assert service.get_operation_instance(second.id).status is OperationStatus.WAITING

    def test_started_work_is_left_alone(self, service, make_order):
        order = make_order([(1, 1), (2, 1), (3, 1)])
        first, second, third = service.instances_for_order(order.id)
        force_status(service, second, OperationStatus.IN_PROGRESS)
        force_status(service, third, OperationStatus.PENDING)

        report = reconcile_team(service, TEAM)

        assert report.instances_updated == 1
        assert service.get_operation_instance(first.id).status is OperationStatus.PENDING
        assert service.get_operation_instance(second.id).status is OperationStatus.IN_PROGRESS
        assert service.get_operation_instance(third.id).status is OperationStatus.WAITING

    def test_recomputes_finished_order(self, service, make_order):
        order = make_order([(1, 1)])
        force_status(service, service.instances_for_order(order.id)[0], OperationStatus.COMPLETED)

        report = reconcile_team(service, TEAM)

        assert report.instances_updated == 0
        assert report.order_status_changes == {order.order_number: OrderStatus.COMPLETED}
        assert service.get_order(order.id).actual_end_date is not None

    def test_cancelled_orders_stay_cancelled(self, service, make_order):
        order = make_order()
        service.cancel_order(order.id)
        report = reconcile_team(service, TEAM)
        assert report.changed is False
        assert service.get_order(order.id).status is OrderStatus.CANCELLED

    def test_all_teams(self, service, make_order):
        mine = make_order()
        theirs = make_order(team_id="team-beta")
        for order in (mine, theirs):
            force_status(service, service.instances_for_order(order.id)[0], OperationStatus.COMPLETED)

        assert reconcile_team(service, "team-beta").orders_checked == 1
        report = reconcile_team(service)
        assert report.orders_checked == 2
        assert report.instances_updated == 1


class TestCommandLine:

    @pytest.fixture
    def database_path(self, tmp_path):
        path = tmp_path / "cli.sqlite3"
        database = TrackingDatabase(str(path))
        service = ShopFloorService(database, ManualClock())
        routing = service.create_routing(
            TEAM, "R", [service.build_operation(1, "Cut"), service.build_operation(2, "Bend")]
        )
        order = service.create_production_order(TEAM, "CLI-1", routing.id, 3)
        first = service.instances_for_order(order.id)[0]
        force_status(service, first, OperationStatus.COMPLETED)
        database.close()
        return path

    def test_reconciles_database(self, database_path):
        result = CliRunner().invoke(main, ["--database", str(database_path), "--team", TEAM])

        assert result.exit_code == 0, result.output
        assert "updated 1 instances" in result.output
        assert "CLI-1: waiting" in result.output

        database = TrackingDatabase(str(database_path))
        try:
            service = ShopFloorService(database)
            order = service.list_orders(TEAM)[0]
            assert [i.status for i in service.instances_for_order(order.id)] == [
                OperationStatus.COMPLETED,
                OperationStatus.PENDING,
            ]
        finally:
            database.close()

    def test_dry_run(self, database_path):
        result = CliRunner().invoke(main, ["-d", str(database_path), "--dry-run"])
        assert result.exit_code == 0, result.output
        assert "would update 1 instances" in result.output

    def test_reads_database_from_config(self, database_path, tmp_path):
        config = tmp_path / "settings.yaml"
        config.write_text(f"database:\n  path: {database_path}\n")
        result = CliRunner().invoke(main, ["--config", str(config)])
        assert result.exit_code == 0, result.output
        assert "Checked 1 orders" in result.output
