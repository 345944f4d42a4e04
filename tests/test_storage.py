"""Tests for the in-memory and SQLite stores."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from conftest import TEAM

from shopfloor.domain import Department, OperationStatus, OrderStatus
from shopfloor.repository import DuplicateRecordError, InMemoryStore, RecordNotFoundError
from shopfloor.services import ShopFloorService
from shopfloor.state_machine import InvalidStateError
from shopfloor.storage import TrackingDatabase


def department(record_id):
    return Department(id=record_id, team_id=TEAM, name=f"Dept {record_id}")


@pytest.fixture
def database(tmp_path):
    db = TrackingDatabase(str(tmp_path / "tracking.sqlite3"))
    yield db
    db.close()


class TestInMemoryStore:

    def test_reads_are_snapshots(self):
        store = InMemoryStore()
        store.departments.add("d1", department("d1"))
        copy = store.departments.get("d1")
        copy.name = "Changed"
        assert store.departments.get("d1").name == "Dept d1"

    def test_transaction_rolls_back_every_repository(self):
        store = InMemoryStore()
        store.departments.add("d1", department("d1"))
        with pytest.raises(RuntimeError):
            with store.transaction():
                store.departments.remove("d1")
                store.departments.add("d2", department("d2"))
                raise RuntimeError("boom")
        assert "d1" in store.departments
        assert "d2" not in store.departments

    def test_nested_failure_keeps_outer_writes(self):
        store = InMemoryStore()
        with store.transaction():
            store.departments.add("d1", department("d1"))
            with pytest.raises(RuntimeError):
                with store.transaction():
                    store.departments.add("d2", department("d2"))
                    raise RuntimeError("boom")
        assert "d1" in store.departments
        assert "d2" not in store.departments

    def test_missing_and_duplicate_records(self):
        store = InMemoryStore()
        store.departments.add("d1", department("d1"))
        with pytest.raises(DuplicateRecordError):
            store.departments.add("d1", department("d1"))
        with pytest.raises(RecordNotFoundError):
            store.departments.get("nope")


class TestTrackingDatabase:

    def test_round_trip(self, database):
        database.departments.add("d1", department("d1"))
        assert database.departments.get("d1") == department("d1")
        assert database.departments.find(lambda dep: dep.team_id == TEAM)[0].id == "d1"
        database.departments.remove("d1")
        with pytest.raises(RecordNotFoundError):
            database.departments.remove("d1")

    def test_duplicate_insert(self, database):
        database.departments.add("d1", department("d1"))
        with pytest.raises(DuplicateRecordError):
            database.departments.add("d1", department("d1"))

    def test_transaction_rollback(self, database):
        with pytest.raises(RuntimeError):
            with database.transaction():
                database.departments.add("d1", department("d1"))
                raise RuntimeError("boom")
        assert "d1" not in database.departments

    def test_nested_savepoint(self, database):
        with database.transaction():
            database.departments.add("d1", department("d1"))
            with pytest.raises(RuntimeError):
                with database.transaction():
                    database.departments.add("d2", department("d2"))
                    raise RuntimeError("boom")
        assert "d1" in database.departments
        assert "d2" not in database.departments

    def test_data_survives_reopen(self, tmp_path, clock):
        path = str(tmp_path / "persist.sqlite3")
        first = TrackingDatabase(path)
        service = ShopFloorService(first, clock)
        routing = service.create_routing(TEAM, "R", [service.build_operation(1, "Cut")])
        order = service.create_production_order(TEAM, "P-1", routing.id, 2)
        first.close()

        second = TrackingDatabase(path)
        try:
            reopened = ShopFloorService(second, clock)
            assert reopened.get_order(order.id).order_number == "P-1"
            assert len(reopened.instances_for_order(order.id)) == 1
        finally:
            second.close()


class TestServiceOnSQLite:

    @pytest.fixture
    def service(self, database, clock):
        return ShopFloorService(database, clock)

    def test_lifecycle_and_gate(self, service, clock):
        routing = service.create_routing(
            TEAM, "R", [service.build_operation(1, "Cut"), service.build_operation(2, "Bend")]
        )
        order = service.create_production_order(TEAM, "S-1", routing.id, 4)
        first, second = service.instances_for_order(order.id)

        service.start_operation(first.id, "op-1")
        clock.advance(minutes=2)
        service.pause_operation(first.id, "reason-1")
        clock.advance(minutes=1)
        service.resume_operation(first.id)
        clock.advance(minutes=3)
        service.complete_operation(first.id, quantity_completed=4)

        assert service.get_active_seconds(first.id) == 300
        assert service.get_operation_instance(second.id).status is OperationStatus.PENDING
        assert service.get_order(order.id).status is OrderStatus.WAITING

    def test_rejected_transition_leaves_no_trace(self, service):
        routing = service.create_routing(
            TEAM, "R", [service.build_operation(1, "Cut"), service.build_operation(2, "Bend")]
        )
        order = service.create_production_order(TEAM, "S-2", routing.id, 4)
        second = service.instances_for_order(order.id)[1]
        with pytest.raises(InvalidStateError):
            service.start_operation(second.id, "op-1")
        stored = service.get_operation_instance(second.id)
        assert stored.status is OperationStatus.WAITING
        assert stored.operator_id is None

    def test_concurrent_start_has_one_winner(self, service):
        routing = service.create_routing(TEAM, "R", [service.build_operation(1, "Cut")])
        order = service.create_production_order(TEAM, "S-3", routing.id, 1)
        first = service.instances_for_order(order.id)[0]
        barrier = threading.Barrier(2)

        def attempt(operator_id):
            barrier.wait()
            try:
                service.start_operation(first.id, operator_id)
            except InvalidStateError:
                return False
            return True

        with ThreadPoolExecutor(max_workers=2) as pool:
            results = list(pool.map(attempt, ["op-a", "op-b"]))
        assert sorted(results) == [False, True]
