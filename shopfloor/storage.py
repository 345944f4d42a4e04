"""SQLite-backed persistence for the tracking store."""

from __future__ import annotations

import pickle
import sqlite3
import threading
from contextlib import contextmanager
from typing import Callable, Generic, Iterator, List, Optional, TypeVar

from .domain import (
    Department,
    OperationInstance,
    PauseEvent,
    PauseReason,
    ProductionOrder,
    Routing,
)
from .repository import DuplicateRecordError, RecordNotFoundError

T = TypeVar("T")


class SQLiteRepository(Generic[T]):
    """Repository implementation that persists records inside SQLite."""

    def __init__(
        self, connection: sqlite3.Connection, lock: threading.RLock, table: str
    ) -> None:
        self._connection = connection
        self._lock = lock
        self._table = table
        with self._lock:
            self._connection.execute(
                f"CREATE TABLE IF NOT EXISTS {table} ("  # nosec - static table names
                "id TEXT PRIMARY KEY, payload BLOB NOT NULL)"
            )

    def __contains__(self, item_id: object) -> bool:
        if not isinstance(item_id, str):  # pragma: no cover - defensive
            return False
        with self._lock:
            cursor = self._connection.execute(
                f"SELECT 1 FROM {self._table} WHERE id = ? LIMIT 1", (item_id,)
            )
            return cursor.fetchone() is not None

    def __iter__(self) -> Iterator[T]:
        return iter(self.list())

    def __len__(self) -> int:  # pragma: no cover - simple delegation
        with self._lock:
            cursor = self._connection.execute(f"SELECT COUNT(1) FROM {self._table}")
            value = cursor.fetchone()
        return int(value[0]) if value else 0

    # ------------------------------------------------------------------
    # CRUD operations
    # ------------------------------------------------------------------
    def add(self, item_id: str, item: T) -> None:
        payload = pickle.dumps(item)
        with self._lock:
            try:
                self._connection.execute(
                    f"INSERT INTO {self._table} (id, payload) VALUES (?, ?)",
                    (item_id, payload),
                )
            except sqlite3.IntegrityError as exc:
                raise DuplicateRecordError(
                    f"Record with id {item_id!r} already exists"
                ) from exc

    def upsert(self, item_id: str, item: T) -> None:
        payload = pickle.dumps(item)
        with self._lock:
            self._connection.execute(
                f"INSERT INTO {self._table} (id, payload) VALUES (?, ?) "
                "ON CONFLICT(id) DO UPDATE SET payload = excluded.payload",
                (item_id, payload),
            )

    def get(self, item_id: str) -> T:
        with self._lock:
            cursor = self._connection.execute(
                f"SELECT payload FROM {self._table} WHERE id = ?", (item_id,)
            )
            row = cursor.fetchone()
        if row is None:
            raise RecordNotFoundError(f"Record with id {item_id!r} not found")
        return pickle.loads(row[0])

    def remove(self, item_id: str) -> None:
        with self._lock:
            cursor = self._connection.execute(
                f"DELETE FROM {self._table} WHERE id = ?", (item_id,)
            )
        if cursor.rowcount == 0:
            raise RecordNotFoundError(f"Record with id {item_id!r} not found")

    def list(self) -> List[T]:
        with self._lock:
            cursor = self._connection.execute(
                f"SELECT payload FROM {self._table} ORDER BY id"
            )
            rows = cursor.fetchall()
        return [pickle.loads(row[0]) for row in rows]

    def find(self, predicate: Callable[[T], bool]) -> List[T]:
        return [item for item in self.list() if predicate(item)]


class TrackingDatabase:
    """Convenience facade bundling SQLite repositories for all aggregates.

    The connection runs in autocommit mode; :meth:`transaction` opens an
    ``IMMEDIATE`` transaction so the write lock is taken before the first
    read, which keeps a check-then-write sequence atomic across processes
    sharing the file as well as across threads sharing this object.
    """

    def __init__(self, path: str) -> None:
        connection = sqlite3.connect(
            path, check_same_thread=False, isolation_level=None
        )
        connection.row_factory = sqlite3.Row
        self._connection = connection
        self._lock = threading.RLock()
        self._depth = 0
        self.departments = SQLiteRepository[Department](connection, self._lock, "departments")
        self.routings = SQLiteRepository[Routing](connection, self._lock, "routings")
        self.orders = SQLiteRepository[ProductionOrder](connection, self._lock, "orders")
        self.instances = SQLiteRepository[OperationInstance](
            connection, self._lock, "operation_instances"
        )
        self.pause_events = SQLiteRepository[PauseEvent](
            connection, self._lock, "pause_events"
        )
        self.pause_reasons = SQLiteRepository[PauseReason](
            connection, self._lock, "pause_reasons"
        )

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            savepoint = f"sp_{self._depth}"
            if self._depth == 0:
                self._connection.execute("BEGIN IMMEDIATE")
            else:
                self._connection.execute(f"SAVEPOINT {savepoint}")
            self._depth += 1
            try:
                yield
            except BaseException:
                self._depth -= 1
                if self._depth == 0:
                    self._connection.execute("ROLLBACK")
                else:
                    self._connection.execute(f"ROLLBACK TO SAVEPOINT {savepoint}")
                    self._connection.execute(f"RELEASE SAVEPOINT {savepoint}")
                raise
            else:
                self._depth -= 1
                if self._depth == 0:
                    self._connection.execute("COMMIT")
                else:
                    self._connection.execute(f"RELEASE SAVEPOINT {savepoint}")

    def close(self) -> None:
        self._connection.close()

    def __enter__(self) -> "TrackingDatabase":  # pragma: no cover - convenience
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        traceback: Optional[BaseException],
    ) -> None:  # pragma: no cover - convenience
        self.close()


__all__ = ["SQLiteRepository", "TrackingDatabase"]
