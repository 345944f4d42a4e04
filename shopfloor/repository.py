"""In-memory repositories and the store contract used by the service layer."""

from __future__ import annotations

import copy
import threading
from contextlib import contextmanager
from typing import (
    Callable,
    ContextManager,
    Generic,
    Iterator,
    List,
    MutableMapping,
    Optional,
    Protocol,
    TypeVar,
)

from .domain import (
    Department,
    OperationInstance,
    PauseEvent,
    PauseReason,
    ProductionOrder,
    Routing,
)

T = TypeVar("T")

_MISSING = object()


class RepositoryError(RuntimeError):
    """Base exception for repository errors."""


class DuplicateRecordError(RepositoryError):
    """Raised when attempting to insert a record that already exists."""


class RecordNotFoundError(RepositoryError):
    """Raised when a requested record is missing or outside the caller's team."""


class TransactionJournal:
    """Re-entrant lock plus undo log shared by the repositories of one store.

    Writes made inside :meth:`transaction` are reverted in reverse order when
    the block raises. Nested blocks roll back only their own writes.
    """

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self._depth = 0
        self._undo: List[Callable[[], None]] = []

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self.lock:
            mark = len(self._undo)
            self._depth += 1
            try:
                yield
            except BaseException:
                while len(self._undo) > mark:
                    self._undo.pop()()
                raise
            finally:
                self._depth -= 1
                if self._depth == 0:
                    self._undo.clear()

    def record(self, undo: Callable[[], None]) -> None:
        if self._depth:
            self._undo.append(undo)


class InMemoryRepository(Generic[T]):
    """Generic repository backed by a simple dictionary.

    Records are copied on the way in and on the way out so callers work on
    snapshots, the same as with the SQLite repository.
    """

    def __init__(self, journal: Optional[TransactionJournal] = None) -> None:
        self._items: MutableMapping[str, T] = {}
        self._journal = journal or TransactionJournal()

    def __contains__(self, item_id: object) -> bool:
        with self._journal.lock:
            return item_id in self._items

    def __len__(self) -> int:  # pragma: no cover - convenience
        with self._journal.lock:
            return len(self._items)

    def _write(self, item_id: str, item: T) -> None:
        previous = self._items.get(item_id, _MISSING)
        self._items[item_id] = copy.deepcopy(item)
        self._journal.record(lambda: self._restore(item_id, previous))

    def _restore(self, item_id: str, previous: object) -> None:
        if previous is _MISSING:
            self._items.pop(item_id, None)
        else:
            self._items[item_id] = previous  # type: ignore[assignment]

    def add(self, item_id: str, item: T) -> None:
        with self._journal.lock:
            if item_id in self._items:
                raise DuplicateRecordError(f"Record with id {item_id!r} already exists")
            self._write(item_id, item)

    def upsert(self, item_id: str, item: T) -> None:
        with self._journal.lock:
            self._write(item_id, item)

    def get(self, item_id: str) -> T:
        with self._journal.lock:
            try:
                return copy.deepcopy(self._items[item_id])
            except KeyError as exc:
                raise RecordNotFoundError(f"Record with id {item_id!r} not found") from exc

    def remove(self, item_id: str) -> None:
        with self._journal.lock:
            if item_id not in self._items:
                raise RecordNotFoundError(f"Record with id {item_id!r} not found")
            previous = self._items.pop(item_id)
            self._journal.record(lambda: self._restore(item_id, previous))

    def list(self) -> List[T]:
        with self._journal.lock:
            return [copy.deepcopy(item) for item in self._items.values()]

    def find(self, predicate: Callable[[T], bool]) -> List[T]:
        return [item for item in self.list() if predicate(item)]

    def __iter__(self) -> Iterator[T]:
        return iter(self.list())


class Repository(Protocol[T]):
    def __contains__(self, item_id: object) -> bool: ...

    def add(self, item_id: str, item: T) -> None: ...

    def upsert(self, item_id: str, item: T) -> None: ...

    def get(self, item_id: str) -> T: ...

    def remove(self, item_id: str) -> None: ...

    def list(self) -> List[T]: ...

    def find(self, predicate: Callable[[T], bool]) -> List[T]: ...


class TrackingStore(Protocol):
    """What the service layer needs from a backing store."""

    departments: Repository[Department]
    routings: Repository[Routing]
    orders: Repository[ProductionOrder]
    instances: Repository[OperationInstance]
    pause_events: Repository[PauseEvent]
    pause_reasons: Repository[PauseReason]

    def transaction(self) -> ContextManager[None]: ...


class InMemoryStore:
    """All tracking repositories sharing one journal, hence one lock."""

    def __init__(self) -> None:
        self._journal = TransactionJournal()
        self.departments = InMemoryRepository[Department](self._journal)
        self.routings = InMemoryRepository[Routing](self._journal)
        self.orders = InMemoryRepository[ProductionOrder](self._journal)
        self.instances = InMemoryRepository[OperationInstance](self._journal)
        self.pause_events = InMemoryRepository[PauseEvent](self._journal)
        self.pause_reasons = InMemoryRepository[PauseReason](self._journal)

    def transaction(self) -> ContextManager[None]:
        return self._journal.transaction()


__all__ = [
    "InMemoryRepository",
    "InMemoryStore",
    "Repository",
    "TrackingStore",
    "TransactionJournal",
    "RepositoryError",
    "DuplicateRecordError",
    "RecordNotFoundError",
]
