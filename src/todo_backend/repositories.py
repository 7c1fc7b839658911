from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from threading import RLock
from typing import Any, ContextManager, Dict, Iterator, List, Optional

from .errors import InvalidStatusCodeError
from .models import (
    DEFAULT_STATUS_CODE,
    Id,
    NewTodo,
    NewUser,
    Todo,
    TodoStatus,
    UpdateTodo,
    UpsertTodo,
    User,
    seed_statuses,
)


# PUBLIC_INTERFACE
class Database(ABC):
    """
    Connection handle shared by all use cases.

    ``begin()`` opens one transaction and yields the executor that repository
    calls must receive. Leaving the block normally commits; an exception rolls
    the transaction back and propagates.
    """

    @abstractmethod
    def begin(self) -> ContextManager[Any]:
        """Open a transaction and yield its executor."""

    @abstractmethod
    def ping(self, tx: Any) -> None:
        """Run a trivial round-trip on ``tx``. Raises RepositoryError if the backend is unreachable."""

    def open(self) -> None:
        """Eagerly acquire backend resources. Optional."""

    def close(self) -> None:
        """Release backend resources. Optional."""


# PUBLIC_INTERFACE
class UserRepository(ABC):
    """Persistence contract for users."""

    @abstractmethod
    def get_user(self, user_id: Id[User], tx: Any) -> Optional[User]:
        """Return a User by id, or None if not found."""

    @abstractmethod
    def get_user_by_username(self, username: str, tx: Any) -> Optional[User]:
        """Return a User by username, or None if not found."""

    @abstractmethod
    def insert(self, source: NewUser, tx: Any) -> User:
        """Insert a user and return it as stored."""


# PUBLIC_INTERFACE
class TodoRepository(ABC):
    """Persistence contract for todos."""

    @abstractmethod
    def get(self, todo_id: Id[Todo], tx: Any) -> Optional[Todo]:
        """Return a Todo by id, or None if not found."""

    @abstractmethod
    def find(self, status: Optional[TodoStatus], tx: Any) -> List[Todo]:
        """Return todos with the given status (all statuses when None), oldest first."""

    @abstractmethod
    def insert(self, source: NewTodo, tx: Any) -> Todo:
        """Insert a todo with the default status and return it as stored."""

    @abstractmethod
    def update(self, source: UpdateTodo, tx: Any) -> Optional[Todo]:
        """Update the supplied fields only. Return the updated Todo or None if not found."""

    @abstractmethod
    def upsert(self, source: UpsertTodo, tx: Any) -> Todo:
        """Insert or fully replace a todo keyed by id."""

    @abstractmethod
    def delete(self, todo_id: Id[Todo], tx: Any) -> Optional[Todo]:
        """Delete a todo and return the deleted row, or None if not found."""


# PUBLIC_INTERFACE
class TodoStatusRepository(ABC):
    @abstractmethod
    def get_by_code(self, code: str, tx: Any) -> TodoStatus:
        """Return the status with ``code``. Raises InvalidStatusCodeError when unknown."""


@dataclass(frozen=True)
class RepositoriesModule:
    """Bundle of entity repositories handed to the use cases."""

    user_repository: UserRepository
    todo_repository: TodoRepository
    todo_status_repository: TodoStatusRepository


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------


@dataclass
class _StoredTodo:
    id: Id[Todo]
    title: str
    description: str
    status_id: Id[TodoStatus]
    created_at: datetime
    updated_at: datetime


@dataclass
class MemoryTransaction:
    """Working copy of every table; published back to the database on commit."""

    users: Dict[str, User] = field(default_factory=dict)
    todos: Dict[str, _StoredTodo] = field(default_factory=dict)
    statuses: Dict[str, TodoStatus] = field(default_factory=dict)


class InMemoryDatabase(Database):
    """
    Thread-safe in-memory storage suitable for testing and default runtime.

    Transactions are serialized by a lock and work on shallow copies of the
    tables, so an exception inside ``begin()`` leaves the stored state untouched.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._state = MemoryTransaction(statuses={str(s.id): s for s in seed_statuses()})

    @contextmanager
    def begin(self) -> Iterator[MemoryTransaction]:
        with self._lock:
            tx = MemoryTransaction(
                users=dict(self._state.users),
                todos={k: replace(v) for k, v in self._state.todos.items()},
                statuses=dict(self._state.statuses),
            )
            yield tx
            self._state = tx

    def ping(self, tx: Any) -> None:
        return None


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryUserRepository(UserRepository):
    def get_user(self, user_id: Id[User], tx: MemoryTransaction) -> Optional[User]:
        return tx.users.get(str(user_id))

    def get_user_by_username(self, username: str, tx: MemoryTransaction) -> Optional[User]:
        for user in tx.users.values():
            if user.username == username:
                return user
        return None

    def insert(self, source: NewUser, tx: MemoryTransaction) -> User:
        user = User(
            id=source.id,
            username=source.username,
            email=source.username,
            password=source.password,
            fullname=source.fullname,
        )
        tx.users[str(user.id)] = user
        return user


class InMemoryTodoStatusRepository(TodoStatusRepository):
    def get_by_code(self, code: str, tx: MemoryTransaction) -> TodoStatus:
        for status in tx.statuses.values():
            if status.code == code:
                return status
        raise InvalidStatusCodeError(code)


class InMemoryTodoRepository(TodoRepository):
    def _to_domain(self, stored: _StoredTodo, tx: MemoryTransaction) -> Todo:
        return Todo(
            id=stored.id,
            title=stored.title,
            description=stored.description,
            status=tx.statuses[str(stored.status_id)],
            created_at=stored.created_at,
            updated_at=stored.updated_at,
        )

    def get(self, todo_id: Id[Todo], tx: MemoryTransaction) -> Optional[Todo]:
        stored = tx.todos.get(str(todo_id))
        return None if stored is None else self._to_domain(stored, tx)

    def find(self, status: Optional[TodoStatus], tx: MemoryTransaction) -> List[Todo]:
        items = tx.todos.values()
        if status is not None:
            items = [t for t in items if t.status_id == status.id]
        ordered = sorted(items, key=lambda t: (t.created_at, str(t.id)))
        return [self._to_domain(t, tx) for t in ordered]

    def insert(self, source: NewTodo, tx: MemoryTransaction) -> Todo:
        default_status = InMemoryTodoStatusRepository().get_by_code(DEFAULT_STATUS_CODE, tx)
        now = _now()
        stored = _StoredTodo(
            id=source.id,
            title=source.title,
            description=source.description,
            status_id=default_status.id,
            created_at=now,
            updated_at=now,
        )
        tx.todos[str(stored.id)] = stored
        return self._to_domain(stored, tx)

    def update(self, source: UpdateTodo, tx: MemoryTransaction) -> Optional[Todo]:
        stored = tx.todos.get(str(source.id))
        if stored is None:
            return None

        # Update only provided fields
        if source.title is not None:
            stored.title = source.title
        if source.description is not None:
            stored.description = source.description
        if source.status is not None:
            stored.status_id = source.status.id
        stored.updated_at = _now()
        return self._to_domain(stored, tx)

    def upsert(self, source: UpsertTodo, tx: MemoryTransaction) -> Todo:
        now = _now()
        stored = tx.todos.get(str(source.id))
        if stored is None:
            stored = _StoredTodo(
                id=source.id,
                title=source.title,
                description=source.description,
                status_id=source.status.id,
                created_at=now,
                updated_at=now,
            )
            tx.todos[str(stored.id)] = stored
        else:
            stored.title = source.title
            stored.description = source.description
            stored.status_id = source.status.id
            stored.updated_at = now
        return self._to_domain(stored, tx)

    def delete(self, todo_id: Id[Todo], tx: MemoryTransaction) -> Optional[Todo]:
        stored = tx.todos.pop(str(todo_id), None)
        return None if stored is None else self._to_domain(stored, tx)


# PUBLIC_INTERFACE
def in_memory_repositories() -> RepositoriesModule:
    return RepositoriesModule(
        user_repository=InMemoryUserRepository(),
        todo_repository=InMemoryTodoRepository(),
        todo_status_repository=InMemoryTodoStatusRepository(),
    )
