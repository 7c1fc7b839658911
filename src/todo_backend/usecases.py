from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from .errors import (
    BadPasswordError,
    DuplicateUsernameError,
    EmptyUsernameError,
    UseCaseError,
    UserNotRegisteredError,
)
from .models import Id, NewTodo, NewUser, Todo, TodoStatus, UpdateTodo, UpsertTodo, User
from .repositories import Database, RepositoriesModule
from .security import hash_password, verify_password

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# View models
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TodoStatusView:
    id: str
    code: str
    name: str

    @classmethod
    def from_domain(cls, status: TodoStatus) -> "TodoStatusView":
        return cls(id=str(status.id), code=status.code, name=status.name)


@dataclass(frozen=True)
class TodoView:
    id: str
    title: str
    description: str
    status: TodoStatusView
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, todo: Todo) -> "TodoView":
        return cls(
            id=str(todo.id),
            title=todo.title,
            description=todo.description,
            status=TodoStatusView.from_domain(todo.status),
            created_at=todo.created_at,
            updated_at=todo.updated_at,
        )


@dataclass(frozen=True)
class UserView:
    id: str
    username: str
    email: str
    password: str
    fullname: str

    @classmethod
    def from_domain(cls, user: User) -> "UserView":
        return cls(
            id=str(user.id),
            username=user.username,
            email=user.email,
            password=user.password,
            fullname=user.fullname,
        )


@dataclass(frozen=True)
class CreateTodo:
    title: str
    description: str


@dataclass(frozen=True)
class UpdateTodoView:
    id: str
    title: Optional[str] = None
    description: Optional[str] = None
    status_code: Optional[str] = None


@dataclass(frozen=True)
class UpsertTodoView:
    id: str
    title: str
    description: str
    status_code: str


@dataclass(frozen=True)
class SearchTodoCondition:
    status_code: Optional[str] = None


@dataclass(frozen=True)
class CreateUser:
    username: str
    password: str
    fullname: str


@dataclass(frozen=True)
class LoginUser:
    username: str
    password: str


@dataclass(frozen=True)
class SearchUserCondition:
    username: Optional[str] = None


# ---------------------------------------------------------------------------
# Use cases
# ---------------------------------------------------------------------------


# PUBLIC_INTERFACE
class UserUseCase:
    """Registration, login and lookup of users."""

    def __init__(self, db: Database, repositories: RepositoriesModule, bcrypt_rounds: int = 12) -> None:
        self._db = db
        self._users = repositories.user_repository
        self._bcrypt_rounds = bcrypt_rounds

    def get_user(self, user_id: str) -> Optional[UserView]:
        parsed: Id[User] = Id.parse(user_id)
        with self._db.begin() as tx:
            user = self._users.get_user(parsed, tx)
        return None if user is None else UserView.from_domain(user)

    def get_user_by_username(self, condition: SearchUserCondition) -> Optional[UserView]:
        if not condition.username:
            raise EmptyUsernameError()
        with self._db.begin() as tx:
            user = self._users.get_user_by_username(condition.username, tx)
        return None if user is None else UserView.from_domain(user)

    def create_user(self, source: CreateUser) -> UserView:
        """
        Register a new user.

        The username check and the insert share one transaction, but nothing
        locks the username between them; a concurrent registration of the same
        name can still slip through on backends without a unique index.
        """
        with self._db.begin() as tx:
            if self._users.get_user_by_username(source.username, tx) is not None:
                logger.error(f"username {source.username} already exists")
                raise DuplicateUsernameError(source.username)

            hashed = hash_password(source.password, rounds=self._bcrypt_rounds)
            if not hashed:
                raise UseCaseError("hashed password is empty")

            new_user = NewUser(id=Id.generate(), username=source.username, password=hashed, fullname=source.fullname)
            user = self._users.insert(new_user, tx)
        return UserView.from_domain(user)

    def login_user(self, source: LoginUser) -> UserView:
        with self._db.begin() as tx:
            user = self._users.get_user_by_username(source.username, tx)
        if user is None:
            logger.error(f"username {source.username} is not registered.")
            raise UserNotRegisteredError(source.username)
        if not verify_password(source.password, user.password):
            logger.error("bad password.")
            raise BadPasswordError()
        logger.info("login succeeded!")
        return UserView.from_domain(user)


# PUBLIC_INTERFACE
class TodoUseCase:
    """CRUD over todos, resolving status codes to TodoStatus rows."""

    def __init__(self, db: Database, repositories: RepositoriesModule) -> None:
        self._db = db
        self._todos = repositories.todo_repository
        self._statuses = repositories.todo_status_repository

    def get_todo(self, todo_id: str) -> Optional[TodoView]:
        parsed: Id[Todo] = Id.parse(todo_id)
        with self._db.begin() as tx:
            todo = self._todos.get(parsed, tx)
        return None if todo is None else TodoView.from_domain(todo)

    def find_todo(self, condition: SearchTodoCondition) -> List[TodoView]:
        with self._db.begin() as tx:
            status = None
            if condition.status_code:
                status = self._statuses.get_by_code(condition.status_code, tx)
            todos = self._todos.find(status, tx)
        return [TodoView.from_domain(t) for t in todos]

    def create_todo(self, source: CreateTodo) -> TodoView:
        new_todo = NewTodo(id=Id.generate(), title=source.title, description=source.description)
        with self._db.begin() as tx:
            todo = self._todos.insert(new_todo, tx)
        return TodoView.from_domain(todo)

    def update_todo(self, source: UpdateTodoView) -> Optional[TodoView]:
        parsed: Id[Todo] = Id.parse(source.id)
        with self._db.begin() as tx:
            status = None
            if source.status_code is not None:
                status = self._statuses.get_by_code(source.status_code, tx)
            todo = self._todos.update(
                UpdateTodo(id=parsed, title=source.title, description=source.description, status=status),
                tx,
            )
        return None if todo is None else TodoView.from_domain(todo)

    def upsert_todo(self, source: UpsertTodoView) -> TodoView:
        parsed: Id[Todo] = Id.parse(source.id)
        with self._db.begin() as tx:
            status = self._statuses.get_by_code(source.status_code, tx)
            todo = self._todos.upsert(
                UpsertTodo(id=parsed, title=source.title, description=source.description, status=status),
                tx,
            )
        return TodoView.from_domain(todo)

    def delete_todo(self, todo_id: str) -> Optional[TodoView]:
        parsed: Id[Todo] = Id.parse(todo_id)
        with self._db.begin() as tx:
            todo = self._todos.delete(parsed, tx)
        return None if todo is None else TodoView.from_domain(todo)


# PUBLIC_INTERFACE
class HealthCheckUseCase:
    def __init__(self, db: Database) -> None:
        self._db = db

    def diagnose_db_conn(self) -> None:
        """Raise RepositoryError if the database cannot answer a trivial query."""
        with self._db.begin() as tx:
            self._db.ping(tx)
