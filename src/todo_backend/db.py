from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from threading import BoundedSemaphore, Lock
from typing import Any, Generator, List, Mapping, Optional

import psycopg2
from psycopg2.extras import RealDictCursor
from psycopg2.pool import ThreadedConnectionPool

from .errors import InvalidStatusCodeError, RepositoryError
from .models import (
    SEED_STATUSES,
    Id,
    NewTodo,
    NewUser,
    Todo,
    TodoStatus,
    UpdateTodo,
    UpsertTodo,
    User,
)
from .repositories import (
    Database,
    RepositoriesModule,
    TodoRepository,
    TodoStatusRepository,
    UserRepository,
)

logger = logging.getLogger(__name__)

_DEFAULT_STATUS_ID = SEED_STATUSES[0][0]

SCHEMA_SQL = f"""
CREATE TABLE IF NOT EXISTS todo_statuses (
    id VARCHAR(26) NOT NULL,
    code VARCHAR(32) NOT NULL,
    name VARCHAR(64) NOT NULL,
    CONSTRAINT pk_todo_statuses_id PRIMARY KEY (id),
    CONSTRAINT uq_todo_statuses_code UNIQUE (code)
);

CREATE TABLE IF NOT EXISTS users (
    id VARCHAR(26) NOT NULL,
    username VARCHAR(255) NOT NULL,
    email VARCHAR(255) NOT NULL,
    password VARCHAR(255) NOT NULL,
    fullname VARCHAR(64) NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    CONSTRAINT pk_users_id PRIMARY KEY (id)
);

CREATE TABLE IF NOT EXISTS todos (
    id VARCHAR(26) NOT NULL,
    title VARCHAR(255) NOT NULL,
    description TEXT NOT NULL,
    status_id VARCHAR(26) NOT NULL DEFAULT '{_DEFAULT_STATUS_ID}',
    created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    CONSTRAINT pk_todos_id PRIMARY KEY (id),
    CONSTRAINT fk_todos_status_id FOREIGN KEY (status_id) REFERENCES todo_statuses (id)
);

CREATE INDEX IF NOT EXISTS idx_todos_status_id ON todos (status_id);
CREATE INDEX IF NOT EXISTS idx_users_username ON users (username);
"""

SEED_STATUSES_SQL = """
INSERT INTO todo_statuses (id, code, name) VALUES (%s, %s, %s)
ON CONFLICT ON CONSTRAINT pk_todo_statuses_id DO NOTHING
"""


class PostgresTransaction:
    """Executor bound to one pooled connection for the life of a transaction."""

    def __init__(self, conn: Any) -> None:
        self._conn = conn

    def cursor(self) -> Any:
        return self._conn.cursor(cursor_factory=RealDictCursor)


# PUBLIC_INTERFACE
class PostgresDatabase(Database):
    """
    psycopg2 connection pool. The pool is created on first use so that the
    application can be constructed without a reachable server.
    """

    def __init__(self, dsn: str, max_connections: int = 10) -> None:
        self._dsn = dsn
        self._max_connections = max_connections
        self._pool: Optional[ThreadedConnectionPool] = None
        self._pool_lock = Lock()
        # One slot per pooled connection; getconn() raises instead of waiting when the pool is drained.
        self._slots = BoundedSemaphore(max_connections)

    def _get_pool(self) -> ThreadedConnectionPool:
        with self._pool_lock:
            if self._pool is None:
                try:
                    self._pool = ThreadedConnectionPool(1, self._max_connections, dsn=self._dsn)
                except psycopg2.Error as e:
                    raise RepositoryError(f"Cannot connect to the database: {e}") from e
                logger.info(f"Postgres pool created (max_connections={self._max_connections})")
            return self._pool

    def open(self) -> None:
        self._get_pool()

    def close(self) -> None:
        with self._pool_lock:
            if self._pool is not None:
                self._pool.closeall()
                self._pool = None
                logger.info("Postgres pool closed")

    @contextmanager
    def begin(self) -> Generator[PostgresTransaction, None, None]:
        pool = self._get_pool()
        self._slots.acquire()
        try:
            conn = pool.getconn()
        except psycopg2.Error as e:
            self._slots.release()
            raise RepositoryError(f"failed to acquire postgres connection: {e}") from e
        try:
            yield PostgresTransaction(conn)
            conn.commit()
        except psycopg2.Error as e:
            conn.rollback()
            raise RepositoryError(str(e)) from e
        except BaseException:
            conn.rollback()
            raise
        finally:
            pool.putconn(conn)
            self._slots.release()

    def ping(self, tx: PostgresTransaction) -> None:
        with tx.cursor() as cur:
            cur.execute("SELECT 1")
            cur.fetchone()


# PUBLIC_INTERFACE
def init_schema(db: PostgresDatabase) -> None:
    """Create tables if missing and seed the reference statuses."""
    with db.begin() as tx:
        with tx.cursor() as cur:
            cur.execute(SCHEMA_SQL)
            for row in SEED_STATUSES:
                cur.execute(SEED_STATUSES_SQL, row)
    logger.info("Postgres schema initialized")


# ---------------------------------------------------------------------------
# Stored rows
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StoredUser:
    id: str
    username: str
    email: str
    password: str
    fullname: str

    def to_domain(self) -> User:
        return User(
            id=Id.parse(self.id),
            username=self.username,
            email=self.email,
            password=self.password,
            fullname=self.fullname,
        )


@dataclass(frozen=True)
class StoredTodoStatus:
    id: str
    code: str
    name: str

    def to_domain(self) -> TodoStatus:
        return TodoStatus(id=Id.parse(self.id), code=self.code, name=self.name)


@dataclass(frozen=True)
class StoredTodo:
    id: str
    title: str
    description: str
    status_id: str
    status_code: str
    status_name: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "StoredTodo":
        return cls(**{k: row[k] for k in cls.__dataclass_fields__})

    def to_domain(self) -> Todo:
        return Todo(
            id=Id.parse(self.id),
            title=self.title,
            description=self.description,
            status=StoredTodoStatus(self.status_id, self.status_code, self.status_name).to_domain(),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


_SELECT_TODO = """
    SELECT t.id AS id, t.title AS title, t.description AS description,
           ts.id AS status_id, ts.code AS status_code, ts.name AS status_name,
           t.created_at AS created_at, t.updated_at AS updated_at
    FROM todos AS t
    INNER JOIN todo_statuses AS ts ON ts.id = t.status_id
"""

_SELECT_USER = "SELECT u.id, u.username, u.email, u.password, u.fullname FROM users AS u"


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class PostgresUserRepository(UserRepository):
    def _fetch_one(self, tx: PostgresTransaction, sql: str, params: tuple) -> Optional[User]:
        with tx.cursor() as cur:
            cur.execute(sql, params)
            row = cur.fetchone()
        return StoredUser(**row).to_domain() if row else None

    def get_user(self, user_id: Id[User], tx: PostgresTransaction) -> Optional[User]:
        return self._fetch_one(tx, f"{_SELECT_USER} WHERE u.id = %s", (str(user_id),))

    def get_user_by_username(self, username: str, tx: PostgresTransaction) -> Optional[User]:
        return self._fetch_one(tx, f"{_SELECT_USER} WHERE u.username = %s", (username,))

    def insert(self, source: NewUser, tx: PostgresTransaction) -> User:
        user_id = str(source.id)
        with tx.cursor() as cur:
            cur.execute(
                "INSERT INTO users (id, username, email, password, fullname) VALUES (%s, %s, %s, %s, %s)",
                (user_id, source.username, source.username, source.password, source.fullname),
            )
        user = self._fetch_one(tx, f"{_SELECT_USER} WHERE u.id = %s", (user_id,))
        if user is None:
            raise RepositoryError(f"inserted user {user_id} could not be read back")
        return user


class PostgresTodoStatusRepository(TodoStatusRepository):
    def get_by_code(self, code: str, tx: PostgresTransaction) -> TodoStatus:
        with tx.cursor() as cur:
            cur.execute("SELECT id, code, name FROM todo_statuses WHERE code = %s", (code,))
            row = cur.fetchone()
        if not row:
            raise InvalidStatusCodeError(code)
        return StoredTodoStatus(**row).to_domain()


class PostgresTodoRepository(TodoRepository):
    def _select_by_id(self, todo_id: str, tx: PostgresTransaction) -> Optional[Todo]:
        with tx.cursor() as cur:
            cur.execute(f"{_SELECT_TODO} WHERE t.id = %s", (todo_id,))
            row = cur.fetchone()
        return StoredTodo.from_row(row).to_domain() if row else None

    def _reselect(self, todo_id: str, tx: PostgresTransaction) -> Todo:
        todo = self._select_by_id(todo_id, tx)
        if todo is None:
            raise RepositoryError(f"todo {todo_id} could not be read back")
        return todo

    def get(self, todo_id: Id[Todo], tx: PostgresTransaction) -> Optional[Todo]:
        return self._select_by_id(str(todo_id), tx)

    def find(self, status: Optional[TodoStatus], tx: PostgresTransaction) -> List[Todo]:
        if status is None:
            where_sql = "WHERE t.status_id IN (SELECT id FROM todo_statuses)"
            params: tuple = ()
        else:
            where_sql = "WHERE t.status_id IN (%s)"
            params = (str(status.id),)

        with tx.cursor() as cur:
            cur.execute(f"{_SELECT_TODO} {where_sql} ORDER BY t.created_at ASC", params)
            rows = cur.fetchall()
        return [StoredTodo.from_row(r).to_domain() for r in rows]

    def insert(self, source: NewTodo, tx: PostgresTransaction) -> Todo:
        todo_id = str(source.id)
        with tx.cursor() as cur:
            cur.execute(
                "INSERT INTO todos (id, title, description) VALUES (%s, %s, %s)",
                (todo_id, source.title, source.description),
            )
        return self._reselect(todo_id, tx)

    def update(self, source: UpdateTodo, tx: PostgresTransaction) -> Optional[Todo]:
        todo_id = str(source.id)
        status_id = str(source.status.id) if source.status is not None else None
        with tx.cursor() as cur:
            cur.execute(
                """
                UPDATE todos AS target SET
                    title = CASE WHEN %(title)s::varchar IS NOT NULL THEN %(title)s ELSE current_todo.title END,
                    description = CASE WHEN %(description)s::text IS NOT NULL
                        THEN %(description)s ELSE current_todo.description END,
                    status_id = CASE WHEN %(status_id)s::varchar IS NOT NULL
                        THEN %(status_id)s ELSE current_todo.status_id END,
                    updated_at = CURRENT_TIMESTAMP
                FROM (SELECT * FROM todos WHERE id = %(id)s) AS current_todo
                WHERE target.id = %(id)s
                """,
                {
                    "id": todo_id,
                    "title": source.title,
                    "description": source.description,
                    "status_id": status_id,
                },
            )
            if cur.rowcount == 0:
                return None
        return self._reselect(todo_id, tx)

    def upsert(self, source: UpsertTodo, tx: PostgresTransaction) -> Todo:
        todo_id = str(source.id)
        with tx.cursor() as cur:
            cur.execute(
                """
                INSERT INTO todos (id, title, description, status_id)
                VALUES (%(id)s, %(title)s, %(description)s, %(status_id)s)
                ON CONFLICT ON CONSTRAINT pk_todos_id
                DO UPDATE SET title = %(title)s, description = %(description)s,
                    status_id = %(status_id)s, updated_at = CURRENT_TIMESTAMP
                """,
                {
                    "id": todo_id,
                    "title": source.title,
                    "description": source.description,
                    "status_id": str(source.status.id),
                },
            )
        return self._reselect(todo_id, tx)

    def delete(self, todo_id: Id[Todo], tx: PostgresTransaction) -> Optional[Todo]:
        existing = self._select_by_id(str(todo_id), tx)
        if existing is None:
            return None
        with tx.cursor() as cur:
            cur.execute("DELETE FROM todos WHERE id = %s", (str(todo_id),))
        return existing


# PUBLIC_INTERFACE
def postgres_repositories() -> RepositoriesModule:
    return RepositoriesModule(
        user_repository=PostgresUserRepository(),
        todo_repository=PostgresTodoRepository(),
        todo_status_repository=PostgresTodoStatusRepository(),
    )
