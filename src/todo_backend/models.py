from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Generic, Optional, TypeVar

from ulid import ULID

from .errors import InvalidIdError

T = TypeVar("T")


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class Id(Generic[T]):
    """
    Typed identifier wrapping a ULID.

    The type parameter only exists for static checking: an ``Id[Todo]`` is not
    meant to be passed where an ``Id[User]`` is expected.
    """

    value: ULID

    @classmethod
    def generate(cls) -> "Id[T]":
        return cls(ULID())

    @classmethod
    def parse(cls, raw: str) -> "Id[T]":
        """Parse a 26-character ULID string. Raises InvalidIdError on bad input."""
        try:
            return cls(ULID.from_str(raw))
        except (ValueError, TypeError) as e:
            raise InvalidIdError(raw) from e

    def __str__(self) -> str:
        return str(self.value)


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class User:
    """
    A registered account.

    Fields:
    - id: ULID identifier
    - username: unique, email-shaped login name
    - email: contact address (mirrors username on registration)
    - password: bcrypt hash, never the plain password
    - fullname: display name
    """

    id: Id["User"]
    username: str
    email: str
    password: str
    fullname: str


@dataclass(frozen=True)
class NewUser:
    id: Id[User]
    username: str
    password: str
    fullname: str


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class TodoStatus:
    """Reference data row from ``todo_statuses``, resolved by its short ``code``."""

    id: Id["TodoStatus"]
    code: str
    name: str


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class Todo:
    """
    A todo item joined with its status.

    Fields:
    - id: ULID identifier
    - title: short title
    - description: free text
    - status: current TodoStatus
    - created_at / updated_at: server-assigned timestamps
    """

    id: Id["Todo"]
    title: str
    description: str
    status: TodoStatus
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class NewTodo:
    id: Id[Todo]
    title: str
    description: str


@dataclass(frozen=True)
class UpdateTodo:
    """Partial update; a None field keeps the stored value."""

    id: Id[Todo]
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[TodoStatus] = None


@dataclass(frozen=True)
class UpsertTodo:
    """Full replacement keyed by id; inserts when the id is unknown."""

    id: Id[Todo]
    title: str
    description: str
    status: TodoStatus


# Reference statuses seeded into every backend. Ids are fixed so that the
# postgres schema can use the ``new`` status as the column default.
DEFAULT_STATUS_CODE = "new"

SEED_STATUSES = (
    ("01HJ8T0000NEW0000000000000", "new", "New"),
    ("01HJ8T0000WRK0000000000000", "working", "Working"),
    ("01HJ8T0000WA1T000000000000", "waiting", "Waiting"),
    ("01HJ8T0000D0NE000000000000", "done", "Done"),
    ("01HJ8T0000D1SC000000000000", "discontinued", "Discontinued"),
)


def seed_statuses() -> list[TodoStatus]:
    return [TodoStatus(id=Id.parse(raw_id), code=code, name=name) for raw_id, code, name in SEED_STATUSES]
