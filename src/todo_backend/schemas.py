from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .usecases import (
    CreateTodo,
    CreateUser,
    LoginUser,
    TodoStatusView,
    TodoView,
    UpdateTodoView,
    UpsertTodoView,
    UserView,
)

EMAIL_REGEX = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
DIGIT_REGEX = re.compile(r"\d")
SPECIAL_REGEX = re.compile(r"[^\da-zA-Z]")

PASSWORD_RULE_MESSAGE = (
    "password must contain one digit, one special character and must be at least 8 characters long"
)


class CamelModel(BaseModel):
    """Base for wire models: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _validate_email(v: str) -> str:
    s = v.strip()
    if not EMAIL_REGEX.match(s):
        raise ValueError("invalid email")
    return s


def _validate_password(v: str) -> str:
    if DIGIT_REGEX.search(v) and SPECIAL_REGEX.search(v) and len(v) >= 8:
        return v
    raise ValueError(PASSWORD_RULE_MESSAGE)


def _validate_title(v: str) -> str:
    """
    Strip whitespace and enforce 1..200 length.
    """
    s = v.strip()
    if not s:
        raise ValueError("`title` is empty.")
    if len(s) > 200:
        raise ValueError("`title` must be at most 200 characters.")
    return s


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


# PUBLIC_INTERFACE
class JsonCreateTodo(CamelModel):
    """
    Schema for creating a new Todo item. New todos start in the default status.
    """

    model_config = ConfigDict(
        json_schema_extra={"example": {"title": "Buy groceries", "description": "Milk, eggs, bread"}}
    )

    title: str = Field(..., description="Short title for the todo item")
    description: str = Field(..., description="Detailed description")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        return _validate_title(v)

    def to_create(self) -> CreateTodo:
        return CreateTodo(title=self.title, description=self.description)


# PUBLIC_INTERFACE
class JsonUpdateTodoContents(CamelModel):
    """
    Schema for partially updating a Todo item.
    All fields are optional; only provided fields will be updated, but at least one is required.
    """

    model_config = ConfigDict(
        json_schema_extra={"example": {"title": "Buy groceries and supplies", "statusCode": "working"}}
    )

    title: Optional[str] = Field(default=None, description="Short title for the todo item")
    description: Optional[str] = Field(default=None, description="Detailed description")
    status_code: Optional[str] = Field(default=None, description="Code of the new status, e.g. 'done'")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _validate_title(v)

    @field_validator("status_code")
    @classmethod
    def validate_status_code(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            raise ValueError("`statusCode` is empty.")
        return v.strip() if v is not None else v

    @model_validator(mode="after")
    def require_any_field(self) -> "JsonUpdateTodoContents":
        if self.title is None and self.description is None and self.status_code is None:
            raise ValueError("`title`, `description` or `statusCode` is required.")
        return self

    def to_view(self, todo_id: str) -> UpdateTodoView:
        return UpdateTodoView(
            id=todo_id,
            title=self.title,
            description=self.description,
            status_code=self.status_code,
        )


# PUBLIC_INTERFACE
class JsonUpsertTodoContents(CamelModel):
    """
    Schema for replacing a Todo item. Every field is required.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"title": "Buy groceries", "description": "Milk, eggs, bread", "statusCode": "done"}
        }
    )

    title: str = Field(..., description="Short title for the todo item")
    description: str = Field(..., description="Detailed description")
    status_code: str = Field(..., description="Code of the status, e.g. 'new'")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        return _validate_title(v)

    @field_validator("status_code")
    @classmethod
    def validate_status_code(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("`statusCode` is empty.")
        return v.strip()

    def to_view(self, todo_id: str) -> UpsertTodoView:
        return UpsertTodoView(
            id=todo_id,
            title=self.title,
            description=self.description,
            status_code=self.status_code,
        )


# PUBLIC_INTERFACE
class JsonCreateUser(CamelModel):
    """
    Schema for registering a user. The username must be an email address.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"username": "taro@example.com", "password": "passw0rd!", "fullname": "Taro Yamada"}
        }
    )

    username: str = Field(..., description="Email address used as login name")
    password: str = Field(..., description=PASSWORD_RULE_MESSAGE)
    fullname: str = Field(..., description="Display name, 2..30 characters")

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        return _validate_email(v)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return _validate_password(v)

    @field_validator("fullname")
    @classmethod
    def validate_fullname(cls, v: str) -> str:
        s = v.strip()
        if not (2 <= len(s) <= 30):
            raise ValueError("fullname must be between 2 and 30 characters")
        return s

    def to_create(self) -> CreateUser:
        return CreateUser(username=self.username, password=self.password, fullname=self.fullname)


# PUBLIC_INTERFACE
class JsonLoginUser(CamelModel):
    model_config = ConfigDict(
        json_schema_extra={"example": {"username": "taro@example.com", "password": "passw0rd!"}}
    )

    username: str = Field(..., description="Email address used as login name")
    password: str = Field(..., description="Account password")

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        return _validate_email(v)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return _validate_password(v)

    def to_login(self) -> LoginUser:
        return LoginUser(username=self.username, password=self.password)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


# PUBLIC_INTERFACE
class ApiResponse(BaseModel):
    """
    Uniform response envelope returned by every JSON endpoint.
    """

    model_config = ConfigDict(
        json_schema_extra={"example": {"result": True, "message": "success", "data": {"todoView": {}}}}
    )

    result: bool = Field(..., description="True when the request succeeded")
    message: str = Field(..., description="Human readable outcome")
    data: Optional[Dict[str, Any]] = Field(default=None, description="Payload keyed by view name")


class JsonTodoStatus(CamelModel):
    code: str
    name: str

    @classmethod
    def from_view(cls, view: TodoStatusView) -> "JsonTodoStatus":
        return cls(code=view.code, name=view.name)


# PUBLIC_INTERFACE
class JsonTodo(CamelModel):
    """
    Todo item as returned by the API.
    """

    id: str = Field(..., description="ULID of the todo item")
    title: str
    description: str
    status: JsonTodoStatus
    created_at: datetime = Field(..., description="Creation timestamp (RFC 3339)")
    updated_at: datetime = Field(..., description="Last update timestamp (RFC 3339)")

    @classmethod
    def from_view(cls, view: TodoView) -> "JsonTodo":
        return cls(
            id=view.id,
            title=view.title,
            description=view.description,
            status=JsonTodoStatus.from_view(view.status),
            created_at=view.created_at,
            updated_at=view.updated_at,
        )


class JsonTodoList(CamelModel):
    todos: List[JsonTodo]
    total: int


# PUBLIC_INTERFACE
class JsonUser(CamelModel):
    """
    User as returned by the API. The password hash is never serialized.
    """

    id: str
    username: str
    email: str
    fullname: str

    @classmethod
    def from_view(cls, view: UserView) -> "JsonUser":
        return cls(id=view.id, username=view.username, email=view.email, fullname=view.fullname)
