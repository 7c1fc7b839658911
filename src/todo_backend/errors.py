"""
Error types shared by the controller, use-case and persistence layers.

Controller errors (``AppError`` and subclasses) know how to render themselves
into the ``{result, message, data}`` envelope. Use-case errors carry a plain
message and are translated into ``AppError`` by the routers.
"""
from __future__ import annotations

from typing import Iterable, List


# PUBLIC_INTERFACE
class AppError(Exception):
    """Catch-all controller error. Rendered with HTTP 200 and ``result: false``."""

    status_code: int = 200

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def render_message(self) -> str:
        return f"error({self.message})."


class InvalidJwtError(AppError):
    """Missing, malformed or expired session token, or the token's user is gone."""

    status_code = 400

    def render_message(self) -> str:
        return f"Missing or expired jwt({self.message})."


class ValidationFailedError(AppError):
    """Request body failed field validation; messages are joined into one string."""

    status_code = 400

    def __init__(self, messages: Iterable[str]) -> None:
        self.messages: List[str] = [m for m in messages if m]
        super().__init__(" or ".join(self.messages))

    def render_message(self) -> str:
        return self.message


class RequestRejectedError(AppError):
    """Body or path could not be parsed at all."""

    status_code = 400

    def render_message(self) -> str:
        return self.message


class UnknownApiVersionError(AppError):
    status_code = 400

    def __init__(self, version: str) -> None:
        super().__init__(version)
        self.version = version

    def render_message(self) -> str:
        return f"Unknown api version({self.version})."


# PUBLIC_INTERFACE
class UseCaseError(Exception):
    """Base class for business-rule failures raised by use cases."""


class InvalidIdError(UseCaseError):
    def __init__(self, raw: str) -> None:
        super().__init__(f"`{raw}` is not a valid id")
        self.raw = raw


class DuplicateUsernameError(UseCaseError):
    def __init__(self, username: str) -> None:
        super().__init__(f"username {username} already exists")
        self.username = username


class UserNotRegisteredError(UseCaseError):
    def __init__(self, username: str) -> None:
        super().__init__(f"username {username} is not registered")
        self.username = username


class BadPasswordError(UseCaseError):
    def __init__(self) -> None:
        super().__init__("bad password.")


class InvalidStatusCodeError(UseCaseError):
    def __init__(self, code: str) -> None:
        super().__init__("`statusCode` is invalid.")
        self.code = code


class EmptyUsernameError(UseCaseError):
    def __init__(self) -> None:
        super().__init__("username is empty")


# PUBLIC_INTERFACE
class RepositoryError(Exception):
    """A storage backend failed (connection, SQL, or row conversion)."""
