from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .errors import InvalidIdError, InvalidJwtError, RepositoryError
from .modules import Modules, get_modules
from .security import decode_token
from .settings import Settings
from .usecases import UserView

logger = logging.getLogger(__name__)

TOKEN_COOKIE_NAMES = ("token", "access_token")

_bearer = HTTPBearer(auto_error=False, scheme_name="Authorization", bearerFormat="JWT")


# PUBLIC_INTERFACE
def extract_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials] = None) -> Optional[str]:
    """
    Return the session token sent with ``request``.

    The ``Authorization: Bearer`` header wins; otherwise the ``token`` cookie,
    then the ``access_token`` cookie, is used.
    """
    if credentials is not None and credentials.scheme.lower() == "bearer" and credentials.credentials:
        return credentials.credentials
    for name in TOKEN_COOKIE_NAMES:
        value = request.cookies.get(name)
        if value:
            return value
    return None


# PUBLIC_INTERFACE
def require_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    modules: Modules = Depends(get_modules),
) -> UserView:
    """
    Resolve the caller from their session token.

    On success the user is also stored on ``request.state.current_user`` for
    handlers that do not declare the dependency themselves.

    Raises:
        InvalidJwtError if the token is missing, fails verification, or names a
        user that no longer exists.
    """
    token = extract_token(request, credentials)
    if token is None:
        logger.error("auth_header not found")
        raise InvalidJwtError("auth_header not found")

    try:
        claims = decode_token(token, modules.settings)
    except jwt.InvalidTokenError as e:
        logger.error(f"Error decoding token: {e!r}")
        raise InvalidJwtError(str(e)) from e

    try:
        user = modules.user_use_case.get_user(claims.sub)
    except (InvalidIdError, RepositoryError) as e:
        logger.error(f"error authorizing user: {e!r}")
        raise InvalidJwtError(str(e)) from e
    if user is None:
        raise InvalidJwtError("user not found")

    request.state.current_user = user
    return user


# PUBLIC_INTERFACE
def token_cookie(token: str, settings: Settings) -> Dict[str, Any]:
    """Keyword arguments for ``Response.set_cookie`` carrying the session token."""
    return {
        "key": "token",
        "value": token,
        "path": "/",
        "max_age": settings.jwt_max_age_hours * 3600,
        "httponly": True,
        "samesite": "lax",
    }
