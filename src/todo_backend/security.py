from __future__ import annotations

from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Dict

import jwt
from passlib.context import CryptContext
from pydantic import BaseModel, ValidationError

from .settings import Settings

JWT_ALGORITHM = "HS256"

DEFAULT_BCRYPT_ROUNDS = 12


@lru_cache
def _crypt_context(rounds: int) -> CryptContext:
    return CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)


class TokenClaims(BaseModel):
    sub: str
    username: str
    iat: int
    exp: int


def hash_password(password: str, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> str:
    return _crypt_context(rounds).hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return _crypt_context(DEFAULT_BCRYPT_ROUNDS).verify(plain_password, hashed_password)


# PUBLIC_INTERFACE
def create_access_token(user_id: str, username: str, settings: Settings) -> str:
    """Sign a session token for ``user_id`` valid for JWT_DURATION_MINUTES."""
    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "sub": user_id,
        "username": username,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=settings.jwt_duration_minutes)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALGORITHM)


# PUBLIC_INTERFACE
def decode_token(token: str, settings: Settings) -> TokenClaims:
    """
    Verify the signature and expiry of ``token`` and return its claims.

    Raises:
        jwt.InvalidTokenError (including ExpiredSignatureError) if verification fails.
    """
    payload = jwt.decode(token, settings.jwt_secret, algorithms=[JWT_ALGORITHM])
    try:
        return TokenClaims(**payload)
    except ValidationError as e:
        raise jwt.InvalidTokenError("token claims are incomplete") from e
