"""
questboard.api.deps — FastAPI dependency injection
===================================================
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from questboard.config import QuestboardConfig, load_config
from questboard.database.engine import create_db_engine
from questboard.engine.results import Failure, FailureKind, Result

_WEAK_SECRETS = frozenset({
    "questboard-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> QuestboardConfig:
    return load_config()


def get_session(engine: Annotated[Engine, Depends(get_engine)]):
    with Session(engine) as session:
        yield session


def get_current_admin(
    authorization: Annotated[str | None, Header()] = None,
) -> dict:
    """Validate JWT and return admin user payload. Raises 401 if invalid."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    token = authorization.split(" ", 1)[1]
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    if not payload.get("is_admin"):
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Not admin")
    return payload


def get_actor_id(admin: Annotated[dict, Depends(get_current_admin)]) -> int:
    """The acting admin's user id, taken from the token subject."""
    try:
        return int(admin["sub"])
    except (KeyError, TypeError, ValueError):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Token has no valid subject")


# ---------------------------------------------------------------------------
# Lifecycle result → HTTP
# ---------------------------------------------------------------------------
_FAILURE_STATUS: dict[FailureKind, int] = {
    FailureKind.NOT_FOUND: 404,
    FailureKind.INVALID_TRANSITION: 409,
    FailureKind.CONCURRENT_MODIFICATION: 409,
    FailureKind.HAS_ACTIVE_SIGNUPS: 409,
    FailureKind.LAST_LEADER: 409,
    FailureKind.MISSING_REASON: 422,
    FailureKind.NOT_A_MEMBER: 422,
    FailureKind.INVALID_SETTINGS: 422,
    FailureKind.PERSISTENCE_FAILURE: 500,
}


def unwrap(result: Result):
    """Return the success value or raise the matching HTTPException."""
    if isinstance(result, Failure):
        raise HTTPException(
            _FAILURE_STATUS.get(result.kind, 400),
            {"kind": result.kind.value, "message": result.message, **result.detail},
        )
    return result.value


def require_phrase(typed: str | None, phrase: str) -> None:
    """Danger actions must be confirmed by retyping *phrase* exactly."""
    if (typed or "").strip() != phrase:
        raise HTTPException(
            422,
            f"Type {phrase} to confirm this action",
        )
