"""Credentials, principals and role checks.

Passwords are hashed with bcrypt; access tokens are HS256 JWTs carrying
the user's id, email and role. Authentication is stateless: the token is
the principal.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

import bcrypt
import jwt
import structlog

from tutorhub.config.app_config import AuthConfig
from tutorhub.core.errors import ForbiddenError, UnauthorizedError

logger = structlog.get_logger(__name__)

STUDENT = "student"
TUTOR = "tutor"
BOTH = "both"
ADMIN = "admin"

ROLES = (STUDENT, TUTOR, BOTH, ADMIN)
SELF_REGISTER_ROLES = (STUDENT, TUTOR, BOTH)
TUTOR_ROLES = (TUTOR, BOTH)

BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class Principal:
    """The authenticated caller."""

    id: str
    role: str
    email: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN

    @property
    def can_tutor(self) -> bool:
        return self.role in TUTOR_ROLES


def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


def issue_token(user: dict[str, Any], config: AuthConfig) -> str:
    """Sign an access token for a user row.

    Args:
        user: Row with at least id, email and role
        config: Auth settings (secret, algorithm, ttl)

    Returns:
        Encoded JWT
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user["id"],
        "email": user["email"],
        "role": user["role"],
        "iat": now,
        "exp": now + timedelta(minutes=config.token_ttl_minutes),
    }
    return jwt.encode(payload, config.get_secret(), algorithm=config.algorithm)


def authenticate(authorization: str | None, config: AuthConfig) -> Principal:
    """Resolve an Authorization header into a principal.

    Args:
        authorization: Raw header value, expected "Bearer <token>"
        config: Auth settings

    Returns:
        Principal for the token's subject

    Raises:
        UnauthorizedError: Missing/malformed header, expired or invalid token
    """
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise UnauthorizedError("Access token is missing or invalid")

    token = authorization[len(BEARER_PREFIX):].strip()
    try:
        payload = jwt.decode(token, config.get_secret(), algorithms=[config.algorithm])
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token has expired") from None
    except jwt.InvalidTokenError:
        raise UnauthorizedError("Invalid token") from None

    role = payload.get("role")
    if not payload.get("sub") or role not in ROLES:
        logger.warning("auth.token_missing_claims")
        raise UnauthorizedError("Invalid token")

    return Principal(id=payload["sub"], role=role, email=payload.get("email", ""))


def authorize(principal: Principal, roles: Iterable[str]) -> None:
    """Require the principal to hold one of `roles`.

    Raises:
        ForbiddenError: "Insufficient permissions"
    """
    if principal.role not in tuple(roles):
        raise ForbiddenError("Insufficient permissions")


def ensure_self_or_admin(principal: Principal, owner_id: str, message: str) -> None:
    """Require the principal to be `owner_id` or an admin."""
    if principal.id != owner_id and not principal.is_admin:
        raise ForbiddenError(message)
