"""Registration, login and password management."""

from __future__ import annotations

import sqlite3
from typing import Any

import structlog

from tutorhub.config.app_config import AuthConfig
from tutorhub.core.auth import (
    SELF_REGISTER_ROLES,
    TUTOR_ROLES,
    Principal,
    hash_password,
    issue_token,
    verify_password,
)
from tutorhub.core.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from tutorhub.core.side_effects import record_activity
from tutorhub.core.users import get_user_subjects, link_subjects
from tutorhub.db.database import Database, new_id
from tutorhub.utils.time_utils import utc_now
from tutorhub.utils.validators import check_password_strength, validate_email

logger = structlog.get_logger(__name__)


def _public_user(user: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": user["id"],
        "email": user["email"],
        "fullName": user["full_name"],
        "role": user["role"],
        "bio": user.get("bio"),
        "avatarUrl": user.get("avatar_url"),
        "isVerified": bool(user.get("is_verified")),
        "createdAt": user.get("created_at"),
    }


def register(
    db: Database,
    auth_config: AuthConfig,
    email: str,
    password: str,
    full_name: str,
    role: str,
    bio: str | None = None,
    subjects: list[str] | None = None,
) -> dict[str, Any]:
    """Create an account and return the user plus an access token.

    Tutors (and "both") get a pending tutor profile; every user gets a
    settings row.

    Raises:
        ValidationError: Bad email, weak password, unknown role
        ConflictError: Email already registered
    """
    email = email.strip().lower()
    if not validate_email(email):
        raise ValidationError("Please provide a valid email")
    check_password_strength(password)
    if not full_name.strip():
        raise ValidationError("Full name is required")
    if role not in SELF_REGISTER_ROLES:
        raise ValidationError("Invalid role")

    now = utc_now()
    user_id = new_id()
    password_hash = hash_password(password, auth_config.bcrypt_rounds)

    try:
        with db.transaction() as tx:
            if tx.fetch_value("SELECT 1 FROM users WHERE email = ?", (email,)):
                raise ConflictError("User with this email already exists")
            tx.execute(
                """
                INSERT INTO users (id, email, password_hash, full_name, role, bio, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (user_id, email, password_hash, full_name.strip(), role, bio, now, now),
            )
            tx.execute("INSERT INTO user_settings (user_id) VALUES (?)", (user_id,))
            if role in TUTOR_ROLES:
                tx.execute(
                    """
                    INSERT INTO tutor_profiles (user_id, status, created_at, updated_at)
                    VALUES (?, 'pending', ?, ?)
                    """,
                    (user_id, now, now),
                )
            if subjects:
                link_subjects(tx, user_id, subjects)
            user = tx.fetch_one("SELECT * FROM users WHERE id = ?", (user_id,))
            tx.after_commit(record_activity(user_id, "user_registered", "User account created"))
    except sqlite3.IntegrityError:
        # Concurrent registration with the same email
        raise ConflictError("User with this email already exists") from None

    logger.info("accounts.registered", user_id=user_id, role=role)
    return {"user": _public_user(user), "token": issue_token(user, auth_config)}


def login(db: Database, auth_config: AuthConfig, email: str, password: str) -> dict[str, Any]:
    """Check credentials and return the user plus an access token.

    Raises:
        UnauthorizedError: Unknown email or wrong password
        ForbiddenError: Account deactivated
    """
    with db.transaction() as tx:
        user = tx.fetch_one("SELECT * FROM users WHERE email = ?", (email.strip().lower(),))
        if user is None or not verify_password(password, user["password_hash"]):
            raise UnauthorizedError("Invalid email or password")
        if not user["is_active"]:
            raise ForbiddenError("Account has been deactivated")
        tx.execute("UPDATE users SET last_login_at = ? WHERE id = ?", (utc_now(), user["id"]))
        subjects = get_user_subjects(tx, user["id"])
        tx.after_commit(record_activity(user["id"], "user_login", "User logged in"))

    logger.info("accounts.login", user_id=user["id"])
    public = _public_user(user)
    public["subjects"] = subjects
    return {"user": public, "token": issue_token(user, auth_config)}


def current_user(db: Database, principal: Principal) -> dict[str, Any]:
    with db.transaction() as tx:
        user = tx.fetch_one(
            """
            SELECT id, email, full_name, role, bio, avatar_url, phone, is_verified, created_at
            FROM users WHERE id = ?
            """,
            (principal.id,),
        )
        if user is None:
            raise NotFoundError("User", principal.id)
        user["subjects"] = get_user_subjects(tx, principal.id)
    return user


def logout(db: Database, principal: Principal) -> None:
    """Record the logout; tokens are stateless and simply expire."""
    with db.transaction() as tx:
        tx.after_commit(record_activity(principal.id, "user_logout", "User logged out"))


def change_password(
    db: Database,
    auth_config: AuthConfig,
    principal: Principal,
    current_password: str,
    new_password: str,
) -> None:
    check_password_strength(new_password)
    with db.transaction() as tx:
        password_hash = tx.fetch_value(
            "SELECT password_hash FROM users WHERE id = ?", (principal.id,)
        )
        if password_hash is None:
            raise NotFoundError("User", principal.id)
        if not verify_password(current_password, password_hash):
            raise ValidationError("Current password is incorrect")
        tx.execute(
            "UPDATE users SET password_hash = ?, updated_at = ? WHERE id = ?",
            (hash_password(new_password, auth_config.bcrypt_rounds), utc_now(), principal.id),
        )
        tx.after_commit(record_activity(principal.id, "password_changed", "Password was changed"))
    logger.info("accounts.password_changed", user_id=principal.id)


def reset_password(
    db: Database, auth_config: AuthConfig, principal: Principal, email: str, new_password: str
) -> None:
    """Set a new password for the account with `email` (admin only)."""
    if not principal.is_admin:
        raise ForbiddenError("Admin access required")
    check_password_strength(new_password)
    with db.transaction() as tx:
        user_id = tx.fetch_value("SELECT id FROM users WHERE email = ?", (email.strip().lower(),))
        if user_id is None:
            raise NotFoundError("User")
        tx.execute(
            "UPDATE users SET password_hash = ?, updated_at = ? WHERE id = ?",
            (hash_password(new_password, auth_config.bcrypt_rounds), utc_now(), user_id),
        )
        tx.after_commit(
            record_activity(
                user_id, "password_reset", "Password was reset", {"resetBy": principal.id}
            )
        )
    logger.info("accounts.password_reset", user_id=user_id, admin_id=principal.id)
