"""User profiles, settings, progress, activity and achievements."""

from __future__ import annotations

from typing import Any

import structlog

from tutorhub.core.auth import Principal, ensure_self_or_admin
from tutorhub.core.errors import NotFoundError, ValidationError
from tutorhub.core.side_effects import record_activity
from tutorhub.db.database import Database, Transaction, new_id
from tutorhub.utils.time_utils import utc_now

logger = structlog.get_logger(__name__)

PUBLIC_USER_COLUMNS = (
    "id, email, full_name, role, bio, avatar_url, phone, is_verified, is_active, created_at"
)

# Request field -> column
PROFILE_FIELDS = {
    "full_name": "full_name",
    "bio": "bio",
    "phone": "phone",
    "avatar_url": "avatar_url",
}

SETTINGS_FIELDS = {
    "notifications_enabled": "notifications_enabled",
    "email_notifications": "email_notifications",
    "theme": "theme",
    "language": "language",
    "timezone": "timezone",
    "privacy_level": "privacy_level",
}


def get_user_subjects(tx: Transaction, user_id: str) -> list[dict[str, Any]]:
    return tx.fetch_all(
        """
        SELECT s.id, s.name, s.category, us.proficiency_level
        FROM subjects s
        JOIN user_subjects us ON s.id = us.subject_id
        WHERE us.user_id = ?
        ORDER BY s.name
        """,
        (user_id,),
    )


def get_or_create_subject(tx: Transaction, name: str) -> str:
    """Return the id of the subject called `name`, creating it if needed."""
    subject_id = tx.fetch_value("SELECT id FROM subjects WHERE name = ?", (name,))
    if subject_id is None:
        subject_id = new_id()
        tx.execute("INSERT INTO subjects (id, name) VALUES (?, ?)", (subject_id, name))
    return subject_id


def link_subjects(
    tx: Transaction, user_id: str, names: list[str], replace: bool = False
) -> None:
    """Attach subjects (by name) to a user, optionally replacing existing links."""
    if replace:
        tx.execute("DELETE FROM user_subjects WHERE user_id = ?", (user_id,))
    for name in names:
        name = name.strip()
        if not name:
            continue
        subject_id = get_or_create_subject(tx, name)
        tx.execute(
            "INSERT OR IGNORE INTO user_subjects (user_id, subject_id) VALUES (?, ?)",
            (user_id, subject_id),
        )


def load_active_user(tx: Transaction, user_id: str) -> dict[str, Any]:
    """Load a visible (active) user or raise NotFoundError."""
    user = tx.fetch_one(
        f"SELECT {PUBLIC_USER_COLUMNS} FROM users WHERE id = ? AND is_active = 1",
        (user_id,),
    )
    if user is None:
        raise NotFoundError("User", user_id)
    return user


def get_profile(db: Database, user_id: str) -> dict[str, Any]:
    with db.transaction() as tx:
        user = load_active_user(tx, user_id)
        user["subjects"] = get_user_subjects(tx, user_id)
    return user


def update_profile(
    db: Database, principal: Principal, user_id: str, changes: dict[str, Any]
) -> dict[str, Any]:
    """Update own profile fields (admins may update anyone's)."""
    ensure_self_or_admin(principal, user_id, "You can only update your own profile")

    values = {PROFILE_FIELDS[k]: v for k, v in changes.items() if k in PROFILE_FIELDS}
    with db.transaction() as tx:
        load_active_user(tx, user_id)
        if values:
            values["updated_at"] = utc_now()
            tx.update_row("users", {"id": user_id}, values)
        if "subjects" in changes and changes["subjects"] is not None:
            link_subjects(tx, user_id, changes["subjects"], replace=True)
        user = load_active_user(tx, user_id)
        user["subjects"] = get_user_subjects(tx, user_id)
        tx.after_commit(
            record_activity(user_id, "profile_updated", "Profile information updated")
        )

    logger.info("users.profile_updated", user_id=user_id, fields=sorted(values))
    return user


def get_statistics(db: Database, user_id: str) -> dict[str, Any]:
    """Session, rating, document and achievement counts for a user."""
    with db.transaction() as tx:
        load_active_user(tx, user_id)
        sessions = tx.fetch_one(
            """
            SELECT
                COALESCE(SUM(CASE WHEN status = 'completed' THEN 1 ELSE 0 END), 0) AS completed_sessions,
                COALESCE(SUM(CASE WHEN status = 'scheduled' THEN 1 ELSE 0 END), 0) AS upcoming_sessions,
                COALESCE(SUM(CASE WHEN status = 'cancelled' THEN 1 ELSE 0 END), 0) AS cancelled_sessions,
                COALESCE(SUM(CASE WHEN status = 'completed' THEN duration ELSE 0 END), 0) AS total_minutes
            FROM sessions
            WHERE student_id = ? OR tutor_id = ?
            """,
            (user_id, user_id),
        )
        rating = tx.fetch_one(
            """
            SELECT COALESCE(AVG(rating), 0) AS average_rating, COUNT(*) AS total_reviews
            FROM reviews WHERE reviewee_id = ?
            """,
            (user_id,),
        )
        documents = tx.fetch_value("SELECT COUNT(*) FROM documents WHERE user_id = ?", (user_id,))
        achievements = tx.fetch_value(
            "SELECT COUNT(*) FROM user_achievements WHERE user_id = ?", (user_id,)
        )

    sessions["total_hours"] = round(sessions["total_minutes"] / 60, 2)
    return {
        "sessions": sessions,
        "rating": rating,
        "documents": documents,
        "achievements": achievements,
    }


def get_progress(db: Database, user_id: str) -> list[dict[str, Any]]:
    with db.transaction() as tx:
        return tx.fetch_all(
            """
            SELECT lp.id, s.name AS subject, lp.progress_percentage,
                   lp.hours_studied, lp.last_studied_at
            FROM learning_progress lp
            JOIN subjects s ON lp.subject_id = s.id
            WHERE lp.user_id = ?
            ORDER BY lp.last_studied_at IS NULL, lp.last_studied_at DESC
            """,
            (user_id,),
        )


def update_progress(
    db: Database,
    principal: Principal,
    user_id: str,
    subject: str,
    progress_percentage: float | None = None,
    hours_studied: float | None = None,
) -> dict[str, Any]:
    """Upsert learning progress for one subject (by subject name)."""
    ensure_self_or_admin(principal, user_id, "You can only update your own progress")
    if progress_percentage is not None and not 0 <= progress_percentage <= 100:
        raise ValidationError("progressPercentage must be between 0 and 100")
    if hours_studied is not None and hours_studied < 0:
        raise ValidationError("hoursStudied must not be negative")

    now = utc_now()
    with db.transaction() as tx:
        subject_id = tx.fetch_value("SELECT id FROM subjects WHERE name = ?", (subject,))
        if subject_id is None:
            raise NotFoundError("Subject", subject)
        tx.execute(
            """
            INSERT INTO learning_progress
                (id, user_id, subject_id, progress_percentage, hours_studied, last_studied_at)
            VALUES (?, ?, ?, COALESCE(?, 0), COALESCE(?, 0), ?)
            ON CONFLICT (user_id, subject_id) DO UPDATE SET
                progress_percentage = COALESCE(?, progress_percentage),
                hours_studied = COALESCE(?, hours_studied),
                last_studied_at = excluded.last_studied_at
            """,
            (
                new_id(), user_id, subject_id, progress_percentage, hours_studied, now,
                progress_percentage, hours_studied,
            ),
        )
        return tx.fetch_one(
            "SELECT * FROM learning_progress WHERE user_id = ? AND subject_id = ?",
            (user_id, subject_id),
        )


def get_activity(
    db: Database, principal: Principal, user_id: str, limit: int = 20
) -> list[dict[str, Any]]:
    ensure_self_or_admin(principal, user_id, "You can only view your own activity")
    with db.transaction() as tx:
        return tx.fetch_all(
            """
            SELECT activity_type, description, metadata, created_at
            FROM activity_log
            WHERE user_id = ?
            ORDER BY created_at DESC
            LIMIT ?
            """,
            (user_id, limit),
            json_columns=("metadata",),
        )


def get_achievements(db: Database, user_id: str) -> list[dict[str, Any]]:
    with db.transaction() as tx:
        return tx.fetch_all(
            """
            SELECT a.id, a.name, a.description, a.icon, ua.earned_at
            FROM achievements a
            JOIN user_achievements ua ON a.id = ua.achievement_id
            WHERE ua.user_id = ?
            ORDER BY ua.earned_at DESC
            """,
            (user_id,),
        )


def get_settings(db: Database, principal: Principal, user_id: str) -> dict[str, Any]:
    ensure_self_or_admin(principal, user_id, "You can only view your own settings")
    with db.transaction() as tx:
        settings = tx.fetch_one(
            """
            SELECT notifications_enabled, email_notifications, theme, language,
                   timezone, privacy_level
            FROM user_settings WHERE user_id = ?
            """,
            (user_id,),
        )
    if settings is None:
        raise NotFoundError("User settings", user_id)
    return settings


def update_settings(
    db: Database, principal: Principal, user_id: str, changes: dict[str, Any]
) -> dict[str, Any]:
    ensure_self_or_admin(principal, user_id, "You can only update your own settings")
    values = {SETTINGS_FIELDS[k]: v for k, v in changes.items() if k in SETTINGS_FIELDS}
    with db.transaction() as tx:
        exists = tx.fetch_value("SELECT 1 FROM user_settings WHERE user_id = ?", (user_id,))
        if exists is None:
            raise NotFoundError("User settings", user_id)
        tx.update_row("user_settings", {"user_id": user_id}, values)
        return tx.fetch_one("SELECT * FROM user_settings WHERE user_id = ?", (user_id,))
