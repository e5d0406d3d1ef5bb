"""Notification and activity sink.

Mutations never write notification or activity rows inline. They register
hooks built here with `Transaction.after_commit`, and the database runs
them once the mutation has committed (a failed hook is logged, nothing
more).
"""

from __future__ import annotations

import json
import sqlite3
from typing import Any

import structlog

from tutorhub.db.database import PostCommitHook, new_id
from tutorhub.utils.time_utils import utc_now

logger = structlog.get_logger(__name__)


def insert_notification(
    conn: sqlite3.Connection,
    user_id: str,
    type: str,
    title: str,
    message: str,
    metadata: dict[str, Any] | None = None,
    scheduled_for: str | None = None,
) -> str:
    """Write a notification row and return its id."""
    notification_id = new_id()
    conn.execute(
        """
        INSERT INTO notifications (id, user_id, type, title, message, metadata, scheduled_for, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            notification_id,
            user_id,
            type,
            title,
            message,
            json.dumps(metadata or {}),
            scheduled_for,
            utc_now(),
        ),
    )
    logger.debug("notifications.inserted", user_id=user_id, type=type)
    return notification_id


def insert_activity(
    conn: sqlite3.Connection,
    user_id: str,
    activity_type: str,
    description: str,
    metadata: dict[str, Any] | None = None,
) -> None:
    """Write an activity-log row."""
    conn.execute(
        """
        INSERT INTO activity_log (id, user_id, activity_type, description, metadata, created_at)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (new_id(), user_id, activity_type, description, json.dumps(metadata or {}), utc_now()),
    )
    logger.debug("activity.recorded", user_id=user_id, activity_type=activity_type)


def notify(
    user_id: str,
    type: str,
    title: str,
    message: str,
    metadata: dict[str, Any] | None = None,
    scheduled_for: str | None = None,
) -> PostCommitHook:
    """Post-commit hook that notifies one user."""

    def run(conn: sqlite3.Connection) -> None:
        insert_notification(conn, user_id, type, title, message, metadata, scheduled_for)

    return PostCommitHook(name=f"notify:{type}", run=run)


def record_activity(
    user_id: str,
    activity_type: str,
    description: str,
    metadata: dict[str, Any] | None = None,
) -> PostCommitHook:
    """Post-commit hook that appends to a user's activity log."""

    def run(conn: sqlite3.Connection) -> None:
        insert_activity(conn, user_id, activity_type, description, metadata)

    return PostCommitHook(name=f"activity:{activity_type}", run=run)
