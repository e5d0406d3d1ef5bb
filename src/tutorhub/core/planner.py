"""Personal planner items and their reminders.

A reminder is a `planner_reminder` notification with `scheduled_for` set
and the item id in its metadata. Reminders are written in the same
transaction as the item so they never drift apart.
"""

from __future__ import annotations

import sqlite3
from typing import Any

import structlog

from tutorhub.core.auth import Principal
from tutorhub.core.errors import ForbiddenError, NotFoundError, ValidationError
from tutorhub.core.side_effects import insert_notification, record_activity
from tutorhub.db.database import Database, Transaction, new_id
from tutorhub.db.listing import Page, fetch_page
from tutorhub.db.query_builder import (
    Filter,
    ListingSpec,
    PageRequest,
    Predicate,
    SortRequest,
    filter_field,
    search_field,
)
from tutorhub.utils.time_utils import parse_datetime, start_of_day, utc_now

logger = structlog.get_logger(__name__)

PRIORITY_RANK = {"low": 1, "medium": 2, "high": 3}
ITEM_STATUSES = ("pending", "in_progress", "completed", "cancelled")
ITEM_TYPES = ("session", "exam", "assignment", "study", "reminder", "other")

PLANNER_LISTING = ListingSpec(
    name="planner_items",
    select="""
        pi.id, pi.title, pi.description, pi.item_type, pi.start_time, pi.end_time,
        pi.priority, pi.status, pi.related_id, pi.reminder_time, pi.is_recurring,
        pi.recurrence_pattern, pi.created_at, pi.updated_at, pi.subject_id,
        s.name AS subject_name, s.category AS subject_category
    """,
    source="FROM planner_items pi LEFT JOIN subjects s ON pi.subject_id = s.id",
    filters={
        "startDate": filter_field(
            "pi.start_time", operators=("gte",), coerce=lambda v: parse_datetime(v, "startDate")
        ),
        "endDate": filter_field(
            "pi.start_time", operators=("lte",), coerce=lambda v: parse_datetime(v, "endDate")
        ),
        "itemType": filter_field("pi.item_type"),
        "priority": filter_field("pi.priority"),
        "status": filter_field("pi.status"),
        "subjectId": filter_field("pi.subject_id"),
        "search": search_field("pi.title", "pi.description"),
    },
    sort_fields={
        "start_time": "pi.start_time",
        "priority": "pi.priority_rank",
        "created_at": "pi.created_at",
        "title": "pi.title",
    },
    default_sort="start_time",
    default_direction="ASC",
    tie_breaker="pi.priority_rank DESC, pi.id ASC",
    default_limit=50,
)

ITEM_FIELDS = (
    "title", "description", "item_type", "subject_id", "related_id", "recurrence_pattern",
)
# Request field -> label used in validation messages
TIME_FIELDS = (
    ("start_time", "startTime"),
    ("end_time", "endTime"),
    ("reminder_time", "reminderTime"),
)


def _check_choices(priority: str | None, status: str | None, item_type: str | None) -> None:
    if priority is not None and priority not in PRIORITY_RANK:
        raise ValidationError("priority must be one of: low, medium, high")
    if status is not None and status not in ITEM_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(ITEM_STATUSES)}")
    if item_type is not None and item_type not in ITEM_TYPES:
        raise ValidationError(f"itemType must be one of: {', '.join(ITEM_TYPES)}")


def _load_item(tx: Transaction, item_id: str) -> dict[str, Any]:
    item = tx.fetch_one("SELECT * FROM planner_items WHERE id = ?", (item_id,))
    if item is None:
        raise NotFoundError("Planner item", item_id)
    return item


def _delete_reminders(
    conn: sqlite3.Connection, user_id: str, item_id: str, unread_only: bool
) -> None:
    sql = """
        DELETE FROM notifications
        WHERE user_id = ? AND type = 'planner_reminder'
          AND json_extract(metadata, '$.plannerId') = ?
    """
    if unread_only:
        sql += " AND is_read = 0"
    conn.execute(sql, (user_id, item_id))


def _schedule_reminder(
    conn: sqlite3.Connection,
    user_id: str,
    item_id: str,
    title: str,
    description: str | None,
    reminder_time: str,
) -> None:
    insert_notification(
        conn,
        user_id,
        "planner_reminder",
        f"Reminder: {title}",
        description or f"Upcoming: {title}",
        {"plannerId": item_id},
        scheduled_for=reminder_time,
    )


def create_item(
    db: Database,
    principal: Principal,
    title: str,
    item_type: str,
    start_time: Any,
    end_time: Any = None,
    description: str | None = None,
    priority: str | None = None,
    subject_id: str | None = None,
    related_id: str | None = None,
    reminder_time: Any = None,
    is_recurring: bool = False,
    recurrence_pattern: str | None = None,
) -> dict[str, Any]:
    """Create a planner item and, if `reminder_time` is set, its reminder."""
    priority = priority or "medium"
    _check_choices(priority, None, item_type)
    start = parse_datetime(start_time, "startTime")
    end = parse_datetime(end_time, "endTime")
    reminder = parse_datetime(reminder_time, "reminderTime")
    if start is None:
        raise ValidationError("startTime is required")
    if end is not None and end < start:
        raise ValidationError("endTime must not be before startTime")
    if is_recurring and not recurrence_pattern:
        raise ValidationError("recurrencePattern is required for recurring items")

    now = utc_now()
    item_id = new_id()
    with db.transaction() as tx:
        tx.execute(
            """
            INSERT INTO planner_items (id, user_id, subject_id, title, description, item_type,
                                       start_time, end_time, priority, priority_rank, status,
                                       related_id, reminder_time, is_recurring,
                                       recurrence_pattern, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 'pending', ?, ?, ?, ?, ?, ?)
            """,
            (
                item_id, principal.id, subject_id, title, description, item_type, start, end,
                priority, PRIORITY_RANK[priority], related_id, reminder, int(is_recurring),
                recurrence_pattern, now, now,
            ),
        )
        if reminder is not None:
            _schedule_reminder(tx.conn, principal.id, item_id, title, description, reminder)
        item = _load_item(tx, item_id)
        tx.after_commit(
            record_activity(
                principal.id, "planner_item_created", f"Created planner item: {title}",
                {"plannerId": item_id},
            )
        )

    logger.info("planner.created", item_id=item_id, reminder=reminder is not None)
    item["is_recurring"] = bool(item["is_recurring"])
    return item


def get_statistics(tx: Transaction, user_id: str) -> dict[str, int]:
    """Counts across all of a user's items (not just the current page)."""
    stats = tx.fetch_one(
        """
        SELECT
            COALESCE(SUM(status = 'pending'), 0) AS pending_count,
            COALESCE(SUM(status = 'completed'), 0) AS completed_count,
            COALESCE(SUM(priority = 'high'), 0) AS high_priority_count,
            COALESCE(SUM(start_time >= ? AND start_time < ?), 0) AS today_count,
            COALESCE(SUM(start_time >= ? AND start_time < ?), 0) AS week_count
        FROM planner_items
        WHERE user_id = ?
        """,
        (start_of_day(), start_of_day(1), start_of_day(), start_of_day(7), user_id),
    )
    return {key: int(value) for key, value in stats.items()}


def list_items(
    db: Database,
    principal: Principal,
    page: PageRequest,
    sort: SortRequest | None = None,
    start_date: Any = None,
    end_date: Any = None,
    item_type: str | None = None,
    priority: str | None = None,
    status: str | None = None,
    subject_id: str | None = None,
    search: str | None = None,
) -> tuple[Page, dict[str, int]]:
    """One page of the caller's items plus overall statistics."""
    _check_choices(priority, status, item_type)
    filters = [
        Filter("startDate", "gte", start_date),
        Filter("endDate", "lte", end_date),
        Filter("itemType", "eq", item_type),
        Filter("priority", "eq", priority),
        Filter("status", "eq", status),
        Filter("subjectId", "eq", subject_id),
        Filter("search", "contains", search or None),
    ]
    with db.transaction() as tx:
        result = fetch_page(
            tx, PLANNER_LISTING, filters=filters, sort=sort, page=page,
            scope=[Predicate("pi.user_id = {}", (principal.id,))],
        )
        statistics = get_statistics(tx, principal.id)
    for item in result.items:
        item["is_recurring"] = bool(item["is_recurring"])
    return result, statistics


def update_item(
    db: Database, principal: Principal, item_id: str, changes: dict[str, Any]
) -> dict[str, Any]:
    """Update an item; a new reminder time replaces any unread reminder."""
    _check_choices(changes.get("priority"), changes.get("status"), changes.get("item_type"))
    values = {k: changes[k] for k in ITEM_FIELDS if changes.get(k) is not None}
    for key, label in TIME_FIELDS:
        if changes.get(key) is not None:
            values[key] = parse_datetime(changes[key], label)
    if changes.get("priority") is not None:
        values["priority"] = changes["priority"]
        values["priority_rank"] = PRIORITY_RANK[changes["priority"]]
    if changes.get("status") is not None:
        values["status"] = changes["status"]
    if changes.get("is_recurring") is not None:
        values["is_recurring"] = int(changes["is_recurring"])

    with db.transaction() as tx:
        item = _load_item(tx, item_id)
        if item["user_id"] != principal.id:
            raise ForbiddenError("You can only update your own planner items")
        start = values.get("start_time", item["start_time"])
        end = values.get("end_time", item["end_time"])
        if end is not None and end < start:
            raise ValidationError("endTime must not be before startTime")

        if values:
            values["updated_at"] = utc_now()
            tx.update_row("planner_items", {"id": item_id}, values)
        updated = _load_item(tx, item_id)
        if "reminder_time" in values:
            _delete_reminders(tx.conn, principal.id, item_id, unread_only=True)
            _schedule_reminder(
                tx.conn, principal.id, item_id, updated["title"], updated["description"],
                values["reminder_time"],
            )
        tx.after_commit(
            record_activity(
                principal.id, "planner_item_updated", f"Updated planner item: {updated['title']}",
                {"plannerId": item_id},
            )
        )

    logger.info("planner.updated", item_id=item_id, fields=sorted(values))
    updated["is_recurring"] = bool(updated["is_recurring"])
    return updated


def delete_item(db: Database, principal: Principal, item_id: str) -> None:
    """Delete an item together with all of its reminders."""
    with db.transaction() as tx:
        item = _load_item(tx, item_id)
        if item["user_id"] != principal.id and not principal.is_admin:
            raise ForbiddenError("You can only delete your own planner items")
        _delete_reminders(tx.conn, item["user_id"], item_id, unread_only=False)
        tx.execute("DELETE FROM planner_items WHERE id = ?", (item_id,))
        tx.after_commit(
            record_activity(
                principal.id, "planner_item_deleted", f"Deleted planner item: {item['title']}",
                {"plannerId": item_id},
            )
        )
    logger.info("planner.deleted", item_id=item_id)
