"""In-app notifications.

Notifications with `scheduled_for` in the future (planner reminders) stay
hidden until they are due.
"""

from __future__ import annotations

import structlog

from tutorhub.core.auth import Principal
from tutorhub.core.errors import NotFoundError
from tutorhub.db.database import Database
from tutorhub.db.listing import Page, fetch_page
from tutorhub.db.query_builder import (
    Filter,
    ListingSpec,
    PageRequest,
    Predicate,
    SortRequest,
    filter_field,
)
from tutorhub.utils.time_utils import utc_now
from tutorhub.utils.validators import parse_bool

logger = structlog.get_logger(__name__)

NOTIFICATION_LISTING = ListingSpec(
    name="notifications",
    select="n.id, n.type, n.title, n.message, n.metadata, n.is_read, n.scheduled_for, n.created_at",
    source="FROM notifications n",
    filters={
        "type": filter_field("n.type"),
        "isRead": filter_field("n.is_read", coerce=lambda v: int(parse_bool(v))),
    },
    sort_fields={"created_at": "n.created_at"},
    default_sort="created_at",
    tie_breaker="n.id ASC",
    summary=("COALESCE(SUM(n.is_read = 0), 0) AS unread_count",),
    default_limit=20,
    json_columns=("metadata",),
)


def _visible_to(user_id: str) -> list[Predicate]:
    return [
        Predicate("n.user_id = {}", (user_id,)),
        Predicate("(n.scheduled_for IS NULL OR n.scheduled_for <= {})", (utc_now(),)),
    ]


def list_notifications(
    db: Database,
    principal: Principal,
    page: PageRequest,
    sort: SortRequest | None = None,
    type: str | None = None,
    is_read: str | bool | None = None,
) -> Page:
    filters = [Filter("type", "eq", type), Filter("isRead", "eq", is_read)]
    with db.transaction() as tx:
        result = fetch_page(
            tx, NOTIFICATION_LISTING, filters=filters, sort=sort, page=page,
            scope=_visible_to(principal.id),
        )
    for item in result.items:
        item["is_read"] = bool(item["is_read"])
    return result


def mark_read(db: Database, principal: Principal, notification_id: str) -> None:
    with db.transaction() as tx:
        changed = tx.execute(
            "UPDATE notifications SET is_read = 1 WHERE id = ? AND user_id = ?",
            (notification_id, principal.id),
        ).rowcount
        if not changed:
            raise NotFoundError("Notification", notification_id)


def mark_all_read(db: Database, principal: Principal) -> int:
    """Mark every due notification as read; returns how many changed."""
    with db.transaction() as tx:
        marked = tx.execute(
            """
            UPDATE notifications SET is_read = 1
            WHERE user_id = ? AND is_read = 0
              AND (scheduled_for IS NULL OR scheduled_for <= ?)
            """,
            (principal.id, utc_now()),
        ).rowcount
    logger.debug("notifications.marked_all_read", user_id=principal.id, count=marked)
    return marked
