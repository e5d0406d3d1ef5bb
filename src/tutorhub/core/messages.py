"""Direct messages between users."""

from __future__ import annotations

from typing import Any

import structlog

from tutorhub.core.auth import Principal
from tutorhub.core.errors import ForbiddenError, NotFoundError, ValidationError
from tutorhub.core.side_effects import notify
from tutorhub.db.database import Database, Transaction, new_id
from tutorhub.db.listing import Page, fetch_page
from tutorhub.db.query_builder import ListingSpec, PageRequest, Predicate, search_field
from tutorhub.utils.time_utils import utc_now

logger = structlog.get_logger(__name__)

MAX_MESSAGE_LENGTH = 5000

THREAD_LISTING = ListingSpec(
    name="messages",
    select="""
        m.id, m.sender_id, m.receiver_id, m.content, m.attachment_url, m.attachment_type,
        m.is_read, m.read_at, m.created_at,
        sender.full_name AS sender_name, sender.avatar_url AS sender_avatar
    """,
    source="FROM messages m JOIN users sender ON m.sender_id = sender.id",
    filters={"search": search_field("m.content")},
    sort_fields={"created_at": "m.created_at"},
    default_sort="created_at",
    tie_breaker="m.id DESC",
    default_limit=50,
)


def send_message(
    db: Database,
    principal: Principal,
    receiver_id: str,
    content: str,
    attachment_url: str | None = None,
    attachment_type: str | None = None,
) -> dict[str, Any]:
    """Store a message and notify the receiver after commit."""
    if receiver_id == principal.id:
        raise ValidationError("Cannot send message to yourself")
    if not content.strip() and not attachment_url:
        raise ValidationError("Message content is required")
    if len(content) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"Message must be at most {MAX_MESSAGE_LENGTH} characters")

    message_id = new_id()
    with db.transaction() as tx:
        receiver = tx.fetch_one(
            "SELECT id, full_name, avatar_url FROM users WHERE id = ? AND is_active = 1",
            (receiver_id,),
        )
        if receiver is None:
            raise NotFoundError("Receiver", receiver_id)
        sender = tx.fetch_one(
            "SELECT id, full_name, avatar_url FROM users WHERE id = ?", (principal.id,)
        )
        tx.execute(
            """
            INSERT INTO messages (id, sender_id, receiver_id, content, attachment_url,
                                  attachment_type, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                message_id, principal.id, receiver_id, content,
                attachment_url, attachment_type, utc_now(),
            ),
        )
        message = tx.fetch_one("SELECT * FROM messages WHERE id = ?", (message_id,))
        tx.after_commit(
            notify(
                receiver_id, "new_message", "New Message",
                f"You have a new message from {sender['full_name'] if sender else 'a user'}",
                {"messageId": message_id, "senderId": principal.id},
            )
        )

    logger.info("messages.sent", message_id=message_id, receiver_id=receiver_id)
    return {**message, "sender": sender, "receiver": receiver}


def get_conversation(
    db: Database, principal: Principal, other_user_id: str, page: PageRequest
) -> tuple[dict[str, Any], Page]:
    """Messages with one other user, oldest first within the page.

    Reading the thread marks the other user's messages to the caller as read.
    """
    with db.transaction() as tx:
        other = tx.fetch_one(
            "SELECT id, full_name, avatar_url, role FROM users WHERE id = ? AND is_active = 1",
            (other_user_id,),
        )
        if other is None:
            raise NotFoundError("User", other_user_id)
        result = fetch_page(
            tx,
            THREAD_LISTING,
            page=page,
            scope=[
                Predicate(
                    "((m.sender_id = {} AND m.receiver_id = {})"
                    " OR (m.sender_id = {} AND m.receiver_id = {}))",
                    (principal.id, other_user_id, other_user_id, principal.id),
                )
            ],
        )
        tx.execute(
            """
            UPDATE messages SET is_read = 1, read_at = ?
            WHERE sender_id = ? AND receiver_id = ? AND is_read = 0
            """,
            (utc_now(), other_user_id, principal.id),
        )
    result.items.reverse()
    return other, result


def list_conversations(
    db: Database, principal: Principal, page: PageRequest, default_limit: int = 20
) -> tuple[Page, int]:
    """One row per conversation partner with the last message and unread count.

    Returns:
        (page of conversations, total unread messages for the caller)
    """
    limit = page.effective_limit(default_limit)
    offset = (page.page - 1) * limit
    me = principal.id
    with db.transaction() as tx:
        rows = tx.fetch_all(
            """
            WITH ranked AS (
                SELECT m.*,
                       CASE WHEN m.sender_id = ?1 THEN m.receiver_id ELSE m.sender_id END
                           AS other_user_id,
                       ROW_NUMBER() OVER (
                           PARTITION BY CASE WHEN m.sender_id = ?1
                                             THEN m.receiver_id ELSE m.sender_id END
                           ORDER BY m.created_at DESC, m.id DESC
                       ) AS rn
                FROM messages m
                WHERE m.sender_id = ?1 OR m.receiver_id = ?1
            ),
            unread AS (
                SELECT sender_id AS other_user_id, COUNT(*) AS unread_count
                FROM messages
                WHERE receiver_id = ?1 AND is_read = 0
                GROUP BY sender_id
            )
            SELECT r.id AS last_message_id, r.content AS last_message,
                   r.attachment_url, r.attachment_type, r.created_at AS last_message_at,
                   r.is_read, r.sender_id = ?1 AS i_sent_last,
                   u.id AS other_user_id, u.full_name AS other_user_name,
                   u.avatar_url AS other_user_avatar, u.role AS other_user_role,
                   COALESCE(unread.unread_count, 0) AS unread_count
            FROM ranked r
            JOIN users u ON r.other_user_id = u.id
            LEFT JOIN unread ON unread.other_user_id = u.id
            WHERE r.rn = 1
            ORDER BY r.created_at DESC, u.id ASC
            LIMIT ?2 OFFSET ?3
            """,
            (me, limit, offset),
        )
        total = tx.fetch_value(
            """
            SELECT COUNT(DISTINCT CASE WHEN sender_id = ?1 THEN receiver_id ELSE sender_id END)
            FROM messages WHERE sender_id = ?1 OR receiver_id = ?1
            """,
            (me,),
        )
        unread_total = count_unread(tx, me)
    for row in rows:
        row["i_sent_last"] = bool(row["i_sent_last"])
    return Page(items=rows, total_count=total, page=page.page, limit=limit), unread_total


def count_unread(tx: Transaction, user_id: str) -> int:
    return tx.fetch_value(
        "SELECT COUNT(*) FROM messages WHERE receiver_id = ? AND is_read = 0", (user_id,)
    )


def unread_count(db: Database, principal: Principal) -> int:
    with db.transaction() as tx:
        return count_unread(tx, principal.id)


def mark_read(db: Database, principal: Principal, other_user_id: str) -> int:
    """Mark every unread message from `other_user_id` to the caller as read."""
    with db.transaction() as tx:
        marked = tx.execute(
            """
            UPDATE messages SET is_read = 1, read_at = ?
            WHERE sender_id = ? AND receiver_id = ? AND is_read = 0
            """,
            (utc_now(), other_user_id, principal.id),
        ).rowcount
    logger.debug("messages.marked_read", other_user_id=other_user_id, count=marked)
    return marked


def delete_message(db: Database, principal: Principal, message_id: str) -> None:
    with db.transaction() as tx:
        sender_id = tx.fetch_value("SELECT sender_id FROM messages WHERE id = ?", (message_id,))
        if sender_id is None:
            raise NotFoundError("Message", message_id)
        if sender_id != principal.id and not principal.is_admin:
            raise ForbiddenError("You can only delete your own messages")
        tx.execute("DELETE FROM messages WHERE id = ?", (message_id,))
    logger.info("messages.deleted", message_id=message_id)
