"""Session booking and lifecycle.

Lifecycle: scheduled -> in_progress -> completed, or scheduled -> cancelled.
Completion creates a pending payment and, optionally, the student's review.

Double booking is prevented by the partial unique index on
sessions(tutor_id, scheduled_at) for active sessions; the lookup in
`_slot_taken` only gives the common case a friendlier early exit.
"""

from __future__ import annotations

import sqlite3
from typing import Any

import structlog

from tutorhub.config.app_config import PaymentsConfig
from tutorhub.core.auth import ADMIN, BOTH, STUDENT, Principal, authorize
from tutorhub.core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from tutorhub.core.side_effects import notify, record_activity
from tutorhub.db.database import Database, PostCommitHook, Transaction, new_id
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
from tutorhub.utils.time_utils import parse_datetime, utc_now

logger = structlog.get_logger(__name__)

SESSION_STATUSES = ("scheduled", "in_progress", "completed", "cancelled")
ACTIVE_STATUSES = ("scheduled", "in_progress")
BOOKING_ROLES = (STUDENT, BOTH, ADMIN)

SLOT_TAKEN_MESSAGE = "Tutor is not available at this time"

# Achievement name -> completed sessions needed (as a student)
SESSION_ACHIEVEMENTS = {"First Session": 1, "Quick Learner": 10}

SESSION_LISTING = ListingSpec(
    name="sessions",
    select="""
        s.id, s.title, s.description, s.scheduled_at, s.duration, s.status,
        s.price, s.meeting_link, s.created_at, s.student_id, s.tutor_id,
        student.full_name AS student_name, student.avatar_url AS student_avatar,
        tutor.full_name AS tutor_name, tutor.avatar_url AS tutor_avatar,
        sub.name AS subject
    """,
    source="""
        FROM sessions s
        JOIN users student ON s.student_id = student.id
        JOIN users tutor ON s.tutor_id = tutor.id
        LEFT JOIN subjects sub ON s.subject_id = sub.id
    """,
    filters={
        "status": filter_field("s.status"),
        "startDate": filter_field(
            "s.scheduled_at", operators=("gte",), coerce=lambda v: parse_datetime(v, "startDate")
        ),
        "endDate": filter_field(
            "s.scheduled_at", operators=("lte",), coerce=lambda v: parse_datetime(v, "endDate")
        ),
        "tutorId": filter_field("s.tutor_id"),
        "studentId": filter_field("s.student_id"),
        "search": search_field("s.title", "s.description"),
    },
    sort_fields={
        "scheduled_at": "s.scheduled_at",
        "created_at": "s.created_at",
        "price": "s.price",
        "duration": "s.duration",
    },
    default_sort="scheduled_at",
    tie_breaker="s.id ASC",
    default_limit=10,
)

UPDATABLE_FIELDS = ("title", "description", "scheduled_at", "duration", "meeting_link", "notes")


def _slot_taken(tx: Transaction, tutor_id: str, scheduled_at: str) -> bool:
    return (
        tx.fetch_value(
            """
            SELECT 1 FROM sessions
            WHERE tutor_id = ? AND scheduled_at = ? AND status IN ('scheduled', 'in_progress')
            """,
            (tutor_id, scheduled_at),
        )
        is not None
    )


def _is_slot_violation(error: sqlite3.IntegrityError) -> bool:
    return "UNIQUE" in str(error) and "sessions" in str(error)


def _load_session(tx: Transaction, session_id: str) -> dict[str, Any]:
    session = tx.fetch_one("SELECT * FROM sessions WHERE id = ?", (session_id,))
    if session is None:
        raise NotFoundError("Session", session_id)
    return session


def _ensure_participant(principal: Principal, session: dict[str, Any], message: str) -> None:
    if principal.id not in (session["student_id"], session["tutor_id"]) and not principal.is_admin:
        raise ForbiddenError(message)


def _other_parties(principal: Principal, session: dict[str, Any]) -> list[str]:
    """Participants to notify about an action taken by `principal`."""
    return [
        uid for uid in (session["student_id"], session["tutor_id"]) if uid != principal.id
    ]


def _apply_coupon(tx: Transaction, code: str, price: float, now: str) -> tuple[str, float]:
    """Validate a coupon, count its use, and return (coupon_id, discounted price)."""
    coupon = tx.fetch_one("SELECT * FROM coupons WHERE code = ?", (code.strip().upper(),))
    if coupon is None or not coupon["is_active"]:
        raise ValidationError("Invalid or inactive coupon code")
    if coupon["valid_from"] and now < coupon["valid_from"]:
        raise ValidationError("Coupon is not valid yet")
    if coupon["valid_until"] and now > coupon["valid_until"]:
        raise ValidationError("Coupon has expired")
    if coupon["max_uses"] is not None and coupon["current_uses"] >= coupon["max_uses"]:
        raise ConflictError("Coupon usage limit reached")

    if coupon["discount_type"] == "percentage":
        discounted = price * (1 - coupon["discount_value"] / 100)
    else:
        discounted = price - coupon["discount_value"]

    tx.execute(
        "UPDATE coupons SET current_uses = current_uses + 1 WHERE id = ?", (coupon["id"],)
    )
    return coupon["id"], round(max(discounted, 0.0), 2)


def book_session(
    db: Database,
    principal: Principal,
    tutor_id: str,
    title: str,
    scheduled_at: Any,
    duration: int,
    description: str | None = None,
    subject_id: str | None = None,
    price: float | None = None,
    meeting_link: str | None = None,
    notes: str | None = None,
    coupon_code: str | None = None,
) -> dict[str, Any]:
    """Book a session with a tutor for the calling student.

    Raises:
        NotFoundError: Tutor (or subject) does not exist or is inactive
        ConflictError: Tutor not approved, or the slot is already booked
        ValidationError: Bad duration, price, coupon, or self-booking
    """
    authorize(principal, BOOKING_ROLES)
    if duration <= 0:
        raise ValidationError("Duration must be a positive number of minutes")
    if price is not None and price < 0:
        raise ValidationError("Price must not be negative")
    if tutor_id == principal.id:
        raise ValidationError("You cannot book a session with yourself")
    slot = parse_datetime(scheduled_at, "scheduledAt")
    if slot is None:
        raise ValidationError("scheduledAt is required")

    now = utc_now()
    session_id = new_id()

    with db.transaction() as tx:
        tutor = tx.fetch_one(
            """
            SELECT u.id, u.full_name, tp.status, tp.hourly_rate
            FROM users u
            JOIN tutor_profiles tp ON u.id = tp.user_id
            WHERE u.id = ? AND u.is_active = 1
            """,
            (tutor_id,),
        )
        if tutor is None:
            raise NotFoundError("Tutor", tutor_id)
        if tutor["status"] != "approved":
            raise ConflictError("Tutor is not approved to take sessions")
        if subject_id is not None and tx.fetch_value(
            "SELECT 1 FROM subjects WHERE id = ?", (subject_id,)
        ) is None:
            raise NotFoundError("Subject", subject_id)
        if _slot_taken(tx, tutor_id, slot):
            raise ConflictError(SLOT_TAKEN_MESSAGE)

        amount = price if price is not None else round(tutor["hourly_rate"] * duration / 60, 2)
        coupon_id = None
        if coupon_code:
            coupon_id, amount = _apply_coupon(tx, coupon_code, amount, now)

        try:
            tx.execute(
                """
                INSERT INTO sessions (
                    id, student_id, tutor_id, subject_id, coupon_id, title, description,
                    scheduled_at, duration, status, price, meeting_link, notes,
                    created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 'scheduled', ?, ?, ?, ?, ?)
                """,
                (
                    session_id, principal.id, tutor_id, subject_id, coupon_id, title,
                    description, slot, duration, amount, meeting_link, notes, now, now,
                ),
            )
        except sqlite3.IntegrityError as e:
            if _is_slot_violation(e):
                raise ConflictError(SLOT_TAKEN_MESSAGE) from e
            raise

        session = _load_session(tx, session_id)
        tx.after_commit(
            notify(
                tutor_id,
                "session_booked",
                "New Session Booked",
                f"A new session has been booked: {title}",
                {"sessionId": session_id, "studentId": principal.id},
            )
        )
        tx.after_commit(
            record_activity(
                principal.id, "session_created", f"Created session: {title}",
                {"sessionId": session_id},
            )
        )

    logger.info("sessions.booked", session_id=session_id, tutor_id=tutor_id, scheduled_at=slot)
    return session


def list_sessions(
    db: Database,
    principal: Principal,
    page: PageRequest,
    sort: SortRequest | None = None,
    role: str | None = None,
    status: str | None = None,
    start_date: Any = None,
    end_date: Any = None,
) -> Page:
    """Sessions the caller takes part in, optionally narrowed to one side."""
    if status is not None and status not in SESSION_STATUSES:
        raise ValidationError(f"Invalid status '{status}'")
    if role == "student":
        scope = Predicate("s.student_id = {}", (principal.id,))
    elif role == "tutor":
        scope = Predicate("s.tutor_id = {}", (principal.id,))
    elif role is None:
        scope = Predicate("(s.student_id = {} OR s.tutor_id = {})", (principal.id, principal.id))
    else:
        raise ValidationError("role must be 'student' or 'tutor'")

    filters = [
        Filter("status", "eq", status),
        Filter("startDate", "gte", start_date),
        Filter("endDate", "lte", end_date),
    ]
    with db.transaction() as tx:
        return fetch_page(tx, SESSION_LISTING, filters=filters, sort=sort, page=page, scope=[scope])


def list_all_sessions(
    db: Database,
    page: PageRequest,
    sort: SortRequest | None = None,
    status: str | None = None,
    tutor_id: str | None = None,
    student_id: str | None = None,
    start_date: Any = None,
    end_date: Any = None,
) -> Page:
    """Every session on the platform (admin view)."""
    if status is not None and status not in SESSION_STATUSES:
        raise ValidationError(f"Invalid status '{status}'")
    filters = [
        Filter("status", "eq", status),
        Filter("tutorId", "eq", tutor_id),
        Filter("studentId", "eq", student_id),
        Filter("startDate", "gte", start_date),
        Filter("endDate", "lte", end_date),
    ]
    with db.transaction() as tx:
        return fetch_page(tx, SESSION_LISTING, filters=filters, sort=sort, page=page)


def get_session(db: Database, principal: Principal, session_id: str) -> dict[str, Any]:
    with db.transaction() as tx:
        session = tx.fetch_one(
            """
            SELECT s.id, s.title, s.description, s.scheduled_at, s.duration, s.status,
                   s.price, s.meeting_link, s.notes, s.created_at, s.updated_at,
                   s.completed_at, s.student_id, s.tutor_id,
                   sub.id AS subject_id, sub.name AS subject,
                   json_object('id', st.id, 'name', st.full_name, 'email', st.email,
                               'avatar', st.avatar_url) AS student,
                   json_object('id', tu.id, 'name', tu.full_name, 'email', tu.email,
                               'avatar', tu.avatar_url) AS tutor
            FROM sessions s
            LEFT JOIN subjects sub ON s.subject_id = sub.id
            JOIN users st ON s.student_id = st.id
            JOIN users tu ON s.tutor_id = tu.id
            WHERE s.id = ?
            """,
            (session_id,),
            json_columns=("student", "tutor"),
        )
        if session is None:
            raise NotFoundError("Session", session_id)
        _ensure_participant(principal, session, "You do not have access to this session")
        session["review"] = tx.fetch_one(
            "SELECT id, rating, comment, created_at FROM reviews WHERE session_id = ?",
            (session_id,),
        )
    return session


def update_session(
    db: Database, principal: Principal, session_id: str, changes: dict[str, Any]
) -> dict[str, Any]:
    """Edit a scheduled session, or move it to in_progress.

    Completion and cancellation have their own operations.
    """
    new_status = changes.get("status")
    if new_status is not None and new_status not in ("scheduled", "in_progress"):
        raise ValidationError("Use the cancel or complete actions to close a session")
    if changes.get("duration") is not None and changes["duration"] <= 0:
        raise ValidationError("Duration must be a positive number of minutes")

    values = {k: changes[k] for k in UPDATABLE_FIELDS if changes.get(k) is not None}
    if "scheduled_at" in values:
        values["scheduled_at"] = parse_datetime(values["scheduled_at"], "scheduledAt")
    if new_status is not None:
        values["status"] = new_status

    with db.transaction() as tx:
        session = _load_session(tx, session_id)
        _ensure_participant(principal, session, "You can only update sessions you are part of")
        current = session["status"]
        if current not in ACTIVE_STATUSES:
            raise ConflictError("Cannot update session in current status")
        if current == "in_progress" and values.get("status") == "scheduled":
            raise ConflictError("A session in progress cannot go back to scheduled")

        if values:
            values["updated_at"] = utc_now()
            try:
                tx.update_row("sessions", {"id": session_id}, values)
            except sqlite3.IntegrityError as e:
                if _is_slot_violation(e):
                    raise ConflictError(SLOT_TAKEN_MESSAGE) from e
                raise

        updated = _load_session(tx, session_id)
        for user_id in _other_parties(principal, session):
            tx.after_commit(
                notify(
                    user_id, "session_updated", "Session Updated",
                    "A session has been updated", {"sessionId": session_id},
                )
            )
        tx.after_commit(
            record_activity(
                principal.id, "session_updated", "Updated session", {"sessionId": session_id}
            )
        )

    logger.info("sessions.updated", session_id=session_id, fields=sorted(values))
    return updated


def cancel_session(
    db: Database, principal: Principal, session_id: str, reason: str | None = None
) -> None:
    """Cancel a scheduled session and tell the other participant(s)."""
    reason = reason or "No reason provided"
    with db.transaction() as tx:
        session = _load_session(tx, session_id)
        _ensure_participant(principal, session, "You can only cancel sessions you are part of")
        if session["status"] != "scheduled":
            raise ConflictError("Can only cancel scheduled sessions")

        tx.execute(
            """
            UPDATE sessions
            SET status = 'cancelled',
                notes = COALESCE(notes || ' | ', '') || 'Cancelled: ' || ?,
                updated_at = ?
            WHERE id = ?
            """,
            (reason, utc_now(), session_id),
        )
        for user_id in _other_parties(principal, session):
            tx.after_commit(
                notify(
                    user_id, "session_cancelled", "Session Cancelled",
                    f'Session "{session["title"]}" has been cancelled',
                    {"sessionId": session_id, "reason": reason},
                )
            )
        tx.after_commit(
            record_activity(
                principal.id, "session_cancelled", f"Cancelled session: {session['title']}",
                {"sessionId": session_id, "reason": reason},
            )
        )

    logger.info("sessions.cancelled", session_id=session_id, by=principal.id)


def _refresh_tutor_rating(tx: Transaction, tutor_id: str) -> None:
    tx.execute(
        """
        UPDATE tutor_profiles
        SET rating = (SELECT COALESCE(ROUND(AVG(rating), 2), 0) FROM reviews WHERE reviewee_id = ?),
            total_reviews = (SELECT COUNT(*) FROM reviews WHERE reviewee_id = ?)
        WHERE user_id = ?
        """,
        (tutor_id, tutor_id, tutor_id),
    )


def award_session_achievements(student_id: str) -> PostCommitHook:
    """Post-commit hook granting session-count achievements to a student."""

    def run(conn: sqlite3.Connection) -> None:
        completed = conn.execute(
            "SELECT COUNT(*) FROM sessions WHERE student_id = ? AND status = 'completed'",
            (student_id,),
        ).fetchone()[0]
        for name, needed in SESSION_ACHIEVEMENTS.items():
            if completed < needed:
                continue
            achievement_id = conn.execute(
                "SELECT id FROM achievements WHERE name = ?", (name,)
            ).fetchone()
            if achievement_id is None:
                continue
            conn.execute(
                """
                INSERT OR IGNORE INTO user_achievements (user_id, achievement_id, earned_at)
                VALUES (?, ?, ?)
                """,
                (student_id, achievement_id[0], utc_now()),
            )

    return PostCommitHook(name="achievements:sessions", run=run)


def complete_session(
    db: Database,
    principal: Principal,
    payments: PaymentsConfig,
    session_id: str,
    notes: str | None = None,
    rating: int | None = None,
    review: str | None = None,
) -> dict[str, Any]:
    """Mark a session completed (tutor or admin).

    Creates a pending payment with the platform fee and, when a rating is
    given, the student's review of the tutor.
    """
    if rating is not None and not 1 <= rating <= 5:
        raise ValidationError("Rating must be between 1 and 5")

    now = utc_now()
    with db.transaction() as tx:
        session = _load_session(tx, session_id)
        if session["tutor_id"] != principal.id and not principal.is_admin:
            raise ForbiddenError("Only the tutor can mark a session as complete")
        if session["status"] not in ACTIVE_STATUSES:
            raise ConflictError("Can only complete sessions that are in progress or scheduled")

        tx.execute(
            """
            UPDATE sessions
            SET status = 'completed', notes = COALESCE(?, notes),
                completed_at = ?, updated_at = ?
            WHERE id = ?
            """,
            (notes, now, now, session_id),
        )
        tx.execute(
            "UPDATE tutor_profiles SET total_sessions = total_sessions + 1 WHERE user_id = ?",
            (session["tutor_id"],),
        )

        fee = round(session["price"] * payments.platform_fee_rate, 2)
        payment_id = new_id()
        tx.execute(
            """
            INSERT INTO payments (id, session_id, student_id, tutor_id, amount, platform_fee,
                                  status, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, 'pending', ?, ?)
            """,
            (
                payment_id, session_id, session["student_id"], session["tutor_id"],
                session["price"], fee, now, now,
            ),
        )

        if rating is not None:
            tx.execute(
                """
                INSERT INTO reviews (id, session_id, reviewer_id, reviewee_id, rating,
                                     comment, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    new_id(), session_id, session["student_id"], session["tutor_id"],
                    rating, review, now,
                ),
            )
            _refresh_tutor_rating(tx, session["tutor_id"])

        tx.after_commit(
            notify(
                session["student_id"], "session_completed", "Session Completed",
                f'Session "{session["title"]}" has been completed', {"sessionId": session_id},
            )
        )
        tx.after_commit(
            record_activity(
                principal.id, "session_completed", f"Completed session: {session['title']}",
                {"sessionId": session_id},
            )
        )
        tx.after_commit(award_session_achievements(session["student_id"]))

    logger.info("sessions.completed", session_id=session_id, payment_id=payment_id, fee=fee)
    return {
        "sessionId": session_id,
        "paymentId": payment_id,
        "amount": session["price"],
        "platformFee": fee,
    }


def open_dispute(
    db: Database,
    principal: Principal,
    session_id: str,
    title: str,
    description: str | None = None,
) -> dict[str, Any]:
    """Let a participant raise a dispute about a session."""
    if not title.strip():
        raise ValidationError("Dispute title is required")
    now = utc_now()
    dispute_id = new_id()
    with db.transaction() as tx:
        session = _load_session(tx, session_id)
        if principal.id not in (session["student_id"], session["tutor_id"]):
            raise ForbiddenError("Only session participants can open a dispute")
        if session["status"] == "scheduled":
            raise ConflictError("Disputes can only be opened for sessions that have started")
        if tx.fetch_value(
            "SELECT 1 FROM disputes WHERE session_id = ? AND reporter_id = ? AND status = 'open'",
            (session_id, principal.id),
        ):
            raise ConflictError("You already have an open dispute for this session")

        reported_id = (
            session["tutor_id"] if principal.id == session["student_id"] else session["student_id"]
        )
        tx.execute(
            """
            INSERT INTO disputes (id, session_id, reporter_id, reported_id, title, description,
                                  status, created_at)
            VALUES (?, ?, ?, ?, ?, ?, 'open', ?)
            """,
            (dispute_id, session_id, principal.id, reported_id, title.strip(), description, now),
        )
        dispute = tx.fetch_one("SELECT * FROM disputes WHERE id = ?", (dispute_id,))
        tx.after_commit(
            notify(
                reported_id, "dispute_opened", "Dispute Opened",
                f'A dispute was opened for session "{session["title"]}"',
                {"disputeId": dispute_id, "sessionId": session_id},
            )
        )
        tx.after_commit(
            record_activity(
                principal.id, "dispute_opened", f"Opened dispute: {title.strip()}",
                {"disputeId": dispute_id},
            )
        )

    logger.info("sessions.dispute_opened", dispute_id=dispute_id, session_id=session_id)
    return dispute
