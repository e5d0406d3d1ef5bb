"""Tutor directory, tutor profiles, reviews and earnings."""

from __future__ import annotations

import json
from typing import Any

import structlog

from tutorhub.core.auth import Principal, ensure_self_or_admin
from tutorhub.core.errors import NotFoundError, ValidationError
from tutorhub.core.side_effects import record_activity
from tutorhub.core.users import get_user_subjects, link_subjects
from tutorhub.db.database import Database, Transaction
from tutorhub.db.listing import Page, fetch_page
from tutorhub.db.query_builder import (
    Filter,
    ListingSpec,
    PageRequest,
    Predicate,
    SortRequest,
    filter_field,
    search_field,
    template_field,
)
from tutorhub.utils.time_utils import parse_datetime, utc_now
from tutorhub.utils.validators import parse_float, parse_int

logger = structlog.get_logger(__name__)

TUTOR_STATUSES = ("pending", "approved", "rejected", "suspended")

TUTOR_LISTING = ListingSpec(
    name="tutors",
    select="""
        u.id, u.full_name, u.email, u.avatar_url, u.bio,
        tp.hourly_rate, tp.years_experience, tp.status, tp.rating,
        tp.total_reviews, tp.total_sessions, tp.created_at,
        (SELECT json_group_array(json_object('id', s.id, 'name', s.name, 'category', s.category))
         FROM user_subjects us JOIN subjects s ON s.id = us.subject_id
         WHERE us.user_id = u.id) AS subjects
    """,
    source="FROM users u JOIN tutor_profiles tp ON u.id = tp.user_id",
    where=("u.is_active = 1",),
    filters={
        "search": search_field("u.full_name", "u.bio"),
        "subject": template_field(
            "EXISTS (SELECT 1 FROM user_subjects us JOIN subjects s ON s.id = us.subject_id"
            " WHERE us.user_id = u.id AND s.name = {})"
        ),
        "minRating": filter_field(
            "tp.rating", operators=("gte",), coerce=lambda v: parse_float(v, "minRating")
        ),
        "minHourlyRate": filter_field(
            "tp.hourly_rate", operators=("gte",), coerce=lambda v: parse_float(v, "minHourlyRate")
        ),
        "maxHourlyRate": filter_field(
            "tp.hourly_rate", operators=("lte",), coerce=lambda v: parse_float(v, "maxHourlyRate")
        ),
        "experience": filter_field(
            "tp.years_experience", operators=("gte",), coerce=lambda v: parse_int(v, "experience")
        ),
        "status": filter_field("tp.status"),
    },
    sort_fields={
        "rating": "tp.rating",
        "hourly_rate": "tp.hourly_rate",
        "experience": "tp.years_experience",
        "total_reviews": "tp.total_reviews",
        "created_at": "tp.created_at",
    },
    default_sort="rating",
    tie_breaker="tp.total_reviews DESC, u.id ASC",
    default_limit=10,
    json_columns=("subjects",),
)

REVIEW_LISTING = ListingSpec(
    name="tutor_reviews",
    select="""
        r.id, r.rating, r.comment, r.created_at, r.session_id,
        u.id AS reviewer_id, u.full_name AS reviewer_name, u.avatar_url AS reviewer_avatar
    """,
    source="FROM reviews r JOIN users u ON r.reviewer_id = u.id",
    filters={},
    sort_fields={"created_at": "r.created_at", "rating": "r.rating"},
    default_sort="created_at",
    tie_breaker="r.id ASC",
    default_limit=10,
)

TUTOR_SESSION_LISTING = ListingSpec(
    name="tutor_sessions",
    select="""
        s.id, s.title, s.description, s.scheduled_at, s.duration, s.status,
        s.price, s.created_at, u.id AS student_id, u.full_name AS student_name,
        u.avatar_url AS student_avatar, sub.name AS subject
    """,
    source="""
        FROM sessions s
        JOIN users u ON s.student_id = u.id
        LEFT JOIN subjects sub ON s.subject_id = sub.id
    """,
    filters={"status": filter_field("s.status")},
    sort_fields={"scheduled_at": "s.scheduled_at", "created_at": "s.created_at"},
    default_sort="scheduled_at",
    tie_breaker="s.id ASC",
    default_limit=10,
)

PROFILE_FIELDS = {
    "hourly_rate": "hourly_rate",
    "years_experience": "years_experience",
    "bio": "bio",
    "education": "education",
}
PROFILE_JSON_FIELDS = {
    "certifications": "certifications",
    "languages": "languages",
    "availability": "availability",
}
PROFILE_JSON_COLUMNS = ("certifications", "languages", "availability")


def list_tutors(
    db: Database,
    page: PageRequest,
    sort: SortRequest | None = None,
    search: str | None = None,
    subject: str | None = None,
    min_rating: Any = None,
    min_hourly_rate: Any = None,
    max_hourly_rate: Any = None,
    experience: Any = None,
    status: str | None = None,
) -> Page:
    """Public tutor directory."""
    if status is not None and status not in TUTOR_STATUSES:
        raise ValidationError(f"Invalid status '{status}'")
    filters = [
        Filter("search", "contains", search or None),
        Filter("subject", "eq", subject or None),
        Filter("minRating", "gte", min_rating),
        Filter("minHourlyRate", "gte", min_hourly_rate),
        Filter("maxHourlyRate", "lte", max_hourly_rate),
        Filter("experience", "gte", experience),
        Filter("status", "eq", status),
    ]
    with db.transaction() as tx:
        return fetch_page(tx, TUTOR_LISTING, filters=filters, sort=sort, page=page)


def load_tutor(tx: Transaction, tutor_id: str) -> dict[str, Any]:
    """Active user joined with their tutor profile, or NotFoundError."""
    tutor = tx.fetch_one(
        """
        SELECT u.id, u.full_name, u.email, u.avatar_url, u.bio, u.phone, u.created_at,
               tp.hourly_rate, tp.years_experience, tp.status, tp.rating,
               tp.total_reviews, tp.total_sessions, tp.bio AS tutor_bio, tp.education,
               tp.certifications, tp.languages, tp.availability
        FROM users u
        JOIN tutor_profiles tp ON u.id = tp.user_id
        WHERE u.id = ? AND u.is_active = 1
        """,
        (tutor_id,),
        json_columns=PROFILE_JSON_COLUMNS,
    )
    if tutor is None:
        raise NotFoundError("Tutor", tutor_id)
    return tutor


def get_tutor(db: Database, tutor_id: str) -> dict[str, Any]:
    """Tutor profile with subjects and the five most recent reviews."""
    with db.transaction() as tx:
        tutor = load_tutor(tx, tutor_id)
        tutor["subjects"] = get_user_subjects(tx, tutor_id)
        tutor["recentReviews"] = tx.fetch_all(
            """
            SELECT r.id, r.rating, r.comment, r.created_at,
                   u.full_name AS reviewer_name, u.avatar_url AS reviewer_avatar
            FROM reviews r
            JOIN users u ON r.reviewer_id = u.id
            WHERE r.reviewee_id = ?
            ORDER BY r.created_at DESC
            LIMIT 5
            """,
            (tutor_id,),
        )
    return tutor


def update_tutor_profile(
    db: Database, principal: Principal, tutor_id: str, changes: dict[str, Any]
) -> dict[str, Any]:
    """Update tutor profile fields; a non-empty `subjects` list replaces the old one."""
    ensure_self_or_admin(principal, tutor_id, "You can only update your own tutor profile")

    if changes.get("hourly_rate") is not None and changes["hourly_rate"] < 0:
        raise ValidationError("hourlyRate must not be negative")
    if changes.get("years_experience") is not None and changes["years_experience"] < 0:
        raise ValidationError("experienceYears must not be negative")

    values = {
        PROFILE_FIELDS[k]: v for k, v in changes.items() if k in PROFILE_FIELDS and v is not None
    }
    values.update(
        {
            PROFILE_JSON_FIELDS[k]: json.dumps(v)
            for k, v in changes.items()
            if k in PROFILE_JSON_FIELDS and v is not None
        }
    )

    with db.transaction() as tx:
        exists = tx.fetch_value("SELECT 1 FROM tutor_profiles WHERE user_id = ?", (tutor_id,))
        if exists is None:
            raise NotFoundError("Tutor profile", tutor_id)
        if values:
            values["updated_at"] = utc_now()
            tx.update_row("tutor_profiles", {"user_id": tutor_id}, values)
        if changes.get("subjects"):
            link_subjects(tx, tutor_id, changes["subjects"], replace=True)
        profile = tx.fetch_one(
            "SELECT * FROM tutor_profiles WHERE user_id = ?",
            (tutor_id,),
            json_columns=PROFILE_JSON_COLUMNS,
        )
        profile["subjects"] = get_user_subjects(tx, tutor_id)
        tx.after_commit(
            record_activity(
                tutor_id, "tutor_profile_updated", "Tutor profile information updated"
            )
        )

    logger.info("tutors.profile_updated", tutor_id=tutor_id, fields=sorted(values))
    return profile


def list_reviews(
    db: Database, tutor_id: str, page: PageRequest, sort: SortRequest | None = None
) -> Page:
    with db.transaction() as tx:
        return fetch_page(
            tx,
            REVIEW_LISTING,
            sort=sort,
            page=page,
            scope=[Predicate("r.reviewee_id = {}", (tutor_id,))],
        )


def list_tutor_sessions(
    db: Database,
    principal: Principal,
    tutor_id: str,
    page: PageRequest,
    status: str | None = None,
) -> Page:
    ensure_self_or_admin(principal, tutor_id, "You can only view your own sessions")
    with db.transaction() as tx:
        return fetch_page(
            tx,
            TUTOR_SESSION_LISTING,
            filters=[Filter("status", "eq", status)],
            page=page,
            scope=[Predicate("s.tutor_id = {}", (tutor_id,))],
        )


def get_earnings(
    db: Database,
    principal: Principal,
    tutor_id: str,
    start_date: Any = None,
    end_date: Any = None,
) -> dict[str, Any]:
    """Completed-payment totals plus a monthly breakdown (latest 12 months)."""
    ensure_self_or_admin(principal, tutor_id, "You can only view your own earnings")

    conditions = ["s.tutor_id = ?", "p.status = 'completed'"]
    params: list[Any] = [tutor_id]
    if (start := parse_datetime(start_date, "startDate")) is not None:
        conditions.append("p.created_at >= ?")
        params.append(start)
    if (end := parse_datetime(end_date, "endDate")) is not None:
        conditions.append("p.created_at <= ?")
        params.append(end)
    where = " AND ".join(conditions)

    with db.transaction() as tx:
        summary = tx.fetch_one(
            f"""
            SELECT COALESCE(SUM(p.amount), 0) AS total_earnings,
                   COALESCE(SUM(p.platform_fee), 0) AS total_fees,
                   COALESCE(SUM(p.amount - p.platform_fee), 0) AS net_earnings,
                   COUNT(DISTINCT p.id) AS total_transactions,
                   COUNT(DISTINCT s.id) AS completed_sessions
            FROM payments p
            JOIN sessions s ON p.session_id = s.id
            WHERE {where}
            """,
            params,
        )
        monthly = tx.fetch_all(
            f"""
            SELECT substr(p.created_at, 1, 7) AS month,
                   COALESCE(SUM(p.amount - p.platform_fee), 0) AS net_earnings,
                   COUNT(DISTINCT s.id) AS sessions
            FROM payments p
            JOIN sessions s ON p.session_id = s.id
            WHERE {where}
            GROUP BY month
            ORDER BY month DESC
            LIMIT 12
            """,
            params,
        )

    return {"summary": summary, "monthlyBreakdown": monthly}
