"""Admin operations: users, tutor verification, payments, disputes, coupons.

Every function here expects an admin principal; the web layer enforces
the role before calling in.
"""

from __future__ import annotations

import sqlite3
from typing import Any

import structlog

from tutorhub.core.auth import Principal
from tutorhub.core.errors import ConflictError, NotFoundError, ValidationError
from tutorhub.core.side_effects import notify, record_activity
from tutorhub.core.tutors import TUTOR_STATUSES
from tutorhub.db.database import Database, Transaction, new_id
from tutorhub.db.listing import Page, fetch_page
from tutorhub.db.query_builder import (
    Filter,
    ListingSpec,
    PageRequest,
    SortRequest,
    filter_field,
    search_field,
)
from tutorhub.utils.time_utils import parse_datetime, utc_now
from tutorhub.utils.validators import parse_bool

logger = structlog.get_logger(__name__)

# target status -> statuses it may be reached from
TUTOR_TRANSITIONS = {
    "approved": ("pending", "rejected", "suspended"),
    "rejected": ("pending",),
    "suspended": ("approved",),
}

PAYMENT_TRANSITIONS = {
    "pending": ("completed", "failed"),
    "completed": ("refunded",),
}

USER_ROLES = ("student", "tutor", "both", "admin")
DISPUTE_STATUSES = ("open", "resolved")
PAYMENT_STATUSES = ("pending", "completed", "failed", "refunded")
DISCOUNT_TYPES = ("percentage", "fixed")


def _as_flag(value: Any) -> int | None:
    parsed = parse_bool(value)
    return None if parsed is None else int(parsed)


USER_LISTING = ListingSpec(
    name="admin_users",
    select="""
        u.id, u.email, u.full_name, u.role, u.avatar_url, u.phone, u.is_verified,
        u.is_active, u.last_login_at, u.created_at,
        (SELECT COUNT(*) FROM sessions WHERE student_id = u.id OR tutor_id = u.id) AS total_sessions,
        CASE WHEN u.role IN ('tutor', 'both') THEN tp.rating END AS tutor_rating
    """,
    source="FROM users u LEFT JOIN tutor_profiles tp ON u.id = tp.user_id",
    filters={
        "search": search_field("u.full_name", "u.email"),
        "role": filter_field("u.role"),
        "isVerified": filter_field("u.is_verified", coerce=_as_flag),
        "isActive": filter_field("u.is_active", coerce=_as_flag),
    },
    sort_fields={
        "created_at": "u.created_at",
        "full_name": "u.full_name",
        "email": "u.email",
        "role": "u.role",
    },
    default_sort="created_at",
    tie_breaker="u.id ASC",
)

VERIFICATION_LISTING = ListingSpec(
    name="tutor_verification_requests",
    select="""
        u.id AS user_id, u.email, u.full_name, u.avatar_url, u.phone,
        u.created_at AS user_created_at, tp.hourly_rate, tp.years_experience, tp.status,
        tp.status_reason, tp.bio, tp.education, tp.certifications, tp.languages,
        tp.created_at AS application_date, tp.updated_at,
        (SELECT json_group_array(json_object('id', s.id, 'name', s.name, 'category', s.category))
         FROM user_subjects us JOIN subjects s ON s.id = us.subject_id
         WHERE us.user_id = u.id) AS subjects
    """,
    source="FROM tutor_profiles tp JOIN users u ON tp.user_id = u.id",
    filters={"status": filter_field("tp.status")},
    sort_fields={"application_date": "tp.created_at", "hourly_rate": "tp.hourly_rate"},
    default_sort="application_date",
    default_direction="ASC",
    tie_breaker="u.id ASC",
    json_columns=("subjects", "certifications", "languages"),
)

PAYMENT_LISTING = ListingSpec(
    name="admin_payments",
    select="""
        p.id, p.amount, p.platform_fee, p.status, p.payment_method, p.transaction_id,
        p.created_at, p.updated_at, s.id AS session_id, s.title AS session_title,
        student.id AS student_id, student.full_name AS student_name, student.email AS student_email,
        tutor.id AS tutor_id, tutor.full_name AS tutor_name, tutor.email AS tutor_email
    """,
    source="""
        FROM payments p
        JOIN sessions s ON p.session_id = s.id
        JOIN users student ON p.student_id = student.id
        JOIN users tutor ON p.tutor_id = tutor.id
    """,
    filters={
        "status": filter_field("p.status"),
        "startDate": filter_field(
            "p.created_at", operators=("gte",), coerce=lambda v: parse_datetime(v, "startDate")
        ),
        "endDate": filter_field(
            "p.created_at", operators=("lte",), coerce=lambda v: parse_datetime(v, "endDate")
        ),
        "tutorId": filter_field("p.tutor_id"),
    },
    sort_fields={"created_at": "p.created_at", "amount": "p.amount"},
    default_sort="created_at",
    tie_breaker="p.id ASC",
    summary=(
        "COALESCE(SUM(p.amount), 0) AS total_amount",
        "COALESCE(SUM(p.platform_fee), 0) AS total_fees",
    ),
)

DISPUTE_LISTING = ListingSpec(
    name="admin_disputes",
    select="""
        d.id, d.title, d.description, d.status, d.resolution, d.created_at, d.resolved_at,
        s.id AS session_id, s.title AS session_title,
        reporter.id AS reporter_id, reporter.full_name AS reporter_name,
        reporter.email AS reporter_email,
        reported.id AS reported_id, reported.full_name AS reported_name,
        reported.email AS reported_email
    """,
    source="""
        FROM disputes d
        JOIN sessions s ON d.session_id = s.id
        JOIN users reporter ON d.reporter_id = reporter.id
        JOIN users reported ON d.reported_id = reported.id
    """,
    filters={"status": filter_field("d.status")},
    sort_fields={"created_at": "d.created_at", "resolved_at": "d.resolved_at"},
    default_sort="created_at",
    tie_breaker="d.id ASC",
)

COUPON_LISTING = ListingSpec(
    name="coupons",
    select="""
        c.id, c.code, c.description, c.discount_type, c.discount_value, c.max_uses,
        c.current_uses, c.valid_from, c.valid_until, c.is_active, c.created_at
    """,
    source="FROM coupons c",
    filters={
        "isActive": filter_field("c.is_active", coerce=_as_flag),
        "search": search_field("c.code", "c.description"),
    },
    sort_fields={"created_at": "c.created_at", "code": "c.code", "current_uses": "c.current_uses"},
    default_sort="created_at",
    tie_breaker="c.id ASC",
)

COUPON_FIELDS = ("description", "discount_type", "discount_value", "max_uses", "is_active")


# ============================================================================
# Users and tutor verification
# ============================================================================


def list_users(
    db: Database,
    page: PageRequest,
    sort: SortRequest | None = None,
    search: str | None = None,
    role: str | None = None,
    is_verified: Any = None,
    is_active: Any = None,
) -> Page:
    if role is not None and role not in USER_ROLES:
        raise ValidationError(f"Invalid role '{role}'")
    filters = [
        Filter("search", "contains", search or None),
        Filter("role", "eq", role),
        Filter("isVerified", "eq", is_verified),
        Filter("isActive", "eq", is_active),
    ]
    with db.transaction() as tx:
        return fetch_page(tx, USER_LISTING, filters=filters, sort=sort, page=page)


def list_verification_requests(
    db: Database, page: PageRequest, sort: SortRequest | None = None, status: str = "pending"
) -> Page:
    if status not in TUTOR_STATUSES:
        raise ValidationError(f"Invalid status '{status}'")
    with db.transaction() as tx:
        return fetch_page(
            tx, VERIFICATION_LISTING, filters=[Filter("status", "eq", status)], sort=sort, page=page
        )


def _transition_tutor(
    tx: Transaction, tutor_id: str, target: str, reason: str | None
) -> dict[str, Any]:
    profile = tx.fetch_one("SELECT * FROM tutor_profiles WHERE user_id = ?", (tutor_id,))
    if profile is None:
        raise NotFoundError("Tutor profile", tutor_id)
    if profile["status"] not in TUTOR_TRANSITIONS[target]:
        raise ConflictError(f"Cannot change tutor status from {profile['status']} to {target}")
    tx.execute(
        "UPDATE tutor_profiles SET status = ?, status_reason = ?, updated_at = ? WHERE user_id = ?",
        (target, reason, utc_now(), tutor_id),
    )
    if target == "approved":
        tx.execute("UPDATE users SET is_verified = 1 WHERE id = ?", (tutor_id,))
    return tx.fetch_one(
        "SELECT * FROM tutor_profiles WHERE user_id = ?",
        (tutor_id,),
        json_columns=("certifications", "languages", "availability"),
    )


def approve_tutor(
    db: Database, principal: Principal, tutor_id: str, notes: str | None = None
) -> dict[str, Any]:
    with db.transaction() as tx:
        profile = _transition_tutor(tx, tutor_id, "approved", notes)
        tx.after_commit(
            notify(
                tutor_id, "tutor_approved", "Tutor Application Approved",
                "Congratulations! Your tutor application has been approved. "
                "You can now start teaching.",
                {"notes": notes},
            )
        )
        tx.after_commit(
            record_activity(
                principal.id, "tutor_approved", f"Approved tutor application for user {tutor_id}",
                {"tutorId": tutor_id, "notes": notes},
            )
        )
    logger.info("admin.tutor_approved", tutor_id=tutor_id)
    return profile


def reject_tutor(
    db: Database, principal: Principal, tutor_id: str, reason: str | None = None
) -> dict[str, Any]:
    with db.transaction() as tx:
        profile = _transition_tutor(tx, tutor_id, "rejected", reason)
        tx.after_commit(
            notify(
                tutor_id, "tutor_rejected", "Tutor Application Rejected",
                f"Your tutor application has been rejected. Reason: {reason or 'Not specified'}",
                {"reason": reason},
            )
        )
        tx.after_commit(
            record_activity(
                principal.id, "tutor_rejected", f"Rejected tutor application for user {tutor_id}",
                {"tutorId": tutor_id, "reason": reason},
            )
        )
    logger.info("admin.tutor_rejected", tutor_id=tutor_id)
    return profile


def suspend_tutor(
    db: Database,
    principal: Principal,
    tutor_id: str,
    reason: str | None = None,
    duration: str | None = None,
) -> dict[str, Any]:
    """Suspend an approved tutor and cancel their scheduled sessions."""
    with db.transaction() as tx:
        profile = _transition_tutor(tx, tutor_id, "suspended", reason)
        affected = tx.fetch_all(
            "SELECT id, student_id, title FROM sessions WHERE tutor_id = ? AND status = 'scheduled'",
            (tutor_id,),
        )
        tx.execute(
            """
            UPDATE sessions
            SET status = 'cancelled',
                notes = COALESCE(notes || ' | ', '') || 'Cancelled due to tutor suspension',
                updated_at = ?
            WHERE tutor_id = ? AND status = 'scheduled'
            """,
            (utc_now(), tutor_id),
        )
        tx.after_commit(
            notify(
                tutor_id, "tutor_suspended", "Account Suspended",
                f"Your tutor account has been suspended. Reason: {reason or 'Not specified'}",
                {"reason": reason, "duration": duration},
            )
        )
        for session in affected:
            tx.after_commit(
                notify(
                    session["student_id"], "session_cancelled", "Session Cancelled",
                    f'Session "{session["title"]}" was cancelled because the tutor is unavailable',
                    {"sessionId": session["id"]},
                )
            )
        tx.after_commit(
            record_activity(
                principal.id, "tutor_suspended", f"Suspended tutor {tutor_id}",
                {"tutorId": tutor_id, "reason": reason, "duration": duration},
            )
        )
    logger.info("admin.tutor_suspended", tutor_id=tutor_id, cancelled_sessions=len(affected))
    profile["cancelledSessions"] = len(affected)
    return profile


# ============================================================================
# Payments
# ============================================================================


def list_payments(
    db: Database,
    page: PageRequest,
    sort: SortRequest | None = None,
    status: str | None = None,
    start_date: Any = None,
    end_date: Any = None,
    tutor_id: str | None = None,
) -> Page:
    """Payments with totals (amount, fees) over the whole filtered set."""
    if status is not None and status not in PAYMENT_STATUSES:
        raise ValidationError(f"Invalid status '{status}'")
    filters = [
        Filter("status", "eq", status),
        Filter("startDate", "gte", start_date),
        Filter("endDate", "lte", end_date),
        Filter("tutorId", "eq", tutor_id),
    ]
    with db.transaction() as tx:
        return fetch_page(tx, PAYMENT_LISTING, filters=filters, sort=sort, page=page)


def update_payment_status(
    db: Database,
    principal: Principal,
    payment_id: str,
    status: str,
    transaction_id: str | None = None,
    payment_method: str | None = None,
) -> dict[str, Any]:
    """Record the outcome of an external payment."""
    with db.transaction() as tx:
        payment = tx.fetch_one("SELECT * FROM payments WHERE id = ?", (payment_id,))
        if payment is None:
            raise NotFoundError("Payment", payment_id)
        if status not in PAYMENT_TRANSITIONS.get(payment["status"], ()):
            raise ConflictError(
                f"Cannot change payment status from {payment['status']} to {status}"
            )
        tx.execute(
            """
            UPDATE payments
            SET status = ?, transaction_id = COALESCE(?, transaction_id),
                payment_method = COALESCE(?, payment_method), updated_at = ?
            WHERE id = ?
            """,
            (status, transaction_id, payment_method, utc_now(), payment_id),
        )
        updated = tx.fetch_one("SELECT * FROM payments WHERE id = ?", (payment_id,))
        for user_id in (payment["student_id"], payment["tutor_id"]):
            tx.after_commit(
                notify(
                    user_id, f"payment_{status}", "Payment Updated",
                    f"A payment of {payment['amount']:.2f} is now {status}",
                    {"paymentId": payment_id, "sessionId": payment["session_id"]},
                )
            )
        tx.after_commit(
            record_activity(
                principal.id, "payment_updated", f"Marked payment {payment_id} as {status}",
                {"paymentId": payment_id, "status": status},
            )
        )
    logger.info("admin.payment_updated", payment_id=payment_id, status=status)
    return updated


# ============================================================================
# Disputes
# ============================================================================


def list_disputes(
    db: Database, page: PageRequest, sort: SortRequest | None = None, status: str | None = "open"
) -> Page:
    if status is not None and status not in DISPUTE_STATUSES:
        raise ValidationError(f"Invalid status '{status}'")
    with db.transaction() as tx:
        return fetch_page(
            tx, DISPUTE_LISTING, filters=[Filter("status", "eq", status)], sort=sort, page=page
        )


def resolve_dispute(
    db: Database,
    principal: Principal,
    dispute_id: str,
    resolution: str,
    action: str | None = None,
) -> dict[str, Any]:
    if not resolution.strip():
        raise ValidationError("Resolution is required")
    with db.transaction() as tx:
        dispute = tx.fetch_one("SELECT * FROM disputes WHERE id = ?", (dispute_id,))
        if dispute is None:
            raise NotFoundError("Dispute", dispute_id)
        if dispute["status"] == "resolved":
            raise ConflictError("Dispute is already resolved")
        tx.execute(
            """
            UPDATE disputes
            SET status = 'resolved', resolution = ?, resolved_at = ?, resolved_by = ?
            WHERE id = ?
            """,
            (resolution, utc_now(), principal.id, dispute_id),
        )
        resolved = tx.fetch_one("SELECT * FROM disputes WHERE id = ?", (dispute_id,))
        for user_id in (dispute["reporter_id"], dispute["reported_id"]):
            tx.after_commit(
                notify(
                    user_id, "dispute_resolved", "Dispute Resolved",
                    f"The dispute has been resolved. Resolution: {resolution}",
                    {"disputeId": dispute_id, "action": action},
                )
            )
        tx.after_commit(
            record_activity(
                principal.id, "dispute_resolved", f"Resolved dispute {dispute_id}",
                {"disputeId": dispute_id, "resolution": resolution, "action": action},
            )
        )
    logger.info("admin.dispute_resolved", dispute_id=dispute_id)
    return resolved


# ============================================================================
# Coupons
# ============================================================================


def _check_discount(discount_type: str | None, discount_value: float | None) -> None:
    if discount_type is not None and discount_type not in DISCOUNT_TYPES:
        raise ValidationError("discountType must be 'percentage' or 'fixed'")
    if discount_value is not None:
        if discount_value <= 0:
            raise ValidationError("discountValue must be positive")
        if discount_type == "percentage" and discount_value > 100:
            raise ValidationError("A percentage discount cannot exceed 100")


def list_coupons(
    db: Database,
    page: PageRequest,
    sort: SortRequest | None = None,
    is_active: Any = None,
    search: str | None = None,
) -> Page:
    filters = [Filter("isActive", "eq", is_active), Filter("search", "contains", search or None)]
    with db.transaction() as tx:
        result = fetch_page(tx, COUPON_LISTING, filters=filters, sort=sort, page=page)
    for item in result.items:
        item["is_active"] = bool(item["is_active"])
    return result


def create_coupon(
    db: Database,
    principal: Principal,
    code: str,
    discount_type: str,
    discount_value: float,
    description: str | None = None,
    max_uses: int | None = None,
    valid_from: Any = None,
    valid_until: Any = None,
) -> dict[str, Any]:
    code = code.strip().upper()
    if not code:
        raise ValidationError("Coupon code is required")
    _check_discount(discount_type, discount_value)
    if max_uses is not None and max_uses < 1:
        raise ValidationError("maxUses must be at least 1")
    start = parse_datetime(valid_from, "validFrom")
    end = parse_datetime(valid_until, "validUntil")
    if start and end and end < start:
        raise ValidationError("validUntil must be after validFrom")

    coupon_id = new_id()
    with db.transaction() as tx:
        if tx.fetch_value("SELECT 1 FROM coupons WHERE code = ?", (code,)):
            raise ConflictError("Coupon code already exists")
        try:
            tx.execute(
                """
                INSERT INTO coupons (id, code, description, discount_type, discount_value,
                                     max_uses, valid_from, valid_until, is_active, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, 1, ?)
                """,
                (coupon_id, code, description, discount_type, discount_value, max_uses,
                 start, end, utc_now()),
            )
        except sqlite3.IntegrityError as e:
            raise ConflictError("Coupon code already exists") from e
        coupon = tx.fetch_one("SELECT * FROM coupons WHERE id = ?", (coupon_id,))
        tx.after_commit(
            record_activity(
                principal.id, "coupon_created", f"Created coupon: {code}", {"couponId": coupon_id}
            )
        )
    logger.info("admin.coupon_created", coupon_id=coupon_id, code=code)
    return coupon


def update_coupon(
    db: Database, principal: Principal, coupon_id: str, changes: dict[str, Any]
) -> dict[str, Any]:
    values = {k: changes[k] for k in COUPON_FIELDS if changes.get(k) is not None}
    if "is_active" in values:
        values["is_active"] = int(values["is_active"])
    for key, label in (("valid_from", "validFrom"), ("valid_until", "validUntil")):
        if changes.get(key) is not None:
            values[key] = parse_datetime(changes[key], label)

    with db.transaction() as tx:
        coupon = tx.fetch_one("SELECT * FROM coupons WHERE id = ?", (coupon_id,))
        if coupon is None:
            raise NotFoundError("Coupon", coupon_id)
        _check_discount(
            values.get("discount_type", coupon["discount_type"]),
            values.get("discount_value", coupon["discount_value"]),
        )
        tx.update_row("coupons", {"id": coupon_id}, values)
        updated = tx.fetch_one("SELECT * FROM coupons WHERE id = ?", (coupon_id,))
        tx.after_commit(
            record_activity(
                principal.id, "coupon_updated", f"Updated coupon {coupon_id}", {"couponId": coupon_id}
            )
        )
    logger.info("admin.coupon_updated", coupon_id=coupon_id, fields=sorted(values))
    return updated
