"""Platform-wide analytics for the admin dashboard."""

from __future__ import annotations

from typing import Any

from tutorhub.db.database import Database
from tutorhub.utils.time_utils import days_ago, parse_datetime


def _date_range(column: str, start_date: Any, end_date: Any) -> tuple[str, list[Any]]:
    conditions: list[str] = []
    params: list[Any] = []
    if (start := parse_datetime(start_date, "startDate")) is not None:
        conditions.append(f"{column} >= ?")
        params.append(start)
    if (end := parse_datetime(end_date, "endDate")) is not None:
        conditions.append(f"{column} <= ?")
        params.append(end)
    return "".join(f" AND {c}" for c in conditions), params


def get_analytics(db: Database, start_date: Any = None, end_date: Any = None) -> dict[str, Any]:
    """Users, sessions, revenue, top subjects/tutors and monthly sign-ups.

    The date range applies to sessions and revenue only; user counts are
    always platform totals.
    """
    session_range, session_params = _date_range("created_at", start_date, end_date)
    revenue_range, revenue_params = _date_range("created_at", start_date, end_date)

    with db.transaction() as tx:
        users = tx.fetch_one(
            """
            SELECT COUNT(*) AS total_users,
                   COALESCE(SUM(role = 'student'), 0) AS total_students,
                   COALESCE(SUM(role = 'tutor'), 0) AS total_tutors,
                   COALESCE(SUM(role = 'both'), 0) AS total_both,
                   COALESCE(SUM(is_verified = 1), 0) AS verified_users,
                   COALESCE(SUM(created_at >= ?), 0) AS new_users_30d
            FROM users
            WHERE is_active = 1
            """,
            (days_ago(30),),
        )
        sessions = tx.fetch_one(
            f"""
            SELECT COUNT(*) AS total_sessions,
                   COALESCE(SUM(status = 'completed'), 0) AS completed_sessions,
                   COALESCE(SUM(status = 'scheduled'), 0) AS scheduled_sessions,
                   COALESCE(SUM(status = 'cancelled'), 0) AS cancelled_sessions,
                   COALESCE(AVG(CASE WHEN status = 'completed' THEN duration END), 0) AS avg_duration
            FROM sessions
            WHERE 1 = 1{session_range}
            """,
            session_params,
        )
        revenue = tx.fetch_one(
            f"""
            SELECT COALESCE(SUM(amount), 0) AS total_revenue,
                   COALESCE(SUM(platform_fee), 0) AS total_platform_fees,
                   COALESCE(AVG(amount), 0) AS avg_transaction_amount,
                   COUNT(*) AS total_transactions
            FROM payments
            WHERE status = 'completed'{revenue_range}
            """,
            revenue_params,
        )
        top_subjects = tx.fetch_all(
            """
            SELECT s.name, s.category,
                   COUNT(DISTINCT us.user_id) AS user_count,
                   COUNT(DISTINCT ses.id) AS session_count
            FROM subjects s
            LEFT JOIN user_subjects us ON s.id = us.subject_id
            LEFT JOIN sessions ses ON s.id = ses.subject_id
            GROUP BY s.id, s.name, s.category
            ORDER BY session_count DESC, user_count DESC, s.name ASC
            LIMIT 10
            """
        )
        top_tutors = tx.fetch_all(
            """
            SELECT u.id, u.full_name, u.avatar_url, tp.rating, tp.total_reviews,
                   tp.total_sessions,
                   COALESCE(SUM(p.amount - p.platform_fee), 0) AS total_earnings
            FROM users u
            JOIN tutor_profiles tp ON u.id = tp.user_id
            LEFT JOIN sessions s ON u.id = s.tutor_id AND s.status = 'completed'
            LEFT JOIN payments p ON s.id = p.session_id AND p.status = 'completed'
            WHERE tp.status = 'approved'
            GROUP BY u.id, u.full_name, u.avatar_url, tp.rating, tp.total_reviews, tp.total_sessions
            ORDER BY tp.rating DESC, tp.total_reviews DESC, u.id ASC
            LIMIT 10
            """
        )
        monthly_growth = tx.fetch_all(
            """
            SELECT substr(created_at, 1, 7) AS month, COUNT(*) AS new_users
            FROM users
            WHERE created_at >= ?
            GROUP BY month
            ORDER BY month DESC
            """,
            (days_ago(365),),
        )

    return {
        "users": users,
        "sessions": sessions,
        "revenue": revenue,
        "topSubjects": top_subjects,
        "topTutors": top_tutors,
        "monthlyGrowth": monthly_growth,
    }
