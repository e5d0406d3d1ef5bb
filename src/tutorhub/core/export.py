"""CSV export of users, sessions and payments.

Used by the admin endpoint and by `tutorhub export`.
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from typing import Any

import structlog

from tutorhub.core.auth import Principal
from tutorhub.core.errors import ValidationError
from tutorhub.core.side_effects import record_activity
from tutorhub.db.database import Database
from tutorhub.utils.time_utils import parse_datetime

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ExportSource:
    """Trusted query parts for one export type."""

    select: str
    source: str
    created_column: str


EXPORTS: dict[str, ExportSource] = {
    "users": ExportSource(
        select="u.id, u.email, u.full_name, u.role, u.phone, u.is_verified, u.is_active, u.created_at",
        source="FROM users u",
        created_column="u.created_at",
    ),
    "sessions": ExportSource(
        select="""
            s.id, s.title, s.scheduled_at, s.duration, s.status, s.price,
            student.full_name AS student_name, student.email AS student_email,
            tutor.full_name AS tutor_name, tutor.email AS tutor_email,
            sub.name AS subject, s.created_at
        """,
        source="""
            FROM sessions s
            LEFT JOIN users student ON s.student_id = student.id
            LEFT JOIN users tutor ON s.tutor_id = tutor.id
            LEFT JOIN subjects sub ON s.subject_id = sub.id
        """,
        created_column="s.created_at",
    ),
    "payments": ExportSource(
        select="""
            p.id, p.amount, p.platform_fee, p.status, p.payment_method, p.transaction_id,
            p.created_at, student.full_name AS student_name, student.email AS student_email,
            tutor.full_name AS tutor_name, tutor.email AS tutor_email
        """,
        source="""
            FROM payments p
            JOIN users student ON p.student_id = student.id
            JOIN users tutor ON p.tutor_id = tutor.id
        """,
        created_column="p.created_at",
    ),
}


def export_csv(
    db: Database,
    export_type: str,
    start_date: Any = None,
    end_date: Any = None,
    principal: Principal | None = None,
) -> tuple[str, int]:
    """Render one export type as CSV text.

    Args:
        db: Open database
        export_type: One of "users", "sessions", "payments"
        start_date: Optional lower bound on creation time
        end_date: Optional upper bound on creation time
        principal: Admin who requested the export (None from the CLI)

    Returns:
        (csv_text, row_count). With no rows the text holds only the header.

    Raises:
        ValidationError: Unknown export type or bad date
    """
    source = EXPORTS.get(export_type)
    if source is None:
        raise ValidationError(
            f"Invalid export type. Must be one of: {', '.join(EXPORTS)}"
        )

    conditions: list[str] = []
    params: list[Any] = []
    if (start := parse_datetime(start_date, "startDate")) is not None:
        conditions.append(f"{source.created_column} >= ?")
        params.append(start)
    if (end := parse_datetime(end_date, "endDate")) is not None:
        conditions.append(f"{source.created_column} <= ?")
        params.append(end)
    where = f" WHERE {' AND '.join(conditions)}" if conditions else ""

    with db.transaction() as tx:
        cursor = tx.execute(
            f"SELECT {source.select} {source.source}{where}"
            f" ORDER BY {source.created_column} DESC",
            params,
        )
        headers = [column[0] for column in cursor.description]
        rows = cursor.fetchall()

        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(headers)
        writer.writerows(tuple(row) for row in rows)

        if principal is not None:
            tx.after_commit(
                record_activity(
                    principal.id, "data_exported", f"Exported {export_type} data",
                    {"type": export_type, "recordCount": len(rows)},
                )
            )

    logger.info("export.rendered", export_type=export_type, rows=len(rows))
    return buffer.getvalue(), len(rows)
