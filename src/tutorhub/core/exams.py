"""Exams: authoring, publishing, student submissions and grading.

Exam lifecycle is draft -> published (once). Exams with submissions
cannot be deleted. A submission goes submitted -> graded, and students
never see the `correctAnswer` of a question.
"""

from __future__ import annotations

import json
import sqlite3
from typing import Any

import structlog

from tutorhub.core.auth import Principal
from tutorhub.core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from tutorhub.core.side_effects import notify, record_activity
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
from tutorhub.utils.time_utils import parse_datetime, utc_now

logger = structlog.get_logger(__name__)

EXAM_STATUSES = ("draft", "published")
SUBMISSION_STATUSES = ("submitted", "graded")
ALREADY_SUBMITTED_MESSAGE = "You have already submitted this exam"

EXAM_LISTING = ListingSpec(
    name="exams",
    select="""
        e.id, e.title, e.description, e.duration, e.total_marks, e.passing_marks,
        e.scheduled_at, e.due_at, e.status, e.published_at, e.created_at, e.tutor_id,
        s.name AS subject,
        (SELECT COUNT(*) FROM exam_submissions WHERE exam_id = e.id) AS total_submissions,
        (SELECT COUNT(*) FROM exam_submissions
         WHERE exam_id = e.id AND status = 'graded') AS graded_submissions
    """,
    source="FROM exams e LEFT JOIN subjects s ON e.subject_id = s.id",
    filters={
        "status": filter_field("e.status"),
        "subject": filter_field("s.name"),
        "search": search_field("e.title", "e.description"),
    },
    sort_fields={
        "created_at": "e.created_at",
        "title": "e.title",
        "due_at": "e.due_at",
        "scheduled_at": "e.scheduled_at",
    },
    default_sort="created_at",
    tie_breaker="e.id ASC",
    default_limit=10,
)

SUBMISSION_LISTING = ListingSpec(
    name="exam_submissions",
    select="""
        es.id, es.exam_id, es.student_id, es.score, es.passed, es.feedback,
        es.status, es.submitted_at, es.graded_at,
        u.full_name AS student_name, u.email AS student_email, u.avatar_url AS student_avatar
    """,
    source="FROM exam_submissions es JOIN users u ON es.student_id = u.id",
    filters={"status": filter_field("es.status")},
    sort_fields={"submitted_at": "es.submitted_at", "score": "es.score"},
    default_sort="submitted_at",
    tie_breaker="es.id ASC",
    default_limit=10,
)

EXAM_FIELDS = {
    "title": "title",
    "description": "description",
    "subject_id": "subject_id",
    "duration": "duration",
    "total_marks": "total_marks",
    "passing_marks": "passing_marks",
}


def _check_marks(duration: Any, total_marks: Any, passing_marks: Any) -> None:
    if duration is not None and duration <= 0:
        raise ValidationError("Duration must be a positive number of minutes")
    if total_marks is not None and total_marks <= 0:
        raise ValidationError("totalMarks must be positive")
    if passing_marks is not None and passing_marks < 0:
        raise ValidationError("passingMarks must not be negative")
    if total_marks is not None and passing_marks is not None and passing_marks > total_marks:
        raise ValidationError("passingMarks cannot exceed totalMarks")


def _check_questions(questions: Any) -> None:
    if not isinstance(questions, list) or not all(isinstance(q, dict) for q in questions):
        raise ValidationError("questions must be a list of question objects")


def _load_exam(tx: Transaction, exam_id: str) -> dict[str, Any]:
    exam = tx.fetch_one("SELECT * FROM exams WHERE id = ?", (exam_id,), json_columns=("questions",))
    if exam is None:
        raise NotFoundError("Exam", exam_id)
    return exam


def _ensure_owner(principal: Principal, exam: dict[str, Any], action: str) -> None:
    if exam["tutor_id"] != principal.id and not principal.is_admin:
        raise ForbiddenError(f"You can only {action} your own exams")


# UNIQUE (exam_id, student_id) is authoritative; this is the early exit.
def _already_submitted(tx: Transaction, exam_id: str, student_id: str) -> bool:
    return (
        tx.fetch_value(
            "SELECT 1 FROM exam_submissions WHERE exam_id = ? AND student_id = ?",
            (exam_id, student_id),
        )
        is not None
    )


def create_exam(
    db: Database,
    principal: Principal,
    title: str,
    duration: int,
    total_marks: int,
    passing_marks: int,
    questions: list[dict[str, Any]],
    description: str | None = None,
    subject_id: str | None = None,
    scheduled_at: Any = None,
    due_at: Any = None,
) -> dict[str, Any]:
    """Create a draft exam. Only users with a tutor profile may author exams."""
    _check_marks(duration, total_marks, passing_marks)
    _check_questions(questions)
    scheduled = parse_datetime(scheduled_at, "scheduledAt")
    due = parse_datetime(due_at, "dueAt")

    now = utc_now()
    exam_id = new_id()
    with db.transaction() as tx:
        is_tutor = tx.fetch_value(
            "SELECT 1 FROM tutor_profiles WHERE user_id = ?", (principal.id,)
        )
        if is_tutor is None:
            raise ForbiddenError("Only tutors can create exams")
        if subject_id is not None and tx.fetch_value(
            "SELECT 1 FROM subjects WHERE id = ?", (subject_id,)
        ) is None:
            raise NotFoundError("Subject", subject_id)
        tx.execute(
            """
            INSERT INTO exams (id, tutor_id, subject_id, title, description, duration,
                               total_marks, passing_marks, questions, scheduled_at, due_at,
                               status, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 'draft', ?, ?)
            """,
            (
                exam_id, principal.id, subject_id, title, description, duration, total_marks,
                passing_marks, json.dumps(questions), scheduled, due, now, now,
            ),
        )
        exam = _load_exam(tx, exam_id)
        tx.after_commit(
            record_activity(
                principal.id, "exam_created", f"Created exam: {title}", {"examId": exam_id}
            )
        )

    logger.info("exams.created", exam_id=exam_id, tutor_id=principal.id)
    return exam


def list_exams(
    db: Database,
    principal: Principal,
    page: PageRequest,
    sort: SortRequest | None = None,
    status: str | None = None,
    subject: str | None = None,
    search: str | None = None,
) -> Page:
    """Exams the caller authored, or (for students) published exams."""
    if status is not None and status not in EXAM_STATUSES:
        raise ValidationError(f"Invalid status '{status}'")
    if principal.can_tutor:
        scope = Predicate("e.tutor_id = {}", (principal.id,))
    elif principal.is_admin:
        scope = None
    else:
        scope = Predicate("e.status = {}", ("published",))
    filters = [
        Filter("status", "eq", status),
        Filter("subject", "eq", subject),
        Filter("search", "contains", search or None),
    ]
    with db.transaction() as tx:
        return fetch_page(
            tx, EXAM_LISTING, filters=filters, sort=sort, page=page,
            scope=[scope] if scope is not None else [],
        )


def get_exam(db: Database, principal: Principal, exam_id: str) -> dict[str, Any]:
    """Exam details; non-owners see published exams without answers."""
    with db.transaction() as tx:
        exam = tx.fetch_one(
            """
            SELECT e.*, s.name AS subject, u.full_name AS tutor_name
            FROM exams e
            LEFT JOIN subjects s ON e.subject_id = s.id
            LEFT JOIN users u ON e.tutor_id = u.id
            WHERE e.id = ?
            """,
            (exam_id,),
            json_columns=("questions",),
        )
        if exam is None:
            raise NotFoundError("Exam", exam_id)

        is_owner = exam["tutor_id"] == principal.id or principal.is_admin
        if not is_owner:
            if exam["status"] == "draft":
                raise ForbiddenError("This exam is not yet published")
            exam["questions"] = [
                {k: v for k, v in q.items() if k != "correctAnswer"} for q in exam["questions"]
            ]
            exam["submission"] = tx.fetch_one(
                "SELECT id, status, score, passed FROM exam_submissions"
                " WHERE exam_id = ? AND student_id = ?",
                (exam_id, principal.id),
            )
    return exam


def update_exam(
    db: Database, principal: Principal, exam_id: str, changes: dict[str, Any]
) -> dict[str, Any]:
    values = {EXAM_FIELDS[k]: v for k, v in changes.items() if k in EXAM_FIELDS and v is not None}
    if changes.get("questions") is not None:
        _check_questions(changes["questions"])
        values["questions"] = json.dumps(changes["questions"])
    for key, label in (("scheduled_at", "scheduledAt"), ("due_at", "dueAt")):
        if changes.get(key) is not None:
            values[key] = parse_datetime(changes[key], label)

    with db.transaction() as tx:
        exam = _load_exam(tx, exam_id)
        _ensure_owner(principal, exam, "update")
        _check_marks(
            values.get("duration"),
            values.get("total_marks", exam["total_marks"]),
            values.get("passing_marks", exam["passing_marks"]),
        )
        if values:
            values["updated_at"] = utc_now()
            tx.update_row("exams", {"id": exam_id}, values)
        updated = _load_exam(tx, exam_id)
        tx.after_commit(
            record_activity(
                principal.id, "exam_updated", f"Updated exam: {updated['title']}",
                {"examId": exam_id},
            )
        )

    logger.info("exams.updated", exam_id=exam_id, fields=sorted(values))
    return updated


def delete_exam(db: Database, principal: Principal, exam_id: str) -> None:
    with db.transaction() as tx:
        exam = _load_exam(tx, exam_id)
        _ensure_owner(principal, exam, "delete")
        if tx.fetch_value("SELECT COUNT(*) FROM exam_submissions WHERE exam_id = ?", (exam_id,)):
            raise ConflictError("Cannot delete exam with existing submissions")
        tx.execute("DELETE FROM exams WHERE id = ?", (exam_id,))
        tx.after_commit(
            record_activity(
                principal.id, "exam_deleted", f"Deleted exam: {exam['title']}", {"examId": exam_id}
            )
        )
    logger.info("exams.deleted", exam_id=exam_id)


def publish_exam(db: Database, principal: Principal, exam_id: str) -> None:
    with db.transaction() as tx:
        exam = _load_exam(tx, exam_id)
        _ensure_owner(principal, exam, "publish")
        if exam["status"] == "published":
            raise ConflictError("Exam is already published")
        if not exam["questions"]:
            raise ValidationError("Cannot publish an exam without questions")
        now = utc_now()
        tx.execute(
            "UPDATE exams SET status = 'published', published_at = ?, updated_at = ? WHERE id = ?",
            (now, now, exam_id),
        )
        tx.after_commit(
            record_activity(
                principal.id, "exam_published", f"Published exam: {exam['title']}",
                {"examId": exam_id},
            )
        )
    logger.info("exams.published", exam_id=exam_id)


def submit_exam(
    db: Database, principal: Principal, exam_id: str, answers: list[Any]
) -> dict[str, Any]:
    """Record a student's answers for a published exam.

    Raises:
        NotFoundError: Exam missing or still a draft
        ConflictError: Deadline passed, or the student already submitted
    """
    if not isinstance(answers, list):
        raise ValidationError("answers must be a list")
    now = utc_now()
    submission_id = new_id()
    with db.transaction() as tx:
        exam = tx.fetch_one(
            "SELECT id, tutor_id, title, due_at FROM exams WHERE id = ? AND status = 'published'",
            (exam_id,),
        )
        if exam is None:
            raise NotFoundError("Exam", exam_id)
        if exam["tutor_id"] == principal.id:
            raise ValidationError("You cannot submit your own exam")
        if exam["due_at"] and exam["due_at"] < now:
            raise ConflictError("Exam submission deadline has passed")
        if _already_submitted(tx, exam_id, principal.id):
            raise ConflictError(ALREADY_SUBMITTED_MESSAGE)

        try:
            tx.execute(
                """
                INSERT INTO exam_submissions
                    (id, exam_id, student_id, answers, status, submitted_at)
                VALUES (?, ?, ?, ?, 'submitted', ?)
                """,
                (submission_id, exam_id, principal.id, json.dumps(answers), now),
            )
        except sqlite3.IntegrityError as e:
            if "UNIQUE" in str(e) and "exam_submissions" in str(e):
                raise ConflictError(ALREADY_SUBMITTED_MESSAGE) from e
            raise

        submission = tx.fetch_one(
            "SELECT * FROM exam_submissions WHERE id = ?",
            (submission_id,),
            json_columns=("answers",),
        )
        tx.after_commit(
            notify(
                exam["tutor_id"], "exam_submitted", "New Exam Submission",
                f"A student has submitted the exam: {exam['title']}",
                {"examId": exam_id, "submissionId": submission_id, "studentId": principal.id},
            )
        )
        tx.after_commit(
            record_activity(
                principal.id, "exam_submitted", f"Submitted exam: {exam['title']}",
                {"examId": exam_id, "submissionId": submission_id},
            )
        )

    logger.info("exams.submitted", exam_id=exam_id, submission_id=submission_id)
    return submission


def list_submissions(
    db: Database,
    principal: Principal,
    exam_id: str,
    page: PageRequest,
    sort: SortRequest | None = None,
    status: str | None = None,
) -> Page:
    if status is not None and status not in SUBMISSION_STATUSES:
        raise ValidationError(f"Invalid status '{status}'")
    with db.transaction() as tx:
        exam = _load_exam(tx, exam_id)
        if exam["tutor_id"] != principal.id and not principal.is_admin:
            raise ForbiddenError("You can only view submissions for your own exams")
        return fetch_page(
            tx,
            SUBMISSION_LISTING,
            filters=[Filter("status", "eq", status)],
            sort=sort,
            page=page,
            scope=[Predicate("es.exam_id = {}", (exam_id,))],
        )


def grade_submission(
    db: Database,
    principal: Principal,
    exam_id: str,
    submission_id: str,
    score: float,
    feedback: str | None = None,
) -> dict[str, Any]:
    """Grade a submission once; passing is score >= passing_marks."""
    now = utc_now()
    with db.transaction() as tx:
        submission = tx.fetch_one(
            """
            SELECT es.id, es.exam_id, es.student_id, es.status,
                   e.tutor_id, e.title, e.total_marks, e.passing_marks
            FROM exam_submissions es
            JOIN exams e ON es.exam_id = e.id
            WHERE es.id = ? AND es.exam_id = ?
            """,
            (submission_id, exam_id),
        )
        if submission is None:
            raise NotFoundError("Submission", submission_id)
        if submission["tutor_id"] != principal.id and not principal.is_admin:
            raise ForbiddenError("You can only grade submissions for your own exams")
        if submission["status"] == "graded":
            raise ConflictError("Submission has already been graded")
        if not 0 <= score <= submission["total_marks"]:
            raise ValidationError(f"Score must be between 0 and {submission['total_marks']}")

        passed = score >= submission["passing_marks"]
        tx.execute(
            """
            UPDATE exam_submissions
            SET score = ?, passed = ?, feedback = ?, status = 'graded', graded_at = ?
            WHERE id = ?
            """,
            (score, int(passed), feedback, now, submission_id),
        )
        graded = tx.fetch_one(
            "SELECT * FROM exam_submissions WHERE id = ?",
            (submission_id,),
            json_columns=("answers",),
        )
        graded["passed"] = passed
        tx.after_commit(
            notify(
                submission["student_id"], "exam_graded", "Exam Graded",
                f'Your exam "{submission["title"]}" has been graded. '
                f"Score: {score}/{submission['total_marks']}",
                {
                    "examId": exam_id,
                    "submissionId": submission_id,
                    "score": score,
                    "passed": passed,
                },
            )
        )
        tx.after_commit(
            record_activity(
                principal.id, "exam_graded", f"Graded exam submission for: {submission['title']}",
                {"submissionId": submission_id, "score": score},
            )
        )

    logger.info("exams.graded", submission_id=submission_id, score=score, passed=passed)
    return graded
