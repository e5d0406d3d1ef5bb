"""Exam authoring, submission and grading endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from tutorhub.core import exams
from tutorhub.core.auth import Principal
from tutorhub.db.database import Database
from tutorhub.db.query_builder import PageRequest, SortRequest
from tutorhub.web.deps import get_database, get_page, get_principal, get_sort, listing
from tutorhub.web.schemas import (
    ApiResponse,
    ExamCreate,
    ExamSubmit,
    ExamUpdate,
    GradeRequest,
    ok,
)

router = APIRouter(prefix="/api/exams", tags=["exams"])


@router.post("", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
def create_exam(
    body: ExamCreate,
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    exam = exams.create_exam(
        db,
        principal,
        title=body.title,
        duration=body.duration,
        total_marks=body.total_marks,
        passing_marks=body.passing_marks,
        questions=body.questions,
        description=body.description,
        subject_id=body.subject_id,
        scheduled_at=body.scheduled_at,
        due_at=body.due_at,
    )
    return ok({"exam": exam}, "Exam created successfully")


@router.get("", response_model=ApiResponse)
def list_exams(
    status: str | None = None,
    subject: str | None = None,
    search: str | None = None,
    page: PageRequest = Depends(get_page),
    sort: SortRequest = Depends(get_sort),
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    """Own exams for tutors, published exams for students, all for admins."""
    result = exams.list_exams(
        db, principal, page, sort, status=status, subject=subject, search=search
    )
    return ok(listing(result, "exams"))


@router.get("/{exam_id}", response_model=ApiResponse)
def get_exam(
    exam_id: str,
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    return ok({"exam": exams.get_exam(db, principal, exam_id)})


@router.patch("/{exam_id}", response_model=ApiResponse)
def update_exam(
    exam_id: str,
    body: ExamUpdate,
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    exam = exams.update_exam(db, principal, exam_id, body.model_dump(exclude_unset=True))
    return ok({"exam": exam}, "Exam updated successfully")


@router.delete("/{exam_id}", response_model=ApiResponse)
def delete_exam(
    exam_id: str,
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    exams.delete_exam(db, principal, exam_id)
    return ok(message="Exam deleted successfully")


@router.post("/{exam_id}/publish", response_model=ApiResponse)
def publish_exam(
    exam_id: str,
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    exams.publish_exam(db, principal, exam_id)
    return ok(message="Exam published successfully")


@router.post(
    "/{exam_id}/submit", response_model=ApiResponse, status_code=status.HTTP_201_CREATED
)
def submit_exam(
    exam_id: str,
    body: ExamSubmit,
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    submission = exams.submit_exam(db, principal, exam_id, body.answers)
    return ok({"submission": submission}, "Exam submitted successfully")


@router.get("/{exam_id}/submissions", response_model=ApiResponse)
def list_submissions(
    exam_id: str,
    status: str | None = None,
    page: PageRequest = Depends(get_page),
    sort: SortRequest = Depends(get_sort),
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    result = exams.list_submissions(db, principal, exam_id, page, sort, status=status)
    return ok(listing(result, "submissions"))


@router.post("/{exam_id}/submissions/{submission_id}/grade", response_model=ApiResponse)
def grade_submission(
    exam_id: str,
    submission_id: str,
    body: GradeRequest,
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    submission = exams.grade_submission(
        db, principal, exam_id, submission_id, score=body.score, feedback=body.feedback
    )
    return ok({"submission": submission}, "Submission graded successfully")
