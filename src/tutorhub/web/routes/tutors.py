"""Tutor directory, profile, review and earnings endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from tutorhub.core import tutors
from tutorhub.core.auth import Principal
from tutorhub.db.database import Database
from tutorhub.db.query_builder import PageRequest, SortRequest
from tutorhub.web.deps import get_database, get_page, get_principal, get_sort, listing
from tutorhub.web.schemas import ApiResponse, TutorProfileUpdate, ok

router = APIRouter(prefix="/api/tutors", tags=["tutors"])


@router.get("", response_model=ApiResponse)
def list_tutors(
    search: str | None = None,
    subject: str | None = None,
    min_rating: str | None = Query(default=None, alias="minRating"),
    min_hourly_rate: str | None = Query(default=None, alias="minHourlyRate"),
    max_hourly_rate: str | None = Query(default=None, alias="maxHourlyRate"),
    experience: str | None = None,
    status: str | None = None,
    page: PageRequest = Depends(get_page),
    sort: SortRequest = Depends(get_sort),
    db: Database = Depends(get_database),
) -> ApiResponse:
    """Public tutor directory."""
    result = tutors.list_tutors(
        db,
        page,
        sort,
        search=search,
        subject=subject,
        min_rating=min_rating,
        min_hourly_rate=min_hourly_rate,
        max_hourly_rate=max_hourly_rate,
        experience=experience,
        status=status,
    )
    return ok(listing(result, "tutors"))


@router.get("/{tutor_id}", response_model=ApiResponse)
def get_tutor(tutor_id: str, db: Database = Depends(get_database)) -> ApiResponse:
    return ok({"tutor": tutors.get_tutor(db, tutor_id)})


@router.patch("/{tutor_id}", response_model=ApiResponse)
def update_tutor(
    tutor_id: str,
    body: TutorProfileUpdate,
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    tutor = tutors.update_tutor_profile(
        db, principal, tutor_id, body.model_dump(exclude_unset=True)
    )
    return ok({"tutor": tutor}, "Tutor profile updated successfully")


@router.get("/{tutor_id}/reviews", response_model=ApiResponse)
def list_reviews(
    tutor_id: str,
    page: PageRequest = Depends(get_page),
    sort: SortRequest = Depends(get_sort),
    db: Database = Depends(get_database),
) -> ApiResponse:
    return ok(listing(tutors.list_reviews(db, tutor_id, page, sort), "reviews"))


@router.get("/{tutor_id}/sessions", response_model=ApiResponse)
def list_tutor_sessions(
    tutor_id: str,
    status: str | None = None,
    page: PageRequest = Depends(get_page),
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    result = tutors.list_tutor_sessions(db, principal, tutor_id, page, status=status)
    return ok(listing(result, "sessions"))


@router.get("/{tutor_id}/earnings", response_model=ApiResponse)
def get_earnings(
    tutor_id: str,
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    earnings = tutors.get_earnings(db, principal, tutor_id, start_date, end_date)
    return ok({"earnings": earnings})
