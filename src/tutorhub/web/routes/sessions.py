"""Session booking and lifecycle endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status

from tutorhub.config.app_config import AppConfig
from tutorhub.core import sessions
from tutorhub.core.auth import Principal
from tutorhub.db.database import Database
from tutorhub.db.query_builder import PageRequest, SortRequest
from tutorhub.web.deps import (
    get_config,
    get_database,
    get_page,
    get_principal,
    get_sort,
    listing,
    require_roles,
)
from tutorhub.web.schemas import (
    ApiResponse,
    CancelRequest,
    CompleteRequest,
    DisputeCreate,
    SessionCreate,
    SessionUpdate,
    ok,
)

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


@router.post("", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
def book_session(
    body: SessionCreate,
    principal: Principal = Depends(require_roles(*sessions.BOOKING_ROLES)),
    db: Database = Depends(get_database),
) -> ApiResponse:
    """Book a session with an approved tutor."""
    session = sessions.book_session(
        db,
        principal,
        tutor_id=body.tutor_id,
        title=body.title,
        scheduled_at=body.scheduled_at,
        duration=body.duration,
        description=body.description,
        subject_id=body.subject_id,
        price=body.price,
        meeting_link=body.meeting_link,
        notes=body.notes,
        coupon_code=body.coupon_code,
    )
    return ok({"session": session}, "Session booked successfully")


@router.get("", response_model=ApiResponse)
def list_sessions(
    role: str | None = None,
    status: str | None = None,
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
    page: PageRequest = Depends(get_page),
    sort: SortRequest = Depends(get_sort),
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    """Sessions the caller takes part in, optionally narrowed by role."""
    result = sessions.list_sessions(
        db,
        principal,
        page,
        sort,
        role=role,
        status=status,
        start_date=start_date,
        end_date=end_date,
    )
    return ok(listing(result, "sessions"))


@router.get("/{session_id}", response_model=ApiResponse)
def get_session(
    session_id: str,
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    return ok({"session": sessions.get_session(db, principal, session_id)})


@router.patch("/{session_id}", response_model=ApiResponse)
def update_session(
    session_id: str,
    body: SessionUpdate,
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    session = sessions.update_session(
        db, principal, session_id, body.model_dump(exclude_unset=True)
    )
    return ok({"session": session}, "Session updated successfully")


@router.post("/{session_id}/cancel", response_model=ApiResponse)
def cancel_session(
    session_id: str,
    body: CancelRequest | None = None,
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    reason = body.reason if body else None
    sessions.cancel_session(db, principal, session_id, reason)
    return ok(message="Session cancelled successfully")


@router.post("/{session_id}/complete", response_model=ApiResponse)
def complete_session(
    session_id: str,
    body: CompleteRequest | None = None,
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
    config: AppConfig = Depends(get_config),
) -> ApiResponse:
    """Close a session, create its pending payment and record any review."""
    body = body or CompleteRequest()
    result = sessions.complete_session(
        db,
        principal,
        config.payments,
        session_id,
        notes=body.notes,
        rating=body.rating,
        review=body.review,
    )
    return ok(result, "Session completed successfully")


@router.post(
    "/{session_id}/disputes", response_model=ApiResponse, status_code=status.HTTP_201_CREATED
)
def open_dispute(
    session_id: str,
    body: DisputeCreate,
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    dispute = sessions.open_dispute(
        db, principal, session_id, title=body.title, description=body.description
    )
    return ok({"dispute": dispute}, "Dispute opened successfully")
