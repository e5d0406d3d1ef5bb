"""Administration endpoints (admin role only)."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import Response

from tutorhub.core import admin, analytics, export, sessions
from tutorhub.core.auth import Principal
from tutorhub.db.database import Database
from tutorhub.db.query_builder import PageRequest, SortRequest
from tutorhub.utils.time_utils import utc_now
from tutorhub.web.deps import get_database, get_page, get_sort, listing, require_admin
from tutorhub.web.schemas import (
    ApiResponse,
    ApproveRequest,
    CouponCreate,
    CouponUpdate,
    PaymentUpdate,
    RejectRequest,
    ResolveDisputeRequest,
    SuspendRequest,
    ok,
)

router = APIRouter(
    prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)]
)


# =============================================================================
# USERS AND TUTOR VERIFICATION
# =============================================================================


@router.get("/users", response_model=ApiResponse)
def list_users(
    search: str | None = None,
    role: str | None = None,
    is_verified: str | None = Query(default=None, alias="isVerified"),
    is_active: str | None = Query(default=None, alias="isActive"),
    page: PageRequest = Depends(get_page),
    sort: SortRequest = Depends(get_sort),
    db: Database = Depends(get_database),
) -> ApiResponse:
    result = admin.list_users(
        db, page, sort, search=search, role=role, is_verified=is_verified, is_active=is_active
    )
    return ok(listing(result, "users"))


@router.get("/tutors/verification-requests", response_model=ApiResponse)
def list_verification_requests(
    status: str = "pending",
    page: PageRequest = Depends(get_page),
    sort: SortRequest = Depends(get_sort),
    db: Database = Depends(get_database),
) -> ApiResponse:
    result = admin.list_verification_requests(db, page, sort, status=status)
    return ok(listing(result, "requests"))


@router.post("/tutors/{tutor_id}/approve", response_model=ApiResponse)
def approve_tutor(
    tutor_id: str,
    body: ApproveRequest | None = None,
    principal: Principal = Depends(require_admin),
    db: Database = Depends(get_database),
) -> ApiResponse:
    tutor = admin.approve_tutor(db, principal, tutor_id, notes=body.notes if body else None)
    return ok({"tutor": tutor}, "Tutor approved successfully")


@router.post("/tutors/{tutor_id}/reject", response_model=ApiResponse)
def reject_tutor(
    tutor_id: str,
    body: RejectRequest | None = None,
    principal: Principal = Depends(require_admin),
    db: Database = Depends(get_database),
) -> ApiResponse:
    tutor = admin.reject_tutor(db, principal, tutor_id, reason=body.reason if body else None)
    return ok({"tutor": tutor}, "Tutor rejected")


@router.post("/tutors/{tutor_id}/suspend", response_model=ApiResponse)
def suspend_tutor(
    tutor_id: str,
    body: SuspendRequest | None = None,
    principal: Principal = Depends(require_admin),
    db: Database = Depends(get_database),
) -> ApiResponse:
    """Suspend a tutor and cancel their scheduled sessions."""
    body = body or SuspendRequest()
    tutor = admin.suspend_tutor(
        db, principal, tutor_id, reason=body.reason, duration=body.duration
    )
    return ok({"tutor": tutor}, "Tutor suspended")


# =============================================================================
# SESSIONS, PAYMENTS AND DISPUTES
# =============================================================================


@router.get("/sessions", response_model=ApiResponse)
def list_all_sessions(
    status: str | None = None,
    tutor_id: str | None = Query(default=None, alias="tutorId"),
    student_id: str | None = Query(default=None, alias="studentId"),
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
    page: PageRequest = Depends(get_page),
    sort: SortRequest = Depends(get_sort),
    db: Database = Depends(get_database),
) -> ApiResponse:
    result = sessions.list_all_sessions(
        db,
        page,
        sort,
        status=status,
        tutor_id=tutor_id,
        student_id=student_id,
        start_date=start_date,
        end_date=end_date,
    )
    return ok(listing(result, "sessions"))


@router.get("/payments", response_model=ApiResponse)
def list_payments(
    status: str | None = None,
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
    tutor_id: str | None = Query(default=None, alias="tutorId"),
    page: PageRequest = Depends(get_page),
    sort: SortRequest = Depends(get_sort),
    db: Database = Depends(get_database),
) -> ApiResponse:
    """Payments with amount and fee totals over the filtered set."""
    result = admin.list_payments(
        db,
        page,
        sort,
        status=status,
        start_date=start_date,
        end_date=end_date,
        tutor_id=tutor_id,
    )
    return ok(listing(result, "payments"))


@router.patch("/payments/{payment_id}", response_model=ApiResponse)
def update_payment_status(
    payment_id: str,
    body: PaymentUpdate,
    principal: Principal = Depends(require_admin),
    db: Database = Depends(get_database),
) -> ApiResponse:
    payment = admin.update_payment_status(
        db,
        principal,
        payment_id,
        body.status,
        transaction_id=body.transaction_id,
        payment_method=body.payment_method,
    )
    return ok({"payment": payment}, "Payment status updated successfully")


@router.get("/disputes", response_model=ApiResponse)
def list_disputes(
    status: str = "open",
    page: PageRequest = Depends(get_page),
    sort: SortRequest = Depends(get_sort),
    db: Database = Depends(get_database),
) -> ApiResponse:
    return ok(listing(admin.list_disputes(db, page, sort, status=status), "disputes"))


@router.post("/disputes/{dispute_id}/resolve", response_model=ApiResponse)
def resolve_dispute(
    dispute_id: str,
    body: ResolveDisputeRequest,
    principal: Principal = Depends(require_admin),
    db: Database = Depends(get_database),
) -> ApiResponse:
    dispute = admin.resolve_dispute(
        db, principal, dispute_id, body.resolution, action=body.action
    )
    return ok({"dispute": dispute}, "Dispute resolved successfully")


# =============================================================================
# COUPONS
# =============================================================================


@router.get("/coupons", response_model=ApiResponse)
def list_coupons(
    is_active: str | None = Query(default=None, alias="isActive"),
    search: str | None = None,
    page: PageRequest = Depends(get_page),
    sort: SortRequest = Depends(get_sort),
    db: Database = Depends(get_database),
) -> ApiResponse:
    result = admin.list_coupons(db, page, sort, is_active=is_active, search=search)
    return ok(listing(result, "coupons"))


@router.post("/coupons", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
def create_coupon(
    body: CouponCreate,
    principal: Principal = Depends(require_admin),
    db: Database = Depends(get_database),
) -> ApiResponse:
    coupon = admin.create_coupon(
        db,
        principal,
        code=body.code,
        discount_type=body.discount_type,
        discount_value=body.discount_value,
        description=body.description,
        max_uses=body.max_uses,
        valid_from=body.valid_from,
        valid_until=body.valid_until,
    )
    return ok({"coupon": coupon}, "Coupon created successfully")


@router.patch("/coupons/{coupon_id}", response_model=ApiResponse)
def update_coupon(
    coupon_id: str,
    body: CouponUpdate,
    principal: Principal = Depends(require_admin),
    db: Database = Depends(get_database),
) -> ApiResponse:
    coupon = admin.update_coupon(db, principal, coupon_id, body.model_dump(exclude_unset=True))
    return ok({"coupon": coupon}, "Coupon updated successfully")


# =============================================================================
# ANALYTICS AND EXPORT
# =============================================================================


@router.get("/analytics", response_model=ApiResponse)
def get_analytics(
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
    db: Database = Depends(get_database),
) -> ApiResponse:
    return ok(analytics.get_analytics(db, start_date, end_date))


@router.get("/export/{export_type}")
def export_data(
    export_type: str,
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
    principal: Principal = Depends(require_admin),
    db: Database = Depends(get_database),
) -> Response:
    """Download users, sessions or payments as CSV."""
    text, _ = export.export_csv(db, export_type, start_date, end_date, principal=principal)
    filename = f"{export_type}-export-{utc_now()[:10]}.csv"
    return Response(
        content=text,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
