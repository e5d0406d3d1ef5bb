"""Notification endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from tutorhub.core import notifications
from tutorhub.core.auth import Principal
from tutorhub.db.database import Database
from tutorhub.db.query_builder import PageRequest, SortRequest
from tutorhub.web.deps import get_database, get_page, get_principal, get_sort, listing
from tutorhub.web.schemas import ApiResponse, ok

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("", response_model=ApiResponse)
def list_notifications(
    type: str | None = None,
    is_read: str | None = Query(default=None, alias="isRead"),
    page: PageRequest = Depends(get_page),
    sort: SortRequest = Depends(get_sort),
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    result = notifications.list_notifications(
        db, principal, page, sort, type=type, is_read=is_read
    )
    data = listing(result, "notifications")
    data["unreadCount"] = data.pop("summary", {}).get("unread_count", 0)
    return ok(data)


@router.post("/read-all", response_model=ApiResponse)
def mark_all_read(
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    updated = notifications.mark_all_read(db, principal)
    return ok({"updatedCount": updated}, "All notifications marked as read")


@router.post("/{notification_id}/read", response_model=ApiResponse)
def mark_read(
    notification_id: str,
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    notifications.mark_read(db, principal, notification_id)
    return ok(message="Notification marked as read")
