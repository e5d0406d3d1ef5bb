"""Planner endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status

from tutorhub.core import planner
from tutorhub.core.auth import Principal
from tutorhub.db.database import Database
from tutorhub.db.query_builder import PageRequest, SortRequest
from tutorhub.web.deps import get_database, get_page, get_principal, get_sort, listing
from tutorhub.web.schemas import ApiResponse, PlannerCreate, PlannerUpdate, ok

router = APIRouter(prefix="/api/planner", tags=["planner"])


@router.post("", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
def create_item(
    body: PlannerCreate,
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    item = planner.create_item(
        db,
        principal,
        title=body.title,
        item_type=body.item_type,
        start_time=body.start_time,
        end_time=body.end_time,
        description=body.description,
        priority=body.priority,
        subject_id=body.subject_id,
        related_id=body.related_id,
        reminder_time=body.reminder_time,
        is_recurring=body.is_recurring,
        recurrence_pattern=body.recurrence_pattern,
    )
    return ok({"item": item}, "Planner item created successfully")


@router.get("", response_model=ApiResponse)
def list_items(
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
    item_type: str | None = Query(default=None, alias="itemType"),
    priority: str | None = None,
    status: str | None = None,
    subject_id: str | None = Query(default=None, alias="subjectId"),
    search: str | None = None,
    page: PageRequest = Depends(get_page),
    sort: SortRequest = Depends(get_sort),
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    """The caller's planner items plus status/priority counts."""
    result, statistics = planner.list_items(
        db,
        principal,
        page,
        sort,
        start_date=start_date,
        end_date=end_date,
        item_type=item_type,
        priority=priority,
        status=status,
        subject_id=subject_id,
        search=search,
    )
    return ok(listing(result, "items", statistics=statistics))


@router.patch("/{item_id}", response_model=ApiResponse)
def update_item(
    item_id: str,
    body: PlannerUpdate,
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    item = planner.update_item(db, principal, item_id, body.model_dump(exclude_unset=True))
    return ok({"item": item}, "Planner item updated successfully")


@router.delete("/{item_id}", response_model=ApiResponse)
def delete_item(
    item_id: str,
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    planner.delete_item(db, principal, item_id)
    return ok(message="Planner item deleted successfully")
