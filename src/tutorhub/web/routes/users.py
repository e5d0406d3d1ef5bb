"""User profile, progress, activity and settings endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from tutorhub.core import users
from tutorhub.core.auth import Principal
from tutorhub.db.database import Database
from tutorhub.web.deps import get_database, get_principal
from tutorhub.web.schemas import (
    ApiResponse,
    ProfileUpdate,
    ProgressUpdate,
    SettingsUpdate,
    ok,
)

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/{user_id}", response_model=ApiResponse)
def get_profile(
    user_id: str,
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    return ok({"user": users.get_profile(db, user_id)})


@router.patch("/{user_id}", response_model=ApiResponse)
def update_profile(
    user_id: str,
    body: ProfileUpdate,
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    user = users.update_profile(db, principal, user_id, body.model_dump(exclude_unset=True))
    return ok({"user": user}, "Profile updated successfully")


@router.get("/{user_id}/statistics", response_model=ApiResponse)
def get_statistics(
    user_id: str,
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    return ok({"statistics": users.get_statistics(db, user_id)})


@router.get("/{user_id}/progress", response_model=ApiResponse)
def get_progress(
    user_id: str,
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    return ok({"progress": users.get_progress(db, user_id)})


@router.patch("/{user_id}/progress/{subject}", response_model=ApiResponse)
def update_progress(
    user_id: str,
    subject: str,
    body: ProgressUpdate,
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    progress = users.update_progress(
        db,
        principal,
        user_id,
        subject,
        progress_percentage=body.progress_percentage,
        hours_studied=body.hours_studied,
    )
    return ok({"progress": progress}, "Progress updated successfully")


@router.get("/{user_id}/activity", response_model=ApiResponse)
def get_activity(
    user_id: str,
    limit: int = Query(default=20, ge=1, le=100),
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    return ok({"activities": users.get_activity(db, principal, user_id, limit)})


@router.get("/{user_id}/achievements", response_model=ApiResponse)
def get_achievements(
    user_id: str,
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    return ok({"achievements": users.get_achievements(db, user_id)})


@router.get("/{user_id}/settings", response_model=ApiResponse)
def get_settings(
    user_id: str,
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    return ok({"settings": users.get_settings(db, principal, user_id)})


@router.patch("/{user_id}/settings", response_model=ApiResponse)
def update_settings(
    user_id: str,
    body: SettingsUpdate,
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    settings = users.update_settings(db, principal, user_id, body.model_dump(exclude_unset=True))
    return ok({"settings": settings}, "Settings updated successfully")
