"""Authentication endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from tutorhub.config.app_config import AppConfig
from tutorhub.core import accounts
from tutorhub.core.auth import Principal
from tutorhub.db.database import Database
from tutorhub.web.deps import get_config, get_database, get_principal, require_admin
from tutorhub.web.schemas import (
    ApiResponse,
    ChangePasswordRequest,
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
    ok,
)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
def register(
    body: RegisterRequest,
    db: Database = Depends(get_database),
    config: AppConfig = Depends(get_config),
) -> ApiResponse:
    """Create an account and sign it in."""
    result = accounts.register(
        db,
        config.auth,
        email=body.email,
        password=body.password,
        full_name=body.full_name,
        role=body.role,
        bio=body.bio,
        subjects=body.subjects,
    )
    return ok(result, "User registered successfully")


@router.post("/login", response_model=ApiResponse)
def login(
    body: LoginRequest,
    db: Database = Depends(get_database),
    config: AppConfig = Depends(get_config),
) -> ApiResponse:
    result = accounts.login(db, config.auth, body.email, body.password)
    return ok(result, "Login successful")


@router.get("/me", response_model=ApiResponse)
def me(
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    return ok({"user": accounts.current_user(db, principal)})


@router.post("/logout", response_model=ApiResponse)
def logout(
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    accounts.logout(db, principal)
    return ok(message="Logout successful")


@router.post("/change-password", response_model=ApiResponse)
def change_password(
    body: ChangePasswordRequest,
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
    config: AppConfig = Depends(get_config),
) -> ApiResponse:
    accounts.change_password(db, config.auth, principal, body.current_password, body.new_password)
    return ok(message="Password changed successfully")


@router.post("/reset-password", response_model=ApiResponse)
def reset_password(
    body: ResetPasswordRequest,
    principal: Principal = Depends(require_admin),
    db: Database = Depends(get_database),
    config: AppConfig = Depends(get_config),
) -> ApiResponse:
    """Set a user's password (admin only)."""
    accounts.reset_password(db, config.auth, principal, body.email, body.new_password)
    return ok(message="Password reset successfully")
