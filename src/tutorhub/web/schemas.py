"""Pydantic schemas for the Web API.

Request bodies accept camelCase keys (the frontend's convention) and also
the snake_case field names. `model_dump(exclude_unset=True)` of an update
body is what the services receive as `changes`.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for request bodies."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ApiResponse(BaseModel):
    """Uniform response envelope."""

    success: bool = True
    message: str | None = None
    data: Any = None


class HealthResponse(BaseModel):
    status: str
    version: str
    timestamp: str


def ok(data: Any = None, message: str | None = None) -> ApiResponse:
    return ApiResponse(success=True, message=message, data=data)


# =============================================================================
# AUTH SCHEMAS
# =============================================================================


class RegisterRequest(CamelModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., max_length=128)
    full_name: str = Field(..., min_length=1, max_length=255)
    role: str = "student"
    bio: str | None = None
    subjects: list[str] | None = None


class LoginRequest(CamelModel):
    email: str
    password: str


class ChangePasswordRequest(CamelModel):
    current_password: str
    new_password: str


class ResetPasswordRequest(CamelModel):
    email: str
    new_password: str


# =============================================================================
# USER SCHEMAS
# =============================================================================


class ProfileUpdate(CamelModel):
    full_name: str | None = Field(default=None, min_length=1, max_length=255)
    bio: str | None = None
    phone: str | None = None
    avatar_url: str | None = None
    subjects: list[str] | None = None


class ProgressUpdate(CamelModel):
    progress_percentage: float | None = None
    hours_studied: float | None = None


class SettingsUpdate(CamelModel):
    notifications_enabled: bool | None = None
    email_notifications: bool | None = None
    theme: str | None = None
    language: str | None = None
    timezone: str | None = None
    privacy_level: str | None = None


class TutorProfileUpdate(CamelModel):
    hourly_rate: float | None = None
    years_experience: int | None = Field(default=None, alias="experienceYears")
    bio: str | None = None
    education: str | None = None
    certifications: list[Any] | None = None
    languages: list[str] | None = None
    availability: dict[str, Any] | None = None
    subjects: list[str] | None = None


# =============================================================================
# SESSION SCHEMAS
# =============================================================================


class SessionCreate(CamelModel):
    tutor_id: str
    title: str = Field(..., min_length=1, max_length=255)
    scheduled_at: str
    duration: int
    description: str | None = None
    subject_id: str | None = None
    price: float | None = None
    meeting_link: str | None = None
    notes: str | None = None
    coupon_code: str | None = None


class SessionUpdate(CamelModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    scheduled_at: str | None = None
    duration: int | None = None
    meeting_link: str | None = None
    notes: str | None = None
    status: str | None = None


class CancelRequest(CamelModel):
    reason: str | None = None


class CompleteRequest(CamelModel):
    notes: str | None = None
    rating: int | None = None
    review: str | None = None


class DisputeCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None


# =============================================================================
# EXAM SCHEMAS
# =============================================================================


class ExamCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=255)
    duration: int
    total_marks: int
    passing_marks: int
    questions: list[dict[str, Any]]
    description: str | None = None
    subject_id: str | None = None
    scheduled_at: str | None = None
    due_at: str | None = None


class ExamUpdate(CamelModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    subject_id: str | None = None
    duration: int | None = None
    total_marks: int | None = None
    passing_marks: int | None = None
    questions: list[dict[str, Any]] | None = None
    scheduled_at: str | None = None
    due_at: str | None = None


class ExamSubmit(CamelModel):
    answers: list[Any]


class GradeRequest(CamelModel):
    score: float
    feedback: str | None = None


# =============================================================================
# DOCUMENT SCHEMAS
# =============================================================================


class DocumentCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=255)
    file_url: str
    file_name: str | None = None
    file_size: int = 0
    description: str | None = None
    subject_id: str | None = None
    category: str | None = None
    tags: list[str] | None = None


class ShareRequest(CamelModel):
    shared_with_user_id: str
    permissions: str = "view"


# =============================================================================
# PLANNER SCHEMAS
# =============================================================================


class PlannerCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=255)
    item_type: str
    start_time: str
    end_time: str | None = None
    description: str | None = None
    priority: str | None = None
    subject_id: str | None = None
    related_id: str | None = None
    reminder_time: str | None = None
    is_recurring: bool = False
    recurrence_pattern: str | None = None


class PlannerUpdate(CamelModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    item_type: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    description: str | None = None
    priority: str | None = None
    status: str | None = None
    subject_id: str | None = None
    related_id: str | None = None
    reminder_time: str | None = None
    is_recurring: bool | None = None
    recurrence_pattern: str | None = None


# =============================================================================
# MESSAGE SCHEMAS
# =============================================================================


class MessageCreate(CamelModel):
    receiver_id: str
    content: str = Field(default="", max_length=5000)
    attachment_url: str | None = None
    attachment_type: str | None = None


# =============================================================================
# ADMIN SCHEMAS
# =============================================================================


class ApproveRequest(CamelModel):
    notes: str | None = None


class RejectRequest(CamelModel):
    reason: str | None = None


class SuspendRequest(CamelModel):
    reason: str | None = None
    duration: str | None = None


class PaymentUpdate(CamelModel):
    status: str
    transaction_id: str | None = None
    payment_method: str | None = None


class ResolveDisputeRequest(CamelModel):
    resolution: str = Field(..., min_length=1)
    action: str | None = None


class CouponCreate(CamelModel):
    code: str = Field(..., min_length=1, max_length=50)
    discount_type: str
    discount_value: float
    description: str | None = None
    max_uses: int | None = None
    valid_from: str | None = None
    valid_until: str | None = None


class CouponUpdate(CamelModel):
    description: str | None = None
    discount_type: str | None = None
    discount_value: float | None = None
    max_uses: int | None = None
    valid_from: str | None = None
    valid_until: str | None = None
    is_active: bool | None = None
