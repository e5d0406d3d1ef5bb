"""Direct message endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from tutorhub.config.app_config import AppConfig
from tutorhub.core import messages
from tutorhub.core.auth import Principal
from tutorhub.db.database import Database
from tutorhub.db.query_builder import PageRequest
from tutorhub.web.deps import get_config, get_database, get_page, get_principal, listing
from tutorhub.web.schemas import ApiResponse, MessageCreate, ok

router = APIRouter(prefix="/api/messages", tags=["messages"])


@router.post("", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
def send_message(
    body: MessageCreate,
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    message = messages.send_message(
        db,
        principal,
        body.receiver_id,
        body.content,
        attachment_url=body.attachment_url,
        attachment_type=body.attachment_type,
    )
    return ok({"message": message}, "Message sent successfully")


@router.get("/conversations", response_model=ApiResponse)
def list_conversations(
    page: PageRequest = Depends(get_page),
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
    config: AppConfig = Depends(get_config),
) -> ApiResponse:
    """One row per conversation partner, newest first."""
    result, unread_total = messages.list_conversations(
        db, principal, page, default_limit=config.pagination.default_limit
    )
    return ok(listing(result, "conversations", totalUnreadMessages=unread_total))


@router.get("/unread-count", response_model=ApiResponse)
def unread_count(
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    return ok({"unreadCount": messages.unread_count(db, principal)})


@router.get("/{other_user_id}", response_model=ApiResponse)
def get_conversation(
    other_user_id: str,
    page: PageRequest = Depends(get_page),
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    other, result = messages.get_conversation(db, principal, other_user_id, page)
    return ok(listing(result, "messages", otherUser=other))


@router.post("/{other_user_id}/read", response_model=ApiResponse)
def mark_read(
    other_user_id: str,
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    updated = messages.mark_read(db, principal, other_user_id)
    return ok({"updatedCount": updated}, "Messages marked as read")


@router.delete("/{message_id}", response_model=ApiResponse)
def delete_message(
    message_id: str,
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    messages.delete_message(db, principal, message_id)
    return ok(message="Message deleted successfully")
