"""Document metadata, favourite and sharing endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status

from tutorhub.config.app_config import AppConfig
from tutorhub.core import documents
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
)
from tutorhub.web.schemas import ApiResponse, DocumentCreate, ShareRequest, ok

router = APIRouter(prefix="/api/documents", tags=["documents"])


@router.post("", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
def upload_document(
    body: DocumentCreate,
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
    config: AppConfig = Depends(get_config),
) -> ApiResponse:
    """Register an uploaded file's metadata."""
    document = documents.upload_document(
        db,
        principal,
        config.uploads,
        title=body.title,
        file_url=body.file_url,
        file_name=body.file_name,
        file_size=body.file_size,
        description=body.description,
        subject_id=body.subject_id,
        category=body.category,
        tags=body.tags,
    )
    return ok({"document": document}, "Document uploaded successfully")


@router.get("", response_model=ApiResponse)
def list_documents(
    search: str | None = None,
    category: str | None = None,
    subject: str | None = None,
    file_type: str | None = Query(default=None, alias="fileType"),
    shared: str | None = None,
    favorites: str | None = None,
    page: PageRequest = Depends(get_page),
    sort: SortRequest = Depends(get_sort),
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    result = documents.list_documents(
        db,
        principal,
        page,
        sort,
        search=search,
        category=category,
        subject=subject,
        file_type=file_type,
        shared=shared,
        favorites=favorites,
    )
    return ok(listing(result, "documents"))


@router.get("/{document_id}", response_model=ApiResponse)
def get_document(
    document_id: str,
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    return ok({"document": documents.get_document(db, principal, document_id)})


@router.get("/{document_id}/download", response_model=ApiResponse)
def download_document(
    document_id: str,
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    return ok(documents.download_document(db, principal, document_id))


@router.delete("/{document_id}", response_model=ApiResponse)
def delete_document(
    document_id: str,
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    documents.delete_document(db, principal, document_id)
    return ok(message="Document deleted successfully")


@router.post("/{document_id}/favorite", response_model=ApiResponse)
def toggle_favorite(
    document_id: str,
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    is_favorite = documents.toggle_favorite(db, principal, document_id)
    message = "Added to favorites" if is_favorite else "Removed from favorites"
    return ok({"isFavorite": is_favorite}, message)


@router.post("/{document_id}/share", response_model=ApiResponse)
def share_document(
    document_id: str,
    body: ShareRequest,
    principal: Principal = Depends(get_principal),
    db: Database = Depends(get_database),
) -> ApiResponse:
    result = documents.share_document(
        db, principal, document_id, body.shared_with_user_id, body.permissions
    )
    return ok(result, "Document shared successfully")
