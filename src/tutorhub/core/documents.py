"""Study documents: metadata, favourites and sharing.

Files themselves live in external storage; a document row carries the
URL plus metadata. Access is owner or a user the document was shared with.
"""

from __future__ import annotations

import json
from typing import Any

import structlog

from tutorhub.config.app_config import UploadsConfig
from tutorhub.core.auth import Principal
from tutorhub.core.errors import ForbiddenError, NotFoundError, ValidationError
from tutorhub.core.side_effects import notify, record_activity
from tutorhub.db.database import Database, Transaction, new_id
from tutorhub.db.listing import Page, fetch_page
from tutorhub.db.query_builder import (
    Filter,
    ListingSpec,
    PageRequest,
    Predicate,
    SortRequest,
    filter_field,
    search_field,
)
from tutorhub.utils.time_utils import utc_now
from tutorhub.utils.validators import check_allowed_file, parse_bool

logger = structlog.get_logger(__name__)

SHARE_PERMISSIONS = ("view", "edit")

# The caller's id is bound three times: favourite flag, shared flag, scope
DOCUMENT_LISTING = ListingSpec(
    name="documents",
    select="""
        d.id, d.user_id, d.title, d.description, d.file_name, d.file_url, d.file_type,
        d.file_size, d.category, d.tags, d.created_at, d.updated_at,
        s.name AS subject_name, u.full_name AS owner_name
    """,
    source="""
        FROM documents d
        JOIN users u ON d.user_id = u.id
        LEFT JOIN subjects s ON d.subject_id = s.id
    """,
    filters={
        "search": search_field("d.title", "d.description"),
        "category": filter_field("d.category"),
        "subject": filter_field("s.name"),
        "fileType": filter_field("d.file_type"),
    },
    sort_fields={
        "created_at": "d.created_at",
        "updated_at": "d.updated_at",
        "title": "d.title",
        "file_size": "d.file_size",
    },
    default_sort="created_at",
    tie_breaker="d.id ASC",
    default_limit=20,
    json_columns=("tags",),
)


def _load_document(tx: Transaction, document_id: str) -> dict[str, Any]:
    document = tx.fetch_one(
        "SELECT * FROM documents WHERE id = ?", (document_id,), json_columns=("tags",)
    )
    if document is None:
        raise NotFoundError("Document", document_id)
    return document


def _can_read(tx: Transaction, principal: Principal, document: dict[str, Any]) -> bool:
    if document["user_id"] == principal.id or principal.is_admin:
        return True
    return (
        tx.fetch_value(
            "SELECT 1 FROM shared_documents WHERE document_id = ? AND shared_with_user_id = ?",
            (document["id"], principal.id),
        )
        is not None
    )


def upload_document(
    db: Database,
    principal: Principal,
    uploads: UploadsConfig,
    title: str,
    file_url: str,
    file_name: str | None = None,
    file_size: int = 0,
    description: str | None = None,
    subject_id: str | None = None,
    category: str | None = None,
    tags: list[str] | None = None,
) -> dict[str, Any]:
    """Register an uploaded file's metadata.

    Raises:
        ValidationError: Disallowed extension or file too large
        NotFoundError: Unknown subject
    """
    name = file_name or file_url
    file_type = check_allowed_file(name, uploads.allowed_extensions)
    if file_size < 0 or file_size > uploads.max_file_size_bytes:
        raise ValidationError(
            f"File size must be between 0 and {uploads.max_file_size_bytes} bytes"
        )

    now = utc_now()
    document_id = new_id()
    with db.transaction() as tx:
        if subject_id is not None and tx.fetch_value(
            "SELECT 1 FROM subjects WHERE id = ?", (subject_id,)
        ) is None:
            raise NotFoundError("Subject", subject_id)
        tx.execute(
            """
            INSERT INTO documents (id, user_id, subject_id, title, description, file_name,
                                   file_url, file_type, file_size, category, tags,
                                   created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                document_id, principal.id, subject_id, title, description,
                name.rsplit("/", 1)[-1], file_url, file_type, file_size, category,
                json.dumps(tags or []), now, now,
            ),
        )
        document = _load_document(tx, document_id)
        tx.after_commit(
            record_activity(
                principal.id, "document_uploaded", f"Uploaded document: {title}",
                {"documentId": document_id},
            )
        )

    logger.info("documents.uploaded", document_id=document_id, file_type=file_type)
    return document


def list_documents(
    db: Database,
    principal: Principal,
    page: PageRequest,
    sort: SortRequest | None = None,
    search: str | None = None,
    category: str | None = None,
    subject: str | None = None,
    file_type: str | None = None,
    shared: Any = None,
    favorites: Any = None,
) -> Page:
    """The caller's documents, or those shared with them when `shared` is true."""
    if parse_bool(shared):
        scope = Predicate(
            "EXISTS (SELECT 1 FROM shared_documents sd"
            " WHERE sd.document_id = d.id AND sd.shared_with_user_id = {})",
            (principal.id,),
        )
    else:
        scope = Predicate("d.user_id = {}", (principal.id,))
    scopes = [scope]
    if parse_bool(favorites):
        scopes.append(
            Predicate(
                "EXISTS (SELECT 1 FROM favorite_documents fd"
                " WHERE fd.document_id = d.id AND fd.user_id = {})",
                (principal.id,),
            )
        )

    filters = [
        Filter("search", "contains", search or None),
        Filter("category", "eq", category),
        Filter("subject", "eq", subject),
        Filter("fileType", "eq", file_type.lower() if file_type else None),
    ]
    with db.transaction() as tx:
        result = fetch_page(
            tx, DOCUMENT_LISTING, filters=filters, sort=sort, page=page, scope=scopes
        )
        favorite_ids = {
            row["document_id"]
            for row in tx.fetch_all(
                "SELECT document_id FROM favorite_documents WHERE user_id = ?", (principal.id,)
            )
        }
    for item in result.items:
        item["is_favorite"] = item["id"] in favorite_ids
    return result


def get_document(db: Database, principal: Principal, document_id: str) -> dict[str, Any]:
    with db.transaction() as tx:
        document = tx.fetch_one(
            """
            SELECT d.*, s.name AS subject_name, u.full_name AS owner_name,
                   EXISTS (SELECT 1 FROM favorite_documents
                           WHERE user_id = ? AND document_id = d.id) AS is_favorite,
                   EXISTS (SELECT 1 FROM shared_documents
                           WHERE shared_with_user_id = ? AND document_id = d.id) AS is_shared_with_me
            FROM documents d
            LEFT JOIN subjects s ON d.subject_id = s.id
            LEFT JOIN users u ON d.user_id = u.id
            WHERE d.id = ?
            """,
            (principal.id, principal.id, document_id),
            json_columns=("tags",),
        )
        if document is None:
            raise NotFoundError("Document", document_id)
        if not _can_read(tx, principal, document):
            raise ForbiddenError("You do not have access to this document")
    document["is_favorite"] = bool(document["is_favorite"])
    document["is_shared_with_me"] = bool(document["is_shared_with_me"])
    return document


def download_document(db: Database, principal: Principal, document_id: str) -> dict[str, Any]:
    """Resolve the storage URL of a readable document."""
    with db.transaction() as tx:
        document = _load_document(tx, document_id)
        if not _can_read(tx, principal, document):
            raise ForbiddenError("You do not have access to this document")
        tx.after_commit(
            record_activity(
                principal.id, "document_downloaded", f"Downloaded document: {document['title']}",
                {"documentId": document_id},
            )
        )
    return {
        "fileUrl": document["file_url"],
        "fileName": document["file_name"],
        "fileType": document["file_type"],
    }


def delete_document(db: Database, principal: Principal, document_id: str) -> None:
    with db.transaction() as tx:
        document = _load_document(tx, document_id)
        if document["user_id"] != principal.id and not principal.is_admin:
            raise ForbiddenError("You can only delete your own documents")
        tx.execute("DELETE FROM documents WHERE id = ?", (document_id,))
        tx.after_commit(
            record_activity(
                principal.id, "document_deleted", f"Deleted document: {document['title']}",
                {"documentId": document_id},
            )
        )
    logger.info("documents.deleted", document_id=document_id)


def toggle_favorite(db: Database, principal: Principal, document_id: str) -> bool:
    """Flip the caller's favourite flag; returns the new state."""
    with db.transaction() as tx:
        document = _load_document(tx, document_id)
        if not _can_read(tx, principal, document):
            raise ForbiddenError("You do not have access to this document")
        removed = tx.execute(
            "DELETE FROM favorite_documents WHERE user_id = ? AND document_id = ?",
            (principal.id, document_id),
        ).rowcount
        if removed:
            return False
        tx.execute(
            "INSERT INTO favorite_documents (user_id, document_id, created_at) VALUES (?, ?, ?)",
            (principal.id, document_id, utc_now()),
        )
    return True


def share_document(
    db: Database,
    principal: Principal,
    document_id: str,
    shared_with_user_id: str,
    permissions: str = "view",
) -> dict[str, Any]:
    """Share a document with another active user (re-sharing updates permissions)."""
    if permissions not in SHARE_PERMISSIONS:
        raise ValidationError("permissions must be 'view' or 'edit'")
    if shared_with_user_id == principal.id:
        raise ValidationError("You cannot share a document with yourself")

    with db.transaction() as tx:
        document = _load_document(tx, document_id)
        if document["user_id"] != principal.id:
            raise ForbiddenError("You can only share your own documents")
        target = tx.fetch_one(
            "SELECT id, full_name FROM users WHERE id = ? AND is_active = 1",
            (shared_with_user_id,),
        )
        if target is None:
            raise NotFoundError("User", shared_with_user_id)
        sharer = tx.fetch_value("SELECT full_name FROM users WHERE id = ?", (principal.id,))

        tx.execute(
            """
            INSERT INTO shared_documents (document_id, shared_by_user_id, shared_with_user_id,
                                          permissions, shared_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (document_id, shared_with_user_id)
            DO UPDATE SET permissions = excluded.permissions, shared_at = excluded.shared_at
            """,
            (document_id, principal.id, shared_with_user_id, permissions, utc_now()),
        )
        tx.after_commit(
            notify(
                shared_with_user_id, "document_shared", "Document Shared",
                f"{sharer or 'A user'} shared a document with you: {document['title']}",
                {"documentId": document_id, "sharedBy": principal.id},
            )
        )
        tx.after_commit(
            record_activity(
                principal.id, "document_shared", f"Shared document: {document['title']}",
                {"documentId": document_id, "sharedWith": shared_with_user_id},
            )
        )

    logger.info("documents.shared", document_id=document_id, shared_with=shared_with_user_id)
    return {
        "documentId": document_id,
        "sharedWith": target["full_name"],
        "permissions": permissions,
    }
