"""Tests for document metadata, favourites and sharing endpoints."""

import pytest


@pytest.fixture
def upload(client):
    def _upload(account, title="Notes", file_url="https://files.example.com/notes.pdf", **extra):
        return client.post(
            "/api/documents",
            json={"title": title, "fileUrl": file_url, "fileSize": 2048, **extra},
            headers=account.headers,
        )

    return _upload


@pytest.fixture
def document_id(upload, student):
    return upload(student).json()["data"]["document"]["id"]


class TestUpload:
    """Tests for POST /api/documents."""

    def test_upload(self, upload, student):
        """Type and file name come from the URL."""
        response = upload(student, tags=["exam", "algebra"], category="notes")
        assert response.status_code == 201
        document = response.json()["data"]["document"]
        assert document["file_type"] == "pdf"
        assert document["file_name"] == "notes.pdf"
        assert document["tags"] == ["exam", "algebra"]

    def test_disallowed_type(self, upload, student):
        """Only allow-listed extensions are accepted."""
        response = upload(student, file_url="https://files.example.com/run.exe")
        assert response.status_code == 400
        assert response.json()["message"].startswith("Invalid file type. Allowed types: pdf")

    def test_too_large(self, upload, student):
        """Files over the size limit are rejected."""
        response = upload(student, fileSize=50 * 1024 * 1024)
        assert response.status_code == 400


class TestListing:
    """Tests for GET /api/documents."""

    def test_own_documents_only(self, client, upload, student, make_account):
        """Each user lists their own uploads."""
        other = make_account("student")
        upload(student, title="Mine")
        upload(other, title="Theirs")
        response = client.get("/api/documents", headers=student.headers)
        titles = [d["title"] for d in response.json()["data"]["documents"]]
        assert titles == ["Mine"]

    def test_file_type_filter(self, client, upload, student):
        """fileType narrows by extension, case-insensitively."""
        upload(student, title="Slides", file_url="https://files.example.com/deck.pptx")
        upload(student, title="Paper")
        response = client.get(
            "/api/documents", params={"fileType": "PPTX"}, headers=student.headers
        )
        assert [d["title"] for d in response.json()["data"]["documents"]] == ["Slides"]

    def test_shared_with_me(self, client, student, tutor, document_id):
        """shared=true lists documents others shared with the caller."""
        client.post(
            f"/api/documents/{document_id}/share",
            json={"sharedWithUserId": tutor.id},
            headers=student.headers,
        )
        own = client.get("/api/documents", headers=tutor.headers)
        shared = client.get("/api/documents", params={"shared": "true"}, headers=tutor.headers)
        assert own.json()["data"]["documents"] == []
        assert [d["id"] for d in shared.json()["data"]["documents"]] == [document_id]

    def test_favorites_flag(self, client, student, document_id):
        """Listed documents carry the caller's favourite flag."""
        client.post(f"/api/documents/{document_id}/favorite", headers=student.headers)
        response = client.get(
            "/api/documents", params={"favorites": "true"}, headers=student.headers
        )
        documents = response.json()["data"]["documents"]
        assert [d["is_favorite"] for d in documents] == [True]


class TestAccess:
    """Tests for reading, downloading, deleting and sharing."""

    def test_owner_reads(self, client, student, document_id):
        """Owners read their document."""
        response = client.get(f"/api/documents/{document_id}", headers=student.headers)
        document = response.json()["data"]["document"]
        assert document["is_favorite"] is False
        assert document["is_shared_with_me"] is False

    def test_stranger_forbidden(self, client, tutor, document_id):
        """Documents are private until shared."""
        response = client.get(f"/api/documents/{document_id}", headers=tutor.headers)
        assert response.status_code == 403
        assert response.json()["message"] == "You do not have access to this document"

    def test_share_grants_access(self, client, student, tutor, document_id):
        """Sharing notifies the recipient and lets them download."""
        response = client.post(
            f"/api/documents/{document_id}/share",
            json={"sharedWithUserId": tutor.id, "permissions": "edit"},
            headers=student.headers,
        )
        assert response.status_code == 200
        assert response.json()["data"]["permissions"] == "edit"

        download = client.get(f"/api/documents/{document_id}/download", headers=tutor.headers)
        assert download.json()["data"]["fileUrl"] == "https://files.example.com/notes.pdf"

        inbox = client.get("/api/notifications", headers=tutor.headers).json()["data"]
        assert inbox["notifications"][0]["type"] == "document_shared"

    def test_share_bad_permission(self, client, student, tutor, document_id):
        """Only view or edit permissions exist."""
        response = client.post(
            f"/api/documents/{document_id}/share",
            json={"sharedWithUserId": tutor.id, "permissions": "own"},
            headers=student.headers,
        )
        assert response.status_code == 400
        assert response.json()["message"] == "permissions must be 'view' or 'edit'"

    def test_share_unknown_user(self, client, student, document_id):
        """Sharing with a missing user is a 404."""
        response = client.post(
            f"/api/documents/{document_id}/share",
            json={"sharedWithUserId": "ghost"},
            headers=student.headers,
        )
        assert response.status_code == 404

    def test_favorite_toggles(self, client, student, document_id):
        """Favouriting twice removes the favourite."""
        url = f"/api/documents/{document_id}/favorite"
        first = client.post(url, headers=student.headers).json()
        second = client.post(url, headers=student.headers).json()
        assert first["data"]["isFavorite"] is True
        assert first["message"] == "Added to favorites"
        assert second["data"]["isFavorite"] is False
        assert second["message"] == "Removed from favorites"

    def test_delete(self, client, student, tutor, document_id):
        """Only the owner deletes."""
        denied = client.delete(f"/api/documents/{document_id}", headers=tutor.headers)
        assert denied.status_code == 403
        assert denied.json()["message"] == "You can only delete your own documents"

        response = client.delete(f"/api/documents/{document_id}", headers=student.headers)
        assert response.status_code == 200
        missing = client.get(f"/api/documents/{document_id}", headers=student.headers)
        assert missing.status_code == 404
