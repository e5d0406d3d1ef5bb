"""Tests for direct message endpoints."""

import pytest


@pytest.fixture
def send(client):
    def _send(sender, receiver, content="Hello"):
        return client.post(
            "/api/messages",
            json={"receiverId": receiver.id, "content": content},
            headers=sender.headers,
        )

    return _send


class TestSend:
    """Tests for POST /api/messages."""

    def test_send_notifies_receiver(self, client, send, student, tutor):
        """The receiver gets a new_message notification."""
        response = send(student, tutor)
        assert response.status_code == 201
        message = response.json()["data"]["message"]
        assert message["sender"]["id"] == student.id
        assert message["receiver"]["id"] == tutor.id

        inbox = client.get("/api/notifications", headers=tutor.headers).json()["data"]
        assert [n["type"] for n in inbox["notifications"]] == ["new_message"]

    def test_to_self(self, send, student):
        """Users cannot message themselves."""
        response = send(student, student)
        assert response.status_code == 400
        assert response.json()["message"] == "Cannot send message to yourself"

    def test_empty_without_attachment(self, send, student, tutor):
        """Blank messages need an attachment."""
        response = send(student, tutor, content="   ")
        assert response.status_code == 400
        assert response.json()["message"] == "Message content is required"

    def test_attachment_only(self, client, student, tutor):
        """An attachment alone is a valid message."""
        response = client.post(
            "/api/messages",
            json={
                "receiverId": tutor.id,
                "attachmentUrl": "https://files.example.com/a.png",
                "attachmentType": "image",
            },
            headers=student.headers,
        )
        assert response.status_code == 201

    def test_unknown_receiver(self, client, student):
        """Messages to missing users are 404."""
        response = client.post(
            "/api/messages", json={"receiverId": "ghost", "content": "hi"},
            headers=student.headers,
        )
        assert response.status_code == 404
        assert response.json()["message"] == "Receiver not found"


class TestConversations:
    """Tests for conversations, threads and unread counts."""

    def test_conversation_summary(self, client, send, student, tutor, make_account):
        """One row per partner, newest first, with unread counts."""
        other = make_account("student")
        send(student, tutor, "first")
        send(student, tutor, "second")
        send(other, tutor, "hey")

        data = client.get("/api/messages/conversations", headers=tutor.headers).json()["data"]
        rows = data["conversations"]
        assert [r["other_user_id"] for r in rows] == [other.id, student.id]
        assert rows[1]["last_message"] == "second"
        assert rows[1]["unread_count"] == 2
        assert rows[1]["i_sent_last"] is False
        assert data["pagination"]["totalCount"] == 2
        assert data["totalUnreadMessages"] == 3

    def test_thread_marks_read(self, client, send, student, tutor):
        """Opening a thread returns it oldest first and marks it read."""
        send(student, tutor, "one")
        send(tutor, student, "two")
        send(student, tutor, "three")

        response = client.get(f"/api/messages/{student.id}", headers=tutor.headers)
        data = response.json()["data"]
        assert [m["content"] for m in data["messages"]] == ["one", "two", "three"]
        assert data["otherUser"]["id"] == student.id

        unread = client.get("/api/messages/unread-count", headers=tutor.headers)
        assert unread.json()["data"]["unreadCount"] == 0

    def test_mark_read(self, client, send, student, tutor):
        """Marking a partner read reports how many changed."""
        send(student, tutor, "a")
        send(student, tutor, "b")
        response = client.post(f"/api/messages/{student.id}/read", headers=tutor.headers)
        assert response.json()["data"]["updatedCount"] == 2

    def test_delete_own_only(self, client, send, student, tutor):
        """Only the sender deletes a message."""
        message_id = send(student, tutor).json()["data"]["message"]["id"]
        denied = client.delete(f"/api/messages/{message_id}", headers=tutor.headers)
        assert denied.status_code == 403
        allowed = client.delete(f"/api/messages/{message_id}", headers=student.headers)
        assert allowed.status_code == 200
