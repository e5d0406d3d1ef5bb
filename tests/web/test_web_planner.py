"""Tests for planner endpoints and their reminders."""

from datetime import datetime, timedelta, timezone

import pytest


def _iso(delta: timedelta) -> str:
    return (datetime.now(timezone.utc) + delta).isoformat()


@pytest.fixture
def create_item(client, student):
    def _create(title="Revise", **extra):
        body = {
            "title": title,
            "itemType": "study",
            "startTime": _iso(timedelta(days=2)),
            **extra,
        }
        return client.post("/api/planner", json=body, headers=student.headers)

    return _create


def _notification_rows(database, user_id):
    with database.transaction() as tx:
        return tx.fetch_all(
            "SELECT type, scheduled_for, metadata FROM notifications WHERE user_id = ?",
            (user_id,),
            json_columns=("metadata",),
        )


class TestCreate:
    """Tests for POST /api/planner."""

    def test_create_defaults(self, create_item):
        """Items start pending with medium priority."""
        response = create_item()
        assert response.status_code == 201
        item = response.json()["data"]["item"]
        assert item["status"] == "pending"
        assert item["priority"] == "medium"
        assert item["is_recurring"] is False

    def test_end_before_start(self, create_item):
        """The end cannot precede the start."""
        response = create_item(endTime=_iso(timedelta(days=1)))
        assert response.status_code == 400
        assert response.json()["message"] == "endTime must not be before startTime"

    def test_bad_item_type(self, create_item):
        """Item types come from a fixed set."""
        response = create_item(itemType="party")
        assert response.status_code == 400

    def test_recurring_needs_pattern(self, create_item):
        """Recurring items need a pattern."""
        response = create_item(isRecurring=True)
        assert response.status_code == 400

    def test_future_reminder_hidden_until_due(self, client, create_item, student, database):
        """A reminder is stored with the item but not listed before it is due."""
        item_id = create_item(reminderTime=_iso(timedelta(days=1))).json()["data"]["item"]["id"]
        rows = _notification_rows(database, student.id)
        assert [(r["type"], r["metadata"]) for r in rows] == [
            ("planner_reminder", {"plannerId": item_id})
        ]
        inbox = client.get("/api/notifications", headers=student.headers).json()["data"]
        assert inbox["notifications"] == []
        assert inbox["unreadCount"] == 0

    def test_due_reminder_listed(self, client, create_item, student):
        """Reminders whose time has passed show up in the inbox."""
        create_item(reminderTime=_iso(timedelta(minutes=-5)))
        inbox = client.get("/api/notifications", headers=student.headers).json()["data"]
        assert [n["type"] for n in inbox["notifications"]] == ["planner_reminder"]


class TestList:
    """Tests for GET /api/planner."""

    def test_order_and_statistics(self, client, create_item, student):
        """Items are ordered by start time; statistics cover every item."""
        create_item("Later", startTime=_iso(timedelta(days=3)), priority="high")
        create_item("Sooner", startTime=_iso(timedelta(days=1)))
        response = client.get("/api/planner", params={"limit": "1"}, headers=student.headers)
        data = response.json()["data"]
        assert [i["title"] for i in data["items"]] == ["Sooner"]
        assert data["pagination"]["totalCount"] == 2
        assert data["statistics"]["pending_count"] == 2
        assert data["statistics"]["high_priority_count"] == 1

    def test_priority_filter(self, client, create_item, student):
        """priority narrows the list."""
        create_item("A", priority="low")
        create_item("B", priority="high")
        response = client.get(
            "/api/planner", params={"priority": "high"}, headers=student.headers
        )
        assert [i["title"] for i in response.json()["data"]["items"]] == ["B"]

    def test_invalid_priority_filter(self, client, student):
        """Unknown priorities are rejected."""
        response = client.get(
            "/api/planner", params={"priority": "urgent"}, headers=student.headers
        )
        assert response.status_code == 400

    def test_private(self, client, create_item, tutor):
        """Users never see each other's items."""
        create_item()
        response = client.get("/api/planner", headers=tutor.headers)
        assert response.json()["data"]["items"] == []


class TestUpdateDelete:
    """Tests for PATCH and DELETE /api/planner/{id}."""

    def test_update_status(self, client, create_item, student):
        """Owners update their items."""
        item_id = create_item().json()["data"]["item"]["id"]
        response = client.patch(
            f"/api/planner/{item_id}", json={"status": "completed"}, headers=student.headers
        )
        assert response.status_code == 200
        assert response.json()["data"]["item"]["status"] == "completed"

    def test_new_reminder_replaces_old(self, client, create_item, student, database):
        """Changing the reminder time leaves exactly one reminder."""
        item_id = create_item(reminderTime=_iso(timedelta(days=1))).json()["data"]["item"]["id"]
        new_time = _iso(timedelta(hours=36))
        client.patch(
            f"/api/planner/{item_id}", json={"reminderTime": new_time}, headers=student.headers
        )
        rows = _notification_rows(database, student.id)
        assert len(rows) == 1
        assert rows[0]["scheduled_for"] > _iso(timedelta(hours=30))

    def test_update_other_users_item(self, client, create_item, tutor):
        """Items are private to their owner."""
        item_id = create_item().json()["data"]["item"]["id"]
        response = client.patch(
            f"/api/planner/{item_id}", json={"title": "Mine"}, headers=tutor.headers
        )
        assert response.status_code == 403

    def test_delete_removes_reminders(self, client, create_item, student, database):
        """Deleting an item deletes its reminders too."""
        item_id = create_item(reminderTime=_iso(timedelta(days=1))).json()["data"]["item"]["id"]
        response = client.delete(f"/api/planner/{item_id}", headers=student.headers)
        assert response.status_code == 200
        assert _notification_rows(database, student.id) == []
        assert client.delete(f"/api/planner/{item_id}", headers=student.headers).status_code == 404
