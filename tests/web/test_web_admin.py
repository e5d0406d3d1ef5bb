"""Tests for admin endpoints."""

import csv
import io

import pytest


@pytest.fixture
def completed_session(client, student, tutor):
    """A session booked by `student`, completed by `tutor`; returns (session, payment) ids."""
    booked = client.post(
        "/api/sessions",
        json={
            "tutorId": tutor.id,
            "title": "Geometry",
            "scheduledAt": "2030-05-01T09:00:00+00:00",
            "duration": 120,
        },
        headers=student.headers,
    )
    session_id = booked.json()["data"]["session"]["id"]
    completed = client.post(f"/api/sessions/{session_id}/complete", headers=tutor.headers)
    return session_id, completed.json()["data"]["paymentId"]


class TestAccess:
    """Tests for the admin role gate."""

    @pytest.mark.parametrize(
        "path", ["/api/admin/users", "/api/admin/analytics", "/api/admin/export/users"]
    )
    def test_non_admin_forbidden(self, client, student, path):
        """Students get 403 everywhere under /api/admin."""
        response = client.get(path, headers=student.headers)
        assert response.status_code == 403
        assert response.json()["success"] is False

    def test_anonymous_unauthorized(self, client):
        """No token means 401."""
        assert client.get("/api/admin/users").status_code == 401


class TestUsersAndTutors:
    """Tests for user listing and tutor verification."""

    def test_list_users_by_role(self, client, admin, student, tutor):
        """role narrows the user list."""
        response = client.get(
            "/api/admin/users", params={"role": "tutor"}, headers=admin.headers
        )
        users = response.json()["data"]["users"]
        assert [u["id"] for u in users] == [tutor.id]

    def test_invalid_role(self, client, admin):
        """Unknown roles are rejected."""
        response = client.get(
            "/api/admin/users", params={"role": "wizard"}, headers=admin.headers
        )
        assert response.status_code == 400

    def test_verification_queue_and_approve(self, client, admin, make_account, database):
        """Pending tutors are queued; approval verifies the user and notifies them."""
        pending = make_account("tutor", approved=False)
        queue = client.get("/api/admin/tutors/verification-requests", headers=admin.headers)
        assert [r["user_id"] for r in queue.json()["data"]["requests"]] == [pending.id]

        response = client.post(
            f"/api/admin/tutors/{pending.id}/approve",
            json={"notes": "Looks good"},
            headers=admin.headers,
        )
        assert response.status_code == 200
        assert response.json()["data"]["tutor"]["status"] == "approved"
        with database.transaction() as tx:
            verified = tx.fetch_value("SELECT is_verified FROM users WHERE id = ?", (pending.id,))
        assert verified == 1

        inbox = client.get("/api/notifications", headers=pending.headers).json()["data"]
        assert inbox["notifications"][0]["type"] == "tutor_approved"

    def test_reject_only_pending(self, client, admin, tutor):
        """Approved tutors cannot be rejected."""
        response = client.post(
            f"/api/admin/tutors/{tutor.id}/reject",
            json={"reason": "Too late"},
            headers=admin.headers,
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Cannot change tutor status from approved to rejected"

    def test_suspend_cancels_sessions(self, client, admin, student, tutor):
        """Suspension cancels scheduled sessions and tells the students."""
        client.post(
            "/api/sessions",
            json={
                "tutorId": tutor.id,
                "title": "Trig",
                "scheduledAt": "2030-06-01T09:00:00+00:00",
                "duration": 60,
            },
            headers=student.headers,
        )
        response = client.post(
            f"/api/admin/tutors/{tutor.id}/suspend",
            json={"reason": "Complaints", "duration": "30 days"},
            headers=admin.headers,
        )
        tutor_data = response.json()["data"]["tutor"]
        assert tutor_data["status"] == "suspended"
        assert tutor_data["cancelledSessions"] == 1

        sessions = client.get("/api/sessions", headers=student.headers).json()["data"]
        assert sessions["sessions"][0]["status"] == "cancelled"


class TestPaymentsAndDisputes:
    """Tests for payments and disputes."""

    def test_payments_summary(self, client, admin, completed_session):
        """The payment list carries totals over the filtered set."""
        response = client.get(
            "/api/admin/payments", params={"status": "pending"}, headers=admin.headers
        )
        data = response.json()["data"]
        assert len(data["payments"]) == 1
        assert data["summary"] == {"total_amount": 60.0, "total_fees": 9.0}

    def test_payment_transitions(self, client, admin, completed_session, tutor):
        """pending -> completed -> refunded; nothing else."""
        _, payment_id = completed_session
        url = f"/api/admin/payments/{payment_id}"
        done = client.patch(
            url, json={"status": "completed", "transactionId": "tx-1"}, headers=admin.headers
        )
        assert done.json()["data"]["payment"]["transaction_id"] == "tx-1"

        earnings = client.get(f"/api/tutors/{tutor.id}/earnings", headers=tutor.headers)
        assert earnings.json()["data"]["earnings"]["summary"]["net_earnings"] == 51.0

        back = client.patch(url, json={"status": "pending"}, headers=admin.headers)
        assert back.status_code == 400
        refunded = client.patch(url, json={"status": "refunded"}, headers=admin.headers)
        assert refunded.status_code == 200

    def test_resolve_dispute(self, client, admin, student, completed_session):
        """Open disputes are listed by default and resolve once."""
        session_id, _ = completed_session
        client.post(
            f"/api/sessions/{session_id}/disputes",
            json={"title": "Late start"},
            headers=student.headers,
        )
        open_disputes = client.get("/api/admin/disputes", headers=admin.headers)
        dispute_id = open_disputes.json()["data"]["disputes"][0]["id"]

        url = f"/api/admin/disputes/{dispute_id}/resolve"
        first = client.post(url, json={"resolution": "Partial refund"}, headers=admin.headers)
        second = client.post(url, json={"resolution": "Again"}, headers=admin.headers)
        assert first.json()["data"]["dispute"]["status"] == "resolved"
        assert second.json()["message"] == "Dispute is already resolved"

        remaining = client.get("/api/admin/disputes", headers=admin.headers)
        assert remaining.json()["data"]["disputes"] == []


class TestCoupons:
    """Tests for coupon management."""

    def test_create_uppercases_code(self, client, admin):
        """Codes are stored upper-case and must be unique."""
        body = {"code": "spring25", "discountType": "percentage", "discountValue": 25}
        created = client.post("/api/admin/coupons", json=body, headers=admin.headers)
        assert created.status_code == 201
        assert created.json()["data"]["coupon"]["code"] == "SPRING25"

        duplicate = client.post(
            "/api/admin/coupons", json={**body, "code": "SPRING25"}, headers=admin.headers
        )
        assert duplicate.status_code == 400
        assert duplicate.json()["message"] == "Coupon code already exists"

    def test_percentage_over_100(self, client, admin):
        """Percentage discounts are capped at 100."""
        response = client.post(
            "/api/admin/coupons",
            json={"code": "FREE", "discountType": "percentage", "discountValue": 150},
            headers=admin.headers,
        )
        assert response.status_code == 400

    def test_deactivate(self, client, admin):
        """Deactivated coupons show up under isActive=false."""
        created = client.post(
            "/api/admin/coupons",
            json={"code": "FLAT5", "discountType": "fixed", "discountValue": 5},
            headers=admin.headers,
        )
        coupon_id = created.json()["data"]["coupon"]["id"]
        client.patch(
            f"/api/admin/coupons/{coupon_id}", json={"isActive": False}, headers=admin.headers
        )
        inactive = client.get(
            "/api/admin/coupons", params={"isActive": "false"}, headers=admin.headers
        )
        coupons = inactive.json()["data"]["coupons"]
        assert [c["code"] for c in coupons] == ["FLAT5"]
        assert coupons[0]["is_active"] is False


class TestReports:
    """Tests for analytics and CSV export."""

    def test_analytics(self, client, admin, completed_session):
        """Analytics counts users and sessions."""
        data = client.get("/api/admin/analytics", headers=admin.headers).json()["data"]
        assert data["users"]["total_users"] == 3
        assert data["sessions"]["completed_sessions"] == 1
        assert data["revenue"]["total_revenue"] == 0

    def test_export_users_csv(self, client, admin, student):
        """Exports download as CSV attachments."""
        response = client.get("/api/admin/export/users", headers=admin.headers)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.headers["content-disposition"].startswith(
            'attachment; filename="users-export-'
        )
        rows = list(csv.DictReader(io.StringIO(response.text)))
        assert {r["email"] for r in rows} == {admin.email, student.email}

    def test_export_empty_has_header(self, client, admin):
        """An empty export still has its header row."""
        response = client.get("/api/admin/export/payments", headers=admin.headers)
        assert response.text.splitlines() == [
            "id,amount,platform_fee,status,payment_method,transaction_id,created_at,"
            "student_name,student_email,tutor_name,tutor_email"
        ]

    def test_export_invalid_type(self, client, admin):
        """Unknown export types are a 400 in the JSON envelope."""
        response = client.get("/api/admin/export/grades", headers=admin.headers)
        assert response.status_code == 400
        assert response.json()["message"].startswith("Invalid export type")
