"""Tests for auth endpoints."""

REGISTER = {
    "email": "New.User@Example.com",
    "password": "Secret123!",
    "fullName": "New User",
    "role": "student",
}


class TestRegister:
    """Tests for POST /api/auth/register."""

    def test_register_student(self, client):
        """Registration returns the user and a working token."""
        response = client.post("/api/auth/register", json=REGISTER)
        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"]["user"]["email"] == "new.user@example.com"
        assert body["data"]["user"]["role"] == "student"

        token = body["data"]["token"]
        me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["data"]["user"]["full_name"] == "New User"

    def test_register_tutor_creates_pending_profile(self, client, database):
        """Tutors start with a pending profile."""
        response = client.post(
            "/api/auth/register", json={**REGISTER, "email": "t@example.com", "role": "tutor"}
        )
        user_id = response.json()["data"]["user"]["id"]
        with database.transaction() as tx:
            status = tx.fetch_value(
                "SELECT status FROM tutor_profiles WHERE user_id = ?", (user_id,)
            )
        assert status == "pending"

    def test_register_with_subjects(self, client):
        """Subjects are linked (and created when unknown)."""
        response = client.post(
            "/api/auth/register", json={**REGISTER, "subjects": ["Mathematics", "Chess"]}
        )
        token = response.json()["data"]["token"]
        me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        names = sorted(s["name"] for s in me.json()["data"]["user"]["subjects"])
        assert names == ["Chess", "Mathematics"]

    def test_duplicate_email(self, client):
        """The same email (any case) cannot register twice."""
        client.post("/api/auth/register", json=REGISTER)
        response = client.post(
            "/api/auth/register", json={**REGISTER, "email": "new.user@example.com"}
        )
        assert response.status_code == 400
        assert response.json()["message"] == "User with this email already exists"

    def test_weak_password(self, client):
        """The password policy is enforced."""
        response = client.post("/api/auth/register", json={**REGISTER, "password": "password"})
        assert response.status_code == 400
        assert response.json()["data"]["errors"]

    def test_admin_cannot_self_register(self, client):
        """The admin role is not available at registration."""
        response = client.post("/api/auth/register", json={**REGISTER, "role": "admin"})
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid role"


class TestLogin:
    """Tests for POST /api/auth/login."""

    def test_login(self, client, student):
        """Correct credentials return a token."""
        response = client.post(
            "/api/auth/login", json={"email": student.email, "password": "Secret123!"}
        )
        assert response.status_code == 200
        assert response.json()["data"]["token"]

    def test_wrong_password(self, client, student):
        """Wrong passwords get 401."""
        response = client.post(
            "/api/auth/login", json={"email": student.email, "password": "Wrong123!"}
        )
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid email or password"

    def test_deactivated_account(self, client, student, database):
        """Deactivated accounts get 403."""
        with database.transaction() as tx:
            tx.execute("UPDATE users SET is_active = 0 WHERE id = ?", (student.id,))
        response = client.post(
            "/api/auth/login", json={"email": student.email, "password": "Secret123!"}
        )
        assert response.status_code == 403


class TestPasswords:
    """Tests for change-password and reset-password."""

    def test_change_password(self, client, student):
        """After a change only the new password works."""
        response = client.post(
            "/api/auth/change-password",
            json={"currentPassword": "Secret123!", "newPassword": "Better456#"},
            headers=student.headers,
        )
        assert response.status_code == 200
        old = client.post("/api/auth/login", json={"email": student.email, "password": "Secret123!"})
        new = client.post("/api/auth/login", json={"email": student.email, "password": "Better456#"})
        assert old.status_code == 401
        assert new.status_code == 200

    def test_change_password_wrong_current(self, client, student):
        """The current password must match."""
        response = client.post(
            "/api/auth/change-password",
            json={"currentPassword": "Nope1234!", "newPassword": "Better456#"},
            headers=student.headers,
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Current password is incorrect"

    def test_reset_password_requires_admin(self, client, student):
        """Non-admins cannot reset passwords."""
        response = client.post(
            "/api/auth/reset-password",
            json={"email": student.email, "newPassword": "Reset789$"},
            headers=student.headers,
        )
        assert response.status_code == 403

    def test_reset_password_by_admin(self, client, admin, student):
        """Admins can set a new password for any account."""
        response = client.post(
            "/api/auth/reset-password",
            json={"email": student.email, "newPassword": "Reset789$"},
            headers=admin.headers,
        )
        assert response.status_code == 200
        login = client.post("/api/auth/login", json={"email": student.email, "password": "Reset789$"})
        assert login.status_code == 200

    def test_logout(self, client, student):
        """Logout succeeds for an authenticated user."""
        response = client.post("/api/auth/logout", headers=student.headers)
        assert response.status_code == 200
        assert response.json()["message"] == "Logout successful"
