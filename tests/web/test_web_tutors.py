"""Tests for the tutor directory and tutor profile endpoints."""

import pytest


def _set_profile(database, user_id, **values):
    columns = ", ".join(f"{name} = ?" for name in values)
    with database.transaction() as tx:
        tx.execute(
            f"UPDATE tutor_profiles SET {columns} WHERE user_id = ?",
            (*values.values(), user_id),
        )


@pytest.fixture
def directory(make_account, database):
    """Three approved tutors with distinct ratings and one pending tutor."""
    ann = make_account("tutor", full_name="Ann Algebra")
    bob = make_account("tutor", full_name="Bob Biology")
    cat = make_account("both", full_name="Cat Calculus")
    pending = make_account("tutor", full_name="Pat Pending", approved=False)
    _set_profile(database, ann.id, rating=4.9, hourly_rate=50)
    _set_profile(database, bob.id, rating=3.5, hourly_rate=20)
    _set_profile(database, cat.id, rating=4.2, hourly_rate=35)
    return {"ann": ann, "bob": bob, "cat": cat, "pending": pending}


class TestDirectory:
    """Tests for GET /api/tutors."""

    def test_public_and_sorted_by_rating(self, client, directory):
        """No token needed; default order is rating descending."""
        response = client.get("/api/tutors", params={"status": "approved"})
        assert response.status_code == 200
        data = response.json()["data"]
        names = [t["full_name"] for t in data["tutors"]]
        assert names == ["Ann Algebra", "Cat Calculus", "Bob Biology"]
        assert data["pagination"] == {
            "currentPage": 1,
            "totalPages": 1,
            "totalCount": 3,
            "limit": 10,
        }

    def test_min_rating(self, client, directory):
        """minRating keeps tutors at or above the threshold."""
        response = client.get("/api/tutors", params={"minRating": "4"})
        names = {t["full_name"] for t in response.json()["data"]["tutors"]}
        assert names == {"Ann Algebra", "Cat Calculus"}

    def test_rate_range_and_sort(self, client, directory):
        """Hourly-rate bounds combine with an explicit sort."""
        response = client.get(
            "/api/tutors",
            params={
                "minHourlyRate": "25",
                "maxHourlyRate": "50",
                "sortBy": "hourly_rate",
                "order": "asc",
            },
        )
        names = [t["full_name"] for t in response.json()["data"]["tutors"]]
        assert names == ["Cat Calculus", "Ann Algebra"]

    def test_unknown_sort_falls_back(self, client, directory):
        """An unknown sort field is ignored rather than rejected."""
        response = client.get(
            "/api/tutors", params={"status": "approved", "sortBy": "password_hash"}
        )
        assert response.status_code == 200
        assert response.json()["data"]["tutors"][0]["full_name"] == "Ann Algebra"

    def test_search(self, client, directory):
        """Search matches the tutor's name."""
        response = client.get("/api/tutors", params={"search": "calc"})
        assert [t["full_name"] for t in response.json()["data"]["tutors"]] == ["Cat Calculus"]

    def test_pagination(self, client, directory):
        """Pages slice the ordered result."""
        response = client.get(
            "/api/tutors", params={"status": "approved", "page": "2", "limit": "2"}
        )
        data = response.json()["data"]
        assert [t["full_name"] for t in data["tutors"]] == ["Bob Biology"]
        assert data["pagination"]["totalPages"] == 2

    def test_status_filter(self, client, directory):
        """The status filter narrows to pending applicants."""
        response = client.get("/api/tutors", params={"status": "pending"})
        assert [t["full_name"] for t in response.json()["data"]["tutors"]] == ["Pat Pending"]

    def test_invalid_status(self, client, directory):
        """Unknown statuses are rejected."""
        response = client.get("/api/tutors", params={"status": "famous"})
        assert response.status_code == 400

    @pytest.mark.parametrize("limit", ["0", "101", "ten"])
    def test_bad_limit(self, client, limit):
        """Limits must be positive integers within the maximum."""
        response = client.get("/api/tutors", params={"limit": limit})
        assert response.status_code == 400
        assert response.json()["success"] is False

    @pytest.mark.parametrize("page", ["0", "\u00b2", "9" * 30])
    def test_bad_page(self, client, page):
        """Pages must be ASCII digits whose offset fits a 64-bit integer."""
        response = client.get("/api/tutors", params={"page": page})
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_bad_min_rating(self, client, directory):
        """Non-numeric filter values are a validation error."""
        response = client.get("/api/tutors", params={"minRating": "great"})
        assert response.status_code == 400

    def test_subjects_decoded(self, client, make_account):
        """Subjects arrive as a JSON list, not a string."""
        tutor = make_account("tutor")
        client.patch(
            f"/api/tutors/{tutor.id}", json={"subjects": ["Geometry"]}, headers=tutor.headers
        )
        response = client.get("/api/tutors", params={"subject": "Geometry"})
        tutors = response.json()["data"]["tutors"]
        assert [s["name"] for s in tutors[0]["subjects"]] == ["Geometry"]


class TestTutorProfile:
    """Tests for GET/PATCH /api/tutors/{id}."""

    def test_get_tutor(self, client, tutor):
        """The profile includes subjects and recent reviews."""
        response = client.get(f"/api/tutors/{tutor.id}")
        assert response.status_code == 200
        data = response.json()["data"]["tutor"]
        assert data["status"] == "approved"
        assert data["recentReviews"] == []

    def test_student_is_not_a_tutor(self, client, student):
        """Users without a tutor profile are 404."""
        response = client.get(f"/api/tutors/{student.id}")
        assert response.status_code == 404
        assert response.json()["message"] == "Tutor not found"

    def test_update_own_profile(self, client, tutor):
        """Tutors update their rate, experience and availability."""
        response = client.patch(
            f"/api/tutors/{tutor.id}",
            json={
                "hourlyRate": 42.5,
                "experienceYears": 7,
                "languages": ["en", "de"],
                "availability": {"mon": ["09:00-12:00"]},
            },
            headers=tutor.headers,
        )
        assert response.status_code == 200
        profile = response.json()["data"]["tutor"]
        assert profile["hourly_rate"] == 42.5
        assert profile["years_experience"] == 7
        assert profile["languages"] == ["en", "de"]
        assert profile["availability"] == {"mon": ["09:00-12:00"]}

    def test_negative_rate(self, client, tutor):
        """Negative hourly rates are rejected."""
        response = client.patch(
            f"/api/tutors/{tutor.id}", json={"hourlyRate": -1}, headers=tutor.headers
        )
        assert response.status_code == 400

    def test_update_other_tutor_forbidden(self, client, tutor, make_account):
        """Tutors cannot edit each other."""
        other = make_account("tutor")
        response = client.patch(
            f"/api/tutors/{other.id}", json={"bio": "mine now"}, headers=tutor.headers
        )
        assert response.status_code == 403

    def test_update_requires_token(self, client, tutor):
        """Profile updates need authentication."""
        response = client.patch(f"/api/tutors/{tutor.id}", json={"bio": "x"})
        assert response.status_code == 401


class TestReviewsSessionsEarnings:
    """Tests for tutor sub-resources."""

    def test_reviews_empty(self, client, tutor):
        """A new tutor has an empty, paginated review list."""
        response = client.get(f"/api/tutors/{tutor.id}/reviews")
        data = response.json()["data"]
        assert data["reviews"] == []
        assert data["pagination"]["totalCount"] == 0

    def test_sessions_are_private(self, client, tutor, student):
        """Only the tutor (or an admin) lists their sessions."""
        own = client.get(f"/api/tutors/{tutor.id}/sessions", headers=tutor.headers)
        other = client.get(f"/api/tutors/{tutor.id}/sessions", headers=student.headers)
        assert own.status_code == 200
        assert other.status_code == 403

    def test_earnings_empty(self, client, tutor):
        """No completed payments means zero earnings."""
        response = client.get(f"/api/tutors/{tutor.id}/earnings", headers=tutor.headers)
        earnings = response.json()["data"]["earnings"]
        assert earnings["summary"]["total_earnings"] == 0
        assert earnings["monthlyBreakdown"] == []

    def test_earnings_bad_date(self, client, tutor):
        """Unparseable dates are rejected."""
        response = client.get(
            f"/api/tutors/{tutor.id}/earnings",
            params={"startDate": "yesterday"},
            headers=tutor.headers,
        )
        assert response.status_code == 400


class TestDirectoryPaging:
    """Page boundaries and repeatability of the directory listing."""

    @pytest.fixture
    def tutors(self, make_account):
        def _make(count):
            return [make_account("tutor") for _ in range(count)]

        return _make

    @pytest.mark.parametrize("count, pages", [(20, 1), (21, 2)])
    def test_total_pages_at_boundary(self, client, tutors, count, pages):
        """Exactly one full page is one page; one more row starts a second."""
        tutors(count)
        response = client.get("/api/tutors", params={"limit": 20})
        pagination = response.json()["data"]["pagination"]
        assert pagination["totalCount"] == count
        assert pagination["totalPages"] == pages
        assert len(response.json()["data"]["tutors"]) == 20

    def test_last_page_holds_remainder(self, client, tutors):
        """Page 2 of 21 rows holds the single leftover row."""
        tutors(21)
        response = client.get("/api/tutors", params={"limit": 20, "page": 2})
        assert len(response.json()["data"]["tutors"]) == 1

    def test_repeated_call_is_identical(self, client, tutors):
        """Two identical list calls return the same rows in the same order."""
        tutors(5)
        params = {"limit": 3, "page": 2, "sortBy": "rating"}
        first = client.get("/api/tutors", params=params).json()["data"]
        second = client.get("/api/tutors", params=params).json()["data"]
        assert first == second
        assert first["pagination"]["totalCount"] == 5
