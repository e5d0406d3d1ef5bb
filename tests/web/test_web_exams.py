"""Tests for exam authoring, submission and grading endpoints."""

import pytest

QUESTIONS = [
    {"question": "2 + 2?", "options": ["3", "4"], "correctAnswer": "4", "marks": 5},
    {"question": "Capital of France?", "correctAnswer": "Paris", "marks": 5},
]

EXAM = {
    "title": "Midterm",
    "duration": 45,
    "totalMarks": 10,
    "passingMarks": 6,
    "questions": QUESTIONS,
}


@pytest.fixture
def exam_id(client, tutor):
    """A draft exam authored by `tutor`."""
    response = client.post("/api/exams", json=EXAM, headers=tutor.headers)
    return response.json()["data"]["exam"]["id"]


@pytest.fixture
def published(client, tutor, exam_id):
    client.post(f"/api/exams/{exam_id}/publish", headers=tutor.headers)
    return exam_id


@pytest.fixture
def submission_id(client, student, published):
    response = client.post(
        f"/api/exams/{published}/submit",
        json={"answers": ["4", "Paris"]},
        headers=student.headers,
    )
    return response.json()["data"]["submission"]["id"]


class TestAuthoring:
    """Tests for create, update, publish and delete."""

    def test_create_draft(self, client, tutor):
        """Tutors create exams in draft."""
        response = client.post("/api/exams", json=EXAM, headers=tutor.headers)
        assert response.status_code == 201
        exam = response.json()["data"]["exam"]
        assert exam["status"] == "draft"
        assert exam["questions"] == QUESTIONS

    def test_student_cannot_create(self, client, student):
        """Users without a tutor profile cannot author exams."""
        response = client.post("/api/exams", json=EXAM, headers=student.headers)
        assert response.status_code == 403
        assert response.json()["message"] == "Only tutors can create exams"

    def test_passing_above_total(self, client, tutor):
        """Passing marks cannot exceed total marks."""
        response = client.post(
            "/api/exams", json={**EXAM, "passingMarks": 11}, headers=tutor.headers
        )
        assert response.status_code == 400

    def test_update(self, client, tutor, exam_id):
        """Owners can update their exam."""
        response = client.patch(
            f"/api/exams/{exam_id}", json={"title": "Final"}, headers=tutor.headers
        )
        assert response.status_code == 200
        assert response.json()["data"]["exam"]["title"] == "Final"

    def test_update_by_other_tutor(self, client, exam_id, make_account):
        """Other tutors cannot edit the exam."""
        other = make_account("tutor")
        response = client.patch(
            f"/api/exams/{exam_id}", json={"title": "Mine"}, headers=other.headers
        )
        assert response.status_code == 403

    def test_publish_once(self, client, tutor, exam_id):
        """Publishing twice is a conflict."""
        first = client.post(f"/api/exams/{exam_id}/publish", headers=tutor.headers)
        second = client.post(f"/api/exams/{exam_id}/publish", headers=tutor.headers)
        assert first.status_code == 200
        assert second.status_code == 400
        assert second.json()["message"] == "Exam is already published"

    def test_publish_without_questions(self, client, tutor):
        """Empty exams cannot be published."""
        created = client.post("/api/exams", json={**EXAM, "questions": []}, headers=tutor.headers)
        exam_id = created.json()["data"]["exam"]["id"]
        response = client.post(f"/api/exams/{exam_id}/publish", headers=tutor.headers)
        assert response.status_code == 400
        assert response.json()["message"] == "Cannot publish an exam without questions"

    def test_delete_draft(self, client, tutor, exam_id):
        """Exams without submissions can be deleted."""
        response = client.delete(f"/api/exams/{exam_id}", headers=tutor.headers)
        assert response.status_code == 200
        assert client.get(f"/api/exams/{exam_id}", headers=tutor.headers).status_code == 404

    def test_delete_with_submissions(self, client, tutor, published, submission_id):
        """Exams with submissions are kept."""
        response = client.delete(f"/api/exams/{published}", headers=tutor.headers)
        assert response.status_code == 400


class TestVisibility:
    """Tests for listing and reading exams."""

    def test_draft_hidden_from_students(self, client, student, exam_id):
        """Students cannot open drafts."""
        response = client.get(f"/api/exams/{exam_id}", headers=student.headers)
        assert response.status_code == 403
        assert response.json()["message"] == "This exam is not yet published"

    def test_answers_stripped_for_students(self, client, student, published):
        """Students never see correct answers."""
        response = client.get(f"/api/exams/{published}", headers=student.headers)
        exam = response.json()["data"]["exam"]
        assert all("correctAnswer" not in q for q in exam["questions"])
        assert exam["submission"] is None

    def test_owner_sees_answers(self, client, tutor, published):
        """The author sees the full question set."""
        response = client.get(f"/api/exams/{published}", headers=tutor.headers)
        assert response.json()["data"]["exam"]["questions"][0]["correctAnswer"] == "4"

    def test_list_scopes(self, client, tutor, student, exam_id, make_account):
        """Tutors list their own exams; students list published ones."""
        other = make_account("tutor")
        other_exam = client.post("/api/exams", json=EXAM, headers=other.headers)
        other_id = other_exam.json()["data"]["exam"]["id"]
        client.post(f"/api/exams/{other_id}/publish", headers=other.headers)

        mine = client.get("/api/exams", headers=tutor.headers).json()["data"]["exams"]
        visible = client.get("/api/exams", headers=student.headers).json()["data"]["exams"]
        assert [e["id"] for e in mine] == [exam_id]
        assert [e["id"] for e in visible] == [other_id]


class TestSubmissions:
    """Tests for submitting and grading."""

    def test_submit(self, client, tutor, submission_id):
        """Submitting notifies the exam author."""
        assert submission_id
        types = [
            n["type"]
            for n in client.get("/api/notifications", headers=tutor.headers).json()["data"][
                "notifications"
            ]
        ]
        assert types == ["exam_submitted"]

    def test_submit_draft(self, client, student, exam_id):
        """Drafts cannot be submitted."""
        response = client.post(
            f"/api/exams/{exam_id}/submit", json={"answers": []}, headers=student.headers
        )
        assert response.status_code == 404

    def test_submit_twice(self, client, student, published, submission_id):
        """One submission per student."""
        response = client.post(
            f"/api/exams/{published}/submit", json={"answers": []}, headers=student.headers
        )
        assert response.status_code == 400
        assert response.json()["message"] == "You have already submitted this exam"

    def test_submit_own_exam(self, client, tutor, published):
        """Authors cannot sit their own exam."""
        response = client.post(
            f"/api/exams/{published}/submit", json={"answers": []}, headers=tutor.headers
        )
        assert response.status_code == 400

    def test_list_submissions(self, client, tutor, student, published, submission_id):
        """The author lists submissions; others cannot."""
        own = client.get(f"/api/exams/{published}/submissions", headers=tutor.headers)
        other = client.get(f"/api/exams/{published}/submissions", headers=student.headers)
        assert [s["id"] for s in own.json()["data"]["submissions"]] == [submission_id]
        assert other.status_code == 403

    def test_grade(self, client, tutor, student, published, submission_id):
        """Grading sets score and pass flag and notifies the student."""
        url = f"/api/exams/{published}/submissions/{submission_id}/grade"
        response = client.post(url, json={"score": 7, "feedback": "Good"}, headers=tutor.headers)
        assert response.status_code == 200
        graded = response.json()["data"]["submission"]
        assert graded["status"] == "graded"
        assert graded["passed"] is True

        again = client.post(url, json={"score": 8}, headers=tutor.headers)
        assert again.json()["message"] == "Submission has already been graded"

        inbox = client.get("/api/notifications", headers=student.headers).json()["data"]
        assert inbox["notifications"][0]["type"] == "exam_graded"

    def test_grade_out_of_range(self, client, tutor, published, submission_id):
        """Scores are bounded by total marks."""
        response = client.post(
            f"/api/exams/{published}/submissions/{submission_id}/grade",
            json={"score": 11},
            headers=tutor.headers,
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Score must be between 0 and 10"
