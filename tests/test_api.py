from datetime import timedelta

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from assessments.models import ExamAttempt
from cores.models import AuditLog
from exams.models import Exam
from late_access.models import LateAccessCode

pytestmark = pytest.mark.django_db


def client_for(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


def start_url(exam):
    return f"/api/exams/{exam.id}/attempts/start/"


def attempt_url(attempt_id, action=""):
    return f"/api/attempts/{attempt_id}/{action + '/' if action else ''}"


@pytest.fixture
def started(student_client, exam):
    response = student_client.post(start_url(exam), {}, format="json")
    assert response.status_code == 201
    return response.data


# =========================================================
# Auth
# =========================================================

def test_register_and_login(api_client):
    response = api_client.post("/api/auth/register/", {
        "email": "ada@example.com", "password": "s3cret-pass", "first_name": "Ada", "last_name": "L",
    }, format="json")
    assert response.status_code == 201

    response = api_client.post("/api/auth/login/", {"email": "ada@example.com", "password": "s3cret-pass"},
                               format="json")
    assert response.status_code == 200
    assert "access" in response.data
    assert response.data["user"]["role"] == "student"


def test_register_cannot_claim_inspector_role(api_client):
    response = api_client.post("/api/auth/register/", {
        "email": "eve@example.com", "password": "x", "first_name": "E", "last_name": "V", "role": "inspector",
    }, format="json")
    assert response.status_code == 400
    assert response.data["code"] == "invalid"
    assert "role" in response.data["details"]


def test_login_email_is_case_insensitive(api_client, make_user):
    make_user(email="grace@example.com")
    response = api_client.post("/api/auth/login/", {"email": "Grace@Example.COM", "password": "pass1234"},
                               format="json")
    assert response.status_code == 200
    assert response.data["user"]["email"] == "grace@example.com"


def test_login_with_username(api_client, make_user):
    user = make_user(username="grace-h")
    response = api_client.post("/api/auth/login/", {"email": "grace-h", "password": "pass1234"}, format="json")
    assert response.status_code == 200
    assert response.data["user"]["id"] == user.id


def test_login_with_wrong_password(api_client, make_user):
    make_user(email="grace@example.com")
    response = api_client.post("/api/auth/login/", {"email": "grace@example.com", "password": "nope"},
                               format="json")
    assert response.status_code == 401


def test_anonymous_requests_are_rejected(api_client, exam):
    response = api_client.post(start_url(exam), {}, format="json")
    assert response.status_code == 401
    assert response.data["code"] == "not_authenticated"


# =========================================================
# Attempt flow
# =========================================================

def test_start_payload_hides_answers(started, exam):
    assert started["resume_token"]
    assert started["status"] == "STARTED"
    config = started["config"]
    assert config["id"] == exam.id
    assert config["anti_cheat"]["max_tab_switches"] is None
    assert len(config["questions"]) == 4
    for question in config["questions"]:
        assert "model_answer" not in question
        assert "keywords" not in question
        for option in question["options"]:
            assert set(option) == {"id", "text"}


def test_start_unpublished_exam(student_client, make_exam):
    draft = make_exam(status=Exam.Status.DRAFT)
    response = student_client.post(start_url(draft), {}, format="json")
    assert response.status_code == 400
    assert response.data == {"error": "Exam is not published", "code": "exam_not_available"}


def test_attempt_limit_message(student_client, make_exam):
    exam = make_exam(max_attempts=1)
    student_client.post(start_url(exam), {}, format="json")
    response = student_client.post(start_url(exam), {}, format="json")
    assert response.status_code == 400
    assert response.data["error"] == "Maximum attempts (1) reached"
    assert response.data["code"] == "attempt_limit_reached"


def test_cooldown_exposes_exact_wait(student_client, make_exam, answer):
    exam = make_exam(time_between_attempts=2)
    attempt_id = student_client.post(start_url(exam), {}, format="json").data["attempt_id"]
    response = student_client.post(attempt_url(attempt_id, "submit"), {
        "responses": [answer(q) for q in exam.questions.all()],
    }, format="json")
    assert response.status_code == 200

    response = student_client.post(start_url(exam), {}, format="json")
    assert response.status_code == 400
    assert response.data["code"] == "cooldown_active"
    assert response.data["error"] == "Please wait 2 hours before attempting again"
    assert 0 < response.data["retry_after_seconds"] <= 7200
    assert response["Retry-After"] == str(response.data["retry_after_seconds"])


def test_autosave_resume_and_submit(student_client, started, exam):
    attempt_id = started["attempt_id"]
    q1, q2, q3, q4 = exam.questions.all()
    right = {q.id: q.options.get(is_correct=True).id for q in (q1, q2, q3, q4)}

    response = student_client.post(attempt_url(attempt_id, "answers"), {
        "question_id": q1.id, "selected_option_id": right[q1.id], "time_spent": 12,
    }, format="json")
    assert response.status_code == 200

    response = student_client.post(attempt_url(attempt_id, "resume"),
                                   {"resume_token": started["resume_token"]}, format="json")
    assert response.status_code == 200
    assert [r["question_id"] for r in response.data["responses"]] == [q1.id]

    response = student_client.post(attempt_url(attempt_id, "submit"), {"responses": [
        {"question_id": q2.id, "selected_option_id": right[q2.id]},
        {"question_id": q3.id, "selected_option_id": right[q3.id]},
        {"question_id": q4.id, "selected_option_id": q4.options.get(is_correct=False).id},
    ]}, format="json")
    assert response.status_code == 200
    assert response.data["result"]["score"] == 3
    assert response.data["result"]["percentage"] == 75
    assert response.data["attempt"]["status"] == "COMPLETED"

    response = student_client.get("/api/attempts/")
    assert response.status_code == 200
    assert [a["id"] for a in response.data] == [attempt_id]


def test_attempt_list_filters_by_exam(student_client, make_exam):
    first, second = make_exam(), make_exam(title="Second")
    student_client.post(start_url(first), {}, format="json")
    wanted = student_client.post(start_url(second), {}, format="json").data["attempt_id"]

    response = student_client.get(f"/api/attempts/?exam={second.id}")
    assert response.status_code == 200
    assert [a["id"] for a in response.data] == [wanted]


def test_attempt_list_rejects_non_numeric_exam(student_client):
    response = student_client.get("/api/attempts/?exam=abc")
    assert response.status_code == 400
    assert response.data["code"] == "invalid"
    assert "exam" in response.data["details"]


def test_wrong_resume_token_is_401_and_audited(student_client, started, student):
    response = student_client.post(attempt_url(started["attempt_id"], "resume"),
                                   {"resume_token": "forged"}, format="json")
    assert response.status_code == 401
    assert response.data["code"] == "invalid_resume_token"
    assert AuditLog.objects.filter(action="ACCESS_DENIED", actor=student).exists()


def test_other_student_cannot_read_attempt(started, other_student):
    response = client_for(other_student).get(attempt_url(started["attempt_id"]))
    assert response.status_code == 403
    assert response.data == {"error": "Unauthorized: Not your attempt", "code": "not_attempt_owner"}
    assert AuditLog.objects.filter(action="ACCESS_DENIED", actor=other_student).exists()


def test_missing_attempt_is_404(student_client):
    response = student_client.get(attempt_url(999999))
    assert response.status_code == 404
    assert response.data["code"] == "attempt_not_found"


def test_tab_switch_limit_over_http(student_client, make_exam):
    exam = make_exam(max_tab_switches=3)
    started = student_client.post(start_url(exam), {}, format="json").data
    url = attempt_url(started["attempt_id"], "anti-cheat-events")

    for n in range(3):
        response = student_client.post(url, {"type": "TAB_SWITCH", "event_id": f"e{n}"}, format="json")
        assert response.status_code == 201
        assert response.data["sequence"] == n + 1

    # redelivery of an already-counted event
    response = student_client.post(url, {"type": "TAB_SWITCH", "event_id": "e2"}, format="json")
    assert response.status_code == 201
    assert response.data["sequence"] == 3

    response = student_client.post(url, {"type": "TAB_SWITCH", "event_id": "e3"}, format="json")
    assert response.status_code == 409
    assert response.data["code"] == "attempt_abandoned"

    response = student_client.post(attempt_url(started["attempt_id"], "submit"), {"responses": []}, format="json")
    assert response.status_code == 409
    assert response.data == {"error": "Attempt is no longer in progress", "code": "attempt_not_in_progress"}
    assert ExamAttempt.objects.get(pk=started["attempt_id"]).status == ExamAttempt.Status.ABANDONED


def test_unknown_anti_cheat_type(student_client, started):
    response = student_client.post(attempt_url(started["attempt_id"], "anti-cheat-events"),
                                   {"type": "SCREENSHOT", "event_id": "e1"}, format="json")
    assert response.status_code == 400
    assert "type" in response.data["details"]


def test_anti_cheat_event_requires_delivery_id(student_client, started):
    url = attempt_url(started["attempt_id"], "anti-cheat-events")
    response = student_client.post(url, {"type": "TAB_SWITCH"}, format="json")
    assert response.status_code == 400
    assert "event_id" in response.data["details"]
    assert not ExamAttempt.objects.get(pk=started["attempt_id"]).anti_cheat_events.exists()


# =========================================================
# Late codes
# =========================================================

def test_late_code_flow(teacher, student, make_exam):
    exam = make_exam(end_time=timezone.now() - timedelta(hours=1))
    teacher_client = client_for(teacher)
    student_client = client_for(student)

    response = teacher_client.post(f"/api/exams/{exam.id}/late-codes/", {"max_usages": 2, "reason": "Sick"},
                                   format="json")
    assert response.status_code == 201
    code = response.data["code"]
    assert response.data["usages_remaining"] == 2

    response = student_client.post(start_url(exam), {}, format="json")
    assert response.status_code == 400
    assert response.data["error"] == "Exam has ended"

    response = student_client.post("/api/late-codes/validate/", {"code": code, "exam_id": exam.id}, format="json")
    assert response.status_code == 200
    assert response.data["usages_remaining"] == 1

    response = student_client.post("/api/late-codes/validate/", {"code": code, "exam_id": exam.id}, format="json")
    assert response.status_code == 400
    assert response.data == {"error": "You have already used this late code", "code": "late_code_already_used"}

    response = student_client.post(start_url(exam), {}, format="json")
    assert response.status_code == 201

    response = teacher_client.get(f"/api/exams/{exam.id}/late-codes/")
    assert response.status_code == 200
    assert response.data[0]["usage_history"][0]["user"] == student.id


def test_student_cannot_generate_codes(student_client, exam):
    response = student_client.post(f"/api/exams/{exam.id}/late-codes/", {}, format="json")
    assert response.status_code == 403
    assert response.data["code"] == "late_code_generation_forbidden"


def test_revoke_endpoint(teacher, exam):
    teacher_client = client_for(teacher)
    created = teacher_client.post(f"/api/exams/{exam.id}/late-codes/", {}, format="json").data

    response = teacher_client.post(f"/api/late-codes/{created['id']}/revoke/")
    assert response.status_code == 200
    assert LateAccessCode.objects.get(pk=created["id"]).status == LateAccessCode.Status.REVOKED


# =========================================================
# Exam management
# =========================================================

def test_students_only_see_published_exams(student_client, make_exam):
    published = make_exam()
    make_exam(status=Exam.Status.DRAFT, title="Draft")

    response = student_client.get("/api/exams/")
    assert response.status_code == 200
    assert [e["id"] for e in response.data] == [published.id]


def test_teacher_creates_exam_with_decorators(teacher):
    response = client_for(teacher).post("/api/exams/", {
        "title": "Physics", "passing_score": 60, "score_decorators": ["time_bonus", "badges"],
    }, format="json")
    assert response.status_code == 201
    assert Exam.objects.get(pk=response.data["id"]).created_by == teacher


def test_unknown_decorator_rejected(teacher):
    response = client_for(teacher).post("/api/exams/", {"title": "Physics", "score_decorators": ["confetti"]},
                                        format="json")
    assert response.status_code == 400
    assert "score_decorators" in response.data["details"]


def test_student_cannot_create_exam(student_client):
    response = student_client.post("/api/exams/", {"title": "Mine"}, format="json")
    assert response.status_code == 403


# =========================================================
# Monitoring
# =========================================================

def monitor_url(exam_id):
    return f"/api/exams/{exam_id}/monitor/"


@pytest.fixture
def monitored(student_client, teacher, make_exam):
    exam = make_exam(max_tab_switches=5)
    attempt_id = student_client.post(start_url(exam), {}, format="json").data["attempt_id"]
    events_url = attempt_url(attempt_id, "anti-cheat-events")
    for event_id, event_type in (("t1", "TAB_SWITCH"), ("c1", "COPY_ATTEMPT"), ("t2", "TAB_SWITCH")):
        student_client.post(events_url, {"type": event_type, "event_id": event_id}, format="json")
    client_for(teacher).post(f"/api/exams/{exam.id}/late-codes/", {"reason": "Sick"}, format="json")
    return exam, attempt_id


def test_creator_monitors_attempts(monitored, teacher, student):
    exam, attempt_id = monitored
    response = client_for(teacher).get(monitor_url(exam.id))
    assert response.status_code == 200
    assert response.data["exam"]["id"] == exam.id

    [row] = response.data["attempts"]
    assert row["id"] == attempt_id
    assert row["user_email"] == student.email
    assert row["status"] == "STARTED"
    assert row["tab_switch_count"] == 2
    assert row["suspicious_activity_detected"] is True
    assert [e["type"] for e in row["anti_cheat_events"]] == ["TAB_SWITCH", "COPY_ATTEMPT", "TAB_SWITCH"]
    assert "resume_token" not in row

    [late_code] = response.data["late_codes"]
    assert late_code["reason"] == "Sick"


def test_inspector_monitors_any_exam(monitored, inspector):
    exam, attempt_id = monitored
    response = client_for(inspector).get(monitor_url(exam.id))
    assert response.status_code == 200
    assert [a["id"] for a in response.data["attempts"]] == [attempt_id]


def test_student_cannot_monitor(monitored, student_client, student):
    exam, _ = monitored
    response = student_client.get(monitor_url(exam.id))
    assert response.status_code == 403
    assert response.data["code"] == "exam_monitor_forbidden"
    assert AuditLog.objects.filter(action="ACCESS_DENIED", actor=student).exists()


def test_other_teacher_cannot_monitor(monitored, make_user):
    exam, _ = monitored
    response = client_for(make_user("teacher")).get(monitor_url(exam.id))
    assert response.status_code == 403
    assert response.data["code"] == "exam_monitor_forbidden"


def test_monitor_missing_exam(teacher):
    response = client_for(teacher).get(monitor_url(987654))
    assert response.status_code == 404
    assert response.data["code"] == "exam_not_found"
