import pytest
from fastapi.testclient import TestClient

from vocab_exam.api.deps import get_clock_registry, get_exam_service
from vocab_exam.main import app
from vocab_exam.services.exam_clock import ClockRegistry
from vocab_exam.services.exam_service import ExamService


@pytest.fixture
def word_set_id(client: TestClient, auth_headers):
    response = client.post(
        "/api/word-sets", json={"name": "Week 1"}, headers=auth_headers
    )
    assert response.status_code == 201
    set_id = response.json()["id"]
    for text, limit in [("dog", 30), ("run", 15)]:
        response = client.post(
            f"/api/word-sets/{set_id}/words",
            json={"word_text": text, "time_limit_seconds": limit},
            headers=auth_headers,
        )
        assert response.status_code == 201
    return set_id


def run_exam(client, word_set_id, sentences, name="Ana"):
    response = client.post(
        "/api/exam/session/start",
        json={"word_set_id": word_set_id, "student_name": name},
    )
    assert response.status_code == 200
    exam_id = response.json()["exam_id"]
    for sentence in sentences:
        response = client.post(
            f"/api/exam/session/{exam_id}/submit", json={"sentence": sentence}
        )
        assert response.status_code == 200
    return exam_id, response.json()


def test_root_and_health(client):
    assert client.get("/").json() == {"message": "VocabExams API"}
    assert client.get("/health").json() == {"status": "healthy"}


def test_signup_signin_me_signout(client):
    response = client.post(
        "/api/auth/signup",
        json={"email": "t@school.org", "password": "secret123", "full_name": "Ms T"},
    )
    assert response.status_code == 201

    response = client.post(
        "/api/auth/signin", json={"email": "t@school.org", "password": "secret123"}
    )
    assert response.status_code == 200
    headers = {"Authorization": f"Bearer {response.json()['access_token']}"}

    me = client.get("/api/auth/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["full_name"] == "Ms T"

    assert client.post("/api/auth/signout", headers=headers).status_code == 200
    response = client.get("/api/auth/me", headers=headers)
    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "AUTH_FAILED"


def test_teacher_routes_need_token(client):
    assert client.get("/api/word-sets").status_code == 401
    assert client.get("/api/grading/exams").status_code == 401
    assert client.get("/api/analytics/stats").status_code == 401


def test_student_exam_flow(client, word_set_id):
    word_sets = client.get("/api/exam/word-sets").json()["word_sets"]
    assert [ws["id"] for ws in word_sets] == [word_set_id]

    response = client.post(
        "/api/exam/session/start",
        json={"word_set_id": word_set_id, "student_name": "Ana"},
    )
    body = response.json()
    exam_id = body["exam_id"]
    assert body["state"] == "in_progress"
    assert body["current_word"]["word_text"] == "dog"
    assert body["time_left"] == 30
    assert body["total_words"] == 2

    for _ in range(5):
        client.post(f"/api/exam/session/{exam_id}/tick")
    client.put(f"/api/exam/session/{exam_id}/draft", json={"text": "The dog barks"})

    body = client.post(f"/api/exam/session/{exam_id}/submit").json()
    assert body["current_word"]["word_text"] == "run"
    assert body["draft"] == ""

    body = client.post(f"/api/exam/session/{exam_id}/submit", json={"sentence": ""}).json()
    assert body["state"] == "completed"
    assert body["current_word"] is None

    response = client.post(f"/api/exam/session/{exam_id}/submit", json={"sentence": "late"})
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "INVALID_TRANSITION"


def test_start_errors(client, auth_headers):
    empty = client.post("/api/word-sets", json={"name": "Empty"}, headers=auth_headers).json()

    response = client.post(
        "/api/exam/session/start", json={"word_set_id": empty["id"], "student_name": "Ana"}
    )
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "EMPTY_WORD_SET"

    response = client.post(
        "/api/exam/session/start", json={"word_set_id": empty["id"], "student_name": " "}
    )
    assert response.status_code == 400

    response = client.post(
        "/api/exam/session/start", json={"word_set_id": "missing", "student_name": "Ana"}
    )
    assert response.status_code == 404

    assert client.get("/api/exam/session/missing").status_code == 404


def test_invalid_time_limit(client, auth_headers):
    set_id = client.post("/api/word-sets", json={"name": "W"}, headers=auth_headers).json()["id"]
    response = client.post(
        f"/api/word-sets/{set_id}/words",
        json={"word_text": "dog", "time_limit_seconds": 5},
        headers=auth_headers,
    )
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "VALIDATION_ERROR"


def test_grading_and_stats(client, auth_headers, word_set_id):
    exam_id, _ = run_exam(client, word_set_id, ["The dog barks", "I run"])
    run_exam(client, word_set_id, ["a", "b"], name="Ben")
    client.post(
        "/api/exam/session/start",
        json={"word_set_id": word_set_id, "student_name": "Cy"},
    )

    exams = client.get("/api/grading/exams", headers=auth_headers).json()["exams"]
    assert {e["student_name"] for e in exams} == {"Ana", "Ben"}

    answers = client.get(f"/api/grading/exams/{exam_id}/answers", headers=auth_headers).json()
    assert len(answers["ungraded"]) == 2
    first = answers["ungraded"][0]

    response = client.post(
        f"/api/grading/answers/{first['id']}/grade",
        json={"is_correct": True, "feedback": "Good job"},
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.json()["teacher_feedback"] == "Good job"

    answers = client.get(f"/api/grading/exams/{exam_id}/answers", headers=auth_headers).json()
    assert [a["id"] for a in answers["graded"]] == [first["id"]]
    assert answers["graded"][0]["is_correct"] is True

    stats = client.get("/api/analytics/stats", headers=auth_headers).json()
    assert stats == {
        "total_word_sets": 1,
        "completed_exams": 2,
        "average_score": 0.5,
        "completion_rate": 67,
    }


def test_grading_socket_pushes_after_changes(client, auth, store, teacher, word_set_id):
    token = auth.sign_in(store, teacher.email, "password123").token

    with client.websocket_connect(f"/api/grading/ws?token={token}") as ws:
        assert ws.receive_json() == {"type": "exams", "exams": []}

        run_exam(client, word_set_id, ["The dog barks", "I run"])

        # One push for the exam insert, one for its completion
        ws.receive_json()
        pushed = ws.receive_json()["exams"]
        assert [e["student_name"] for e in pushed] == ["Ana"]

        client.post("/api/auth/signout", headers={"Authorization": f"Bearer {token}"})
        assert ws.receive_json() == {"type": "signed_out"}


def test_grading_socket_rejects_bad_token(client):
    with client.websocket_connect("/api/grading/ws?token=nope") as ws:
        message = ws.receive_json()
    assert message["type"] == "error"
    assert message["error"]["code"] == "AUTH_FAILED"


def test_exam_socket_messages(client, word_set_id):
    response = client.post(
        "/api/exam/session/start",
        json={"word_set_id": word_set_id, "student_name": "Ana"},
    )
    exam_id = response.json()["exam_id"]

    with client.websocket_connect(f"/api/exam/ws/{exam_id}") as ws:
        assert ws.receive_json()["session"]["current_word"]["word_text"] == "dog"

        ws.send_json({"type": "draft", "text": "The dog"})
        assert ws.receive_json()["session"]["draft"] == "The dog"

        ws.send_json({"type": "submit"})
        session = ws.receive_json()["session"]
        assert session["word_index"] == 1
        assert session["current_word"]["word_text"] == "run"

        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}


def test_exam_socket_reports_failed_timeout(client, make_word_set, flaky_answers):
    word_set = make_word_set([("dog", 10), ("run", 15)])
    service = ExamService(flaky_answers(failures=1))
    registry = ClockRegistry(service, interval=0)
    app.dependency_overrides[get_exam_service] = lambda: service
    app.dependency_overrides[get_clock_registry] = lambda: registry
    exam_id = service.start_exam(word_set.id, "Ana").exam_id

    with client.websocket_connect(f"/api/exam/ws/{exam_id}") as ws:
        message = ws.receive_json()
        while message["type"] == "session":
            message = ws.receive_json()
        assert message["type"] == "error"
        assert message["error"]["code"] == "COLLABORATOR_ERROR"

        current = service.get_session(exam_id)
        assert (current.word_index, current.time_left) == (0, 0)

        registry.get(exam_id).interval = 60
        ws.send_json({"type": "submit", "sentence": "The dog barks"})
        session = ws.receive_json()["session"]
        assert (session["word_index"], session["time_left"]) == (1, 15)
        assert registry.get(exam_id).running


def test_exam_sockets_share_one_clock(client, exam_service, clock_registry, word_set_id):
    response = client.post(
        "/api/exam/session/start",
        json={"word_set_id": word_set_id, "student_name": "Ana"},
    )
    exam_id = response.json()["exam_id"]
    url = f"/api/exam/ws/{exam_id}"

    with client.websocket_connect(url) as first:
        first.receive_json()
        first.send_json({"type": "ping"})
        assert first.receive_json() == {"type": "pong"}

        with client.websocket_connect(url) as second:
            second.receive_json()
            second.send_json({"type": "ping"})
            assert second.receive_json() == {"type": "pong"}
            clock = clock_registry.get(exam_id)
            assert clock.listener_count == 2

        first.send_json({"type": "ping"})
        assert first.receive_json() == {"type": "pong"}
        assert clock_registry.get(exam_id) is clock
        assert clock.listener_count == 1
        assert exam_id in exam_service.sessions

    assert clock_registry.get(exam_id) is None
    assert exam_id not in exam_service.sessions


def test_exam_socket_rejects_non_object_messages(client, word_set_id):
    exam_id, _ = run_exam(client, word_set_id, [])
    with client.websocket_connect(f"/api/exam/ws/{exam_id}") as ws:
        ws.receive_json()
        ws.send_text("[1, 2]")
        assert ws.receive_json() == {"type": "error", "error": "invalid message"}
