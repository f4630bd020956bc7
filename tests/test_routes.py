import pytest
from fastapi.testclient import TestClient

from examprep import dependencies
from examprep.main import app
from examprep.services.access_service import AccessService
from examprep.services.attempt_store import AttemptStore, attempt_path
from examprep.services.conversation_log import ConversationLogService
from examprep.services.embedding_service import EmbeddingService
from examprep.services.knowledge_base import KnowledgeBaseService
from examprep.services.submission_service import SubmissionService
from examprep.services.support_service import SiteContextService, SupportChatService
from examprep.services.tutor_service import TutorPipeline
from examprep.utils.auth import get_current_admin_user
from examprep.utils.cache import Cache
from examprep.utils.constants import PRACTICE_REFUSAL_MESSAGE
from examprep.utils.rate_limit import RateLimiter, rate_limiter

import httpx


@pytest.fixture
def api(quiz_store, fake_openai):
    client = fake_openai(
        stream_parts=["An ion is ", "a charged atom."],
        reply='{"text": "Ions carry charge.", "chapter": "3", "page_number": "40"}'
    )
    attempts = AttemptStore(quiz_store)
    access = AccessService(quiz_store, attempts)
    embeddings = EmbeddingService(client, cache=Cache(default_ttl=None))
    knowledge = KnowledgeBaseService(quiz_store, embeddings, client)
    logs = ConversationLogService(quiz_store)
    site = SiteContextService(
        urls=["https://example.test/"],
        transport=httpx.MockTransport(lambda request: httpx.Response(200, text="<p>Fees 5000</p>"))
    )

    overrides = {
        dependencies.get_document_store: lambda: quiz_store,
        dependencies.get_attempt_store: lambda: attempts,
        dependencies.get_access_service: lambda: access,
        dependencies.get_submission_service: lambda: SubmissionService(quiz_store, access),
        dependencies.get_autosave_limiter: RateLimiter,
        dependencies.get_conversation_logs: lambda: logs,
        dependencies.get_knowledge_base: lambda: knowledge,
        dependencies.get_tutor_pipeline: lambda: TutorPipeline(client, embeddings, knowledge, logs, Cache()),
        dependencies.get_support_chat: lambda: SupportChatService(client, site),
    }
    app.dependency_overrides.update(overrides)
    rate_limiter.reset()

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def as_admin():
    app.dependency_overrides[get_current_admin_user] = lambda: {"id": "admin-1", "role": "admin"}


def error_code(response):
    body = response.json()
    assert body["success"] is False
    return body["error"]["code"]


# ============================================
# Quiz
# ============================================

def test_validate_opens_attempt(api):
    response = api.post("/api/quiz/validate", json={"quizId": "quiz-1", "userId": "student-1"})

    assert response.status_code == 200
    body = response.json()
    assert body["preview"] is False
    assert body["attempt"]["remainingTime"] == 1800
    assert "X-Request-ID" in response.headers


def test_validate_reports_access_errors(api):
    forbidden = api.post("/api/quiz/validate", json={"quizId": "quiz-1", "userId": "stranger"})
    missing = api.post("/api/quiz/validate", json={"quizId": "nope", "userId": "student-1"})
    invalid = api.post("/api/quiz/validate", json={"userId": "student-1"})

    assert forbidden.status_code == 403
    assert error_code(forbidden) == "FORBIDDEN"
    assert forbidden.json()["error"]["details"]["errors"]
    assert missing.status_code == 404
    assert error_code(missing) == "NOT_FOUND"
    assert invalid.status_code == 400
    assert error_code(invalid) == "INVALID_REQUEST"


def test_autosave_merges_progress(api, quiz_store, helpers):
    response = api.post("/api/quiz/autosave", json={
        "quizId": "quiz-1", "userId": "student-1", "answers": {"q1": "A"}, "remainingTime": 1700
    })
    api.post("/api/quiz/autosave", json={"quizId": "quiz-1", "userId": "student-1", "flags": {"q2": True}})

    assert response.status_code == 200
    assert response.json()["data"]["lastSaved"]
    stored = helpers.read(quiz_store, attempt_path("student-1", "quiz-1"))
    assert stored["answers"] == {"q1": "A"}
    assert stored["flags"] == {"q2": True}
    assert stored["remainingTime"] == 1700


def test_autosave_without_fields_is_rejected(api):
    response = api.post("/api/quiz/autosave", json={"quizId": "quiz-1", "userId": "student-1"})
    assert response.status_code == 400
    assert error_code(response) == "INVALID_REQUEST"


def test_autosave_is_rate_limited_per_user(api):
    payload = {"quizId": "quiz-1", "userId": "student-1", "currentIndex": 1}
    statuses = [api.post("/api/quiz/autosave", json=payload).status_code for _ in range(11)]

    assert statuses[:10] == [200] * 10
    assert statuses[10] == 429
    other = api.post("/api/quiz/autosave", json={**payload, "userId": "student-2"})
    assert other.status_code == 200


def test_submit_then_replay(api, quiz_store, helpers):
    payload = {
        "quizId": "quiz-1",
        "userId": "student-1",
        "answers": {"q1": "A", "q2": "D"},
        "attemptNumber": 1,
        "timestamp": 1700000000000,
        "score": 3,
    }

    first = api.post("/api/quiz/submit", json=payload)
    second = api.post("/api/quiz/submit", json=payload)

    assert first.status_code == 200
    assert first.json() == {"success": True, "score": 2, "total": 3, "message": "Quiz submitted successfully"}
    assert second.json()["cached"] is True
    assert second.json()["result"]["score"] == 2

    late_autosave = api.post("/api/quiz/autosave", json={"quizId": "quiz-1", "userId": "student-1", "currentIndex": 2})
    assert late_autosave.status_code == 409
    assert error_code(late_autosave) == "CONFLICT"


def test_submit_without_answers_is_rejected(api, quiz_store, helpers):
    response = api.post("/api/quiz/submit", json={"quizId": "quiz-1", "userId": "student-1", "timestamp": 1})

    assert response.status_code == 400
    assert error_code(response) == "INVALID_REQUEST"
    assert helpers.read(quiz_store, "submissions/student-1_quiz-1_1") is None
    assert helpers.read(quiz_store, attempt_path("student-1", "quiz-1"))["completed"] is False


def test_quiz_session_websocket_saves_progress(api, quiz_store, helpers):
    with api.websocket_connect("/api/quiz/quiz-1/session?userId=student-1") as ws:
        ws.send_json({"type": "progress", "answers": {"q1": "C"}, "remainingTime": 1600})
        ws.send_json({"type": "flush"})
        statuses = []
        while "saved" not in statuses:
            message = ws.receive_json()
            statuses.append(message["status"])
        ws.send_json({"type": "bogus"})
        while True:
            message = ws.receive_json()
            if message["type"] == "error":
                break

    assert "pending" in statuses
    assert "Unknown message type" in message["message"]
    stored = helpers.read(quiz_store, attempt_path("student-1", "quiz-1"))
    assert stored["answers"] == {"q1": "C"}
    assert stored["remainingTime"] == 1600


# ============================================
# Tutor
# ============================================

def test_tutor_streams_answer_with_headers(api):
    response = api.post("/api/tutor", json={"message": "What is an ion?", "userId": "student-1"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["X-Intent"] == "factual"
    assert response.headers["X-Subject"] == "Chemistry"
    assert response.headers["X-Confidence"] == "low"
    assert "An ion is a charged atom." in response.text
    assert '"status": "log_id"' in response.text


def test_tutor_refuses_practice_requests(api):
    response = api.post("/api/tutor", json={"message": "Give me 10 MCQs on ions", "streamStatus": False})

    assert response.headers["X-Intent"] == "practice"
    assert response.text == PRACTICE_REFUSAL_MESSAGE


def test_tutor_rejects_bad_history(api):
    response = api.post("/api/tutor", json={"message": "hi", "history": [{"role": "system", "content": "x"}]})
    assert response.status_code == 400


def test_feedback_round_trip(api, quiz_store, helpers):
    log_id = helpers.run(ConversationLogService(quiz_store).log("q", "r"))

    ok = api.post("/api/tutor/feedback", json={"logId": log_id, "feedback": "helpful"})
    missing = api.post("/api/tutor/feedback", json={"logId": "missing", "feedback": "helpful"})
    invalid = api.post("/api/tutor/feedback", json={"logId": log_id, "feedback": "meh"})

    assert ok.status_code == 200
    assert helpers.read(quiz_store, f"ai_tutor_logs/{log_id}")["feedback"] == "helpful"
    assert missing.status_code == 404
    assert invalid.status_code == 400


def test_admin_routes_require_authentication(api):
    response = api.get("/api/admin/tutor/analytics")
    assert response.status_code == 401
    assert error_code(response) == "UNAUTHORIZED"


def test_admin_analytics(api):
    api.post("/api/tutor", json={"message": "What is an ion?"})
    as_admin()

    response = api.get("/api/admin/tutor/analytics", params={"days": 7})

    assert response.status_code == 200
    body = response.json()
    assert body["totalQueries"] == 1
    assert body["byIntent"] == {"factual": 1}
    assert body["confidenceDistribution"]["low"] == 1


def test_admin_ingests_knowledge_page(api, quiz_store, helpers):
    as_admin()

    response = api.post("/api/admin/knowledge-base/pages", json={
        "pageText": "Chapter 3 ... ions ...", "subject": "Chemistry", "bookName": "Chemistry 9"
    })

    assert response.status_code == 200
    body = response.json()
    assert body["chapter"] == "3"
    assert body["page"] == "40"
    assert body["hasVisualDescription"] is False
    assert helpers.read(quiz_store, f"knowledge_base/{body['id']}")["metadata"]["subject"] == "Chemistry"


# ============================================
# Support and health
# ============================================

def test_chat_support(api):
    response = api.post("/api/chat-support", json={
        "message": "What are the fees?",
        "history": [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "Hello!"}]
    })

    assert response.status_code == 200
    assert response.json() == {"response": '{"text": "Ions carry charge.", "chapter": "3", "page_number": "40"}'}


def test_health(api):
    response = api.get("/health")

    assert response.status_code == 200
    assert response.json()["checks"]["document_store"]["status"] == "connected"
