import asyncio

import pytest

from examprep.services.access_service import AccessService
from examprep.services.analytics_service import AnalyticsUpdater
from examprep.services.attempt_store import AttemptStore, attempt_path, result_path
from examprep.services.submission_service import SubmissionService, score_submission
from examprep.models.database import Quiz
from examprep.utils.error_handler import (
    ConflictError,
    ForbiddenError,
    InternalError,
    InvalidRequestError,
    NotFoundError,
)

QUIZ_ID = "quiz-1"
STUDENT_ID = "student-1"
ANSWERS = {"q1": "A", "q2": "D"}


class CountingScorer:
    def __init__(self):
        self.calls = 0

    def __call__(self, quiz, answers):
        self.calls += 1
        return score_submission(quiz, answers)


def make_service(store, scorer=score_submission, analytics=True):
    access = AccessService(store, AttemptStore(store))
    return SubmissionService(store, access, AnalyticsUpdater(store) if analytics else None, scorer=scorer)


def submit(service, timestamp=1000, **overrides):
    arguments = dict(
        quiz_id=QUIZ_ID,
        user_id=STUDENT_ID,
        answers=ANSWERS,
        flags={"q2": True},
        time_logs={"q1": 12.5, "q2": 30},
        attempt_number=1,
        timestamp=timestamp,
    )
    arguments.update(overrides)
    return service.submit(**arguments)


def test_score_counts_grace_marks_and_ignores_unanswered():
    quiz = Quiz.model_validate({
        "selectedQuestions": [
            {"id": "q1", "correctAnswer": "A"},
            {"id": "q2", "correctAnswer": "B"},
            {"id": "q3", "correctAnswer": "C", "graceMark": True},
            {"id": "q4", "correctAnswer": "D"},
        ]
    })
    assert score_submission(quiz, {"q1": "A", "q2": "C"}) == (2, 4)
    assert score_submission(quiz, {}) == (1, 4)


def test_submit_scores_on_server_and_finalizes_attempt(quiz_store, helpers):
    service = make_service(quiz_store, analytics=False)

    outcome = helpers.run(submit(service))

    assert (outcome.score, outcome.total) == (2, 3)
    assert outcome.cached is False
    assert outcome.message == "Quiz submitted successfully"

    attempt = helpers.read(quiz_store, attempt_path(STUDENT_ID, QUIZ_ID))
    assert attempt["completed"] is True
    assert attempt["remainingTime"] == 0
    result = helpers.read(quiz_store, result_path(STUDENT_ID, QUIZ_ID))
    assert attempt["submittedAt"] == result["submittedAt"]
    assert attempt["submittedAt"].endswith("Z")

    assert result["score"] == 2
    assert result["total"] == 3
    assert result["answers"] == ANSWERS
    assert result["timeLogs"] == {"q1": 12.5, "q2": 30.0}

    record = helpers.read(quiz_store, f"submissions/{STUDENT_ID}_{QUIZ_ID}_1000")
    assert record["userId"] == STUDENT_ID
    assert record["score"] == 2


def test_resubmission_with_same_key_replays_without_rescoring(quiz_store, helpers):
    scorer = CountingScorer()
    service = make_service(quiz_store, scorer=scorer, analytics=False)

    first = helpers.run(submit(service))
    second = helpers.run(submit(service, answers={"q1": "B", "q2": "B"}))

    assert scorer.calls == 1
    assert second.cached is True
    assert second.message == "Submission already processed"
    assert (second.score, second.total) == (first.score, first.total)
    assert second.result["answers"] == ANSWERS


def test_concurrent_duplicate_submissions_write_once(quiz_store, helpers):
    service = make_service(quiz_store)

    async def scenario():
        outcomes = await asyncio.gather(submit(service), submit(service))
        await service.wait_for_background()
        return outcomes

    outcomes = helpers.run(scenario())

    assert sorted(o.cached for o in outcomes) == [False, True]
    assert {o.score for o in outcomes} == {2}
    stats = helpers.read(quiz_store, f"users/{STUDENT_ID}")["stats"]
    assert stats["totalQuizzes"] == 1


def test_new_key_for_already_submitted_attempt_conflicts(quiz_store, helpers):
    service = make_service(quiz_store, analytics=False)
    helpers.run(submit(service, timestamp=1000))

    with pytest.raises(ConflictError):
        helpers.run(submit(service, timestamp=2000))


def test_next_attempt_number_is_accepted(quiz_store, helpers):
    service = make_service(quiz_store, analytics=False)
    helpers.run(submit(service, timestamp=1000))

    outcome = helpers.run(submit(service, timestamp=2000, attempt_number=2, answers={"q1": "A", "q2": "B"}))

    assert outcome.score == 3
    assert helpers.read(quiz_store, attempt_path(STUDENT_ID, QUIZ_ID))["attemptNumber"] == 2


def test_lapsed_enrollment_is_rejected_and_nothing_written(quiz_store, helpers):
    helpers.seed(quiz_store, {
        "enrollments/e1": {"studentId": STUDENT_ID, "seriesId": "fresher", "status": "expired"},
    })
    service = make_service(quiz_store, analytics=False)

    with pytest.raises(ForbiddenError):
        helpers.run(submit(service))

    assert helpers.read(quiz_store, result_path(STUDENT_ID, QUIZ_ID)) is None
    assert helpers.read(quiz_store, attempt_path(STUDENT_ID, QUIZ_ID))["completed"] is False


def test_admin_role_from_profile_bypasses_enrollment(quiz_store, helpers):
    helpers.seed(quiz_store, {"users/teacher-1": {"role": "teacher"}})
    service = make_service(quiz_store, analytics=False)

    outcome = helpers.run(submit(service, user_id="teacher-1"))
    assert outcome.score == 2


def test_public_quiz_needs_no_enrollment(quiz_store, helpers):
    helpers.seed(quiz_store, {
        "quizzes/open-quiz": {
            "title": "Open",
            "accessType": "public",
            "selectedQuestions": [{"id": "q1", "correctAnswer": "A"}],
        },
    })
    service = make_service(quiz_store, analytics=False)

    outcome = helpers.run(submit(service, quiz_id="open-quiz", user_id="walk-in", answers={"q1": "A"}))
    assert (outcome.score, outcome.total) == (1, 1)


def test_missing_fields_and_unknown_quiz(quiz_store, helpers):
    service = make_service(quiz_store, analytics=False)

    with pytest.raises(InvalidRequestError):
        helpers.run(submit(service, answers=None))
    with pytest.raises(InvalidRequestError):
        helpers.run(submit(service, user_id=""))
    with pytest.raises(NotFoundError):
        helpers.run(submit(service, quiz_id="nope"))


def test_failed_commit_writes_nothing(quiz_store, helpers, monkeypatch):
    original = quiz_store._apply_write

    def failing(current, write):
        if write.path.startswith("submissions/"):
            raise RuntimeError("write rejected")
        return original(current, write)

    monkeypatch.setattr(quiz_store, "_apply_write", failing)
    service = make_service(quiz_store)

    with pytest.raises(InternalError):
        helpers.run(submit(service))

    assert helpers.read(quiz_store, result_path(STUDENT_ID, QUIZ_ID)) is None
    assert helpers.read(quiz_store, attempt_path(STUDENT_ID, QUIZ_ID))["completed"] is False
    assert helpers.read(quiz_store, f"submissions/{STUDENT_ID}_{QUIZ_ID}_1000") is None
    assert "stats" not in helpers.read(quiz_store, f"users/{STUDENT_ID}")


def test_analytics_run_after_commit(quiz_store, helpers):
    service = make_service(quiz_store)

    async def scenario():
        await submit(service)
        await service.wait_for_background()

    helpers.run(scenario())

    stats = helpers.read(quiz_store, f"users/{STUDENT_ID}")["stats"]
    assert stats["totalQuizzes"] == 1
    assert stats["totalCorrect"] == 2
    assert stats["subjectStats"]["Chemistry"]["wrong"] == 1

    assert helpers.read(quiz_store, "questions/q1")["correctAttempts"] == 1
    assert helpers.read(quiz_store, "questions/q2")["optionCounts"] == {"D": 1}
    assert helpers.read(quiz_store, "questions/q3") is None


def test_analytics_failure_does_not_fail_submission(quiz_store, helpers, monkeypatch):
    service = make_service(quiz_store)

    async def broken(*args, **kwargs):
        raise RuntimeError("stats backend down")

    monkeypatch.setattr(service.analytics, "update_user_stats", broken)

    async def scenario():
        outcome = await submit(service)
        await service.wait_for_background()
        return outcome

    outcome = helpers.run(scenario())
    assert outcome.score == 2
    assert helpers.read(quiz_store, attempt_path(STUDENT_ID, QUIZ_ID))["completed"] is True
