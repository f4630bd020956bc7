"""
Submission Service - idempotent, transactional quiz finalization

The client's score is never trusted: answers are scored against the quiz's
own answer key, and the Result, the Attempt completion and the idempotency
record are written in one transaction.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Set, Tuple
import asyncio

from examprep.models.database import Attempt, Quiz, Result, SubmissionRecord, UserProfile
from examprep.services.access_service import AccessService, quiz_path
from examprep.services.analytics_service import AnalyticsUpdater
from examprep.services.attempt_store import attempt_path, result_path
from examprep.services.document_store import DocumentStore, Transaction, document_path
from examprep.utils.constants import SUBMISSIONS, USERS, ERROR_MESSAGES
from examprep.utils.error_handler import (
    AppException,
    ConflictError,
    InternalError,
    InvalidRequestError,
    NotFoundError,
)
from examprep.utils.helpers import format_timestamp, generate_idempotency_key, now_ms, utc_now
from examprep.utils.logger import logger

Scorer = Callable[[Quiz, Dict[str, str]], Tuple[int, int]]


def score_submission(quiz: Quiz, answers: Dict[str, str]) -> Tuple[int, int]:
    """
    Score answers against the quiz's answer key.

    A question earns credit when the chosen option equals the correct
    answer, or unconditionally when it carries a grace mark. Unanswered
    questions count toward the total only.
    """
    score = 0
    for question in quiz.selected_questions:
        answer = answers.get(question.id)
        if question.grace_mark or (answer is not None and answer == question.correct_answer):
            score += 1
    return score, len(quiz.selected_questions)


@dataclass
class SubmissionOutcome:
    score: int
    total: int
    cached: bool = False
    result: Dict[str, Any] = field(default_factory=dict)

    @property
    def message(self) -> str:
        return ERROR_MESSAGES["ALREADY_PROCESSED"] if self.cached else ERROR_MESSAGES["SUBMITTED"]


class SubmissionService:
    """Finalizes quiz attempts"""

    def __init__(
        self,
        store: DocumentStore,
        access: AccessService,
        analytics: Optional[AnalyticsUpdater] = None,
        scorer: Scorer = score_submission
    ):
        self.store = store
        self.access = access
        self.analytics = analytics
        self.scorer = scorer
        self._background: Set[asyncio.Task] = set()

    @staticmethod
    def _replay(record: Dict[str, Any]) -> SubmissionOutcome:
        stored = SubmissionRecord.from_document(record)
        result = Result.model_validate(stored.model_dump(exclude={"user_id", "processed_at"}))
        return SubmissionOutcome(
            score=stored.score,
            total=stored.total,
            cached=True,
            result=result.to_document()
        )

    async def submit(
        self,
        quiz_id: str,
        user_id: str,
        answers: Optional[Dict[str, str]],
        flags: Optional[Dict[str, bool]] = None,
        time_logs: Optional[Dict[str, float]] = None,
        attempt_number: int = 1,
        timestamp: Optional[int] = None
    ) -> SubmissionOutcome:
        """
        Submit a quiz attempt.

        The same (user, quiz, timestamp) always yields the first stored
        result without rescoring.

        Raises:
            InvalidRequestError: missing quiz id, user id or answers
            NotFoundError: unknown quiz
            ForbiddenError: series/paid quiz without an active enrollment
            ConflictError: this attempt was already submitted under another key
            InternalError: the transaction failed; nothing was written
        """
        if not quiz_id or not user_id or answers is None:
            raise InvalidRequestError(
                ERROR_MESSAGES["MISSING_FIELDS"],
                details={"required": ["quizId", "userId", "answers"]}
            )

        timestamp = timestamp if timestamp is not None else now_ms()
        key = generate_idempotency_key(user_id, quiz_id, timestamp)
        submission_path = document_path(SUBMISSIONS, key)

        existing = await self.store.get(submission_path)
        if existing is not None:
            logger.info("Returning stored submission", extra={"user_id": user_id, "quiz_id": quiz_id})
            return self._replay(existing)

        quiz_doc, user_doc = await asyncio.gather(
            self.store.get(quiz_path(quiz_id)),
            self.store.get(document_path(USERS, user_id))
        )
        if quiz_doc is None:
            raise NotFoundError("Quiz", quiz_id)
        quiz = Quiz.from_document(quiz_doc)
        quiz.id = quiz_id
        profile = UserProfile.from_document(user_doc or {})

        await self.access.ensure_submission_access(quiz, user_id, profile.role)

        score, total = self.scorer(quiz, answers)
        submitted_at = utc_now()
        result = Result(
            quiz_id=quiz_id,
            title=quiz.title,
            score=score,
            total=total,
            answers=answers,
            flags=flags or {},
            time_logs=time_logs or {},
            attempt_number=attempt_number,
            submitted_at=submitted_at
        )
        record = SubmissionRecord(
            **result.model_dump(),
            user_id=user_id,
            processed_at=submitted_at
        )

        async def finalize(tx: Transaction) -> Tuple[Dict[str, Any], bool]:
            prior = await tx.get(submission_path)
            if prior is not None:
                return prior, True

            attempt = Attempt.from_document(await tx.get(attempt_path(user_id, quiz_id)))
            if attempt is not None and attempt.completed and attempt.attempt_number >= attempt_number:
                raise ConflictError(
                    ERROR_MESSAGES["ALREADY_SUBMITTED"],
                    details={"quizId": quiz_id, "attemptNumber": attempt.attempt_number}
                )

            tx.set(result_path(user_id, quiz_id), result.to_document())
            tx.set(
                attempt_path(user_id, quiz_id),
                {
                    "completed": True,
                    "remainingTime": 0,
                    "submittedAt": format_timestamp(submitted_at),
                    "lastSaved": format_timestamp(submitted_at),
                    "attemptNumber": attempt_number,
                },
                merge=True
            )
            tx.set(submission_path, record.to_document())
            return record.to_document(), False

        try:
            stored, replayed = await self.store.run_transaction(finalize)
        except AppException:
            raise
        except Exception as e:
            logger.error(
                f"Submission transaction failed: {str(e)}",
                extra={"user_id": user_id, "quiz_id": quiz_id},
                exc_info=True
            )
            raise InternalError(ERROR_MESSAGES["SUBMISSION_FAILED"], details={"quizId": quiz_id}) from e

        if replayed:
            return self._replay(stored)

        logger.info(
            f"Quiz submitted: {score}/{total}",
            extra={"user_id": user_id, "quiz_id": quiz_id}
        )
        self._schedule_analytics(user_id, quiz, result)
        return SubmissionOutcome(score=score, total=total, result=result.to_document())

    def _schedule_analytics(self, user_id: str, quiz: Quiz, result: Result) -> None:
        if self.analytics is None:
            return
        task = asyncio.ensure_future(self.analytics.record_submission(user_id, quiz, result))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def wait_for_background(self) -> None:
        """Wait for scheduled analytics updates to finish"""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
