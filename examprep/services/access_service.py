"""
Quiz access rules: series enrollment, publication, time window and attempt limits
"""

from dataclasses import dataclass
from typing import List, Optional, Set

from examprep.models.database import Attempt, Enrollment, Quiz
from examprep.services.attempt_store import AttemptStore
from examprep.services.document_store import DocumentStore, document_path
from examprep.utils.constants import ENROLLMENTS, QUIZZES, PRIVILEGED_ROLES, ERROR_MESSAGES
from examprep.utils.error_handler import ForbiddenError, InvalidRequestError, NotFoundError
from examprep.utils.helpers import utc_now
from examprep.utils.logger import logger


def quiz_path(quiz_id: str) -> str:
    return document_path(QUIZZES, quiz_id)


def is_privileged(role: Optional[str]) -> bool:
    return bool(role) and str(getattr(role, "value", role)) in PRIVILEGED_ROLES


@dataclass
class QuizSession:
    """Outcome of opening a quiz"""
    quiz: Quiz
    attempt: Attempt
    preview: bool = False


class AccessService:
    """Enrollment lookups and the checks built on them"""

    def __init__(self, store: DocumentStore, attempt_store: AttemptStore):
        self.store = store
        self.attempt_store = attempt_store

    async def get_quiz(self, quiz_id: str) -> Quiz:
        data = await self.store.get(quiz_path(quiz_id))
        if data is None:
            raise NotFoundError("Quiz", quiz_id)
        quiz = Quiz.from_document(data)
        quiz.id = quiz_id
        return quiz

    async def active_series(self, user_id: str) -> Set[str]:
        snapshots = await self.store.query(
            ENROLLMENTS,
            where=[("studentId", "==", user_id), ("status", "==", "active")]
        )
        return {Enrollment.from_document(s.data).series_id for s in snapshots}

    async def is_enrolled(self, quiz: Quiz, user_id: str) -> bool:
        if not quiz.is_series_restricted:
            return True
        return bool(await self.active_series(user_id) & set(quiz.series))

    async def ensure_submission_access(self, quiz: Quiz, user_id: str, role: Optional[str] = None) -> None:
        """
        Re-check enrollment at submission time.

        Enrollment lookups that fail propagate, so access is never granted
        on an error.
        """
        if is_privileged(role):
            return
        if not await self.is_enrolled(quiz, user_id):
            logger.warning(
                "Submission rejected: no active enrollment",
                extra={"user_id": user_id, "quiz_id": quiz.id}
            )
            raise ForbiddenError(
                ERROR_MESSAGES["NOT_ENROLLED"],
                details={"quizId": quiz.id, "series": quiz.series}
            )

    async def validate_quiz_start(self, quiz_id: str, user_id: str, role: Optional[str] = None) -> QuizSession:
        """
        Open a quiz for a user.

        Admins and teachers get a preview that is never persisted. Students
        must pass every check; all violations are reported together.
        """
        if not quiz_id or not user_id:
            raise InvalidRequestError(ERROR_MESSAGES["MISSING_FIELDS"])

        quiz = await self.get_quiz(quiz_id)
        duration_seconds = quiz.duration * 60

        if is_privileged(role):
            return QuizSession(quiz=quiz, attempt=Attempt(remaining_time=duration_seconds), preview=True)

        errors: List[str] = []
        now = utc_now()
        if not quiz.published:
            errors.append(ERROR_MESSAGES["NOT_PUBLISHED"])
        if quiz.starts_at and now < quiz.starts_at:
            errors.append(ERROR_MESSAGES["NOT_STARTED"])
        if quiz.ends_at and now > quiz.ends_at:
            errors.append(ERROR_MESSAGES["ENDED"])
        if not await self.is_enrolled(quiz, user_id):
            errors.append(ERROR_MESSAGES["NOT_ENROLLED"])

        existing = await self.attempt_store.load(user_id, quiz_id)
        if existing and existing.completed and existing.attempt_number >= quiz.max_attempts:
            errors.append(ERROR_MESSAGES["MAX_ATTEMPTS"])

        if errors:
            logger.info(
                f"Quiz start rejected: {'; '.join(errors)}",
                extra={"user_id": user_id, "quiz_id": quiz_id}
            )
            raise ForbiddenError(errors[0], details={"errors": errors})

        attempt = await self.attempt_store.start(user_id, quiz_id, duration_seconds)
        return QuizSession(quiz=quiz, attempt=attempt)
