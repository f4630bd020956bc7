"""
Attempt Store - per-user, per-quiz progress records
"""

from typing import Any, Dict, Optional

from examprep.models.database import Attempt, AttemptProgress
from examprep.services.document_store import DocumentStore, Transaction, document_path
from examprep.utils.constants import USERS, QUIZ_ATTEMPTS, RESULTS, ERROR_MESSAGES
from examprep.utils.error_handler import ConflictError
from examprep.utils.helpers import format_timestamp, utc_now
from examprep.utils.logger import logger


def attempt_path(user_id: str, quiz_id: str) -> str:
    return document_path(USERS, user_id, QUIZ_ATTEMPTS, quiz_id)


def result_path(user_id: str, quiz_id: str) -> str:
    return document_path(USERS, user_id, QUIZ_ATTEMPTS, quiz_id, RESULTS, quiz_id)


class AttemptStore:
    """Reads and merge-writes Attempt records"""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def load(self, user_id: str, quiz_id: str) -> Optional[Attempt]:
        return Attempt.from_document(await self.store.get(attempt_path(user_id, quiz_id)))

    async def start(self, user_id: str, quiz_id: str, duration_seconds: int) -> Attempt:
        """
        Resume the open attempt, or create a new one.

        A new attempt after a completed one gets the next attempt number;
        callers check the attempt limit before starting.
        """
        path = attempt_path(user_id, quiz_id)

        async def start_or_resume(tx: Transaction) -> Attempt:
            existing = Attempt.from_document(await tx.get(path))
            if existing is not None and not existing.completed:
                return existing

            now = utc_now()
            attempt = Attempt(
                remaining_time=max(0, duration_seconds),
                attempt_number=existing.attempt_number + 1 if existing else 1,
                started_at=now,
                last_saved=now
            )
            tx.set(path, attempt.to_document())
            return attempt

        attempt = await self.store.run_transaction(start_or_resume)
        logger.info(
            f"Attempt {attempt.attempt_number} ready",
            extra={"user_id": user_id, "quiz_id": quiz_id}
        )
        return attempt

    async def save_progress(self, user_id: str, quiz_id: str, progress: AttemptProgress) -> Dict[str, Any]:
        """
        Merge-write the provided progress fields.

        Remaining time never increases while the attempt runs. A completed
        attempt rejects the write with ConflictError.
        """
        path = attempt_path(user_id, quiz_id)
        changes = progress.changes()

        async def merge(tx: Transaction) -> Dict[str, Any]:
            current = Attempt.from_document(await tx.get(path))
            if current is not None and current.completed:
                raise ConflictError(
                    ERROR_MESSAGES["ALREADY_SUBMITTED"],
                    details={"quizId": quiz_id, "attemptNumber": current.attempt_number}
                )

            update = dict(changes)
            if current is not None and "remainingTime" in update:
                update["remainingTime"] = min(current.remaining_time, update["remainingTime"])
            update["lastSaved"] = format_timestamp(utc_now())
            tx.set(path, update, merge=True)
            return update

        return await self.store.run_transaction(merge)
