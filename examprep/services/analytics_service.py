"""
Post-submission analytics: per-user aggregates and per-question statistics

Runs after a submission has committed. Every failure is logged and
swallowed; a missed update never affects the submission itself.
"""

from datetime import datetime
from typing import Dict, Optional
import asyncio

from examprep.models.database import (
    AggregateStats,
    QuestionPerformance,
    Quiz,
    Result,
    SubjectStats,
    UserProfile,
    subject_of,
)
from examprep.services.document_store import DocumentStore, Transaction, document_path
from examprep.utils.constants import QUESTIONS, USERS, StatsNamespace
from examprep.utils.helpers import format_score_percentage
from examprep.utils.logger import logger


def stats_namespace(quiz: Quiz, user_id: str) -> StatsNamespace:
    """Self-authored quizzes count as mock tests"""
    if quiz.created_by and quiz.created_by == user_id:
        return StatsNamespace.MOCK
    return StatsNamespace.ADMIN


def _answered(answer: Optional[str]) -> bool:
    return answer is not None and answer != ""


def apply_submission(
    stats: AggregateStats,
    quiz: Quiz,
    answers: Dict[str, str],
    score: int,
    total: int,
    submitted_at: Optional[datetime] = None
) -> AggregateStats:
    """Return stats with one more scored quiz folded in"""
    updated = stats.model_copy(deep=True)
    wrong = 0
    unattempted = 0

    for question in quiz.selected_questions:
        answer = answers.get(question.id)
        credited = question.grace_mark or (_answered(answer) and answer == question.correct_answer)
        subject = updated.subject_stats.setdefault(subject_of(question), SubjectStats())

        if _answered(answer):
            subject.attempted += 1
            if credited:
                subject.correct += 1
            else:
                subject.wrong += 1
                wrong += 1
        elif not credited:
            unattempted += 1
        subject.accuracy = format_score_percentage(subject.correct, subject.attempted)

    updated.total_quizzes += 1
    updated.total_questions += total
    updated.total_correct += score
    updated.total_wrong += wrong
    updated.total_unattempted += unattempted
    updated.total_score += score
    updated.overall_accuracy = format_score_percentage(updated.total_correct, updated.total_questions)
    updated.last_quiz_date = submitted_at or updated.last_quiz_date
    return updated


class AnalyticsUpdater:
    """Read-modify-write updates of user aggregates and question counters"""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def record_submission(self, user_id: str, quiz: Quiz, result: Result) -> None:
        """Best-effort entry point scheduled after a submission commits"""
        try:
            await self.update_user_stats(user_id, quiz, result)
        except Exception as e:
            logger.error(
                f"User stats update failed: {str(e)}",
                extra={"user_id": user_id, "quiz_id": quiz.id}
            )
        try:
            await self.record_question_performance(quiz, result)
        except Exception as e:
            logger.error(
                f"Question performance update failed: {str(e)}",
                extra={"user_id": user_id, "quiz_id": quiz.id}
            )

    async def update_user_stats(self, user_id: str, quiz: Quiz, result: Result) -> Optional[AggregateStats]:
        namespace = stats_namespace(quiz, user_id)
        path = document_path(USERS, user_id)

        async def fold(tx: Transaction) -> Optional[AggregateStats]:
            data = await tx.get(path)
            if data is None:
                return None
            profile = UserProfile.from_document(data)
            current = (profile.mock_stats if namespace == StatsNamespace.MOCK else profile.stats) or AggregateStats()
            updated = apply_submission(
                current, quiz, result.answers, result.score, result.total, result.submitted_at
            )
            tx.update(path, {namespace.value: updated.to_document()})
            return updated

        updated = await self.store.run_transaction(fold)
        if updated is None:
            logger.warning("User document missing, stats not updated", extra={"user_id": user_id})
        else:
            logger.info(
                f"Updated {namespace.value}: {updated.total_quizzes} quizzes, {updated.overall_accuracy}% accuracy",
                extra={"user_id": user_id, "quiz_id": quiz.id}
            )
        return updated

    async def record_question_performance(self, quiz: Quiz, result: Result) -> None:
        """Bump answer counters for every answered question"""

        async def bump(question_id: str, answer: str, correct: bool, time_spent: float) -> None:
            path = document_path(QUESTIONS, question_id)

            async def apply(tx: Transaction) -> None:
                data = await tx.get(path) or {}
                performance = QuestionPerformance.from_document(data)
                performance.total_attempts += 1
                if correct:
                    performance.correct_attempts += 1
                performance.option_counts[answer] = performance.option_counts.get(answer, 0) + 1
                performance.total_time_spent += time_spent
                tx.set(path, performance.to_document(), merge=True)

            await self.store.run_transaction(apply)

        updates = []
        for question in quiz.selected_questions:
            answer = result.answers.get(question.id)
            if not _answered(answer):
                continue
            correct = question.grace_mark or answer == question.correct_answer
            updates.append(bump(question.id, answer, correct, float(result.time_logs.get(question.id, 0))))

        outcomes = await asyncio.gather(*updates, return_exceptions=True)
        failures = [o for o in outcomes if isinstance(o, Exception)]
        if failures:
            logger.warning(f"{len(failures)} question performance updates failed: {failures[0]}")
