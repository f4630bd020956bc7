"""
Conversation logging for the AI tutor, tutor feedback, and the admin report
"""

from collections import Counter
from datetime import timedelta
from typing import Any, Dict, List, Optional

from examprep.models.database import ConversationLog, SourceCitation
from examprep.services.document_store import DocumentNotFound, DocumentStore, document_path
from examprep.utils.constants import AI_TUTOR_LOGS, Confidence, QueryIntent, TutorFeedback
from examprep.utils.error_handler import NotFoundError
from examprep.utils.helpers import format_timestamp, scrub_pii, utc_now
from examprep.utils.logger import logger

ANALYTICS_LOG_LIMIT = 5000


class ConversationLogService:
    """Writes PII-scrubbed tutor logs and reads them back for reporting"""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def log(
        self,
        query: str,
        response: str,
        sources: Optional[List[SourceCitation]] = None,
        subject: Optional[str] = None,
        intent: QueryIntent = QueryIntent.GENERAL,
        confidence: Optional[Confidence] = None,
        response_time_ms: int = 0,
        was_from_cache: bool = False,
        user_id: Optional[str] = None,
        user_name: Optional[str] = None,
        user_role: Optional[str] = None
    ) -> Optional[str]:
        """
        Persist one exchange; returns the log id, or None if the write failed.

        Emails, phone numbers and ID numbers are scrubbed from the query and
        the response before anything is stored.
        """
        entry = ConversationLog(
            query=scrub_pii(query) or "",
            response=scrub_pii(response) or "",
            sources=sources or [],
            subject=subject,
            intent=getattr(intent, "value", intent),
            confidence=getattr(confidence, "value", confidence),
            response_time_ms=response_time_ms,
            was_from_cache=was_from_cache,
            user_id=user_id or "anonymous",
            user_name=user_name or "Student",
            user_role=user_role or "student",
            timestamp=utc_now()
        )
        try:
            return await self.store.add(AI_TUTOR_LOGS, entry.to_document())
        except Exception as e:
            logger.error(f"Failed to log conversation: {str(e)}", extra={"user_id": entry.user_id})
            return None

    async def record_feedback(self, log_id: str, feedback: TutorFeedback, notes: Optional[str] = None) -> None:
        """Attach feedback to an existing log; the logged exchange itself is never changed"""
        try:
            await self.store.update(
                document_path(AI_TUTOR_LOGS, log_id),
                {
                    "feedback": TutorFeedback(feedback).value,
                    "feedbackNotes": scrub_pii(notes) if notes else None,
                    "feedbackTimestamp": format_timestamp(utc_now()),
                }
            )
        except DocumentNotFound:
            raise NotFoundError("Conversation log", log_id) from None

    async def summarize(self, days: int = 7) -> Dict[str, Any]:
        """Aggregate the logs of the last `days` days"""
        since = utc_now() - timedelta(days=days)
        snapshots = await self.store.query(
            AI_TUTOR_LOGS,
            where=[("timestamp", ">=", since)],
            order_by="timestamp",
            descending=True,
            limit=ANALYTICS_LOG_LIMIT
        )
        logs = [ConversationLog.from_document(s.data) for s in snapshots]

        report: Dict[str, Any] = {
            "days": days,
            "total_queries": len(logs),
            "confidence_distribution": {c.value: 0 for c in Confidence},
            "feedback": {f.value: 0 for f in TutorFeedback},
        }
        if not logs:
            return report

        cached = sum(1 for entry in logs if entry.was_from_cache)
        query_frequency = Counter(entry.query.lower().strip()[:50] or "unknown" for entry in logs)

        for entry in logs:
            if entry.confidence in report["confidence_distribution"]:
                report["confidence_distribution"][entry.confidence] += 1
            if entry.feedback in report["feedback"]:
                report["feedback"][entry.feedback] += 1

        per_day = Counter(entry.timestamp.date().isoformat() for entry in logs if entry.timestamp)

        report.update({
            "cached_responses": cached,
            "cache_hit_rate": round(cached / len(logs), 3),
            "average_response_time_ms": round(sum(entry.response_time_ms for entry in logs) / len(logs)),
            "by_subject": dict(Counter(entry.subject or "general" for entry in logs)),
            "by_intent": dict(Counter(entry.intent or "general" for entry in logs)),
            "top_queries": [
                {"query": query, "count": count}
                for query, count in query_frequency.most_common(10)
            ],
            "queries_per_day": dict(sorted(per_day.items())),
        })
        return report
