"""
AI Tutor pipeline

classify intent -> refuse practice requests -> replay cached answers ->
detect subject -> embed -> retrieve book and syllabus context in parallel ->
stream the generated answer -> cache and log it.

The response body is the answer text interleaved with status lines of the
form `data: {"status": ...}` followed by a blank line.
"""

from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence
import json
import time

from openai import AsyncOpenAI

from examprep.config import settings
from examprep.models.database import SourceCitation
from examprep.services.conversation_log import ConversationLogService
from examprep.services.embedding_service import EmbeddingService
from examprep.services.knowledge_base import KnowledgeBaseService, RetrievedContext
from examprep.services.query_analysis import (
    calculate_confidence,
    classify_query_intent,
    detect_subject,
    get_format_instructions,
)
from examprep.utils.cache import Cache
from examprep.utils.constants import (
    BLOCKED_PRACTICE_LOG,
    PRACTICE_REFUSAL_MESSAGE,
    TUTOR_PROMPT,
    TUTOR_SYSTEM_PROMPT,
    Confidence,
    QueryIntent,
)
from examprep.utils.error_handler import InternalError
from examprep.utils.helpers import generate_query_cache_key
from examprep.utils.logger import logger


def status_line(status: str, **fields: Any) -> str:
    return f"data: {json.dumps({'status': status, **fields})}\n\n"


@dataclass
class TutorReply:
    """Response metadata known before streaming, plus the body iterator"""
    intent: QueryIntent
    subject: Optional[str]
    confidence: Confidence
    body: AsyncIterator[str]
    from_cache: bool = False

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "X-Confidence": self.confidence.value,
            "X-Subject": self.subject or "general",
            "X-Intent": self.intent.value,
        }


@dataclass
class _Requester:
    user_id: Optional[str]
    user_name: Optional[str]
    user_role: Optional[str]


class TutorPipeline:
    """Retrieval-augmented, cached tutor answers"""

    def __init__(
        self,
        client: Optional[AsyncOpenAI],
        embeddings: EmbeddingService,
        knowledge: KnowledgeBaseService,
        logs: ConversationLogService,
        response_cache: Optional[Cache] = None,
        model: Optional[str] = None,
        history_limit: Optional[int] = None
    ):
        self.client = client
        self.embeddings = embeddings
        self.knowledge = knowledge
        self.logs = logs
        self.cache = response_cache if response_cache is not None else Cache(
            default_ttl=settings.TUTOR_CACHE_TTL_SECONDS,
            max_entries=settings.TUTOR_CACHE_MAX_ENTRIES
        )
        self.model = model or settings.OPENAI_MODEL
        self.history_limit = history_limit if history_limit is not None else settings.TUTOR_HISTORY_LIMIT

    async def respond(
        self,
        message: str,
        history: Sequence[Dict[str, str]] = (),
        user_id: Optional[str] = None,
        user_name: Optional[str] = None,
        user_role: Optional[str] = None,
        stream_status: bool = True
    ) -> TutorReply:
        started = time.monotonic()
        requester = _Requester(user_id, user_name, user_role)
        intent = classify_query_intent(message)

        if intent == QueryIntent.PRACTICE:
            logger.info("Practice request refused", extra={"user_id": user_id, "intent": intent.value})
            return TutorReply(intent, None, Confidence.LOW, self._refuse(message, requester, started))

        cache_key = generate_query_cache_key(message)
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug("Tutor cache hit", extra={"user_id": user_id, "intent": intent.value})
            return TutorReply(
                intent,
                cached["subject"],
                Confidence(cached["confidence"]),
                self._replay(message, cached, intent, requester, started),
                from_cache=True
            )

        if not self.client:
            raise InternalError("AI tutor is not configured")

        subject = detect_subject(message)
        vector = await self.embeddings.generate_embedding(message)
        context = await self.knowledge.search(vector, subject)
        confidence = calculate_confidence(context.book, context.syllabus)

        stream = await self.client.chat.completions.create(
            model=self.model,
            messages=self._build_messages(message, history, subject, intent, context, confidence.message),
            temperature=0.7,
            stream=True
        )
        body = self._generate(
            stream, message, cache_key, subject, intent, confidence.score,
            context.sources, requester, started, stream_status
        )
        return TutorReply(intent, subject, confidence.score, body)

    def _build_messages(
        self,
        message: str,
        history: Sequence[Dict[str, str]],
        subject: Optional[str],
        intent: QueryIntent,
        context: RetrievedContext,
        confidence_message: str
    ) -> List[Dict[str, str]]:
        messages = [{
            "role": "system",
            "content": TUTOR_SYSTEM_PROMPT.format(
                platform=settings.PLATFORM_NAME,
                support_phone=settings.SUPPORT_PHONE
            )
        }]
        recent = list(history)[-self.history_limit:] if self.history_limit else []
        messages.extend({"role": turn["role"], "content": turn["content"]} for turn in recent)
        messages.append({
            "role": "user",
            "content": TUTOR_PROMPT.format(
                query=message,
                subject_line=f"Subject: {subject}" if subject else "",
                book_context=context.book_context(),
                syllabus_context=context.syllabus_context(),
                format_instructions=get_format_instructions(intent),
                confidence_message=confidence_message
            )
        })
        return messages

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.monotonic() - started) * 1000)

    async def _refuse(self, message: str, requester: _Requester, started: float) -> AsyncIterator[str]:
        yield PRACTICE_REFUSAL_MESSAGE
        await self.logs.log(
            query=message,
            response=BLOCKED_PRACTICE_LOG,
            intent=QueryIntent.PRACTICE,
            response_time_ms=self._elapsed_ms(started),
            user_id=requester.user_id,
            user_name=requester.user_name,
            user_role=requester.user_role
        )

    async def _replay(
        self,
        message: str,
        cached: Dict[str, Any],
        intent: QueryIntent,
        requester: _Requester,
        started: float
    ) -> AsyncIterator[str]:
        yield cached["response"]
        log_id = await self.logs.log(
            query=message,
            response=cached["response"],
            sources=[SourceCitation.model_validate(s) for s in cached["sources"]],
            subject=cached["subject"],
            intent=intent,
            confidence=Confidence(cached["confidence"]),
            response_time_ms=self._elapsed_ms(started),
            was_from_cache=True,
            user_id=requester.user_id,
            user_name=requester.user_name,
            user_role=requester.user_role
        )
        if log_id:
            yield "\n\n" + status_line("log_id", id=log_id)

    async def _generate(
        self,
        stream,
        message: str,
        cache_key: str,
        subject: Optional[str],
        intent: QueryIntent,
        confidence: Confidence,
        sources: List[SourceCitation],
        requester: _Requester,
        started: float,
        stream_status: bool
    ) -> AsyncIterator[str]:
        if stream_status:
            yield status_line("found", message=f"Found {len(sources)} relevant sources...", count=len(sources))
            yield status_line("writing", message="Writing response...")

        parts: List[str] = []
        try:
            async for chunk in stream:
                text = chunk.choices[0].delta.content if chunk.choices else None
                if text:
                    parts.append(text)
                    yield text
        except Exception as e:
            logger.error(f"Tutor stream failed: {str(e)}", extra={"user_id": requester.user_id})
            yield "\n\n" + status_line("error", message="The answer could not be completed. Please try again.")
            return

        response = "".join(parts)
        self.cache.set(cache_key, {
            "response": response,
            "sources": [s.to_document() for s in sources],
            "subject": subject,
            "confidence": confidence.value,
        })

        log_id = await self.logs.log(
            query=message,
            response=response,
            sources=sources,
            subject=subject,
            intent=intent,
            confidence=confidence,
            response_time_ms=self._elapsed_ms(started),
            user_id=requester.user_id,
            user_name=requester.user_name,
            user_role=requester.user_role
        )
        if log_id:
            yield "\n\n" + status_line("log_id", id=log_id)
