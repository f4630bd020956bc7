"""
API routes for the AI tutor, its feedback, analytics and knowledge base
"""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from examprep.config import settings
from examprep.dependencies import get_conversation_logs, get_knowledge_base, get_tutor_pipeline
from examprep.models.schemas import (
    KnowledgePageRequest,
    KnowledgePageResponse,
    SuccessResponse,
    TutorAnalyticsResponse,
    TutorFeedbackRequest,
    TutorRequest,
)
from examprep.services.conversation_log import ConversationLogService
from examprep.services.knowledge_base import KnowledgeBaseService
from examprep.services.tutor_service import TutorPipeline
from examprep.utils.auth import get_current_admin_user
from examprep.utils.error_handler import InternalError
from examprep.utils.logger import logger

router = APIRouter(prefix=settings.API_PREFIX, tags=["AI Tutor"])


@router.post("/tutor")
async def ask_tutor(
    payload: TutorRequest,
    pipeline: TutorPipeline = Depends(get_tutor_pipeline)
):
    """
    Stream a tutor answer.

    Headers X-Confidence, X-Subject and X-Intent describe the answer; the
    body carries the text plus `data: {"status": ...}` lines.
    """
    reply = await pipeline.respond(
        payload.message,
        history=[turn.model_dump() for turn in payload.history],
        user_id=payload.user_id,
        user_name=payload.user_name,
        user_role=payload.user_role,
        stream_status=payload.stream_status
    )
    return StreamingResponse(reply.body, media_type="text/event-stream", headers=reply.headers)


@router.post("/tutor/feedback", response_model=SuccessResponse)
async def tutor_feedback(
    payload: TutorFeedbackRequest,
    logs: ConversationLogService = Depends(get_conversation_logs)
):
    """Mark a logged tutor answer helpful or not helpful"""
    await logs.record_feedback(payload.log_id, payload.feedback, payload.notes)
    return SuccessResponse(message="Feedback recorded")


@router.get("/admin/tutor/analytics", response_model=TutorAnalyticsResponse)
async def tutor_analytics(
    days: int = Query(default=7, ge=1, le=90),
    logs: ConversationLogService = Depends(get_conversation_logs),
    admin: dict = Depends(get_current_admin_user)
):
    """Usage report over the last `days` days of tutor logs"""
    return TutorAnalyticsResponse(**await logs.summarize(days))


@router.post("/admin/knowledge-base/pages", response_model=KnowledgePageResponse)
async def add_knowledge_page(
    payload: KnowledgePageRequest,
    knowledge: KnowledgeBaseService = Depends(get_knowledge_base),
    admin: dict = Depends(get_current_admin_user)
):
    """Analyze a textbook or syllabus page, embed it and add it to the knowledge base"""
    try:
        stored = await knowledge.ingest_page(
            payload.page_text,
            source_type=payload.source_type,
            subject=payload.subject,
            book_name=payload.book_name,
            page=payload.page
        )
    except ValueError as e:
        logger.error(f"Knowledge page rejected: {str(e)}", extra={"user_id": admin.get("id")})
        raise InternalError(str(e)) from e
    except RuntimeError as e:
        raise InternalError(str(e)) from e

    return KnowledgePageResponse(**stored)
