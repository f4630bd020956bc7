"""
Service wiring

Each getter builds its service once on first use. Route handlers receive
services through Depends(), so tests swap them with
app.dependency_overrides.
"""

from functools import lru_cache
from typing import List, Optional

from openai import AsyncOpenAI

from examprep.config import settings
from examprep.services.access_service import AccessService
from examprep.services.analytics_service import AnalyticsUpdater
from examprep.services.attempt_store import AttemptStore
from examprep.services.conversation_log import ConversationLogService
from examprep.services.document_store import DocumentStore, MemoryDocumentStore
from examprep.services.embedding_service import EmbeddingService, create_openai_client
from examprep.services.knowledge_base import KnowledgeBaseService
from examprep.services.submission_service import SubmissionService
from examprep.services.supabase_service import SupabaseDocumentStore, SupabaseService
from examprep.services.support_service import SiteContextService, SupportChatService
from examprep.services.tutor_service import TutorPipeline
from examprep.utils.cache import Cache
from examprep.utils.rate_limit import RateLimiter
from examprep.utils.logger import logger


@lru_cache
def get_supabase_service() -> SupabaseService:
    return SupabaseService()


@lru_cache
def get_document_store() -> DocumentStore:
    if settings.DOCUMENT_STORE_BACKEND == "memory":
        logger.warning("Using the in-memory document store; data is lost on restart")
        return MemoryDocumentStore(max_attempts=settings.TRANSACTION_MAX_ATTEMPTS)
    return SupabaseDocumentStore(
        get_supabase_service(),
        table=settings.DOCUMENTS_TABLE,
        max_attempts=settings.TRANSACTION_MAX_ATTEMPTS
    )


@lru_cache
def get_openai_client() -> Optional[AsyncOpenAI]:
    return create_openai_client()


# ============================================
# Quiz
# ============================================

@lru_cache
def get_attempt_store() -> AttemptStore:
    return AttemptStore(get_document_store())


@lru_cache
def get_access_service() -> AccessService:
    return AccessService(get_document_store(), get_attempt_store())


@lru_cache
def get_analytics_updater() -> AnalyticsUpdater:
    return AnalyticsUpdater(get_document_store())


@lru_cache
def get_submission_service() -> SubmissionService:
    return SubmissionService(get_document_store(), get_access_service(), get_analytics_updater())


@lru_cache
def get_autosave_limiter() -> RateLimiter:
    return RateLimiter()


# ============================================
# AI Tutor
# ============================================

@lru_cache
def get_embedding_service() -> EmbeddingService:
    return EmbeddingService(
        get_openai_client(),
        cache=Cache(default_ttl=None, max_entries=settings.EMBEDDING_CACHE_MAX_ENTRIES)
    )


@lru_cache
def get_knowledge_base() -> KnowledgeBaseService:
    return KnowledgeBaseService(get_document_store(), get_embedding_service(), get_openai_client())


@lru_cache
def get_conversation_logs() -> ConversationLogService:
    return ConversationLogService(get_document_store())


@lru_cache
def get_tutor_pipeline() -> TutorPipeline:
    return TutorPipeline(
        get_openai_client(),
        get_embedding_service(),
        get_knowledge_base(),
        get_conversation_logs(),
        response_cache=Cache(
            default_ttl=settings.TUTOR_CACHE_TTL_SECONDS,
            max_entries=settings.TUTOR_CACHE_MAX_ENTRIES
        )
    )


# ============================================
# Support
# ============================================

@lru_cache
def get_site_context() -> SiteContextService:
    return SiteContextService()


@lru_cache
def get_support_chat() -> SupportChatService:
    return SupportChatService(get_openai_client(), get_site_context())


def managed_caches() -> List[Cache]:
    """Caches swept by the periodic cleanup task"""
    return [
        get_tutor_pipeline().cache,
        get_embedding_service().cache,
        get_site_context().cache,
    ]
