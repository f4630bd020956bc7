"""
Pydantic schemas for request/response validation
"""

from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Optional, List, Dict, Any

from examprep.models.database import AttemptProgress
from examprep.utils.constants import SourceType, TutorFeedback

# Request bodies arrive in camelCase; snake_case is accepted as well


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore"
    )


# ============================================
# Quiz Schemas
# ============================================

class ValidateQuizRequest(ApiModel):
    """Schema for opening (or previewing) a quiz"""
    quiz_id: str = Field(..., min_length=1, max_length=200)
    user_id: str = Field(..., min_length=1, max_length=200)
    user_role: Optional[str] = None


class QuizSessionResponse(ApiModel):
    success: bool = True
    preview: bool = False
    attempt: Optional[Dict[str, Any]] = None


class AutosaveRequest(ApiModel):
    """Partial progress; omitted fields are left untouched"""
    quiz_id: str = Field(..., min_length=1, max_length=200)
    user_id: str = Field(..., min_length=1, max_length=200)
    answers: Optional[Dict[str, str]] = None
    flags: Optional[Dict[str, bool]] = None
    current_index: Optional[int] = Field(default=None, ge=0)
    remaining_time: Optional[int] = Field(default=None, ge=0)

    def progress(self) -> AttemptProgress:
        return AttemptProgress.model_validate(
            self.model_dump(exclude={"quiz_id", "user_id"}, exclude_unset=True)
        )


class SubmitQuizRequest(ApiModel):
    """Schema for final submission - the score is never taken from the client"""
    quiz_id: str = Field(..., min_length=1, max_length=200)
    user_id: str = Field(..., min_length=1, max_length=200)
    answers: Dict[str, str] = Field(...)
    flags: Dict[str, bool] = Field(default_factory=dict)
    time_logs: Dict[str, float] = Field(default_factory=dict)
    attempt_number: int = Field(default=1, ge=1)
    timestamp: Optional[int] = Field(default=None, ge=0)


class SubmitQuizResponse(ApiModel):
    success: bool = True
    score: int
    total: int
    message: str
    cached: Optional[bool] = None
    result: Optional[Dict[str, Any]] = None


# ============================================
# Tutor Schemas
# ============================================

class ChatTurn(ApiModel):
    role: str = Field(..., pattern=r"^(user|assistant)$")
    content: str = Field(default="", max_length=8000)


class TutorRequest(ApiModel):
    message: str = Field(..., min_length=1, max_length=4000)
    history: List[ChatTurn] = Field(default_factory=list)
    user_id: str = "anonymous"
    user_name: str = "Student"
    user_role: str = "student"
    stream_status: bool = True


class TutorFeedbackRequest(ApiModel):
    log_id: str = Field(..., min_length=1, max_length=200)
    feedback: TutorFeedback
    notes: Optional[str] = Field(default=None, max_length=1000)


class TutorAnalyticsResponse(ApiModel):
    """Aggregate report over recent tutor logs"""
    days: int
    total_queries: int = 0
    cached_responses: int = 0
    cache_hit_rate: float = 0.0
    average_response_time_ms: int = 0
    by_subject: Dict[str, int] = Field(default_factory=dict)
    by_intent: Dict[str, int] = Field(default_factory=dict)
    confidence_distribution: Dict[str, int] = Field(default_factory=dict)
    top_queries: List[Dict[str, Any]] = Field(default_factory=list)
    feedback: Dict[str, int] = Field(default_factory=dict)
    queries_per_day: Dict[str, int] = Field(default_factory=dict)


# ============================================
# Knowledge Base Schemas
# ============================================

class KnowledgePageRequest(ApiModel):
    """Raw textbook or syllabus page to analyze and index"""
    page_text: str = Field(..., min_length=1, max_length=50000)
    source_type: SourceType = SourceType.BOOK
    subject: Optional[str] = Field(default=None, max_length=100)
    book_name: Optional[str] = Field(default=None, max_length=200)
    page: Optional[str] = Field(default=None, max_length=20)


class KnowledgePageResponse(ApiModel):
    success: bool = True
    id: str
    chapter: Optional[str] = None
    page: Optional[str] = None
    has_visual_description: bool = False


# ============================================
# Support Schemas
# ============================================

class ChatSupportRequest(ApiModel):
    message: str = Field(..., min_length=1, max_length=4000)
    history: List[ChatTurn] = Field(default_factory=list)


class ChatSupportResponse(ApiModel):
    response: str


# ============================================
# Generic Response Schemas
# ============================================

class SuccessResponse(BaseModel):
    """Generic success response"""
    model_config = ConfigDict(extra="forbid")

    success: bool = True
    message: str
    data: Optional[Dict[str, Any]] = None


class ErrorDetail(BaseModel):
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
    request_id: Optional[str] = None


class ErrorResponse(BaseModel):
    """Error envelope rendered by the exception handlers"""
    model_config = ConfigDict(extra="forbid")

    success: bool = False
    error: ErrorDetail
