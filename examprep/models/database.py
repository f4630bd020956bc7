"""
Document models stored in the document store.

Documents use camelCase field names; attributes are snake_case. Every model
ignores unknown fields and fills defaults, so loosely shaped documents are
normalized once when they are read.
"""

from datetime import datetime, timezone
from typing import Optional, List, Dict, Any, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from examprep.utils.constants import AccessType, UserRole, UNCATEGORIZED_SUBJECT


class DocumentModel(BaseModel):
    """Base for every persisted document shape"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    @classmethod
    def from_document(cls, data: Optional[Dict[str, Any]]):
        """Validate a raw document; None stays None"""
        if data is None:
            return None
        return cls.model_validate(data)

    def to_document(self, **kwargs) -> Dict[str, Any]:
        """Serialize to a JSON-compatible document"""
        return self.model_dump(mode="json", by_alias=True, **kwargs)


def _subject_name(value: Any) -> Optional[str]:
    """Subjects arrive as plain names or as {"name": ...} objects"""
    if isinstance(value, dict):
        return value.get("name")
    return value


class QuizQuestion(DocumentModel):
    """Question snapshot embedded in a quiz"""
    id: str
    options: List[str] = Field(default_factory=list)
    correct_answer: Optional[str] = None
    grace_mark: bool = False
    subject: Optional[str] = None

    @field_validator("subject", mode="before")
    @classmethod
    def normalize_subject(cls, v):
        return _subject_name(v)


class Quiz(DocumentModel):
    """Authoritative quiz definition and answer key (read-only here)"""
    id: Optional[str] = None
    title: str = "Untitled Quiz"
    selected_questions: List[QuizQuestion] = Field(default_factory=list)
    access_type: AccessType = AccessType.PUBLIC
    series: List[str] = Field(default_factory=list)
    duration: int = 60  # minutes
    published: bool = True
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    max_attempts: int = Field(default=1, ge=1)
    created_by: Optional[str] = None
    subject: Optional[Union[str, List[str]]] = None

    @field_validator("subject", mode="before")
    @classmethod
    def normalize_subject(cls, v):
        if isinstance(v, list):
            return [_subject_name(item) for item in v if _subject_name(item)]
        return _subject_name(v)

    @field_validator("starts_at", "ends_at")
    @classmethod
    def assume_utc(cls, v):
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def is_series_restricted(self) -> bool:
        return self.access_type in (AccessType.SERIES, AccessType.PAID) and bool(self.series)


class Attempt(DocumentModel):
    """Per-user, per-quiz progress record"""
    answers: Dict[str, str] = Field(default_factory=dict)
    flags: Dict[str, bool] = Field(default_factory=dict)
    current_index: int = Field(default=0, ge=0)
    remaining_time: int = Field(default=0, ge=0)
    completed: bool = False
    attempt_number: int = Field(default=1, ge=1)
    started_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    last_saved: Optional[datetime] = None


class AttemptProgress(DocumentModel):
    """
    Partial progress update.

    Only fields that were explicitly provided are written, so a flags-only
    update leaves stored answers untouched.
    """
    answers: Optional[Dict[str, str]] = None
    flags: Optional[Dict[str, bool]] = None
    current_index: Optional[int] = Field(default=None, ge=0)
    remaining_time: Optional[int] = Field(default=None, ge=0)

    def changes(self) -> Dict[str, Any]:
        return self.to_document(exclude_unset=True, exclude_none=True)


class Result(DocumentModel):
    """Immutable scored result of one submission"""
    quiz_id: str
    title: str = "Untitled Quiz"
    score: int
    total: int
    answers: Dict[str, str] = Field(default_factory=dict)
    flags: Dict[str, bool] = Field(default_factory=dict)
    time_logs: Dict[str, float] = Field(default_factory=dict)
    attempt_number: int = 1
    submitted_at: Optional[datetime] = None


class SubmissionRecord(Result):
    """Idempotency record: the result plus when it was processed"""
    user_id: Optional[str] = None
    processed_at: Optional[datetime] = None


class Enrollment(DocumentModel):
    """Series enrollment"""
    student_id: str
    series_id: str
    status: str = "active"


class SubjectStats(DocumentModel):
    attempted: int = 0
    correct: int = 0
    wrong: int = 0
    accuracy: int = 0


class AggregateStats(DocumentModel):
    """Running per-user aggregates for one namespace"""
    total_quizzes: int = 0
    total_questions: int = 0
    total_correct: int = 0
    total_wrong: int = 0
    total_unattempted: int = 0
    total_score: int = 0
    overall_accuracy: int = 0
    last_quiz_date: Optional[datetime] = None
    subject_stats: Dict[str, SubjectStats] = Field(default_factory=dict)


class UserProfile(DocumentModel):
    """User document: profile fields plus aggregates"""
    role: UserRole = UserRole.STUDENT
    name: Optional[str] = None
    stats: Optional[AggregateStats] = None
    mock_stats: Optional[AggregateStats] = None

    @field_validator("role", mode="before")
    @classmethod
    def default_unknown_role(cls, v):
        if v not in {role.value for role in UserRole}:
            return UserRole.STUDENT
        return v


class QuestionPerformance(DocumentModel):
    """Per-question answer statistics"""
    total_attempts: int = 0
    correct_attempts: int = 0
    option_counts: Dict[str, int] = Field(default_factory=dict)
    total_time_spent: float = 0


class SourceCitation(DocumentModel):
    type: str
    book_name: Optional[str] = None
    chapter: Optional[str] = None
    page: Optional[Union[str, int]] = None


class KnowledgeMetadata(DocumentModel):
    type: str
    subject: Optional[str] = None
    book_name: Optional[str] = None
    chapter: Optional[str] = None
    page: Optional[Union[str, int]] = None


class KnowledgeChunk(DocumentModel):
    """Vector-indexed knowledge-base entry"""
    content: str
    metadata: KnowledgeMetadata
    visual_description: Optional[str] = None
    embedding: Optional[List[float]] = None


class ConversationLog(DocumentModel):
    """One AI tutor exchange"""
    query: str
    response: str
    sources: List[SourceCitation] = Field(default_factory=list)
    subject: Optional[str] = None
    intent: str = "general"
    confidence: Optional[str] = None
    response_time_ms: int = 0
    was_from_cache: bool = False
    user_id: str = "anonymous"
    user_name: str = "Student"
    user_role: str = UserRole.STUDENT.value
    timestamp: Optional[datetime] = None
    feedback: Optional[str] = None
    feedback_notes: Optional[str] = None
    feedback_timestamp: Optional[datetime] = None


def subject_of(question: QuizQuestion) -> str:
    """Subject tag used for per-subject aggregation"""
    return question.subject or UNCATEGORIZED_SUBJECT
