"""
Models package - Document models and API schemas
"""

from examprep.models.database import (
    Quiz,
    QuizQuestion,
    Attempt,
    AttemptProgress,
    Result,
    SubmissionRecord,
    Enrollment,
    AggregateStats,
    SubjectStats,
    UserProfile,
    QuestionPerformance,
    KnowledgeChunk,
    ConversationLog
)

from examprep.models.schemas import (
    ValidateQuizRequest,
    QuizSessionResponse,
    AutosaveRequest,
    SubmitQuizRequest,
    SubmitQuizResponse,
    TutorRequest,
    TutorFeedbackRequest,
    TutorAnalyticsResponse,
    KnowledgePageRequest,
    KnowledgePageResponse,
    ChatSupportRequest,
    ChatSupportResponse,
    SuccessResponse,
    ErrorResponse
)

__all__ = [
    # Document Models
    "Quiz",
    "QuizQuestion",
    "Attempt",
    "AttemptProgress",
    "Result",
    "SubmissionRecord",
    "Enrollment",
    "AggregateStats",
    "SubjectStats",
    "UserProfile",
    "QuestionPerformance",
    "KnowledgeChunk",
    "ConversationLog",
    # Schemas
    "ValidateQuizRequest",
    "QuizSessionResponse",
    "AutosaveRequest",
    "SubmitQuizRequest",
    "SubmitQuizResponse",
    "TutorRequest",
    "TutorFeedbackRequest",
    "TutorAnalyticsResponse",
    "KnowledgePageRequest",
    "KnowledgePageResponse",
    "ChatSupportRequest",
    "ChatSupportResponse",
    "SuccessResponse",
    "ErrorResponse"
]
