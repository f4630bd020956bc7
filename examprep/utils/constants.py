"""
Application constants and enums
"""

from enum import Enum


class AccessType(str, Enum):
    """Quiz access gating"""
    PUBLIC = "public"
    SERIES = "series"
    PAID = "paid"


class UserRole(str, Enum):
    """User role enumeration"""
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"


# Roles that open quizzes in preview mode and bypass enrollment checks
PRIVILEGED_ROLES = frozenset({UserRole.ADMIN.value, UserRole.TEACHER.value})


class QueryIntent(str, Enum):
    """AI tutor query intent"""
    PRACTICE = "practice"
    FACTUAL = "factual"
    PROCEDURAL = "procedural"
    COMPARATIVE = "comparative"
    CONCISE = "concise"
    DETAILED = "detailed"
    REMEDIAL = "remedial"
    ADVANCED = "advanced"
    VISUAL = "visual"
    GENERAL = "general"


class Confidence(str, Enum):
    """Retrieval confidence"""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class SourceType(str, Enum):
    """Knowledge-base entry type"""
    BOOK = "book"
    SYLLABUS = "syllabus"


class TutorFeedback(str, Enum):
    """Feedback values accepted on a tutor log"""
    HELPFUL = "helpful"
    NOT_HELPFUL = "not_helpful"


class StatsNamespace(str, Enum):
    """Aggregate namespace on the user document"""
    ADMIN = "stats"
    MOCK = "mockStats"


# Collections
USERS = "users"
QUIZ_ATTEMPTS = "quizAttempts"
RESULTS = "results"
QUIZZES = "quizzes"
SUBMISSIONS = "submissions"
ENROLLMENTS = "enrollments"
QUESTIONS = "questions"
AI_TUTOR_LOGS = "ai_tutor_logs"
KNOWLEDGE_BASE = "knowledge_base"

UNCATEGORIZED_SUBJECT = "Uncategorized"

# Keyword table for subject detection; order matters for ties
SUBJECT_KEYWORDS = {
    "Biology": [
        "cell", "dna", "rna", "protein", "mitosis", "meiosis", "enzyme", "photosynthesis",
        "respiration", "gene", "chromosome", "tissue", "organ", "blood", "heart", "nerve",
        "muscle", "bacteria", "virus", "plant", "animal", "ecology", "evolution", "taxonomy",
    ],
    "Chemistry": [
        "atom", "molecule", "element", "compound", "reaction", "acid", "base", "salt", "ion",
        "bond", "organic", "inorganic", "periodic", "oxidation", "reduction", "molar",
        "solution", "equilibrium", "thermodynamic",
    ],
    "Physics": [
        "force", "motion", "velocity", "acceleration", "energy", "work", "power", "wave",
        "light", "sound", "electric", "magnetic", "current", "voltage", "resistance",
        "momentum", "gravity", "newton", "quantum", "nuclear",
    ],
    "English": [
        "grammar", "vocabulary", "reading", "comprehension", "essay", "writing", "literature",
        "poetry", "prose", "tense", "verb", "noun", "adjective", "synonym", "antonym",
    ],
}

FORMAT_INSTRUCTIONS = {
    QueryIntent.PROCEDURAL: "Provide a clear step-by-step explanation with numbered steps.",
    QueryIntent.COMPARATIVE: "Use a table to compare and contrast the items. Highlight key differences.",
    QueryIntent.FACTUAL: "Give a direct, concise definition followed by key points.",
    QueryIntent.CONCISE: "Answer in 2-3 sentences only. No headings, no lists.",
    QueryIntent.DETAILED: "Give a comprehensive explanation with headings, key terms and an example.",
    QueryIntent.REMEDIAL: "Explain from the basics in simple language with an everyday analogy. Avoid jargon.",
    QueryIntent.ADVANCED: "Go beyond the basics: cover mechanisms, exceptions and links to related topics.",
    QueryIntent.VISUAL: "Present the answer as a table or a labelled text diagram, followed by a short summary.",
    QueryIntent.GENERAL: "Explain clearly and concisely.",
}

CONFIDENCE_MESSAGES = {
    "both": "This topic is in your syllabus with supporting textbook content.",
    "book": "Found in textbook materials.",
    "syllabus": "This topic is mentioned in the syllabus.",
    "none": "Limited sources found. This is a general answer.",
}

PRACTICE_REFUSAL_MESSAGE = (
    "I apologize, but I cannot generate MCQs or practice quizzes. Please use the **Quiz Bank** "
    "or **Create Quiz** feature for practice questions. I can help explain concepts or solve "
    "specific problems instead."
)

BLOCKED_PRACTICE_LOG = "BLOCKED: MCQ Request"

# Prompt Templates
TUTOR_SYSTEM_PROMPT = """You are the Official AI Tutor for {platform}, an exam-preparation platform.
Explain concepts clearly to a student. Start with the answer, no greetings.
Use **bold** for key terms and LaTeX for math.
Do NOT generate MCQs or quizzes. If asked, politely refuse and suggest the Quiz Bank.
If the question is about fees, dates or technical support, answer from general knowledge or direct the student to support ({support_phone})."""

TUTOR_PROMPT = """User Query: "{query}"
{subject_line}
CONTEXT:
{book_context}
{syllabus_context}

INSTRUCTIONS:
1. Style: {format_instructions}
2. Confidence: {confidence_message}

Suggest 1 related topic at the end: "**Explore Key Topic**: [Topic Name]"
"""

PAGE_ANALYSIS_PROMPT = """Analyze this textbook page for a study knowledge base.
1. Extract the main text (or a faithful summary if it is very long).
2. If the page refers to diagrams, describe them (visual description).
3. Identify the chapter number and name, and the page number.

Respond with JSON only:
{{"text": "...", "description": "...", "chapter": "...", "page_number": "..."}}

PAGE:
{page_text}
"""

SUPPORT_STATIC_CONTEXT = """
**{platform} - QUICK FACTS:**
- Exam preparation platform with series for new students and repeaters
- Features: AI Tutor, Mock Tests, Question Bank, Performance Analytics
- Contact: WhatsApp {support_phone}

**SUPPORT:**
- For account/payment issues: WhatsApp {support_phone}
- Technical support via chat
"""

SUPPORT_SYSTEM_PROMPT = """You are the Official AI Support Assistant for {platform}.
{static_context}
**LIVE WEBSITE CONTENT:**
{site_context}

**YOUR INSTRUCTIONS:**
1. Use the content above as the source of truth.
2. Be helpful, professional and warm. Answer greetings naturally.
3. Calculate discounts exactly, showing the original price, the discount and the final price.
4. Reply in Roman Urdu if the user writes in it.
5. For account or payment issues: "Please contact Admin via WhatsApp at **{support_phone}**."
"""

SITE_CONTEXT_UNAVAILABLE = "Unable to fetch - use static info above"

# Error Messages
ERROR_MESSAGES = {
    "MISSING_FIELDS": "Missing required fields",
    "QUIZ_NOT_FOUND": "Quiz not found",
    "NOT_ENROLLED": "You are not enrolled in the required series or course for this quiz.",
    "NOT_PUBLISHED": "This quiz is not published yet",
    "NOT_STARTED": "This quiz has not started yet. Please check back later.",
    "ENDED": "This quiz has ended and is no longer available.",
    "MAX_ATTEMPTS": "You have reached the maximum number of attempts for this quiz.",
    "ALREADY_SUBMITTED": "This quiz attempt has already been submitted.",
    "SUBMISSION_FAILED": "Submission failed. Please try again.",
    "SUBMITTED": "Quiz submitted successfully",
    "ALREADY_PROCESSED": "Submission already processed",
}
