"""
Tutor query analysis: intent, subject, answer style and retrieval confidence
"""

from dataclasses import dataclass
from typing import List, Optional, Pattern, Sequence, Tuple
import re

from examprep.utils.constants import (
    CONFIDENCE_MESSAGES,
    FORMAT_INSTRUCTIONS,
    SUBJECT_KEYWORDS,
    Confidence,
    QueryIntent,
)

# Checked in order; the first matching intent wins
_INTENT_PATTERNS: List[Tuple[QueryIntent, Pattern[str]]] = [
    (QueryIntent.PRACTICE, re.compile(
        r"\bmcqs?\b|\bquiz(zes)?\b|\bpractice (questions?|test|problems?)\b|\bmock test\b"
        r"|\b(generate|create|make|give me)\b.{0,30}\b(questions?|mcqs?)\b"
        r"|\btest me\b|\bexample problems?\b"
    )),
    (QueryIntent.VISUAL, re.compile(r"\b(diagram|draw|chart|table|flowchart|visuali[sz]e|illustrat\w*)\b")),
    (QueryIntent.COMPARATIVE, re.compile(r"\b(difference|differences|differentiate|compare|contrast|versus|vs\.?)\b|\bbetween .+ and\b")),
    (QueryIntent.REMEDIAL, re.compile(r"\b(don'?t understand|confused|simple terms|simply|basics|eli5|like i'?m)\b")),
    (QueryIntent.CONCISE, re.compile(r"\b(briefly|short|in short|one line|quick|summari[sz]e|tl;?dr)\b")),
    (QueryIntent.DETAILED, re.compile(r"\b(in detail|detailed|elaborate|comprehensive|everything about|in depth)\b")),
    (QueryIntent.ADVANCED, re.compile(r"\b(advanced|mechanism|in-depth|beyond|exceptions?|why exactly)\b")),
    (QueryIntent.PROCEDURAL, re.compile(r"\bhow (to|do|does|can|should)\b|\b(steps?|process|procedure|method)\b")),
    (QueryIntent.FACTUAL, re.compile(r"\bwhat (is|are)\b|\b(define|definition|explain|describe|tell me about)\b")),
]


def classify_query_intent(query: str) -> QueryIntent:
    """Pick the answer intent for a query; practice requests are detected first"""
    text = (query or "").lower()
    for intent, pattern in _INTENT_PATTERNS:
        if pattern.search(text):
            return intent
    return QueryIntent.GENERAL


def _keyword_pattern(keyword: str) -> Pattern[str]:
    # Prefix match on word start: "cell" matches "cells" but not "excellent"
    return re.compile(r"\b" + re.escape(keyword))


_SUBJECT_PATTERNS = {
    subject: [_keyword_pattern(k) for k in keywords]
    for subject, keywords in SUBJECT_KEYWORDS.items()
}


def detect_subject(query: str) -> Optional[str]:
    """
    Subject with the most keyword hits.

    Ties go to the subject listed first; no hits means no subject.
    """
    text = (query or "").lower()
    best_subject = None
    best_hits = 0
    for subject, patterns in _SUBJECT_PATTERNS.items():
        hits = sum(1 for p in patterns if p.search(text))
        if hits > best_hits:
            best_subject, best_hits = subject, hits
    return best_subject


def get_format_instructions(intent: QueryIntent) -> str:
    return FORMAT_INSTRUCTIONS.get(intent, FORMAT_INSTRUCTIONS[QueryIntent.GENERAL])


@dataclass
class ConfidenceAssessment:
    score: Confidence
    message: str


def calculate_confidence(book_docs: Sequence, syllabus_docs: Sequence) -> ConfidenceAssessment:
    """Confidence from which source types produced any hit"""
    has_book = len(book_docs) > 0
    has_syllabus = len(syllabus_docs) > 0

    if has_book and has_syllabus:
        return ConfidenceAssessment(Confidence.HIGH, CONFIDENCE_MESSAGES["both"])
    if has_book:
        return ConfidenceAssessment(Confidence.MEDIUM, CONFIDENCE_MESSAGES["book"])
    if has_syllabus:
        return ConfidenceAssessment(Confidence.MEDIUM, CONFIDENCE_MESSAGES["syllabus"])
    return ConfidenceAssessment(Confidence.LOW, CONFIDENCE_MESSAGES["none"])
