import pytest

from examprep.services.query_analysis import (
    calculate_confidence,
    classify_query_intent,
    detect_subject,
    get_format_instructions,
)
from examprep.utils.constants import FORMAT_INSTRUCTIONS, Confidence, QueryIntent


@pytest.mark.parametrize("query, intent", [
    ("Give me 10 MCQs on cells", QueryIntent.PRACTICE),
    ("Can you make a quiz on acids?", QueryIntent.PRACTICE),
    ("Create some questions about motion", QueryIntent.PRACTICE),
    ("Draw a diagram of the heart", QueryIntent.VISUAL),
    ("Difference between mitosis and meiosis", QueryIntent.COMPARATIVE),
    ("I don't understand osmosis", QueryIntent.REMEDIAL),
    ("Briefly explain photosynthesis", QueryIntent.CONCISE),
    ("Explain respiration in detail", QueryIntent.DETAILED),
    ("What is the mechanism of enzyme action?", QueryIntent.ADVANCED),
    ("How does the heart pump blood?", QueryIntent.PROCEDURAL),
    ("Explain the process of photosynthesis", QueryIntent.PROCEDURAL),
    ("What is an ion?", QueryIntent.FACTUAL),
    ("Newton's laws", QueryIntent.GENERAL),
    ("", QueryIntent.GENERAL),
])
def test_classify_query_intent(query, intent):
    assert classify_query_intent(query) == intent


def test_practice_is_checked_before_other_intents():
    assert classify_query_intent("Explain in detail and then give me MCQs") == QueryIntent.PRACTICE


@pytest.mark.parametrize("query, subject", [
    ("What happens to a cell during mitosis?", "Biology"),
    ("Explain an acid base reaction", "Chemistry"),
    ("Calculate the velocity and acceleration", "Physics"),
    ("This is an excellent essay", "English"),
    ("energy stored in a cell", "Biology"),
    ("hello there", None),
])
def test_detect_subject(query, subject):
    assert detect_subject(query) == subject


def test_format_instructions_fall_back_to_general():
    assert get_format_instructions(QueryIntent.COMPARATIVE) == FORMAT_INSTRUCTIONS[QueryIntent.COMPARATIVE]
    assert get_format_instructions(QueryIntent.PRACTICE) == FORMAT_INSTRUCTIONS[QueryIntent.GENERAL]


@pytest.mark.parametrize("book, syllabus, expected", [
    (["b"], ["s"], Confidence.HIGH),
    (["b"], [], Confidence.MEDIUM),
    ([], ["s"], Confidence.MEDIUM),
    ([], [], Confidence.LOW),
])
def test_confidence_depends_on_which_sources_hit(book, syllabus, expected):
    assessment = calculate_confidence(book, syllabus)
    assert assessment.score == expected
    assert assessment.message
