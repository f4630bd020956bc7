from datetime import datetime, timedelta, timezone

import pytest

from examprep.utils.helpers import (
    clean_html,
    format_score_percentage,
    format_timestamp,
    generate_idempotency_key,
    generate_query_cache_key,
    normalize_query,
    parse_model_json,
    scrub_pii,
)


def test_scrub_pii_replaces_contact_details():
    text = "Mail sara.k@example.com or call 0300-1234567, CNIC 35202-1234567-1"
    assert scrub_pii(text) == "Mail [EMAIL] or call [PHONE], CNIC [ID]"


def test_scrub_pii_keeps_support_number():
    assert scrub_pii("WhatsApp 03237507673 for help", keep_phone="03237507673") == "WhatsApp 03237507673 for help"
    assert scrub_pii(None) is None
    assert scrub_pii("") == ""


def test_query_normalization_and_cache_keys():
    assert normalize_query("  What  IS\tMitosis? ") == "what is mitosis?"
    assert generate_query_cache_key("What is mitosis?") == generate_query_cache_key(" what   is MITOSIS? ")
    assert generate_query_cache_key("What is mitosis?") != generate_query_cache_key("What is meiosis?")


def test_idempotency_key():
    assert generate_idempotency_key("u1", "q1", 1700000000000) == "u1_q1_1700000000000"


@pytest.mark.parametrize("content, expected", [
    ('{"text": "a"}', {"text": "a"}),
    ('```json\n{"text": "a"}\n```', {"text": "a"}),
    ('Here is the analysis: {"text": "a", "page_number": "3"} hope it helps', {"text": "a", "page_number": "3"}),
    ('[1, 2]', [1, 2]),
])
def test_parse_model_json(content, expected):
    assert parse_model_json(content) == expected


@pytest.mark.parametrize("content", ["", "   ", "no json here", '{"text": '])
def test_parse_model_json_rejects_invalid(content):
    with pytest.raises(ValueError):
        parse_model_json(content)


def test_clean_html_strips_chrome_and_truncates():
    html = "<header>Logo</header><p>Fees <b>5000</b></p><footer>(c)</footer>"
    assert clean_html(html) == "Fees 5000"
    assert clean_html("<p>" + "x" * 50 + "</p>", max_chars=10) == "x" * 10


def test_format_score_percentage():
    assert format_score_percentage(2, 3) == 67
    assert format_score_percentage(0, 0) == 0


def test_format_timestamp_writes_utc_as_z():
    moment = datetime(2026, 3, 1, 9, 30, 0, 125000, tzinfo=timezone.utc)
    assert format_timestamp(moment) == "2026-03-01T09:30:00.125000Z"
    assert format_timestamp(moment.astimezone(timezone(timedelta(hours=5)))) == "2026-03-01T14:30:00.125000+05:00"
