"""
Helper utility functions
"""

from datetime import datetime, timezone
from typing import Any, Optional
import json
import hashlib
import re
import time

from examprep.config import settings


def utc_now() -> datetime:
    """Current time as an aware UTC datetime"""
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """ISO string in the form pydantic writes, with UTC as 'Z'"""
    text = value.isoformat()
    return text[:-6] + "Z" if text.endswith("+00:00") else text


def now_ms() -> int:
    """Current epoch time in milliseconds"""
    return int(time.time() * 1000)


def generate_idempotency_key(user_id: str, quiz_id: str, timestamp: int) -> str:
    """Key of the submission record for one (user, quiz, client timestamp)"""
    return f"{user_id}_{quiz_id}_{timestamp}"


def normalize_query(text: str) -> str:
    """Lower-case, trim and collapse whitespace"""
    return re.sub(r"\s+", " ", (text or "").lower().strip())


def generate_query_cache_key(text: str) -> str:
    """md5 of the normalized query"""
    return hashlib.md5(normalize_query(text).encode()).hexdigest()


def format_score_percentage(score: float, max_score: float) -> int:
    """Calculate a rounded percentage"""
    if max_score == 0:
        return 0
    return round((score / max_score) * 100)


_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


def _strip_code_fence(content: str) -> str:
    return _CODE_FENCE.sub("", content.strip()).strip()


def _extract_bracketed(content: str) -> Optional[str]:
    """Slice from the first opening bracket to the last matching closing bracket"""
    starts = [i for i in (content.find("{"), content.find("[")) if i != -1]
    if not starts:
        return None
    start = min(starts)
    closing = "}" if content[start] == "{" else "]"
    end = content.rfind(closing)
    if end <= start:
        return None
    return content[start:end + 1]


def parse_model_json(content: str) -> Any:
    """
    Parse JSON returned by a language model.

    Code fences are stripped first. If that fails, parsing is retried once on
    the text between the first opening and last closing bracket.

    Raises:
        ValueError: when neither attempt yields valid JSON
    """
    if not content or not content.strip():
        raise ValueError("Invalid JSON response from model: empty response")

    cleaned = _strip_code_fence(content)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as first_error:
        extracted = _extract_bracketed(cleaned)
        if extracted is None:
            raise ValueError(f"Invalid JSON response from model: {str(first_error)}") from first_error
        try:
            return json.loads(extracted)
        except json.JSONDecodeError as e:
            raise ValueError(
                f"Invalid JSON response from model after bracket extraction: {str(e)}"
            ) from e


_EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_NATIONAL_ID_PATTERN = re.compile(r"\d{5}-\d{7}-\d")
_PHONE_PATTERN = re.compile(r"(\+?\d{1,3}[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4,6}")


def scrub_pii(text: Optional[str], keep_phone: Optional[str] = None) -> Optional[str]:
    """
    Replace emails, phone numbers and national ID numbers with placeholders.

    The platform's own support number is left untouched.
    """
    if not text:
        return text

    keep_digits = re.sub(r"\D", "", keep_phone if keep_phone is not None else settings.SUPPORT_PHONE)

    def _phone(match: "re.Match[str]") -> str:
        if keep_digits and re.sub(r"\D", "", match.group(0)) == keep_digits:
            return match.group(0)
        return "[PHONE]"

    scrubbed = _EMAIL_PATTERN.sub("[EMAIL]", text)
    # National IDs first so their digit groups are not taken for phone numbers
    scrubbed = _NATIONAL_ID_PATTERN.sub("[ID]", scrubbed)
    scrubbed = _PHONE_PATTERN.sub(_phone, scrubbed)
    return scrubbed


_HTML_BLOCKS = re.compile(r"<(script|style|nav|footer|header)\b[^>]*>[\s\S]*?</\1>", re.IGNORECASE)
_HTML_TAGS = re.compile(r"<[^>]+>")


def clean_html(html: str, max_chars: int = 5000) -> str:
    """Strip scripts, styles, page chrome and tags down to plain text"""
    text = _HTML_BLOCKS.sub("", html)
    text = _HTML_TAGS.sub(" ", text)
    text = re.sub(r"\s+", " ", text).strip()
    return text[:max_chars]
