"""
Text helpers shared by the platform adapters: body decoding, HTML stripping,
timestamp parsing and truncation.
"""

import base64
import html
import re
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime

_TAG_RE = re.compile(r"<[^>]*>")
_STYLE_RE = re.compile(r"<(script|style)[^>]*>.*?</\1>", re.IGNORECASE | re.DOTALL)
_WHITESPACE_RE = re.compile(r"\s+")


def decode_base64url(data: str | None) -> str:
    """Decode URL-safe base64 (Gmail body encoding), repairing missing padding."""
    if not data:
        return ""
    try:
        padded = data + "=" * (-len(data) % 4)
        return base64.urlsafe_b64decode(padded).decode("utf-8", errors="ignore")
    except (ValueError, TypeError):
        return ""


def html_to_text(markup: str) -> str:
    """Strip tags, decode entities and collapse whitespace."""
    if not markup:
        return ""
    without_blocks = _STYLE_RE.sub(" ", markup)
    without_tags = _TAG_RE.sub(" ", without_blocks)
    return collapse_whitespace(html.unescape(without_tags))


def decode_entities(text: str) -> str:
    return collapse_whitespace(html.unescape(text or ""))


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text or "").strip()


def truncate(text: str, max_chars: int) -> str:
    if not text or len(text) <= max_chars:
        return text or ""
    return text[:max_chars]


def parse_timestamp(value: str | None) -> datetime | None:
    """
    Best-effort parse of a message timestamp.

    Accepts ISO 8601 / RFC 3339 (chat and workspace exports) and RFC 2822
    (mail ``Date`` headers). Naive values are treated as UTC.

    Returns:
        Aware datetime, or None when the value cannot be parsed
    """
    if not value or not isinstance(value, str):
        return None

    candidate = value.strip()
    parsed: datetime | None = None

    try:
        parsed = datetime.fromisoformat(candidate.replace("Z", "+00:00"))
    except ValueError:
        try:
            parsed = parsedate_to_datetime(candidate)
        except (TypeError, ValueError, IndexError):
            return None

    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def epoch_to_iso(seconds: float) -> str:
    return datetime.fromtimestamp(seconds, tz=UTC).isoformat().replace("+00:00", "Z")
