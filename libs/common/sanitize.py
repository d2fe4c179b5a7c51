"""Free-text sanitizing for user supplied fields that get stored and rendered."""

import re
from typing import Optional

import bleach

MAX_TEXT_LENGTH = 10_000
MAX_PHONE_LENGTH = 20

# bleach strips the tags but keeps their text, so script and style bodies go first
_EXECUTABLE_BLOCK = re.compile(
    r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL
)
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_NON_PHONE = re.compile(r"[^\d+]")


def sanitize_text(value: Optional[str], max_length: int = MAX_TEXT_LENGTH) -> Optional[str]:
    """
    Strip all markup and control characters from plain-text input.

    No tags or attributes survive; ``&`` and stray ``<`` come back entity
    escaped. ``None`` passes through so optional fields stay optional.
    """
    if value is None:
        return None
    cleaned = _EXECUTABLE_BLOCK.sub("", value)
    cleaned = bleach.clean(cleaned, tags=[], attributes={}, strip=True)
    cleaned = _CONTROL_CHARS.sub("", cleaned)
    return cleaned[:max_length].strip()


def sanitize_phone(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return _NON_PHONE.sub("", value)[:MAX_PHONE_LENGTH]
