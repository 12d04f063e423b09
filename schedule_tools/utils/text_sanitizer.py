"""Clean free text pulled out of uploaded spreadsheets before display."""

from __future__ import annotations

import re
from typing import Final

# =============================================================================
# CONFIGURATION
# =============================================================================

GENERAL_TEXT_LIMIT: Final[int] = 1000
TIMEPOINT_NAME_LIMIT: Final[int] = 100

_DANGEROUS_PATTERNS: Final[list[re.Pattern[str]]] = [
    re.compile(r"<script[^>]*>[\s\S]*?</script>", re.I),
    re.compile(r"<style[^>]*>[\s\S]*?</style>", re.I),
    re.compile(r"<(?:object|embed|iframe)[^>]*>[\s\S]*?</(?:object|embed|iframe)>", re.I),
    re.compile(r"<(?:meta|link|form|input|textarea|button|select|option)[^>]*>", re.I),
    re.compile(r"on\w+\s*=\s*[\"']?[^\"']*[\"']?", re.I),
    re.compile(r"javascript:", re.I),
    re.compile(r"data:(?:text/html|application/javascript)", re.I),
    re.compile(r"expression\s*\(", re.I),
    re.compile(r"url\s*\(", re.I),
]

# "&", "-" and parentheses are allowed in stop names.
_ATTACK_PATTERNS: Final[list[re.Pattern[str]]] = [
    re.compile(r"<script[\s\S]*?>", re.I),
    re.compile(r"javascript:", re.I),
    re.compile(r"on\w+\s*=", re.I),
    re.compile(r"(\.\./|\.\.\\|%2e%2e%2f|%2e%2e\\)", re.I),
    re.compile(r"('|;|%3B|\||%7C|`)", re.I),
]

_TIMEPOINT_DISALLOWED_RE: Final[re.Pattern[str]] = re.compile(r"[^\w\s&\-.,]")

# =============================================================================
# FUNCTIONS
# =============================================================================


def sanitize_text(value: object, max_length: int = GENERAL_TEXT_LIMIT) -> str:
    """Strip markup and script fragments, then collapse whitespace.

    Args:
        value: Any cell value; None becomes an empty string.
        max_length: Hard cap applied before any other processing.

    Returns:
        A single-line string.
    """
    if value is None:
        return ""
    text = str(value)[:max_length]
    for pattern in _DANGEROUS_PATTERNS:
        text = pattern.sub("", text)
    return re.sub(r"\s+", " ", text).strip()


def sanitize_timepoint_name(value: object) -> str:
    """Reduce a header cell to a safe timepoint label.

    Only word characters, spaces, ``&``, ``-``, ``.`` and ``,`` survive.
    """
    text = sanitize_text(value, max_length=TIMEPOINT_NAME_LIMIT)
    text = _TIMEPOINT_DISALLOWED_RE.sub("", text)
    return re.sub(r"\s+", " ", text).strip()


def contains_attack_patterns(value: str) -> bool:
    """Return True if the text looks like an injection attempt."""
    return any(pattern.search(value) for pattern in _ATTACK_PATTERNS)
