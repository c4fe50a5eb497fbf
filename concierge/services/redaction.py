"""
Masking of secrets and personal data in tool summaries kept on the session
context. Only the stored copy is redacted; tool responses go back unchanged.
"""

import re
from typing import Any

_REDACT_PATTERNS: tuple[re.Pattern[str], ...] = (
    # API keys and private keys
    re.compile(r"sk-[A-Za-z0-9]{16,}"),
    re.compile(r"AKIA[0-9A-Z]{16}"),
    re.compile(r"AIza[0-9A-Za-z_-]{35}"),
    re.compile(r"-----BEGIN [A-Z ]*PRIVATE KEY-----"),
    # inline credentials
    re.compile(r"(?i)(?:password|secret)\s*[:=]\s*['\"]?[A-Za-z0-9_@!#$%^&*-]{6,}"),
    # email addresses
    re.compile(r"[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+"),
    # phone numbers; never starts inside a digit run or on an ISO date
    re.compile(r"(?<![\d-])(?!\d{4}-\d{2}-\d{2})\+?\d[\d\s().-]{8,}\d"),
)


def redact_text(text: str, mask_token: str) -> str:
    for pattern in _REDACT_PATTERNS:
        text = pattern.sub(mask_token, text)
    return text


def redact_for_storage(value: Any, mask_token: str) -> Any:
    """Return a redacted copy of a JSON-like value; the input is not modified."""
    if isinstance(value, str):
        return redact_text(value, mask_token)
    if isinstance(value, list):
        return [redact_for_storage(item, mask_token) for item in value]
    if isinstance(value, dict):
        return {key: redact_for_storage(item, mask_token) for key, item in value.items()}
    return value


def _truncate(value: Any, max_chars: int) -> Any:
    if isinstance(value, str):
        if len(value) <= max_chars:
            return value
        return value[:max_chars] + "..."
    if isinstance(value, list):
        return [_truncate(item, max_chars) for item in value[:10]]
    if isinstance(value, dict):
        return {k: _truncate(v, max_chars) for k, v in value.items()}
    return value


def summarize_for_context(
    tool_input: Any, tool_output: Any, *, mask_token: str, max_chars: int = 200
) -> dict[str, Any]:
    """
    Redacted, size-bounded summary of one tool run for the ContextSnapshot.
    Long strings are clipped and lists keep their first ten items.
    """
    return {
        "input": _truncate(redact_for_storage(tool_input, mask_token), max_chars),
        "output": _truncate(redact_for_storage(tool_output, mask_token), max_chars),
    }


__all__ = ["redact_for_storage", "redact_text", "summarize_for_context"]
