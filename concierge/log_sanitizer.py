from __future__ import annotations

from collections.abc import Mapping

REDACTED = "***REDACTED***"


_SENSITIVE_HEADER_NAMES = {
    "authorization",
    "proxy-authorization",
    "x-api-key",
    "x-intelligence-session-id",
    "x-idempotency-key",
    "cookie",
    "set-cookie",
}


def sanitize_headers_for_log(
    headers: Mapping[str, str], *, mask_token: str = REDACTED
) -> dict[str, str]:
    """
    Mask credentials and session correlation headers before logging.

    Known sensitive names are always masked; any header whose name contains
    key/token/secret/auth/cookie/session is masked too.
    """
    sanitized: dict[str, str] = {}
    for name, value in headers.items():
        lower_name = name.lower()
        if lower_name in _SENSITIVE_HEADER_NAMES:
            sanitized[name] = mask_token
            continue

        if any(
            token in lower_name
            for token in ("key", "token", "secret", "auth", "cookie", "session")
        ):
            sanitized[name] = mask_token
            continue

        sanitized[name] = value
    return sanitized


def mask_session_id(session_id: str | None) -> str:
    """Short, log-safe form of a session id."""
    if not session_id:
        return "anon"
    if len(session_id) <= 6:
        return "***"
    return f"{session_id[:4]}***"


__all__ = ["REDACTED", "mask_session_id", "sanitize_headers_for_log"]
