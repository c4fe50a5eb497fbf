"""
Error taxonomy shared by the chat pipeline and the tool gateway.

Every handler-level failure is translated into one of these kinds before it
crosses the HTTP boundary; raw exception text never reaches a client except
for the kinds whose message is meant for the caller (validation, tool input,
rate limit, budget, upstream).
"""

from __future__ import annotations

from typing import Any

from fastapi import status
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Standard error payload for non-tool endpoints:
    {"error": "...", "code": "...", "details": [...]}
    """

    error: str = Field(..., description="Human-readable error message")
    code: str | None = Field(default=None, description="Machine-readable error kind")
    details: Any | None = Field(default=None, description="Optional structured details")


class ConciergeError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "internal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(error=self.message, code=self.code)


class ValidationError(ConciergeError):
    """Malformed or missing request fields; always local to the request."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"

    def __init__(self, message: str, *, details: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.details = details or []

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(error=self.message, code=self.code, details=self.details)


class ToolInputError(ConciergeError):
    """Raised by tool handlers for input that passes the schema but is unusable."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_input"


class RateLimitExceeded(ConciergeError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "rate_limited"

    def __init__(self, retry_after: int, message: str = "Rate limit exceeded") -> None:
        super().__init__(message)
        self.retry_after = max(1, int(retry_after))


class UpstreamProviderError(ConciergeError):
    """The language-model or enrichment provider failed or timed out."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "upstream_error"

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.upstream_status = status


class BudgetExhausted(ConciergeError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "budget_exhausted"

    def __init__(self, message: str, *, feature: str | None = None) -> None:
        super().__init__(message)
        self.feature = feature


class InternalError(ConciergeError):
    """Unexpected failure; the caller only ever sees the generic message."""

    GENERIC_MESSAGE = "Internal error"

    def __init__(self, message: str = GENERIC_MESSAGE) -> None:
        super().__init__(message)


def format_validation_details(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """
    Reduce pydantic's error dicts to {field, message, type} entries that are
    safe to return (no input echo, no URLs to pydantic docs).
    """
    details: list[dict[str, Any]] = []
    for err in errors:
        loc = err.get("loc") or ()
        field = ".".join(str(part) for part in loc) or "body"
        details.append(
            {
                "field": field,
                "message": str(err.get("msg") or "Invalid value"),
                "type": str(err.get("type") or "value_error"),
            }
        )
    return details


def summarize_validation_details(details: list[dict[str, Any]]) -> str:
    if not details:
        return "Invalid input"
    first = details[0]
    text = f"{first['field']}: {first['message']}"
    if len(details) > 1:
        text += f" (+{len(details) - 1} more)"
    return text


__all__ = [
    "BudgetExhausted",
    "ConciergeError",
    "ErrorResponse",
    "InternalError",
    "RateLimitExceeded",
    "ToolInputError",
    "UpstreamProviderError",
    "ValidationError",
    "format_validation_details",
    "summarize_validation_details",
]
