from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from ..services.rate_limiter import RateLimitPolicy

ToolHandler = Callable[[str | None, Any], Awaitable[Any]]


@dataclass(frozen=True)
class ToolSpec:
    """
    A tool the gateway can run.

    `handler(session_id, params)` receives the input already validated
    against `input_model` and returns any JSON-serialisable output.
    """

    name: str
    title: str
    input_model: type[BaseModel]
    handler: ToolHandler
    capability: str
    rate_limit: RateLimitPolicy | None = None


__all__ = ["ToolHandler", "ToolSpec"]
