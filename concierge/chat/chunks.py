from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

UPSTREAM_ERROR_MESSAGE = "Upstream provider error"


@dataclass(frozen=True)
class TextChunk:
    text: str


@dataclass(frozen=True)
class ToolChunk:
    """
    Structured payload from the provider. A payload carrying an `error` key
    is an upstream failure, not content.
    """

    name: str
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def error(self) -> str | None:
        if "error" not in self.payload:
            return None
        value = self.payload["error"]
        if not value:
            return UPSTREAM_ERROR_MESSAGE
        if isinstance(value, dict):
            return str(value.get("message") or value)
        return str(value)


@dataclass(frozen=True)
class DoneChunk:
    usage_tokens: int | None = None


Chunk = Union[TextChunk, ToolChunk, DoneChunk]


__all__ = ["UPSTREAM_ERROR_MESSAGE", "Chunk", "DoneChunk", "TextChunk", "ToolChunk"]
