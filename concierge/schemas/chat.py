from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class ChatRequest(BaseModel):
    """
    Body of POST /chat. Unknown top-level keys are ignored so older
    clients that still send extra fields keep working.
    """

    model_config = ConfigDict(extra="ignore")

    version: Literal["v1"]
    messages: list[ChatMessage] = Field(..., min_length=1)

    def last_user_message(self) -> str | None:
        for message in reversed(self.messages):
            if message.role == "user":
                return message.content
        return None


__all__ = ["ChatMessage", "ChatRequest"]
