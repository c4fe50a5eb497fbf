from __future__ import annotations

import time
from enum import Enum
from typing import Any

from pydantic import Field

from .base import CamelModel


class ConversationStage(str, Enum):
    """Lead-qualification stages, in the order a conversation moves through them."""

    GREETING = "GREETING"
    NAME_COLLECTION = "NAME_COLLECTION"
    EMAIL_CAPTURE = "EMAIL_CAPTURE"
    BACKGROUND_RESEARCH = "BACKGROUND_RESEARCH"
    PROBLEM_DISCOVERY = "PROBLEM_DISCOVERY"
    SOLUTION_PRESENTATION = "SOLUTION_PRESENTATION"
    CALL_TO_ACTION = "CALL_TO_ACTION"


class Lead(CamelModel):
    """Visitor identity; email becomes the stable key once captured."""

    email: str | None = None
    name: str | None = None

    def known_fields(self) -> set[str]:
        return {
            field
            for field, value in (("email", self.email), ("name", self.name))
            if isinstance(value, str) and value.strip()
        }


class CompanyInfo(CamelModel):
    name: str | None = None
    domain: str | None = None
    industry: str | None = None
    summary: str | None = None


class PersonInfo(CamelModel):
    full_name: str | None = None
    role: str | None = None
    seniority: str | None = None


class Intent(CamelModel):
    type: str = Field(..., description="Intent tag, e.g. book_meeting")
    slots: dict[str, Any] = Field(default_factory=dict)


class ContextSnapshot(CamelModel):
    """
    A session's accumulated understanding of the visitor.
    """

    session_id: str
    lead: Lead = Field(default_factory=Lead)
    capabilities: list[str] = Field(
        default_factory=list, description="Tool names used this session, append-only"
    )
    role: str | None = None
    role_confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    company: CompanyInfo | None = None
    person: PersonInfo | None = None
    intent: Intent | None = None
    stage: ConversationStage = ConversationStage.GREETING
    tool_outputs: dict[str, Any] = Field(
        default_factory=dict, description="Redacted summary of the last run per tool"
    )
    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)

    @classmethod
    def skeleton(cls, session_id: str) -> "ContextSnapshot":
        return cls(session_id=session_id)


__all__ = [
    "CompanyInfo",
    "ContextSnapshot",
    "ConversationStage",
    "Intent",
    "Lead",
    "PersonInfo",
]
