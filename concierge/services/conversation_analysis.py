"""
Keyword heuristics over the latest user message.

The results only steer personalization and stage transitions; they are never
authoritative. Anything richer (LLM-based extraction) belongs to the
lead-research tool.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from ..schemas.context import ConversationStage

EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
_NAME_RE = re.compile(
    r"\b(?i:my name is|my name's|i am|i'm|this is|call me)\s+"
    r"([A-Z][a-zA-Z'-]+(?:\s+[A-Z][a-zA-Z'-]+)?)"
)
_GREETING_RE = re.compile(r"^\s*(hi|hello|hey|good (morning|afternoon|evening))\b", re.I)

# (role, confidence, keywords); first match wins, so more specific roles come first.
ROLE_KEYWORDS: tuple[tuple[str, float, tuple[str, ...]], ...] = (
    ("CEO", 0.9, ("ceo", "chief executive", "founder", "co-founder", "owner")),
    ("CTO", 0.9, ("cto", "chief technology", "vp engineering", "head of engineering")),
    ("CFO", 0.85, ("cfo", "chief financial", "finance director")),
    ("Marketing", 0.7, ("cmo", "marketing", "growth lead", "brand manager")),
    ("Operations", 0.7, ("coo", "operations", "ops manager")),
    ("Sales", 0.7, ("sales", "account executive", "business development")),
    ("Product", 0.7, ("product manager", "product owner", "head of product")),
    ("Engineering", 0.6, ("developer", "engineer", "programmer", "architect")),
)

_INTENT_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("book_meeting", ("book", "schedule", "meeting", "call with", "calendar", "consultation")),
    ("calculate_roi", ("roi", "return on investment", "payback", "break even", "break-even")),
    ("ask_solution", ("how can you", "what do you offer", "solution", "can you help", "automate")),
    (
        "describe_problem",
        ("problem", "challenge", "struggling", "issue", "pain", "bottleneck", "slow", "manual"),
    ),
)

INTENT_TARGET_STAGE: dict[str, ConversationStage] = {
    "greeting": ConversationStage.NAME_COLLECTION,
    "introduce": ConversationStage.EMAIL_CAPTURE,
    "share_email": ConversationStage.BACKGROUND_RESEARCH,
    "describe_problem": ConversationStage.PROBLEM_DISCOVERY,
    "ask_solution": ConversationStage.SOLUTION_PRESENTATION,
    "calculate_roi": ConversationStage.SOLUTION_PRESENTATION,
    "book_meeting": ConversationStage.CALL_TO_ACTION,
}


@dataclass
class MessageAnalysis:
    intent: str = "general"
    slots: dict[str, Any] = field(default_factory=dict)
    name: str | None = None
    email: str | None = None
    role: str | None = None
    role_confidence: float | None = None

    @property
    def target_stage(self) -> ConversationStage | None:
        return INTENT_TARGET_STAGE.get(self.intent)


def detect_email(text: str) -> str | None:
    match = EMAIL_RE.search(text)
    return match.group(0).lower() if match else None


def detect_name(text: str) -> str | None:
    match = _NAME_RE.search(text)
    if not match:
        return None
    return match.group(1).strip()


def detect_role(text: str) -> tuple[str | None, float | None]:
    lowered = text.lower()
    for role, confidence, keywords in ROLE_KEYWORDS:
        for keyword in keywords:
            if re.search(rf"\b{re.escape(keyword)}\b", lowered):
                return role, confidence
    return None, None


def detect_intent(text: str, *, name: str | None, email: str | None) -> tuple[str, dict[str, Any]]:
    lowered = text.lower()
    for intent, keywords in _INTENT_KEYWORDS:
        hits = [keyword for keyword in keywords if keyword in lowered]
        if hits:
            return intent, {"keywords": hits}
    if email:
        return "share_email", {"email": email}
    if name:
        return "introduce", {"name": name}
    if _GREETING_RE.search(text):
        return "greeting", {}
    return "general", {}


def analyze_message(text: str | None) -> MessageAnalysis:
    if not text or not text.strip():
        return MessageAnalysis()
    email = detect_email(text)
    name = detect_name(text)
    role, confidence = detect_role(text)
    intent, slots = detect_intent(text, name=name, email=email)
    return MessageAnalysis(
        intent=intent,
        slots=slots,
        name=name,
        email=email,
        role=role,
        role_confidence=confidence,
    )


__all__ = [
    "EMAIL_RE",
    "INTENT_TARGET_STAGE",
    "MessageAnalysis",
    "ROLE_KEYWORDS",
    "analyze_message",
    "detect_email",
    "detect_intent",
    "detect_name",
    "detect_role",
]
