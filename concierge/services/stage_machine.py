"""
Conversation stage gating.

Pure functions only. Each stage declares the lead fields that must already be
known before a conversation may enter it; a request that does not satisfy
them leaves the conversation where it is. Nothing here advances on its own:
the chat pipeline decides when to attempt a transition.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from ..schemas.context import ConversationStage

STAGE_ORDER: tuple[ConversationStage, ...] = tuple(ConversationStage)

STAGE_REQUIREMENTS: dict[ConversationStage, frozenset[str]] = {
    ConversationStage.GREETING: frozenset(),
    ConversationStage.NAME_COLLECTION: frozenset(),
    ConversationStage.EMAIL_CAPTURE: frozenset({"name"}),
    ConversationStage.BACKGROUND_RESEARCH: frozenset({"name", "email"}),
    ConversationStage.PROBLEM_DISCOVERY: frozenset({"name", "email"}),
    ConversationStage.SOLUTION_PRESENTATION: frozenset({"name", "email"}),
    ConversationStage.CALL_TO_ACTION: frozenset({"name", "email"}),
}


def _present_fields(lead_fields: Mapping[str, Any] | Iterable[str]) -> set[str]:
    if isinstance(lead_fields, Mapping):
        return {
            key
            for key, value in lead_fields.items()
            if value is not None and (not isinstance(value, str) or value.strip())
        }
    return set(lead_fields)


def missing_fields(
    stage: ConversationStage, lead_fields: Mapping[str, Any] | Iterable[str]
) -> set[str]:
    return set(STAGE_REQUIREMENTS[ConversationStage(stage)]) - _present_fields(lead_fields)


def can_proceed(
    current_stage: ConversationStage,
    next_stage: ConversationStage,
    lead_fields: Mapping[str, Any] | Iterable[str],
) -> bool:
    """
    True when every field the target stage requires is present.

    `lead_fields` is either a mapping (blank strings and None count as
    absent) or an iterable of field names already known.
    """
    ConversationStage(current_stage)
    return not missing_fields(ConversationStage(next_stage), lead_fields)


def attempt_transition(
    current_stage: ConversationStage,
    target_stage: ConversationStage,
    lead_fields: Mapping[str, Any] | Iterable[str],
) -> ConversationStage:
    """Soft gate: the target when allowed, otherwise the current stage."""
    if can_proceed(current_stage, target_stage, lead_fields):
        return ConversationStage(target_stage)
    return ConversationStage(current_stage)


def next_stage(current_stage: ConversationStage) -> ConversationStage | None:
    index = STAGE_ORDER.index(ConversationStage(current_stage))
    if index + 1 >= len(STAGE_ORDER):
        return None
    return STAGE_ORDER[index + 1]


def stage_index(stage: ConversationStage) -> int:
    return STAGE_ORDER.index(ConversationStage(stage))


__all__ = [
    "STAGE_ORDER",
    "STAGE_REQUIREMENTS",
    "attempt_transition",
    "can_proceed",
    "missing_fields",
    "next_stage",
    "stage_index",
]
