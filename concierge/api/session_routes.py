from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field

from ..auth import require_bearer_token
from ..deps import ConciergeServices, get_services
from ..logging_config import logger
from ..log_sanitizer import mask_session_id
from ..schemas.context import ContextSnapshot, ConversationStage, Lead
from ..services.demo_budget import FEATURE_BUDGETS
from ..services.stage_machine import attempt_transition, missing_fields

router = APIRouter(
    prefix="/sessions",
    tags=["sessions"],
    dependencies=[Depends(require_bearer_token)],
)


class SessionInitRequest(BaseModel):
    session_id: str | None = Field(default=None, alias="sessionId", max_length=200)
    lead: Lead | None = None

    model_config = ConfigDict(populate_by_name=True)


class StageChangeRequest(BaseModel):
    stage: ConversationStage


def _context_body(session_id: str, snapshot: ContextSnapshot | None) -> dict[str, Any]:
    return {"sessionId": session_id, "context": snapshot.to_wire() if snapshot else None}


@router.post("")
async def init_session(
    payload: SessionInitRequest | None = None,
    services: ConciergeServices = Depends(get_services),
) -> dict[str, Any]:
    """
    Start (or resume) a session. The lead, when given, is merged into the
    context; nothing else about an existing session changes.
    """
    body = payload or SessionInitRequest()
    session_id = body.session_id or uuid.uuid4().hex
    snapshot, created = await services.context_store.ensure(session_id)
    if body.lead is not None:
        lead = snapshot.lead.model_dump()
        lead.update(body.lead.model_dump(exclude_none=True))
        snapshot = await services.context_store.update(session_id, {"lead": lead})
    logger.info(
        "sessions: %s session %s", "created" if created else "resumed", mask_session_id(session_id)
    )
    return _context_body(session_id, snapshot)


@router.get("/{session_id}/context")
async def get_session_context(
    session_id: str,
    services: ConciergeServices = Depends(get_services),
) -> dict[str, Any]:
    """Read-only debug view of the stored ContextSnapshot."""
    snapshot = await services.context_store.get(session_id)
    return _context_body(session_id, snapshot)


@router.delete("/{session_id}")
async def end_session(
    session_id: str,
    services: ConciergeServices = Depends(get_services),
) -> dict[str, Any]:
    deleted = await services.context_store.delete(session_id)
    await services.activity_log.clear(session_id)
    return {"sessionId": session_id, "deleted": deleted}


@router.get("/{session_id}/activities")
async def list_activities(
    session_id: str,
    services: ConciergeServices = Depends(get_services),
) -> dict[str, Any]:
    items = await services.activity_log.recent(session_id)
    return {"sessionId": session_id, "activities": [item.to_wire() for item in items]}


@router.get("/{session_id}/budget")
async def get_budget(
    session_id: str,
    services: ConciergeServices = Depends(get_services),
) -> dict[str, Any]:
    """Current ledger plus a per-feature access decision. Does not create a ledger."""
    manager = services.budget_manager
    session = await manager.peek_session(session_id)
    if session is None:
        return {"sessionId": session_id, "session": None, "features": {}}
    features = {
        feature: manager.evaluate(session, feature).to_wire() for feature in FEATURE_BUDGETS
    }
    return {"sessionId": session_id, "session": session.to_wire(), "features": features}


@router.post("/{session_id}/stage")
async def change_stage(
    session_id: str,
    payload: StageChangeRequest,
    services: ConciergeServices = Depends(get_services),
) -> dict[str, Any]:
    """
    Ask for a stage change. The soft gate leaves the stage unchanged when
    the target's required lead fields are missing.
    """
    snapshot = await services.context_store.get(session_id)
    if snapshot is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown session")
    lead_fields = snapshot.lead.model_dump()
    new_stage = attempt_transition(snapshot.stage, payload.stage, lead_fields)
    advanced = new_stage == payload.stage and new_stage != snapshot.stage
    if new_stage != snapshot.stage:
        await services.context_store.update(session_id, {"stage": new_stage})
    return {
        "stage": new_stage.value,
        "advanced": advanced,
        "missing": sorted(missing_fields(payload.stage, lead_fields)),
    }
