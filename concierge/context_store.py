"""
Per-session ContextSnapshot persistence.

The store has no business logic: it reads, replaces, merges and deletes one
snapshot per session id. Expiry is delegated to the underlying key-value
backend; every write refreshes the idle TTL.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .log_sanitizer import mask_session_id
from .logging_config import logger
from .schemas.context import ContextSnapshot
from .services.redaction import summarize_for_context
from .storage import KeyValueStore

CONTEXT_KEY_TEMPLATE = "concierge:context:{session_id}"

# Accept both camelCase (wire) and snake_case (Python) keys in partial updates.
_FIELD_NAMES: dict[str, str] = {}
for _name, _field in ContextSnapshot.model_fields.items():
    _FIELD_NAMES[_name] = _name
    if _field.alias:
        _FIELD_NAMES[_field.alias] = _name


def _normalize_partial(partial: Mapping[str, Any]) -> dict[str, Any]:
    normalized: dict[str, Any] = {}
    for key, value in partial.items():
        field_name = _FIELD_NAMES.get(key)
        if field_name is None:
            raise ValueError(f"Unknown context field '{key}'")
        if field_name in ("session_id", "created_at", "updated_at"):
            continue
        if isinstance(value, BaseModel):
            value = value.model_dump()
        normalized[field_name] = value
    return normalized


class ContextStore:
    def __init__(
        self,
        kv: KeyValueStore,
        *,
        ttl_seconds: float,
        mask_token: str = "***",
    ) -> None:
        self._kv = kv
        self.ttl_seconds = ttl_seconds
        self.mask_token = mask_token

    @staticmethod
    def _key(session_id: str) -> str:
        return CONTEXT_KEY_TEMPLATE.format(session_id=session_id)

    async def get(self, session_id: str) -> ContextSnapshot | None:
        """
        Return the snapshot, or None for unknown / expired sessions.
        A malformed stored payload is treated the same as a missing one.
        """
        data = await self._kv.get(self._key(session_id))
        if data is None:
            return None
        try:
            return ContextSnapshot.model_validate(data)
        except PydanticValidationError:
            logger.warning(
                "context_store: discarding malformed snapshot (session=%s)",
                mask_session_id(session_id),
            )
            return None

    async def store(self, session_id: str, snapshot: ContextSnapshot) -> None:
        """Full replace."""
        payload = snapshot.model_copy(
            update={"session_id": session_id, "updated_at": time.time()}
        )
        await self._kv.set(
            self._key(session_id), payload.model_dump(mode="json"), ttl_seconds=self.ttl_seconds
        )

    async def update(self, session_id: str, partial: Mapping[str, Any]) -> ContextSnapshot:
        """
        Shallow-merge partial onto the existing snapshot, creating an empty
        skeleton first when the session has none.
        """
        existing = await self.get(session_id)
        base = existing or ContextSnapshot.skeleton(session_id)
        merged = base.model_dump()
        merged.update(_normalize_partial(partial))
        snapshot = ContextSnapshot.model_validate(merged)
        await self.store(session_id, snapshot)
        return snapshot

    async def delete(self, session_id: str) -> bool:
        return await self._kv.delete(self._key(session_id))

    async def ensure(self, session_id: str) -> tuple[ContextSnapshot, bool]:
        """
        Get-or-create. Returns (snapshot, created); an expired session comes
        back as a fresh skeleton at GREETING.
        """
        existing = await self.get(session_id)
        if existing is not None:
            return existing, False
        snapshot = ContextSnapshot.skeleton(session_id)
        await self.store(session_id, snapshot)
        return snapshot, True

    async def record_capability_used(
        self,
        session_id: str,
        capability: str,
        *,
        tool_input: Any = None,
        tool_output: Any = None,
    ) -> ContextSnapshot:
        """
        Append capability to the session and keep a redacted summary of the run.
        Repeats are kept; they signal re-use.
        """
        existing = await self.get(session_id)
        capabilities = list(existing.capabilities) if existing else []
        tool_outputs = dict(existing.tool_outputs) if existing else {}
        capabilities.append(capability)
        tool_outputs[capability] = summarize_for_context(
            tool_input, tool_output, mask_token=self.mask_token
        )
        return await self.update(
            session_id, {"capabilities": capabilities, "tool_outputs": tool_outputs}
        )


__all__ = ["CONTEXT_KEY_TEMPLATE", "ContextStore"]
