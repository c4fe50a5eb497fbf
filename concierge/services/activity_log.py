from __future__ import annotations

from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ..schemas.activity import ActivityItem, ActivityStatus, TERMINAL_ACTIVITY_STATUSES
from ..storage import KeyValueStore

ACTIVITY_KEY_TEMPLATE = "concierge:activity:{session_id}"


class ActivityLog:
    """
    User-visible action log per session, newest first, capped at `limit`
    entries (the oldest fall off). Lives as long as the session context.
    """

    def __init__(self, kv: KeyValueStore, *, ttl_seconds: float, limit: int = 15) -> None:
        self._kv = kv
        self.ttl_seconds = ttl_seconds
        self.limit = limit

    @staticmethod
    def _key(session_id: str) -> str:
        return ACTIVITY_KEY_TEMPLATE.format(session_id=session_id)

    async def recent(self, session_id: str) -> list[ActivityItem]:
        raw = await self._kv.get(self._key(session_id))
        if not isinstance(raw, list):
            return []
        items: list[ActivityItem] = []
        for entry in raw:
            try:
                items.append(ActivityItem.model_validate(entry))
            except PydanticValidationError:
                continue
        return items

    async def _save(self, session_id: str, items: list[ActivityItem]) -> None:
        await self._kv.set(
            self._key(session_id),
            [item.model_dump(mode="json") for item in items[: self.limit]],
            ttl_seconds=self.ttl_seconds,
        )

    async def start(
        self,
        session_id: str,
        *,
        type: str,
        title: str,
        description: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> ActivityItem:
        item = ActivityItem(
            type=type,
            status=ActivityStatus.IN_PROGRESS,
            title=title,
            description=description,
            metadata=dict(metadata or {}),
        )
        items = await self.recent(session_id)
        await self._save(session_id, [item, *items])
        return item

    async def finish(
        self,
        session_id: str,
        item_id: str,
        status: ActivityStatus,
        *,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ActivityItem | None:
        """
        Move an item to a terminal status. Returns None when the item has
        already fallen off the capped list.
        """
        if ActivityStatus(status) not in TERMINAL_ACTIVITY_STATUSES:
            raise ValueError(f"'{status}' is not a terminal activity status")
        items = await self.recent(session_id)
        updated: ActivityItem | None = None
        for index, item in enumerate(items):
            if item.id != item_id:
                continue
            changes: dict[str, Any] = {"status": ActivityStatus(status)}
            if description is not None:
                changes["description"] = description
            if metadata:
                changes["metadata"] = {**item.metadata, **metadata}
            updated = item.model_copy(update=changes)
            items[index] = updated
            break
        if updated is not None:
            await self._save(session_id, items)
        return updated

    async def clear(self, session_id: str) -> bool:
        return await self._kv.delete(self._key(session_id))


__all__ = ["ACTIVITY_KEY_TEMPLATE", "ActivityLog"]
