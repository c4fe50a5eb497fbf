from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic import Field, field_validator

from ..errors import ToolInputError
from ..logging_config import logger
from ..schemas.base import CamelModel
from ..storage import KeyValueStore

MEETING_KEY_TEMPLATE = "concierge:meeting:{meeting_id}"
MEETING_SLOT_KEY_TEMPLATE = "concierge:meeting-slot:{slot}"
SLOT_MINUTES = 15


class MeetingInput(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[A-Za-z]{2,}$")
    starts_at: datetime
    duration_minutes: int = Field(30, ge=15, le=240)
    topic: str | None = Field(default=None, max_length=500)

    @field_validator("starts_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def _slots(start: datetime, end: datetime) -> list[str]:
    """Every SLOT_MINUTES slot the interval [start, end) touches."""
    cursor = start.replace(second=0, microsecond=0)
    cursor -= timedelta(minutes=cursor.minute % SLOT_MINUTES)
    slots: list[str] = []
    while cursor < end:
        slots.append(cursor.strftime("%Y-%m-%dT%H:%MZ"))
        cursor += timedelta(minutes=SLOT_MINUTES)
    return slots


class MeetingScheduler:
    """
    Books consultation slots in the shared backend. A slot is claimed with an
    add-if-absent write, so two concurrent bookings cannot both win it.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        *,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._kv = kv
        self._now = now

    async def book(self, session_id: str | None, params: MeetingInput) -> dict[str, Any]:
        start = params.starts_at
        end = start + timedelta(minutes=params.duration_minutes)
        now = self._now()
        if start <= now:
            raise ToolInputError("Meeting start time must be in the future")

        meeting_id = uuid.uuid4().hex
        ttl = (end - now).total_seconds() + 86400
        claimed: list[str] = []
        for slot in _slots(start, end):
            key = MEETING_SLOT_KEY_TEMPLATE.format(slot=slot)
            if not await self._kv.add(key, meeting_id, ttl_seconds=ttl):
                for taken in claimed:
                    await self._kv.delete(taken)
                raise ToolInputError("Requested time slot is not available")
            claimed.append(key)

        record = {
            "meetingId": meeting_id,
            "name": params.name,
            "email": params.email,
            "topic": params.topic,
            "sessionId": session_id,
            "startsAt": start.isoformat(),
            "endsAt": end.isoformat(),
            "status": "confirmed",
        }
        await self._kv.set(MEETING_KEY_TEMPLATE.format(meeting_id=meeting_id), record, ttl_seconds=ttl)
        logger.info("meeting: booked %s at %s (%d min)", meeting_id, start.isoformat(), params.duration_minutes)
        return {
            "meetingId": meeting_id,
            "startsAt": record["startsAt"],
            "endsAt": record["endsAt"],
            "status": "confirmed",
        }


__all__ = ["MeetingInput", "MeetingScheduler"]
