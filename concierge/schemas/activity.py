from __future__ import annotations

import time
import uuid
from enum import Enum
from typing import Any

from pydantic import Field

from .base import CamelModel


class ActivityStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_ACTIVITY_STATUSES = frozenset({ActivityStatus.COMPLETED, ActivityStatus.FAILED})


class ActivityItem(CamelModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    type: str = Field(..., description="tool / upload / system")
    status: ActivityStatus = ActivityStatus.PENDING
    title: str
    description: str = ""
    timestamp: float = Field(default_factory=time.time)
    metadata: dict[str, Any] = Field(default_factory=dict)


__all__ = ["ActivityItem", "ActivityStatus", "TERMINAL_ACTIVITY_STATUSES"]
