from __future__ import annotations

import time
import uuid
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from .base import CamelModel


class ToolExecutionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class ToolExecution(CamelModel):
    """Bookkeeping for a single tool invocation; lives only in process memory."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    type: str
    input: dict[str, Any] = Field(default_factory=dict)
    output: Any | None = None
    error: str | None = None
    status: ToolExecutionStatus = ToolExecutionStatus.PENDING
    start_time: float = Field(default_factory=time.time)
    end_time: float | None = None

    def start(self) -> None:
        self.status = ToolExecutionStatus.RUNNING
        self.start_time = time.time()

    def complete(self, output: Any) -> None:
        self.status = ToolExecutionStatus.COMPLETED
        self.output = output
        self.end_time = time.time()

    def fail(self, error: str) -> None:
        self.status = ToolExecutionStatus.ERROR
        self.error = error
        self.end_time = time.time()

    @property
    def duration_ms(self) -> float | None:
        if self.end_time is None:
            return None
        return round((self.end_time - self.start_time) * 1000, 2)


class ToolRunResult(BaseModel):
    """
    Outcome of a gateway call. `body()` is exactly what goes on the wire.
    """

    ok: bool
    output: Any | None = None
    error: str | None = None
    code: str | None = None
    status_code: int = 200
    retry_after: int | None = None

    def body(self) -> dict[str, Any]:
        if self.ok:
            return {"ok": True, "output": self.output}
        payload: dict[str, Any] = {"ok": False, "error": self.error}
        if self.code:
            payload["code"] = self.code
        return payload


__all__ = ["ToolExecution", "ToolExecutionStatus", "ToolRunResult"]
