"""
Single choke point for tool invocations.

Every call goes through the same steps, in this order:

1. rate limit per (tool, session), refused before anything else runs;
2. idempotency replay per (session, client key), short-circuiting execution;
3. the tool handler itself, with failures translated into error kinds;
4. best-effort capability recording on the session context.

A failing state backend in steps 1 or 2 still answers in the tool envelope
(500, `internal_error`).

The gateway never enforces demo budgets; handlers that know their own cost
consult the budget manager directly. Failed executions are not retried.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from fastapi.encoders import jsonable_encoder
from pydantic import ValidationError as PydanticValidationError

from ..context_store import ContextStore
from ..errors import (
    ConciergeError,
    InternalError,
    RateLimitExceeded,
    format_validation_details,
    summarize_validation_details,
)
from ..log_sanitizer import mask_session_id
from ..logging_config import logger
from ..schemas.activity import ActivityItem, ActivityStatus
from ..schemas.tools import ToolExecution, ToolRunResult
from ..tools.base import ToolSpec
from .activity_log import ActivityLog
from .idempotency import IdempotencyCache
from .non_fatal import run_non_fatal
from .rate_limiter import RateLimiter


def _internal_error() -> ToolRunResult:
    return ToolRunResult(
        ok=False, error=InternalError.GENERIC_MESSAGE, code="internal_error", status_code=500
    )


class ToolGateway:
    def __init__(
        self,
        *,
        tools: Mapping[str, ToolSpec],
        rate_limiter: RateLimiter,
        idempotency: IdempotencyCache,
        context_store: ContextStore,
        activity_log: ActivityLog | None = None,
    ) -> None:
        self.tools = dict(tools)
        self.rate_limiter = rate_limiter
        self.idempotency = idempotency
        self.context_store = context_store
        self.activity_log = activity_log
        for spec in self.tools.values():
            if spec.rate_limit is not None:
                self.rate_limiter.tool_policies.setdefault(spec.name, spec.rate_limit)

    def names(self) -> list[str]:
        return sorted(self.tools)

    def has_tool(self, name: str) -> bool:
        return name in self.tools

    async def execute(
        self,
        tool_name: str,
        session_id: str | None,
        payload: Any,
        *,
        idempotency_key: str | None = None,
    ) -> ToolRunResult:
        spec = self.tools.get(tool_name)
        if spec is None:
            return ToolRunResult(
                ok=False,
                error=f"Unknown tool '{tool_name}'",
                code="unknown_tool",
                status_code=404,
            )

        try:
            decision = await self.rate_limiter.hit(tool_name, session_id)
        except Exception:
            logger.exception("tool_gateway: rate limiter unavailable for tool %s", tool_name)
            return _internal_error()
        if not decision.allowed:
            logger.info(
                "tool_gateway: rate limited tool=%s session=%s retry_after=%ss",
                tool_name,
                mask_session_id(session_id),
                decision.retry_after,
            )
            exc = RateLimitExceeded(decision.retry_after)
            return ToolRunResult(
                ok=False,
                error=exc.message,
                code=exc.code,
                status_code=exc.status_code,
                retry_after=exc.retry_after,
            )

        async def _compute() -> ToolRunResult:
            return await self._run(spec, session_id, payload)

        try:
            result, replayed = await self.idempotency.execute_once(
                session_id, idempotency_key, _compute
            )
        except Exception:
            logger.exception("tool_gateway: idempotency cache unavailable for tool %s", tool_name)
            return _internal_error()
        if replayed:
            logger.info(
                "tool_gateway: replayed cached response tool=%s session=%s",
                tool_name,
                mask_session_id(session_id),
            )
        return result

    async def _run(self, spec: ToolSpec, session_id: str | None, payload: Any) -> ToolRunResult:
        execution = ToolExecution(
            type=spec.name, input=payload if isinstance(payload, dict) else {}
        )
        activity = await self._start_activity(spec, session_id)
        execution.start()

        try:
            params = spec.input_model.model_validate(payload)
            output = await spec.handler(session_id, params)
        except PydanticValidationError as exc:
            details = format_validation_details(exc.errors())
            result = ToolRunResult(
                ok=False,
                error=summarize_validation_details(details),
                code="invalid_input",
                status_code=400,
            )
        except InternalError:
            logger.exception("tool_gateway: tool %s failed", spec.name)
            result = _internal_error()
        except ConciergeError as exc:
            logger.info(
                "tool_gateway: tool %s returned %s: %s", spec.name, exc.code, exc.message
            )
            result = ToolRunResult(
                ok=False,
                error=exc.message,
                code=exc.code,
                status_code=exc.status_code,
                retry_after=getattr(exc, "retry_after", None),
            )
        except Exception:
            logger.exception("tool_gateway: unexpected error in tool %s", spec.name)
            result = _internal_error()
        else:
            result = ToolRunResult(ok=True, output=jsonable_encoder(output))

        if result.ok:
            execution.complete(result.output)
        else:
            execution.fail(result.error or "")
        logger.info(
            "tool_gateway: tool=%s session=%s status=%s duration_ms=%s",
            spec.name,
            mask_session_id(session_id),
            execution.status.value,
            execution.duration_ms,
        )

        if session_id and result.ok:
            await run_non_fatal(
                "capability_recording",
                self.context_store.record_capability_used(
                    session_id, spec.capability, tool_input=payload, tool_output=result.output
                ),
                session_id=session_id,
            )
        if session_id and activity is not None and self.activity_log is not None:
            await run_non_fatal(
                "activity_finish",
                self.activity_log.finish(
                    session_id,
                    activity.id,
                    ActivityStatus.COMPLETED if result.ok else ActivityStatus.FAILED,
                    description=None if result.ok else result.error,
                    metadata={
                        "executionId": execution.id,
                        "durationMs": execution.duration_ms,
                    },
                ),
                session_id=session_id,
            )
        return result

    async def _start_activity(
        self, spec: ToolSpec, session_id: str | None
    ) -> ActivityItem | None:
        if not session_id or self.activity_log is None:
            return None
        try:
            return await self.activity_log.start(
                session_id,
                type="tool",
                title=spec.title,
                description=f"Running {spec.name}",
                metadata={"tool": spec.name},
            )
        except Exception:
            logger.warning(
                "non-fatal side effect 'activity_start' failed (session=%s)",
                mask_session_id(session_id),
                exc_info=True,
            )
            return None


__all__ = ["ToolGateway"]
