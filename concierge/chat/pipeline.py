"""
Chat streaming pipeline: validate, prepare, stream.

Everything that can refuse a request (validation, budget) happens in
`validate`/`prepare`, before the HTTP response starts. Once `stream` runs the
status line is already sent, so failures can only be reported in-band as a
terminal `event: error` frame.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Protocol

from pydantic import ValidationError as PydanticValidationError

from ..context_store import ContextStore
from ..errors import (
    InternalError,
    UpstreamProviderError,
    ValidationError,
    format_validation_details,
)
from ..log_sanitizer import mask_session_id
from ..logging_config import logger
from ..schemas.budget import DemoFeature
from ..schemas.chat import ChatRequest
from ..schemas.context import ContextSnapshot, Intent
from ..services.conversation_analysis import analyze_message
from ..services.demo_budget import DemoBudgetManager, estimate_tokens
from ..services.non_fatal import run_non_fatal
from ..services.personalization import build_system_prompt
from ..services.stage_machine import attempt_transition, stage_index
from .chunks import Chunk, DoneChunk, TextChunk, ToolChunk
from .sse import END_FRAME, encode_data_frame, encode_error_frame, encode_payload_frame


class ChatProvider(Protocol):
    def stream(self, messages: list[dict[str, str]]) -> AsyncIterator[Chunk]: ...


@dataclass
class PreparedChat:
    request: ChatRequest
    session_id: str | None
    snapshot: ContextSnapshot | None
    system_prompt: str
    messages: list[dict[str, str]] = field(default_factory=list)


class ChatStreamingPipeline:
    def __init__(
        self,
        *,
        provider: ChatProvider,
        context_store: ContextStore,
        budget_manager: DemoBudgetManager | None = None,
    ) -> None:
        self.provider = provider
        self.context_store = context_store
        self.budget_manager = budget_manager

    @staticmethod
    def validate(raw: Any) -> ChatRequest:
        try:
            return ChatRequest.model_validate(raw)
        except PydanticValidationError as exc:
            raise ValidationError(
                "Invalid request", details=format_validation_details(exc.errors())
            ) from exc

    async def prepare(self, request: ChatRequest, session_id: str | None) -> PreparedChat:
        """
        Load and enrich the session context, apply any stage transition and
        check the chat budget. Raises BudgetExhausted before any byte is sent.
        """
        snapshot: ContextSnapshot | None = None
        if session_id:
            snapshot = await self._update_context(session_id, request.last_user_message())
            if self.budget_manager is not None:
                await self.budget_manager.require_access(
                    session_id,
                    DemoFeature.CHAT.value,
                    estimate_tokens(request.last_user_message() or ""),
                )

        system_prompt = build_system_prompt(snapshot)
        messages = [{"role": "system", "content": system_prompt}]
        messages.extend(
            {"role": message.role, "content": message.content} for message in request.messages
        )
        return PreparedChat(
            request=request,
            session_id=session_id,
            snapshot=snapshot,
            system_prompt=system_prompt,
            messages=messages,
        )

    async def _update_context(self, session_id: str, text: str | None) -> ContextSnapshot:
        snapshot, created = await self.context_store.ensure(session_id)
        if created:
            logger.info("chat: new session context (session=%s)", mask_session_id(session_id))

        analysis = analyze_message(text)
        partial: dict[str, Any] = {}

        lead = snapshot.lead.model_dump()
        if analysis.name and not snapshot.lead.name:
            lead["name"] = analysis.name
        if analysis.email and analysis.email != snapshot.lead.email:
            lead["email"] = analysis.email
        if lead != snapshot.lead.model_dump():
            partial["lead"] = lead

        if analysis.role and (analysis.role_confidence or 0) >= (snapshot.role_confidence or 0):
            partial["role"] = analysis.role
            partial["role_confidence"] = analysis.role_confidence

        if analysis.intent != "general":
            partial["intent"] = Intent(type=analysis.intent, slots=analysis.slots)

        target = analysis.target_stage
        if target is not None and stage_index(target) > stage_index(snapshot.stage):
            new_stage = attempt_transition(snapshot.stage, target, lead)
            if new_stage != snapshot.stage:
                partial["stage"] = new_stage
                logger.info(
                    "chat: stage %s -> %s (session=%s)",
                    snapshot.stage.value,
                    new_stage.value,
                    mask_session_id(session_id),
                )

        if not partial:
            return snapshot
        return await self.context_store.update(session_id, partial)

    async def stream(self, prepared: PreparedChat) -> AsyncGenerator[str, None]:
        """
        Yield SSE frames. Exactly one terminal frame: `end` after success or
        `error` after a failure. Closing this generator closes the provider
        stream as well.
        """
        chunks = self.provider.stream(prepared.messages)
        streamed: list[str] = []
        usage_tokens: int | None = None
        try:
            async for chunk in chunks:
                if isinstance(chunk, TextChunk):
                    if not chunk.text:
                        continue
                    streamed.append(chunk.text)
                    yield encode_data_frame(chunk.text)
                elif isinstance(chunk, ToolChunk):
                    if chunk.error is not None:
                        raise UpstreamProviderError(chunk.error)
                    yield encode_payload_frame(chunk.payload)
                elif isinstance(chunk, DoneChunk):
                    usage_tokens = chunk.usage_tokens
                    break
        except UpstreamProviderError as exc:
            logger.warning(
                "chat: upstream failure (session=%s): %s",
                mask_session_id(prepared.session_id),
                exc.message,
            )
            yield encode_error_frame(exc.message)
            return
        except Exception:
            logger.exception(
                "chat: stream failed (session=%s)", mask_session_id(prepared.session_id)
            )
            yield encode_error_frame(InternalError.GENERIC_MESSAGE)
            return
        finally:
            aclose = getattr(chunks, "aclose", None)
            if aclose is not None:
                await aclose()

        if prepared.session_id and self.budget_manager is not None:
            tokens = usage_tokens
            if tokens is None:
                tokens = estimate_tokens(prepared.system_prompt) + estimate_tokens(
                    "".join(streamed)
                )
            await run_non_fatal(
                "chat_usage",
                self.budget_manager.record_usage(
                    prepared.session_id, DemoFeature.CHAT.value, tokens
                ),
                session_id=prepared.session_id,
            )
        yield END_FRAME


__all__ = ["ChatProvider", "ChatStreamingPipeline", "PreparedChat"]
