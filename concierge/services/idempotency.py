"""
Replay suppression for tool calls.

A successful response is cached under (session, client idempotency key) for
a short TTL and returned verbatim to retries. Calls that arrive while the
first one is still running wait for it instead of executing again, so the
side effect runs at most once per key within the TTL.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from pydantic import ValidationError as PydanticValidationError

from ..logging_config import logger
from ..schemas.tools import ToolRunResult
from ..storage import KeyValueStore
from .non_fatal import run_non_fatal

IDEMPOTENCY_KEY_TEMPLATE = "concierge:idem:{session_id}:{idempotency_key}"
DEFAULT_IDEMPOTENCY_TTL_SECONDS = 300


class IdempotencyCache:
    def __init__(
        self, kv: KeyValueStore, *, ttl_seconds: float = DEFAULT_IDEMPOTENCY_TTL_SECONDS
    ) -> None:
        self._kv = kv
        self.ttl_seconds = ttl_seconds
        self._inflight: dict[str, asyncio.Future[ToolRunResult]] = {}

    @staticmethod
    def cache_key(session_id: str | None, idempotency_key: str | None) -> str | None:
        """Only a (session, key) pair identifies a replay; either alone does not."""
        if not session_id or not idempotency_key:
            return None
        return IDEMPOTENCY_KEY_TEMPLATE.format(
            session_id=session_id, idempotency_key=idempotency_key
        )

    async def get(self, key: str) -> ToolRunResult | None:
        data = await self._kv.get(key)
        if data is None:
            return None
        try:
            return ToolRunResult.model_validate(data)
        except PydanticValidationError:
            logger.warning("idempotency: ignoring malformed cache entry")
            return None

    async def put(self, key: str, result: ToolRunResult) -> None:
        await self._kv.set(key, result.model_dump(mode="json"), ttl_seconds=self.ttl_seconds)

    async def execute_once(
        self,
        session_id: str | None,
        idempotency_key: str | None,
        compute: Callable[[], Awaitable[ToolRunResult]],
    ) -> tuple[ToolRunResult, bool]:
        """
        Run compute() unless a cached or in-flight result exists for the key.
        Returns (result, replayed).
        """
        key = self.cache_key(session_id, idempotency_key)
        if key is None:
            return await compute(), False

        cached = await self.get(key)
        if cached is not None:
            return cached, True

        pending = self._inflight.get(key)
        if pending is not None:
            try:
                return await asyncio.shield(pending), True
            except asyncio.CancelledError:
                if not pending.cancelled():
                    raise
                # The first caller went away before finishing; run it ourselves.

        future: asyncio.Future[ToolRunResult] = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            result = await compute()
            if result.ok:
                await run_non_fatal(
                    "idempotency_store", self.put(key, result), session_id=session_id
                )
        except BaseException:
            future.cancel()
            raise
        finally:
            self._inflight.pop(key, None)
        future.set_result(result)
        return result, False


__all__ = ["DEFAULT_IDEMPOTENCY_TTL_SECONDS", "IDEMPOTENCY_KEY_TEMPLATE", "IdempotencyCache"]
