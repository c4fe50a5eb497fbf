"""
Redis-backed store for multi-instance deployments.

Values are JSON documents written with millisecond expiries; counters use
INCR + PEXPIRE so the window starts on the first hit and every instance
sees the same count.
"""

from __future__ import annotations

import json
import time
from collections.abc import Callable
from typing import Any

from fastapi.encoders import jsonable_encoder
from redis.asyncio import Redis

from ..redis_client import redis_delete, redis_get_json, redis_set_json
from .base import KeyValueStore, WindowCount


class RedisKeyValueStore(KeyValueStore):
    def __init__(self, redis: Redis, *, clock: Callable[[], float] = time.time) -> None:
        self.redis = redis
        self._clock = clock

    async def get(self, key: str) -> Any | None:
        return await redis_get_json(self.redis, key)

    async def set(self, key: str, value: Any, *, ttl_seconds: float | None = None) -> None:
        await redis_set_json(self.redis, key, value, ttl_seconds=ttl_seconds)

    async def add(self, key: str, value: Any, *, ttl_seconds: float | None = None) -> bool:
        data = json.dumps(jsonable_encoder(value), ensure_ascii=False)
        if ttl_seconds is not None:
            written = await self.redis.set(
                key, data, nx=True, px=max(1, int(ttl_seconds * 1000))
            )
        else:
            written = await self.redis.set(key, data, nx=True)
        return bool(written)

    async def delete(self, key: str) -> bool:
        return bool(await redis_delete(self.redis, key))

    async def incr_window(self, key: str, window_seconds: float) -> WindowCount:
        window_ms = max(1, int(window_seconds * 1000))
        count = int(await self.redis.incr(key))
        if count == 1:
            await self.redis.pexpire(key, window_ms)
        ttl_ms = await self.redis.pttl(key)
        if ttl_ms is None or ttl_ms < 0:
            # Counter survived without an expiry (e.g. a crash between INCR and PEXPIRE).
            await self.redis.pexpire(key, window_ms)
            ttl_ms = window_ms
        return WindowCount(count=count, reset_at=self._clock() + ttl_ms / 1000.0)


__all__ = ["RedisKeyValueStore"]
