from __future__ import annotations

import copy
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from fastapi.encoders import jsonable_encoder

from .base import KeyValueStore, WindowCount


@dataclass
class _Entry:
    value: Any
    expires_at: float | None


class MemoryKeyValueStore(KeyValueStore):
    """
    Process-local store (single instance or development).

    Values are copied on the way in and out so callers never share mutable
    state with the store, matching what an external store would give them.
    Expired entries are dropped when they are looked up, and writes sweep
    the whole table at most once per `sweep_interval` seconds so keys that
    are never read again do not pile up.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        sweep_interval: float = 60.0,
    ) -> None:
        self._entries: dict[str, _Entry] = {}
        self._clock = clock
        self.sweep_interval = sweep_interval
        self._next_sweep = clock() + sweep_interval

    def _maybe_sweep(self) -> None:
        now = self._clock()
        if now < self._next_sweep:
            return
        self._next_sweep = now + self.sweep_interval
        self.cleanup_expired()

    def _expiry(self, ttl_seconds: float | None) -> float | None:
        if ttl_seconds is None:
            return None
        return self._clock() + ttl_seconds

    def _live(self, key: str) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and entry.expires_at <= self._clock():
            del self._entries[key]
            return None
        return entry

    async def get(self, key: str) -> Any | None:
        entry = self._live(key)
        if entry is None:
            return None
        return copy.deepcopy(entry.value)

    async def set(self, key: str, value: Any, *, ttl_seconds: float | None = None) -> None:
        self._maybe_sweep()
        self._entries[key] = _Entry(
            value=copy.deepcopy(jsonable_encoder(value)),
            expires_at=self._expiry(ttl_seconds),
        )

    async def add(self, key: str, value: Any, *, ttl_seconds: float | None = None) -> bool:
        if self._live(key) is not None:
            return False
        await self.set(key, value, ttl_seconds=ttl_seconds)
        return True

    async def delete(self, key: str) -> bool:
        existed = self._live(key) is not None
        self._entries.pop(key, None)
        return existed

    async def incr_window(self, key: str, window_seconds: float) -> WindowCount:
        self._maybe_sweep()
        now = self._clock()
        entry = self._live(key)
        if entry is None:
            entry = _Entry(value=1, expires_at=now + window_seconds)
            self._entries[key] = entry
        else:
            entry.value = int(entry.value) + 1
        return WindowCount(count=int(entry.value), reset_at=float(entry.expires_at or now))

    def cleanup_expired(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        now = self._clock()
        stale = [
            key
            for key, entry in self._entries.items()
            if entry.expires_at is not None and entry.expires_at <= now
        ]
        for key in stale:
            del self._entries[key]
        return len(stale)


__all__ = ["MemoryKeyValueStore"]
