"""Test doubles shared across test modules."""

from __future__ import annotations

from typing import Any

from concierge.chat.chunks import Chunk


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class InMemoryRedis:
    """
    Minimal async Redis replacement used for tests.
    Supports the subset of commands the Redis store uses, with expiries
    driven by the given clock.
    """

    def __init__(self, clock: FakeClock) -> None:
        self._clock = clock
        self._data: dict[str, tuple[Any, float | None]] = {}

    def _live(self, key: str):
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and expires_at <= self._clock():
            del self._data[key]
            return None
        return item

    async def get(self, key: str):
        item = self._live(key)
        return None if item is None else item[0]

    async def set(
        self,
        key: str,
        value: Any,
        ex: int | None = None,
        px: int | None = None,
        nx: bool = False,
    ):
        if nx and self._live(key) is not None:
            return None
        expires_at = None
        if px is not None:
            expires_at = self._clock() + px / 1000.0
        elif ex is not None:
            expires_at = self._clock() + ex
        self._data[key] = (value, expires_at)
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._live(key) is not None:
                removed += 1
            self._data.pop(key, None)
        return removed

    async def incr(self, key: str) -> int:
        item = self._live(key)
        if item is None:
            self._data[key] = (1, None)
            return 1
        value, expires_at = item
        value = int(value) + 1
        self._data[key] = (value, expires_at)
        return value

    async def pexpire(self, key: str, ms: int) -> bool:
        item = self._live(key)
        if item is None:
            return False
        self._data[key] = (item[0], self._clock() + ms / 1000.0)
        return True

    async def pttl(self, key: str) -> int:
        item = self._live(key)
        if item is None:
            return -2
        if item[1] is None:
            return -1
        return int(round((item[1] - self._clock()) * 1000))


class FakeProvider:
    """Chat provider that replays a fixed list of chunks."""

    def __init__(self, chunks: list[Chunk], *, error: Exception | None = None) -> None:
        self.chunks = list(chunks)
        self.error = error
        self.closed = False
        self.calls: list[list[dict[str, str]]] = []

    async def stream(self, messages: list[dict[str, str]]):
        self.calls.append(messages)
        try:
            for chunk in self.chunks:
                yield chunk
            if self.error is not None:
                raise self.error
        finally:
            self.closed = True
