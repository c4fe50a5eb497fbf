from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class WindowCount:
    """Result of an atomic increment-with-expiry."""

    count: int
    reset_at: float


class KeyValueStore(abc.ABC):
    """
    Keyed JSON store with per-key expiry.

    This is the only place mutable cross-request state lives. Entries whose
    expiry has passed are treated as absent by every operation.
    """

    @abc.abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the stored value, or None when missing or expired."""

    @abc.abstractmethod
    async def set(self, key: str, value: Any, *, ttl_seconds: float | None = None) -> None:
        """Replace the value stored under key."""

    @abc.abstractmethod
    async def add(self, key: str, value: Any, *, ttl_seconds: float | None = None) -> bool:
        """Store value only if key is absent; returns True when written."""

    @abc.abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove key; returns True if a live entry existed."""

    @abc.abstractmethod
    async def incr_window(self, key: str, window_seconds: float) -> WindowCount:
        """
        Increment a counter that lives for one window.

        The first increment (or the first after expiry) starts a new window
        of window_seconds; later increments keep the existing reset time.
        """


__all__ = ["KeyValueStore", "WindowCount"]
