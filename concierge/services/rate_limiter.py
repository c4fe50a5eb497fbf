"""
Per-(tool, session) request limiting.

Fixed window counter: the first call opens a window of `window_seconds`;
calls inside it increment the count and are refused once it passes
`max_requests`. An expired window is replaced by a fresh one with count 1.
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable
from dataclasses import dataclass

from ..storage import KeyValueStore

ANONYMOUS_SESSION = "anon"
RATE_LIMIT_KEY_TEMPLATE = "concierge:ratelimit:{bucket}"


@dataclass(frozen=True)
class RateLimitPolicy:
    max_requests: int
    window_seconds: float


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after: int


def rate_limit_bucket(tool_name: str, session_id: str | None) -> str:
    """`<tool>:<session>`; callers without a session share the anon bucket."""
    return f"{tool_name}:{session_id or ANONYMOUS_SESSION}"


class RateLimiter:
    def __init__(
        self,
        kv: KeyValueStore,
        *,
        default_policy: RateLimitPolicy,
        tool_policies: dict[str, RateLimitPolicy] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._kv = kv
        self.default_policy = default_policy
        self.tool_policies = dict(tool_policies or {})
        self._clock = clock

    def policy_for(self, tool_name: str) -> RateLimitPolicy:
        return self.tool_policies.get(tool_name, self.default_policy)

    async def hit(self, tool_name: str, session_id: str | None) -> RateLimitDecision:
        """
        Count one call and report whether it fits the window.
        """
        policy = self.policy_for(tool_name)
        bucket = rate_limit_bucket(tool_name, session_id)
        window = await self._kv.incr_window(
            RATE_LIMIT_KEY_TEMPLATE.format(bucket=bucket), policy.window_seconds
        )
        now = self._clock()
        retry_after = max(1, math.ceil(window.reset_at - now))
        allowed = window.count <= policy.max_requests
        return RateLimitDecision(
            allowed=allowed,
            limit=policy.max_requests,
            remaining=max(0, policy.max_requests - window.count),
            reset_at=window.reset_at,
            retry_after=retry_after,
        )


__all__ = [
    "ANONYMOUS_SESSION",
    "RateLimitDecision",
    "RateLimitPolicy",
    "RateLimiter",
    "rate_limit_bucket",
]
