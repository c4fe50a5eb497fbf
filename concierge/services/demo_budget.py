"""
Demo budget manager.

Caps total consumption (tokens and billed requests) per session and per
feature for the curated demo experience. This is independent of the rate
limiter, which caps call frequency. Usage is additive and never decremented;
once a cap is reached the session stays exhausted until it expires.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from pydantic import ValidationError as PydanticValidationError

from ..errors import BudgetExhausted
from ..log_sanitizer import mask_session_id
from ..logging_config import logger
from ..schemas.budget import DemoAccessResult, DemoFeature, DemoSession, FeatureUsage
from ..storage import KeyValueStore

DEMO_SESSION_KEY_TEMPLATE = "concierge:demo:{session_id}"


@dataclass(frozen=True)
class DemoLimits:
    SESSION_DURATION_HOURS: int = 24
    TOTAL_TOKENS: int = 50_000
    TOTAL_REQUESTS: int = 50


@dataclass(frozen=True)
class FeatureBudget:
    tokens: int
    requests: int


DEMO_LIMITS = DemoLimits()

FEATURE_BUDGETS: dict[str, FeatureBudget] = {
    DemoFeature.CHAT.value: FeatureBudget(tokens=10_000, requests=10),
    DemoFeature.VOICE_TTS.value: FeatureBudget(tokens=5_000, requests=5),
    DemoFeature.WEBCAM_ANALYSIS.value: FeatureBudget(tokens=5_000, requests=3),
    DemoFeature.SCREENSHOT_ANALYSIS.value: FeatureBudget(tokens=5_000, requests=3),
    DemoFeature.DOCUMENT_ANALYSIS.value: FeatureBudget(tokens=10_000, requests=2),
    DemoFeature.VIDEO_TO_APP.value: FeatureBudget(tokens=15_000, requests=1),
    DemoFeature.LEAD_RESEARCH.value: FeatureBudget(tokens=10_000, requests=2),
}

# A feature counts as "completed" for the demo at 80% of its token budget.
_FEATURE_COMPLETION_RATIO = 0.8
_SESSION_COMPLETION_FEATURES = 3


def _remaining(cap: int, used: int) -> int:
    return max(0, cap - used)


class DemoBudgetManager:
    def __init__(
        self,
        kv: KeyValueStore,
        *,
        limits: DemoLimits = DEMO_LIMITS,
        feature_budgets: dict[str, FeatureBudget] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._kv = kv
        self.limits = limits
        self.feature_budgets = dict(feature_budgets or FEATURE_BUDGETS)
        self._clock = clock

    @staticmethod
    def _key(session_id: str) -> str:
        return DEMO_SESSION_KEY_TEMPLATE.format(session_id=session_id)

    def _budget_for(self, feature: str) -> FeatureBudget:
        budget = self.feature_budgets.get(feature)
        if budget is None:
            raise ValueError(f"Unknown demo feature '{feature}'")
        return budget

    def _new_session(self, session_id: str) -> DemoSession:
        now = self._clock()
        return DemoSession(
            session_id=session_id,
            created_at=now,
            expires_at=now + self.limits.SESSION_DURATION_HOURS * 3600,
            feature_usage={feature: FeatureUsage() for feature in self.feature_budgets},
        )

    async def _save(self, session: DemoSession) -> None:
        ttl = max(1.0, session.expires_at - self._clock())
        await self._kv.set(
            self._key(session.session_id), session.model_dump(mode="json"), ttl_seconds=ttl
        )

    async def get_session(self, session_id: str) -> DemoSession:
        """
        Return the session's ledger, creating a zeroed one on first access
        or once the previous one has expired.
        """
        data = await self._kv.get(self._key(session_id))
        if data is not None:
            try:
                session = DemoSession.model_validate(data)
            except PydanticValidationError:
                logger.warning(
                    "demo_budget: malformed ledger replaced (session=%s)",
                    mask_session_id(session_id),
                )
            else:
                if not session.is_expired(self._clock()):
                    return session
                logger.info(
                    "demo_budget: session expired, starting a new ledger (session=%s)",
                    mask_session_id(session_id),
                )
        session = self._new_session(session_id)
        await self._save(session)
        return session

    async def peek_session(self, session_id: str) -> DemoSession | None:
        data = await self._kv.get(self._key(session_id))
        if data is None:
            return None
        try:
            session = DemoSession.model_validate(data)
        except PydanticValidationError:
            return None
        if session.is_expired(self._clock()):
            return None
        return session

    def evaluate(
        self, session: DemoSession, feature: str, estimated_tokens: int = 0
    ) -> DemoAccessResult:
        """
        Pure access decision for an already-loaded ledger.
        """
        budget = self._budget_for(feature)
        usage = session.usage_for(feature)
        remaining_tokens = _remaining(self.limits.TOTAL_TOKENS, session.total_tokens_used)
        remaining_requests = _remaining(self.limits.TOTAL_REQUESTS, session.total_requests_made)
        feature_tokens = _remaining(budget.tokens, usage.tokens_used)
        feature_requests = _remaining(budget.requests, usage.requests_made)
        estimated = max(0, int(estimated_tokens))

        result = DemoAccessResult(
            allowed=False,
            remaining_tokens=remaining_tokens,
            remaining_requests=remaining_requests,
            feature_remaining_tokens=feature_tokens,
            feature_remaining_requests=feature_requests,
        )

        if session.is_expired(self._clock()):
            result.reason = "Demo session expired. Please start a new session."
        elif session.exhausted or remaining_tokens <= 0 or estimated > remaining_tokens:
            result.reason = (
                f"Demo session token limit reached ({self.limits.TOTAL_TOKENS} tokens). "
                "Please start a new session."
            )
        elif remaining_requests <= 0:
            result.reason = (
                f"Demo session request limit reached ({self.limits.TOTAL_REQUESTS} requests). "
                "Please start a new session."
            )
        elif feature in session.exhausted_features or feature_tokens <= 0 or estimated > feature_tokens:
            result.reason = (
                f"{feature} token limit reached ({budget.tokens} tokens). Try a different feature."
            )
        elif feature_requests <= 0:
            result.reason = (
                f"{feature} request limit reached ({budget.requests} requests). "
                "Try a different feature."
            )
        else:
            result.allowed = True
        return result

    async def check_access(
        self, session_id: str, feature: str, estimated_tokens: int = 0
    ) -> DemoAccessResult:
        """Whether the session may still consume the feature. Does not change usage."""
        session = await self.get_session(session_id)
        return self.evaluate(session, feature, estimated_tokens)

    async def require_access(
        self, session_id: str, feature: str, estimated_tokens: int = 0
    ) -> DemoAccessResult:
        result = await self.check_access(session_id, feature, estimated_tokens)
        if not result.allowed:
            raise BudgetExhausted(result.reason or "Demo budget exhausted", feature=feature)
        return result

    async def record_usage(
        self, session_id: str, feature: str, tokens: int, requests: int = 1
    ) -> DemoSession:
        """
        Add consumption to the ledger. Amounts must be non-negative; counters
        never go down.
        """
        if tokens < 0 or requests < 0:
            raise ValueError("usage amounts must be non-negative")
        budget = self._budget_for(feature)
        session = await self.get_session(session_id)

        usage = session.usage_for(feature)
        usage = FeatureUsage(
            tokens_used=usage.tokens_used + tokens,
            requests_made=usage.requests_made + requests,
        )
        session.feature_usage[feature] = usage
        session.total_tokens_used += tokens
        session.total_requests_made += requests

        if (
            usage.tokens_used >= budget.tokens * _FEATURE_COMPLETION_RATIO
            or usage.requests_made >= budget.requests
        ) and feature not in session.completed_features:
            session.completed_features.append(feature)

        if (
            len(session.completed_features) >= _SESSION_COMPLETION_FEATURES
            or session.total_tokens_used >= self.limits.TOTAL_TOKENS * _FEATURE_COMPLETION_RATIO
        ):
            session.is_complete = True

        if (
            session.total_tokens_used >= self.limits.TOTAL_TOKENS
            or session.total_requests_made >= self.limits.TOTAL_REQUESTS
        ):
            session.exhausted = True
        if (
            usage.tokens_used >= budget.tokens or usage.requests_made >= budget.requests
        ) and feature not in session.exhausted_features:
            session.exhausted_features.append(feature)

        await self._save(session)
        if session.exhausted or feature in session.exhausted_features:
            logger.info(
                "demo_budget: %s exhausted (session=%s, tokens=%d, requests=%d)",
                "session" if session.exhausted else feature,
                mask_session_id(session_id),
                session.total_tokens_used,
                session.total_requests_made,
            )
        return session


def estimate_tokens(text: str) -> int:
    """Rough token estimate used when the provider does not report usage."""
    if not text:
        return 0
    return max(1, len(text) // 4)


__all__ = [
    "DEMO_LIMITS",
    "FEATURE_BUDGETS",
    "DemoBudgetManager",
    "DemoLimits",
    "FeatureBudget",
    "estimate_tokens",
]
