from __future__ import annotations

from enum import Enum

from pydantic import Field

from .base import CamelModel


class DemoFeature(str, Enum):
    CHAT = "chat"
    VOICE_TTS = "voice_tts"
    WEBCAM_ANALYSIS = "webcam_analysis"
    SCREENSHOT_ANALYSIS = "screenshot_analysis"
    DOCUMENT_ANALYSIS = "document_analysis"
    VIDEO_TO_APP = "video_to_app"
    LEAD_RESEARCH = "lead_research"


class FeatureUsage(CamelModel):
    tokens_used: int = Field(0, ge=0)
    requests_made: int = Field(0, ge=0)


class DemoSession(CamelModel):
    """
    Fair-use ledger for one session. Counters only ever grow.
    """

    session_id: str
    created_at: float
    expires_at: float
    total_tokens_used: int = Field(0, ge=0)
    total_requests_made: int = Field(0, ge=0)
    feature_usage: dict[str, FeatureUsage] = Field(default_factory=dict)
    is_complete: bool = False
    completed_features: list[str] = Field(default_factory=list)
    exhausted: bool = Field(
        False, description="Sticky: set once a session-wide cap is reached"
    )
    exhausted_features: list[str] = Field(
        default_factory=list, description="Sticky: features whose own cap was reached"
    )

    def usage_for(self, feature: str) -> FeatureUsage:
        return self.feature_usage.get(feature) or FeatureUsage()

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class DemoAccessResult(CamelModel):
    allowed: bool
    reason: str | None = None
    remaining_tokens: int = 0
    remaining_requests: int = 0
    feature_remaining_tokens: int = 0
    feature_remaining_requests: int = 0


__all__ = ["DemoAccessResult", "DemoFeature", "DemoSession", "FeatureUsage"]
