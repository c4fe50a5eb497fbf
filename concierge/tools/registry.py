from __future__ import annotations

from ..services.rate_limiter import RateLimitPolicy
from .base import ToolSpec
from .calc import CalcInput, run_calc
from .lead_research import LeadResearcher, LeadResearchInput
from .meeting import MeetingInput, MeetingScheduler
from .roi import RoiInput, run_roi
from .url_context import UrlAnalyzer, UrlInput


def build_default_tools(
    *,
    scheduler: MeetingScheduler,
    url_analyzer: UrlAnalyzer,
    lead_researcher: LeadResearcher,
) -> dict[str, ToolSpec]:
    """The tools exposed under POST /tools/<name>, keyed by name."""
    specs = [
        ToolSpec(
            name="roi",
            title="ROI calculation",
            input_model=RoiInput,
            handler=run_roi,
            capability="roi",
        ),
        ToolSpec(
            name="calc",
            title="Calculation",
            input_model=CalcInput,
            handler=run_calc,
            capability="calc",
        ),
        ToolSpec(
            name="meeting",
            title="Meeting booking",
            input_model=MeetingInput,
            handler=scheduler.book,
            capability="meeting",
            rate_limit=RateLimitPolicy(max_requests=3, window_seconds=60.0),
        ),
        ToolSpec(
            name="url",
            title="URL analysis",
            input_model=UrlInput,
            handler=url_analyzer.run,
            capability="urlContext",
        ),
        ToolSpec(
            name="lead-research",
            title="Lead research",
            input_model=LeadResearchInput,
            handler=lead_researcher.run,
            capability="leadResearch",
            rate_limit=RateLimitPolicy(max_requests=2, window_seconds=60.0),
        ),
    ]
    return {spec.name: spec for spec in specs}


__all__ = ["build_default_tools"]
