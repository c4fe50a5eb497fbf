"""
Service wiring and FastAPI dependency providers.

All shared state hangs off one `ConciergeServices` instance per app, built
lazily on first use. Tests override `get_services` with their own instance.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

import httpx
from fastapi import Request

from .chat.pipeline import ChatProvider, ChatStreamingPipeline
from .context_store import ContextStore
from .logging_config import logger
from .redis_client import get_redis_client
from .services.activity_log import ActivityLog
from .services.demo_budget import DemoBudgetManager
from .services.idempotency import IdempotencyCache
from .services.rate_limiter import RateLimiter, RateLimitPolicy
from .services.tool_gateway import ToolGateway
from .settings import Settings, settings
from .storage import KeyValueStore, MemoryKeyValueStore, RedisKeyValueStore
from .tools.lead_research import LeadResearcher
from .tools.meeting import MeetingScheduler
from .tools.registry import build_default_tools
from .tools.url_context import UrlAnalyzer
from .upstream import OpenAICompatibleProvider


@dataclass
class ConciergeServices:
    kv: KeyValueStore
    http_client: httpx.AsyncClient
    context_store: ContextStore
    activity_log: ActivityLog
    rate_limiter: RateLimiter
    idempotency: IdempotencyCache
    budget_manager: DemoBudgetManager
    tool_gateway: ToolGateway
    pipeline: ChatStreamingPipeline

    async def aclose(self) -> None:
        await self.http_client.aclose()


def create_kv_store(config: Settings = settings) -> KeyValueStore:
    backend = config.state_backend.strip().lower()
    if backend == "redis":
        logger.info("Using Redis state backend")
        return RedisKeyValueStore(get_redis_client())
    if backend != "memory":
        raise ValueError(f"Unsupported STATE_BACKEND '{config.state_backend}'")
    logger.info("Using in-memory state backend (single process only)")
    return MemoryKeyValueStore()


def build_services(
    *,
    kv: KeyValueStore,
    http_client: httpx.AsyncClient,
    config: Settings = settings,
    provider: ChatProvider | None = None,
    rate_limit_policy: RateLimitPolicy | None = None,
    clock: Callable[[], float] = time.time,
) -> ConciergeServices:
    context_store = ContextStore(
        kv, ttl_seconds=config.context_ttl_seconds, mask_token=config.redaction_mask_token
    )
    activity_log = ActivityLog(
        kv, ttl_seconds=config.context_ttl_seconds, limit=config.activity_log_limit
    )
    rate_limiter = RateLimiter(
        kv,
        default_policy=rate_limit_policy
        or RateLimitPolicy(
            max_requests=config.tool_rate_limit_max,
            window_seconds=config.tool_rate_limit_window_seconds,
        ),
        clock=clock,
    )
    idempotency = IdempotencyCache(kv, ttl_seconds=config.idempotency_ttl_seconds)
    budget_manager = DemoBudgetManager(kv, clock=clock)

    url_analyzer = UrlAnalyzer(
        http_client,
        allowed_domains=config.url_context_allowed_domains,
        timeout=config.url_fetch_timeout,
        total_timeout=config.url_fetch_total_timeout,
        max_bytes=config.url_fetch_max_bytes,
    )
    tools = build_default_tools(
        scheduler=MeetingScheduler(kv),
        url_analyzer=url_analyzer,
        lead_researcher=LeadResearcher(
            analyzer=url_analyzer,
            context_store=context_store,
            budget_manager=budget_manager,
        ),
    )
    tool_gateway = ToolGateway(
        tools=tools,
        rate_limiter=rate_limiter,
        idempotency=idempotency,
        context_store=context_store,
        activity_log=activity_log,
    )

    if provider is None:
        provider = OpenAICompatibleProvider(
            http_client,
            base_url=config.llm_base_url,
            api_key=config.llm_api_key,
            model=config.llm_model,
            temperature=config.llm_temperature,
            timeout=config.upstream_timeout,
            total_timeout=config.upstream_total_timeout,
        )
    pipeline = ChatStreamingPipeline(
        provider=provider, context_store=context_store, budget_manager=budget_manager
    )
    return ConciergeServices(
        kv=kv,
        http_client=http_client,
        context_store=context_store,
        activity_log=activity_log,
        rate_limiter=rate_limiter,
        idempotency=idempotency,
        budget_manager=budget_manager,
        tool_gateway=tool_gateway,
        pipeline=pipeline,
    )


async def get_services(request: Request) -> ConciergeServices:
    services = getattr(request.app.state, "services", None)
    if services is None:
        services = build_services(
            kv=create_kv_store(),
            http_client=httpx.AsyncClient(timeout=settings.upstream_timeout),
        )
        request.app.state.services = services
    return services
