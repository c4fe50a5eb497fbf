from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Read from OS env and optional .env file in project root.
    _project_root = Path(__file__).parent.parent

    model_config = SettingsConfigDict(
        env_file=str(_project_root / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Environment / mode
    environment: str = Field(
        "development",
        alias="APP_ENV",
        description="Current environment, e.g. development / production",
    )

    # CORS
    cors_allow_origins: str = Field(
        "http://localhost:3000",
        alias="CORS_ALLOW_ORIGINS",
        description="Comma-separated list of allowed CORS origins",
    )

    # Optional shared bearer credential; when unset the API is open.
    api_auth_token: str | None = Field(
        default=None,
        alias="API_AUTH_TOKEN",
        description="If set, callers must send 'Authorization: Bearer <token>'",
    )

    # Shared mutable state (context store, rate limiter, idempotency cache, budgets)
    state_backend: str = Field(
        "memory",
        alias="STATE_BACKEND",
        description="Where shared session state lives: 'memory' (single process) or 'redis'",
    )
    redis_url: str = Field(
        "redis://localhost:6379/0",
        alias="REDIS_URL",
        description="Redis connection URL, e.g. 'redis://redis:6379/0'",
    )

    # Session state TTLs
    context_ttl_seconds: int = Field(
        24 * 3600,
        alias="CONTEXT_TTL_SECONDS",
        description="Idle TTL for a session's ContextSnapshot and activity log",
        ge=60,
    )
    idempotency_ttl_seconds: int = Field(
        300,
        alias="IDEMPOTENCY_TTL_SECONDS",
        description="How long a tool response is replayed for the same idempotency key",
        ge=1,
    )
    activity_log_limit: int = Field(
        15,
        alias="ACTIVITY_LOG_LIMIT",
        description="Maximum number of activity items kept per session",
        ge=1,
    )

    # Tool rate limiting
    tool_rate_limit_max: int = Field(
        10,
        alias="TOOL_RATE_LIMIT_MAX",
        description="Calls allowed per (tool, session) within one window",
        ge=1,
    )
    tool_rate_limit_window_seconds: float = Field(
        60.0,
        alias="TOOL_RATE_LIMIT_WINDOW_SECONDS",
        description="Length of the tool rate-limit window in seconds",
        gt=0,
    )

    # Upstream language-model provider (OpenAI-compatible chat completions)
    llm_base_url: str = Field(
        "https://generativelanguage.googleapis.com/v1beta/openai",
        alias="LLM_BASE_URL",
    )
    llm_api_key: str | None = Field(default=None, alias="LLM_API_KEY")
    llm_model: str = Field("gemini-2.0-flash", alias="LLM_MODEL")
    llm_temperature: float = Field(0.7, alias="LLM_TEMPERATURE", ge=0, le=2)
    upstream_timeout: float = Field(
        60.0,
        alias="UPSTREAM_TIMEOUT_SECONDS",
        description="Deadline for each read from the upstream model provider",
        gt=0,
    )
    upstream_total_timeout: float = Field(
        180.0,
        alias="UPSTREAM_TOTAL_TIMEOUT_SECONDS",
        description="Deadline for a whole streamed completion, however steadily bytes arrive",
        gt=0,
    )

    # URL context / grounding fetches
    url_fetch_timeout: float = Field(8.0, alias="URL_FETCH_TIMEOUT_SECONDS", gt=0)
    url_fetch_total_timeout: float = Field(20.0, alias="URL_FETCH_TOTAL_TIMEOUT_SECONDS", gt=0)
    url_fetch_max_bytes: int = Field(5_000_000, alias="URL_FETCH_MAX_BYTES", ge=1024)
    url_context_allowed_domains_raw: str | None = Field(
        default=None,
        alias="URL_CONTEXT_ALLOWED_DOMAINS",
        description="Comma-separated domain allow-list for the url tool; empty allows all public hosts",
    )

    # Application log level for our concierge logger.
    log_level: str = Field(
        "INFO",
        alias="LOG_LEVEL",
        description="Application log level: DEBUG, INFO, WARNING, ERROR, CRITICAL",
    )
    log_timezone: str | None = Field(
        default=None,
        alias="LOG_TIMEZONE",
        description="Timezone name for log timestamps, e.g. 'Europe/Oslo'. Defaults to system local time.",
    )
    log_dir: str = Field("logs", alias="LOG_DIR")

    # Mask token used when redacting stored tool summaries.
    redaction_mask_token: str = Field("***", alias="REDACTION_MASK_TOKEN")

    @property
    def url_context_allowed_domains(self) -> list[str]:
        if not self.url_context_allowed_domains_raw:
            return []
        return [
            d.strip().lower()
            for d in self.url_context_allowed_domains_raw.split(",")
            if d.strip()
        ]

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_allow_origins.split(",") if o.strip()]


settings = Settings()
