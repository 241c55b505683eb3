"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

Upstream credentials are read under the names operators already use on the
edge runtime (CBEAPI_TOKEN, GNEWS_API_KEY, FINNHUB_KEY, ANTHROPIC_API_KEY,
ALLOWED_ORIGIN). Every credential is optional: a missing one only degrades
the route that needs it.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (the edge runtime injects env vars directly)
_env_file = str(_env_path) if _env_path.is_file() else None


# Nested BaseSettings don't inherit env_file, so populate os.environ up front.
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log destination: stdout or file")
    file_path: str | None = Field(
        None,
        description="Log file path when output=file",
    )
    max_bytes: int = Field(
        10_000_000,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated log files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header carrying the correlation id in and out",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class AppSettings(BaseSettings):
    """Proxy-wide behaviour: rate limiting, caching and upstream defaults."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    service_name: str = Field(
        "CheevO! API Proxy",
        description="Service name reported by the health endpoint",
    )
    host: str = Field("0.0.0.0", description="Bind address when run as a module")
    port: int = Field(8787, description="Bind port when run as a module")

    rate_limit_enabled: bool = Field(
        True,
        description="Enable per-client rate limiting",
    )
    rate_limit_requests: int = Field(
        20,
        description="Maximum number of requests allowed per window (per client)",
        ge=1,
    )
    rate_limit_window_seconds: int = Field(
        60,
        description="Rate limit window size in seconds",
        ge=1,
    )
    rate_limit_max_entries: int = Field(
        10_000,
        description="Tracked clients above which expired windows are swept",
        ge=1,
    )
    rate_limit_include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when throttling",
    )
    client_ip_header: str = Field(
        "CF-Connecting-IP",
        description="Header set by the edge runtime with the original client IP",
    )

    cache_ttl_seconds: int = Field(
        300,
        description="Lifetime of cached upstream responses in seconds",
        ge=1,
    )
    cache_max_entries: int = Field(
        500,
        description="Cached responses above which expired entries are swept",
        ge=1,
    )

    upstream_timeout_seconds: float = Field(
        30.0,
        description="Timeout applied to every upstream request",
        gt=0,
    )
    upstream_user_agent: str = Field(
        "CheevO-Decision-Intelligence/1.0",
        description="User-Agent sent to upstream APIs",
    )
    upstream_accept_language: str = Field(
        "nl",
        description="Accept-Language sent to header-credentialed upstreams",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class CredentialSettings(BaseSettings):
    """Server-side secrets and the operator-supplied CORS origin.

    Field names match the environment variables set on the edge runtime,
    so no prefix is applied.
    """

    allowed_origin: str | None = Field(
        None,
        description="Extra origin appended to the CORS allowlist",
    )
    cbeapi_token: str | None = Field(
        None,
        description="Bearer token for the CBEAPI company data API",
    )
    gnews_api_key: str | None = Field(
        None,
        description="API key for the GNews API",
    )
    finnhub_key: str | None = Field(
        None,
        description="API key for the Finnhub market data API",
    )
    anthropic_api_key: str | None = Field(
        None,
        description="API key for the Anthropic messages API",
    )

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )

    def secrets(self) -> dict[str, str | None]:
        """Return upstream secrets keyed by setting name (origin excluded)."""

        return {
            "cbeapi_token": self.cbeapi_token,
            "gnews_api_key": self.gnews_api_key,
            "finnhub_key": self.finnhub_key,
            "anthropic_api_key": self.anthropic_api_key,
        }


class ChatSettings(BaseSettings):
    """Chat-completion upstream configuration."""

    api_url: str = Field(
        "https://api.anthropic.com/v1/messages",
        description="Messages endpoint of the chat-completion provider",
    )
    api_version: str = Field(
        "2023-06-01",
        description="Value sent in the anthropic-version header",
    )
    default_model: str = Field(
        "claude-sonnet-4-20250514",
        description="Model used when the client does not name one",
    )

    model_config = SettingsConfigDict(
        env_prefix="CHAT_",
        case_sensitive=False,
    )


def _build_log_settings() -> LogSettings:
    return LogSettings()  # type: ignore[call-arg]


def _build_app_settings() -> AppSettings:
    return AppSettings()  # type: ignore[call-arg]


def _build_credential_settings() -> CredentialSettings:
    return CredentialSettings()  # type: ignore[call-arg]


def _build_chat_settings() -> ChatSettings:
    return ChatSettings()  # type: ignore[call-arg]


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file. Values are
    read once at startup and never mutated afterwards.
    """

    app_env: str = APP_ENV
    log: LogSettings = Field(default_factory=_build_log_settings)
    app: AppSettings = Field(default_factory=_build_app_settings)
    credentials: CredentialSettings = Field(default_factory=_build_credential_settings)
    chat: ChatSettings = Field(default_factory=_build_chat_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
settings = Settings()
