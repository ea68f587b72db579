"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Nested BaseSettings don't inherit env_file, so populate os.environ up front.
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def parse_csv(value: str | None) -> list[str]:
    """Split a comma-separated setting into trimmed, non-empty items.

    Examples:
        >>> parse_csv("https://a.io, https://b.io")
        ['https://a.io', 'https://b.io']
        >>> parse_csv(None)
        []
    """
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    api_prefix: str = Field(
        "/api/",
        description="Path prefix that marks API routes (CORS, rate limit, trace id)",
    )
    excluded_path_prefixes: str = Field(
        "/_next/static,/_next/image,/static,/favicon.ico,/sw.js",
        description="Comma-separated path prefixes the gate middleware never touches",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class CorsSettings(BaseSettings):
    """Cross-origin settings for API routes."""

    allowed_origins: str | None = Field(
        None,
        description="Comma-separated list of origins echoed back in Access-Control-Allow-Origin",
    )

    model_config = SettingsConfigDict(
        env_prefix="CORS_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Rate limiting tiers and counter store configuration."""

    enabled: bool = Field(
        True,
        description="Enable rate limiting on API routes",
    )
    backend: str = Field(
        "memory",
        description="Counter store backend: memory or redis",
    )
    redis_url: str = Field(
        "redis://localhost:6379/0",
        description="Redis connection URL when backend=redis",
    )
    key_prefix: str = Field(
        "nerix:ratelimit",
        description="Namespace prepended to every counter key",
    )
    store_timeout_seconds: float = Field(
        0.5,
        description="Timeout for a single counter store call",
        gt=0,
    )
    fail_open: bool = Field(
        True,
        description="Admit requests when the counter store is unavailable",
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* headers on allowed API responses",
    )
    exempt_patterns: str = Field(
        r"^/api/auth/.*nextauth",
        description="Comma-separated regexes for API paths that skip rate limiting",
    )
    api_keys: str | None = Field(
        None,
        description="Comma-separated API keys limited per key; other X-API-Key values are ignored",
    )

    restrictive_requests: int = Field(5, ge=1, description="Quota of the restrictive tier")
    restrictive_window_seconds: int = Field(60, ge=1, description="Window of the restrictive tier")
    moderate_requests: int = Field(100, ge=1, description="Quota of the moderate tier")
    moderate_window_seconds: int = Field(60, ge=1, description="Window of the moderate tier")
    generous_requests: int = Field(300, ge=1, description="Quota of the generous tier")
    generous_window_seconds: int = Field(60, ge=1, description="Window of the generous tier")

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log output: stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(10_485_760, description="Rotate log file after this many bytes (0 disables)")
    backup_count: int = Field(5, description="Number of rotated log files to keep")
    trace_id_header: str = Field("X-Trace-Id", description="Response header carrying the trace id")

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


def _build_app_settings() -> AppSettings:
    """Build app settings from environment.

    Static type checkers treat BaseSettings fields as constructor arguments,
    which is not how BaseSettings is intended to be used.
    """

    return AppSettings()  # type: ignore[call-arg]


def _build_cors_settings() -> CorsSettings:
    return CorsSettings()  # type: ignore[call-arg]


def _build_rate_limit_settings() -> RateLimitSettings:
    return RateLimitSettings()  # type: ignore[call-arg]


def _build_log_settings() -> LogSettings:
    return LogSettings()  # type: ignore[call-arg]


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    cors: CorsSettings = Field(default_factory=_build_cors_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance composed from domain-specific settings
settings = Settings()
