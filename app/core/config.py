from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

def _get_env(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value


def _get_env_bool(name: str, default: bool) -> bool:
    raw = _get_env(name, None)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _get_env_int(name: str, default: int) -> int:
    raw = _get_env(name, None)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_env_float(name: str, default: float) -> float:
    raw = _get_env(name, None)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_env_list(name: str, default: list[str]) -> tuple[str, ...]:
    raw = _get_env(name, None)
    if raw is None:
        return tuple(default)
    values = [item.strip() for item in raw.split(",")]
    clean = [item for item in values if item]
    return tuple(clean) if clean else tuple(default)


@dataclass(frozen=True)
class Settings:
    api_key: str | None
    rate_limit: str
    review_rate_limit: str
    rate_limit_enabled: bool
    log_level: str
    sentry_dsn: str | None
    cors_allowed_origins: tuple[str, ...]
    cors_allow_origin_regex: str | None
    ai_config_path: str | None
    openai_api_key: str | None
    openai_base_url: str | None
    anthropic_api_key: str | None
    google_ai_api_key: str | None
    ai_call_timeout_s: float
    ai_sdk_max_retries: int
    ai_retry_max_attempts: int
    ai_retry_initial_delay_ms: int
    ai_retry_max_delay_ms: int
    analytics_enabled: bool
    analytics_db_path: str
    analytics_retention_days: int


settings = Settings(
    api_key=_get_env("API_KEY"),
    rate_limit=_get_env("RATE_LIMIT", "30/minute") or "30/minute",
    review_rate_limit=_get_env("REVIEW_RATE_LIMIT", "5/minute") or "5/minute",
    rate_limit_enabled=_get_env_bool("RATE_LIMIT_ENABLED", True),
    log_level=_get_env("LOG_LEVEL", "INFO") or "INFO",
    sentry_dsn=_get_env("SENTRY_DSN"),
    cors_allowed_origins=_get_env_list(
        "CORS_ALLOWED_ORIGINS",
        [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
            "http://localhost:5173",
        ],
    ),
    cors_allow_origin_regex=_get_env("CORS_ALLOW_ORIGIN_REGEX"),
    ai_config_path=_get_env("AI_CONFIG_PATH"),
    openai_api_key=_get_env("OPENAI_API_KEY"),
    openai_base_url=_get_env("OPENAI_BASE_URL"),
    anthropic_api_key=_get_env("ANTHROPIC_API_KEY"),
    google_ai_api_key=_get_env("GOOGLE_AI_API_KEY"),
    ai_call_timeout_s=_get_env_float("AI_CALL_TIMEOUT_S", 60.0),
    # Retries belong to app.ai.retry; keep SDK retries at 0 unless debugging.
    ai_sdk_max_retries=_get_env_int("AI_SDK_MAX_RETRIES", 0),
    ai_retry_max_attempts=_get_env_int("AI_RETRY_MAX_ATTEMPTS", 3),
    ai_retry_initial_delay_ms=_get_env_int("AI_RETRY_INITIAL_DELAY_MS", 1000),
    ai_retry_max_delay_ms=_get_env_int("AI_RETRY_MAX_DELAY_MS", 30000),
    analytics_enabled=_get_env_bool("ANALYTICS_ENABLED", True),
    analytics_db_path=_get_env("ANALYTICS_DB_PATH", "data/analytics.db") or "data/analytics.db",
    analytics_retention_days=_get_env_int("ANALYTICS_RETENTION_DAYS", 90),
)

if settings.ai_retry_max_attempts < 1:
    raise RuntimeError("AI_RETRY_MAX_ATTEMPTS must be at least 1.")
