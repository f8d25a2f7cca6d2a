"""Configuration module for the Cortex application."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from urllib.parse import urlparse
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from cortex.core.exceptions import ConfigurationError

load_dotenv()


def _as_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Config:
    """Runtime configuration with validation."""

    APP_NAME: str
    APP_VERSION: str
    ENV: str
    DEBUG: bool
    DATABASE_URL: str
    LLM_API_KEY: str | None
    LLM_BASE_URL: str
    LLM_MODEL: str
    LLM_TEMPERATURE: float
    LLM_TIMEOUT_SECONDS: int
    LLM_MAX_RETRIES: int
    LLM_MIN_INTERVAL_SECONDS: float
    WHATSAPP_API_URL: str
    WHATSAPP_PHONE_NUMBER_ID: str | None
    WHATSAPP_ACCESS_TOKEN: str | None
    WHATSAPP_TIMEOUT_SECONDS: int
    REDIS_URL: str
    CELERY_BROKER_URL: str
    CELERY_RESULT_BACKEND: str
    PIPELINE_MAX_CONCURRENCY: int
    PIPELINE_STEP_MAX_ATTEMPTS: int
    PIPELINE_STEP_BACKOFF_SECONDS: float
    PIPELINE_STALL_MINUTES: int
    MAX_HISTORY_MESSAGES: int
    MAX_RESPONSE_LENGTH: int
    SUMMARY_EVERY_N_MESSAGES: int
    RATE_LIMIT_MESSAGES: int
    RATE_LIMIT_WINDOW_SECONDS: int
    RATE_LIMIT_DEFER_SECONDS: int
    SENDER_LOCK_TTL_SECONDS: int
    SETTINGS_CACHE_TTL_SECONDS: float
    BUSINESS_TIMEZONE: str
    STALE_APPOINTMENT_MINUTES: int
    REMINDER_WINDOW_START_HOURS: int
    REMINDER_WINDOW_END_HOURS: int
    API_HOST: str
    API_PORT: int
    API_PREFIX: str
    LOG_LEVEL: str
    LOG_FILE: str

    @property
    def is_production(self) -> bool:
        return self.ENV == "production"


def _build_config(env: str | None = None) -> Config:
    resolved_env = (env or os.getenv("ENV", "development")).strip().lower()
    debug = _as_bool(os.getenv("DEBUG"), default=(resolved_env != "production"))
    redis_url = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    config = Config(
        APP_NAME="Cortex",
        APP_VERSION=os.getenv("APP_VERSION", "1.0.0"),
        ENV=resolved_env,
        DEBUG=debug if resolved_env != "production" else False,
        DATABASE_URL=os.getenv("DATABASE_URL", "sqlite:///./cortex.db"),
        LLM_API_KEY=os.getenv("LLM_API_KEY") or os.getenv("DEEPSEEK_API_KEY"),
        LLM_BASE_URL=os.getenv("LLM_BASE_URL", "https://api.deepseek.com"),
        LLM_MODEL=os.getenv("LLM_MODEL", "deepseek-chat"),
        LLM_TEMPERATURE=float(os.getenv("LLM_TEMPERATURE", "0.5")),
        LLM_TIMEOUT_SECONDS=int(os.getenv("LLM_TIMEOUT_SECONDS", "60")),
        LLM_MAX_RETRIES=int(os.getenv("LLM_MAX_RETRIES", "2")),
        LLM_MIN_INTERVAL_SECONDS=float(os.getenv("LLM_MIN_INTERVAL_SECONDS", "0.1")),
        WHATSAPP_API_URL=os.getenv("WHATSAPP_API_URL", "https://graph.facebook.com/v21.0"),
        WHATSAPP_PHONE_NUMBER_ID=os.getenv("WHATSAPP_PHONE_NUMBER_ID"),
        WHATSAPP_ACCESS_TOKEN=os.getenv("WHATSAPP_ACCESS_TOKEN"),
        WHATSAPP_TIMEOUT_SECONDS=int(os.getenv("WHATSAPP_TIMEOUT_SECONDS", "15")),
        REDIS_URL=redis_url,
        CELERY_BROKER_URL=os.getenv("CELERY_BROKER_URL", redis_url),
        CELERY_RESULT_BACKEND=os.getenv("CELERY_RESULT_BACKEND", redis_url),
        PIPELINE_MAX_CONCURRENCY=int(os.getenv("PIPELINE_MAX_CONCURRENCY", "4")),
        PIPELINE_STEP_MAX_ATTEMPTS=int(os.getenv("PIPELINE_STEP_MAX_ATTEMPTS", "3")),
        PIPELINE_STEP_BACKOFF_SECONDS=float(os.getenv("PIPELINE_STEP_BACKOFF_SECONDS", "0.5")),
        PIPELINE_STALL_MINUTES=int(os.getenv("PIPELINE_STALL_MINUTES", "10")),
        MAX_HISTORY_MESSAGES=int(os.getenv("MAX_HISTORY_MESSAGES", "20")),
        MAX_RESPONSE_LENGTH=int(os.getenv("MAX_RESPONSE_LENGTH", "4000")),
        SUMMARY_EVERY_N_MESSAGES=int(os.getenv("SUMMARY_EVERY_N_MESSAGES", "20")),
        RATE_LIMIT_MESSAGES=int(os.getenv("RATE_LIMIT_MESSAGES", "10")),
        RATE_LIMIT_WINDOW_SECONDS=int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60")),
        RATE_LIMIT_DEFER_SECONDS=int(os.getenv("RATE_LIMIT_DEFER_SECONDS", "30")),
        SENDER_LOCK_TTL_SECONDS=int(os.getenv("SENDER_LOCK_TTL_SECONDS", "120")),
        SETTINGS_CACHE_TTL_SECONDS=float(os.getenv("SETTINGS_CACHE_TTL_SECONDS", "30")),
        BUSINESS_TIMEZONE=os.getenv("BUSINESS_TIMEZONE", "America/Bogota"),
        STALE_APPOINTMENT_MINUTES=int(os.getenv("STALE_APPOINTMENT_MINUTES", "60")),
        REMINDER_WINDOW_START_HOURS=int(os.getenv("REMINDER_WINDOW_START_HOURS", "23")),
        REMINDER_WINDOW_END_HOURS=int(os.getenv("REMINDER_WINDOW_END_HOURS", "25")),
        API_HOST=os.getenv("API_HOST", "0.0.0.0"),
        API_PORT=int(os.getenv("API_PORT", "8000")),
        API_PREFIX=os.getenv("API_PREFIX", "/api/v1"),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO").upper(),
        LOG_FILE=os.getenv("LOG_FILE", ""),
    )
    _validate_config(config)
    return config


def _validate_database_url(database_url: str) -> None:
    parsed = urlparse(database_url)
    if parsed.scheme not in {"sqlite", "postgresql", "postgresql+psycopg2"}:
        raise ConfigurationError(
            "DATABASE_URL must use sqlite:// or postgresql:// style URL."
        )
    if parsed.scheme.startswith("postgresql") and not parsed.hostname:
        raise ConfigurationError("PostgreSQL DATABASE_URL is missing hostname.")


def _validate_timezone(name: str) -> None:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigurationError(f"BUSINESS_TIMEZONE '{name}' is not a known IANA timezone.") from exc


def _validate_config(config: Config) -> None:
    _validate_database_url(config.DATABASE_URL)
    _validate_timezone(config.BUSINESS_TIMEZONE)

    if config.LLM_TIMEOUT_SECONDS < 1:
        raise ConfigurationError("LLM_TIMEOUT_SECONDS must be >= 1.")
    if config.LLM_MAX_RETRIES < 0:
        raise ConfigurationError("LLM_MAX_RETRIES must be >= 0.")
    if config.LLM_MIN_INTERVAL_SECONDS < 0:
        raise ConfigurationError("LLM_MIN_INTERVAL_SECONDS must be >= 0.")
    if config.PIPELINE_MAX_CONCURRENCY < 1:
        raise ConfigurationError("PIPELINE_MAX_CONCURRENCY must be >= 1.")
    if config.PIPELINE_STEP_MAX_ATTEMPTS < 1:
        raise ConfigurationError("PIPELINE_STEP_MAX_ATTEMPTS must be >= 1.")
    if config.PIPELINE_STEP_BACKOFF_SECONDS < 0:
        raise ConfigurationError("PIPELINE_STEP_BACKOFF_SECONDS must be >= 0.")
    if config.MAX_HISTORY_MESSAGES < 1:
        raise ConfigurationError("MAX_HISTORY_MESSAGES must be >= 1.")
    if config.MAX_RESPONSE_LENGTH < 10:
        raise ConfigurationError("MAX_RESPONSE_LENGTH must be >= 10.")
    if config.RATE_LIMIT_MESSAGES < 1 or config.RATE_LIMIT_WINDOW_SECONDS < 1:
        raise ConfigurationError("Rate limit ceiling and window must be >= 1.")
    if config.SENDER_LOCK_TTL_SECONDS < 1:
        raise ConfigurationError("SENDER_LOCK_TTL_SECONDS must be >= 1.")
    if config.SETTINGS_CACHE_TTL_SECONDS < 0:
        raise ConfigurationError("SETTINGS_CACHE_TTL_SECONDS must be >= 0.")
    if config.REMINDER_WINDOW_START_HOURS >= config.REMINDER_WINDOW_END_HOURS:
        raise ConfigurationError("REMINDER_WINDOW_START_HOURS must be < REMINDER_WINDOW_END_HOURS.")
    if config.LOG_LEVEL not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        raise ConfigurationError("LOG_LEVEL must be one of DEBUG/INFO/WARNING/ERROR/CRITICAL.")
    if config.is_production and "change_me" in config.DATABASE_URL.lower():
        raise ConfigurationError("Production DATABASE_URL uses placeholder credentials.")


@lru_cache(maxsize=8)
def get_config(env: str | None = None) -> Config:
    """Get validated configuration for the requested environment."""
    return _build_config(env)
