"""Startup validation and bootstrap helpers."""

from __future__ import annotations

import logging

from cortex.core.config import get_config
from cortex.core.logging_config import configure_logging
from cortex.database.db import get_database

logger = logging.getLogger(__name__)


def validate_startup_config() -> None:
    """Fail-fast config and connectivity checks."""
    config = get_config()
    database = get_database()
    if not database.verify_connection():
        raise RuntimeError("Database connectivity check failed.")

    if config.is_production and database.dialect == "sqlite":
        logger.warning(
            "startup.production.sqlite_detected",
            extra={"event": "startup.production.sqlite_detected"},
        )
    if not config.WHATSAPP_ACCESS_TOKEN or not config.WHATSAPP_PHONE_NUMBER_ID:
        logger.warning(
            "startup.whatsapp.not_configured",
            extra={"event": "startup.whatsapp.not_configured"},
        )
    if not config.LLM_API_KEY:
        logger.warning("startup.llm.no_api_key", extra={"event": "startup.llm.no_api_key"})

    logger.info(
        "startup.config.validated",
        extra={
            "event": "startup.config.validated",
            "env": config.ENV,
            "database_dialect": database.dialect,
            "timezone": config.BUSINESS_TIMEZONE,
        },
    )


def bootstrap() -> None:
    """Initialize logging and validate runtime configuration."""
    configure_logging()
    validate_startup_config()
