"""Schema creation and default settings seeding."""

from __future__ import annotations

import logging

from sqlalchemy import inspect

from cortex.core.config import get_config
from cortex.database.db import Database, get_database
from cortex.services.settings_cache import SettingsCache
from cortex.services.settings_service import BusinessSettingsService, SettingsStore

logger = logging.getLogger(__name__)


def init_db(database: Database | None = None) -> list[str]:
    """Create any missing tables; returns the table names present afterwards."""
    database = database or get_database()
    database.create_all()
    tables = sorted(inspect(database.engine).get_table_names())
    logger.info("database.initialized", extra={"event": "database.initialized", "tables": tables})
    return tables


def seed_default_settings(database: Database | None = None, overwrite: bool = False) -> list[str]:
    database = database or get_database()
    store = SettingsStore(database.session_factory)
    service = BusinessSettingsService(
        SettingsCache(store, ttl_seconds=0),
        store,
        default_timezone=get_config().BUSINESS_TIMEZONE,
    )
    written = service.seed_defaults(overwrite=overwrite)
    logger.info("database.settings_seeded", extra={"event": "database.settings_seeded", "keys": written})
    return written
