"""
inventory_services.bootstrap -- Process start-up from a settings file.

Responsibility:
    Load InventorySettings, install structured logging at the configured
    level, open the database and make sure every table exists.

Architecture position:
    Services -- called once by an entrypoint (web app factory, script,
    test) before any SaleService is built.

Failure modes:
    - FileNotFoundError / ConfigError from the settings file.
    - SQLAlchemy errors from an unreachable database propagate.
"""

from __future__ import annotations

from pathlib import Path

from inventory_config import get_active_config
from inventory_config.schema import InventorySettings
from inventory_kernel.db.engine import create_tables, init_engine_from_url
from inventory_kernel.logging_config import configure_logging, get_logger, set_log_level

logger = get_logger("services.bootstrap")


def bootstrap(
    config_path: Path | None = None,
    database_url: str | None = None,
) -> InventorySettings:
    """
    Start the ledger and return the active settings.

    ``database_url`` overrides the URL from the settings file.
    """
    settings = get_active_config(config_path)

    configure_logging(level=settings.log_level)
    # configure_logging() is a no-op when a handler is already installed.
    set_log_level(settings.log_level)

    engine = init_engine_from_url(database_url or settings.database_url)
    create_tables()

    logger.info("inventory_ledger_ready", extra={
        "dialect": engine.dialect.name,
        "log_level": settings.log_level,
        "config_checksum": settings.checksum,
    })
    return settings
