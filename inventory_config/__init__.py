"""
Configuration package (``inventory_config``).

``get_active_config()`` is the single runtime entrypoint: services receive
the returned ``InventorySettings`` and never read files or the environment
themselves.

Usage::

    from inventory_config import get_active_config

    settings = get_active_config()
    service = SaleService(session, settings)
"""

from __future__ import annotations

import logging
from pathlib import Path

from inventory_config.loader import load_yaml_file, parse_settings
from inventory_config.schema import InventorySettings

_logger = logging.getLogger("inventory_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | None = None) -> InventorySettings:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Override path to a settings file.  Defaults to
            inventory_config/sets/default.yaml.

    Raises:
        FileNotFoundError: If the settings file does not exist.
        ConfigError: If a value is invalid.
    """
    path = Path(config_path) if config_path is not None else _DEFAULT_CONFIG_PATH
    settings = parse_settings(load_yaml_file(path))

    _logger.info(
        "inventory_config_loaded",
        extra={
            "trace_type": "INVENTORY_CONFIG_TRACE",
            "config_path": str(path),
            "checksum": settings.checksum,
            "legacy_secondary_factor": str(settings.legacy_secondary_factor),
            "max_conflict_retries": settings.max_conflict_retries,
        },
    )
    return settings


__all__ = ["InventorySettings", "get_active_config"]
