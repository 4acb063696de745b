"""
Configuration Loader (``inventory_config.loader``).

Responsibility
--------------
Load a YAML settings file and parse it into a frozen
``InventorySettings``.  Runtime code goes through
``inventory_config.get_active_config()``; this module is its tooling.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown key or invalid value  -> ``ConfigError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from inventory_config.schema import InventorySettings
from inventory_kernel.exceptions import ConfigError

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _positive_decimal(key: str, value: Any) -> Decimal:
    try:
        result = Decimal(str(value))
    except InvalidOperation as exc:
        raise ConfigError(key, str(value), "not a number") from exc
    if not result.is_finite() or result <= 0:
        raise ConfigError(key, str(value), "must be a positive number")
    return result


def _non_negative_int(key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigError(key, str(value), "must be a non-negative integer")
    return value


def _non_empty_str(key: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(key, str(value), "must be a non-empty string")
    return value


def parse_settings(data: dict[str, Any]) -> InventorySettings:
    """
    Parse the ``inventory`` mapping of a settings file.

    Keys absent from ``data`` keep their dataclass defaults.

    Raises:
        ConfigError: On an unknown key or an invalid value.
    """
    section = data.get("inventory", data) or {}
    if not isinstance(section, dict):
        raise ConfigError("inventory", str(section), "must be a mapping")

    defaults = InventorySettings()
    known = set(InventorySettings.__dataclass_fields__) - {"checksum"}
    unknown = sorted(set(section) - known)
    if unknown:
        raise ConfigError(unknown[0], str(section[unknown[0]]), "unknown setting")

    credit_type = _non_empty_str(
        "credit_payment_type",
        section.get("credit_payment_type", defaults.credit_payment_type),
    )
    payment_types = section.get("payment_types", list(defaults.payment_types))
    if not isinstance(payment_types, list) or not payment_types:
        raise ConfigError("payment_types", str(payment_types), "must be a non-empty list")
    payment_types = tuple(_non_empty_str("payment_types", p) for p in payment_types)
    if credit_type not in payment_types:
        raise ConfigError(
            "credit_payment_type", credit_type, "must be one of payment_types",
        )

    log_level = str(section.get("log_level", defaults.log_level)).upper()
    if log_level not in _LOG_LEVELS:
        raise ConfigError("log_level", log_level, "unknown log level")

    return InventorySettings(
        legacy_secondary_factor=_positive_decimal(
            "legacy_secondary_factor",
            section.get("legacy_secondary_factor", defaults.legacy_secondary_factor),
        ),
        default_line_unit=_non_empty_str(
            "default_line_unit",
            section.get("default_line_unit", defaults.default_line_unit),
        ),
        credit_payment_type=credit_type,
        payment_types=payment_types,
        invoice_prefix=_non_empty_str(
            "invoice_prefix",
            section.get("invoice_prefix", defaults.invoice_prefix),
        ),
        max_conflict_retries=_non_negative_int(
            "max_conflict_retries",
            section.get("max_conflict_retries", defaults.max_conflict_retries),
        ),
        database_url=_non_empty_str(
            "database_url",
            section.get("database_url", defaults.database_url),
        ),
        log_level=log_level,
        checksum=compute_checksum(section),
    )
