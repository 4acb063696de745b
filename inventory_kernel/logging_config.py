"""
inventory_kernel.logging_config -- One JSON object per log line.

Responsibility:
    Render every record under the ``inventory_kernel`` logger tree as a
    single JSON line, stamped with the request-scoped fields held in
    LogContext: correlation id, user, sale and item.

Architecture position:
    Kernel -- imported by every layer; imports nothing from the project.

Invariants enforced:
    - The log message is the event name (``sale_update_completed``);
      structured data travels in ``extra``.
    - Context fields take precedence over ``extra`` keys of the same name.
    - configure_logging() installs its handler once per process.

Usage::

    logger = get_logger("services.sale")
    with LogContext.bind(user_id=user_id, sale_id=str(sale.id)):
        logger.info("sale_update_started", extra={"line_count": 3})
"""

from __future__ import annotations

import json
import logging
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

__all__ = [
    "ROOT_LOGGER_NAME",
    "LogContext",
    "StructuredFormatter",
    "configure_logging",
    "get_logger",
    "reset_logging",
    "set_log_level",
]

ROOT_LOGGER_NAME = "inventory_kernel"

# ---------------------------------------------------------------------------
# Request context
# ---------------------------------------------------------------------------

_CONTEXT_FIELDS = ("correlation_id", "user_id", "sale_id", "item_name")

_context_vars: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"inventory_log_{name}", default=None)
    for name in _CONTEXT_FIELDS
}


def _checked(fields: dict[str, Any]) -> dict[str, Any]:
    unknown = sorted(set(fields) - set(_CONTEXT_FIELDS))
    if unknown:
        raise TypeError(f"Unknown log context field(s): {', '.join(unknown)}")
    return fields


class LogContext:
    """Request-scoped log fields; safe across threads and asyncio tasks."""

    fields = _CONTEXT_FIELDS

    @staticmethod
    def set(**fields: Any) -> None:
        """Set the given fields.  None leaves a field as it is."""
        for name, value in _checked(fields).items():
            if value is not None:
                _context_vars[name].set(str(value))

    @staticmethod
    def get_all() -> dict[str, str]:
        values = {name: var.get() for name, var in _context_vars.items()}
        return {name: value for name, value in values.items() if value is not None}

    @staticmethod
    def clear() -> None:
        for var in _context_vars.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[type[LogContext]]:
        """Set fields for the duration of a ``with`` block, then restore them."""
        tokens = [
            (_context_vars[name], _context_vars[name].set(str(value)))
            for name, value in _checked(fields).items()
            if value is not None
        ]
        try:
            yield LogContext
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# ---------------------------------------------------------------------------
# JSON rendering
# ---------------------------------------------------------------------------

_RECORD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {
    "message",
    "asctime",
    "taskName",
}


def _json_default(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    """exc_type / exc_message plus the ``code`` and attributes of kernel errors."""
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, value in vars(exc).items():
        if not name.startswith("_") and name != "code":
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }

        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRS:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Child logger under ``inventory_kernel``."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


_installed_handler: logging.Handler | None = None
_setup_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Install the JSON handler on the ``inventory_kernel`` logger.

    Only the first call takes effect; use set_log_level() to change the
    level afterwards.
    """
    global _installed_handler
    with _setup_lock:
        if _installed_handler is not None:
            return
        installed = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
        installed.setFormatter(StructuredFormatter())

        root = logging.getLogger(ROOT_LOGGER_NAME)
        root.addHandler(installed)
        root.setLevel(level)
        root.propagate = False
        _installed_handler = installed


def set_log_level(level: int | str) -> None:
    logging.getLogger(ROOT_LOGGER_NAME).setLevel(level)


def reset_logging() -> None:
    """Remove the JSON handler so configure_logging() runs again.  Tests only."""
    global _installed_handler
    with _setup_lock:
        root = logging.getLogger(ROOT_LOGGER_NAME)
        if _installed_handler is not None:
            root.removeHandler(_installed_handler)
        root.setLevel(logging.WARNING)
        _installed_handler = None
