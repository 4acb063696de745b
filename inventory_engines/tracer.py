"""
inventory_engines.tracer -- ENGINE_TRACE records for pure engine calls.

Responsibility:
    ``@traced_engine`` wraps an engine entrypoint and emits one structured
    log record per call: engine name and version, a fingerprint of the
    selected inputs, and the duration.

Architecture position:
    Engines -- support for the pure calculation layer.  Emits a log record
    only; inputs and results pass through untouched.

Invariants enforced:
    - Fingerprints are deterministic: mappings are key-sorted, sequences
      keep order, Decimals render via str().  SHA-256, first 16 hex chars.
    - Arguments are bound against the wrapped signature, so positional
      and keyword calls fingerprint identically.

Usage:
    @traced_engine("sale_totals", "1.0", fingerprint_fields=("lines",))
    def compute_sale_totals(lines, ...):
        ...
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import inspect
import time
from collections.abc import Callable, Mapping
from decimal import Decimal
from enum import Enum
from typing import Any

from inventory_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")


def _canonicalize(value: Any) -> str:
    """Stable text form of an engine argument.

    Postconditions:
        Enums render as their value, dataclasses as a mapping of their
        fields, mappings with sorted keys, sequences in order.  Unknown
        types fall back to ``str(value)``.
    """
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (str, int, Decimal)):
        return str(value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _canonicalize(
            {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
        )
    if isinstance(value, Mapping):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "{" + ",".join(f"{k}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    arguments: Mapping[str, Any],
) -> str:
    """Deterministic fingerprint of the selected engine arguments.

    Preconditions:
        ``arguments`` maps parameter names to values, as bound against the
        engine signature.

    Postconditions:
        Returns the first 16 hex characters of a SHA-256 over
        ``name=value`` pairs in ``fingerprint_fields`` order.  A name not in
        ``arguments`` is recorded as null.

    Raises:
        Nothing.
    """
    canonical = "|".join(
        f"{name}={_canonicalize(arguments.get(name))}" for name in fingerprint_fields
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Decorator that emits ENGINE_TRACE after each successful call.

    Args:
        engine_name: Engine identifier (e.g. "batch_reconciliation").
        engine_version: Engine version (e.g. "1.0").
        fingerprint_fields: Parameter names hashed into
            ``input_fingerprint``.  Positional and keyword arguments are
            both seen.

    Raises:
        TypeError: At call time, when the arguments do not bind to the
            wrapped signature.  Exceptions from the engine propagate and
            no trace is emitted for that call.
    """

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fp = ""
            if fingerprint_fields:
                bound = signature.bind_partial(*args, **kwargs)
                fp = compute_input_fingerprint(fingerprint_fields, bound.arguments)

            t0 = time.monotonic()
            result = func(*args, **kwargs)
            duration_ms = round((time.monotonic() - t0) * 1000, 2)

            _logger.info(
                "ENGINE_TRACE",
                extra={
                    "trace_type": "ENGINE_TRACE",
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fp,
                    "duration_ms": duration_ms,
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
