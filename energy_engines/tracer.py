"""
energy_engines.tracer -- one ENERGY_ENGINE_TRACE log record per engine call.

``@traced_engine`` records which engine ran, its version, how long it took
and a short fingerprint of the inputs that drove it.  Two runs over the same
month data produce the same fingerprint, so a trace line is enough to tell
whether a rerun saw different inputs.

The decorator only logs.  Inputs and the return value pass through untouched.
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import time
from collections.abc import Callable, Mapping
from decimal import Decimal
from enum import Enum
from typing import Any

from energy_kernel.logging_config import get_logger

logger = get_logger("engines.tracer")

TRACE_TYPE = "ENERGY_ENGINE_TRACE"
FINGERPRINT_LENGTH = 16


def _canonical(value: Any) -> str:
    match value:
        case None:
            return "null"
        case bool():
            return str(value).lower()
        case Enum():
            return _canonical(value.value)
        case Decimal():
            # 1, 1.0 and 1.00 fingerprint alike
            return str(value.normalize()) if value else "0"
        case str():
            return value
        case int() | float():
            return str(value)
        case Mapping():
            body = ",".join(f"{k}:{_canonical(value[k])}" for k in sorted(value, key=str))
            return "{" + body + "}"
        case list() | tuple():
            return "[" + ",".join(map(_canonical, value)) + "]"
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        body = ",".join(
            f"{f.name}:{_canonical(getattr(value, f.name))}" for f in dataclasses.fields(value)
        )
        return f"{type(value).__name__}({body})"
    return str(value)


def compute_input_fingerprint(fields: tuple[str, ...], kwargs: dict[str, Any]) -> str:
    """SHA-256 prefix over the named keyword arguments.  Absent names count as null."""
    text = "|".join(f"{name}={_canonical(kwargs.get(name))}" for name in fields)
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    def decorate(func: Callable) -> Callable:
        @functools.wraps(func)
        def traced(*args: Any, **kwargs: Any) -> Any:
            fingerprint = (
                compute_input_fingerprint(fingerprint_fields, kwargs) if fingerprint_fields else ""
            )
            started = time.perf_counter()
            result = func(*args, **kwargs)
            logger.info(
                TRACE_TYPE,
                extra={
                    "trace_type": TRACE_TYPE,
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fingerprint,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                    "function": func.__qualname__,
                },
            )
            return result

        return traced

    return decorate
