"""
Structured JSON logging for the energy kernel.

Every logger lives under ``energy_kernel``.  A record is rendered as one
JSON object per line carrying the message, the ``extra`` fields passed at
the call site and whatever request context is bound in ``LogContext``
(transaction, company, production site, month).

Call sites log snake_case event names and put the details in ``extra``::

    logger.info("allocation_created", extra={"consumption_site_id": "S1"})
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

ROOT_LOGGER = "energy_kernel"

CONTEXT_FIELDS = (
    "correlation_id",
    "transaction_id",
    "company_id",
    "production_site_id",
    "month",
    "actor_id",
)

_context: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"energy_log_{name}", default=None) for name in CONTEXT_FIELDS
}


class LogContext:
    """
    Request-scoped fields added to every record.

    Backed by ContextVars, so each thread and each asyncio task sees its own
    values.  Unknown field names passed to ``bind`` are ignored.
    """

    @staticmethod
    def set(**fields: str | None) -> None:
        for name, value in fields.items():
            if value is not None and name in _context:
                _context[name].set(value)

    @staticmethod
    def get_all() -> dict[str, str]:
        return {
            name: value for name, var in _context.items() if (value := var.get()) is not None
        }

    @staticmethod
    def clear() -> None:
        for var in _context.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: str | None):
        """Set fields for the duration of a ``with`` block, then restore them."""
        tokens = [
            (_context[name], _context[name].set(value))
            for name, value in fields.items()
            if value is not None and name in _context
        ]
        try:
            yield LogContext
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


_RESERVED = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "taskName",
}


def _to_json(value: Any) -> Any:
    match value:
        case UUID() | Decimal():
            return str(value)
        case datetime():
            return value.isoformat()
        case Enum():
            return value.value
    return str(value)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        out: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RESERVED:
                out.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            out.update(self._exception_fields(record.exc_info[1]))
            out["traceback"] = self.formatException(record.exc_info)

        return json.dumps(out, default=_to_json)

    @staticmethod
    def _exception_fields(exc: BaseException) -> dict[str, Any]:
        fields: dict[str, Any] = {"exc_type": type(exc).__name__, "exc_message": str(exc)}
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        # kernel errors keep their identifiers as public attributes
        for name, value in vars(exc).items():
            if not name.startswith("_") and name not in ("args", "code"):
                fields[f"exc_{name}"] = value
        return fields


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


_configured = False
_configure_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach a JSON handler to the ``energy_kernel`` logger.  Repeat calls are no-ops."""
    global _configured
    with _configure_lock:
        if _configured:
            return
        _configured = True

    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())

    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(level)
    root.propagate = False
    root.addHandler(handler)


def reset_logging() -> None:
    """Drop handlers and allow ``configure_logging`` to run again (tests)."""
    global _configured
    with _configure_lock:
        _configured = False
    root = logging.getLogger(ROOT_LOGGER)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
