"""
Structured JSON logging for the costing core.

Every logger obtained through ``get_logger`` lives under ``costing_kernel``
and, once ``configure_logging`` has run, writes one JSON object per line:

    {"ts": ..., "level": "INFO", "logger": "costing_kernel.services...",
     "message": "allocation_committed", "tenant_id": "t1",
     "product_id": "SKU-1", "quantity": "12.000000000", ...}

The message is an event name; everything else rides in ``extra`` or comes
from the movement context bound with ``LogContext.bind``.  Decimals are
logged as strings so no quantity or cost ever passes through a float.
"""

__all__ = [
    "CONTEXT_FIELDS",
    "LogContext",
    "StructuredFormatter",
    "configure_logging",
    "get_logger",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, TextIO
from uuid import UUID

LOGGER_ROOT = "costing_kernel"

# Fields a unit of work may bind for every line it emits
CONTEXT_FIELDS = ("tenant_id", "product_id", "reference_id", "sale_line_id", "operation")

_EMPTY: Mapping[str, str] = MappingProxyType({})
_movement: ContextVar[Mapping[str, str]] = ContextVar("costing_log_context", default=_EMPTY)


class LogContext:
    """Movement context merged into every costing log line of this thread/task."""

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_movement.get())

    @staticmethod
    def clear() -> None:
        _movement.set(_EMPTY)

    @staticmethod
    @contextmanager
    def bind(**fields: str | None) -> Iterator[None]:
        """
        Add fields for the duration of the block; None values are skipped.

        Nested binds override outer values and the outer context comes back
        on exit, including after an exception.
        """
        unknown = sorted(set(fields) - set(CONTEXT_FIELDS))
        if unknown:
            raise TypeError(f"unknown log context field(s): {', '.join(unknown)}")
        merged = dict(_movement.get())
        merged.update({name: value for name, value in fields.items() if value is not None})
        token = _movement.set(MappingProxyType(merged))
        try:
            yield
        finally:
            _movement.reset(token)


# Attributes every LogRecord carries; anything else came from ``extra``
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return repr(value)


def _error_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {"error_type": type(exc).__name__, "error": str(exc)}
    code = getattr(exc, "code", None)
    if code is not None:
        # CostingKernelError subclasses carry their diagnostic fields as attributes
        fields["error_code"] = code
        fields["error_fields"] = {
            name: value for name, value in vars(exc).items() if not name.startswith("_")
        }
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: envelope, bound context, then extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_movement.get())
        for name, value in vars(record).items():
            if name not in _RECORD_ATTRS:
                payload.setdefault(name, value)
        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_error_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Logger ``costing_kernel.<name>``."""
    return logging.getLogger(f"{LOGGER_ROOT}.{name}")


_setup_lock = threading.Lock()


def _installed(root: logging.Logger) -> list[logging.Handler]:
    return [h for h in root.handlers if getattr(h, "costing_structured", False)]


def configure_logging(
    *,
    level: int | None = None,
    stream: TextIO | None = None,
    handler: logging.Handler | None = None,
) -> logging.Handler:
    """
    Install the JSON handler on the ``costing_kernel`` logger once.

    Later calls never add a second handler; they only change the level when
    one is given.  The first call defaults to INFO.  Handlers attached by
    anyone else (pytest's capture, a host application) are left alone.

    Returns:
        The installed costing handler.
    """
    root = logging.getLogger(LOGGER_ROOT)
    with _setup_lock:
        existing = _installed(root)
        if existing:
            if level is not None:
                root.setLevel(level)
            return existing[0]

        installed = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
        installed.setFormatter(StructuredFormatter())
        installed.costing_structured = True
        root.addHandler(installed)
        root.setLevel(level if level is not None else logging.INFO)
        root.propagate = False
        return installed


def reset_logging() -> None:
    """Remove the handler ``configure_logging`` installed.  Tests only."""
    root = logging.getLogger(LOGGER_ROOT)
    with _setup_lock:
        for installed in _installed(root):
            root.removeHandler(installed)
        root.setLevel(logging.WARNING)
