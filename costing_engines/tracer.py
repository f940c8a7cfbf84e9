"""
costing_engines.tracer -- one trace line per engine call.

``traced_engine`` wraps a pure engine entry point and logs a
``costing_engine_trace`` record at DEBUG: the engine and its version, a
fingerprint of the named arguments, the outcome (``ok`` or the costing
error code) and duration_ms.

The fingerprint covers the layer snapshot an allocation was planned from
(layer id, version and remaining quantity), so two traces with the same
fingerprint were planned from identical state and must carry the same
breakdown.  Decimals are normalized first: ``2`` and ``2.000000000`` hash
alike.
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import time
from collections.abc import Callable
from decimal import Decimal
from typing import Any

from costing_kernel.domain.dtos import CostLayer
from costing_kernel.exceptions import CostingKernelError
from costing_kernel.logging_config import get_logger

logger = get_logger("engines.tracer")


def _token(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    if isinstance(value, CostLayer):
        return f"{value.layer_id}@{value.version}:{_token(value.quantity_remaining)}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_token(item) for item in value) + "]"
    return str(value)


def fingerprint(arguments: dict[str, Any], fields: tuple[str, ...]) -> str:
    """16 hex chars of SHA-256 over ``fields`` of ``arguments``, in field order."""
    digest = hashlib.sha256()
    for name in fields:
        value = arguments.get(name)
        if not isinstance(value, (str, Decimal, list, tuple)) and hasattr(value, "__iter__"):
            # Generators are consumed by the engine; fingerprint a copy
            value = arguments[name] = list(value)
        digest.update(f"{name}={_token(value)};".encode())
    return digest.hexdigest()[:16]


def traced_engine(engine: str, version: str, fields: tuple[str, ...] = ()) -> Callable:
    """Decorate an engine function so each call logs ``costing_engine_trace``."""

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            bound = signature.bind(*args, **kwargs)
            arguments = bound.arguments
            digest = fingerprint(arguments, fields) if fields else ""
            outcome = "ok"
            t0 = time.monotonic()
            try:
                return func(*bound.args, **bound.kwargs)
            except CostingKernelError as exc:
                outcome = exc.code
                raise
            except Exception as exc:
                outcome = type(exc).__name__
                raise
            finally:
                logger.debug(
                    "costing_engine_trace",
                    extra={
                        "engine": engine,
                        "engine_version": version,
                        "fingerprint": digest,
                        "outcome": outcome,
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                    },
                )

        return wrapper

    return decorator
