"""
Configuration Loader (``costing_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen
``costing_config.schema`` dataclasses.  Runtime code does not call this
directly; the single public entry point is
``costing_config.get_active_config()``.

Invariants enforced
-------------------
* Validation collects every problem and raises one ``ValueError`` that
  lists them all; there are no silent defaults for malformed values.
* ``retry.max_attempts`` may not exceed ``MAX_RETRY_ATTEMPTS`` (10).
* ``compute_checksum`` gives a deterministic SHA-256 identity for the
  parsed document.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing ``database.url``  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Any

import yaml

from costing_config.schema import (
    MAX_RETRY_ATTEMPTS,
    CostingConfig,
    DatabaseConfig,
    LockingConfig,
    LockingStrategy,
    LoggingConfig,
    RetryConfig,
)

_VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _section(data: dict[str, Any], name: str, errors: list[str]) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        errors.append(f"{name}: must be a mapping")
        return {}
    return value


def _positive_int(section: dict, key: str, default: int, label: str, errors: list[str]) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        errors.append(f"{label}: must be a positive integer, got {value!r}")
        return default
    return value


def _non_negative_number(section: dict, key: str, default: float, label: str,
                         errors: list[str]) -> float:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        errors.append(f"{label}: must be a non-negative number, got {value!r}")
        return default
    return float(value)


def parse_config(data: dict[str, Any]) -> CostingConfig:
    """
    Parse and validate a configuration document.

    Raises:
        ValueError: listing every validation problem found.
    """
    errors: list[str] = []

    db = _section(data, "database", errors)
    url = db.get("url")
    if not url or not isinstance(url, str):
        errors.append("database.url: required")
        url = ""
    database = DatabaseConfig(
        url=url,
        echo=bool(db.get("echo", False)),
        pool_size=_positive_int(db, "pool_size", 20, "database.pool_size", errors),
        max_overflow=_positive_int(db, "max_overflow", 10, "database.max_overflow", errors),
        pool_timeout=_positive_int(db, "pool_timeout", 30, "database.pool_timeout", errors),
        create_tables=bool(db.get("create_tables", False)),
    )

    lk = _section(data, "locking", errors)
    raw_strategy = lk.get("strategy", LockingStrategy.OPTIMISTIC.value)
    try:
        strategy = LockingStrategy(raw_strategy)
    except ValueError:
        valid = ", ".join(s.value for s in LockingStrategy)
        errors.append(f"locking.strategy: {raw_strategy!r} is not one of {valid}")
        strategy = LockingStrategy.OPTIMISTIC
    locking = LockingConfig(
        strategy=strategy,
        lock_timeout_seconds=_non_negative_number(
            lk, "lock_timeout_seconds", 10.0, "locking.lock_timeout_seconds", errors
        ),
    )

    rt = _section(data, "retry", errors)
    max_attempts = _positive_int(rt, "max_attempts", 3, "retry.max_attempts", errors)
    if max_attempts > MAX_RETRY_ATTEMPTS:
        errors.append(
            f"retry.max_attempts: {max_attempts} exceeds the ceiling of {MAX_RETRY_ATTEMPTS}"
        )
        max_attempts = MAX_RETRY_ATTEMPTS
    retry = RetryConfig(
        max_attempts=max_attempts,
        backoff_seconds=_non_negative_number(
            rt, "backoff_seconds", 0.05, "retry.backoff_seconds", errors
        ),
    )

    lg = _section(data, "logging", errors)
    level = str(lg.get("level", "INFO")).upper()
    if level not in _VALID_LOG_LEVELS:
        errors.append(f"logging.level: {level!r} is not a valid level")
        level = "INFO"

    if errors:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    return CostingConfig(
        database=database,
        locking=locking,
        retry=retry,
        logging=LoggingConfig(level=level),
        checksum=compute_checksum(data),
    )


def log_level(config: CostingConfig) -> int:
    """The configured level as a ``logging`` constant."""
    return logging.getLevelNamesMapping()[config.logging.level]


def load_config(path: Path) -> CostingConfig:
    """Load and validate a configuration file."""
    return parse_config(load_yaml_file(path))
