"""
costing_config: single public entrypoint for costing configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables directly.

Architecture position:
    Configuration -- sits above ``costing_kernel`` and below
    ``costing_services``.  The kernel MUST NEVER import from this package.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Validation happens before a ``CostingConfig`` is produced.
    - ``COSTING_DATABASE_URL`` in the environment overrides ``database.url``.

Failure modes:
    - ``FileNotFoundError`` -- the requested file does not exist.
    - ``ValueError`` -- validation failures (all listed in one message).

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``COSTING_CONFIG_TRACE`` log entry with the source path, checksum,
    locking strategy and retry budget.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from pathlib import Path

from costing_config.loader import load_config
from costing_config.schema import (
    MAX_RETRY_ATTEMPTS,
    CostingConfig,
    DatabaseConfig,
    LockingConfig,
    LockingStrategy,
    LoggingConfig,
    RetryConfig,
)

__all__ = [
    "MAX_RETRY_ATTEMPTS",
    "DATABASE_URL_ENV",
    "DEFAULT_CONFIG_PATH",
    "CostingConfig",
    "DatabaseConfig",
    "LockingConfig",
    "LockingStrategy",
    "LoggingConfig",
    "RetryConfig",
    "get_active_config",
]

_logger = logging.getLogger("costing_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

DATABASE_URL_ENV = "COSTING_DATABASE_URL"


def get_active_config(path: Path | str | None = None) -> CostingConfig:
    """The ONLY public configuration entrypoint.

    Args:
        path: YAML file to load.  Defaults to the packaged defaults.yaml.

    Returns:
        A validated, frozen ``CostingConfig``.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ValueError: If configuration validation fails.
    """
    source = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    config = load_config(source)

    override = os.environ.get(DATABASE_URL_ENV)
    if override:
        config = dataclasses.replace(
            config,
            database=dataclasses.replace(config.database, url=override),
        )

    _logger.info(
        "COSTING_CONFIG_TRACE",
        extra={
            "trace_type": "COSTING_CONFIG_TRACE",
            "config_path": str(source),
            "checksum": config.checksum,
            "database_url_overridden": bool(override),
            "locking_strategy": config.locking.strategy.value,
            "retry_max_attempts": config.retry.max_attempts,
            "log_level": config.logging.level,
        },
    )
    return config
