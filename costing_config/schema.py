"""
Costing configuration schema.

Frozen dataclasses the loader parses YAML into.  ``CostingConfig`` is the
only object the rest of the system receives.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

# Hard ceiling for optimistic-conflict retries, whatever the YAML says
MAX_RETRY_ATTEMPTS = 10


class LockingStrategy(str, Enum):
    """How concurrent sales of one product are serialized."""

    OPTIMISTIC = "optimistic"      # Row locks + version columns; retry on conflict
    PRODUCT_LOCK = "product_lock"  # In-process per-(tenant, product) lock


@dataclass(frozen=True)
class DatabaseConfig:
    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    create_tables: bool = False


@dataclass(frozen=True)
class LockingConfig:
    strategy: LockingStrategy = LockingStrategy.OPTIMISTIC
    lock_timeout_seconds: float = 10.0


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 3
    backoff_seconds: float = 0.05


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class CostingConfig:
    """Complete runtime configuration."""

    database: DatabaseConfig
    locking: LockingConfig = field(default_factory=LockingConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    checksum: str = ""
