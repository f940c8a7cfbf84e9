"""
Bounded retry for optimistic concurrency conflicts.

Responsibility:
    Re-runs a whole unit of work (a fresh transaction each time) when it
    fails with ``ConcurrencyConflictError``.  Every other error propagates on
    the first attempt.

Invariants enforced:
    MAX_RETRY_ATTEMPTS -- Safety limit (10) prevents unbounded retry loops,
    whatever the configuration asks for.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from costing_config.schema import MAX_RETRY_ATTEMPTS, RetryConfig
from costing_kernel.exceptions import ConcurrencyConflictError
from costing_kernel.logging_config import get_logger

logger = get_logger("services.retry")

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff_seconds: float = 0.05

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.max_attempts > MAX_RETRY_ATTEMPTS:
            object.__setattr__(self, "max_attempts", MAX_RETRY_ATTEMPTS)
        if self.backoff_seconds < 0:
            raise ValueError(f"backoff_seconds must be >= 0, got {self.backoff_seconds}")

    @classmethod
    def from_config(cls, config: RetryConfig) -> RetryPolicy:
        return cls(max_attempts=config.max_attempts, backoff_seconds=config.backoff_seconds)

    def delay(self, attempt: int) -> float:
        """Linear backoff: attempt 1 waits one step, attempt 2 two steps..."""
        return self.backoff_seconds * attempt


def run_with_retry(
    fn: Callable[[], T],
    policy: RetryPolicy,
    sleep: Callable[[float], None] = time.sleep,
    operation: str = "unit_of_work",
) -> T:
    """
    Call ``fn`` until it succeeds or the attempts are used up.

    Raises:
        ConcurrencyConflictError: the last conflict, once
            ``policy.max_attempts`` attempts have failed.
    """
    attempt = 1
    while True:
        try:
            return fn()
        except ConcurrencyConflictError as exc:
            if attempt >= policy.max_attempts:
                logger.error(
                    "concurrency_retries_exhausted",
                    extra={
                        "operation": operation,
                        "attempts": attempt,
                        "entity_type": exc.entity_type,
                        "entity_id": exc.entity_id,
                    },
                )
                raise
            delay = policy.delay(attempt)
            logger.warning(
                "concurrency_conflict_retry",
                extra={
                    "operation": operation,
                    "attempt": attempt,
                    "max_attempts": policy.max_attempts,
                    "entity_type": exc.entity_type,
                    "entity_id": exc.entity_id,
                    "delay_seconds": delay,
                },
            )
            sleep(delay)
            attempt += 1
