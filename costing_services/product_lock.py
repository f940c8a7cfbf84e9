"""
ProductLockRegistry -- in-process per-(tenant, product) mutual exclusion.

Used by CostingRuntime when ``locking.strategy`` is ``product_lock``: the
lock is held across the whole allocate + commit transaction so two sales of
one product in this process never interleave.  It does not coordinate
separate processes; rely on the optimistic strategy for that.

A lock exists only while some thread holds or waits for it.  The entry is
dropped when the last user leaves, so the registry stays as small as the
number of products in flight rather than every product ever sold.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

from costing_kernel.exceptions import ConcurrencyConflictError
from costing_kernel.logging_config import get_logger

logger = get_logger("services.product_lock")


@dataclass
class _Entry:
    lock: threading.Lock = field(default_factory=threading.Lock)
    # Threads holding or waiting for ``lock``
    users: int = 0


class ProductLockRegistry:
    """Reference-counted locks keyed by (tenant_id, product_id)."""

    def __init__(self, timeout_seconds: float = 10.0):
        self.timeout_seconds = timeout_seconds
        self._entries: dict[tuple[str, str], _Entry] = {}
        self._guard = threading.Lock()

    def __len__(self) -> int:
        """Number of products currently held or awaited."""
        with self._guard:
            return len(self._entries)

    def _checkout(self, key: tuple[str, str]) -> _Entry:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.users += 1
            return entry

    def _checkin(self, key: tuple[str, str]) -> None:
        with self._guard:
            entry = self._entries[key]
            entry.users -= 1
            if entry.users == 0:
                del self._entries[key]

    @contextmanager
    def hold(self, tenant_id: str, *product_ids: str) -> Iterator[None]:
        """
        Hold the locks of every product for the duration of the block.

        Locks are taken in sorted product order so multi-product callers
        cannot deadlock each other.

        Raises:
            ConcurrencyConflictError: a lock was not acquired within
                ``timeout_seconds``.
        """
        acquired: list[tuple[tuple[str, str], _Entry]] = []
        try:
            for product_id in sorted(set(product_ids)):
                key = (tenant_id, product_id)
                entry = self._checkout(key)
                if not entry.lock.acquire(timeout=self.timeout_seconds):
                    self._checkin(key)
                    logger.warning(
                        "product_lock_timeout",
                        extra={
                            "tenant_id": tenant_id,
                            "product_id": product_id,
                            "timeout_seconds": self.timeout_seconds,
                        },
                    )
                    raise ConcurrencyConflictError(
                        "Product", product_id, f"lock not acquired within {self.timeout_seconds}s"
                    )
                acquired.append((key, entry))
            yield
        finally:
            for key, entry in reversed(acquired):
                entry.lock.release()
                self._checkin(key)
