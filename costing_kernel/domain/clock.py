"""
Clock -- where the costing services read "now".

Ledger ``occurred_at``, allocation ``committed_at``, summary
``last_updated_at`` and the default layer ``received_at`` all come from the
injected clock.  Because ``received_at`` decides FIFO order, tests pin the
order of receipts by driving a DeterministicClock.
"""

from abc import ABC, abstractmethod
from datetime import UTC, datetime, timedelta

EPOCH = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)


class Clock(ABC):
    @abstractmethod
    def now_utc(self) -> datetime:
        """Current instant, timezone-aware UTC."""


class SystemClock(Clock):
    def now_utc(self) -> datetime:
        return datetime.now(UTC)


class DeterministicClock(Clock):
    """
    Clock that only moves when told to.

    Every movement made between two ``advance`` calls shares one timestamp,
    so FIFO order among those receipts falls back to layer seq.
    """

    def __init__(self, start: datetime = EPOCH):
        if start.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware start")
        self._now = start.astimezone(UTC)

    def now_utc(self) -> datetime:
        return self._now

    def advance(self, seconds: float = 1) -> datetime:
        """Move forward and return the new instant."""
        if seconds < 0:
            raise ValueError("DeterministicClock cannot move backwards")
        self._now += timedelta(seconds=seconds)
        return self._now
