"""
Domain DTOs for the costing kernel.

Responsibility:
    Immutable value objects exchanged between the selectors, the pure FIFO
    and summary engines, the write-side services and the host.  Nothing here
    touches the database or the clock.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Selectors build these from ORM rows;
    engines consume and produce them; services persist what they describe.

Invariants enforced:
    - All DTOs are frozen dataclasses.
    - AllocationBreakdown.lines preserve consumption order; reversal replays
      them in that order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from costing_kernel.domain.quantities import ZERO, quantize


class LedgerEntryKind(str, Enum):
    """Kinds of stock ledger movement."""

    INBOUND = "inbound"        # Purchase receipt creating a layer
    OUTBOUND = "outbound"      # Sale consumption of a layer
    ADJUSTMENT = "adjustment"  # Return to a layer, or a manual correction (signed)


@dataclass(frozen=True, slots=True)
class CostLayer:
    """
    Snapshot of one purchase cost layer.

    FIFO order is ``fifo_key``: (received_at, seq).
    """

    layer_id: UUID
    seq: int
    product_id: str
    quantity_received: Decimal
    quantity_remaining: Decimal
    unit_cost: Decimal
    received_at: datetime
    reference_id: str
    batch_label: str | None = None
    expires_at: datetime | None = None
    version: int = 1

    @property
    def is_available(self) -> bool:
        return self.quantity_remaining > 0

    @property
    def fifo_key(self) -> tuple[datetime, int]:
        return (self.received_at, self.seq)

    @property
    def remaining_value(self) -> Decimal:
        return quantize(self.quantity_remaining * self.unit_cost)


@dataclass(frozen=True, slots=True)
class StockSummary:
    """
    Per-product running totals and valuation.

    An uninitialized product (never received) is reported as all zeros with
    ``last_updated_at`` of None.
    """

    product_id: str
    total_in: Decimal
    total_out: Decimal
    balance: Decimal
    average_cost: Decimal
    total_value: Decimal
    last_updated_at: datetime | None

    @property
    def is_initialized(self) -> bool:
        return self.last_updated_at is not None

    @classmethod
    def uninitialized(cls, product_id: str) -> StockSummary:
        return cls(
            product_id=product_id,
            total_in=ZERO,
            total_out=ZERO,
            balance=ZERO,
            average_cost=ZERO,
            total_value=ZERO,
            last_updated_at=None,
        )


@dataclass(frozen=True, slots=True)
class LedgerEntry:
    """One immutable stock movement (signed quantity, unsigned total cost)."""

    entry_id: UUID
    seq: int
    product_id: str
    kind: LedgerEntryKind
    reference_id: str
    layer_id: UUID
    quantity: Decimal
    unit_cost: Decimal
    total_cost: Decimal
    occurred_at: datetime
    notes: str | None = None


@dataclass(frozen=True, slots=True)
class BreakdownLine:
    """
    Quantity taken from one layer at that layer's unit cost.

    ``layer_version`` is the layer version observed at planning time; the
    commit path uses it to detect a concurrent consumer.  It is None for
    breakdowns loaded from a committed record.
    """

    layer_id: UUID
    quantity_used: Decimal
    unit_cost: Decimal
    line_cost: Decimal
    layer_version: int | None = None


@dataclass(frozen=True, slots=True)
class AllocationBreakdown:
    """
    Ordered FIFO plan covering exactly ``required_quantity``.

    ``average_unit_cost`` is the consumer average for this allocation
    (total_cost / required_quantity), not the summary's moving average.
    """

    product_id: str
    required_quantity: Decimal
    lines: tuple[BreakdownLine, ...]
    sale_line_id: str | None = None

    @property
    def total_cost(self) -> Decimal:
        return quantize(sum((line.line_cost for line in self.lines), ZERO))

    @property
    def total_quantity(self) -> Decimal:
        return quantize(sum((line.quantity_used for line in self.lines), ZERO))

    @property
    def average_unit_cost(self) -> Decimal:
        if self.required_quantity == 0:
            return ZERO
        return quantize(self.total_cost / self.required_quantity)


@dataclass(frozen=True, slots=True)
class AllocationRecord:
    """A committed allocation as persisted for a sale line."""

    record_id: UUID
    sale_line_id: str | None
    reference_id: str
    breakdown: AllocationBreakdown
    total_cost: Decimal
    committed_at: datetime
    ledger_entry_ids: tuple[UUID, ...] = field(default=())


@dataclass(frozen=True, slots=True)
class ReversalResult:
    """
    Outcome of replaying a breakdown back onto its layers.

    ``returnable_quantity`` is what is left to return on the sale line after
    a tracked return, and None for an untracked ``reverse``.
    """

    product_id: str
    reference_id: str
    restored_quantity: Decimal
    restored_cost: Decimal
    ledger_entry_ids: tuple[UUID, ...]
    summary: StockSummary
    returnable_quantity: Decimal | None = None


@dataclass(frozen=True, slots=True)
class SaleLineRequest:
    """One line of a multi-line sale handed to ``commit_sale``."""

    product_id: str
    quantity: Decimal
    sale_line_id: str | None = None


@dataclass(frozen=True, slots=True)
class StockAdjustment:
    """
    A manual correction of on-hand stock (count, damage, write-off).

    A positive delta opens ``layer_id`` at ``unit_cost``.  A negative delta
    consumes layers oldest first; ``lines`` says which, at what cost.
    ``total_cost`` is the value added or removed, always non-negative.
    """

    product_id: str
    reference_id: str
    quantity_delta: Decimal
    total_cost: Decimal
    ledger_entry_ids: tuple[UUID, ...]
    summary: StockSummary
    layer_id: UUID | None = None
    unit_cost: Decimal | None = None
    lines: tuple[BreakdownLine, ...] = ()
