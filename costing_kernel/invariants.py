"""
Costing Invariants Contract.

These invariants are structural law.  No configuration value, locking
strategy or retry policy may override them.

This module exists solely to declare them explicitly.  Enforcement is
distributed across CostLayerStore, the summary transitions, LedgerWriter,
SequenceService, the immutability listeners and the consistency service.
"""

from enum import Enum, unique


@unique
class CostingInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    FIFO_ORDER = "fifo_order"
    """Layers are consumed strictly by (received_at, seq) ascending.
    Enforced by FifoAllocator over StockSelector.list_available_layers."""

    NO_OVERSELL = "no_oversell"
    """An allocation either covers the full quantity or raises
    InsufficientStockError without mutating anything."""

    LAYER_BOUNDS = "layer_bounds"
    """0 <= quantity_remaining <= quantity_received for every layer.
    Enforced by CostLayerStore and CHECK constraints."""

    CONSERVATION = "conservation"
    """A product's summary balance equals the sum of its layers'
    quantity_remaining after every committed transaction."""

    AVERAGE_ON_RECEIPT = "average_on_receipt"
    """The moving average cost changes only on receipt; outbound and
    reversal movements leave it untouched."""

    LEDGER_APPEND_ONLY = "ledger_append_only"
    """Ledger entries and allocation records are never updated or deleted.
    Enforced by costing_kernel.db.immutability."""

    SEQUENCE_MONOTONICITY = "sequence_monotonicity"
    """Layer and ledger seq values are strictly monotonic.  Enforced by
    SequenceService with locked counter rows."""

    EXACT_REVERSAL = "exact_reversal"
    """A reversal restores exactly the recorded breakdown lines, in order,
    and never re-derives FIFO order."""


ALL_COSTING_INVARIANTS: frozenset[CostingInvariant] = frozenset(CostingInvariant)

# The kernel package may not import from these packages.
# This is enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "costing_engines",
    "costing_services",
    "costing_config",
)
