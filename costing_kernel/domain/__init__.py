"""
Pure domain layer.

Data transfer objects, quantity normalization and the clock abstraction,
with NO dependencies on the ORM, the database or I/O.
"""

from costing_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from costing_kernel.domain.dtos import (
    AllocationBreakdown,
    AllocationRecord,
    BreakdownLine,
    CostLayer,
    LedgerEntry,
    LedgerEntryKind,
    ReversalResult,
    SaleLineRequest,
    StockAdjustment,
    StockSummary,
)
from costing_kernel.domain.quantities import (
    DECIMAL_PLACES,
    quantize,
    require_non_negative,
    require_positive,
    to_decimal,
)

__all__ = [
    "AllocationBreakdown",
    "AllocationRecord",
    "BreakdownLine",
    "Clock",
    "CostLayer",
    "DECIMAL_PLACES",
    "DeterministicClock",
    "LedgerEntry",
    "LedgerEntryKind",
    "ReversalResult",
    "SaleLineRequest",
    "StockAdjustment",
    "StockSummary",
    "SystemClock",
    "quantize",
    "require_non_negative",
    "require_positive",
    "to_decimal",
]
