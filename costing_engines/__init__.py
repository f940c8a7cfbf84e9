"""
Module: costing_engines
Responsibility:
    Package entrypoint that re-exports the pure calculation engines: FIFO
    allocation planning and stock summary transitions.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import costing_kernel.domain, costing_kernel.exceptions and
    costing_kernel.logging_config.  MUST NOT import costing_services.

Invariants enforced:
    - Purity: engines never read the clock or the database.
    - Decimal-only arithmetic, quantized to storage precision.
    - Determinism: identical inputs always produce identical outputs.
"""

from costing_engines.fifo import FifoAllocator
from costing_engines.summary import (
    SummaryState,
    apply_issue,
    apply_receipt,
    apply_restoration,
    moving_average_cost,
)

__all__ = [
    "FifoAllocator",
    "SummaryState",
    "apply_issue",
    "apply_receipt",
    "apply_restoration",
    "moving_average_cost",
]
