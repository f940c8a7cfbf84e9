"""FIFO - pure allocation planning over cost layers."""

from costing_engines.fifo.allocator import FifoAllocator
from costing_engines.fifo.returns import plan_return
from costing_engines.fifo.validation import validate_breakdown

__all__ = ["FifoAllocator", "plan_return", "validate_breakdown"]
