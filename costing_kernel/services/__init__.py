"""Services for the costing kernel (write side)."""

from costing_kernel.services.cost_layer_store import CostLayerStore
from costing_kernel.services.ledger_writer import LedgerWriter
from costing_kernel.services.sequence_service import SequenceService

__all__ = [
    "CostLayerStore",
    "LedgerWriter",
    "SequenceService",
]
