"""ORM models for the costing kernel."""

from costing_kernel.models.allocation import (
    AllocationLineModel,
    AllocationRecordModel,
    AllocationReturnModel,
)
from costing_kernel.models.cost_layer import CostLayerModel
from costing_kernel.models.ledger_entry import LedgerEntryModel
from costing_kernel.models.stock_summary import StockSummaryModel

__all__ = [
    "AllocationLineModel",
    "AllocationRecordModel",
    "AllocationReturnModel",
    "CostLayerModel",
    "LedgerEntryModel",
    "StockSummaryModel",
    "import_all_models",
]


def import_all_models() -> None:
    """
    Import every module that declares tables so Base.metadata is complete.

    The sequence counter table lives with SequenceService rather than in
    this package.
    """
    import costing_kernel.services.sequence_service  # noqa: F401
