"""
costing_services -- stateful orchestration over the costing kernel and engines.

Services compose the pure engines (``costing_engines``) with kernel
persistence (``costing_kernel``) inside the caller's transaction.  Only
``CostingRuntime`` commits.
"""

from costing_services.allocation_recorder import AllocationRecorder
from costing_services.consistency_service import ConsistencyReport, ConsistencyService
from costing_services.inventory_costing_service import (
    AvailabilityLine,
    AvailabilityReport,
    InventoryCostingService,
)
from costing_services.product_lock import ProductLockRegistry
from costing_services.retry import RetryPolicy, run_with_retry
from costing_services.reversal_engine import ReversalEngine
from costing_services.runtime import CostingRuntime
from costing_services.stock_adjustment_service import StockAdjustmentService
from costing_services.stock_summary_service import StockSummaryService

__all__ = [
    "AllocationRecorder",
    "AvailabilityLine",
    "AvailabilityReport",
    "ConsistencyReport",
    "ConsistencyService",
    "CostingRuntime",
    "InventoryCostingService",
    "ProductLockRegistry",
    "RetryPolicy",
    "ReversalEngine",
    "StockAdjustmentService",
    "StockSummaryService",
    "run_with_retry",
]
