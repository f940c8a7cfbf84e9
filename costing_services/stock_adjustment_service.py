"""
StockAdjustmentService -- manual corrections of on-hand stock.

Responsibility:
    Applies a signed quantity delta outside the purchase and sale flows:
    a stock count that found more (positive) or less (negative) than the
    books say, damage, shrinkage or a write-off.

    - Positive delta: a new cost layer at ``unit_cost`` (by default the
      product's current moving average), a positive adjustment ledger entry
      and a receipt on the summary.
    - Negative delta: layers are consumed oldest first exactly as a sale
      would, with one negative adjustment entry per layer and an issue on
      the summary.

Architecture position:
    Services -- stateful orchestration over engines + kernel, inside the
    caller's transaction.  Never commits.

Invariants enforced:
    - Summary row is locked before any layer, like every other write path.
    - balance == sum(layer.quantity_remaining) holds afterwards.
    - A write-off never takes a layer below zero.

Failure modes:
    - InvalidQuantityError: zero delta, or no unit cost for a product with
      no stock history.
    - InsufficientStockError: a write-off larger than the on-hand balance.
    - StockSummaryMissingError: a write-off for a product never received.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy.orm import Session

from costing_engines.fifo.allocator import FifoAllocator
from costing_kernel.domain.clock import Clock, SystemClock
from costing_kernel.domain.dtos import StockAdjustment
from costing_kernel.domain.quantities import quantize, require_non_negative, to_decimal
from costing_kernel.exceptions import InvalidQuantityError
from costing_kernel.logging_config import get_logger
from costing_kernel.services.cost_layer_store import CostLayerStore
from costing_kernel.services.ledger_writer import LedgerWriter
from costing_services.stock_summary_service import StockSummaryService

logger = get_logger("services.stock_adjustment")


class StockAdjustmentService:
    """Signed stock corrections for one tenant."""

    def __init__(self, session: Session, tenant_id: str, clock: Clock | None = None):
        self.session = session
        self.tenant_id = tenant_id
        self._clock = clock or SystemClock()
        self._allocator = FifoAllocator()
        self._layers = CostLayerStore(session, tenant_id, self._clock)
        self._ledger = LedgerWriter(session, tenant_id, self._clock)
        self._summaries = StockSummaryService(session, tenant_id, self._clock)

    def adjust(
        self,
        product_id: str,
        quantity_delta: Decimal,
        reference_id: str,
        reason: str | None = None,
        unit_cost: Decimal | None = None,
    ) -> StockAdjustment:
        """
        Add or remove stock outside a purchase or sale.

        Args:
            quantity_delta: Positive to add stock, negative to remove it.
            reference_id: The count sheet or write-off document.
            reason: Stored as the ledger entry notes.
            unit_cost: Cost of added stock.  Ignored for removals, which
                are costed from the layers they consume.
        """
        delta = to_decimal(quantity_delta, "quantity_delta")
        if delta == 0:
            raise InvalidQuantityError("quantity_delta", str(delta), "adjustment cannot be zero")

        if delta > 0:
            result = self._add(product_id, delta, reference_id, reason, unit_cost)
        else:
            result = self._remove(product_id, -delta, reference_id, reason)

        logger.info(
            "stock_adjusted",
            extra={
                "product_id": product_id,
                "reference_id": reference_id,
                "quantity_delta": str(delta),
                "total_cost": str(result.total_cost),
                "reason": reason,
                "balance": str(result.summary.balance),
            },
        )
        return result

    def _add(self, product_id, quantity, reference_id, reason, unit_cost) -> StockAdjustment:
        model = self._summaries.lock(product_id)
        if unit_cost is None:
            if model is None:
                raise InvalidQuantityError(
                    "unit_cost", "None", "required for a product with no stock history"
                )
            unit_cost = model.average_cost
        unit_cost = require_non_negative(unit_cost, "unit_cost")

        layer = self._layers.create(
            product_id=product_id,
            quantity=quantity,
            unit_cost=unit_cost,
            received_at=self._clock.now_utc(),
            reference_id=reference_id,
        )
        entry = self._ledger.record_adjustment(
            product_id, layer.layer_id, quantity, unit_cost, reference_id, notes=reason
        )
        summary = self._summaries.apply_receipt(product_id, quantity, unit_cost)
        return StockAdjustment(
            product_id=product_id,
            reference_id=reference_id,
            quantity_delta=quantity,
            total_cost=quantize(quantity * unit_cost),
            ledger_entry_ids=(entry.entry_id,),
            summary=summary,
            layer_id=layer.layer_id,
            unit_cost=unit_cost,
        )

    def _remove(self, product_id, quantity, reference_id, reason) -> StockAdjustment:
        self._summaries.require(product_id)
        plan = self._allocator.allocate(product_id, quantity, self._layers.list_available(product_id))

        entry_ids = []
        for line in plan.lines:
            self._layers.decrement(line.layer_id, line.quantity_used, expected_version=line.layer_version)
            entry = self._ledger.record_adjustment(
                product_id, line.layer_id, -line.quantity_used, line.unit_cost, reference_id,
                notes=reason,
            )
            entry_ids.append(entry.entry_id)

        summary = self._summaries.apply_issue(product_id, quantity)
        return StockAdjustment(
            product_id=product_id,
            reference_id=reference_id,
            quantity_delta=-quantity,
            total_cost=plan.total_cost,
            ledger_entry_ids=tuple(entry_ids),
            summary=summary,
            lines=plan.lines,
        )
