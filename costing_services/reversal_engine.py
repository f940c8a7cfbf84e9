"""
ReversalEngine -- exact restoration of a committed FIFO allocation.

Responsibility:
    Replays an AllocationBreakdown backwards onto its layers: each line's
    quantity goes back to the layer it came from, an adjustment ledger
    entry is appended per line, and the summary's outbound total is reduced.
    Returns against a recorded sale line may be partial; the quantity
    returned so far is kept in ``allocation_returns``.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

Invariants enforced:
    - Lines are replayed in recorded order; FIFO order is never re-derived.
    - The moving average cost is not touched.
    - A layer is never restored above its quantity_received.
    - The returns recorded against a sale line never add up to more than
      the quantity it sold.

Failure modes:
    - InvalidBreakdownError: empty/inconsistent breakdown, or no reference.
    - OverRestorationError: fatal; logged by CostLayerStore, never retried.
    - StockSummaryMissingError: reversal for a product with no summary.
    - BreakdownNotFoundError: ``reverse_sale_line`` for an unknown sale line.
    - ReturnExceedsSaleError: a sale line return beyond what is still out.

Non-goals:
    - ``reverse`` on a bare breakdown is not tracked: a second reversal of
      the same breakdown is caught only if it would over-restore a layer.
      Use ``reverse_sale_line`` for returns that must be counted.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy.orm import Session

from costing_engines.fifo.returns import plan_return
from costing_engines.fifo.validation import validate_breakdown
from costing_kernel.domain.clock import Clock, SystemClock
from costing_kernel.domain.dtos import AllocationBreakdown, ReversalResult
from costing_kernel.domain.quantities import ZERO, quantize, require_positive
from costing_kernel.exceptions import (
    BreakdownNotFoundError,
    InvalidBreakdownError,
    ReturnExceedsSaleError,
)
from costing_kernel.logging_config import get_logger
from costing_kernel.models.allocation import AllocationReturnModel
from costing_kernel.selectors.stock_selector import StockSelector
from costing_kernel.services.cost_layer_store import CostLayerStore
from costing_kernel.services.ledger_writer import LedgerWriter
from costing_services.stock_summary_service import StockSummaryService

logger = get_logger("services.reversal_engine")


class ReversalEngine:
    """Reverses committed allocations within the caller's transaction."""

    def __init__(self, session: Session, tenant_id: str, clock: Clock | None = None):
        self.session = session
        self.tenant_id = tenant_id
        self._clock = clock or SystemClock()
        self._layers = CostLayerStore(session, tenant_id, self._clock)
        self._ledger = LedgerWriter(session, tenant_id, self._clock)
        self._summaries = StockSummaryService(session, tenant_id, self._clock)
        self._selector = StockSelector(session, tenant_id)

    def reverse(
        self,
        breakdown: AllocationBreakdown,
        reference_id: str | None = None,
    ) -> ReversalResult:
        """
        Restore every line of ``breakdown`` to its layer.

        Args:
            breakdown: The breakdown that was committed.
            reference_id: Reference for the adjustment entries (return or
                void document).  Defaults to the breakdown's sale line.
        """
        reference = reference_id or breakdown.sale_line_id
        if not reference:
            raise InvalidBreakdownError(
                breakdown.product_id, "a reference_id is required when the breakdown has no sale_line_id"
            )
        validate_breakdown(breakdown)
        self._summaries.require(breakdown.product_id)
        return self._restore(breakdown, reference)

    def _restore(self, breakdown: AllocationBreakdown, reference: str) -> ReversalResult:
        """Put the lines back; the summary row must already be locked."""
        product_id = breakdown.product_id
        logger.info(
            "reversal_started",
            extra={
                "product_id": product_id,
                "reference_id": reference,
                "sale_line_id": breakdown.sale_line_id,
                "line_count": len(breakdown.lines),
            },
        )

        notes = f"reversal of sale line {breakdown.sale_line_id}" if breakdown.sale_line_id else None
        entry_ids = []
        restored_cost = ZERO
        for line in breakdown.lines:
            layer = self._layers.increment(line.layer_id, line.quantity_used)
            if layer.product_id != product_id:
                raise InvalidBreakdownError(
                    product_id, f"layer {line.layer_id} belongs to product {layer.product_id}"
                )
            entry = self._ledger.record_adjustment(
                product_id, line.layer_id, line.quantity_used, line.unit_cost, reference, notes=notes
            )
            entry_ids.append(entry.entry_id)
            restored_cost += line.line_cost

        summary = self._summaries.apply_restoration(product_id, breakdown.required_quantity)

        logger.info(
            "reversal_completed",
            extra={
                "product_id": product_id,
                "reference_id": reference,
                "restored_quantity": str(breakdown.required_quantity),
                "restored_cost": str(quantize(restored_cost)),
                "balance": str(summary.balance),
            },
        )
        return ReversalResult(
            product_id=product_id,
            reference_id=reference,
            restored_quantity=breakdown.required_quantity,
            restored_cost=quantize(restored_cost),
            ledger_entry_ids=tuple(entry_ids),
            summary=summary,
        )

    def reverse_sale_line(
        self,
        sale_line_id: str,
        reference_id: str | None = None,
        quantity: Decimal | None = None,
    ) -> ReversalResult:
        """
        Return all or part of a recorded sale line.

        Successive calls walk the sale's breakdown in order, so the layers
        it drew from first are restored first.  ``quantity`` defaults to
        whatever has not come back yet.

        Raises:
            BreakdownNotFoundError: No allocation recorded for the sale line.
            ReturnExceedsSaleError: ``quantity`` is more than is still out,
                or the line has already been returned in full.
        """
        if quantity is not None:
            quantity = require_positive(quantity, "quantity")
        record = self._selector.get_allocation(sale_line_id)
        if record is None:
            logger.warning("breakdown_not_found", extra={"sale_line_id": sale_line_id})
            raise BreakdownNotFoundError(sale_line_id)
        breakdown = record.breakdown
        reference = reference_id or sale_line_id

        # Summary lock first; it also serializes returns of this sale line.
        self._summaries.require(breakdown.product_id)
        returned = self._selector.returned_quantity(record.record_id)
        returnable = quantize(breakdown.required_quantity - returned)
        requested = returnable if quantity is None else quantity
        if returnable == 0 or requested > returnable:
            logger.warning(
                "return_exceeds_sale",
                extra={
                    "sale_line_id": sale_line_id,
                    "requested_quantity": str(requested),
                    "returnable_quantity": str(returnable),
                },
            )
            raise ReturnExceedsSaleError(sale_line_id, str(requested), str(returnable))

        result = self._restore(plan_return(breakdown, returned, requested), reference)
        self.session.add(
            AllocationReturnModel(
                tenant_id=self.tenant_id,
                record_id=record.record_id,
                reference_id=reference,
                quantity=requested,
                restored_cost=result.restored_cost,
                returned_at=self._clock.now_utc(),
            )
        )
        self.session.flush()
        return ReversalResult(
            product_id=result.product_id,
            reference_id=result.reference_id,
            restored_quantity=result.restored_quantity,
            restored_cost=result.restored_cost,
            ledger_entry_ids=result.ledger_entry_ids,
            summary=result.summary,
            returnable_quantity=quantize(returnable - requested),
        )
