"""
AllocationRecorder -- applies inbound receipts and committed FIFO allocations.

Responsibility:
    ``receive`` turns a purchase line into a cost layer, an inbound ledger
    entry and a moving-average summary update.  ``commit`` applies a planned
    AllocationBreakdown: decrements each layer in order, appends one
    outbound ledger entry per line, issues the quantity from the summary and
    persists the breakdown so it can be reversed exactly later.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Composes CostLayerStore, LedgerWriter and StockSummaryService inside the
    caller's transaction.  Never commits.

Invariants enforced:
    - All-or-nothing: any failure propagates and the caller rolls back every
      layer, ledger and summary change made so far.
    - Lock order is summary row first, then layers, then counters, on every
      write path, so two writers never wait on each other in opposite order.
    - One committed breakdown per explicit sale_line_id.

Failure modes:
    - InvalidQuantityError / InvalidBreakdownError before any mutation.
    - BreakdownAlreadyRecordedError for a second commit of a sale line.
    - StockSummaryMissingError, InsufficientLayerQuantityError (fatal).
    - ConcurrencyConflictError when a planned layer was consumed by another
      transaction (retry the whole allocate + commit cycle).

Audit relevance:
    Every receipt and commit is logged with product, reference, quantities,
    cost and duration_ms.
"""

from __future__ import annotations

import time
from datetime import datetime
from decimal import Decimal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from costing_engines.fifo.validation import validate_breakdown
from costing_kernel.domain.clock import Clock, SystemClock
from costing_kernel.domain.dtos import AllocationBreakdown, AllocationRecord, CostLayer
from costing_kernel.domain.quantities import require_non_negative, require_positive
from costing_kernel.exceptions import BreakdownAlreadyRecordedError, InvalidBreakdownError
from costing_kernel.logging_config import get_logger
from costing_kernel.models.allocation import AllocationLineModel, AllocationRecordModel
from costing_kernel.selectors.mapping import record_to_dto
from costing_kernel.selectors.stock_selector import StockSelector
from costing_kernel.services.cost_layer_store import CostLayerStore
from costing_kernel.services.ledger_writer import LedgerWriter
from costing_services.stock_summary_service import StockSummaryService

logger = get_logger("services.allocation_recorder")


class AllocationRecorder:
    """
    Write path for stock movements in and out.

    Contract:
        Each method performs a complete movement within the caller's
        transaction and returns frozen DTOs describing the result.

    Non-goals:
        - Does NOT plan allocations (FifoAllocator does).
        - Does NOT retry; CostingRuntime owns the retry loop.
    """

    def __init__(self, session: Session, tenant_id: str, clock: Clock | None = None):
        self.session = session
        self.tenant_id = tenant_id
        self._clock = clock or SystemClock()
        self._layers = CostLayerStore(session, tenant_id, self._clock)
        self._ledger = LedgerWriter(session, tenant_id, self._clock)
        self._summaries = StockSummaryService(session, tenant_id, self._clock)
        self._selector = StockSelector(session, tenant_id)

    def receive(
        self,
        product_id: str,
        quantity: Decimal,
        unit_cost: Decimal,
        reference_id: str,
        batch_label: str | None = None,
        expires_at: datetime | None = None,
        received_at: datetime | None = None,
    ) -> CostLayer:
        """Create a layer, append the inbound entry and re-average the summary."""
        quantity = require_positive(quantity, "quantity")
        unit_cost = require_non_negative(unit_cost, "unit_cost")
        received_at = received_at or self._clock.now_utc()

        # Summary row first, matching commit and reversal lock order
        self._summaries.lock(product_id)

        layer = self._layers.create(
            product_id=product_id,
            quantity=quantity,
            unit_cost=unit_cost,
            received_at=received_at,
            reference_id=reference_id,
            batch_label=batch_label,
            expires_at=expires_at,
        )
        self._ledger.record_inbound(product_id, layer.layer_id, quantity, unit_cost, reference_id)
        summary = self._summaries.apply_receipt(product_id, quantity, unit_cost)

        logger.info(
            "stock_received",
            extra={
                "product_id": product_id,
                "layer_id": str(layer.layer_id),
                "quantity": str(quantity),
                "unit_cost": str(unit_cost),
                "reference_id": reference_id,
                "balance": str(summary.balance),
                "average_cost": str(summary.average_cost),
            },
        )
        return layer

    def commit(self, breakdown: AllocationBreakdown, reference_id: str) -> AllocationRecord:
        """
        Apply a planned breakdown and persist it.

        ``breakdown.sale_line_id``, when set, may be committed once per
        tenant.  Breakdowns without one are recorded under ``reference_id``
        alone, so several lines of one sale can share it.
        """
        t0 = time.monotonic()
        validate_breakdown(breakdown)
        product_id = breakdown.product_id
        sale_line_id = breakdown.sale_line_id

        if sale_line_id is not None:
            existing = self._selector.get_allocation(sale_line_id)
            if existing is not None:
                logger.warning(
                    "allocation_already_recorded",
                    extra={"sale_line_id": sale_line_id, "record_id": str(existing.record_id)},
                )
                raise BreakdownAlreadyRecordedError(sale_line_id, str(existing.record_id))

        self._summaries.require(product_id)

        entry_ids = []
        for line in breakdown.lines:
            layer = self._layers.decrement(
                line.layer_id, line.quantity_used, expected_version=line.layer_version
            )
            if layer.product_id != product_id:
                raise InvalidBreakdownError(
                    product_id, f"layer {line.layer_id} belongs to product {layer.product_id}"
                )
            if layer.unit_cost != line.unit_cost:
                raise InvalidBreakdownError(
                    product_id,
                    f"layer {line.layer_id} costs {layer.unit_cost}, breakdown says {line.unit_cost}",
                )
            entry = self._ledger.record_outbound(
                product_id, line.layer_id, line.quantity_used, line.unit_cost, reference_id
            )
            entry_ids.append(entry.entry_id)

        summary = self._summaries.apply_issue(product_id, breakdown.required_quantity)

        record = AllocationRecordModel(
            tenant_id=self.tenant_id,
            sale_line_id=sale_line_id,
            product_id=product_id,
            reference_id=reference_id,
            required_quantity=breakdown.required_quantity,
            total_cost=breakdown.total_cost,
            committed_at=self._clock.now_utc(),
            lines=[
                AllocationLineModel(
                    position=position,
                    layer_id=line.layer_id,
                    quantity_used=line.quantity_used,
                    unit_cost=line.unit_cost,
                    line_cost=line.line_cost,
                )
                for position, line in enumerate(breakdown.lines)
            ],
        )
        self.session.add(record)
        try:
            self.session.flush()
        except IntegrityError as exc:
            if sale_line_id is None:
                raise
            # A concurrent transaction committed the same sale line first
            raise BreakdownAlreadyRecordedError(sale_line_id, "concurrent") from exc

        duration_ms = round((time.monotonic() - t0) * 1000, 2)
        logger.info(
            "allocation_committed",
            extra={
                "product_id": product_id,
                "sale_line_id": sale_line_id,
                "reference_id": reference_id,
                "quantity": str(breakdown.required_quantity),
                "total_cost": str(breakdown.total_cost),
                "layers_used": len(breakdown.lines),
                "balance": str(summary.balance),
                "duration_ms": duration_ms,
            },
        )

        dto = record_to_dto(record)
        return AllocationRecord(
            record_id=dto.record_id,
            sale_line_id=dto.sale_line_id,
            reference_id=dto.reference_id,
            breakdown=breakdown,
            total_cost=dto.total_cost,
            committed_at=dto.committed_at,
            ledger_entry_ids=tuple(entry_ids),
        )

    def lock_summaries(self, product_ids) -> None:
        """Lock several summary rows up front, in sorted order, for a multi-line sale."""
        for product_id in sorted(set(product_ids)):
            self._summaries.lock(product_id)
