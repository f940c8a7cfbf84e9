"""
Inventory Costing Service (``costing_services.inventory_costing_service``).

Responsibility
--------------
The public surface of the costing core for one tenant.  Composes the pure
``FifoAllocator`` with ``AllocationRecorder``, ``ReversalEngine`` and the
kernel selectors.  Contains no costing rules of its own.

Architecture
------------
Layer: **Services** -- thin facade.

1. ``receive`` -> AllocationRecorder (layer + ledger + moving average).
2. ``allocate`` -> FifoAllocator over CostLayerStore.list_available (read-only).
3. ``commit`` -> AllocationRecorder (decrement + ledger + summary + record).
4. ``commit_sale`` -> both of the above for every line of one sale, with
   all summary rows locked first.
5. ``reverse`` / ``reverse_sale_line`` -> ReversalEngine (whole or partial).
6. ``adjust_stock`` -> StockAdjustmentService.
7. ``rebuild_summary`` -> ConsistencyService, replaying the ledger.

Invariants
----------
- The caller owns the transaction.  Every method flushes, none commits;
  use ``session_scope`` or ``CostingRuntime.transaction``.
- ``allocate`` never mutates.  Plan and commit for one sale belong in the
  same transaction.

Failure Modes
-------------
All errors propagate unchanged (see ``costing_kernel.exceptions``).

Usage::

    with session_scope() as session:
        service = InventoryCostingService(session, "tenant-1")
        service.receive("SKU-1", Decimal("10"), Decimal("2.00"), "PO-1")
        breakdown = service.allocate("SKU-1", Decimal("4"), sale_line_id="SL-1")
        service.commit(breakdown, "INV-1")
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy.orm import Session

from costing_engines.fifo.allocator import FifoAllocator
from costing_kernel.domain.clock import Clock, SystemClock
from costing_kernel.domain.dtos import (
    AllocationBreakdown,
    AllocationRecord,
    CostLayer,
    LedgerEntry,
    ReversalResult,
    SaleLineRequest,
    StockAdjustment,
    StockSummary,
)
from costing_kernel.domain.quantities import ZERO, quantize, require_positive
from costing_kernel.exceptions import BreakdownNotFoundError, InvalidQuantityError
from costing_kernel.logging_config import LogContext, get_logger
from costing_kernel.selectors.ledger_selector import LedgerSelector
from costing_kernel.selectors.stock_selector import StockSelector
from costing_kernel.services.cost_layer_store import CostLayerStore
from costing_services.allocation_recorder import AllocationRecorder
from costing_services.consistency_service import ConsistencyReport, ConsistencyService
from costing_services.reversal_engine import ReversalEngine
from costing_services.stock_adjustment_service import StockAdjustmentService

logger = get_logger("services.inventory_costing")


@dataclass(frozen=True, slots=True)
class AvailabilityLine:
    """Requested vs. on-hand quantity for one product."""

    product_id: str
    requested: Decimal
    available: Decimal

    @property
    def shortfall(self) -> Decimal:
        return max(quantize(self.requested - self.available), ZERO)

    @property
    def is_available(self) -> bool:
        return self.available >= self.requested


@dataclass(frozen=True, slots=True)
class AvailabilityReport:
    """Result of a multi-line pre-sale stock check."""

    lines: tuple[AvailabilityLine, ...]

    @property
    def is_available(self) -> bool:
        return all(line.is_available for line in self.lines)

    @property
    def short_lines(self) -> tuple[AvailabilityLine, ...]:
        return tuple(line for line in self.lines if not line.is_available)


class InventoryCostingService:
    """
    FIFO costing operations for one tenant within the caller's session.

    Contract
    --------
    Inputs are validated before any I/O; every return value is a frozen DTO.

    Non-goals
    ---------
    - Does NOT commit or retry (see ``CostingRuntime``).
    - Does NOT post accounting entries; consumers read ``total_cost``.
    """

    def __init__(self, session: Session, tenant_id: str, clock: Clock | None = None):
        self.session = session
        self.tenant_id = tenant_id
        self._clock = clock or SystemClock()
        self._allocator = FifoAllocator()
        self._layers = CostLayerStore(session, tenant_id, self._clock)
        self._recorder = AllocationRecorder(session, tenant_id, self._clock)
        self._reversals = ReversalEngine(session, tenant_id, self._clock)
        self._adjustments = StockAdjustmentService(session, tenant_id, self._clock)
        self._consistency = ConsistencyService(session, tenant_id, self._clock)
        self._stock = StockSelector(session, tenant_id)
        self._ledger = LedgerSelector(session, tenant_id)

    # -------------------------------------------------------------------------
    # Movements
    # -------------------------------------------------------------------------

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
        """Record an inbound purchase line as a new cost layer."""
        with LogContext.bind(tenant_id=self.tenant_id, product_id=product_id,
                             reference_id=reference_id):
            return self._recorder.receive(
                product_id,
                quantity,
                unit_cost,
                reference_id,
                batch_label=batch_label,
                expires_at=expires_at,
                received_at=received_at,
            )

    def allocate(
        self,
        product_id: str,
        quantity: Decimal,
        sale_line_id: str | None = None,
    ) -> AllocationBreakdown:
        """
        Plan FIFO consumption of ``quantity`` without mutating anything.

        Raises:
            InvalidQuantityError: quantity <= 0.
            InsufficientStockError: the product's layers cannot cover it.
        """
        quantity = require_positive(quantity, "quantity")
        with LogContext.bind(tenant_id=self.tenant_id, product_id=product_id):
            layers = self._layers.list_available(product_id)
            return self._allocator.allocate(product_id, quantity, layers, sale_line_id=sale_line_id)

    def commit(self, breakdown: AllocationBreakdown, reference_id: str) -> AllocationRecord:
        """Apply a breakdown returned by ``allocate`` in this transaction."""
        with LogContext.bind(tenant_id=self.tenant_id, product_id=breakdown.product_id,
                             reference_id=reference_id):
            return self._recorder.commit(breakdown, reference_id)

    def reverse(
        self,
        breakdown: AllocationBreakdown,
        reference_id: str | None = None,
    ) -> ReversalResult:
        """Restore a committed breakdown to exactly the layers it consumed."""
        with LogContext.bind(tenant_id=self.tenant_id, product_id=breakdown.product_id,
                             reference_id=reference_id):
            return self._reversals.reverse(breakdown, reference_id)

    def commit_sale(
        self,
        reference_id: str,
        lines: Sequence[SaleLineRequest],
    ) -> tuple[AllocationRecord, ...]:
        """
        Allocate and commit every line of one sale.

        All quantities are validated and every product's summary row is
        locked, in sorted order, before the first layer is touched.  Lines
        are then planned and committed in the order given, so a product
        that appears twice is consumed in line order.

        Raises:
            InvalidQuantityError: any line has a non-positive quantity.
            InsufficientStockError: a line cannot be covered; the caller
                rolls back the lines already committed.
        """
        if not lines:
            raise InvalidQuantityError("lines", "[]", "a sale needs at least one line")
        quantities = [require_positive(line.quantity, "quantity") for line in lines]
        with LogContext.bind(tenant_id=self.tenant_id, reference_id=reference_id):
            self._recorder.lock_summaries(line.product_id for line in lines)
            records = []
            for line, quantity in zip(lines, quantities):
                breakdown = self.allocate(line.product_id, quantity, sale_line_id=line.sale_line_id)
                records.append(self.commit(breakdown, reference_id))
        logger.info(
            "sale_committed",
            extra={
                "tenant_id": self.tenant_id,
                "reference_id": reference_id,
                "line_count": len(records),
                "total_cost": str(quantize(sum((record.total_cost for record in records), ZERO))),
            },
        )
        return tuple(records)

    def reverse_sale_line(
        self,
        sale_line_id: str,
        reference_id: str | None = None,
        quantity: Decimal | None = None,
    ) -> ReversalResult:
        """Return all of a sale line, or ``quantity`` of it; see ReversalEngine."""
        with LogContext.bind(tenant_id=self.tenant_id, sale_line_id=sale_line_id,
                             reference_id=reference_id or sale_line_id):
            return self._reversals.reverse_sale_line(sale_line_id, reference_id, quantity)

    def adjust_stock(
        self,
        product_id: str,
        quantity_delta: Decimal,
        reference_id: str,
        reason: str | None = None,
        unit_cost: Decimal | None = None,
    ) -> StockAdjustment:
        """Manual stock correction: positive adds a layer, negative writes off FIFO."""
        with LogContext.bind(tenant_id=self.tenant_id, product_id=product_id,
                             reference_id=reference_id):
            return self._adjustments.adjust(
                product_id, quantity_delta, reference_id, reason=reason, unit_cost=unit_cost
            )

    def rebuild_summary(self, product_id: str) -> StockSummary:
        with LogContext.bind(tenant_id=self.tenant_id, product_id=product_id):
            return self._consistency.rebuild_summary(product_id)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_summary(self, product_id: str) -> StockSummary:
        """Current summary; all zeros for a product never received."""
        return self._stock.get_summary(product_id)

    def list_summaries(self) -> list[StockSummary]:
        return self._stock.list_summaries()

    def get_stock_value(self, product_id: str) -> Decimal:
        return self._stock.get_summary(product_id).total_value

    def list_available_layers(self, product_id: str) -> list[CostLayer]:
        return self._layers.list_available(product_id)

    def list_expiring_layers(
        self,
        before: datetime,
        product_id: str | None = None,
    ) -> list[CostLayer]:
        return self._layers.list_expiring(before, product_id)

    def list_ledger(
        self,
        product_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[LedgerEntry]:
        """Ledger entries for a product in seq order, optionally bounded by time."""
        return self._ledger.list_entries(product_id, start=start, end=end)

    def get_breakdown(self, sale_line_id: str) -> AllocationBreakdown:
        record = self._stock.get_allocation(sale_line_id)
        if record is None:
            raise BreakdownNotFoundError(sale_line_id)
        return record.breakdown

    def list_sale_allocations(self, reference_id: str) -> list[AllocationRecord]:
        """Every allocation committed under one sale document."""
        return self._stock.list_allocations_by_reference(reference_id)

    def validate_availability(
        self,
        items: Iterable[tuple[str, Decimal]],
    ) -> AvailabilityReport:
        """
        Check a multi-line sale against on-hand stock.

        Quantities for the same product are summed before comparison.
        Every short line is reported; nothing is mutated.
        """
        requested: dict[str, Decimal] = {}
        for product_id, quantity in items:
            quantity = require_positive(quantity, "quantity")
            requested[product_id] = quantize(requested.get(product_id, ZERO) + quantity)

        lines = tuple(
            AvailabilityLine(
                product_id=product_id,
                requested=quantity,
                available=self._stock.get_summary(product_id).balance,
            )
            for product_id, quantity in requested.items()
        )
        report = AvailabilityReport(lines=lines)
        if not report.is_available:
            logger.info(
                "availability_check_short",
                extra={
                    "tenant_id": self.tenant_id,
                    "short_products": [line.product_id for line in report.short_lines],
                },
            )
        return report

    def check_consistency(self, product_id: str) -> ConsistencyReport:
        return self._consistency.check(product_id)
