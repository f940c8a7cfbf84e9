"""
costing_engines.fifo.allocator -- Pure FIFO allocation planning.

Responsibility:
    Given a product's cost layers and a required quantity, produce the
    ordered breakdown of which layers supply how much at what cost.  The
    plan is all-or-nothing.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import costing_kernel.domain and costing_kernel.exceptions.
    The stateful recorder that applies a plan lives in costing_services/.

Invariants enforced:
    - FIFO: layers are consumed by (received_at, seq) ascending, whatever
      order they are passed in.
    - No partial plans: a shortfall raises InsufficientStockError.
    - Exhausted layers never appear in a plan; zero-cost layers do.
    - Σ quantity_used == required_quantity and each line_cost is
      quantity_used * unit_cost, quantized.

Failure modes:
    - InvalidQuantityError if required_quantity <= 0 (checked first).
    - InsufficientStockError(requested, available, shortfall).
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal

from costing_kernel.domain.dtos import AllocationBreakdown, BreakdownLine, CostLayer
from costing_kernel.domain.quantities import ZERO, quantize, require_positive
from costing_kernel.exceptions import InsufficientStockError
from costing_kernel.logging_config import get_logger
from costing_engines.tracer import traced_engine

logger = get_logger("engines.fifo.allocator")


class FifoAllocator:
    """
    Plans FIFO consumption of cost layers.

    Contract:
        Stateless.  ``allocate`` reads the layers it is handed and returns an
        AllocationBreakdown; it never mutates anything.

    Non-goals:
        - Does NOT load layers (callers pass CostLayerStore.list_available).
        - Does NOT check layer versions; each line carries the version it saw
          so the commit path can.
    """

    @traced_engine("fifo_allocator", "1.0", fields=("product_id", "required_quantity", "layers"))
    def allocate(
        self,
        product_id: str,
        required_quantity: Decimal,
        layers: Iterable[CostLayer],
        sale_line_id: str | None = None,
    ) -> AllocationBreakdown:
        """
        Plan the consumption of ``required_quantity`` oldest layer first.

        Args:
            product_id: Product being sold.
            required_quantity: Quantity to cover; must be > 0.
            layers: Candidate layers for the product, in any order.
            sale_line_id: Optional sale line the plan is for.

        Returns:
            AllocationBreakdown whose lines sum to required_quantity.

        Raises:
            InvalidQuantityError: required_quantity <= 0.
            InsufficientStockError: the layers cannot cover the request.
        """
        required = require_positive(required_quantity, "required_quantity")

        candidates = sorted(
            (layer for layer in layers if layer.is_available),
            key=lambda layer: layer.fifo_key,
        )
        available = quantize(sum((layer.quantity_remaining for layer in candidates), ZERO))

        if available < required:
            shortfall = quantize(required - available)
            logger.warning(
                "fifo_allocation_insufficient_stock",
                extra={
                    "product_id": product_id,
                    "requested": str(required),
                    "available": str(available),
                    "shortfall": str(shortfall),
                    "layer_count": len(candidates),
                },
            )
            raise InsufficientStockError(
                product_id=product_id,
                requested_quantity=str(required),
                available_quantity=str(available),
                shortfall=str(shortfall),
            )

        lines: list[BreakdownLine] = []
        outstanding = required
        for layer in candidates:
            if outstanding <= 0:
                break
            take = min(outstanding, layer.quantity_remaining)
            lines.append(
                BreakdownLine(
                    layer_id=layer.layer_id,
                    quantity_used=take,
                    unit_cost=layer.unit_cost,
                    line_cost=quantize(take * layer.unit_cost),
                    layer_version=layer.version,
                )
            )
            outstanding = quantize(outstanding - take)

        breakdown = AllocationBreakdown(
            product_id=product_id,
            required_quantity=required,
            lines=tuple(lines),
            sale_line_id=sale_line_id,
        )

        logger.info(
            "fifo_allocation_completed",
            extra={
                "product_id": product_id,
                "required_quantity": str(required),
                "layers_used": len(lines),
                "total_cost": str(breakdown.total_cost),
                "average_unit_cost": str(breakdown.average_unit_cost),
            },
        )
        return breakdown
