"""Structural checks for a breakdown before it is committed or reversed."""

from __future__ import annotations

from costing_kernel.domain.dtos import AllocationBreakdown
from costing_kernel.domain.quantities import ZERO, quantize
from costing_kernel.exceptions import InvalidBreakdownError


def validate_breakdown(breakdown: AllocationBreakdown) -> None:
    """
    Raise InvalidBreakdownError unless the breakdown is internally consistent.

    Checks: at least one line, positive line quantities, non-negative costs,
    each layer used once, line_cost == quantity_used * unit_cost, and lines
    summing to required_quantity.
    """
    product_id = breakdown.product_id
    if not breakdown.lines:
        raise InvalidBreakdownError(product_id, "breakdown has no lines")
    if breakdown.required_quantity <= 0:
        raise InvalidBreakdownError(product_id, "required_quantity must be positive")

    seen = set()
    total = ZERO
    for position, line in enumerate(breakdown.lines):
        if line.quantity_used <= 0:
            raise InvalidBreakdownError(
                product_id, f"line {position}: quantity_used must be positive"
            )
        if line.unit_cost < 0:
            raise InvalidBreakdownError(
                product_id, f"line {position}: unit_cost must not be negative"
            )
        if line.layer_id in seen:
            raise InvalidBreakdownError(
                product_id, f"line {position}: layer {line.layer_id} appears twice"
            )
        if quantize(line.quantity_used * line.unit_cost) != quantize(line.line_cost):
            raise InvalidBreakdownError(
                product_id, f"line {position}: line_cost does not equal quantity_used * unit_cost"
            )
        seen.add(line.layer_id)
        total += line.quantity_used

    if quantize(total) != quantize(breakdown.required_quantity):
        raise InvalidBreakdownError(
            product_id,
            f"lines cover {quantize(total)} but required_quantity is {breakdown.required_quantity}",
        )
