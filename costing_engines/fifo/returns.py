"""
Partial returns against a committed breakdown.

A sale line can come back in pieces.  Pieces are taken from the breakdown
lines in recorded order: the first return restores the oldest layer the
sale drew from, and the next one picks up where it stopped.  Given the
quantity already returned, ``plan_return`` slices out the lines the next
return restores.
"""

from __future__ import annotations

from decimal import Decimal

from costing_kernel.domain.dtos import AllocationBreakdown, BreakdownLine
from costing_kernel.domain.quantities import ZERO, quantize, require_non_negative, require_positive
from costing_kernel.exceptions import InvalidBreakdownError


def plan_return(
    breakdown: AllocationBreakdown,
    already_returned: Decimal,
    quantity: Decimal,
) -> AllocationBreakdown:
    """
    Breakdown covering the next ``quantity`` of ``breakdown`` to come back.

    Raises:
        InvalidQuantityError: ``quantity`` is not positive.
        InvalidBreakdownError: ``already_returned + quantity`` exceeds the
            breakdown's required quantity.
    """
    already_returned = require_non_negative(already_returned, "already_returned")
    quantity = require_positive(quantity, "quantity")
    if already_returned + quantity > breakdown.required_quantity:
        raise InvalidBreakdownError(
            breakdown.product_id,
            f"returning {quantity} after {already_returned} exceeds {breakdown.required_quantity}",
        )

    skip = already_returned
    remaining = quantity
    lines: list[BreakdownLine] = []
    for line in breakdown.lines:
        if remaining == 0:
            break
        available = line.quantity_used
        if skip >= available:
            skip -= available
            continue
        available -= skip
        skip = ZERO
        take = min(available, remaining)
        lines.append(
            BreakdownLine(
                layer_id=line.layer_id,
                quantity_used=quantize(take),
                unit_cost=line.unit_cost,
                line_cost=quantize(take * line.unit_cost),
            )
        )
        remaining -= take

    return AllocationBreakdown(
        product_id=breakdown.product_id,
        required_quantity=quantity,
        lines=tuple(lines),
        sale_line_id=breakdown.sale_line_id,
    )
