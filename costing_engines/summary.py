"""
costing_engines.summary -- Pure stock summary transitions.

Responsibility:
    Compute the next (total_in, total_out, balance, average_cost,
    total_value) tuple for a receipt, an issue, or a restoration.  The
    persistence layer always writes all five fields from one of these
    results.  ``replay_ledger`` folds the same transitions over a ledger
    to rebuild a summary from scratch.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - balance == total_in - total_out.
    - total_value == balance * average_cost (quantized).
    - average_cost changes on receipt only:
          avg' = (balance * avg + q * c) / (balance + q)
      and is left unchanged when balance + q == 0.
    - balance never goes negative.

Failure modes:
    - InvalidQuantityError on non-positive quantity or negative unit cost.
    - BalanceMismatchError when an issue or restoration would drive the
      summary below zero, i.e. it disagrees with the layers that allowed it.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from costing_kernel.domain.dtos import LedgerEntry, LedgerEntryKind, StockSummary
from costing_kernel.domain.quantities import ZERO, quantize, require_non_negative, require_positive
from costing_kernel.exceptions import BalanceMismatchError


@dataclass(frozen=True, slots=True)
class SummaryState:
    """The five numeric fields of a stock summary."""

    product_id: str
    total_in: Decimal
    total_out: Decimal
    balance: Decimal
    average_cost: Decimal
    total_value: Decimal

    @classmethod
    def zero(cls, product_id: str) -> SummaryState:
        return cls(product_id, ZERO, ZERO, ZERO, ZERO, ZERO)

    @classmethod
    def from_summary(cls, summary: StockSummary) -> SummaryState:
        return cls(
            product_id=summary.product_id,
            total_in=summary.total_in,
            total_out=summary.total_out,
            balance=summary.balance,
            average_cost=summary.average_cost,
            total_value=summary.total_value,
        )


def moving_average_cost(
    balance: Decimal,
    average_cost: Decimal,
    quantity: Decimal,
    unit_cost: Decimal,
) -> Decimal:
    """Weighted average of on-hand stock and a new receipt."""
    denominator = balance + quantity
    if denominator == 0:
        return average_cost
    return quantize((balance * average_cost + quantity * unit_cost) / denominator)


def _valued(product_id, total_in, total_out, average_cost) -> SummaryState:
    balance = quantize(total_in - total_out)
    return SummaryState(
        product_id=product_id,
        total_in=quantize(total_in),
        total_out=quantize(total_out),
        balance=balance,
        average_cost=average_cost,
        total_value=quantize(balance * average_cost),
    )


def apply_receipt(state: SummaryState, quantity: Decimal, unit_cost: Decimal) -> SummaryState:
    """Inbound: total_in += q, average recomputed."""
    quantity = require_positive(quantity, "quantity")
    unit_cost = require_non_negative(unit_cost, "unit_cost")
    average = moving_average_cost(state.balance, state.average_cost, quantity, unit_cost)
    return _valued(state.product_id, state.total_in + quantity, state.total_out, average)


def apply_issue(state: SummaryState, quantity: Decimal) -> SummaryState:
    """Outbound: total_out += q, average unchanged."""
    quantity = require_positive(quantity, "quantity")
    if quantity > state.balance:
        raise BalanceMismatchError(
            state.product_id,
            summary_balance=str(state.balance),
            layer_balance=f">= {quantity}",
        )
    return _valued(state.product_id, state.total_in, state.total_out + quantity, state.average_cost)


def apply_restoration(state: SummaryState, quantity: Decimal) -> SummaryState:
    """Reversal: total_out -= q, average unchanged."""
    quantity = require_positive(quantity, "quantity")
    if quantity > state.total_out:
        raise BalanceMismatchError(
            state.product_id,
            summary_balance=str(state.balance),
            layer_balance=f"restoring {quantity} exceeds total_out {state.total_out}",
        )
    return _valued(state.product_id, state.total_in, state.total_out - quantity, state.average_cost)


def replay_ledger(product_id: str, entries: Iterable[LedgerEntry]) -> SummaryState:
    """
    Rebuild a summary from a product's ledger, oldest entry first.

    Inbound entries, and positive adjustments that open a layer, are
    receipts at the entry's unit cost.  Positive adjustments on a layer
    seen earlier are restorations.  Every negative entry is an issue.
    The result equals what the live transitions produced as long as the
    entries are in seq order.
    """
    state = SummaryState.zero(product_id)
    seen_layers = set()
    for entry in entries:
        if entry.quantity < 0:
            state = apply_issue(state, -entry.quantity)
        elif entry.kind is LedgerEntryKind.INBOUND or entry.layer_id not in seen_layers:
            state = apply_receipt(state, entry.quantity, entry.unit_cost)
        else:
            state = apply_restoration(state, entry.quantity)
        seen_layers.add(entry.layer_id)
    return state
