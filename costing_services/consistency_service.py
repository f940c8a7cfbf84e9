"""
ConsistencyService -- cross-entity balance checks for one product.

Responsibility:
    Recomputes a product's on-hand quantity three ways (layers, ledger,
    total_in - total_out) and compares each with the stored summary balance.
    ``rebuild_summary`` repairs a drifted summary by replaying the ledger.

Architecture position:
    Services -- read-only orchestration over kernel selectors, except
    ``rebuild_summary`` which writes the summary row in the caller's
    transaction.

Invariants enforced:
    - summary.balance == Σ layer.quantity_remaining
    - summary.balance == summary.total_in - summary.total_out
    - summary.balance == Σ ledger.quantity

Failure modes:
    - BalanceMismatchError from ``assert_consistent``; ``check`` only reports.
    - BalanceMismatchError from ``rebuild_summary`` when the ledger and the
      layers disagree, since then neither can be trusted to rebuild from.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.orm import Session

from costing_engines.summary import replay_ledger
from costing_kernel.domain.clock import Clock
from costing_kernel.domain.dtos import StockSummary
from costing_kernel.domain.quantities import quantize
from costing_kernel.exceptions import BalanceMismatchError
from costing_kernel.logging_config import get_logger
from costing_kernel.selectors.ledger_selector import LedgerSelector
from costing_kernel.selectors.stock_selector import StockSelector
from costing_services.stock_summary_service import StockSummaryService

logger = get_logger("services.consistency")


@dataclass(frozen=True, slots=True)
class ConsistencyReport:
    """Result of comparing a product's summary with its layers and ledger."""

    product_id: str
    summary_balance: Decimal
    layer_balance: Decimal
    in_out_balance: Decimal
    ledger_balance: Decimal
    mismatches: tuple[str, ...]

    @property
    def is_consistent(self) -> bool:
        return not self.mismatches


class ConsistencyService:
    """Balance verification, and summary repair from the ledger."""

    def __init__(self, session: Session, tenant_id: str, clock: Clock | None = None):
        self.tenant_id = tenant_id
        self._summaries = StockSummaryService(session, tenant_id, clock)
        self._stock = StockSelector(session, tenant_id)
        self._ledger = LedgerSelector(session, tenant_id)

    def check(self, product_id: str) -> ConsistencyReport:
        summary = self._stock.get_summary(product_id)
        layer_balance = self._stock.layer_balance(product_id)
        in_out_balance = quantize(summary.total_in - summary.total_out)
        ledger_balance = self._ledger.net_quantity(product_id)

        mismatches = []
        if layer_balance != summary.balance:
            mismatches.append("layers")
        if in_out_balance != summary.balance:
            mismatches.append("total_in_minus_total_out")
        if ledger_balance != summary.balance:
            mismatches.append("ledger")

        report = ConsistencyReport(
            product_id=product_id,
            summary_balance=summary.balance,
            layer_balance=layer_balance,
            in_out_balance=in_out_balance,
            ledger_balance=ledger_balance,
            mismatches=tuple(mismatches),
        )
        if mismatches:
            logger.warning(
                "stock_consistency_mismatch",
                extra={
                    "product_id": product_id,
                    "summary_balance": str(summary.balance),
                    "layer_balance": str(layer_balance),
                    "in_out_balance": str(in_out_balance),
                    "ledger_balance": str(ledger_balance),
                    "mismatches": list(mismatches),
                },
            )
        else:
            logger.debug("stock_consistency_verified", extra={"product_id": product_id})
        return report

    def assert_consistent(self, product_id: str) -> ConsistencyReport:
        """Like ``check`` but raises BalanceMismatchError on any mismatch."""
        report = self.check(product_id)
        if not report.is_consistent:
            logger.error(
                "stock_consistency_violation",
                extra={"product_id": product_id, "mismatches": list(report.mismatches)},
            )
            raise BalanceMismatchError(
                product_id, str(report.summary_balance), str(report.layer_balance)
            )
        return report

    def rebuild_summary(self, product_id: str) -> StockSummary:
        """
        Recompute every summary field from the ledger and overwrite the row.

        The average cost is replayed with the same moving-average rule the
        live path uses, so a summary that never drifted is rewritten
        unchanged.

        Raises:
            BalanceMismatchError: The replayed balance disagrees with the
                layers.  Nothing is written.
        """
        locked = self._summaries.lock(product_id)
        entries = self._ledger.list_entries(product_id)
        if locked is None and not entries:
            return StockSummary.uninitialized(product_id)
        before = self._stock.get_summary(product_id)
        state = replay_ledger(product_id, entries)
        layer_balance = self._stock.layer_balance(product_id)
        if state.balance != layer_balance:
            logger.error(
                "stock_summary_rebuild_refused",
                extra={
                    "product_id": product_id,
                    "ledger_balance": str(state.balance),
                    "layer_balance": str(layer_balance),
                },
            )
            raise BalanceMismatchError(product_id, str(state.balance), str(layer_balance))

        summary = self._summaries.overwrite(product_id, state)
        logger.warning(
            "stock_summary_rebuilt",
            extra={
                "product_id": product_id,
                "previous_balance": str(before.balance),
                "previous_average_cost": str(before.average_cost),
                "balance": str(summary.balance),
                "average_cost": str(summary.average_cost),
            },
        )
        return summary
