"""
StockSummaryService -- persistence of per-product stock summaries.

Responsibility:
    Loads a product's summary row under a row lock, runs one of the pure
    transitions from ``costing_engines.summary`` and writes all five
    numeric fields back together with ``last_updated_at``.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Called by AllocationRecorder and ReversalEngine inside the caller's
    transaction.

Invariants enforced:
    - Uninitialized -> Active on first receipt: the row is created lazily.
    - Outbound and restoration movements require an existing row.
    - The average cost is written only by ``apply_receipt``, or wholesale by
      ``overwrite`` when a rebuild replaces a drifted row.

Failure modes:
    - StockSummaryMissingError: issue/restoration for a product never received.
    - BalanceMismatchError: the transition would drive the summary negative.
    - ConcurrencyConflictError: version mismatch at flush.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from costing_engines.summary import SummaryState, apply_issue, apply_receipt, apply_restoration
from costing_kernel.domain.clock import Clock, SystemClock
from costing_kernel.domain.dtos import StockSummary
from costing_kernel.exceptions import BalanceMismatchError, StockSummaryMissingError
from costing_kernel.logging_config import get_logger
from costing_kernel.models.stock_summary import StockSummaryModel
from costing_kernel.selectors.mapping import summary_to_dto
from costing_kernel.services.base import BaseService

logger = get_logger("services.stock_summary")


class StockSummaryService(BaseService[StockSummaryModel]):
    """Applies summary transitions for one tenant."""

    def __init__(self, session: Session, tenant_id: str, clock: Clock | None = None):
        super().__init__(session)
        self.tenant_id = tenant_id
        self._clock = clock or SystemClock()

    def lock(self, product_id: str) -> StockSummaryModel | None:
        """Load the summary row with ``SELECT ... FOR UPDATE``, or None."""
        return self.session.execute(
            select(StockSummaryModel)
            .where(
                StockSummaryModel.tenant_id == self.tenant_id,
                StockSummaryModel.product_id == product_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def require(self, product_id: str) -> StockSummaryModel:
        model = self.lock(product_id)
        if model is None:
            logger.error(
                "stock_summary_missing",
                extra={"product_id": product_id, "tenant_id": self.tenant_id},
            )
            raise StockSummaryMissingError(product_id)
        return model

    def _state(self, model: StockSummaryModel) -> SummaryState:
        return SummaryState.from_summary(summary_to_dto(model))

    def _write(self, model: StockSummaryModel, state: SummaryState, movement: str,
               quantity: Decimal) -> StockSummary:
        model.total_in = state.total_in
        model.total_out = state.total_out
        model.balance = state.balance
        model.average_cost = state.average_cost
        model.total_value = state.total_value
        model.last_updated_at = self._clock.now_utc()
        self._flush("StockSummary", state.product_id)

        logger.info(
            "stock_summary_updated",
            extra={
                "product_id": state.product_id,
                "movement": movement,
                "quantity": str(quantity),
                "balance": str(state.balance),
                "average_cost": str(state.average_cost),
                "total_value": str(state.total_value),
            },
        )
        return summary_to_dto(model)

    def _create(self, product_id: str) -> StockSummaryModel:
        """Insert an all-zero row; fall back to the row a concurrent receipt created."""
        state = SummaryState.zero(product_id)
        savepoint = self.session.begin_nested()
        try:
            model = StockSummaryModel(
                tenant_id=self.tenant_id,
                product_id=product_id,
                total_in=state.total_in,
                total_out=state.total_out,
                balance=state.balance,
                average_cost=state.average_cost,
                total_value=state.total_value,
                last_updated_at=self._clock.now_utc(),
            )
            self.session.add(model)
            self.session.flush()
            savepoint.commit()
            logger.info("stock_summary_initialized", extra={"product_id": product_id})
            return model
        except IntegrityError:
            savepoint.rollback()
            logger.debug("stock_summary_create_race", extra={"product_id": product_id})
            return self.require(product_id)

    def apply_receipt(self, product_id: str, quantity: Decimal, unit_cost: Decimal) -> StockSummary:
        model = self.lock_or_create(product_id)
        state = apply_receipt(self._state(model), quantity, unit_cost)
        return self._write(model, state, "receipt", quantity)

    def _checked(self, transition, model: StockSummaryModel, quantity: Decimal) -> SummaryState:
        try:
            return transition(self._state(model), quantity)
        except BalanceMismatchError:
            logger.error(
                "stock_summary_balance_mismatch",
                exc_info=True,
                extra={"product_id": model.product_id, "quantity": str(quantity)},
            )
            raise

    def apply_issue(self, product_id: str, quantity: Decimal) -> StockSummary:
        model = self.require(product_id)
        state = self._checked(apply_issue, model, quantity)
        return self._write(model, state, "issue", quantity)

    def apply_restoration(self, product_id: str, quantity: Decimal) -> StockSummary:
        model = self.require(product_id)
        state = self._checked(apply_restoration, model, quantity)
        return self._write(model, state, "restoration", quantity)

    def lock_or_create(self, product_id: str) -> StockSummaryModel:
        model = self.lock(product_id)
        return model if model is not None else self._create(product_id)

    def overwrite(self, product_id: str, state: SummaryState) -> StockSummary:
        """Replace all five fields with ``state``; used by summary rebuilds."""
        model = self.lock_or_create(product_id)
        return self._write(model, state, "rebuild", state.balance)
