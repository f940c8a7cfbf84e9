"""
CostLayerStore -- persistence and guarded mutation of FIFO cost layers.

Responsibility:
    Creates layers on receipt, serves them in FIFO order, and applies the
    two permitted mutations: ``decrement`` (sale consumption) and
    ``increment`` (reversal restoration).

Architecture position:
    Kernel > Services -- imperative shell.  Called by AllocationRecorder and
    ReversalEngine in costing_services.  Reads go through StockSelector.

Invariants enforced:
    - 0 <= quantity_remaining <= quantity_received after every mutation.
    - Mutations read the row under ``SELECT ... FOR UPDATE`` and re-validate
      against the locked value, never against a cached snapshot.
    - Layers are never deleted.
    - seq comes from the "cost_layer" sequence counter.

Failure modes:
    - InvalidQuantityError: non-positive amount (before any I/O).
    - LayerNotFoundError: unknown layer id for this tenant.
    - InsufficientLayerQuantityError: decrement beyond remaining (fatal).
    - OverRestorationError: increment beyond received (fatal).
    - ConcurrencyConflictError: the layer was consumed by another transaction
      after it was planned (retryable).
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from costing_kernel.domain.clock import Clock, SystemClock
from costing_kernel.domain.dtos import CostLayer
from costing_kernel.domain.quantities import quantize, require_non_negative, require_positive
from costing_kernel.exceptions import (
    ConcurrencyConflictError,
    InsufficientLayerQuantityError,
    InvalidQuantityError,
    LayerNotFoundError,
    OverRestorationError,
)
from costing_kernel.logging_config import get_logger
from costing_kernel.models.cost_layer import CostLayerModel
from costing_kernel.selectors.mapping import layer_to_dto
from costing_kernel.selectors.stock_selector import StockSelector
from costing_kernel.services.base import BaseService
from costing_kernel.services.sequence_service import SequenceService

logger = get_logger("services.cost_layer_store")


class CostLayerStore(BaseService[CostLayerModel]):
    """
    Tenant-scoped repository for cost layers.

    Contract:
        Every returned layer is a frozen CostLayer snapshot taken after the
        change was flushed.

    Non-goals:
        - Does NOT touch the ledger or the stock summary; callers compose
          those writes in the same transaction.
    """

    def __init__(self, session: Session, tenant_id: str, clock: Clock | None = None):
        super().__init__(session)
        self.tenant_id = tenant_id
        self._clock = clock or SystemClock()
        self._sequences = SequenceService(session)
        self._selector = StockSelector(session, tenant_id)

    def create(
        self,
        product_id: str,
        quantity: Decimal,
        unit_cost: Decimal,
        received_at: datetime,
        reference_id: str,
        batch_label: str | None = None,
        expires_at: datetime | None = None,
    ) -> CostLayer:
        """Persist a new, full layer."""
        quantity = require_positive(quantity, "quantity")
        unit_cost = require_non_negative(unit_cost, "unit_cost")
        if received_at.tzinfo is None:
            raise InvalidQuantityError("received_at", received_at.isoformat(), "must be timezone-aware")
        if expires_at is not None and expires_at.tzinfo is None:
            raise InvalidQuantityError("expires_at", expires_at.isoformat(), "must be timezone-aware")

        model = CostLayerModel(
            tenant_id=self.tenant_id,
            product_id=product_id,
            seq=self._sequences.next_value(SequenceService.COST_LAYER),
            quantity_received=quantity,
            quantity_remaining=quantity,
            unit_cost=unit_cost,
            received_at=received_at,
            batch_label=batch_label,
            expires_at=expires_at,
            reference_id=reference_id,
            created_at=self._clock.now_utc(),
        )
        self.session.add(model)
        self.session.flush()

        logger.info(
            "cost_layer_created",
            extra={
                "layer_id": str(model.id),
                "product_id": product_id,
                "seq": model.seq,
                "quantity": str(quantity),
                "unit_cost": str(unit_cost),
                "reference_id": reference_id,
            },
        )
        return layer_to_dto(model)

    def get(self, layer_id: UUID) -> CostLayer:
        layer = self._selector.get_layer(layer_id)
        if layer is None:
            raise LayerNotFoundError(str(layer_id))
        return layer

    def list_available(self, product_id: str) -> list[CostLayer]:
        """Layers with remaining > 0 in FIFO order (received_at, seq)."""
        return self._selector.list_available_layers(product_id)

    def list_expiring(self, before: datetime, product_id: str | None = None) -> list[CostLayer]:
        return self._selector.list_expiring_layers(before, product_id)

    def _lock(self, layer_id: UUID) -> CostLayerModel:
        model = self.session.execute(
            select(CostLayerModel)
            .where(
                CostLayerModel.tenant_id == self.tenant_id,
                CostLayerModel.id == layer_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            logger.error(
                "cost_layer_not_found",
                extra={"layer_id": str(layer_id), "tenant_id": self.tenant_id},
            )
            raise LayerNotFoundError(str(layer_id))
        return model

    def decrement(
        self,
        layer_id: UUID,
        amount: Decimal,
        expected_version: int | None = None,
    ) -> CostLayer:
        """
        Consume ``amount`` from a layer.

        ``expected_version`` is the version seen when the allocation was
        planned.  A shortfall on a layer that changed since then is a lost
        race (ConcurrencyConflictError); a shortfall on an unchanged layer
        is a broken invariant (InsufficientLayerQuantityError).
        """
        amount = require_positive(amount, "amount")
        model = self._lock(layer_id)
        remaining = quantize(model.quantity_remaining)

        if amount > remaining:
            if expected_version is not None and model.version != expected_version:
                logger.warning(
                    "cost_layer_consumed_concurrently",
                    extra={
                        "layer_id": str(layer_id),
                        "expected_version": expected_version,
                        "actual_version": model.version,
                        "requested": str(amount),
                        "remaining": str(remaining),
                    },
                )
                raise ConcurrencyConflictError(
                    "CostLayer",
                    str(layer_id),
                    f"planned against version {expected_version}, found {model.version}",
                )
            logger.error(
                "cost_layer_insufficient_quantity",
                extra={
                    "layer_id": str(layer_id),
                    "product_id": model.product_id,
                    "requested": str(amount),
                    "remaining": str(remaining),
                },
            )
            raise InsufficientLayerQuantityError(str(layer_id), str(amount), str(remaining))

        model.quantity_remaining = quantize(remaining - amount)
        self._flush("CostLayer", str(layer_id))

        logger.debug(
            "cost_layer_decremented",
            extra={
                "layer_id": str(layer_id),
                "amount": str(amount),
                "remaining": str(model.quantity_remaining),
            },
        )
        return layer_to_dto(model)

    def increment(self, layer_id: UUID, amount: Decimal) -> CostLayer:
        """Restore ``amount`` to a layer, never above quantity_received."""
        amount = require_positive(amount, "amount")
        model = self._lock(layer_id)
        remaining = quantize(model.quantity_remaining)
        received = quantize(model.quantity_received)

        if remaining + amount > received:
            logger.error(
                "cost_layer_over_restoration",
                extra={
                    "layer_id": str(layer_id),
                    "product_id": model.product_id,
                    "restoring": str(amount),
                    "remaining": str(remaining),
                    "received": str(received),
                },
            )
            raise OverRestorationError(str(layer_id), str(amount), str(remaining), str(received))

        model.quantity_remaining = quantize(remaining + amount)
        self._flush("CostLayer", str(layer_id))

        logger.debug(
            "cost_layer_incremented",
            extra={
                "layer_id": str(layer_id),
                "amount": str(amount),
                "remaining": str(model.quantity_remaining),
            },
        )
        return layer_to_dto(model)
