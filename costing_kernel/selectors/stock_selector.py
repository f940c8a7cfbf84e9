"""
Module: costing_kernel.selectors.stock_selector
Responsibility: Read-only queries for stock summaries, cost layers and
    committed allocations.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Available layers are returned in FIFO order (received_at, seq) and
      never include exhausted layers.
    - An unknown product reads as an uninitialized all-zero summary.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from costing_kernel.domain.dtos import AllocationRecord, CostLayer, StockSummary
from costing_kernel.domain.quantities import ZERO, quantize
from costing_kernel.models.allocation import AllocationRecordModel, AllocationReturnModel
from costing_kernel.models.cost_layer import CostLayerModel
from costing_kernel.models.stock_summary import StockSummaryModel
from costing_kernel.selectors.base import BaseSelector
from costing_kernel.selectors.mapping import layer_to_dto, record_to_dto, summary_to_dto


class StockSelector(BaseSelector[StockSummaryModel]):
    """Queries stock state for one tenant."""

    def get_summary(self, product_id: str) -> StockSummary:
        model = self.session.scalars(
            select(StockSummaryModel).where(
                StockSummaryModel.tenant_id == self.tenant_id,
                StockSummaryModel.product_id == product_id,
            )
        ).one_or_none()
        if model is None:
            return StockSummary.uninitialized(product_id)
        return summary_to_dto(model)

    def list_summaries(self) -> list[StockSummary]:
        stmt = (
            select(StockSummaryModel)
            .where(StockSummaryModel.tenant_id == self.tenant_id)
            .order_by(StockSummaryModel.product_id)
        )
        return [summary_to_dto(row) for row in self.session.scalars(stmt)]

    def get_layer(self, layer_id: UUID) -> CostLayer | None:
        model = self.session.scalars(
            select(CostLayerModel).where(
                CostLayerModel.tenant_id == self.tenant_id,
                CostLayerModel.id == layer_id,
            )
        ).one_or_none()
        return layer_to_dto(model) if model is not None else None

    def list_available_layers(self, product_id: str) -> list[CostLayer]:
        """Layers with stock left, oldest first."""
        stmt = (
            select(CostLayerModel)
            .where(
                CostLayerModel.tenant_id == self.tenant_id,
                CostLayerModel.product_id == product_id,
                CostLayerModel.quantity_remaining > 0,
            )
            .order_by(CostLayerModel.received_at, CostLayerModel.seq)
        )
        return [layer_to_dto(row) for row in self.session.scalars(stmt)]

    def list_expiring_layers(
        self,
        before: datetime,
        product_id: str | None = None,
    ) -> list[CostLayer]:
        """Available layers whose expires_at is on or before ``before``."""
        stmt = select(CostLayerModel).where(
            CostLayerModel.tenant_id == self.tenant_id,
            CostLayerModel.quantity_remaining > 0,
            CostLayerModel.expires_at.is_not(None),
            CostLayerModel.expires_at <= before,
        )
        if product_id is not None:
            stmt = stmt.where(CostLayerModel.product_id == product_id)
        stmt = stmt.order_by(
            CostLayerModel.product_id,
            CostLayerModel.received_at,
            CostLayerModel.seq,
        )
        return [layer_to_dto(row) for row in self.session.scalars(stmt)]

    def layer_balance(self, product_id: str) -> Decimal:
        """Sum of quantity_remaining across all of a product's layers."""
        remaining = self.session.scalars(
            select(CostLayerModel.quantity_remaining).where(
                CostLayerModel.tenant_id == self.tenant_id,
                CostLayerModel.product_id == product_id,
            )
        )
        # summed in Python; SQLite SUM over text columns goes through float
        return quantize(sum(remaining, ZERO))

    def get_allocation(self, sale_line_id: str) -> AllocationRecord | None:
        model = self.session.scalars(
            select(AllocationRecordModel).where(
                AllocationRecordModel.tenant_id == self.tenant_id,
                AllocationRecordModel.sale_line_id == sale_line_id,
            )
        ).one_or_none()
        return record_to_dto(model) if model is not None else None

    def list_allocations_by_reference(self, reference_id: str) -> list[AllocationRecord]:
        """Every allocation committed under one sale reference."""
        stmt = (
            select(AllocationRecordModel)
            .where(
                AllocationRecordModel.tenant_id == self.tenant_id,
                AllocationRecordModel.reference_id == reference_id,
            )
            .order_by(AllocationRecordModel.committed_at, AllocationRecordModel.product_id)
        )
        return [record_to_dto(row) for row in self.session.scalars(stmt)]

    def returned_quantity(self, record_id: UUID) -> Decimal:
        """Quantity already returned against one committed allocation."""
        returned = self.session.scalars(
            select(AllocationReturnModel.quantity).where(
                AllocationReturnModel.tenant_id == self.tenant_id,
                AllocationReturnModel.record_id == record_id,
            )
        )
        return quantize(sum(returned, ZERO))
