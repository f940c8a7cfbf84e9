"""
Module: costing_kernel.selectors.ledger_selector
Responsibility: Read-only queries over the append-only stock ledger.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Entries are always returned in seq (append) order.
    - Time bounds are inclusive on both ends.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import select

from costing_kernel.domain.dtos import LedgerEntry
from costing_kernel.domain.quantities import ZERO, quantize
from costing_kernel.models.ledger_entry import LedgerEntryModel
from costing_kernel.selectors.base import BaseSelector
from costing_kernel.selectors.mapping import ledger_entry_to_dto


class LedgerSelector(BaseSelector[LedgerEntryModel]):
    """Queries the stock ledger for one tenant."""

    def list_entries(
        self,
        product_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[LedgerEntry]:
        """
        A product's ledger entries in append order.

        Args:
            product_id: Product to list.
            start: Include entries with occurred_at >= start.
            end: Include entries with occurred_at <= end.
        """
        stmt = select(LedgerEntryModel).where(
            LedgerEntryModel.tenant_id == self.tenant_id,
            LedgerEntryModel.product_id == product_id,
        )
        if start is not None:
            stmt = stmt.where(LedgerEntryModel.occurred_at >= start)
        if end is not None:
            stmt = stmt.where(LedgerEntryModel.occurred_at <= end)
        stmt = stmt.order_by(LedgerEntryModel.seq)

        return [ledger_entry_to_dto(row) for row in self.session.scalars(stmt)]

    def list_by_reference(self, reference_id: str) -> list[LedgerEntry]:
        """Every entry written for one purchase, sale or return reference."""
        stmt = (
            select(LedgerEntryModel)
            .where(
                LedgerEntryModel.tenant_id == self.tenant_id,
                LedgerEntryModel.reference_id == reference_id,
            )
            .order_by(LedgerEntryModel.seq)
        )
        return [ledger_entry_to_dto(row) for row in self.session.scalars(stmt)]

    def net_quantity(self, product_id: str) -> Decimal:
        """Sum of signed ledger quantities for a product."""
        quantities = self.session.scalars(
            select(LedgerEntryModel.quantity).where(
                LedgerEntryModel.tenant_id == self.tenant_id,
                LedgerEntryModel.product_id == product_id,
            )
        )
        return quantize(sum(quantities, ZERO))
