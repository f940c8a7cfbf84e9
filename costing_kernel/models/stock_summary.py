"""
Module: costing_kernel.models.stock_summary
Responsibility: ORM persistence for the per-product running stock summary
    (cumulative in/out, balance, moving average cost, valuation).
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - One row per (tenant_id, product_id), created lazily on first receipt.
    - balance == total_in - total_out.
    - total_value == balance * average_cost (quantized).
    - balance equals the sum of quantity_remaining over the product's layers
      (cross-entity; checked by the consistency service).
    - The four numeric fields are always written together from one pure
      transition in costing_engines.summary.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import BigInteger, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from costing_kernel.db.base import Base, ExactDecimal, UTCDateTime


class StockSummaryModel(Base):
    """Persistent running totals and valuation for one product."""

    __tablename__ = "stock_summaries"

    __table_args__ = (
        UniqueConstraint("tenant_id", "product_id", name="uq_stock_summary_product"),
    )

    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)

    product_id: Mapped[str] = mapped_column(String(100), nullable=False)

    total_in: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)

    total_out: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)

    balance: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)

    # Moving weighted average; changes on receipt only
    average_cost: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)

    total_value: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)

    last_updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    version: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<StockSummary {self.product_id}: balance={self.balance} "
            f"avg={self.average_cost} value={self.total_value}>"
        )
