"""
Module: costing_kernel.models.allocation
Responsibility: ORM persistence for committed FIFO allocations.  An
    AllocationRecordModel is the durable form of the breakdown a sale line was
    costed with; its ordered lines are what the reversal engine replays.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - At most one committed allocation per explicit (tenant_id, sale_line_id).
      sale_line_id is NULL for allocations committed without one; several
      lines of one sale then share a reference_id.
    - Lines are ordered by position and reference existing cost layers.
    - Append-only: records, lines and returns are protected by
      db/immutability.py.
    - total_cost equals the sum of line_cost over the lines.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from costing_kernel.db.base import Base, ExactDecimal, UTCDateTime, UUIDString


class AllocationRecordModel(Base):
    """Header row of a committed allocation."""

    __tablename__ = "allocation_records"

    __table_args__ = (
        UniqueConstraint("tenant_id", "sale_line_id", name="uq_allocation_sale_line"),
        Index("idx_allocation_product", "tenant_id", "product_id"),
        Index("idx_allocation_reference", "tenant_id", "reference_id"),
    )

    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)

    # NULL when the caller did not name the sale line; NULLs never collide
    sale_line_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    product_id: Mapped[str] = mapped_column(String(100), nullable=False)

    reference_id: Mapped[str] = mapped_column(String(100), nullable=False)

    required_quantity: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)

    total_cost: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)

    committed_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    lines: Mapped[list["AllocationLineModel"]] = relationship(
        back_populates="record",
        cascade="all, delete-orphan",
        order_by="AllocationLineModel.position",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<AllocationRecord {self.sale_line_id or self.reference_id}: product={self.product_id} "
            f"qty={self.required_quantity} cost={self.total_cost}>"
        )


class AllocationLineModel(Base):
    """One layer's contribution to a committed allocation."""

    __tablename__ = "allocation_lines"

    __table_args__ = (
        UniqueConstraint("record_id", "position", name="uq_allocation_line_position"),
        Index("idx_allocation_line_layer", "layer_id"),
    )

    record_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("allocation_records.id"),
        nullable=False,
    )

    # Consumption order within the allocation (0-based)
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    layer_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("cost_layers.id"),
        nullable=False,
    )

    quantity_used: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)

    unit_cost: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)

    line_cost: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)

    record: Mapped[AllocationRecordModel] = relationship(back_populates="lines")


class AllocationReturnModel(Base):
    """
    One customer return against a committed allocation.

    The quantity already returned for an allocation is the sum over its
    rows; a new return may not take it past required_quantity.
    """

    __tablename__ = "allocation_returns"

    __table_args__ = (
        Index("idx_allocation_return_record", "record_id"),
    )

    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)

    record_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("allocation_records.id"),
        nullable=False,
    )

    # Return document
    reference_id: Mapped[str] = mapped_column(String(100), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)

    restored_cost: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)

    returned_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
