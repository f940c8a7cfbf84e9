"""
Module: costing_kernel.models.cost_layer
Responsibility: ORM persistence for purchase cost layers.  Each layer is one
    receipt of a product at a single unit cost; sales consume layers oldest
    first and reversals put quantity back.
Architecture position: Kernel > Models.  May import from db/ only.
    MUST NOT import from services/, selectors/, or outer layers.

Invariants enforced:
    - quantity_received > 0 and is frozen after creation.
    - 0 <= quantity_remaining <= quantity_received (CHECK constraints plus
      CostLayerStore validation).
    - unit_cost >= 0 (zero-cost layers are legal: samples, donations).
    - FIFO order is (received_at, seq); (tenant_id, product_id, received_at,
      seq) is indexed for the allocation scan.
    - Layers are never deleted.
    - version is an optimistic-lock counter; a stale concurrent UPDATE raises
      StaleDataError at flush.

Failure modes:
    - IntegrityError on a CHECK violation (service validation runs first).
    - StaleDataError on version mismatch (translated to
      ConcurrencyConflictError by the services layer).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import BigInteger, CheckConstraint, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from costing_kernel.db.base import Base, ExactDecimal, UTCDateTime


class CostLayerModel(Base):
    """
    Persistent storage for FIFO cost layers.

    Contract:
        One row per inbound receipt.  Only quantity_remaining (and version)
        change after creation, and only through CostLayerStore.

    Guarantees:
        - seq is unique and monotonic in creation order (tie-breaker for
          layers received at the same instant).
        - batch_label and expires_at carry optional batch metadata.
    """

    __tablename__ = "cost_layers"

    __table_args__ = (
        # CAST keeps the sign checks numeric where amounts are stored as text
        CheckConstraint(
            "CAST(quantity_received AS NUMERIC) > 0",
            name="ck_cost_layers_received_positive",
        ),
        CheckConstraint(
            "CAST(quantity_remaining AS NUMERIC) >= 0",
            name="ck_cost_layers_remaining_non_negative",
        ),
        CheckConstraint(
            "quantity_remaining <= quantity_received",
            name="ck_cost_layers_remaining_within_received",
        ),
        CheckConstraint(
            "CAST(unit_cost AS NUMERIC) >= 0",
            name="ck_cost_layers_cost_non_negative",
        ),
        # Query: available layers for a product, FIFO order
        Index("idx_cost_layer_fifo", "tenant_id", "product_id", "received_at", "seq"),
        # Query: layers approaching expiry
        Index("idx_cost_layer_expiry", "tenant_id", "expires_at"),
        Index("uq_cost_layer_seq", "seq", unique=True),
    )

    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)

    product_id: Mapped[str] = mapped_column(String(100), nullable=False)

    # Insertion order; FIFO tie-breaker
    seq: Mapped[int] = mapped_column(BigInteger, nullable=False)

    quantity_received: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)

    quantity_remaining: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)

    unit_cost: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)

    # Defines FIFO order
    received_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    batch_label: Mapped[str | None] = mapped_column(String(100), nullable=True)

    expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    # Purchase / receipt that created the layer
    reference_id: Mapped[str] = mapped_column(String(100), nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    version: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<CostLayer {self.id}: product={self.product_id} "
            f"{self.quantity_remaining}/{self.quantity_received} @ {self.unit_cost}>"
        )
