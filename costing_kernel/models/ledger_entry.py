"""
Module: costing_kernel.models.ledger_entry
Responsibility: ORM persistence for the append-only stock transaction ledger.
    Every inbound receipt, outbound consumption and reversal adjustment writes
    exactly one row per layer it touches.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Append-only: UPDATE and DELETE are blocked by the ORM listeners in
      db/immutability.py.
    - seq is strictly monotonic across the ledger (allocated from the
      "ledger_entry" sequence counter), so seq order equals append order.
    - quantity is signed: positive for inbound and adjustment, negative for
      outbound.  total_cost is unsigned (|quantity| * unit_cost).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import BigInteger, CheckConstraint, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from costing_kernel.db.base import Base, ExactDecimal, UTCDateTime, UUIDString


class LedgerEntryModel(Base):
    """Immutable record of one stock movement against one cost layer."""

    __tablename__ = "ledger_entries"

    __table_args__ = (
        CheckConstraint(
            "kind IN ('inbound', 'outbound', 'adjustment')",
            name="ck_ledger_entries_valid_kind",
        ),
        Index("uq_ledger_entry_seq", "seq", unique=True),
        # Query: a product's history in append order
        Index("idx_ledger_product_seq", "tenant_id", "product_id", "seq"),
        Index("idx_ledger_reference", "tenant_id", "reference_id"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False)

    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)

    product_id: Mapped[str] = mapped_column(String(100), nullable=False)

    kind: Mapped[str] = mapped_column(String(20), nullable=False)

    reference_id: Mapped[str] = mapped_column(String(100), nullable=False)

    layer_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # Signed: + inbound/adjustment, - outbound
    quantity: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)

    unit_cost: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)

    total_cost: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    def __repr__(self) -> str:
        return f"<LedgerEntry #{self.seq} {self.kind} {self.product_id} {self.quantity}>"
