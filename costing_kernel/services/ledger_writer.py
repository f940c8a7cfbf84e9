"""
LedgerWriter -- append-only writes to the stock transaction ledger.

Responsibility:
    Appends one LedgerEntryModel per layer touched by a stock movement.
    Sign convention: inbound quantities are positive, outbound quantities
    are negative, and adjustments carry the sign of the correction (a
    return or a count gain is positive, a write-off negative).  total_cost
    is always |quantity| * unit_cost.

Architecture position:
    Kernel > Services -- imperative shell.  Reads live in LedgerSelector.

Invariants enforced:
    - seq from the "ledger_entry" counter: strictly monotonic, and equal to
      commit order because the counter row stays locked until commit.
    - Entries are never updated or deleted (db/immutability.py).
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from costing_kernel.domain.clock import Clock, SystemClock
from costing_kernel.domain.dtos import LedgerEntry, LedgerEntryKind
from costing_kernel.domain.quantities import quantize
from costing_kernel.exceptions import InvalidQuantityError
from costing_kernel.logging_config import get_logger
from costing_kernel.models.ledger_entry import LedgerEntryModel
from costing_kernel.selectors.mapping import ledger_entry_to_dto
from costing_kernel.services.base import BaseService
from costing_kernel.services.sequence_service import SequenceService

logger = get_logger("services.ledger_writer")


class LedgerWriter(BaseService[LedgerEntryModel]):
    """Appends stock movements for one tenant."""

    def __init__(self, session: Session, tenant_id: str, clock: Clock | None = None):
        super().__init__(session)
        self.tenant_id = tenant_id
        self._clock = clock or SystemClock()
        self._sequences = SequenceService(session)

    def append(
        self,
        kind: LedgerEntryKind,
        product_id: str,
        layer_id: UUID,
        quantity: Decimal,
        unit_cost: Decimal,
        reference_id: str,
        notes: str | None = None,
    ) -> LedgerEntry:
        """
        Append one movement.

        Raises:
            InvalidQuantityError: If the sign of ``quantity`` contradicts
                ``kind`` or the quantity is zero.
        """
        quantity = quantize(quantity)
        if quantity == 0:
            raise InvalidQuantityError("quantity", str(quantity), "ledger movement cannot be zero")
        if kind == LedgerEntryKind.OUTBOUND and quantity > 0:
            raise InvalidQuantityError("quantity", str(quantity), "outbound movements are negative")
        if kind == LedgerEntryKind.INBOUND and quantity < 0:
            raise InvalidQuantityError("quantity", str(quantity), "inbound movements are positive")

        unit_cost = quantize(unit_cost)
        model = LedgerEntryModel(
            seq=self._sequences.next_value(SequenceService.LEDGER_ENTRY),
            tenant_id=self.tenant_id,
            product_id=product_id,
            kind=kind.value,
            reference_id=reference_id,
            layer_id=layer_id,
            quantity=quantity,
            unit_cost=unit_cost,
            total_cost=quantize(abs(quantity) * unit_cost),
            occurred_at=self._clock.now_utc(),
            notes=notes,
        )
        self.session.add(model)
        self.session.flush()

        logger.debug(
            "ledger_entry_appended",
            extra={
                "seq": model.seq,
                "kind": kind.value,
                "product_id": product_id,
                "layer_id": str(layer_id),
                "quantity": str(quantity),
                "reference_id": reference_id,
            },
        )
        return ledger_entry_to_dto(model)

    def record_inbound(self, product_id: str, layer_id: UUID, quantity: Decimal,
                       unit_cost: Decimal, reference_id: str) -> LedgerEntry:
        return self.append(
            LedgerEntryKind.INBOUND, product_id, layer_id, quantity, unit_cost, reference_id
        )

    def record_outbound(self, product_id: str, layer_id: UUID, quantity_used: Decimal,
                        unit_cost: Decimal, reference_id: str) -> LedgerEntry:
        return self.append(
            LedgerEntryKind.OUTBOUND, product_id, layer_id, -quantity_used, unit_cost, reference_id
        )

    def record_adjustment(self, product_id: str, layer_id: UUID, quantity: Decimal,
                          unit_cost: Decimal, reference_id: str,
                          notes: str | None = None) -> LedgerEntry:
        return self.append(
            LedgerEntryKind.ADJUSTMENT, product_id, layer_id, quantity, unit_cost,
            reference_id, notes=notes,
        )
