"""
SequenceService -- strictly increasing numbers for layer and ledger seq.

``cost_layers.seq`` breaks FIFO ties between layers received at the same
instant and ``ledger_entries.seq`` is the append order of the ledger.  Both
come from a named counter row that is bumped with one UPDATE.  The UPDATE
holds the row lock until the caller's transaction ends, and a rolled-back
transaction hands its numbers back.  MAX(seq)+1 is never used.

Architecture position:
    Kernel > Services.  Called by CostLayerStore and LedgerWriter, always
    after the summary row and layer rows have been locked.
"""

from sqlalchemy import BigInteger, String, insert, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Mapped, Session, mapped_column

from costing_kernel.db.base import Base
from costing_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """Current value of one named sequence."""

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


# Dialects with INSERT ... ON CONFLICT DO NOTHING
_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class SequenceService:
    """Hands out the next value of a named counter inside the caller's transaction."""

    COST_LAYER = "cost_layer"
    LEDGER_ENTRY = "ledger_entry"

    def __init__(self, session: Session):
        self._session = session
        self._counters = SequenceCounter.__table__

    def _bump(self, sequence_name: str) -> int:
        result = self._session.execute(
            update(self._counters)
            .where(self._counters.c.name == sequence_name)
            .values(current_value=self._counters.c.current_value + 1)
        )
        return result.rowcount

    def _create(self, sequence_name: str) -> None:
        """Insert the counter at 0 unless a concurrent transaction already did."""
        dialect = self._session.get_bind().dialect.name
        row = {"name": sequence_name, "current_value": 0}
        upsert = _UPSERT_INSERTS.get(dialect)
        if upsert is not None:
            stmt = upsert(self._counters).values(**row).on_conflict_do_nothing(
                index_elements=["name"]
            )
            self._session.execute(stmt)
        else:
            self._session.execute(insert(self._counters).values(**row))
        logger.debug("sequence_counter_created", extra={"sequence_name": sequence_name})

    def next_value(self, sequence_name: str) -> int:
        """
        Next value of ``sequence_name``, starting at 1.

        Postconditions:
            - Greater than every value previously returned for the name.
            - The counter row stays locked until the transaction completes.
        """
        if self._bump(sequence_name) == 0:
            self._create(sequence_name)
            self._bump(sequence_name)

        value = self._session.scalar(
            select(self._counters.c.current_value).where(self._counters.c.name == sequence_name)
        )
        logger.debug("sequence_allocated", extra={"sequence_name": sequence_name, "value": value})
        return value
