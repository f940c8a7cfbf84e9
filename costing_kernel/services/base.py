"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for every
    write-side service.  Services use ``session.flush()`` -- never
    ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's transaction
      and never commit or roll back themselves.
    - Optimistic-lock failures surface as ConcurrencyConflictError, the one
      error type the runtime retries.

Failure modes:
    - ConcurrencyConflictError when a versioned row was changed by another
      transaction between read and flush.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from costing_kernel.db.base import Base
from costing_kernel.exceptions import ConcurrencyConflictError

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.

    Non-goals:
        - Does NOT provide query-only (read) methods -- those belong
          in ``costing_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session

    def _flush(self, entity_type: str, entity_id: str) -> None:
        """Flush, translating a version mismatch into ConcurrencyConflictError."""
        try:
            self.session.flush()
        except StaleDataError as exc:
            raise ConcurrencyConflictError(entity_type, entity_id, str(exc)) from exc
