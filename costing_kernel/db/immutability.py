"""
ORM-Level Immutability Enforcement for append-only costing records.

===============================================================================
WHY THIS EXISTS
===============================================================================

The ledger is the audit trail for every unit of stock and every unit of cost.
A committed allocation is the only record of which layers a sale line
consumed, and the reversal engine replays it verbatim.  If either could be
edited in place, a later reversal would restore the wrong layers and the
ledger would no longer explain the stock summary.

Corrections are made by appending (adjustment entries), never by editing.

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database:

    session.flush()
         |
         v
    [before_update] --> _block_update() --> ImmutabilityViolationError
    [before_delete] --> _block_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if no protected row was touched)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                 | When Immutable       | Why
-----------------------|----------------------|---------------------------------
LedgerEntryModel       | ALWAYS               | Append-only movement history
AllocationRecordModel  | ALWAYS               | Replayed by reversals
AllocationLineModel    | ALWAYS               | Replayed by reversals
AllocationReturnModel  | ALWAYS               | Bounds later partial returns

Cost layers and stock summaries are mutable running state and are NOT
listed here; their concurrency is guarded by version columns instead.

===============================================================================
USAGE
===============================================================================

Called once at startup (CostingRuntime does this):

    from costing_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event

from costing_kernel.exceptions import ImmutabilityViolationError
from costing_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _protected_models():
    from costing_kernel.models.allocation import (
        AllocationLineModel,
        AllocationRecordModel,
        AllocationReturnModel,
    )
    from costing_kernel.models.ledger_entry import LedgerEntryModel

    return (LedgerEntryModel, AllocationRecordModel, AllocationLineModel, AllocationReturnModel)


def _block_update(mapper, connection, target):
    """Prevent any UPDATE of an append-only record."""
    entity_type = type(target).__name__
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": "UPDATE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason="append-only records cannot be modified",
    )


def _block_delete(mapper, connection, target):
    """Prevent DELETE of an append-only record."""
    entity_type = type(target).__name__
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason="append-only records cannot be deleted",
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent: listeners already attached are not attached twice.
    """
    for model in _protected_models():
        if not event.contains(model, "before_update", _block_update):
            event.listen(model, "before_update", _block_update)
        if not event.contains(model, "before_delete", _block_delete):
            event.listen(model, "before_delete", _block_delete)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if it was never registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that intentionally violate immutability.
    """
    for model in _protected_models():
        _safe_remove_listener(model, "before_update", _block_update)
        _safe_remove_listener(model, "before_delete", _block_delete)
