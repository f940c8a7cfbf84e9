"""
CostingRuntime -- host entry point for the costing core.

Responsibility:
    Builds everything a host needs from one ``CostingConfig``: structured
    logging, the database engine and session factory, immutability
    listeners, the product-lock registry and the retry policy.  Runs whole
    units of work (one transaction each) on behalf of the host.

Architecture position:
    Services -- outermost layer.  The only place that commits.

Invariants enforced:
    - Plan and commit for one sale run in one transaction.
    - Under ``product_lock`` the locks of every product involved are held
      for the whole transaction, including commit.
    - Retries re-run the whole transaction; a conflict never leaves a
      partially applied movement behind.

Failure modes:
    - ConcurrencyConflictError after ``retry.max_attempts`` attempts.
    - Everything else propagates on the first attempt after rollback.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager, nullcontext
from datetime import datetime
from decimal import Decimal
from typing import TypeVar

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from costing_config import CostingConfig, LockingStrategy, get_active_config
from costing_config.loader import log_level
from costing_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from costing_kernel.db.immutability import register_immutability_listeners
from costing_kernel.domain.clock import Clock, SystemClock
from costing_kernel.domain.dtos import (
    AllocationRecord,
    CostLayer,
    ReversalResult,
    SaleLineRequest,
    StockAdjustment,
    StockSummary,
)
from costing_kernel.logging_config import LogContext, configure_logging, get_logger
from costing_services.inventory_costing_service import InventoryCostingService
from costing_services.product_lock import ProductLockRegistry
from costing_services.retry import RetryPolicy, run_with_retry

logger = get_logger("services.runtime")

T = TypeVar("T")


class CostingRuntime:
    """
    Owns the engine, session factory, locks and retry policy.

    Usage::

        runtime = CostingRuntime.from_config()
        runtime.receive("tenant-1", "SKU-1", Decimal("10"), Decimal("2"), "PO-1")
        record = runtime.allocate_and_commit("tenant-1", "SKU-1", Decimal("4"), "INV-1")
        records = runtime.commit_sale("tenant-1", "INV-2", [
            SaleLineRequest("SKU-1", Decimal("2")),
            SaleLineRequest("SKU-2", Decimal("1")),
        ])
    """

    def __init__(
        self,
        config: CostingConfig,
        engine: Engine,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
    ):
        self.config = config
        self.engine = engine
        self._factory = session_factory
        self.clock = clock or SystemClock()
        self.locks = ProductLockRegistry(config.locking.lock_timeout_seconds)
        self.retry_policy = RetryPolicy.from_config(config.retry)

    @classmethod
    def from_config(
        cls,
        config: CostingConfig | None = None,
        clock: Clock | None = None,
    ) -> CostingRuntime:
        config = config or get_active_config()
        configure_logging(level=log_level(config))

        db = config.database
        engine = init_engine_from_url(
            db.url,
            echo=db.echo,
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            pool_timeout=db.pool_timeout,
        )
        if db.create_tables:
            create_tables(engine)
        register_immutability_listeners()

        logger.info(
            "costing_runtime_started",
            extra={
                "locking_strategy": config.locking.strategy.value,
                "retry_max_attempts": config.retry.max_attempts,
                "tables_created": db.create_tables,
            },
        )
        return cls(config, engine, get_session_factory(), clock)

    @property
    def uses_product_lock(self) -> bool:
        return self.config.locking.strategy is LockingStrategy.PRODUCT_LOCK

    def close(self) -> None:
        self.engine.dispose()

    @contextmanager
    def transaction(self, tenant_id: str) -> Iterator[InventoryCostingService]:
        """Yield a service on a fresh session; commit on success, roll back on error."""
        with session_scope(self._factory) as session:
            yield InventoryCostingService(session, tenant_id, self.clock)

    def _run(
        self,
        tenant_id: str,
        product_ids: tuple[str, ...],
        operation: str,
        work: Callable[[InventoryCostingService], T],
    ) -> T:
        """Run ``work`` in one transaction per attempt, holding every product's lock."""

        def attempt() -> T:
            guard = self.locks.hold(tenant_id, *product_ids) if self.uses_product_lock else nullcontext()
            with guard, self.transaction(tenant_id) as service:
                return work(service)

        product_id = product_ids[0] if len(set(product_ids)) == 1 else None
        with LogContext.bind(tenant_id=tenant_id, product_id=product_id):
            return run_with_retry(attempt, self.retry_policy, operation=operation)

    def receive(
        self,
        tenant_id: str,
        product_id: str,
        quantity: Decimal,
        unit_cost: Decimal,
        reference_id: str,
        batch_label: str | None = None,
        expires_at: datetime | None = None,
        received_at: datetime | None = None,
    ) -> CostLayer:
        return self._run(
            tenant_id,
            (product_id,),
            "receive",
            lambda service: service.receive(
                product_id,
                quantity,
                unit_cost,
                reference_id,
                batch_label=batch_label,
                expires_at=expires_at,
                received_at=received_at,
            ),
        )

    def allocate_and_commit(
        self,
        tenant_id: str,
        product_id: str,
        quantity: Decimal,
        reference_id: str,
        sale_line_id: str | None = None,
    ) -> AllocationRecord:
        """Plan and commit one sale line atomically, retrying on conflict."""

        def work(service: InventoryCostingService) -> AllocationRecord:
            breakdown = service.allocate(product_id, quantity, sale_line_id=sale_line_id)
            return service.commit(breakdown, reference_id)

        return self._run(tenant_id, (product_id,), "allocate_and_commit", work)

    def commit_sale(
        self,
        tenant_id: str,
        reference_id: str,
        lines: Sequence[SaleLineRequest],
    ) -> tuple[AllocationRecord, ...]:
        """Plan and commit every line of one sale in a single transaction."""
        lines = tuple(lines)
        return self._run(
            tenant_id,
            tuple(line.product_id for line in lines),
            "commit_sale",
            lambda service: service.commit_sale(reference_id, lines),
        )

    def reverse_sale_line(
        self,
        tenant_id: str,
        sale_line_id: str,
        reference_id: str | None = None,
        quantity: Decimal | None = None,
    ) -> ReversalResult:
        with self.transaction(tenant_id) as service:
            product_id = service.get_breakdown(sale_line_id).product_id
        return self._run(
            tenant_id,
            (product_id,),
            "reverse_sale_line",
            lambda service: service.reverse_sale_line(sale_line_id, reference_id, quantity),
        )

    def adjust_stock(
        self,
        tenant_id: str,
        product_id: str,
        quantity_delta: Decimal,
        reference_id: str,
        reason: str | None = None,
        unit_cost: Decimal | None = None,
    ) -> StockAdjustment:
        return self._run(
            tenant_id,
            (product_id,),
            "adjust_stock",
            lambda service: service.adjust_stock(
                product_id, quantity_delta, reference_id, reason=reason, unit_cost=unit_cost
            ),
        )

    def rebuild_summary(self, tenant_id: str, product_id: str) -> StockSummary:
        return self._run(
            tenant_id,
            (product_id,),
            "rebuild_summary",
            lambda service: service.rebuild_summary(product_id),
        )
