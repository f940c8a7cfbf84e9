"""
Typed Exception Hierarchy for the Costing Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Stock movements must fail precisely. A sale line that cannot be costed,
a layer that was consumed twice, and a version conflict between two
tills are three very different situations, and the host reacts to each
differently (reject the line, page an operator, retry). Callers catch by
type and read structured attributes; they never parse messages.

Every exception:
  1. Has its own class (catch by type, not message)
  2. Carries a ``code`` class attribute (machine-readable, API-safe)
  3. Stores its context as attributes (product_id, shortfall, ...)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    CostingKernelError (base)
    |
    +-- QuantityError
    |   +-- InvalidQuantityError
    |
    +-- AllocationError
    |   +-- InsufficientStockError
    |   +-- InvalidBreakdownError
    |
    +-- ConsistencyError            (fatal -- never retried)
    |   +-- InsufficientLayerQuantityError
    |   +-- OverRestorationError
    |   +-- LayerNotFoundError
    |   +-- StockSummaryMissingError
    |   +-- BalanceMismatchError
    |
    +-- BreakdownError
    |   +-- BreakdownNotFoundError
    |   +-- BreakdownAlreadyRecordedError
    |   +-- ReturnExceedsSaleError
    |
    +-- ConcurrencyError            (retryable, bounded)
    |   +-- ConcurrencyConflictError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                         | When Raised
-------------|------------------------------|-----------------------------------
Quantity     | INVALID_QUANTITY             | Non-positive quantity, negative
             |                              | cost, malformed decimal
-------------|------------------------------|-----------------------------------
Allocation   | INSUFFICIENT_STOCK           | Layers cannot cover the request
             | INVALID_BREAKDOWN            | Empty / inconsistent breakdown
-------------|------------------------------|-----------------------------------
Consistency  | INSUFFICIENT_LAYER_QUANTITY  | Decrement beyond remaining
             | OVER_RESTORATION             | Increment beyond received
             | LAYER_NOT_FOUND              | Unknown layer id
             | STOCK_SUMMARY_MISSING        | Outbound on product never received
             | BALANCE_MISMATCH             | Summary disagrees with layers
-------------|------------------------------|-----------------------------------
Breakdown    | BREAKDOWN_NOT_FOUND          | No recorded breakdown for line
             | BREAKDOWN_ALREADY_RECORDED   | Sale line committed twice
             | RETURN_EXCEEDS_SALE          | Return beyond the unreturned qty
-------------|------------------------------|-----------------------------------
Concurrency  | CONCURRENCY_CONFLICT         | Optimistic version conflict
-------------|------------------------------|-----------------------------------
Immutability | IMMUTABILITY_VIOLATION       | Update/delete of append-only row

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        runtime.allocate_and_commit(tenant_id, "SKU-1", Decimal("3"), "SALE-9")
    except InsufficientStockError as e:
        reject_line(product=e.product_id, short_by=e.shortfall)
    except ConsistencyError as e:
        alert_operator(e.code)      # a broken invariant; do not retry

ConcurrencyConflictError is the only error the runtime retries, and only
a bounded number of times.
"""


class CostingKernelError(Exception):
    """
    Base exception for all costing kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "COSTING_KERNEL_ERROR"


# Quantity exceptions


class QuantityError(CostingKernelError):
    """Base exception for quantity and cost validation errors."""

    code: str = "QUANTITY_ERROR"


class InvalidQuantityError(QuantityError):
    """A quantity or cost failed validation before any I/O."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, field: str, value: str, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field} {value!r}: {reason}")


# Allocation exceptions


class AllocationError(CostingKernelError):
    """Base exception for FIFO allocation errors."""

    code: str = "ALLOCATION_ERROR"


class InsufficientStockError(AllocationError):
    """
    Available cost layers cannot satisfy the requested quantity.

    No partial allocation is ever produced; the caller decides whether
    to reject the sale line.
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        product_id: str,
        requested_quantity: str,
        available_quantity: str,
        shortfall: str,
    ):
        self.product_id = product_id
        self.requested_quantity = requested_quantity
        self.available_quantity = available_quantity
        self.shortfall = shortfall
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"requested {requested_quantity}, available {available_quantity}, "
            f"short by {shortfall}"
        )


class InvalidBreakdownError(AllocationError):
    """An allocation breakdown is empty or internally inconsistent."""

    code: str = "INVALID_BREAKDOWN"

    def __init__(self, product_id: str, reason: str):
        self.product_id = product_id
        self.reason = reason
        super().__init__(f"Invalid allocation breakdown for product {product_id}: {reason}")


# Consistency exceptions


class ConsistencyError(CostingKernelError):
    """
    Base exception for broken cross-entity invariants.

    These are fatal for the operation: the transaction is rolled back and
    the error is surfaced for investigation, never retried automatically.
    """

    code: str = "CONSISTENCY_ERROR"


class InsufficientLayerQuantityError(ConsistencyError):
    """A layer decrement asked for more than the layer has remaining."""

    code: str = "INSUFFICIENT_LAYER_QUANTITY"

    def __init__(self, layer_id: str, requested: str, remaining: str):
        self.layer_id = layer_id
        self.requested = requested
        self.remaining = remaining
        super().__init__(
            f"Layer {layer_id} cannot supply {requested}: only {remaining} remaining"
        )


class OverRestorationError(ConsistencyError):
    """A layer increment would push remaining above the quantity received."""

    code: str = "OVER_RESTORATION"

    def __init__(self, layer_id: str, restoring: str, remaining: str, received: str):
        self.layer_id = layer_id
        self.restoring = restoring
        self.remaining = remaining
        self.received = received
        super().__init__(
            f"Restoring {restoring} to layer {layer_id} would exceed its received "
            f"quantity {received} (currently {remaining} remaining)"
        )


class LayerNotFoundError(ConsistencyError):
    """Cost layer with given ID does not exist for the tenant."""

    code: str = "LAYER_NOT_FOUND"

    def __init__(self, layer_id: str):
        self.layer_id = layer_id
        super().__init__(f"Cost layer not found: {layer_id}")


class StockSummaryMissingError(ConsistencyError):
    """An outbound or reversal movement found no stock summary for the product."""

    code: str = "STOCK_SUMMARY_MISSING"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"No stock summary exists for product {product_id}")


class BalanceMismatchError(ConsistencyError):
    """The stock summary disagrees with the product's cost layers."""

    code: str = "BALANCE_MISMATCH"

    def __init__(self, product_id: str, summary_balance: str, layer_balance: str):
        self.product_id = product_id
        self.summary_balance = summary_balance
        self.layer_balance = layer_balance
        super().__init__(
            f"Balance mismatch for product {product_id}: summary={summary_balance}, "
            f"layers={layer_balance}"
        )


# Breakdown record exceptions


class BreakdownError(CostingKernelError):
    """Base exception for recorded-breakdown errors."""

    code: str = "BREAKDOWN_ERROR"


class BreakdownNotFoundError(BreakdownError):
    """No allocation breakdown was recorded for the sale line."""

    code: str = "BREAKDOWN_NOT_FOUND"

    def __init__(self, sale_line_id: str):
        self.sale_line_id = sale_line_id
        super().__init__(f"No allocation breakdown recorded for sale line {sale_line_id}")


class BreakdownAlreadyRecordedError(BreakdownError):
    """The sale line already has a committed allocation."""

    code: str = "BREAKDOWN_ALREADY_RECORDED"

    def __init__(self, sale_line_id: str, record_id: str):
        self.sale_line_id = sale_line_id
        self.record_id = record_id
        super().__init__(
            f"Sale line {sale_line_id} already committed as allocation record {record_id}"
        )


class ReturnExceedsSaleError(BreakdownError):
    """A return asks for more than is still returnable on the sale line."""

    code: str = "RETURN_EXCEEDS_SALE"

    def __init__(self, sale_line_id: str, requested_quantity: str, returnable_quantity: str):
        self.sale_line_id = sale_line_id
        self.requested_quantity = requested_quantity
        self.returnable_quantity = returnable_quantity
        super().__init__(
            f"Cannot return {requested_quantity} of sale line {sale_line_id}: "
            f"only {returnable_quantity} is still returnable"
        )


# Concurrency exceptions


class ConcurrencyError(CostingKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrencyConflictError(ConcurrencyError):
    """Optimistic locking conflict detected; the full cycle may be retried."""

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, reason: str | None = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason or "entity was modified by another transaction"
        super().__init__(
            f"Concurrency conflict on {entity_type} {entity_id}: {self.reason}"
        )


# Immutability exceptions


class ImmutabilityError(CostingKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an append-only record.

    Ledger entries and allocation records are immutable once written.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
