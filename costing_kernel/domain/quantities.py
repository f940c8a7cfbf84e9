"""
Module: costing_kernel.domain.quantities
Responsibility: Decimal normalization and validation for stock quantities and
    unit costs.  Every quantity or cost that enters the kernel passes through
    ``to_decimal`` and leaves every computation through ``quantize``.
Architecture position: Kernel > Domain.  Pure, zero I/O.  Imported by db/,
    models/, services/, selectors/ and the engines layer.

Invariants enforced:
    - No floats.  ``to_decimal`` rejects float and bool input outright.
    - Storage precision.  ``quantize`` rounds to DECIMAL_PLACES (9) with
      ROUND_HALF_UP, the same scale as the Numeric(38, 9) columns, so an
      in-memory value always equals the value read back from the database.

Failure modes:
    - InvalidQuantityError on malformed, non-finite, non-positive (where
      positivity is required) or negative input.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from costing_kernel.exceptions import InvalidQuantityError

DECIMAL_PLACES = 9
DEFAULT_ROUNDING = ROUND_HALF_UP

_QUANTUM = Decimal(1).scaleb(-DECIMAL_PLACES)

ZERO = Decimal("0").quantize(_QUANTUM)


def quantize(value: Decimal) -> Decimal:
    """Round a Decimal to storage precision (9 places, ROUND_HALF_UP)."""
    return value.quantize(_QUANTUM, rounding=DEFAULT_ROUNDING)


def to_decimal(value, field: str) -> Decimal:
    """
    Convert caller input to a quantized Decimal.

    Accepts Decimal, int and numeric strings.  Floats are refused because
    their binary representation silently changes costs.

    Raises:
        InvalidQuantityError: If the value is a float/bool, cannot be parsed,
            is not finite, or has too many integer digits to keep 9 places.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidQuantityError(field, repr(value), "floats are not accepted; use Decimal")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(value)
        except InvalidOperation:
            raise InvalidQuantityError(field, str(value), "not a decimal number") from None
    else:
        raise InvalidQuantityError(field, repr(value), f"unsupported type {type(value).__name__}")

    if not result.is_finite():
        raise InvalidQuantityError(field, str(value), "must be finite")
    try:
        return quantize(result)
    except InvalidOperation:
        # more than 28 significant digits once scaled to 9 places
        raise InvalidQuantityError(field, str(value), "too large for 9 decimal places") from None


def require_positive(value, field: str) -> Decimal:
    """Normalize and require ``value > 0``."""
    result = to_decimal(value, field)
    if result <= 0:
        raise InvalidQuantityError(field, str(value), "must be greater than zero")
    return result


def require_non_negative(value, field: str) -> Decimal:
    """Normalize and require ``value >= 0``."""
    result = to_decimal(value, field)
    if result < 0:
        raise InvalidQuantityError(field, str(value), "must not be negative")
    return result
