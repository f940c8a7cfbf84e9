"""
Module: costing_kernel.db.base
Responsibility: Declarative base class for all SQLAlchemy ORM models.  Provides
    the UUID primary key convention, UTC-normalized timestamps, and the type
    annotation map for consistent column types.
Architecture position: Kernel > DB.  This is the lowest-level import target
    within the kernel.  ALL model files import from here.  This module MUST NOT
    import from models/, services/, selectors/, or outer layers.

Invariants enforced:
    - UUID primary keys: Every model inherits a uuid4-generated primary key.
    - Decimal precision: every quantity and cost column is ExactDecimal,
      9 decimal places with no float round trip on any backend.  NEVER use
      float for quantities or costs.
    - Timestamps are timezone-aware UTC on the way in and on the way out,
      regardless of whether the backend keeps offsets (SQLite does not).
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from costing_kernel.domain.quantities import ZERO, quantize


class UUIDString(TypeDecorator):
    """
    UUID type stored as String(36) for cross-database portability.

    Guarantees:
        - process_bind_param: UUID -> str on INSERT/UPDATE.
        - process_result_value: str -> UUID on SELECT.
        - cache_ok=True enables SQLAlchemy statement caching.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(str(value))
        return None


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime, normalized to UTC.

    Contract:
        Values are converted to UTC before binding, so lexical comparison on
        backends that store timestamps as text still orders correctly.
        Values loaded from a backend that drops the offset come back tagged
        as UTC.

    Guarantees:
        - Every datetime read through this type has tzinfo == UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class ExactDecimal(TypeDecorator):
    """
    Quantity/cost column with exactly 9 decimal places on every backend.

    Contract:
        PostgreSQL stores NUMERIC(38, 9) natively.  SQLite has no decimal
        storage and would round through a float, so there the value is kept
        as zero-padded text; equal-width padding keeps text comparison in
        numeric order for non-negative values (``quantity_remaining > 0``).

    Guarantees:
        - process_result_value always returns a Decimal quantized to 9 places.
    """

    impl = Numeric(38, 9)
    cache_ok = True

    # sign + 29 integer digits + point + 9 places
    TEXT_WIDTH = 40

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(self.TEXT_WIDTH))
        return dialect.type_descriptor(Numeric(38, 9))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = quantize(Decimal(value))
        if not value:
            value = ZERO
        if dialect.name == "sqlite":
            return f"{value:0{self.TEXT_WIDTH}.9f}"
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return quantize(Decimal(str(value)))


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is always a uuid4-generated UUID stored as String(36).
        - Decimal maps to ExactDecimal (NUMERIC(38, 9), text on SQLite).
        - datetime maps to UTCDateTime -- always timezone-aware UTC.
        - int maps to BigInteger -- safe for monotonic sequences.
    """

    type_annotation_map: ClassVar[dict] = {
        # Quantity/cost precision: 38 digits total, 9 decimal places
        Decimal: ExactDecimal(),
        datetime: UTCDateTime(),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


# Re-export UUID for convenience
UUID = PyUUID
