"""
Column types and mixins shared by the six engine tables.

Keeps cross-database compatibility (SQLite for development and tests,
PostgreSQL for production).
"""

import json
import uuid
from datetime import UTC, datetime
from decimal import Decimal

from pydantic_core import to_jsonable_python
from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declared_attr
from sqlalchemy.types import TypeDecorator

from ..constants import Ledger


def utc_now():
    """Return current UTC time with timezone info attached."""
    return datetime.now(UTC)


def new_id() -> str:
    return str(uuid.uuid4())


class JSON(TypeDecorator):
    """Cross-database JSON type for SQLite/PostgreSQL compatibility."""

    impl = Text
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(JSONB())
        else:
            return dialect.type_descriptor(Text())

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if dialect.name == "postgresql":
            return to_jsonable_python(value)
        else:
            return json.dumps(to_jsonable_python(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if dialect.name == "postgresql":
            return value
        else:
            return json.loads(value)


class Money(TypeDecorator):
    """
    Exact decimal amount.

    NUMERIC(18, 4) on PostgreSQL; SQLite has no exact decimal storage so the
    quantized value is kept as text.
    """

    impl = Text
    cache_ok = True

    _quantum = Decimal(1).scaleb(-Ledger.AMOUNT_SCALE)

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(
                Numeric(Ledger.AMOUNT_PRECISION, Ledger.AMOUNT_SCALE, asdecimal=True)
            )
        else:
            return dialect.type_descriptor(String(40))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = Decimal(str(value)).quantize(self._quantum)
        if dialect.name == "postgresql":
            return value
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(str(value)).quantize(self._quantum)


class TimestampMixin:
    """Simple mixin for created_at/updated_at timestamps."""

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)


class UUIDMixin:
    """Simple mixin for UUID primary keys."""

    id = Column(String(36), primary_key=True, default=new_id)


class ActorStampMixin:
    """Who created and last updated the row."""

    created_by = Column(String(36), nullable=True)
    updated_by = Column(String(36), nullable=True)


class OrganizationScopedMixin:
    """Every business row belongs to exactly one organization."""

    @declared_attr
    def organization_id(cls):
        return Column(
            String(36),
            ForeignKey("organization.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        )
