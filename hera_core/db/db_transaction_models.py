"""
Transaction header and line models.

Posted transactions are never edited; a reversal creates a new transaction
that points back at the original through ``reversal_of_id``.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from ..constants import Ledger, TransactionStatus
from .db_base import (
    JSON,
    ActorStampMixin,
    Money,
    OrganizationScopedMixin,
    TimestampMixin,
    UUIDMixin,
    utc_now,
)
from .db_config import Base


class Transaction(Base, UUIDMixin, OrganizationScopedMixin, TimestampMixin, ActorStampMixin):
    """Universal transaction header."""

    __tablename__ = "universal_transaction"

    transaction_type = Column(String(100), nullable=False)
    transaction_code = Column(String(100), nullable=False)
    smart_code = Column(String(255), nullable=False)
    transaction_date = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    source_entity_id = Column(String(36), ForeignKey("core_entity.id"), nullable=True)
    target_entity_id = Column(String(36), ForeignKey("core_entity.id"), nullable=True)
    total_amount = Column(Money, nullable=True)
    currency = Column(String(3), nullable=False, default=Ledger.DEFAULT_CURRENCY)
    status = Column(String(20), nullable=False, default=TransactionStatus.POSTED.value)
    reversal_of_id = Column(String(36), ForeignKey("universal_transaction.id"), nullable=True)
    transaction_metadata = Column("metadata", JSON, nullable=True)

    lines = relationship(
        "TransactionLine",
        back_populates="transaction",
        order_by="TransactionLine.line_number",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint("organization_id", "transaction_code", name="uq_transaction_org_code"),
        Index("ix_transaction_org_type", "organization_id", "transaction_type"),
        Index("ix_transaction_org_status", "organization_id", "status"),
        Index("ix_transaction_reversal_of", "reversal_of_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Transaction(id='{self.id}', code='{self.transaction_code}', "
            f"type='{self.transaction_type}', status='{self.status}')>"
        )


class TransactionLine(Base, UUIDMixin, OrganizationScopedMixin, TimestampMixin):
    """One line of a transaction."""

    __tablename__ = "universal_transaction_line"

    transaction_id = Column(
        String(36), ForeignKey("universal_transaction.id", ondelete="CASCADE"), nullable=False
    )
    line_number = Column(Integer, nullable=False)
    line_type = Column(String(50), nullable=False)
    entity_id = Column(String(36), ForeignKey("core_entity.id"), nullable=True)
    description = Column(Text, nullable=True)
    quantity = Column(Money, nullable=True)
    unit_amount = Column(Money, nullable=True)
    line_amount = Column(Money, nullable=False, default=0)
    smart_code = Column(String(255), nullable=False)
    line_data = Column(JSON, nullable=True)

    transaction = relationship("Transaction", back_populates="lines")

    __table_args__ = (
        UniqueConstraint("transaction_id", "line_number", name="uq_transaction_line_number"),
        Index("ix_transaction_line_entity", "entity_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<TransactionLine(transaction_id='{self.transaction_id}', "
            f"line_number={self.line_number}, line_type='{self.line_type}')>"
        )
