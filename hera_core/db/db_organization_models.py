"""
Organization model: the isolation boundary every other row belongs to.

Just the data structure - no business logic or class methods.
"""

from sqlalchemy import Column, Index, String

from ..constants import OrganizationStatus
from .db_base import JSON, TimestampMixin, UUIDMixin
from .db_config import Base


class Organization(Base, UUIDMixin, TimestampMixin):
    """Tenant / isolation boundary."""

    __tablename__ = "organization"

    code = Column(String(100), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default=OrganizationStatus.ACTIVE.value)

    # "metadata" is reserved on declarative classes
    org_metadata = Column("metadata", JSON, nullable=True)

    __table_args__ = (Index("ix_organization_status", "status"),)

    def __repr__(self) -> str:
        return f"<Organization(id='{self.id}', code='{self.code}', status='{self.status}')>"
