"""
Relationship model: typed, directed edge between two entities.

The natural key (organization, from, to, type) is unique, so repeated
membership writes update one row in place instead of stacking duplicates.
"""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String

from .db_base import JSON, ActorStampMixin, OrganizationScopedMixin, TimestampMixin, UUIDMixin
from .db_config import Base

NATURAL_KEY = ("organization_id", "from_entity_id", "to_entity_id", "relationship_type")


class Relationship(Base, UUIDMixin, OrganizationScopedMixin, TimestampMixin, ActorStampMixin):
    """Directed edge between two entities."""

    __tablename__ = "core_relationship"

    from_entity_id = Column(String(36), ForeignKey("core_entity.id"), nullable=False)
    to_entity_id = Column(String(36), ForeignKey("core_entity.id"), nullable=False)
    relationship_type = Column(String(100), nullable=False)
    relationship_data = Column(JSON, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    smart_code = Column(String(255), nullable=False)
    effective_date = Column(DateTime(timezone=True), nullable=True)
    expiration_date = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("uq_relationship_natural_key", *NATURAL_KEY, unique=True),
        Index("ix_relationship_org_from", "organization_id", "from_entity_id"),
        Index("ix_relationship_org_to", "organization_id", "to_entity_id"),
        Index("ix_relationship_org_type", "organization_id", "relationship_type"),
    )

    def __repr__(self) -> str:
        return (
            f"<Relationship(id='{self.id}', type='{self.relationship_type}', "
            f"from='{self.from_entity_id}', to='{self.to_entity_id}', active={self.is_active})>"
        )
