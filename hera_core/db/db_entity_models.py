"""
Entity and dynamic field models.

An entity is any business object (customer, product, account, user, role,
app). Attributes beyond the fixed columns live in ``core_dynamic_field`` rows,
one per (organization, entity, field_name), each holding exactly one typed
value column.
"""

from typing import Any, Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)

from ..constants import EntityStatus, FieldType
from .db_base import (
    JSON,
    ActorStampMixin,
    Money,
    OrganizationScopedMixin,
    TimestampMixin,
    UUIDMixin,
)
from .db_config import Base


class Entity(Base, UUIDMixin, OrganizationScopedMixin, TimestampMixin, ActorStampMixin):
    """Universal business object."""

    __tablename__ = "core_entity"

    entity_type = Column(String(100), nullable=False)
    entity_name = Column(String(255), nullable=False)
    entity_code = Column(String(100), nullable=True)
    smart_code = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default=EntityStatus.ACTIVE.value)
    entity_metadata = Column("metadata", JSON, nullable=True)

    __table_args__ = (
        Index("ix_entity_org_type", "organization_id", "entity_type"),
        Index("ix_entity_org_code", "organization_id", "entity_code"),
        Index("ix_entity_org_smart_code", "organization_id", "smart_code"),
    )

    def __repr__(self) -> str:
        return (
            f"<Entity(id='{self.id}', organization_id='{self.organization_id}', "
            f"entity_type='{self.entity_type}', entity_name='{self.entity_name}')>"
        )


# Value column per field type
VALUE_COLUMNS = {
    FieldType.TEXT.value: "field_value_text",
    FieldType.NUMBER.value: "field_value_number",
    FieldType.BOOLEAN.value: "field_value_boolean",
    FieldType.DATE.value: "field_value_date",
    FieldType.JSON.value: "field_value_json",
}


class DynamicField(Base, UUIDMixin, OrganizationScopedMixin, TimestampMixin, ActorStampMixin):
    """Typed attribute attached to an entity."""

    __tablename__ = "core_dynamic_field"

    entity_id = Column(
        String(36), ForeignKey("core_entity.id", ondelete="CASCADE"), nullable=False
    )
    field_name = Column(String(100), nullable=False)
    field_type = Column(String(20), nullable=False)
    field_value_text = Column(Text, nullable=True)
    field_value_number = Column(Money, nullable=True)
    field_value_boolean = Column(Boolean, nullable=True)
    field_value_date = Column(DateTime(timezone=True), nullable=True)
    field_value_json = Column(JSON, nullable=True)
    smart_code = Column(String(255), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "organization_id", "entity_id", "field_name", name="uq_dynamic_field_entity_name"
        ),
        Index("ix_dynamic_field_entity", "entity_id"),
    )

    @property
    def value(self) -> Optional[Any]:
        """The populated value column for this field's type."""
        return getattr(self, VALUE_COLUMNS[self.field_type])

    def __repr__(self) -> str:
        return (
            f"<DynamicField(entity_id='{self.entity_id}', field_name='{self.field_name}', "
            f"field_type='{self.field_type}')>"
        )
