"""
Pydantic schemas for relationships and their endpoint projections.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .mixins import CoreRecordMixin, ReadModel


class RelationshipUpsert(BaseModel):
    """Schema for creating or updating an edge by its natural key."""

    from_entity_id: str = Field(min_length=1, max_length=36)
    to_entity_id: str = Field(min_length=1, max_length=36)
    relationship_type: str = Field(min_length=1, max_length=100)
    smart_code: str
    relationship_data: Dict[str, Any] = Field(default_factory=dict)
    effective_date: Optional[datetime] = None
    expiration_date: Optional[datetime] = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("relationship_type")
    def normalize_type(cls, v: str) -> str:
        return v.strip().upper()


class EntityProjection(ReadModel):
    """Lightweight view of a relationship endpoint."""

    id: str
    entity_name: str
    entity_code: Optional[str] = None
    entity_type: str


class RelationshipRead(CoreRecordMixin):
    """Schema for reading relationship data."""

    from_entity_id: str
    to_entity_id: str
    relationship_type: str
    relationship_data: Dict[str, Any] = Field(default_factory=dict)
    is_active: bool
    smart_code: str
    effective_date: Optional[datetime] = None
    expiration_date: Optional[datetime] = None
    from_entity: Optional[EntityProjection] = None
    to_entity: Optional[EntityProjection] = None

    @field_validator("relationship_data", mode="before")
    def none_to_empty(cls, v: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        return v or {}


class RelationshipPage(BaseModel):
    """One page of a relationship query."""

    items: List[RelationshipRead] = Field(default_factory=list)
    next_cursor: Optional[str] = Field(
        default=None, description="Pass back as ``cursor`` to fetch the next page"
    )

    @property
    def has_more(self) -> bool:
        return self.next_cursor is not None
