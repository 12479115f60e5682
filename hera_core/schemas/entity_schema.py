"""
Pydantic schemas for entities and their dynamic fields.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from ..constants import EntityStatus, FieldType, Limits
from .mixins import CoreRecordMixin, ReadModel
from .relationship_schema import RelationshipRead


class DynamicFieldInput(BaseModel):
    """One dynamic field value to write."""

    field_name: str = Field(min_length=1, max_length=Limits.MAX_FIELD_NAME_LENGTH)
    value: Any = None
    field_type: Optional[FieldType] = None
    smart_code: Optional[str] = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("field_name")
    def strip_name(cls, v: str) -> str:
        return v.strip()


class EntityUpsert(BaseModel):
    """Schema for creating or updating an entity."""

    entity_type: str = Field(min_length=1, max_length=100)
    entity_name: str = Field(min_length=1, max_length=Limits.MAX_NAME_LENGTH)
    smart_code: str
    entity_code: Optional[str] = Field(default=None, max_length=Limits.MAX_CODE_LENGTH)
    entity_id: Optional[str] = Field(default=None, max_length=36)
    status: Optional[EntityStatus] = None
    metadata: Optional[Dict[str, Any]] = None
    dynamic_fields: List[DynamicFieldInput] = Field(
        default_factory=list, max_length=Limits.MAX_DYNAMIC_FIELDS
    )

    model_config = ConfigDict(extra="ignore")

    @field_validator("entity_type")
    def normalize_type(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("entity_type must not be blank")
        return v

    @field_validator("entity_name")
    def strip_entity_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("entity_name must not be blank")
        return v


class EntityFilter(BaseModel):
    """Filters accepted by entity reads."""

    id: Optional[str] = None
    entity_type: Optional[str] = None
    status: Optional[EntityStatus] = None
    entity_code: Optional[str] = None
    smart_code: Optional[str] = None

    model_config = ConfigDict(extra="forbid")

    @field_validator("entity_type")
    def normalize_type(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().upper() if v else v


class DynamicFieldRead(ReadModel):
    """Stored dynamic field with its typed value."""

    field_name: str
    field_type: str
    value: Any = None
    smart_code: str
    updated_at: datetime


class EntityRelationships(BaseModel):
    """Active edges touching an entity."""

    outgoing: List[RelationshipRead] = Field(default_factory=list)
    incoming: List[RelationshipRead] = Field(default_factory=list)


class EntityRead(CoreRecordMixin):
    """Schema for reading entity data."""

    entity_type: str
    entity_name: str
    entity_code: Optional[str] = None
    smart_code: str
    status: str
    metadata: Dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("entity_metadata", "metadata")
    )

    # Populated only when requested
    dynamic_fields: Optional[Dict[str, Any]] = None
    dynamic_field_records: Optional[List[DynamicFieldRead]] = None
    relationships: Optional[EntityRelationships] = None

    @field_validator("metadata", mode="before")
    def none_to_empty(cls, v: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        return v or {}
