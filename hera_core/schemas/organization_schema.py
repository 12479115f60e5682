"""
Pydantic schemas for organizations.
"""

from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .mixins import IdMixin, ReadModel, TimestampMixin


class OrganizationCreate(BaseModel):
    """Schema for provisioning a new organization."""

    code: str = Field(min_length=1, max_length=100)
    name: str = Field(min_length=1, max_length=255)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore")

    @field_validator("code")
    def normalize_code(cls, v: str) -> str:
        return v.strip().upper()


class OrganizationRead(ReadModel, IdMixin, TimestampMixin):
    """Schema for reading organization data."""

    code: str
    name: str
    status: str
    metadata: Dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("org_metadata", "metadata")
    )

    @field_validator("metadata", mode="before")
    def none_to_empty(cls, v: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        return v or {}

    @property
    def is_active(self) -> bool:
        return self.status == "active"
