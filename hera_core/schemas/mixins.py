"""
Common Pydantic schema mixins for infrastructure-level patterns.

This module provides reusable mixins for common technical patterns across schemas,
ensuring consistency and reducing code duplication for framework-level concerns.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class IdMixin(BaseModel):
    """Mixin for schemas that include a unique identifier."""

    id: str = Field(..., description="Unique identifier for the record")


class OrganizationMixin(BaseModel):
    """Mixin for schemas of rows owned by one organization."""

    organization_id: str = Field(
        ..., min_length=1, max_length=36, description="Owning organization"
    )


class TimestampMixin(BaseModel):
    """Mixin for schemas that include creation and update timestamps."""

    created_at: datetime = Field(..., description="Timestamp when the record was created")
    updated_at: datetime = Field(..., description="Timestamp when the record was last updated")


class ActorStampMixin(BaseModel):
    """Mixin for schemas that record who created and last changed the row."""

    created_by: Optional[str] = Field(default=None, description="Actor that created the record")
    updated_by: Optional[str] = Field(default=None, description="Actor that last updated the record")


class ReadModel(BaseModel):
    """Base for schemas built from ORM rows."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


# Common combination for convenience
class CoreRecordMixin(ReadModel, IdMixin, OrganizationMixin, TimestampMixin, ActorStampMixin):
    """Id, organization, timestamps and actor stamps."""

    pass
