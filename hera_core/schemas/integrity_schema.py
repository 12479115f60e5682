"""
Pydantic schemas for integrity diagnostics.
"""

from typing import Any, Dict, List

from pydantic import BaseModel, Field


class IntegrityIssue(BaseModel):
    """One detected data problem."""

    kind: str = Field(description="orphan_dynamic_field, duplicate_relationship or dangling_relationship")
    record_id: str
    detail: Dict[str, Any] = Field(default_factory=dict)


class IntegrityReport(BaseModel):
    """Result of scanning one organization."""

    organization_id: str
    orphan_dynamic_fields: List[IntegrityIssue] = Field(default_factory=list)
    duplicate_relationships: List[IntegrityIssue] = Field(default_factory=list)
    dangling_relationships: List[IntegrityIssue] = Field(default_factory=list)

    @property
    def issues(self) -> List[IntegrityIssue]:
        return self.orphan_dynamic_fields + self.duplicate_relationships + self.dangling_relationships

    @property
    def is_clean(self) -> bool:
        return not self.issues


class RepairResult(BaseModel):
    """Outcome of deduplicating relationships."""

    organization_id: str
    groups_repaired: int = 0
    deactivated_relationship_ids: List[str] = Field(default_factory=list)
