"""
Pydantic schemas for actor identity and organization memberships.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class AppSummary(BaseModel):
    """Application installed in an organization."""

    code: str
    name: str


class OrganizationMembership(BaseModel):
    """One organization an actor belongs to."""

    id: str
    code: str
    name: str
    roles: List[str] = Field(default_factory=list)
    primary_role: Optional[str] = None
    apps: List[AppSummary] = Field(default_factory=list)


class IdentityContext(BaseModel):
    """Everything a caller needs to pick an organization for an actor."""

    actor_id: str
    organizations: List[OrganizationMembership] = Field(default_factory=list)
    default_organization_id: Optional[str] = None

    def membership(self, organization_id: str) -> Optional[OrganizationMembership]:
        return next((o for o in self.organizations if o.id == organization_id), None)


class Membership(BaseModel):
    """Result of onboarding an actor into an organization."""

    actor_id: str
    organization_id: str
    role: str
    relationship_id: str
    role_relationship_id: Optional[str] = None
