"""
Organization provisioning with direct SQLAlchemy access.

Every organization gets an ORGANIZATION anchor entity whose id equals the
organization id; membership and app edges point at that anchor.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import select

from ..constants import (
    PLATFORM_ORGANIZATION_CODE,
    EntityType,
    OrganizationStatus,
    Role,
    SmartCodes,
)
from ..context.operation_context import operation
from ..db.db_base import utc_now
from ..db.db_entity_models import Entity
from ..db.db_organization_models import Organization
from ..exceptions import BaseError, duplicate, not_found
from ..schemas.organization_schema import OrganizationCreate, OrganizationRead
from ..schemas.validation import parse_input
from .base_service import SessionManagedService


class OrganizationService(SessionManagedService):
    """Creates and reads organizations."""

    @operation()
    def provision(
        self,
        code: str,
        name: str,
        owner_actor_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        organization_id: Optional[str] = None,
    ) -> OrganizationRead:
        """
        Create an organization, its anchor entity and optionally its owner membership.

        Args:
            code: Unique organization code (stored upper-case)
            name: Display name
            owner_actor_id: USER entity to make ``owner``
            metadata: Free-form organization metadata
            organization_id: Explicit id, generated when omitted

        Raises:
            ConflictError: If the code is already taken
            NotFoundError: If the owner actor does not exist
        """
        data = parse_input(
            OrganizationCreate, {"code": code, "name": name, "metadata": metadata or {}}
        )

        try:
            if self.session.execute(
                select(Organization.id).where(Organization.code == data.code)
            ).first():
                raise duplicate("Organization", code=data.code)

            with self.transaction():
                organization = Organization(
                    code=data.code,
                    name=data.name,
                    status=OrganizationStatus.ACTIVE.value,
                    org_metadata=data.metadata,
                )
                if organization_id:
                    organization.id = organization_id
                self.session.add(organization)
                self.session.flush()

                self.ensure_anchor(organization, actor_id=owner_actor_id)

                if owner_actor_id:
                    # Lazy import to avoid circular dependency
                    from .identity_service import IdentityService

                    IdentityService(session=self.session).grant_membership(
                        organization.id, owner_actor_id, Role.OWNER.value, granted_by=owner_actor_id
                    )

                self.logger.info(
                    "Provisioned organization",
                    extra={"organization_id": organization.id, "code": organization.code},
                )
                return OrganizationRead.model_validate(organization)

        except BaseError:
            raise
        except Exception as e:
            self._handle_service_exception("provision", e)

    def ensure_anchor(self, organization: Organization, actor_id: Optional[str] = None) -> Entity:
        """Return the organization's anchor entity, creating it when missing."""
        anchor = self.session.get(Entity, organization.id)
        if anchor is not None:
            return anchor

        anchor = Entity(
            id=organization.id,
            organization_id=organization.id,
            entity_type=EntityType.ORGANIZATION.value,
            entity_name=organization.name,
            entity_code=organization.code,
            smart_code=SmartCodes.ORGANIZATION_ANCHOR,
            created_by=actor_id,
            updated_by=actor_id,
        )
        self.session.add(anchor)
        self.session.flush()
        return anchor

    @operation()
    def ensure_platform_organization(self) -> OrganizationRead:
        """Create the platform organization on first use."""
        organization = self.session.get(Organization, self.platform_organization_id)
        if organization is None:
            with self.transaction():
                organization = Organization(
                    id=self.platform_organization_id,
                    code=PLATFORM_ORGANIZATION_CODE,
                    name="HERA Platform",
                    status=OrganizationStatus.ACTIVE.value,
                    org_metadata={"platform": True},
                )
                self.session.add(organization)
                self.session.flush()
                self.ensure_anchor(organization)
                return OrganizationRead.model_validate(organization)
        return OrganizationRead.model_validate(organization)

    @operation()
    def get(self, org_id: str) -> OrganizationRead:
        """
        Get an organization by id, active or not.

        Raises:
            NotFoundError: If the organization does not exist
        """
        organization = self.session.get(Organization, org_id)
        if organization is None:
            raise not_found("Organization", organization_id=org_id)
        return OrganizationRead.model_validate(organization)

    @operation()
    def list(self, status: Optional[str] = None, limit: int = 100, offset: int = 0) -> List[OrganizationRead]:
        stmt = select(Organization)
        if status:
            stmt = stmt.where(Organization.status == status)
        stmt = (
            stmt.order_by(Organization.created_at, Organization.id)
            .offset(self._offset(offset))
            .limit(self._page_size(limit))
        )
        return [OrganizationRead.model_validate(o) for o in self.session.execute(stmt).scalars()]

    @operation()
    def set_status(self, org_id: str, status: OrganizationStatus) -> OrganizationRead:
        """Suspend or reactivate an organization."""
        organization = self.session.get(Organization, org_id)
        if organization is None:
            raise not_found("Organization", organization_id=org_id)

        with self.transaction():
            organization.status = OrganizationStatus(status).value
            organization.updated_at = utc_now()
            return OrganizationRead.model_validate(organization)
