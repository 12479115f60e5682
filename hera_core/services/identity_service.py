"""
Actor identity and organization membership.

Actors are USER entities living in the platform organization. Membership is
recorded inside the target organization as graph edges:

    actor --MEMBER_OF {role}--> organization anchor
    actor --HAS_ROLE {role}---> ROLE entity
    anchor --ORG_HAS_APP------> APP entity

Edges are written through relationship upsert, so repeating an onboarding
only updates the role.
"""

from typing import Dict, List, Optional

from sqlalchemy import select

from ..constants import (
    ELEVATED_ROLES,
    EntityStatus,
    EntityType,
    OrganizationStatus,
    RelationshipType,
    Role,
    SmartCodes,
)
from ..context.operation_context import operation
from ..context.organization_context import organization_context
from ..db.db_base import new_id
from ..db.db_entity_models import Entity
from ..db.db_organization_models import Organization
from ..db.db_relationship_models import Relationship
from ..exceptions import BaseError, ErrorCode, ValidationError, not_found, permission_denied
from ..schemas.entity_schema import EntityRead
from ..schemas.identity_schema import AppSummary, IdentityContext, Membership, OrganizationMembership
from ..schemas.relationship_schema import RelationshipRead
from .base_service import SessionManagedService
from .organization_service import OrganizationService
from .relationship_service import RelationshipService


def normalize_role(role: str) -> str:
    """
    Canonical role name.

    Raises:
        ValidationError: If the role is not a known membership role
    """
    try:
        return Role(str(role or "").strip().lower()).value
    except ValueError:
        raise ValidationError(
            f"Unknown role: {role!r}",
            field="role",
            error_code=ErrorCode.INVALID_FORMAT,
            allowed=[r.value for r in Role],
        ) from None


class IdentityService(SessionManagedService):
    """Register actors, resolve their memberships and onboard them into organizations."""

    def _relationships(self) -> RelationshipService:
        return RelationshipService(session=self.session, logger=self.logger)

    @operation()
    def register_actor(
        self, name: str, email: Optional[str] = None, actor_id: Optional[str] = None
    ) -> EntityRead:
        """
        Create the USER identity anchor for an actor in the platform organization.

        Registering an existing ``actor_id`` returns the stored actor unchanged.

        Raises:
            ValidationError: If the name is blank
        """
        if not name or not name.strip():
            raise ValidationError(
                "Actor name is required", field="name", error_code=ErrorCode.MISSING_REQUIRED
            )

        OrganizationService(session=self.session, logger=self.logger).ensure_platform_organization()
        platform_id = self.platform_organization_id

        try:
            actor = None
            if actor_id:
                actor = self.session.execute(
                    select(Entity).where(
                        Entity.id == actor_id,
                        Entity.organization_id == platform_id,
                        Entity.entity_type == EntityType.USER.value,
                    )
                ).scalar_one_or_none()

            if actor is None:
                with self.transaction():
                    actor = Entity(
                        id=actor_id or new_id(),
                        organization_id=platform_id,
                        entity_type=EntityType.USER.value,
                        entity_name=name.strip(),
                        entity_code=email,
                        smart_code=SmartCodes.USER_ANCHOR,
                        status=EntityStatus.ACTIVE.value,
                        entity_metadata={"email": email} if email else {},
                    )
                    self.session.add(actor)
                    self.session.flush()
                    self.logger.info("Registered actor", extra={"actor_id": actor.id})
                    return EntityRead.model_validate(actor)

            return EntityRead.model_validate(actor)

        except BaseError:
            raise
        except Exception as e:
            self._handle_service_exception("register_actor", e, actor_id)

    @operation()
    def introspect(self, actor_id: str) -> IdentityContext:
        """
        Resolve every active organization an actor belongs to.

        Duplicate active memberships for the same organization collapse into
        one entry; suspended organizations are skipped.

        Raises:
            NotFoundError: If the actor does not exist
        """
        actor = self.session.get(Entity, actor_id)
        if actor is None:
            raise not_found("Actor", actor_id=actor_id)

        rows = self.session.execute(
            select(Relationship, Organization)
            .join(Organization, Organization.id == Relationship.organization_id)
            .where(
                Relationship.from_entity_id == actor_id,
                Relationship.to_entity_id == Relationship.organization_id,
                Relationship.relationship_type == RelationshipType.MEMBER_OF.value,
                Relationship.is_active.is_(True),
                Organization.status == OrganizationStatus.ACTIVE.value,
            )
            .order_by(Relationship.created_at, Relationship.id)
        ).all()

        memberships: Dict[str, OrganizationMembership] = {}
        member_roles: Dict[str, List[str]] = {}
        for edge, organization in rows:
            membership = memberships.get(organization.id)
            if membership is None:
                membership = OrganizationMembership(
                    id=organization.id, code=organization.code, name=organization.name
                )
                memberships[organization.id] = membership
                member_roles[organization.id] = []
            role = (edge.relationship_data or {}).get("role")
            if role and role not in member_roles[organization.id]:
                member_roles[organization.id].append(role)

        if not memberships:
            return IdentityContext(actor_id=actor_id)

        org_ids = list(memberships)
        granted_roles: Dict[str, List[str]] = {org_id: [] for org_id in org_ids}
        role_edges = self.session.execute(
            select(Relationship)
            .where(
                Relationship.from_entity_id == actor_id,
                Relationship.organization_id.in_(org_ids),
                Relationship.relationship_type == RelationshipType.HAS_ROLE.value,
                Relationship.is_active.is_(True),
            )
            .order_by(Relationship.created_at, Relationship.id)
        ).scalars()
        for edge in role_edges:
            role = (edge.relationship_data or {}).get("role")
            if role and role not in granted_roles[edge.organization_id]:
                granted_roles[edge.organization_id].append(role)

        app_rows = self.session.execute(
            select(Relationship.organization_id, Entity)
            .join(Entity, Entity.id == Relationship.to_entity_id)
            .where(
                Relationship.organization_id.in_(org_ids),
                Relationship.from_entity_id == Relationship.organization_id,
                Relationship.relationship_type == RelationshipType.ORG_HAS_APP.value,
                Relationship.is_active.is_(True),
            )
            .order_by(Entity.entity_code, Relationship.id)
        ).all()
        for org_id, app in app_rows:
            membership = memberships[org_id]
            if any(a.code == app.entity_code for a in membership.apps):
                continue
            membership.apps.append(AppSummary(code=app.entity_code, name=app.entity_name))

        for org_id, membership in memberships.items():
            roles = list(member_roles[org_id])
            roles.extend(r for r in granted_roles[org_id] if r not in roles)
            membership.roles = roles
            if member_roles[org_id]:
                membership.primary_role = member_roles[org_id][0]
            elif granted_roles[org_id]:
                membership.primary_role = granted_roles[org_id][0]

        preferred = (actor.entity_metadata or {}).get("default_organization_id")
        default_id = preferred if preferred in memberships else org_ids[0]

        return IdentityContext(
            actor_id=actor_id,
            organizations=list(memberships.values()),
            default_organization_id=default_id,
        )

    @operation()
    def onboard(self, actor_id: str, org_id: str, role: str, requested_by: str) -> Membership:
        """
        Add an actor to an organization, or change the role of an existing member.

        Raises:
            ValidationError: Unknown role
            NotFoundError: Organization or actor does not exist
            ForbiddenError: Requester is neither owner nor admin of the organization
        """
        role = normalize_role(role)
        with organization_context(org_id):
            self._require_organization(org_id)
            if not self._has_elevated_role(org_id, requested_by):
                raise permission_denied(
                    "onboard", "Organization", organization_id=org_id, requested_by=requested_by
                )
            return self.grant_membership(org_id, actor_id, role, granted_by=requested_by)

    def grant_membership(
        self, org_id: str, actor_id: str, role: str, granted_by: Optional[str] = None
    ) -> Membership:
        """Write the MEMBER_OF and HAS_ROLE edges without checking the granter."""
        role = normalize_role(role)
        relationships = self._relationships()

        try:
            with self.transaction():
                member_edge = relationships.upsert(
                    org_id,
                    actor_id,
                    org_id,
                    RelationshipType.MEMBER_OF.value,
                    SmartCodes.MEMBER_OF,
                    relationship_data={"role": role},
                    actor_id=granted_by,
                )
                role_entity = self._ensure_role_entity(org_id, role, granted_by)
                role_edge = relationships.upsert(
                    org_id,
                    actor_id,
                    role_entity.id,
                    RelationshipType.HAS_ROLE.value,
                    SmartCodes.HAS_ROLE,
                    relationship_data={"role": role},
                    actor_id=granted_by,
                )
                relationships.deactivate_where(
                    org_id,
                    actor_id,
                    RelationshipType.HAS_ROLE.value,
                    keep_to_entity_id=role_entity.id,
                    actor_id=granted_by,
                )

                self.logger.info(
                    "Granted membership",
                    extra={"actor_id": actor_id, "organization_id": org_id, "role": role},
                )
                return Membership(
                    actor_id=actor_id,
                    organization_id=org_id,
                    role=role,
                    relationship_id=member_edge.id,
                    role_relationship_id=role_edge.id,
                )

        except BaseError:
            raise
        except Exception as e:
            self._handle_service_exception("grant_membership", e, actor_id)

    @operation()
    def install_app(
        self, org_id: str, app_code: str, app_name: str, requested_by: str
    ) -> RelationshipRead:
        """
        Link an application to an organization; installing it twice is a no-op update.

        Raises:
            NotFoundError: Organization does not exist
            ForbiddenError: Requester is neither owner nor admin of the organization
        """
        if not app_code or not app_code.strip():
            raise ValidationError(
                "app_code is required", field="app_code", error_code=ErrorCode.MISSING_REQUIRED
            )

        with organization_context(org_id):
            organization = self._require_organization(org_id)
            if not self._has_elevated_role(org_id, requested_by):
                raise permission_denied(
                    "install_app", "Organization", organization_id=org_id, requested_by=requested_by
                )

            code = app_code.strip().upper()
            with self.transaction():
                OrganizationService(session=self.session, logger=self.logger).ensure_anchor(organization)
                app = self._ensure_entity(
                    org_id, EntityType.APP.value, code, app_name or code, SmartCodes.APP, requested_by
                )
                edge = self._relationships().upsert(
                    org_id,
                    org_id,
                    app.id,
                    RelationshipType.ORG_HAS_APP.value,
                    SmartCodes.ORG_HAS_APP,
                    relationship_data={"app_code": code},
                    actor_id=requested_by,
                )
            return edge

    def _has_elevated_role(self, org_id: str, actor_id: Optional[str]) -> bool:
        """Owner or admin role held through an active membership of ``org_id``."""
        if not actor_id:
            return False
        edges = self.session.execute(
            select(Relationship.relationship_type, Relationship.relationship_data).where(
                Relationship.organization_id == org_id,
                Relationship.from_entity_id == actor_id,
                Relationship.relationship_type.in_(
                    [RelationshipType.MEMBER_OF.value, RelationshipType.HAS_ROLE.value]
                ),
                Relationship.is_active.is_(True),
            )
        ).all()
        # Roles of a removed member do not count
        if not any(
            edge.relationship_type == RelationshipType.MEMBER_OF.value for edge in edges
        ):
            return False
        return any((edge.relationship_data or {}).get("role") in ELEVATED_ROLES for edge in edges)

    def _ensure_role_entity(self, org_id: str, role: str, actor_id: Optional[str]) -> Entity:
        return self._ensure_entity(
            org_id, EntityType.ROLE.value, role.upper(), role.title(), SmartCodes.ROLE, actor_id
        )

    def _ensure_entity(
        self,
        org_id: str,
        entity_type: str,
        code: str,
        name: str,
        smart_code: str,
        actor_id: Optional[str],
    ) -> Entity:
        entity = self.session.execute(
            select(Entity)
            .where(
                Entity.organization_id == org_id,
                Entity.entity_type == entity_type,
                Entity.entity_code == code,
            )
            .order_by(Entity.created_at, Entity.id)
        ).scalars().first()
        if entity is not None:
            return entity

        entity = Entity(
            id=new_id(),
            organization_id=org_id,
            entity_type=entity_type,
            entity_name=name,
            entity_code=code,
            smart_code=smart_code,
            status=EntityStatus.ACTIVE.value,
            entity_metadata={},
            created_by=actor_id,
            updated_by=actor_id,
        )
        self.session.add(entity)
        self.session.flush()
        return entity
