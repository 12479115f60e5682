"""
Tests for IdentityService using real implementations (no mocks).
"""

import pytest
from sqlalchemy import text

from hera_core.constants import EntityType, OrganizationStatus, RelationshipType, SmartCodes
from hera_core.exceptions import ForbiddenError, NotFoundError, ValidationError
from tests.fixtures.factories import RelationshipFactory


@pytest.fixture
def member(identity_service):
    return identity_service.register_actor("Max Member", email="max@acme.test")


class TestRegisterActor:
    """USER identity anchors."""

    def test_register_creates_platform_user(self, identity_service):
        actor = identity_service.register_actor("Ada", email="ada@example.com")

        assert actor.entity_type == EntityType.USER.value
        assert actor.organization_id == identity_service.platform_organization_id
        assert actor.entity_code == "ada@example.com"
        assert actor.smart_code == SmartCodes.USER_ANCHOR
        assert actor.metadata == {"email": "ada@example.com"}

    def test_register_is_idempotent_for_known_id(self, identity_service):
        first = identity_service.register_actor("Ada", actor_id="6a1f0a52-3f53-4c43-9a4e-7d8f0e9c1b2a")
        again = identity_service.register_actor("Someone Else", actor_id=first.id)

        assert again.id == first.id
        assert again.entity_name == "Ada"

    def test_blank_name_is_rejected(self, identity_service):
        with pytest.raises(ValidationError):
            identity_service.register_actor(" ")


class TestIntrospect:
    """Membership resolution."""

    def test_owner_membership(self, identity_service, owner, org):
        context = identity_service.introspect(owner.id)

        assert context.actor_id == owner.id
        assert context.default_organization_id == org.id
        membership = context.membership(org.id)
        assert membership.code == "ACME"
        assert membership.roles == ["owner"]
        assert membership.primary_role == "owner"

    def test_actor_without_memberships(self, identity_service, member):
        context = identity_service.introspect(member.id)

        assert context.organizations == []
        assert context.default_organization_id is None

    def test_unknown_actor_is_not_found(self, identity_service):
        with pytest.raises(NotFoundError):
            identity_service.introspect("4a0d51c3-0000-4000-8000-000000000000")

    def test_duplicate_memberships_collapse(self, identity_service, db_session, owner, org):
        # Legacy stores had no natural-key index
        db_session.execute(text("DROP INDEX uq_relationship_natural_key"))
        RelationshipFactory(
            organization_id=org.id,
            from_entity_id=owner.id,
            to_entity_id=org.id,
            relationship_type=RelationshipType.MEMBER_OF.value,
            relationship_data={"role": "owner"},
        )
        RelationshipFactory(
            organization_id=org.id,
            from_entity_id=owner.id,
            to_entity_id=org.id,
            relationship_type=RelationshipType.MEMBER_OF.value,
            relationship_data={"role": "admin"},
        )

        context = identity_service.introspect(owner.id)

        assert [o.id for o in context.organizations] == [org.id]
        assert context.organizations[0].roles == ["owner", "admin"]
        assert context.organizations[0].primary_role == "owner"

    def test_suspended_organizations_are_skipped(
        self, identity_service, organization_service, owner, org
    ):
        second = organization_service.provision("BETA", "Beta Studio", owner_actor_id=owner.id)
        organization_service.set_status(org.id, OrganizationStatus.SUSPENDED)

        context = identity_service.introspect(owner.id)

        assert [o.id for o in context.organizations] == [second.id]
        assert context.default_organization_id == second.id

    def test_inactive_membership_is_ignored(
        self, identity_service, relationship_service, owner, org
    ):
        membership = identity_service.introspect(owner.id).membership(org.id)
        assert membership is not None

        edges = relationship_service.query(
            org.id, from_entity_id=owner.id, relationship_type=RelationshipType.MEMBER_OF.value
        )
        relationship_service.deactivate(org.id, edges.items[0].id)

        assert identity_service.introspect(owner.id).organizations == []

    def test_apps_are_listed_once(self, identity_service, owner, org):
        identity_service.install_app(org.id, "pos", "Point of Sale", requested_by=owner.id)
        identity_service.install_app(org.id, "POS", "Point of Sale", requested_by=owner.id)
        identity_service.install_app(org.id, "crm", "Clients", requested_by=owner.id)

        apps = identity_service.introspect(owner.id).membership(org.id).apps

        assert [(a.code, a.name) for a in apps] == [("CRM", "Clients"), ("POS", "Point of Sale")]


class TestOnboard:
    """Adding members to an organization."""

    def test_owner_can_onboard(self, identity_service, owner, member, org):
        membership = identity_service.onboard(member.id, org.id, "Manager", requested_by=owner.id)

        assert membership.role == "manager"
        assert membership.organization_id == org.id

        context = identity_service.introspect(member.id)
        assert context.membership(org.id).roles == ["manager"]

    def test_onboarding_twice_only_updates_the_role(self, identity_service, owner, member, org):
        first = identity_service.onboard(member.id, org.id, "member", requested_by=owner.id)
        second = identity_service.onboard(member.id, org.id, "admin", requested_by=owner.id)

        assert second.relationship_id == first.relationship_id
        assert second.role_relationship_id != first.role_relationship_id

        membership = identity_service.introspect(member.id).membership(org.id)
        assert membership.roles == ["admin"]
        assert membership.primary_role == "admin"

    def test_admin_can_onboard(self, identity_service, owner, member, org):
        identity_service.onboard(member.id, org.id, "admin", requested_by=owner.id)
        newcomer = identity_service.register_actor("Nina Newcomer")

        membership = identity_service.onboard(newcomer.id, org.id, "viewer", requested_by=member.id)

        assert membership.role == "viewer"

    def test_plain_member_cannot_onboard(self, identity_service, owner, member, org):
        identity_service.onboard(member.id, org.id, "member", requested_by=owner.id)
        newcomer = identity_service.register_actor("Nina Newcomer")

        with pytest.raises(ForbiddenError):
            identity_service.onboard(newcomer.id, org.id, "member", requested_by=member.id)

    def test_removed_admin_cannot_onboard(
        self, identity_service, relationship_service, owner, member, org
    ):
        identity_service.onboard(member.id, org.id, "admin", requested_by=owner.id)
        edges = relationship_service.query(
            org.id, from_entity_id=member.id, relationship_type=RelationshipType.MEMBER_OF.value
        )
        relationship_service.deactivate(org.id, edges.items[0].id)
        newcomer = identity_service.register_actor("Nina Newcomer")

        with pytest.raises(ForbiddenError):
            identity_service.onboard(newcomer.id, org.id, "owner", requested_by=member.id)

        assert identity_service.introspect(newcomer.id).organizations == []

    def test_outsider_cannot_onboard(self, identity_service, member, org):
        with pytest.raises(ForbiddenError):
            identity_service.onboard(member.id, org.id, "member", requested_by=member.id)

    def test_unknown_role_is_rejected(self, identity_service, owner, member, org):
        with pytest.raises(ValidationError) as exc_info:
            identity_service.onboard(member.id, org.id, "superuser", requested_by=owner.id)

        assert exc_info.value.field == "role"

    def test_unknown_actor_is_not_found(self, identity_service, owner, org):
        with pytest.raises(NotFoundError):
            identity_service.onboard(
                "4a0d51c3-0000-4000-8000-000000000000", org.id, "member", requested_by=owner.id
            )

    def test_unknown_organization_is_not_found(self, identity_service, owner, member):
        with pytest.raises(NotFoundError):
            identity_service.onboard(
                member.id, "4a0d51c3-0000-4000-8000-000000000001", "member", requested_by=owner.id
            )


def test_install_app_requires_elevated_role(identity_service, member, org):
    with pytest.raises(ForbiddenError):
        identity_service.install_app(org.id, "pos", "Point of Sale", requested_by=member.id)
