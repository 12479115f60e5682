"""
Tests for OrganizationService using real implementations (no mocks).
"""

import pytest

from hera_core.constants import EntityType, OrganizationStatus, SmartCodes
from hera_core.db import Entity
from hera_core.exceptions import ConflictError, ErrorCode, NotFoundError, ValidationError
from tests.unit.conftest import CUSTOMER_CODE


class TestProvision:
    """Creating organizations."""

    def test_provision_creates_anchor(self, organization_service, db_session):
        org = organization_service.provision("acme", "Acme Salon", metadata={"plan": "pro"})

        assert org.code == "ACME"
        assert org.is_active
        assert org.metadata == {"plan": "pro"}

        anchor = db_session.get(Entity, org.id)
        assert anchor.entity_type == EntityType.ORGANIZATION.value
        assert anchor.organization_id == org.id
        assert anchor.smart_code == SmartCodes.ORGANIZATION_ANCHOR

    def test_provision_with_explicit_id(self, organization_service):
        org = organization_service.provision(
            "ACME", "Acme", organization_id="7f1c9a52-0000-4000-8000-000000000001"
        )

        assert org.id == "7f1c9a52-0000-4000-8000-000000000001"

    def test_duplicate_code_is_a_conflict(self, organization_service):
        organization_service.provision("ACME", "Acme")

        with pytest.raises(ConflictError) as exc_info:
            organization_service.provision("acme", "Another Acme")

        assert exc_info.value.error_code == ErrorCode.DUPLICATE

    def test_blank_code_is_rejected(self, organization_service):
        with pytest.raises(ValidationError):
            organization_service.provision("", "Nameless")

    def test_unknown_owner_rolls_back_everything(self, organization_service):
        with pytest.raises(NotFoundError):
            organization_service.provision(
                "ACME", "Acme", owner_actor_id="4a0d51c3-0000-4000-8000-000000000000"
            )

        assert organization_service.list() == []


class TestReads:
    """Reading and suspending organizations."""

    def test_platform_organization_is_created_once(self, organization_service):
        first = organization_service.ensure_platform_organization()
        second = organization_service.ensure_platform_organization()

        assert first.id == second.id == organization_service.platform_organization_id
        assert first.code == "PLATFORM"

    def test_get_unknown_is_not_found(self, organization_service):
        with pytest.raises(NotFoundError):
            organization_service.get("4a0d51c3-0000-4000-8000-000000000000")

    def test_list_by_status(self, organization_service, org, other_org):
        organization_service.set_status(other_org.id, OrganizationStatus.SUSPENDED)

        active = organization_service.list(status=OrganizationStatus.ACTIVE.value)
        suspended = organization_service.list(status=OrganizationStatus.SUSPENDED.value)

        assert org.id in [o.id for o in active]
        assert [o.id for o in suspended] == [other_org.id]

    def test_suspended_organization_rejects_writes(
        self, organization_service, entity_service, org
    ):
        organization_service.set_status(org.id, OrganizationStatus.SUSPENDED)

        with pytest.raises(NotFoundError):
            entity_service.upsert(org.id, "CUSTOMER", "Jane", CUSTOMER_CODE)

        assert organization_service.get(org.id).status == OrganizationStatus.SUSPENDED.value
