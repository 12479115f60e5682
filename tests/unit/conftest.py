"""
Unit test conftest.py - Service fixtures and provisioned organizations.

Services share the test session. The standard scenario is one registered
actor owning organization ACME, plus a second organization GLOBEX used to
prove tenant isolation.
"""

import pytest

from hera_core.services import (
    EntityService,
    IdentityService,
    IntegrityService,
    OrganizationService,
    RelationshipService,
    TransactionService,
)

CUSTOMER_CODE = "HERA.SALON.CRM.ENTITY.CUSTOMER.V1"
SERVICE_CODE = "HERA.SALON.CATALOG.ENTITY.SERVICE.V1"
STYLIST_CODE = "HERA.SALON.HR.ENTITY.STYLIST.V1"
ASSIGNED_TO_CODE = "HERA.SALON.HR.REL.ASSIGNED_TO.V1"
SALE_CODE = "HERA.SALON.POS.TXN.SALE.V1"
SALE_LINE_CODE = "HERA.SALON.POS.LINE.SERVICE.V1"
JOURNAL_CODE = "HERA.FIN.GL.TXN.JOURNAL.V1"
JOURNAL_LINE_CODE = "HERA.FIN.GL.LINE.POSTING.V1"
REVERSAL_CODE = "HERA.SALON.POS.TXN.REVERSAL.V1"


# ==================== SERVICE FIXTURES ====================


@pytest.fixture(scope="function")
def organization_service(db_session):
    """Organization service with test session."""
    return OrganizationService(session=db_session)


@pytest.fixture(scope="function")
def entity_service(db_session):
    """Entity service with test session."""
    return EntityService(session=db_session)


@pytest.fixture(scope="function")
def relationship_service(db_session):
    """Relationship service with test session."""
    return RelationshipService(session=db_session)


@pytest.fixture(scope="function")
def transaction_service(db_session):
    """Transaction service with test session."""
    return TransactionService(session=db_session)


@pytest.fixture(scope="function")
def identity_service(db_session):
    """Identity service with test session."""
    return IdentityService(session=db_session)


@pytest.fixture(scope="function")
def integrity_service(db_session):
    """Integrity service with test session."""
    return IntegrityService(session=db_session)


# ==================== SCENARIO FIXTURES ====================


@pytest.fixture(scope="function")
def owner(identity_service):
    """Registered actor that owns the test organization."""
    return identity_service.register_actor("Olivia Owner", email="olivia@acme.test")


@pytest.fixture(scope="function")
def org(organization_service, owner):
    """Organization ACME owned by ``owner``."""
    return organization_service.provision("ACME", "Acme Salon", owner_actor_id=owner.id)


@pytest.fixture(scope="function")
def other_org(organization_service):
    """Second organization for isolation checks."""
    return organization_service.provision("GLOBEX", "Globex Spa")


@pytest.fixture(scope="function")
def customer(entity_service, org, owner):
    """Customer entity in ACME with two dynamic fields."""
    return entity_service.upsert(
        org.id,
        "customer",
        "Jane Doe",
        CUSTOMER_CODE,
        entity_code="CUST-001",
        dynamic_fields=[
            {"field_name": "email", "value": "jane@example.com"},
            {"field_name": "visits", "value": 3},
        ],
        actor_id=owner.id,
    )


@pytest.fixture(scope="function")
def sale_header():
    """Header of a branch-guarded POS sale."""
    return {
        "transaction_type": "POS_SALE",
        "smart_code": SALE_CODE,
        "currency": "usd",
        "metadata": {"branch_id": "BR-1"},
    }


@pytest.fixture(scope="function")
def sale_lines():
    """Two service lines of the BR-1 branch."""
    return [
        {
            "smart_code": SALE_LINE_CODE,
            "line_type": "service",
            "quantity": "1",
            "unit_amount": "45.00",
            "line_data": {"branch_id": "BR-1"},
        },
        {
            "smart_code": SALE_LINE_CODE,
            "line_type": "service",
            "line_amount": "30.00",
            "line_data": {"branch_id": "BR-1"},
        },
    ]
