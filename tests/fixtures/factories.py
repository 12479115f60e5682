"""
Factory Boy factories for raw engine rows.

Services are the normal way to create data in tests. These factories write
rows directly, for the states the services refuse to produce: duplicated
relationships, orphaned dynamic fields, edges across organizations.
"""

import factory

from hera_core.constants import EntityStatus, FieldType, OrganizationStatus
from hera_core.db import DynamicField, Entity, Organization, Relationship
from hera_core.db.db_base import utc_now

# ==================== BASE FACTORIES ====================


class BaseFactory(factory.alchemy.SQLAlchemyModelFactory):
    """Base factory with common patterns."""

    class Meta:
        abstract = True
        sqlalchemy_session_persistence = "flush"


# ==================== ORGANIZATION FACTORIES ====================


class OrganizationFactory(BaseFactory):
    """Factory for creating test organizations without an anchor entity."""

    class Meta:
        model = Organization

    id = factory.Faker("uuid4")
    code = factory.Sequence(lambda n: f"ORG{n:04d}")
    name = factory.Faker("company")
    status = OrganizationStatus.ACTIVE.value
    org_metadata = factory.LazyFunction(dict)


# ==================== ENTITY FACTORIES ====================


class EntityFactory(BaseFactory):
    """Factory for creating test entities."""

    class Meta:
        model = Entity

    id = factory.Faker("uuid4")
    organization_id = None
    entity_type = "CUSTOMER"
    entity_name = factory.Faker("name")
    entity_code = factory.Sequence(lambda n: f"CUST-{n:05d}")
    smart_code = "HERA.SALON.CRM.ENTITY.CUSTOMER.V1"
    status = EntityStatus.ACTIVE.value
    entity_metadata = factory.LazyFunction(dict)


class DynamicFieldFactory(BaseFactory):
    """Factory for creating raw dynamic field rows."""

    class Meta:
        model = DynamicField

    id = factory.Faker("uuid4")
    organization_id = None
    entity_id = None
    field_name = factory.Sequence(lambda n: f"field_{n}")
    field_type = FieldType.TEXT.value
    field_value_text = factory.Faker("word")
    smart_code = "HERA.SALON.CRM.DYN.FIELD.V1"


# ==================== RELATIONSHIP FACTORIES ====================


class RelationshipFactory(BaseFactory):
    """Factory for creating raw relationship rows, bypassing the upsert."""

    class Meta:
        model = Relationship

    id = factory.Faker("uuid4")
    organization_id = None
    from_entity_id = None
    to_entity_id = None
    relationship_type = "MEMBER_OF"
    relationship_data = factory.LazyFunction(dict)
    is_active = True
    smart_code = "HERA.PLATFORM.IDENTITY.REL.MEMBER_OF.V1"
    effective_date = factory.LazyFunction(utc_now)


# ==================== FACTORY CONFIGURATION ====================


def configure_factories(session):
    """Configure all factories to use the provided session."""
    factories = [
        OrganizationFactory,
        EntityFactory,
        DynamicFieldFactory,
        RelationshipFactory,
    ]

    for factory_class in factories:
        factory_class._meta.sqlalchemy_session = session
