"""Service layer for the entity, relationship and transaction engine."""

from .base_service import SessionManagedService
from .entity_service import EntityService
from .identity_service import IdentityService
from .integrity_service import IntegrityService
from .organization_service import OrganizationService
from .relationship_service import RelationshipService
from .transaction_service import TransactionService

__all__ = [
    "SessionManagedService",
    "EntityService",
    "IdentityService",
    "IntegrityService",
    "OrganizationService",
    "RelationshipService",
    "TransactionService",
]
