from .entity_schema import (
    DynamicFieldInput,
    DynamicFieldRead,
    EntityFilter,
    EntityRead,
    EntityRelationships,
    EntityUpsert,
)
from .identity_schema import AppSummary, IdentityContext, Membership, OrganizationMembership
from .integrity_schema import IntegrityIssue, IntegrityReport, RepairResult
from .organization_schema import OrganizationCreate, OrganizationRead
from .relationship_schema import (
    EntityProjection,
    RelationshipPage,
    RelationshipRead,
    RelationshipUpsert,
)
from .transaction_schema import (
    ReversalResult,
    TransactionFilter,
    TransactionHeaderInput,
    TransactionLineInput,
    TransactionLineRead,
    TransactionRead,
)
from .validation import parse_input

__all__ = [
    "AppSummary",
    "DynamicFieldInput",
    "DynamicFieldRead",
    "EntityFilter",
    "EntityProjection",
    "EntityRead",
    "EntityRelationships",
    "EntityUpsert",
    "IdentityContext",
    "IntegrityIssue",
    "IntegrityReport",
    "Membership",
    "OrganizationCreate",
    "OrganizationMembership",
    "OrganizationRead",
    "RelationshipPage",
    "RelationshipRead",
    "RelationshipUpsert",
    "RepairResult",
    "ReversalResult",
    "TransactionFilter",
    "TransactionHeaderInput",
    "TransactionLineInput",
    "TransactionLineRead",
    "TransactionRead",
    "parse_input",
]
