"""
Universal entity-relationship-transaction engine.

Every business object is an entity with dynamic fields, every link a typed
relationship, every economic event a transaction with lines. Smart codes
classify all of them and select the posting policy of a transaction.
"""

from .config import AppConfig, get_config, reset_config, set_config
from .engine import Engine, EngineRequest, EngineResponse
from .exceptions import (
    AlreadyReversedError,
    BaseError,
    ConflictError,
    ErrorCode,
    ForbiddenError,
    GuardrailViolationError,
    HasDependentsError,
    IntegrityViolationError,
    NotFoundError,
    ServiceError,
    ValidationError,
)
from .services import (
    EntityService,
    IdentityService,
    IntegrityService,
    OrganizationService,
    RelationshipService,
    TransactionService,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Configuration
    "AppConfig",
    "get_config",
    "set_config",
    "reset_config",
    # Request surface
    "Engine",
    "EngineRequest",
    "EngineResponse",
    # Services
    "EntityService",
    "IdentityService",
    "IntegrityService",
    "OrganizationService",
    "RelationshipService",
    "TransactionService",
    # Errors
    "AlreadyReversedError",
    "BaseError",
    "ConflictError",
    "ErrorCode",
    "ForbiddenError",
    "GuardrailViolationError",
    "HasDependentsError",
    "IntegrityViolationError",
    "NotFoundError",
    "ServiceError",
    "ValidationError",
]
