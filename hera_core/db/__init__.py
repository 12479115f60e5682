"""
SQLAlchemy models and database management for the engine.

This module provides a common entry point for all models.
"""

from .db_base import (
    JSON,
    ActorStampMixin,
    Money,
    OrganizationScopedMixin,
    TimestampMixin,
    UUIDMixin,
    utc_now,
)
from .db_config import (
    Base,
    DatabaseConfig,
    DatabaseManager,
    get_db_manager,
    get_development_config,
    get_production_config,
    import_all_models,
    initialize_db,
    set_db_manager,
)
from .db_entity_models import DynamicField, Entity
from .db_organization_models import Organization
from .db_relationship_models import Relationship
from .db_transaction_models import Transaction, TransactionLine

__all__ = [
    # Base definitions
    "Base",
    "JSON",
    "Money",
    "ActorStampMixin",
    "OrganizationScopedMixin",
    "TimestampMixin",
    "UUIDMixin",
    "utc_now",
    # Configuration
    "DatabaseConfig",
    "DatabaseManager",
    "get_db_manager",
    "set_db_manager",
    "initialize_db",
    "import_all_models",
    "get_production_config",
    "get_development_config",
    # Models
    "Organization",
    "Entity",
    "DynamicField",
    "Relationship",
    "Transaction",
    "TransactionLine",
]
