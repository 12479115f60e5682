"""
Constants and enums for the HERA core engine.

This module centralizes all magic strings and constants used throughout
the engine to ensure consistency and maintainability.
"""

from decimal import Decimal
from enum import Enum

# Well-known organization that holds global identity anchors (USER entities)
PLATFORM_ORGANIZATION_ID = "00000000-0000-0000-0000-000000000000"
PLATFORM_ORGANIZATION_CODE = "PLATFORM"

SMART_CODE_PREFIX = "HERA"


class OrganizationStatus(str, Enum):
    """Lifecycle states of an organization."""

    ACTIVE = "active"
    SUSPENDED = "suspended"


class EntityStatus(str, Enum):
    """Lifecycle states of an entity."""

    ACTIVE = "active"
    ARCHIVED = "archived"


class TransactionStatus(str, Enum):
    """Transaction state machine: draft -> posted -> reversed."""

    DRAFT = "draft"
    POSTED = "posted"
    REVERSED = "reversed"


class FieldType(str, Enum):
    """Storage type of a dynamic field value."""

    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    JSON = "json"


class EntityType(str, Enum):
    """Entity types the engine itself relies on."""

    USER = "USER"
    ORGANIZATION = "ORGANIZATION"
    ROLE = "ROLE"
    APP = "APP"


class RelationshipType(str, Enum):
    """Relationship types walked by the identity resolver."""

    MEMBER_OF = "MEMBER_OF"
    HAS_ROLE = "HAS_ROLE"
    ORG_HAS_APP = "ORG_HAS_APP"


class LineSide(str, Enum):
    """Side of a general-ledger line."""

    DEBIT = "DR"
    CREDIT = "CR"


class Role(str, Enum):
    """Membership roles."""

    OWNER = "owner"
    ADMIN = "admin"
    MANAGER = "manager"
    MEMBER = "member"
    VIEWER = "viewer"


# Roles allowed to mutate memberships and app installs
ELEVATED_ROLES = frozenset({Role.OWNER.value, Role.ADMIN.value})


class SmartCodes:
    """Smart codes the engine writes on its own behalf."""

    ORGANIZATION_ANCHOR = "HERA.PLATFORM.ORG.ENTITY.ANCHOR.V1"
    USER_ANCHOR = "HERA.PLATFORM.IDENTITY.ENTITY.USER.V1"
    ROLE = "HERA.PLATFORM.IDENTITY.ENTITY.ROLE.V1"
    APP = "HERA.PLATFORM.APP.ENTITY.APP.V1"
    MEMBER_OF = "HERA.PLATFORM.IDENTITY.REL.MEMBER_OF.V1"
    HAS_ROLE = "HERA.PLATFORM.IDENTITY.REL.HAS_ROLE.V1"
    ORG_HAS_APP = "HERA.PLATFORM.APP.REL.ORG_HAS_APP.V1"


class LogLevel(str, Enum):
    """Standard logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class EnvironmentVariable(str, Enum):
    """Standard environment variable names."""

    AZURE_STORAGE_CONNECTION = "AzureWebJobsStorage"
    DATABASE_URL = "DATABASE_URL"
    APP_ENV = "APP_ENV"
    LOG_LEVEL = "LOG_LEVEL"
    LOG_QUEUE_NAME = "LOG_QUEUE_NAME"
    DEBUG = "DEBUG"
    PLATFORM_ORGANIZATION_ID = "HERA_PLATFORM_ORGANIZATION_ID"
    BALANCE_TOLERANCE = "HERA_BALANCE_TOLERANCE"


class LogContextKey(str, Enum):
    """Standard keys for logging context."""

    OPERATION_ID = "operation_id"
    CORRELATION_ID = "correlation_id"
    ORGANIZATION_ID = "organization_id"
    ACTOR_ID = "actor_id"
    ENTITY_ID = "entity_id"
    TRANSACTION_ID = "transaction_id"
    DURATION_MS = "duration_ms"
    STATUS = "status"
    ERROR_CODE = "error_code"
    OPERATION = "operation"


# Numeric constants
class Limits:
    """System limits and thresholds."""

    DEFAULT_PAGE_SIZE = 50
    MAX_PAGE_SIZE = 500
    MAX_TRANSACTION_LINES = 1000
    MAX_DYNAMIC_FIELDS = 200
    MAX_FIELD_NAME_LENGTH = 100
    MAX_CODE_LENGTH = 100
    MAX_NAME_LENGTH = 255


class Ledger:
    """Ledger reconciliation constants."""

    AMOUNT_PRECISION = 18
    AMOUNT_SCALE = 4
    BALANCE_TOLERANCE = Decimal("0.01")
    DEFAULT_CURRENCY = "USD"
    REVERSAL_CODE_SUFFIX = "-REV"
