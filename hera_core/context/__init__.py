"""Context management for operations and organization scoping."""

from .operation_context import OperationContext, operation
from .organization_context import (
    get_current_organization_id,
    organization_context,
    organization_scoped,
    require_organization_id,
)

__all__ = [
    "operation",
    "OperationContext",
    "get_current_organization_id",
    "organization_context",
    "organization_scoped",
    "require_organization_id",
]
