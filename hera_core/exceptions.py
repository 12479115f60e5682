"""
Consolidated exception system with error codes, context, and correlation support.

Every engine operation either returns a typed result or raises one of the
error kinds defined here. Each error carries its kind, a standardized code,
and the offending field, line or entity reference in its context so callers
can render a precise message.
"""

import threading
import traceback
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

_thread_local = threading.local()


class ErrorCode(str, Enum):
    """Standardized error codes for engine responses."""

    # System errors (1xxx)
    INTERNAL_ERROR = "1000"
    DATABASE_ERROR = "1001"
    CONFIGURATION_ERROR = "1003"

    # Validation errors (2xxx)
    VALIDATION_FAILED = "2000"
    INVALID_FORMAT = "2001"
    MISSING_REQUIRED = "2002"
    TYPE_MISMATCH = "2003"
    RECONCILIATION_FAILED = "2005"

    # Resource errors (3xxx)
    NOT_FOUND = "3000"
    DUPLICATE = "3001"
    CONFLICT = "3002"
    HAS_DEPENDENTS = "3006"

    # Business logic errors (4xxx)
    INVALID_STATE_TRANSITION = "4001"
    PERMISSION_DENIED = "4003"
    ALREADY_REVERSED = "4005"
    GUARDRAIL_VIOLATION = "4006"
    INTEGRITY_VIOLATION = "4007"


class BaseError(Exception):
    """Base exception with context, error codes, logging, and error chaining."""

    kind = "InternalError"

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        cause: Optional[Exception] = None,
        **context: Any,
    ):
        """
        Initialize base error with rich context.

        Args:
            message: Human-readable error message
            error_code: Standardized error code from ErrorCode enum
            status_code: HTTP-style status code for transports that want one
            cause: Original exception that caused this error
            **context: Additional context information
        """
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc).isoformat()
        self.error_id = str(uuid.uuid4())
        self.context = context

        correlation_id = get_correlation_id()
        if correlation_id:
            self.context["correlation_id"] = correlation_id

        self.context["error_id"] = self.error_id

        if cause:
            self.context["cause"] = {
                "type": type(cause).__name__,
                "message": str(cause),
                "traceback": traceback.format_exception(type(cause), cause, cause.__traceback__),
            }

        self._log_error()

        super().__init__(message)

    def _log_error(self) -> None:
        """Log error with appropriate level based on status code."""
        # Lazy import, the logger module imports the context package
        from .utils.logger import get_logger

        logger = get_logger()

        log_data = {
            "error_id": self.error_id,
            "error_kind": self.kind,
            "error_code": self.error_code.value,
            "status_code": self.status_code,
            "error_message": self.message,
            "timestamp": self.timestamp,
            "context": {k: v for k, v in self.context.items() if k not in ["cause", "traceback"]},
        }

        if "correlation_id" in self.context:
            log_data["correlation_id"] = self.context["correlation_id"]

        if self.status_code >= 500:
            logger.error(
                f"Error {self.error_code}: {self.message}", extra=log_data, exc_info=self.cause
            )
        elif self.status_code >= 400:
            logger.warning(f"Client error {self.error_code}: {self.message}", extra=log_data)
        else:
            logger.info(f"Error {self.error_code}: {self.message}", extra=log_data)

    def to_dict(
        self, include_cause: bool = False, include_traceback: bool = False
    ) -> Dict[str, Any]:
        """
        Convert to dict for engine responses.

        Args:
            include_cause: Include cause information (useful for debugging)
            include_traceback: Include full traceback (only in debug mode)

        Returns:
            Dictionary representation suitable for JSON serialization
        """
        result: Dict[str, Any] = {
            "error": {
                "id": self.error_id,
                "kind": self.kind,
                "code": self.error_code.value,
                "message": self.message,
                "timestamp": self.timestamp,
                "context": {
                    k: v
                    for k, v in self.context.items()
                    if k not in ["cause", "error_id", "correlation_id"]
                },
            }
        }

        if "correlation_id" in self.context:
            result["error"]["correlation_id"] = self.context["correlation_id"]

        if include_cause and "cause" in self.context:
            result["error"]["cause"] = {
                "type": self.context["cause"]["type"],
                "message": self.context["cause"]["message"],
            }
            if include_traceback:
                result["error"]["cause"]["traceback"] = self.context["cause"]["traceback"]

        return result

    def add_context(self, **kwargs: Any) -> "BaseError":
        """
        Add additional context to the error (fluent interface).

        Returns:
            Self for method chaining
        """
        self.context.update(kwargs)
        return self

    @property
    def error_chain(self) -> List[Exception]:
        """Get the full chain of errors."""
        chain: List[Exception] = [self]
        current = self.cause
        while current:
            chain.append(current)
            current = getattr(current, "cause", None)
        return chain


class ServiceError(BaseError):
    """Service layer errors that are not one of the caller-facing kinds."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        operation: Optional[str] = None,
        cause: Optional[Exception] = None,
        **context,
    ):
        if operation:
            context["operation"] = operation
        super().__init__(message, error_code, 500, cause, **context)


class ValidationError(BaseError):
    """Malformed smart code, missing required field, or failed reconciliation."""

    kind = "ValidationError"

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        error_code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        cause: Optional[Exception] = None,
        **context,
    ):
        if field:
            context["field"] = field
        super().__init__(message, error_code, 400, cause, **context)

    @property
    def field(self) -> Optional[str]:
        return self.context.get("field")


class NotFoundError(BaseError):
    """
    Referenced id does not exist in the caller's organization.

    A row that exists in another organization raises exactly the same error.
    """

    kind = "NotFound"

    def __init__(self, message: str, cause: Optional[Exception] = None, **context):
        super().__init__(message, ErrorCode.NOT_FOUND, 404, cause, **context)


class ConflictError(BaseError):
    """Write collides with existing state, e.g. a duplicate transaction_code."""

    kind = "Conflict"

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.CONFLICT,
        cause: Optional[Exception] = None,
        **context,
    ):
        super().__init__(message, error_code, 409, cause, **context)


class HasDependentsError(ConflictError):
    """Entity deletion refused because relationships or transactions reference it."""

    kind = "HasDependents"

    def __init__(self, message: str, entity_id: str, **context):
        super().__init__(message, ErrorCode.HAS_DEPENDENTS, entity_id=entity_id, **context)


class AlreadyReversedError(BaseError):
    """Reversal attempted on a transaction that is no longer posted."""

    kind = "AlreadyReversed"

    def __init__(self, transaction_id: str, **context):
        super().__init__(
            f"Transaction already reversed: transaction_id={transaction_id}",
            ErrorCode.ALREADY_REVERSED,
            409,
            transaction_id=transaction_id,
            **context,
        )


class GuardrailViolationError(BaseError):
    """Contextual-consistency rule failed across transaction lines."""

    kind = "GuardrailViolation"

    def __init__(
        self,
        message: str,
        guardrail: str,
        line_index: Optional[int] = None,
        **context,
    ):
        context["guardrail"] = guardrail
        if line_index is not None:
            context["line_index"] = line_index
        super().__init__(message, ErrorCode.GUARDRAIL_VIOLATION, 422, **context)

    @property
    def line_index(self) -> Optional[int]:
        return self.context.get("line_index")


class ForbiddenError(BaseError):
    """Actor lacks the role required for the requested mutation."""

    kind = "Forbidden"

    def __init__(self, message: str, cause: Optional[Exception] = None, **context):
        super().__init__(message, ErrorCode.PERMISSION_DENIED, 403, cause, **context)


class IntegrityViolationError(BaseError):
    """Stored data references a missing or cross-organization entity."""

    kind = "IntegrityViolation"

    def __init__(self, message: str, issues: Optional[List[Dict[str, Any]]] = None, **context):
        context["issues"] = issues or []
        super().__init__(message, ErrorCode.INTEGRITY_VIOLATION, 500, **context)


# Factory functions for common error patterns
def not_found(resource_type: str, cause: Optional[Exception] = None, **identifiers) -> NotFoundError:
    """
    Factory for not found errors.

    Args:
        resource_type: Type of resource (e.g., 'Entity', 'Transaction')
        cause: Original exception if any
        **identifiers: Resource identifiers (e.g., entity_id='123')

    Returns:
        Configured NotFoundError instance
    """
    id_parts = [f"{k}={v}" for k, v in identifiers.items()]
    message = f"{resource_type} not found"
    if id_parts:
        message += f": {', '.join(id_parts)}"

    return NotFoundError(message, cause=cause, resource_type=resource_type, **identifiers)


def duplicate(resource_type: str, cause: Optional[Exception] = None, **identifiers) -> ConflictError:
    """
    Factory for duplicate resource errors.

    Args:
        resource_type: Type of resource (e.g., 'Transaction', 'Organization')
        cause: Original exception if any
        **identifiers: Resource identifiers

    Returns:
        Configured ConflictError instance
    """
    id_parts = [f"{k}={v}" for k, v in identifiers.items()]
    message = f"Duplicate {resource_type}"
    if id_parts:
        message += f": {', '.join(id_parts)}"

    return ConflictError(
        message,
        error_code=ErrorCode.DUPLICATE,
        cause=cause,
        resource_type=resource_type,
        **identifiers,
    )


def validation_failed(
    field: str, value: Any, reason: str, cause: Optional[Exception] = None, **context
) -> ValidationError:
    """
    Factory for validation errors.

    Args:
        field: Field that failed validation
        value: The invalid value
        reason: Why validation failed
        cause: Original exception if any

    Returns:
        Configured ValidationError instance
    """
    return ValidationError(
        f"Validation failed for {field}: {reason}",
        field=field,
        error_code=ErrorCode.VALIDATION_FAILED,
        cause=cause,
        value=str(value),
        reason=reason,
        **context,
    )


def permission_denied(
    action: str, resource: str, cause: Optional[Exception] = None, **context
) -> ForbiddenError:
    """
    Factory for permission denied errors.

    Args:
        action: Action that was denied (e.g., 'onboard', 'install_app')
        resource: Resource being accessed
        cause: Original exception if any
        **context: Additional context

    Returns:
        Configured ForbiddenError instance
    """
    return ForbiddenError(
        f"Permission denied: {action} on {resource}",
        cause=cause,
        action=action,
        resource=resource,
        **context,
    )


# Correlation ID management
def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID for the current thread."""
    _thread_local.correlation_id = correlation_id


def get_correlation_id() -> Optional[str]:
    """Get the current thread's correlation ID."""
    return getattr(_thread_local, "correlation_id", None)


def clear_correlation_id() -> None:
    """Clear the current thread's correlation ID."""
    if hasattr(_thread_local, "correlation_id"):
        delattr(_thread_local, "correlation_id")
