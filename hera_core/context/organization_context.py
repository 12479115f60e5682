"""
Organization scoping for engine operations.

The organization id is always an explicit argument of every service call.
This module validates it and binds it to a context variable for the duration
of the call so log records can be stamped with it; nothing reads the context
variable to decide which rows a query may touch.
"""

from contextlib import contextmanager
from contextvars import ContextVar
from functools import wraps
from typing import Any, Callable, Generator, Optional, TypeVar, cast

from ..exceptions import ErrorCode, ValidationError

_current_organization_id: ContextVar[Optional[str]] = ContextVar(
    "hera_organization_id", default=None
)

F = TypeVar("F", bound=Callable[..., Any])


def require_organization_id(organization_id: Any) -> str:
    """
    Validate an explicit organization id.

    Raises:
        ValidationError: If the id is missing or blank
    """
    if not organization_id or not isinstance(organization_id, str) or not organization_id.strip():
        raise ValidationError(
            "organization_id must be a non-empty string",
            error_code=ErrorCode.MISSING_REQUIRED,
            field="organization_id",
        )
    return organization_id.strip()


def get_current_organization_id() -> Optional[str]:
    """Organization bound for logging, or None outside a scoped call."""
    return _current_organization_id.get()


@contextmanager
def organization_context(organization_id: str) -> Generator[str, None, None]:
    """
    Bind an organization id for log stamping while the block runs.

    Nested blocks restore the outer organization on exit.
    """
    organization_id = require_organization_id(organization_id)
    token = _current_organization_id.set(organization_id)
    try:
        yield organization_id
    finally:
        _current_organization_id.reset(token)


def organization_scoped(func: F) -> F:
    """
    Decorator for service methods whose first argument is ``org_id``.

    Validates the id and binds it for logging during the call.
    """

    @wraps(func)
    def wrapper(self, org_id, *args, **kwargs):
        with organization_context(org_id) as organization_id:
            return func(self, organization_id, *args, **kwargs)

    return cast(F, wrapper)
