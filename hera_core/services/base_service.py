"""
Base service implementation with common functionality for all services.

Services own (or borrow) one SQLAlchemy session. Every write runs inside
``transaction()``, a SAVEPOINT-backed unit: either everything inside the block
is persisted or nothing is.
"""

from contextlib import contextmanager
from typing import NoReturn, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import get_config
from ..constants import EntityType, Limits, OrganizationStatus
from ..db.db_config import get_db_manager
from ..db.db_entity_models import Entity
from ..db.db_organization_models import Organization
from ..exceptions import (
    BaseError,
    ConflictError,
    ErrorCode,
    ForbiddenError,
    ServiceError,
    ValidationError,
    not_found,
)
from ..utils.logger import ContextAwareLogger, get_logger


class SessionManagedService:
    """
    Service that owns and manages its own database session.

    Pass ``session`` to share one unit of work between services; the service
    then never commits or rolls back on its own.
    """

    def __init__(
        self,
        session: Optional[Session] = None,
        logger: Optional[ContextAwareLogger] = None,
    ):
        if session is not None:
            self.session = session
            self._owns_session = False
        else:
            self.session = self._create_session()
            self._owns_session = True

        self.logger = logger or get_logger()
        self.config = get_config()

    def _create_session(self) -> Session:
        """Create a new session from the global database manager."""
        return get_db_manager().new_session()

    @contextmanager
    def transaction(self):
        """
        Atomic unit for a write.

        An owned session commits when the block exits, so build the result
        inside the block; nothing that can fail may run after the commit.

        Usage:
            with self.transaction():
                self.session.add(row)
                # SAVEPOINT released on success, rolled back on exception;
                # the outer transaction is committed only by the owning service
                return Read.model_validate(row)
        """
        try:
            with self.session.begin_nested():
                yield self.session
            if self._owns_session:
                self.session.commit()
        except IntegrityError as e:
            if self._owns_session:
                self.session.rollback()
            raise ConflictError(
                "Write conflicts with existing data",
                error_code=ErrorCode.CONFLICT,
                cause=e,
                constraint=str(e.orig),
            ) from e
        except Exception:
            if self._owns_session:
                self.session.rollback()
            raise

    def commit(self):
        """Manually commit the current transaction."""
        if self._owns_session:
            self.session.commit()

    def rollback(self):
        """Manually rollback the current transaction."""
        if self._owns_session:
            self.session.rollback()

    def close(self):
        """Close the session if we own it."""
        if self._owns_session and self.session:
            self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            self.rollback()
        else:
            self.commit()
        self.close()

    # ------------------------------------------------------------------
    # Shared guards
    # ------------------------------------------------------------------

    @property
    def platform_organization_id(self) -> str:
        return self.config.identity.platform_organization_id

    def _require_organization(self, org_id: str) -> Organization:
        """
        Resolve an active organization.

        Raises:
            NotFoundError: If the organization does not exist or is suspended
        """
        organization = self.session.get(Organization, org_id)
        if organization is None or organization.status != OrganizationStatus.ACTIVE.value:
            raise not_found("Organization", organization_id=org_id)
        return organization

    def _guard_platform_write(self, org_id: str, entity_type: Optional[str] = None) -> None:
        """Only USER identity anchors may be written into the platform organization."""
        if not self.config.features.enforce_platform_guard:
            return
        if org_id == self.platform_organization_id and entity_type != EntityType.USER.value:
            raise ForbiddenError(
                "Business data cannot be written into the platform organization",
                organization_id=org_id,
                entity_type=entity_type,
            )

    def _require_entity(self, org_id: str, entity_id: str, field: str = "entity_id") -> Entity:
        """
        Resolve an entity inside the organization.

        Raises:
            NotFoundError: If the id is unknown or belongs to another organization
        """
        entity = self.session.execute(
            select(Entity).where(Entity.id == entity_id, Entity.organization_id == org_id)
        ).scalar_one_or_none()
        if entity is None:
            raise not_found("Entity", entity_id=entity_id, field=field)
        return entity

    @staticmethod
    def _page_size(limit: Optional[int]) -> int:
        if limit is None:
            return Limits.DEFAULT_PAGE_SIZE
        if limit < 1:
            raise ValidationError(
                "limit must be at least 1",
                field="limit",
                error_code=ErrorCode.INVALID_FORMAT,
                value=limit,
            )
        return min(limit, Limits.MAX_PAGE_SIZE)

    @staticmethod
    def _offset(offset: Optional[int]) -> int:
        if offset is None:
            return 0
        if offset < 0:
            raise ValidationError(
                "offset must not be negative",
                field="offset",
                error_code=ErrorCode.INVALID_FORMAT,
                value=offset,
            )
        return offset

    def _handle_service_exception(
        self, operation: str, exception: Exception, entity_id: Optional[str] = None
    ) -> NoReturn:
        """
        Re-raise engine errors untouched; wrap anything else in ServiceError.

        Args:
            operation: Operation being performed
            exception: Exception that occurred
            entity_id: Optional ID of the record involved
        """
        if isinstance(exception, BaseError):
            raise exception

        error_msg = f"Error in {operation}: {str(exception)}"
        self.logger.error(
            error_msg,
            extra={
                "operation": operation,
                "entity_id": entity_id,
                "error_type": type(exception).__name__,
                "error_details": str(exception),
            },
        )
        raise ServiceError(
            error_msg,
            error_code=ErrorCode.INTERNAL_ERROR,
            operation=operation,
            entity_id=entity_id,
            cause=exception,
        ) from exception
