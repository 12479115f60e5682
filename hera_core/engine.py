"""
Request/response surface over the engine services.

One ``EngineRequest`` names an operation, the acting identity, the target
organization and an operation-specific payload. ``Engine.handle`` runs it in
a single unit of work and always answers with an ``EngineResponse``: either a
JSON-ready ``result`` or the typed error of the failure.
"""

import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .context.operation_context import operation
from .context.organization_context import require_organization_id
from .db.db_config import DatabaseManager, get_db_manager
from .exceptions import (
    BaseError,
    ErrorCode,
    ServiceError,
    ValidationError,
    clear_correlation_id,
    set_correlation_id,
)
from .governance.policies import PolicyRegistry
from .services.entity_service import EntityService
from .services.identity_service import IdentityService
from .services.relationship_service import RelationshipService
from .services.transaction_service import TransactionService
from .utils.json_utils import to_jsonable
from .utils.logger import get_logger


class EngineRequest(BaseModel):
    """One call into the engine."""

    operation: str = Field(description="Operation name, e.g. 'entity.upsert'")
    actor_id: Optional[str] = Field(default=None, description="Acting identity")
    organization_id: Optional[str] = Field(default=None, description="Target organization")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Operation arguments")
    correlation_id: Optional[str] = None


class EngineResponse(BaseModel):
    """Outcome of one engine call."""

    ok: bool
    operation: str
    result: Any = None
    error: Optional[Dict[str, Any]] = None
    duration_ms: Optional[int] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def success_result(cls, operation: str, result: Any, **kwargs) -> "EngineResponse":
        return cls(ok=True, operation=operation, result=result, **kwargs)

    @classmethod
    def failure_result(cls, operation: str, error: BaseError, **kwargs) -> "EngineResponse":
        return cls(ok=False, operation=operation, error=error.to_dict()["error"], **kwargs)


class _Services:
    """Services sharing the request session."""

    def __init__(self, session: Session, policies: Optional[PolicyRegistry]):
        logger = get_logger()
        self.entities = EntityService(session=session, logger=logger)
        self.relationships = RelationshipService(session=session, logger=logger)
        self.transactions = TransactionService(session=session, logger=logger, policies=policies)
        self.identity = IdentityService(session=session, logger=logger)


def _arguments(
    payload: Dict[str, Any], required: Iterable[str] = (), optional: Iterable[str] = ()
) -> Dict[str, Any]:
    """
    Pick the operation's arguments out of the payload.

    Raises:
        ValidationError: A required key is missing or an unknown key is present
    """
    required = tuple(required)
    allowed = set(required) | set(optional)

    unknown = sorted(set(payload) - allowed)
    if unknown:
        raise ValidationError(
            f"Unknown payload field: {unknown[0]}",
            field=f"payload.{unknown[0]}",
            error_code=ErrorCode.VALIDATION_FAILED,
            allowed=sorted(allowed),
        )
    for name in required:
        if payload.get(name) in (None, ""):
            raise ValidationError(
                f"{name} is required",
                field=f"payload.{name}",
                error_code=ErrorCode.MISSING_REQUIRED,
            )
    return dict(payload)


class Engine:
    """
    Dispatches engine requests to services.

    Pass ``session`` to run requests inside a caller-managed transaction;
    otherwise each request gets its own session that is committed on success
    and rolled back on failure.
    """

    def __init__(
        self,
        session: Optional[Session] = None,
        db_manager: Optional[DatabaseManager] = None,
        policies: Optional[PolicyRegistry] = None,
    ):
        self.session = session
        self.db_manager = db_manager
        self.policies = policies
        self.logger = get_logger()
        self._handlers: Dict[str, Callable[[_Services, EngineRequest], Any]] = {
            "entity.upsert": self._entity_upsert,
            "entity.read": self._entity_read,
            "entity.delete": self._entity_delete,
            "relationship.upsert": self._relationship_upsert,
            "relationship.query": self._relationship_query,
            "relationship.deactivate": self._relationship_deactivate,
            "txn.post": self._txn_post,
            "txn.reverse": self._txn_reverse,
            "identity.introspect": self._identity_introspect,
            "identity.onboard": self._identity_onboard,
        }

    @property
    def operations(self) -> List[str]:
        return sorted(self._handlers)

    @operation("engine.handle")
    def handle(self, request: Any) -> EngineResponse:
        """Run one request and describe its outcome."""
        start = time.time()
        if not isinstance(request, EngineRequest):
            request = EngineRequest.model_validate(request)
        if request.correlation_id:
            set_correlation_id(request.correlation_id)

        owns_session = self.session is None
        session = self.session or (self.db_manager or get_db_manager()).new_session()
        try:
            handler = self._handlers.get(request.operation)
            if handler is None:
                raise ValidationError(
                    f"Unknown operation: {request.operation}",
                    field="operation",
                    error_code=ErrorCode.INVALID_FORMAT,
                    allowed=self.operations,
                )

            result = to_jsonable(handler(_Services(session, self.policies), request))
            if owns_session:
                session.commit()
            return EngineResponse.success_result(
                request.operation, result, duration_ms=int((time.time() - start) * 1000)
            )

        except BaseError as e:
            if owns_session:
                session.rollback()
            return EngineResponse.failure_result(
                request.operation, e, duration_ms=int((time.time() - start) * 1000)
            )
        except Exception as e:
            if owns_session:
                session.rollback()
            error = ServiceError(
                f"Unexpected error in {request.operation}: {e}",
                error_code=ErrorCode.INTERNAL_ERROR,
                operation=request.operation,
                cause=e,
            )
            return EngineResponse.failure_result(
                request.operation, error, duration_ms=int((time.time() - start) * 1000)
            )
        finally:
            if owns_session:
                session.close()
            if request.correlation_id:
                clear_correlation_id()

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    @staticmethod
    def _organization(request: EngineRequest) -> str:
        return require_organization_id(request.organization_id)

    def _entity_upsert(self, services: _Services, request: EngineRequest):
        args = _arguments(
            request.payload,
            required=("entity_type", "entity_name", "smart_code"),
            optional=("entity_code", "dynamic_fields", "entity_id", "status", "metadata"),
        )
        return services.entities.upsert(self._organization(request), actor_id=request.actor_id, **args)

    def _entity_read(self, services: _Services, request: EngineRequest):
        args = _arguments(
            request.payload,
            optional=(
                "entity_id",
                "filters",
                "include_dynamic",
                "include_relationships",
                "limit",
                "offset",
            ),
        )
        org_id = self._organization(request)
        entity_id = args.pop("entity_id", None)
        if entity_id:
            return services.entities.get(
                org_id, entity_id, include_relationships=bool(args.get("include_relationships"))
            )
        return services.entities.read(org_id, **args)

    def _entity_delete(self, services: _Services, request: EngineRequest):
        args = _arguments(request.payload, required=("entity_id",))
        services.entities.delete(self._organization(request), args["entity_id"])
        return {"deleted": True, "entity_id": args["entity_id"]}

    def _relationship_upsert(self, services: _Services, request: EngineRequest):
        args = _arguments(
            request.payload,
            required=("from_entity_id", "to_entity_id", "relationship_type", "smart_code"),
            optional=("relationship_data", "effective_date", "expiration_date"),
        )
        return services.relationships.upsert(
            self._organization(request), actor_id=request.actor_id, **args
        )

    def _relationship_query(self, services: _Services, request: EngineRequest):
        args = _arguments(
            request.payload,
            optional=("from_entity_id", "to_entity_id", "relationship_type", "active", "limit", "cursor"),
        )
        return services.relationships.query(self._organization(request), **args)

    def _relationship_deactivate(self, services: _Services, request: EngineRequest):
        args = _arguments(request.payload, required=("relationship_id",))
        return services.relationships.deactivate(
            self._organization(request), args["relationship_id"], actor_id=request.actor_id
        )

    def _txn_post(self, services: _Services, request: EngineRequest):
        args = _arguments(request.payload, required=("header",), optional=("lines",))
        return services.transactions.post(
            self._organization(request), args["header"], args.get("lines"), actor_id=request.actor_id
        )

    def _txn_reverse(self, services: _Services, request: EngineRequest):
        args = _arguments(
            request.payload, required=("transaction_id", "reason", "reversal_smart_code")
        )
        return services.transactions.reverse(
            self._organization(request),
            args["transaction_id"],
            args["reason"],
            args["reversal_smart_code"],
            actor_id=request.actor_id,
        )

    def _identity_introspect(self, services: _Services, request: EngineRequest):
        args = _arguments(request.payload, optional=("actor_id",))
        actor_id = args.get("actor_id") or request.actor_id
        if not actor_id:
            raise ValidationError(
                "actor_id is required", field="actor_id", error_code=ErrorCode.MISSING_REQUIRED
            )
        return services.identity.introspect(actor_id)

    def _identity_onboard(self, services: _Services, request: EngineRequest):
        args = _arguments(request.payload, required=("actor_id", "role"))
        return services.identity.onboard(
            args["actor_id"], self._organization(request), args["role"], requested_by=request.actor_id
        )
