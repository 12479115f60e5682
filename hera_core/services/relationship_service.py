"""
Relationship graph with idempotent natural-key upserts.

``upsert`` is a single INSERT ... ON CONFLICT DO UPDATE against the unique
index on (organization, from, to, type): an active row is updated in place,
an inactive one is reactivated, and a new row is created only when none
exists. Concurrent callers cannot produce two rows for one key.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Union

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import aliased

from ..constants import EntityType
from ..context.operation_context import operation
from ..context.organization_context import organization_scoped
from ..db.db_base import new_id, utc_now
from ..db.db_entity_models import Entity
from ..db.db_relationship_models import NATURAL_KEY, Relationship
from ..db.upsert import upsert_statement
from ..exceptions import BaseError, ErrorCode, ValidationError, not_found
from ..governance.smart_code import validate_smart_code
from ..schemas.relationship_schema import (
    EntityProjection,
    RelationshipPage,
    RelationshipRead,
    RelationshipUpsert,
)
from ..schemas.validation import parse_input
from .base_service import SessionManagedService

_UPSERT_UPDATE_COLUMNS = (
    "relationship_data",
    "is_active",
    "smart_code",
    "effective_date",
    "expiration_date",
    "updated_by",
    "updated_at",
)


class RelationshipService(SessionManagedService):
    """Create, query and deactivate typed edges between entities."""

    @operation()
    @organization_scoped
    def upsert(
        self,
        org_id: str,
        from_entity_id: str,
        to_entity_id: str,
        relationship_type: str,
        smart_code: str,
        relationship_data: Optional[Dict[str, Any]] = None,
        effective_date: Optional[datetime] = None,
        expiration_date: Optional[datetime] = None,
        actor_id: Optional[str] = None,
    ) -> RelationshipRead:
        """
        Create, update or reactivate the edge identified by its natural key.

        Raises:
            ValidationError: Invalid smart code or missing endpoint/type
            NotFoundError: An endpoint is not an entity of this organization
                (platform USER entities are accepted)
            ForbiddenError: Edge written into the platform organization
        """
        self._require_organization(org_id)
        data = parse_input(
            RelationshipUpsert,
            {
                "from_entity_id": from_entity_id,
                "to_entity_id": to_entity_id,
                "relationship_type": relationship_type,
                "smart_code": smart_code,
                "relationship_data": relationship_data if relationship_data is not None else {},
                "effective_date": effective_date,
                "expiration_date": expiration_date,
            },
        )
        canonical_code = validate_smart_code(data.smart_code).code
        self._guard_platform_write(org_id)

        if data.expiration_date and data.effective_date and data.expiration_date < data.effective_date:
            raise ValidationError(
                "expiration_date must not be before effective_date",
                field="expiration_date",
                error_code=ErrorCode.VALIDATION_FAILED,
            )

        self._require_endpoint(org_id, data.from_entity_id, "from_entity_id")
        self._require_endpoint(org_id, data.to_entity_id, "to_entity_id")

        update_columns = _UPSERT_UPDATE_COLUMNS
        if relationship_data is None:
            # Re-upserting without data keeps what is stored
            update_columns = tuple(c for c in update_columns if c != "relationship_data")

        try:
            with self.transaction():
                self.session.flush()
                now = utc_now()
                stmt = upsert_statement(
                    self.session,
                    Relationship,
                    {
                        "id": new_id(),
                        "organization_id": org_id,
                        "from_entity_id": data.from_entity_id,
                        "to_entity_id": data.to_entity_id,
                        "relationship_type": data.relationship_type,
                        "relationship_data": data.relationship_data,
                        "is_active": True,
                        "smart_code": canonical_code,
                        "effective_date": data.effective_date or now,
                        "expiration_date": data.expiration_date,
                        "created_by": actor_id,
                        "updated_by": actor_id,
                        "created_at": now,
                        "updated_at": now,
                    },
                    index_elements=NATURAL_KEY,
                    update_columns=update_columns,
                )
                relationship_id = self.session.execute(stmt).scalar_one()

                self.logger.info(
                    "Upserted relationship",
                    extra={
                        "relationship_id": relationship_id,
                        "relationship_type": data.relationship_type,
                        "from_entity_id": data.from_entity_id,
                        "to_entity_id": data.to_entity_id,
                    },
                )
                return self._fetch(org_id, relationship_id)

        except BaseError:
            raise
        except Exception as e:
            self._handle_service_exception("upsert", e)

    def _require_endpoint(self, org_id: str, entity_id: str, field: str) -> Entity:
        """An entity of the organization, or a global USER anchor."""
        entity = self.session.execute(
            select(Entity).where(
                Entity.id == entity_id,
                or_(
                    Entity.organization_id == org_id,
                    and_(
                        Entity.organization_id == self.platform_organization_id,
                        Entity.entity_type == EntityType.USER.value,
                    ),
                ),
            )
        ).scalar_one_or_none()
        if entity is None:
            raise not_found("Entity", entity_id=entity_id, field=field)
        return entity

    def _projection_query(self):
        from_entity = aliased(Entity)
        to_entity = aliased(Entity)
        return (
            select(Relationship, from_entity, to_entity)
            .outerjoin(from_entity, from_entity.id == Relationship.from_entity_id)
            .outerjoin(to_entity, to_entity.id == Relationship.to_entity_id)
            .execution_options(populate_existing=True)
        )

    @staticmethod
    def _to_read(relationship: Relationship, from_entity, to_entity) -> RelationshipRead:
        result = RelationshipRead.model_validate(relationship)
        if from_entity is not None:
            result.from_entity = EntityProjection.model_validate(from_entity)
        if to_entity is not None:
            result.to_entity = EntityProjection.model_validate(to_entity)
        return result

    def _fetch(self, org_id: str, relationship_id: str) -> RelationshipRead:
        row = self.session.execute(
            self._projection_query().where(
                Relationship.id == relationship_id, Relationship.organization_id == org_id
            )
        ).first()
        if row is None:
            raise not_found("Relationship", relationship_id=relationship_id)
        return self._to_read(*row)

    @operation()
    @organization_scoped
    def get(self, org_id: str, relationship_id: str) -> RelationshipRead:
        """
        Get one edge with its endpoint projections.

        Raises:
            NotFoundError: If the relationship is not in this organization
        """
        return self._fetch(org_id, relationship_id)

    @operation()
    @organization_scoped
    def query(
        self,
        org_id: str,
        from_entity_id: Optional[str] = None,
        to_entity_id: Optional[str] = None,
        relationship_type: Union[str, Sequence[str], None] = None,
        active: Optional[bool] = True,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> RelationshipPage:
        """
        Page through edges ordered by id.

        Args:
            org_id: Organization to query
            from_entity_id: Only edges leaving this entity
            to_entity_id: Only edges entering this entity
            relationship_type: One type or a list of types
            active: True for active edges, False for inactive, None for both
            limit: Page size
            cursor: ``next_cursor`` of the previous page
        """
        self._require_organization(org_id)
        page_size = self._page_size(limit)

        stmt = self._projection_query().where(Relationship.organization_id == org_id)
        if from_entity_id:
            stmt = stmt.where(Relationship.from_entity_id == from_entity_id)
        if to_entity_id:
            stmt = stmt.where(Relationship.to_entity_id == to_entity_id)
        if relationship_type:
            types: List[str] = (
                [relationship_type] if isinstance(relationship_type, str) else list(relationship_type)
            )
            stmt = stmt.where(Relationship.relationship_type.in_([t.upper() for t in types]))
        if active is not None:
            stmt = stmt.where(Relationship.is_active.is_(active))
        if cursor:
            stmt = stmt.where(Relationship.id > cursor)

        rows = self.session.execute(stmt.order_by(Relationship.id).limit(page_size + 1)).all()
        items = [self._to_read(*row) for row in rows[:page_size]]
        next_cursor = items[-1].id if len(rows) > page_size else None
        return RelationshipPage(items=items, next_cursor=next_cursor)

    @operation()
    @organization_scoped
    def deactivate(
        self, org_id: str, relationship_id: str, actor_id: Optional[str] = None
    ) -> RelationshipRead:
        """
        Soft-remove an edge; a later upsert of the same key reactivates it.

        Raises:
            NotFoundError: If the relationship is not in this organization
        """
        relationship = self.session.execute(
            select(Relationship).where(
                Relationship.id == relationship_id, Relationship.organization_id == org_id
            )
        ).scalar_one_or_none()
        if relationship is None:
            raise not_found("Relationship", relationship_id=relationship_id)

        with self.transaction():
            relationship.is_active = False
            relationship.expiration_date = utc_now()
            relationship.updated_by = actor_id
            self.logger.info("Deactivated relationship", extra={"relationship_id": relationship_id})
            return self._fetch(org_id, relationship_id)

    def deactivate_where(
        self,
        org_id: str,
        from_entity_id: str,
        relationship_type: str,
        keep_to_entity_id: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> List[str]:
        """Deactivate active edges of one type leaving an entity, except the kept target."""
        stmt = select(Relationship).where(
            Relationship.organization_id == org_id,
            Relationship.from_entity_id == from_entity_id,
            Relationship.relationship_type == relationship_type,
            Relationship.is_active.is_(True),
        )
        if keep_to_entity_id:
            stmt = stmt.where(Relationship.to_entity_id != keep_to_entity_id)

        deactivated = []
        with self.transaction():
            for relationship in self.session.execute(stmt).scalars():
                relationship.is_active = False
                relationship.expiration_date = utc_now()
                relationship.updated_by = actor_id
                deactivated.append(relationship.id)
        return deactivated
