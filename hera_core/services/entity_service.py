"""
Entity store with direct SQLAlchemy access.

Entities and their dynamic fields are always written together in one atomic
unit. Dynamic fields merge per field name: writing ``price`` never touches
``color``.
"""

import math
from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func, or_, select

from ..constants import EntityStatus, FieldType
from ..context.operation_context import operation
from ..context.organization_context import organization_scoped
from ..db.db_base import new_id, utc_now
from ..db.db_entity_models import VALUE_COLUMNS, DynamicField, Entity
from ..db.db_relationship_models import Relationship
from ..db.db_transaction_models import Transaction, TransactionLine
from ..db.upsert import upsert_statement
from ..exceptions import (
    BaseError,
    ErrorCode,
    HasDependentsError,
    IntegrityViolationError,
    ValidationError,
)
from ..governance.smart_code import validate_smart_code
from ..schemas.entity_schema import (
    DynamicFieldInput,
    DynamicFieldRead,
    EntityFilter,
    EntityRead,
    EntityRelationships,
    EntityUpsert,
)
from ..schemas.relationship_schema import RelationshipRead
from ..schemas.validation import parse_input
from .base_service import SessionManagedService

_DYNAMIC_UPDATE_COLUMNS = (
    "field_type",
    *VALUE_COLUMNS.values(),
    "smart_code",
    "updated_by",
    "updated_at",
)


def infer_field_type(value: Any) -> Optional[FieldType]:
    """Storage type for a Python value, or None when it has no natural type."""
    if isinstance(value, bool):
        return FieldType.BOOLEAN
    if isinstance(value, (int, float, Decimal)):
        return FieldType.NUMBER
    if isinstance(value, (datetime, date)):
        return FieldType.DATE
    if isinstance(value, (dict, list)):
        return FieldType.JSON
    if isinstance(value, str):
        return FieldType.TEXT
    return None


def coerce_field_value(field_type: FieldType, value: Any) -> Any:
    """
    Convert ``value`` to the storage form of ``field_type``.

    Raises:
        ValueError: If the value cannot be stored as that type
    """
    if value is None:
        raise ValueError("value is required")

    if field_type == FieldType.TEXT:
        if not isinstance(value, str):
            raise ValueError(f"expected text, got {type(value).__name__}")
        return value

    if field_type == FieldType.NUMBER:
        if isinstance(value, bool):
            raise ValueError("expected number, got bool")
        try:
            number = Decimal(str(value)) if not isinstance(value, Decimal) else value
        except InvalidOperation:
            raise ValueError(f"expected number, got {value!r}")
        if not number.is_finite():
            raise ValueError("number must be finite")
        return number

    if field_type == FieldType.BOOLEAN:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "false"):
            return value.strip().lower() == "true"
        raise ValueError(f"expected boolean, got {value!r}")

    if field_type == FieldType.DATE:
        if isinstance(value, datetime):
            return value
        if isinstance(value, date):
            return datetime.combine(value, time.min, tzinfo=timezone.utc)
        if isinstance(value, str):
            try:
                return datetime.fromisoformat(value)
            except ValueError:
                raise ValueError(f"expected ISO date, got {value!r}")
        raise ValueError(f"expected date, got {type(value).__name__}")

    if field_type == FieldType.JSON:
        if isinstance(value, float) and not math.isfinite(value):
            raise ValueError("JSON numbers must be finite")
        if not isinstance(value, (dict, list, str, int, float, bool)):
            raise ValueError(f"expected JSON value, got {type(value).__name__}")
        return value

    raise ValueError(f"unknown field type {field_type!r}")


class EntityService(SessionManagedService):
    """Create, read, archive and delete entities with their dynamic fields."""

    @operation()
    @organization_scoped
    def upsert(
        self,
        org_id: str,
        entity_type: str,
        entity_name: str,
        smart_code: str,
        entity_code: Optional[str] = None,
        dynamic_fields: Optional[Sequence[Any]] = None,
        entity_id: Optional[str] = None,
        status: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        actor_id: Optional[str] = None,
    ) -> EntityRead:
        """
        Create an entity, or update one and merge its dynamic fields.

        Args:
            org_id: Owning organization
            entity_type: Free-form type tag (stored upper-case)
            entity_name: Display name
            smart_code: Smart code of the entity; also the default for its fields
            entity_code: Human-readable code
            dynamic_fields: Field dicts ``{field_name, value, field_type?, smart_code?}``
            entity_id: Update this entity instead of creating one
            status: ``active`` or ``archived``
            metadata: Replaces the stored metadata when given
            actor_id: Stamped as created_by/updated_by

        Raises:
            ValidationError: Invalid smart code, missing type/name or bad field value
            NotFoundError: ``entity_id`` is not an entity of this organization
            ForbiddenError: Business entity written into the platform organization
        """
        self._require_organization(org_id)

        data = parse_input(
            EntityUpsert,
            {
                "entity_type": entity_type,
                "entity_name": entity_name,
                "smart_code": smart_code,
                "entity_code": entity_code,
                "dynamic_fields": list(dynamic_fields or []),
                "entity_id": entity_id,
                "status": status,
                "metadata": metadata,
            },
        )
        entity_smart_code = validate_smart_code(data.smart_code).code
        fields = self._prepare_fields(data.dynamic_fields, entity_smart_code)

        self._guard_platform_write(org_id, data.entity_type)

        try:
            with self.transaction():
                if data.entity_id:
                    entity = self._require_entity(org_id, data.entity_id)
                    entity.entity_type = data.entity_type
                    entity.entity_name = data.entity_name
                    entity.smart_code = entity_smart_code
                    if data.entity_code is not None:
                        entity.entity_code = data.entity_code
                    if data.status is not None:
                        entity.status = data.status.value
                    if data.metadata is not None:
                        entity.entity_metadata = data.metadata
                    entity.updated_by = actor_id
                else:
                    entity = Entity(
                        id=new_id(),
                        organization_id=org_id,
                        entity_type=data.entity_type,
                        entity_name=data.entity_name,
                        entity_code=data.entity_code,
                        smart_code=entity_smart_code,
                        status=(data.status or EntityStatus.ACTIVE).value,
                        entity_metadata=data.metadata or {},
                        created_by=actor_id,
                        updated_by=actor_id,
                    )
                    self.session.add(entity)
                self.session.flush()

                self._write_fields(org_id, entity.id, fields, actor_id)

                self.logger.info(
                    "Upserted entity",
                    extra={
                        "entity_id": entity.id,
                        "entity_type": entity.entity_type,
                        "dynamic_fields": len(fields),
                        "is_new": not data.entity_id,
                    },
                )
                return self._load(org_id, [entity], include_dynamic=True)[0]

        except BaseError:
            raise
        except Exception as e:
            self._handle_service_exception("upsert", e, entity_id)

    def _prepare_fields(
        self, fields: List[DynamicFieldInput], default_smart_code: str
    ) -> List[Tuple[str, FieldType, Any, str]]:
        """Validate field values and smart codes before anything is written."""
        prepared = []
        seen = set()
        for index, field in enumerate(fields):
            prefix = f"dynamic_fields[{index}]"
            if field.field_name in seen:
                raise ValidationError(
                    f"Duplicate dynamic field {field.field_name!r}",
                    field=f"{prefix}.field_name",
                    error_code=ErrorCode.VALIDATION_FAILED,
                )
            seen.add(field.field_name)

            field_type = field.field_type or infer_field_type(field.value)
            if field_type is None:
                raise ValidationError(
                    f"Cannot infer type of dynamic field {field.field_name!r}",
                    field=f"{prefix}.value",
                    error_code=ErrorCode.TYPE_MISMATCH,
                )
            try:
                value = coerce_field_value(field_type, field.value)
            except ValueError as e:
                raise ValidationError(
                    f"Invalid value for dynamic field {field.field_name!r}: {e}",
                    field=f"{prefix}.value",
                    error_code=ErrorCode.TYPE_MISMATCH,
                    field_type=field_type.value,
                ) from e

            smart_code = validate_smart_code(
                field.smart_code or default_smart_code, field=f"{prefix}.smart_code"
            ).code
            prepared.append((field.field_name, field_type, value, smart_code))
        return prepared

    def _write_fields(
        self,
        org_id: str,
        entity_id: str,
        fields: List[Tuple[str, FieldType, Any, str]],
        actor_id: Optional[str],
    ) -> None:
        for field_name, field_type, value, smart_code in fields:
            now = utc_now()
            values = {
                "id": new_id(),
                "organization_id": org_id,
                "entity_id": entity_id,
                "field_name": field_name,
                "field_type": field_type.value,
                "smart_code": smart_code,
                "created_by": actor_id,
                "updated_by": actor_id,
                "created_at": now,
                "updated_at": now,
            }
            for type_name, column in VALUE_COLUMNS.items():
                values[column] = value if type_name == field_type.value else None

            self.session.execute(
                upsert_statement(
                    self.session,
                    DynamicField,
                    values,
                    index_elements=("organization_id", "entity_id", "field_name"),
                    update_columns=_DYNAMIC_UPDATE_COLUMNS,
                )
            )

    @operation()
    @organization_scoped
    def read(
        self,
        org_id: str,
        filters: Optional[Dict[str, Any]] = None,
        include_dynamic: bool = False,
        include_relationships: bool = False,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[EntityRead]:
        """
        Read entities of one organization.

        Args:
            org_id: Organization to read from; no other organization is visible
            filters: Any of ``entity_type``, ``id``, ``status``, ``entity_code``, ``smart_code``
            include_dynamic: Attach dynamic fields
            include_relationships: Attach active incoming and outgoing edges
            limit: Page size
            offset: Rows to skip

        Raises:
            IntegrityViolationError: A dynamic field row of another organization
                points at one of the returned entities
        """
        self._require_organization(org_id)
        criteria = parse_input(EntityFilter, filters or {}, field_prefix="filters")

        stmt = select(Entity).where(Entity.organization_id == org_id)
        if criteria.id:
            stmt = stmt.where(Entity.id == criteria.id)
        if criteria.entity_type:
            stmt = stmt.where(Entity.entity_type == criteria.entity_type)
        if criteria.status:
            stmt = stmt.where(Entity.status == criteria.status.value)
        if criteria.entity_code:
            stmt = stmt.where(Entity.entity_code == criteria.entity_code)
        if criteria.smart_code:
            stmt = stmt.where(Entity.smart_code == criteria.smart_code)

        stmt = (
            stmt.order_by(Entity.created_at, Entity.id)
            .offset(self._offset(offset))
            .limit(self._page_size(limit))
        )
        entities = list(self.session.execute(stmt).scalars())
        return self._load(org_id, entities, include_dynamic, include_relationships)

    @operation()
    @organization_scoped
    def get(self, org_id: str, entity_id: str, include_relationships: bool = False) -> EntityRead:
        """
        Get one entity with its dynamic fields.

        Raises:
            NotFoundError: If the entity is not in this organization
        """
        entity = self._require_entity(org_id, entity_id)
        return self._load(org_id, [entity], True, include_relationships)[0]

    @operation()
    @organization_scoped
    def archive(self, org_id: str, entity_id: str, actor_id: Optional[str] = None) -> EntityRead:
        """Mark an entity archived; references to it stay valid."""
        entity = self._require_entity(org_id, entity_id)
        with self.transaction():
            entity.status = EntityStatus.ARCHIVED.value
            entity.updated_by = actor_id
            self.logger.info("Archived entity", extra={"entity_id": entity_id})
            return self._load(org_id, [entity], include_dynamic=True)[0]

    @operation()
    @organization_scoped
    def delete(self, org_id: str, entity_id: str) -> None:
        """
        Hard-delete an unreferenced entity and its dynamic fields.

        Raises:
            NotFoundError: If the entity is not in this organization
            HasDependentsError: If any relationship or transaction references it
        """
        entity = self._require_entity(org_id, entity_id)

        dependents = self._count_dependents(entity_id)
        if any(dependents.values()):
            raise HasDependentsError(
                f"Entity {entity_id} is still referenced; archive it instead",
                entity_id=entity_id,
                **dependents,
            )

        with self.transaction():
            for field in self.session.execute(
                select(DynamicField).where(DynamicField.entity_id == entity_id)
            ).scalars():
                self.session.delete(field)
            self.session.delete(entity)
            self.logger.info("Deleted entity", extra={"entity_id": entity_id})

    def _count_dependents(self, entity_id: str) -> Dict[str, int]:
        def count(stmt) -> int:
            return self.session.execute(stmt).scalar_one()

        return {
            "relationships": count(
                select(func.count(Relationship.id)).where(
                    or_(
                        Relationship.from_entity_id == entity_id,
                        Relationship.to_entity_id == entity_id,
                    )
                )
            ),
            "transactions": count(
                select(func.count(Transaction.id)).where(
                    or_(
                        Transaction.source_entity_id == entity_id,
                        Transaction.target_entity_id == entity_id,
                    )
                )
            ),
            "transaction_lines": count(
                select(func.count(TransactionLine.id)).where(TransactionLine.entity_id == entity_id)
            ),
        }

    def _load(
        self,
        org_id: str,
        entities: List[Entity],
        include_dynamic: bool = False,
        include_relationships: bool = False,
    ) -> List[EntityRead]:
        """Convert rows to read schemas, attaching fields and edges on request."""
        results = [EntityRead.model_validate(e) for e in entities]
        if not results:
            return results
        ids = [e.id for e in results]

        if include_dynamic:
            by_entity: Dict[str, List[DynamicField]] = {entity_id: [] for entity_id in ids}
            rows = self.session.execute(
                select(DynamicField)
                .where(DynamicField.entity_id.in_(ids))
                .order_by(DynamicField.field_name)
                .execution_options(populate_existing=True)
            ).scalars()
            foreign = []
            for row in rows:
                if row.organization_id != org_id:
                    foreign.append(row)
                    continue
                by_entity[row.entity_id].append(row)

            if foreign:
                raise IntegrityViolationError(
                    "Dynamic fields of another organization reference these entities",
                    issues=[
                        {
                            "dynamic_field_id": row.id,
                            "entity_id": row.entity_id,
                            "field_name": row.field_name,
                            "organization_id": row.organization_id,
                        }
                        for row in foreign
                    ],
                    organization_id=org_id,
                )

            for result in results:
                records = [DynamicFieldRead.model_validate(r) for r in by_entity[result.id]]
                result.dynamic_field_records = records
                result.dynamic_fields = {r.field_name: r.value for r in records}

        if include_relationships:
            edges = self.session.execute(
                select(Relationship).where(
                    Relationship.organization_id == org_id,
                    Relationship.is_active.is_(True),
                    or_(Relationship.from_entity_id.in_(ids), Relationship.to_entity_id.in_(ids)),
                )
                .order_by(Relationship.id)
            ).scalars().all()
            for result in results:
                result.relationships = EntityRelationships(
                    outgoing=[
                        RelationshipRead.model_validate(r) for r in edges if r.from_entity_id == result.id
                    ],
                    incoming=[
                        RelationshipRead.model_validate(r) for r in edges if r.to_entity_id == result.id
                    ],
                )

        return results
