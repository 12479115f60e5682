"""
Integrity diagnostics for one organization.

Finds data that the write path cannot produce but that migrated or hand-edited
stores may contain: dynamic fields whose entity is missing or belongs to
another organization, several active relationships sharing one natural key,
and relationships whose endpoints no longer resolve.
"""

from collections import defaultdict
from typing import Dict, List, Optional

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.orm import aliased

from ..constants import EntityType
from ..context.operation_context import operation
from ..context.organization_context import organization_scoped
from ..db.db_base import utc_now
from ..db.db_entity_models import DynamicField, Entity
from ..db.db_relationship_models import NATURAL_KEY, Relationship
from ..exceptions import IntegrityViolationError
from ..schemas.integrity_schema import IntegrityIssue, IntegrityReport, RepairResult
from .base_service import SessionManagedService

ORPHAN_DYNAMIC_FIELD = "orphan_dynamic_field"
DUPLICATE_RELATIONSHIP = "duplicate_relationship"
DANGLING_RELATIONSHIP = "dangling_relationship"


class IntegrityService(SessionManagedService):
    """Scan, verify and repair one organization's data."""

    @operation()
    @organization_scoped
    def scan(self, org_id: str) -> IntegrityReport:
        """Collect every integrity issue of the organization."""
        self._require_organization(org_id)
        report = IntegrityReport(
            organization_id=org_id,
            orphan_dynamic_fields=self._orphan_dynamic_fields(org_id),
            duplicate_relationships=self._duplicate_relationships(org_id),
            dangling_relationships=self._dangling_relationships(org_id),
        )
        self.logger.info(
            "Integrity scan complete",
            extra={
                "orphan_dynamic_fields": len(report.orphan_dynamic_fields),
                "duplicate_relationships": len(report.duplicate_relationships),
                "dangling_relationships": len(report.dangling_relationships),
            },
        )
        return report

    @operation()
    @organization_scoped
    def verify(self, org_id: str) -> IntegrityReport:
        """
        Scan and fail loudly.

        Raises:
            IntegrityViolationError: If any issue was found
        """
        report = self.scan(org_id)
        if not report.is_clean:
            raise IntegrityViolationError(
                f"{len(report.issues)} integrity issue(s) found",
                issues=[issue.model_dump() for issue in report.issues],
                organization_id=org_id,
            )
        return report

    def _orphan_dynamic_fields(self, org_id: str) -> List[IntegrityIssue]:
        owner = aliased(Entity)
        rows = self.session.execute(
            select(DynamicField, owner.organization_id)
            .outerjoin(owner, owner.id == DynamicField.entity_id)
            .where(
                or_(
                    # fields of this organization on a missing or foreign entity
                    and_(
                        DynamicField.organization_id == org_id,
                        or_(owner.id.is_(None), owner.organization_id != org_id),
                    ),
                    # foreign fields attached to this organization's entities
                    and_(DynamicField.organization_id != org_id, owner.organization_id == org_id),
                )
            )
            .order_by(DynamicField.id)
        ).all()

        return [
            IntegrityIssue(
                kind=ORPHAN_DYNAMIC_FIELD,
                record_id=field.id,
                detail={
                    "entity_id": field.entity_id,
                    "field_name": field.field_name,
                    "field_organization_id": field.organization_id,
                    "entity_organization_id": entity_org_id,
                },
            )
            for field, entity_org_id in rows
        ]

    def _duplicate_groups(self, org_id: str) -> Dict[tuple, List[Relationship]]:
        key_columns = [getattr(Relationship, name) for name in NATURAL_KEY]
        duplicated_keys = (
            select(*key_columns)
            .where(Relationship.organization_id == org_id, Relationship.is_active.is_(True))
            .group_by(*key_columns)
            .having(func.count(Relationship.id) > 1)
        ).subquery()

        rows = self.session.execute(
            select(Relationship)
            .join(
                duplicated_keys,
                and_(*[column == duplicated_keys.c[column.key] for column in key_columns]),
            )
            .where(Relationship.is_active.is_(True))
            .order_by(Relationship.updated_at.desc(), Relationship.id.desc())
        ).scalars()

        groups: Dict[tuple, List[Relationship]] = defaultdict(list)
        for relationship in rows:
            groups[tuple(getattr(relationship, name) for name in NATURAL_KEY)].append(relationship)
        return groups

    def _duplicate_relationships(self, org_id: str) -> List[IntegrityIssue]:
        issues = []
        for (_, from_id, to_id, rel_type), rows in self._duplicate_groups(org_id).items():
            issues.append(
                IntegrityIssue(
                    kind=DUPLICATE_RELATIONSHIP,
                    record_id=rows[0].id,
                    detail={
                        "from_entity_id": from_id,
                        "to_entity_id": to_id,
                        "relationship_type": rel_type,
                        "relationship_ids": sorted(r.id for r in rows),
                    },
                )
            )
        return sorted(issues, key=lambda issue: issue.record_id)

    def _dangling_relationships(self, org_id: str) -> List[IntegrityIssue]:
        from_entity = aliased(Entity)
        to_entity = aliased(Entity)

        def dangling(endpoint):
            return or_(
                endpoint.id.is_(None),
                and_(
                    endpoint.organization_id != org_id,
                    or_(
                        endpoint.organization_id != self.platform_organization_id,
                        endpoint.entity_type != EntityType.USER.value,
                    ),
                ),
            )

        rows = self.session.execute(
            select(Relationship, from_entity, to_entity)
            .outerjoin(from_entity, from_entity.id == Relationship.from_entity_id)
            .outerjoin(to_entity, to_entity.id == Relationship.to_entity_id)
            .where(
                Relationship.organization_id == org_id,
                or_(dangling(from_entity), dangling(to_entity)),
            )
            .order_by(Relationship.id)
        ).all()

        issues = []
        for relationship, source, target in rows:
            issues.append(
                IntegrityIssue(
                    kind=DANGLING_RELATIONSHIP,
                    record_id=relationship.id,
                    detail={
                        "relationship_type": relationship.relationship_type,
                        "from_entity_id": relationship.from_entity_id,
                        "to_entity_id": relationship.to_entity_id,
                        "from_organization_id": source.organization_id if source else None,
                        "to_organization_id": target.organization_id if target else None,
                    },
                )
            )
        return issues

    @operation()
    @organization_scoped
    def repair_duplicate_relationships(
        self, org_id: str, actor_id: Optional[str] = None, purge: bool = False
    ) -> RepairResult:
        """
        Keep the most recently updated active edge per natural key.

        The others are deactivated, or deleted when ``purge`` is set so the
        unique natural-key index can be created afterwards.
        """
        self._require_organization(org_id)
        result = RepairResult(organization_id=org_id)

        with self.transaction():
            for rows in self._duplicate_groups(org_id).values():
                keep, *extra = rows
                extra_ids = [r.id for r in extra]
                if purge:
                    self.session.execute(
                        delete(Relationship)
                        .where(Relationship.id.in_(extra_ids))
                        .execution_options(synchronize_session=False)
                    )
                    for relationship in extra:
                        self.session.expunge(relationship)
                else:
                    for relationship in extra:
                        relationship.is_active = False
                        relationship.expiration_date = utc_now()
                        relationship.updated_by = actor_id
                result.groups_repaired += 1
                result.deactivated_relationship_ids.extend(extra_ids)

            self.logger.info(
                "Repaired duplicate relationships",
                extra={
                    "groups_repaired": result.groups_repaired,
                    "relationships": len(result.deactivated_relationship_ids),
                    "purged": purge,
                },
            )
        return result
