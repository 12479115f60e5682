"""
INSERT ... ON CONFLICT DO UPDATE statements for PostgreSQL and SQLite.

Concurrent writers racing on the same natural key both end up updating a
single row; the database settles the race.
"""

from typing import Any, Dict, Iterable

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from ..exceptions import ErrorCode, ServiceError

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def upsert_statement(
    session: Session,
    model,
    values: Dict[str, Any],
    index_elements: Iterable[str],
    update_columns: Iterable[str],
):
    """
    Build an upsert returning the affected row id.

    Args:
        session: Session whose bind decides the dialect
        model: Mapped class to insert into
        values: Column values for the insert
        index_elements: Columns of the unique index the conflict is detected on
        update_columns: Columns overwritten from the proposed row on conflict
    """
    dialect_name = session.get_bind().dialect.name
    insert = _INSERT_BY_DIALECT.get(dialect_name)
    if insert is None:
        raise ServiceError(
            f"Upsert not supported for dialect: {dialect_name}",
            error_code=ErrorCode.CONFIGURATION_ERROR,
            operation="upsert_statement",
        )

    stmt = insert(model).values(**values)
    return stmt.on_conflict_do_update(
        index_elements=list(index_elements),
        set_={column: stmt.excluded[column] for column in update_columns},
    ).returning(model.id)
