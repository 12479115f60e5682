"""create_engine_tables

Revision ID: 4f2a9c1d7e30
Revises:
Create Date: 2026-10-18 09:12:44.201377

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from hera_core.db.db_base import JSON, Money


# revision identifiers, used by Alembic.
revision: str = '4f2a9c1d7e30'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def _actor_stamps():
    return [
        sa.Column('created_by', sa.String(length=36), nullable=True),
        sa.Column('updated_by', sa.String(length=36), nullable=True),
    ]


def _organization_id():
    return sa.Column(
        'organization_id',
        sa.String(length=36),
        sa.ForeignKey('organization.id', ondelete='CASCADE'),
        nullable=False,
    )


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'organization',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('code', sa.String(length=100), nullable=False, unique=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('metadata', JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_organization_status', 'organization', ['status'])

    op.create_table(
        'core_entity',
        sa.Column('id', sa.String(length=36), primary_key=True),
        _organization_id(),
        sa.Column('entity_type', sa.String(length=100), nullable=False),
        sa.Column('entity_name', sa.String(length=255), nullable=False),
        sa.Column('entity_code', sa.String(length=100), nullable=True),
        sa.Column('smart_code', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('metadata', JSON(), nullable=True),
        *_timestamps(),
        *_actor_stamps(),
    )
    op.create_index('ix_core_entity_organization_id', 'core_entity', ['organization_id'])
    op.create_index('ix_entity_org_type', 'core_entity', ['organization_id', 'entity_type'])
    op.create_index('ix_entity_org_code', 'core_entity', ['organization_id', 'entity_code'])
    op.create_index('ix_entity_org_smart_code', 'core_entity', ['organization_id', 'smart_code'])

    op.create_table(
        'core_dynamic_field',
        sa.Column('id', sa.String(length=36), primary_key=True),
        _organization_id(),
        sa.Column(
            'entity_id',
            sa.String(length=36),
            sa.ForeignKey('core_entity.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('field_name', sa.String(length=100), nullable=False),
        sa.Column('field_type', sa.String(length=20), nullable=False),
        sa.Column('field_value_text', sa.Text(), nullable=True),
        sa.Column('field_value_number', Money(), nullable=True),
        sa.Column('field_value_boolean', sa.Boolean(), nullable=True),
        sa.Column('field_value_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('field_value_json', JSON(), nullable=True),
        sa.Column('smart_code', sa.String(length=255), nullable=False),
        *_timestamps(),
        *_actor_stamps(),
        sa.UniqueConstraint(
            'organization_id', 'entity_id', 'field_name', name='uq_dynamic_field_entity_name'
        ),
    )
    op.create_index(
        'ix_core_dynamic_field_organization_id', 'core_dynamic_field', ['organization_id']
    )
    op.create_index('ix_dynamic_field_entity', 'core_dynamic_field', ['entity_id'])

    op.create_table(
        'core_relationship',
        sa.Column('id', sa.String(length=36), primary_key=True),
        _organization_id(),
        sa.Column(
            'from_entity_id', sa.String(length=36), sa.ForeignKey('core_entity.id'), nullable=False
        ),
        sa.Column(
            'to_entity_id', sa.String(length=36), sa.ForeignKey('core_entity.id'), nullable=False
        ),
        sa.Column('relationship_type', sa.String(length=100), nullable=False),
        sa.Column('relationship_data', JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('smart_code', sa.String(length=255), nullable=False),
        sa.Column('effective_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expiration_date', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        *_actor_stamps(),
    )
    op.create_index(
        'ix_core_relationship_organization_id', 'core_relationship', ['organization_id']
    )
    # Stores migrated from an engine without the natural key must run
    # IntegrityService.repair_duplicate_relationships(purge=True) first
    op.create_index(
        'uq_relationship_natural_key',
        'core_relationship',
        ['organization_id', 'from_entity_id', 'to_entity_id', 'relationship_type'],
        unique=True,
    )
    op.create_index('ix_relationship_org_from', 'core_relationship', ['organization_id', 'from_entity_id'])
    op.create_index('ix_relationship_org_to', 'core_relationship', ['organization_id', 'to_entity_id'])
    op.create_index(
        'ix_relationship_org_type', 'core_relationship', ['organization_id', 'relationship_type']
    )

    op.create_table(
        'universal_transaction',
        sa.Column('id', sa.String(length=36), primary_key=True),
        _organization_id(),
        sa.Column('transaction_type', sa.String(length=100), nullable=False),
        sa.Column('transaction_code', sa.String(length=100), nullable=False),
        sa.Column('smart_code', sa.String(length=255), nullable=False),
        sa.Column('transaction_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            'source_entity_id', sa.String(length=36), sa.ForeignKey('core_entity.id'), nullable=True
        ),
        sa.Column(
            'target_entity_id', sa.String(length=36), sa.ForeignKey('core_entity.id'), nullable=True
        ),
        sa.Column('total_amount', Money(), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column(
            'reversal_of_id',
            sa.String(length=36),
            sa.ForeignKey('universal_transaction.id'),
            nullable=True,
        ),
        sa.Column('metadata', JSON(), nullable=True),
        *_timestamps(),
        *_actor_stamps(),
        sa.UniqueConstraint('organization_id', 'transaction_code', name='uq_transaction_org_code'),
    )
    op.create_index(
        'ix_universal_transaction_organization_id', 'universal_transaction', ['organization_id']
    )
    op.create_index(
        'ix_transaction_org_type', 'universal_transaction', ['organization_id', 'transaction_type']
    )
    op.create_index('ix_transaction_org_status', 'universal_transaction', ['organization_id', 'status'])
    op.create_index('ix_transaction_reversal_of', 'universal_transaction', ['reversal_of_id'])

    op.create_table(
        'universal_transaction_line',
        sa.Column('id', sa.String(length=36), primary_key=True),
        _organization_id(),
        sa.Column(
            'transaction_id',
            sa.String(length=36),
            sa.ForeignKey('universal_transaction.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('line_number', sa.Integer(), nullable=False),
        sa.Column('line_type', sa.String(length=50), nullable=False),
        sa.Column('entity_id', sa.String(length=36), sa.ForeignKey('core_entity.id'), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('quantity', Money(), nullable=True),
        sa.Column('unit_amount', Money(), nullable=True),
        sa.Column('line_amount', Money(), nullable=False),
        sa.Column('smart_code', sa.String(length=255), nullable=False),
        sa.Column('line_data', JSON(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('transaction_id', 'line_number', name='uq_transaction_line_number'),
    )
    op.create_index(
        'ix_universal_transaction_line_organization_id',
        'universal_transaction_line',
        ['organization_id'],
    )
    op.create_index('ix_transaction_line_entity', 'universal_transaction_line', ['entity_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('universal_transaction_line')
    op.drop_table('universal_transaction')
    op.drop_table('core_relationship')
    op.drop_table('core_dynamic_field')
    op.drop_table('core_entity')
    op.drop_table('organization')
