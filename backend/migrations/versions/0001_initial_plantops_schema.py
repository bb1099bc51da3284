"""initial plantops schema

Revision ID: 0001_initial_plantops
Revises:
Create Date: 2026-09-28 00:00:00.000000

Creates the factory schema from scratch:
- stock_records / stock_ledger_entries: on-hand cache plus the append-only ledger
- low_stock_thresholds: scoped thresholds, '*' in scope_key for wildcard scopes
- system_settings: LOT_SIZE_THRESHOLD and friends
- bom_lines / production_routes: demo master data
- orders / order_lines / order_sequences: every pipeline order (single table)
- order_audit / pipeline_events: lifecycle trail and the cross-order outbox
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial_plantops'
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name, nullable=False):
    if nullable:
        return sa.Column(name, sa.DateTime(timezone=True), nullable=True)
    return sa.Column(name, sa.DateTime(timezone=True), nullable=False,
                     server_default=sa.text('CURRENT_TIMESTAMP'))


def upgrade():
    # ============================================================================
    # orders: every order type, parent_id links the lineage
    # ============================================================================
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_type', sa.String(length=32), nullable=False),
        sa.Column('order_number', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('priority', sa.String(length=16), nullable=False),
        sa.Column('parent_id', sa.Integer(), nullable=True),
        sa.Column('workstation_id', sa.Integer(), nullable=False),
        sa.Column('source_workstation_id', sa.Integer(), nullable=True),
        sa.Column('scenario', sa.String(length=32), nullable=True),
        sa.Column('notes', sa.String(length=500), nullable=True),
        sa.Column('halted_reason', sa.String(length=255), nullable=True),
        _timestamp('due_date', nullable=True),
        sa.Column('schedule_id', sa.String(length=64), nullable=True),
        _timestamp('expected_completion', nullable=True),
        sa.Column('schedule_payload', sa.Text(), nullable=True),
        _timestamp('created_at'),
        _timestamp('confirmed_at', nullable=True),
        _timestamp('started_at', nullable=True),
        _timestamp('completed_at', nullable=True),
        _timestamp('submitted_at', nullable=True),
        _timestamp('lineage_completed_at', nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['parent_id'], ['orders.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_number', name='uq_orders_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('orders', schema=None) as batch_op:
        batch_op.create_index('ix_orders_type_status', ['order_type', 'status'], unique=False)
        batch_op.create_index(batch_op.f('ix_orders_order_type'), ['order_type'], unique=False)
        batch_op.create_index(batch_op.f('ix_orders_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_orders_parent_id'), ['parent_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_orders_workstation_id'), ['workstation_id'], unique=False)

    op.create_table(
        'order_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('item_type', sa.String(length=16), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('requested_quantity', sa.Integer(), nullable=False),
        sa.Column('fulfilled_quantity', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.CheckConstraint('requested_quantity > 0', name='ck_order_lines_requested_positive'),
        sa.CheckConstraint('fulfilled_quantity >= 0', name='ck_order_lines_fulfilled_non_negative'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('order_lines', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_order_lines_order_id'), ['order_id'], unique=False)

    op.create_table(
        'order_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_type', sa.String(length=32), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False),
        _timestamp('updated_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_type', name='uq_order_sequences_type'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # stock: cached quantities and the ledger they are derived from
    # ============================================================================
    op.create_table(
        'stock_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('workstation_id', sa.Integer(), nullable=False),
        sa.Column('item_type', sa.String(length=16), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        _timestamp('last_updated'),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.CheckConstraint('quantity >= 0', name='ck_stock_records_quantity_non_negative'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('workstation_id', 'item_type', 'item_id', name='uq_stock_records_key'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stock_records', schema=None) as batch_op:
        batch_op.create_index('ix_stock_records_ws_type', ['workstation_id', 'item_type'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_records_workstation_id'), ['workstation_id'], unique=False)

    op.create_table(
        'stock_ledger_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('workstation_id', sa.Integer(), nullable=False),
        sa.Column('item_type', sa.String(length=16), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('delta', sa.Integer(), nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('reason_code', sa.String(length=32), nullable=False),
        sa.Column('notes', sa.String(length=500), nullable=True),
        sa.Column('order_id', sa.Integer(), nullable=True),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stock_ledger_entries', schema=None) as batch_op:
        batch_op.create_index('ix_stock_ledger_key', ['workstation_id', 'item_type', 'item_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_ledger_entries_workstation_id'), ['workstation_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_ledger_entries_reason_code'), ['reason_code'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_ledger_entries_order_id'), ['order_id'], unique=False)

    op.create_table(
        'low_stock_thresholds',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('workstation_id', sa.Integer(), nullable=True),
        sa.Column('item_type', sa.String(length=16), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=True),
        sa.Column('threshold', sa.Integer(), nullable=False),
        sa.Column('scope_key', sa.String(length=64), nullable=False),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.CheckConstraint('threshold >= 0', name='ck_low_stock_thresholds_non_negative'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('scope_key', name='uq_low_stock_thresholds_scope'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('low_stock_thresholds', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_low_stock_thresholds_workstation_id'), ['workstation_id'], unique=False)

    # ============================================================================
    # settings and master data
    # ============================================================================
    op.create_table(
        'system_settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('key', sa.String(length=64), nullable=False),
        sa.Column('value', sa.String(length=255), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        _timestamp('updated_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('key', name='uq_system_settings_key'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'bom_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('parent_type', sa.String(length=16), nullable=False),
        sa.Column('parent_id', sa.Integer(), nullable=False),
        sa.Column('component_type', sa.String(length=16), nullable=False),
        sa.Column('component_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_bom_lines_quantity_positive'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('parent_type', 'parent_id', 'component_type', 'component_id',
                            name='uq_bom_lines_parent_component'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'production_routes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('item_type', sa.String(length=16), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('workstation_id', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('item_type', 'item_id', name='uq_production_routes_item'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # order_audit / pipeline_events
    # ============================================================================
    op.create_table(
        'order_audit',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('from_status', sa.String(length=32), nullable=True),
        sa.Column('to_status', sa.String(length=32), nullable=True),
        sa.Column('detail', sa.String(length=500), nullable=True),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('order_audit', schema=None) as batch_op:
        batch_op.create_index('ix_order_audit_order_created', ['order_id', 'id'], unique=False)
        batch_op.create_index(batch_op.f('ix_order_audit_order_id'), ['order_id'], unique=False)

    op.create_table(
        'pipeline_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('target_order_id', sa.Integer(), nullable=True),
        sa.Column('payload', sa.Text(), nullable=True),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('last_error', sa.String(length=500), nullable=True),
        _timestamp('created_at'),
        _timestamp('consumed_at', nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['target_order_id'], ['orders.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('pipeline_events', schema=None) as batch_op:
        batch_op.create_index('ix_pipeline_events_pending', ['consumed_at', 'id'], unique=False)
        batch_op.create_index(batch_op.f('ix_pipeline_events_event_type'), ['event_type'], unique=False)
        batch_op.create_index(batch_op.f('ix_pipeline_events_order_id'), ['order_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_pipeline_events_target_order_id'), ['target_order_id'], unique=False)


def downgrade():
    """Drop all tables (destructive operation)."""
    op.drop_table('pipeline_events')
    op.drop_table('order_audit')
    op.drop_table('production_routes')
    op.drop_table('bom_lines')
    op.drop_table('system_settings')
    op.drop_table('low_stock_thresholds')
    op.drop_table('stock_ledger_entries')
    op.drop_table('stock_records')
    op.drop_table('order_sequences')
    op.drop_table('order_lines')
    op.drop_table('orders')
