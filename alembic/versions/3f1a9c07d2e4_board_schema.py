"""Board schema: pipelines, stages, placements, leads, orders, trays, events

Revision ID: 3f1a9c07d2e4
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1a9c07d2e4'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('pipelines',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table('stages',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('pipeline_id', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['pipeline_id'], ['pipelines.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_stages_pipeline_id', 'stages', ['pipeline_id'])

    op.create_table('pipeline_items',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('entity_type', sa.Text(), nullable=False),
        sa.Column('entity_id', sa.Text(), nullable=False),
        sa.Column('pipeline_id', sa.Text(), nullable=False),
        sa.Column('stage_id', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.ForeignKeyConstraint(['pipeline_id'], ['pipelines.id']),
        sa.ForeignKeyConstraint(['stage_id'], ['stages.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('entity_type', 'entity_id', 'pipeline_id', name='uq_pipeline_item_entity'),
    )
    op.create_index('ix_pipeline_items_pipeline_stage', 'pipeline_items', ['pipeline_id', 'stage_id'])

    op.create_table('leads',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('full_name', sa.Text(), nullable=True),
        sa.Column('email', sa.Text(), nullable=True),
        sa.Column('phone_number', sa.Text(), nullable=True),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('claimed_by', sa.Text(), nullable=True),
        sa.Column('no_deal', sa.Boolean(), nullable=True),
        sa.Column('callback_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('no_answer_callback_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('courier_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('office_direct_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table('tags',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('color', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table('lead_tags',
        sa.Column('lead_id', sa.Text(), nullable=False),
        sa.Column('tag_id', sa.Text(), nullable=False),
        sa.ForeignKeyConstraint(['lead_id'], ['leads.id']),
        sa.ForeignKeyConstraint(['tag_id'], ['tags.id']),
        sa.PrimaryKeyConstraint('lead_id', 'tag_id'),
    )

    op.create_table('service_orders',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('lead_id', sa.Text(), nullable=False),
        sa.Column('number', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), nullable=True),
        sa.Column('courier_sent', sa.Boolean(), nullable=True),
        sa.Column('office_direct', sa.Boolean(), nullable=True),
        sa.Column('package_unclaimed', sa.Boolean(), nullable=True),
        sa.Column('package_arrived', sa.Boolean(), nullable=True),
        sa.Column('urgent', sa.Boolean(), nullable=True),
        sa.Column('subscription_type', sa.Text(), nullable=True),
        sa.Column('courier_scheduled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('office_direct_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('no_answer_callback_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.ForeignKeyConstraint(['lead_id'], ['leads.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_service_orders_lead_id', 'service_orders', ['lead_id'])

    op.create_table('services',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('price', sa.Float(), nullable=True),
        sa.Column('time', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table('trays',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('service_order_id', sa.Text(), nullable=False),
        sa.Column('number', sa.Text(), nullable=True),
        sa.Column('size', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), nullable=True),
        sa.Column('parent_tray_id', sa.Text(), nullable=True),
        sa.Column('technician_id', sa.Text(), nullable=True),
        sa.Column('technician2_id', sa.Text(), nullable=True),
        sa.Column('technician3_id', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.ForeignKeyConstraint(['service_order_id'], ['service_orders.id']),
        sa.ForeignKeyConstraint(['parent_tray_id'], ['trays.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_trays_service_order_id', 'trays', ['service_order_id'])

    op.create_table('tray_items',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('tray_id', sa.Text(), nullable=False),
        sa.Column('service_id', sa.Text(), nullable=True),
        sa.Column('department_id', sa.Text(), nullable=True),
        sa.Column('qty', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['tray_id'], ['trays.id']),
        sa.ForeignKeyConstraint(['service_id'], ['services.id']),
        sa.ForeignKeyConstraint(['department_id'], ['pipelines.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_tray_items_tray_id', 'tray_items', ['tray_id'])
    op.create_index('ix_tray_items_department_id', 'tray_items', ['department_id'])

    op.create_table('items_events',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('entity_type', sa.Text(), nullable=False),
        sa.Column('entity_id', sa.Text(), nullable=False),
        sa.Column('event_type', sa.Text(), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('actor_id', sa.Text(), nullable=True),
        sa.Column('actor_name', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_items_events_entity', 'items_events', ['entity_type', 'entity_id', 'event_type'])

    op.create_table('members',
        sa.Column('user_id', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('user_id'),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('members')
    op.drop_index('ix_items_events_entity', table_name='items_events')
    op.drop_table('items_events')
    op.drop_index('ix_tray_items_department_id', table_name='tray_items')
    op.drop_index('ix_tray_items_tray_id', table_name='tray_items')
    op.drop_table('tray_items')
    op.drop_index('ix_trays_service_order_id', table_name='trays')
    op.drop_table('trays')
    op.drop_table('services')
    op.drop_index('ix_service_orders_lead_id', table_name='service_orders')
    op.drop_table('service_orders')
    op.drop_table('lead_tags')
    op.drop_table('tags')
    op.drop_table('leads')
    op.drop_index('ix_pipeline_items_pipeline_stage', table_name='pipeline_items')
    op.drop_table('pipeline_items')
    op.drop_index('ix_stages_pipeline_id', table_name='stages')
    op.drop_table('stages')
    op.drop_table('pipelines')
