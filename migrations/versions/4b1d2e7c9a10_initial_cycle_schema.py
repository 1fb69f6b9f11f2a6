"""Initial cycle schema

Revision ID: 4b1d2e7c9a10
Revises: 
Create Date: 2026-10-17 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4b1d2e7c9a10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('cycle',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('cycle_no', sa.String(length=50), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_table('farm_cycle',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('cycle_id', sa.Integer(), nullable=False),
        sa.Column('farm_name', sa.String(length=20), nullable=False),
        sa.Column('crop_no', sa.String(length=20), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('finish_date', sa.Date(), nullable=True),
        sa.Column('version', sa.Integer(), server_default='1', nullable=False),
        sa.ForeignKeyConstraint(['cycle_id'], ['cycle.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('cycle_id', 'farm_name', name='uq_farm_cycle_farm')
    )
    with op.batch_alter_table('farm_cycle', schema=None) as batch_op:
        batch_op.create_index('uq_farm_cycle_active', ['farm_name'], unique=True,
                              sqlite_where=sa.text('finish_date IS NULL'),
                              postgresql_where=sa.text('finish_date IS NULL'))

    op.create_table('daily_report',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('farm_name', sa.String(length=20), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('houses_json', sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('farm_name', 'date', name='uq_daily_report_farm_date')
    )
    op.create_table('chicks_receiving',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('farm_name', sa.String(length=20), nullable=False),
        sa.Column('cycle_id', sa.Integer(), nullable=False),
        sa.Column('crop_no', sa.String(length=20), nullable=True),
        sa.Column('cycle_no', sa.String(length=50), nullable=True),
        sa.Column('houses_json', sa.Text(), nullable=False),
        sa.ForeignKeyConstraint(['cycle_id'], ['cycle.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('farm_name', 'cycle_id', name='uq_chicks_farm_cycle')
    )
    op.create_table('catching_details',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('farm_name', sa.String(length=20), nullable=False),
        sa.Column('cycle_id', sa.Integer(), nullable=False),
        sa.Column('houses_json', sa.Text(), nullable=False),
        sa.ForeignKeyConstraint(['cycle_id'], ['cycle.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('farm_name', 'cycle_id', name='uq_catching_farm_cycle')
    )
    op.create_table('feed_order',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('farm_name', sa.String(length=20), nullable=False),
        sa.Column('cycle_id', sa.Integer(), nullable=False),
        sa.Column('order_date', sa.Date(), nullable=False),
        sa.Column('delivery_date', sa.Date(), nullable=True),
        sa.Column('feed_mill_no', sa.String(length=50), nullable=True),
        sa.Column('priority', sa.String(length=20), nullable=True),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('actual_delivery_date', sa.Date(), nullable=True),
        sa.Column('items_json', sa.Text(), nullable=False),
        sa.ForeignKeyConstraint(['cycle_id'], ['cycle.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_table('feed_delivery',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('farm_name', sa.String(length=20), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('cycle_id', sa.Integer(), nullable=True),
        sa.Column('feed_order_id', sa.Integer(), nullable=True),
        sa.Column('houses_json', sa.Text(), nullable=False),
        sa.ForeignKeyConstraint(['cycle_id'], ['cycle.id'], ),
        sa.ForeignKeyConstraint(['feed_order_id'], ['feed_order.id'], ),
        sa.PrimaryKeyConstraint('id')
    )

    for table in ('daily_report', 'chicks_receiving', 'catching_details', 'feed_order', 'feed_delivery'):
        with op.batch_alter_table(table, schema=None) as batch_op:
            batch_op.create_index(batch_op.f('ix_%s_farm_name' % table), ['farm_name'], unique=False)


def downgrade():
    for table in ('feed_delivery', 'feed_order', 'catching_details', 'chicks_receiving', 'daily_report'):
        with op.batch_alter_table(table, schema=None) as batch_op:
            batch_op.drop_index(batch_op.f('ix_%s_farm_name' % table))

    op.drop_table('feed_delivery')
    op.drop_table('feed_order')
    op.drop_table('catching_details')
    op.drop_table('chicks_receiving')
    op.drop_table('daily_report')
    with op.batch_alter_table('farm_cycle', schema=None) as batch_op:
        batch_op.drop_index('uq_farm_cycle_active')
    op.drop_table('farm_cycle')
    op.drop_table('cycle')
