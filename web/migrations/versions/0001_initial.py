"""Initial schema: users, items, bookings, notifications and audit logs

Revision ID: 0001
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('users',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('email', sa.String(length=128), nullable=True),
        sa.Column('name', sa.String(length=120), nullable=True),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('email_booking_notifications', sa.Boolean(), nullable=False),
        sa.Column('last_login_at', sa.DateTime(), nullable=True),
        sa.Column('created', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )

    op.create_table('items',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('total_quantity', sa.Integer(), nullable=False),
        sa.CheckConstraint('total_quantity > 0', name='ck_items_total_quantity_positive'),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('item_responsible_members',
        sa.Column('item_id', sa.String(length=32), nullable=False),
        sa.Column('user_id', sa.String(length=32), nullable=False),
        sa.ForeignKeyConstraint(['item_id'], ['items.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('item_id', 'user_id')
    )

    op.create_table('bookings',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('user_id', sa.String(length=32), nullable=False),
        sa.Column('assigned_to_id', sa.String(length=32), nullable=True),
        sa.Column('item_id', sa.String(length=32), nullable=False),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('start_date < end_date', name='ck_bookings_interval'),
        sa.CheckConstraint('quantity > 0', name='ck_bookings_quantity_positive'),
        sa.ForeignKeyConstraint(['assigned_to_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['item_id'], ['items.id'], ),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_bookings_item_interval', 'bookings', ['item_id', 'start_date', 'end_date'], unique=False)
    op.create_index('ix_bookings_status_start', 'bookings', ['status', 'start_date'], unique=False)
    op.create_index('ix_bookings_end_date', 'bookings', ['end_date'], unique=False)

    op.create_table('notifications',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('user_id', sa.String(length=32), nullable=False),
        sa.Column('booking_id', sa.String(length=32), nullable=True),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('read', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_notifications_user_id'), 'notifications', ['user_id'], unique=False)

    op.create_table('logs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('user_id', sa.String(length=32), nullable=True),
        sa.Column('booking_id', sa.String(length=32), nullable=True),
        sa.Column('message', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_logs_booking_id'), 'logs', ['booking_id'], unique=False)


def downgrade():
    op.drop_index(op.f('ix_logs_booking_id'), table_name='logs')
    op.drop_table('logs')
    op.drop_index(op.f('ix_notifications_user_id'), table_name='notifications')
    op.drop_table('notifications')
    op.drop_index('ix_bookings_end_date', table_name='bookings')
    op.drop_index('ix_bookings_status_start', table_name='bookings')
    op.drop_index('ix_bookings_item_interval', table_name='bookings')
    op.drop_table('bookings')
    op.drop_table('item_responsible_members')
    op.drop_table('items')
    op.drop_table('users')
