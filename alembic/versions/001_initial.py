"""001 Initial schema - room types, holidays, bookings, notification ledger and policies

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'room_types',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(50), nullable=False, unique=True),
        sa.Column('display_name', sa.String(100), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('holiday_surcharge', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('capacity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('display_order', sa.Integer(), server_default='0'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_room_types_is_active', 'room_types', ['is_active'])

    op.create_table(
        'holidays',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('holiday_date', sa.Date(), nullable=False),
        sa.Column('holiday_name', sa.String(100), nullable=True),
        sa.Column('is_surcharge', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_holidays_holiday_date', 'holidays', ['holiday_date'], unique=True)

    op.create_table(
        'notification_policies',
        sa.Column('kind', sa.String(40), primary_key=True),
        sa.Column('is_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('offset_days', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('send_hour', sa.Integer(), nullable=False, server_default='9'),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        'bookings',
        sa.Column('booking_id', sa.String(20), primary_key=True),
        sa.Column('check_in_date', sa.Date(), nullable=False),
        sa.Column('check_out_date', sa.Date(), nullable=False),
        sa.Column('room_type', sa.String(50),
                  sa.ForeignKey('room_types.name', ondelete='RESTRICT'), nullable=False),
        sa.Column('guest_name', sa.String(100), nullable=False),
        sa.Column('guest_phone', sa.String(20), nullable=True),
        sa.Column('guest_email', sa.String(255), nullable=True),
        sa.Column('adults', sa.Integer(), server_default='0'),
        sa.Column('children', sa.Integer(), server_default='0'),
        sa.Column('nights', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('price_per_night', sa.Numeric(10, 2), server_default='0'),
        sa.Column('total_amount', sa.Numeric(10, 2), server_default='0'),
        sa.Column('final_amount', sa.Numeric(10, 2), server_default='0'),
        sa.Column('payment_amount_type', sa.String(20), server_default='full'),
        sa.Column('deposit_percentage', sa.Integer(), nullable=True),
        sa.Column('addons', sa.Text(), nullable=True),
        sa.Column('addons_total', sa.Numeric(10, 2), server_default='0'),
        sa.Column('payment_method', sa.String(20), nullable=False, server_default='bank_transfer'),
        sa.Column('status', sa.String(20), nullable=False, server_default='reserved'),
        sa.Column('cancellation_reason', sa.String(30), nullable=True),
        sa.Column('payment_status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('suppress_notifications', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('check_out_date > check_in_date', name='ck_booking_window'),
    )
    op.create_index('ix_booking_room_dates', 'bookings', ['room_type', 'check_in_date', 'check_out_date'])
    op.create_index('ix_booking_status_payment', 'bookings', ['status', 'payment_status', 'payment_method'])

    op.create_table(
        'booking_notifications',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('booking_id', sa.String(20),
                  sa.ForeignKey('bookings.booking_id', ondelete='CASCADE'), nullable=False),
        sa.Column('kind', sa.String(40), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='claimed'),
        sa.Column('claimed_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('sent_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('booking_id', 'kind', name='uq_booking_notification_kind'),
    )
    op.create_index('ix_booking_notifications_booking_id', 'booking_notifications', ['booking_id'])

    # Default policy rows; the app also seeds missing ones at startup
    policies = sa.table(
        'notification_policies',
        sa.column('kind', sa.String),
        sa.column('is_enabled', sa.Boolean),
        sa.column('offset_days', sa.Integer),
        sa.column('send_hour', sa.Integer),
    )
    op.bulk_insert(policies, [
        {'kind': 'payment_reminder', 'is_enabled': True, 'offset_days': 3, 'send_hour': 9},
        {'kind': 'checkin_reminder', 'is_enabled': True, 'offset_days': 1, 'send_hour': 9},
        {'kind': 'feedback_request', 'is_enabled': True, 'offset_days': 1, 'send_hour': 10},
    ])


def downgrade():
    op.drop_index('ix_booking_notifications_booking_id', table_name='booking_notifications')
    op.drop_table('booking_notifications')
    op.drop_index('ix_booking_status_payment', table_name='bookings')
    op.drop_index('ix_booking_room_dates', table_name='bookings')
    op.drop_table('bookings')
    op.drop_table('notification_policies')
    op.drop_index('ix_holidays_holiday_date', table_name='holidays')
    op.drop_table('holidays')
    op.drop_index('ix_room_types_is_active', table_name='room_types')
    op.drop_table('room_types')
