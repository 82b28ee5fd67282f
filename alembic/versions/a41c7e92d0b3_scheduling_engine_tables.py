"""scheduling engine tables

Revision ID: a41c7e92d0b3
Revises:
Create Date: 2026-10-17 09:12:40.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'a41c7e92d0b3'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""

    # 1. Read-only collaborators
    op.create_table(
        'businesses',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('owner_id', sa.Uuid(), nullable=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('slug', sa.String(100), nullable=True, unique=True),
        sa.Column('timezone', sa.String(50), nullable=True),
        sa.Column('messaging_mode', sa.String(20), nullable=True),
        sa.Column('staff_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('monthly_bookings_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'))
    )

    op.create_table(
        'staff',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('business_id', sa.Uuid(), sa.ForeignKey('businesses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('display_name', sa.String(200), nullable=False),
        sa.Column('phone', sa.String(20), nullable=True),
        sa.Column('role', sa.String(20), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True)
    )
    op.create_index('ix_staff_business_id', 'staff', ['business_id'])

    op.create_table(
        'services',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('business_id', sa.Uuid(), sa.ForeignKey('businesses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('buffer_before_minutes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('buffer_after_minutes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_per_slot', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('deposit_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.CheckConstraint('duration_minutes > 0', name='ck_services_duration_positive'),
        sa.CheckConstraint('max_per_slot >= 1', name='ck_services_max_per_slot')
    )
    op.create_index('ix_services_business_id', 'services', ['business_id'])

    # 2. Calendar rules
    op.create_table(
        'availability_rules',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('business_id', sa.Uuid(), sa.ForeignKey('businesses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('staff_id', sa.Uuid(), sa.ForeignKey('staff.id', ondelete='CASCADE'), nullable=True),
        sa.Column('weekday', sa.Integer(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.CheckConstraint('weekday >= 0 AND weekday <= 6', name='ck_availability_rules_weekday'),
        sa.CheckConstraint('start_time < end_time', name='ck_availability_rules_interval')
    )
    op.create_index('ix_availability_rules_business_id', 'availability_rules', ['business_id'])
    op.create_index('ix_availability_rules_staff_id', 'availability_rules', ['staff_id'])

    op.create_table(
        'availability_exceptions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('business_id', sa.Uuid(), sa.ForeignKey('businesses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('staff_id', sa.Uuid(), sa.ForeignKey('staff.id', ondelete='CASCADE'), nullable=True),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('is_closed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('start_time', sa.Time(), nullable=True),
        sa.Column('end_time', sa.Time(), nullable=True),
        sa.Column('reason', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.UniqueConstraint('business_id', 'staff_id', 'date', name='uq_availability_exceptions_scope_date')
    )
    # NULL staff_id is distinct in a plain unique constraint
    op.execute(
        "CREATE UNIQUE INDEX uq_availability_exceptions_business_date "
        "ON availability_exceptions (business_id, date) WHERE staff_id IS NULL"
    )

    # 3. Recurring templates
    op.create_table(
        'recurring_appointments',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('business_id', sa.Uuid(), sa.ForeignKey('businesses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('service_id', sa.Uuid(), sa.ForeignKey('services.id'), nullable=False),
        sa.Column('staff_id', sa.Uuid(), sa.ForeignKey('staff.id'), nullable=True),
        sa.Column('customer_name', sa.String(), nullable=False),
        sa.Column('customer_phone', sa.String(), nullable=False),
        sa.Column('customer_email', sa.String(), nullable=True),
        sa.Column('frequency', sa.String(20), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('time_of_day', sa.Time(), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('last_expanded_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint(
            "frequency IN ('weekly', 'bi-weekly', 'monthly')", name='ck_recurring_frequency'
        ),
        sa.CheckConstraint('end_date IS NULL OR end_date >= start_date', name='ck_recurring_date_range')
    )
    op.create_index('ix_recurring_appointments_business_id', 'recurring_appointments', ['business_id'])

    # 4. Appointments
    op.create_table(
        'appointments',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('business_id', sa.Uuid(), sa.ForeignKey('businesses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('service_id', sa.Uuid(), sa.ForeignKey('services.id'), nullable=False),
        sa.Column('staff_id', sa.Uuid(), sa.ForeignKey('staff.id'), nullable=True),
        sa.Column(
            'recurring_id', sa.Uuid(),
            sa.ForeignKey('recurring_appointments.id', ondelete='SET NULL'), nullable=True
        ),
        sa.Column('occurrence_date', sa.Date(), nullable=True),
        sa.Column('customer_name', sa.String(), nullable=False),
        sa.Column('customer_phone', sa.String(), nullable=False),
        sa.Column('customer_email', sa.String(), nullable=True),
        sa.Column('customer_locale', sa.String(10), nullable=True),
        sa.Column('starts_at', sa.DateTime(), nullable=False),
        sa.Column('ends_at', sa.DateTime(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('source', sa.String(20), nullable=True),
        sa.Column('price_cents', sa.Integer(), nullable=True),
        sa.Column('deposit_cents', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()')),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.CheckConstraint('starts_at < ends_at', name='ck_appointments_interval'),
        sa.UniqueConstraint('recurring_id', 'occurrence_date', name='uq_appointments_recurring_occurrence')
    )
    op.create_index('ix_appointments_calendar', 'appointments', ['business_id', 'staff_id', 'starts_at'])
    op.create_index('ix_appointments_status', 'appointments', ['status'])
    op.create_index('ix_appointments_recurring_id', 'appointments', ['recurring_id'])

    # 5. Reminders
    op.create_table(
        'appointment_reminders',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'appointment_id', sa.Uuid(),
            sa.ForeignKey('appointments.id', ondelete='CASCADE'), nullable=False
        ),
        sa.Column('reminder_type', sa.String(20), nullable=False),
        sa.Column('scheduled_for', sa.DateTime(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('message_content', sa.Text(), nullable=False),
        sa.Column('delivery_method', sa.String(20), nullable=True),
        sa.Column('dispatched_at', sa.DateTime(), nullable=True),
        sa.Column('sent_at', sa.DateTime(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()')),
        sa.UniqueConstraint('appointment_id', 'reminder_type', name='uq_appointment_reminders_type')
    )
    op.create_index('ix_appointment_reminders_due', 'appointment_reminders', ['status', 'scheduled_for'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_appointment_reminders_due', table_name='appointment_reminders')
    op.drop_table('appointment_reminders')

    op.drop_index('ix_appointments_recurring_id', table_name='appointments')
    op.drop_index('ix_appointments_status', table_name='appointments')
    op.drop_index('ix_appointments_calendar', table_name='appointments')
    op.drop_table('appointments')

    op.drop_index('ix_recurring_appointments_business_id', table_name='recurring_appointments')
    op.drop_table('recurring_appointments')

    op.execute("DROP INDEX IF EXISTS uq_availability_exceptions_business_date")
    op.drop_table('availability_exceptions')
    op.drop_index('ix_availability_rules_staff_id', table_name='availability_rules')
    op.drop_index('ix_availability_rules_business_id', table_name='availability_rules')
    op.drop_table('availability_rules')

    op.drop_index('ix_services_business_id', table_name='services')
    op.drop_table('services')
    op.drop_index('ix_staff_business_id', table_name='staff')
    op.drop_table('staff')
    op.drop_table('businesses')
