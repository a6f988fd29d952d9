"""create_appointment_schema

Revision ID: 3f1c9a7d2b10
Revises:
Create Date: 2024-05-02 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from lead_crm.db.base import UUIDType

# revision identifiers, used by Alembic.
revision: str = '3f1c9a7d2b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    ]


def _actors() -> list[sa.Column]:
    return [
        sa.Column('created_by', sa.String(length=100), nullable=True),
        sa.Column('updated_by', sa.String(length=100), nullable=True),
    ]


def _appointment_columns(owner_column: str, owner_table: str) -> list:
    return [
        sa.Column('id', UUIDType(), nullable=False),
        sa.Column(owner_column, UUIDType(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, comment='upcoming, done, missed, cancelled'),
        sa.Column('start_datetime', sa.DateTime(timezone=True), nullable=False, comment='UTC, derived from the primary timeslot'),
        sa.Column('end_datetime', sa.DateTime(timezone=True), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('outcome_code', sa.String(length=10), nullable=True),
        sa.Column('outcome_notes', sa.Text(), nullable=True),
        *_timestamps(),
        *_actors(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint([owner_column], [f'{owner_table}.id'], ondelete='CASCADE'),
    ]


def _link_columns(appointment_table: str) -> list:
    return [
        sa.Column('appointment_id', UUIDType(), nullable=False),
        sa.Column('timeslot_id', UUIDType(), nullable=False),
        sa.Column('is_primary', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('appointment_id', 'timeslot_id'),
        sa.ForeignKeyConstraint(['appointment_id'], [f'{appointment_table}.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['timeslot_id'], ['timeslots.id'], ondelete='RESTRICT'),
    ]


def upgrade() -> None:
    """Create timeslot, owner, appointment and link tables."""
    op.create_table('timeslots',
        sa.Column('id', UUIDType(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('max_capacity', sa.Integer(), nullable=False),
        sa.Column('occupied_count', sa.Integer(), nullable=False),
        sa.Column('disabled', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('occupied_count >= 0', name='ck_timeslot_occupied_non_negative'),
    )
    op.create_index('ix_timeslots_date', 'timeslots', ['date'])
    op.create_index('ix_timeslot_date_start', 'timeslots', ['date', 'start_time'])

    op.create_table('prospects',
        sa.Column('id', UUIDType(), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('phone_number', sa.String(length=50), nullable=False, comment='Country-code prefixed, e.g. +6591234567'),
        sa.Column('phone_number_2', sa.String(length=50), nullable=True),
        sa.Column('phone_number_3', sa.String(length=50), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=30), nullable=False),
        sa.Column('source', sa.String(length=50), nullable=True),
        sa.Column('lead_type', sa.String(length=20), nullable=False, comment='new or reloan'),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('employment_status', sa.String(length=100), nullable=True),
        sa.Column('loan_purpose', sa.String(length=255), nullable=True),
        sa.Column('outcome_code', sa.String(length=10), nullable=True),
        sa.Column('outcome_notes', sa.Text(), nullable=True),
        *_timestamps(),
        *_actors(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_prospects_phone_number', 'prospects', ['phone_number'])
    op.create_index('ix_prospect_phone_2', 'prospects', ['phone_number_2'])
    op.create_index('ix_prospect_phone_3', 'prospects', ['phone_number_3'])
    op.create_index('ix_prospects_status', 'prospects', ['status'])

    op.create_table('customers',
        sa.Column('id', UUIDType(), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('phone_number', sa.String(length=50), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=30), nullable=False),
        sa.Column('outcome_code', sa.String(length=10), nullable=True),
        sa.Column('outcome_notes', sa.Text(), nullable=True),
        *_timestamps(),
        *_actors(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_customers_phone_number', 'customers', ['phone_number'])
    op.create_index('ix_customers_status', 'customers', ['status'])

    op.create_table('prospect_appointments', *_appointment_columns('prospect_id', 'prospects'))
    op.create_index('ix_prospect_appointments_prospect_id', 'prospect_appointments', ['prospect_id'])
    op.create_index('ix_prospect_appointments_status', 'prospect_appointments', ['status'])
    op.create_index('ix_prospect_appointments_start_datetime', 'prospect_appointments', ['start_datetime'])
    op.create_index('ix_prospect_appt_status_start', 'prospect_appointments', ['status', 'start_datetime'])

    op.create_table('customer_appointments', *_appointment_columns('customer_id', 'customers'))
    op.create_index('ix_customer_appointments_customer_id', 'customer_appointments', ['customer_id'])
    op.create_index('ix_customer_appointments_status', 'customer_appointments', ['status'])
    op.create_index('ix_customer_appointments_start_datetime', 'customer_appointments', ['start_datetime'])
    op.create_index('ix_customer_appt_status_start', 'customer_appointments', ['status', 'start_datetime'])

    op.create_table('prospect_appointment_timeslots', *_link_columns('prospect_appointments'))
    op.create_index('ix_prospect_appointment_timeslots_timeslot_id', 'prospect_appointment_timeslots', ['timeslot_id'])

    op.create_table('customer_appointment_timeslots', *_link_columns('customer_appointments'))
    op.create_index('ix_customer_appointment_timeslots_timeslot_id', 'customer_appointment_timeslots', ['timeslot_id'])


def downgrade() -> None:
    """Drop all appointment schema tables."""
    op.drop_index('ix_customer_appointment_timeslots_timeslot_id', 'customer_appointment_timeslots')
    op.drop_table('customer_appointment_timeslots')
    op.drop_index('ix_prospect_appointment_timeslots_timeslot_id', 'prospect_appointment_timeslots')
    op.drop_table('prospect_appointment_timeslots')

    for table, owner, short in (
        ('customer_appointments', 'customer', 'customer_appt'),
        ('prospect_appointments', 'prospect', 'prospect_appt'),
    ):
        op.drop_index(f'ix_{short}_status_start', table)
        op.drop_index(f'ix_{table}_start_datetime', table)
        op.drop_index(f'ix_{table}_status', table)
        op.drop_index(f'ix_{table}_{owner}_id', table)
        op.drop_table(table)

    op.drop_index('ix_customers_status', 'customers')
    op.drop_index('ix_customers_phone_number', 'customers')
    op.drop_table('customers')

    op.drop_index('ix_prospects_status', 'prospects')
    op.drop_index('ix_prospect_phone_3', 'prospects')
    op.drop_index('ix_prospect_phone_2', 'prospects')
    op.drop_index('ix_prospects_phone_number', 'prospects')
    op.drop_table('prospects')

    op.drop_index('ix_timeslot_date_start', 'timeslots')
    op.drop_index('ix_timeslots_date', 'timeslots')
    op.drop_table('timeslots')
