"""initial schema: users, clients, appointments, worker visits, sms logs, settings

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-18 09:00:00
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None

user_role = sa.Enum('ADMIN', 'ENGINEER', name='userrole')
appointment_status = sa.Enum('SCHEDULED', 'OTP_SENT', 'VERIFIED', 'COMPLETED', 'CANCELLED', name='appointmentstatus')
visit_status = sa.Enum('PENDING', 'OTP_VERIFIED', 'COMPLETED', name='visitstatus')


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=False),
        sa.Column('role', user_role, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
    op.create_index(op.f('ix_users_phone'), 'users', ['phone'], unique=False)

    op.create_table(
        'clients',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('address', sa.String(), nullable=True),
        sa.Column('primary_contact', sa.String(length=20), nullable=False),
        sa.Column('secondary_contact', sa.String(length=20), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_clients_name'), 'clients', ['name'], unique=False)
    op.create_index(op.f('ix_clients_primary_contact'), 'clients', ['primary_contact'], unique=False)

    op.create_table(
        'appointments',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('engineer_id', sa.String(), nullable=False),
        sa.Column('client_id', sa.String(), nullable=False),
        sa.Column('visit_date', sa.DateTime(), nullable=False),
        sa.Column('purpose', sa.String(), nullable=True),
        sa.Column('site_address', sa.String(), nullable=True),
        sa.Column('otp_mobile_number', sa.String(length=20), nullable=True),
        sa.Column('status', appointment_status, nullable=False),
        sa.Column('otp', sa.String(length=10), nullable=True),
        sa.Column('otp_expires_at', sa.DateTime(), nullable=True),
        sa.Column('otp_sent_at', sa.DateTime(), nullable=True),
        sa.Column('otp_attempts', sa.Integer(), nullable=False),
        sa.Column('verified_at', sa.DateTime(), nullable=True),
        sa.Column('feedback', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['engineer_id'], ['users.id']),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_appointments_engineer_id'), 'appointments', ['engineer_id'], unique=False)
    op.create_index(op.f('ix_appointments_client_id'), 'appointments', ['client_id'], unique=False)
    op.create_index(op.f('ix_appointments_visit_date'), 'appointments', ['visit_date'], unique=False)
    op.create_index(op.f('ix_appointments_status'), 'appointments', ['status'], unique=False)

    op.create_table(
        'worker_visits',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('engineer_id', sa.String(), nullable=False),
        sa.Column('client_id', sa.String(), nullable=False),
        sa.Column('visit_date', sa.DateTime(), nullable=False),
        sa.Column('site_address', sa.String(), nullable=True),
        sa.Column('otp', sa.String(length=10), nullable=True),
        sa.Column('otp_sent_at', sa.DateTime(), nullable=True),
        sa.Column('otp_expires_at', sa.DateTime(), nullable=True),
        sa.Column('status', visit_status, nullable=False),
        sa.Column('verified_at', sa.DateTime(), nullable=True),
        sa.Column('worker_count', sa.Integer(), nullable=True),
        sa.Column('remarks', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['engineer_id'], ['users.id']),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_worker_visits_engineer_id'), 'worker_visits', ['engineer_id'], unique=False)
    op.create_index(op.f('ix_worker_visits_client_id'), 'worker_visits', ['client_id'], unique=False)
    op.create_index(op.f('ix_worker_visits_visit_date'), 'worker_visits', ['visit_date'], unique=False)
    op.create_index(op.f('ix_worker_visits_status'), 'worker_visits', ['status'], unique=False)

    op.create_table(
        'sms_logs',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('phone', sa.String(length=50), nullable=False),
        sa.Column('message', sa.String(), nullable=False),
        sa.Column('status', sa.String(length=10), nullable=False),
        sa.Column('provider', sa.String(length=50), nullable=True),
        sa.Column('provider_id', sa.String(length=200), nullable=True),
        sa.Column('error', sa.String(), nullable=True),
        sa.Column('sent_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_sms_logs_phone'), 'sms_logs', ['phone'], unique=False)
    op.create_index(op.f('ix_sms_logs_sent_at'), 'sms_logs', ['sent_at'], unique=False)

    op.create_table(
        'settings',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('key', sa.String(length=100), nullable=False),
        sa.Column('value', sa.String(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_settings_key'), 'settings', ['key'], unique=True)


def downgrade() -> None:
    op.drop_index(op.f('ix_settings_key'), table_name='settings')
    op.drop_table('settings')
    op.drop_index(op.f('ix_sms_logs_sent_at'), table_name='sms_logs')
    op.drop_index(op.f('ix_sms_logs_phone'), table_name='sms_logs')
    op.drop_table('sms_logs')
    op.drop_index(op.f('ix_worker_visits_status'), table_name='worker_visits')
    op.drop_index(op.f('ix_worker_visits_visit_date'), table_name='worker_visits')
    op.drop_index(op.f('ix_worker_visits_client_id'), table_name='worker_visits')
    op.drop_index(op.f('ix_worker_visits_engineer_id'), table_name='worker_visits')
    op.drop_table('worker_visits')
    op.drop_index(op.f('ix_appointments_status'), table_name='appointments')
    op.drop_index(op.f('ix_appointments_visit_date'), table_name='appointments')
    op.drop_index(op.f('ix_appointments_client_id'), table_name='appointments')
    op.drop_index(op.f('ix_appointments_engineer_id'), table_name='appointments')
    op.drop_table('appointments')
    op.drop_index(op.f('ix_clients_primary_contact'), table_name='clients')
    op.drop_index(op.f('ix_clients_name'), table_name='clients')
    op.drop_table('clients')
    op.drop_index(op.f('ix_users_phone'), table_name='users')
    op.drop_index(op.f('ix_users_email'), table_name='users')
    op.drop_table('users')
    visit_status.drop(op.get_bind(), checkfirst=True)
    appointment_status.drop(op.get_bind(), checkfirst=True)
    user_role.drop(op.get_bind(), checkfirst=True)
