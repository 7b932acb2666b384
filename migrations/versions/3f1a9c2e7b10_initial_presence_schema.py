"""initial presence schema: offices, employees, face profiles, attendance events

Revision ID: 3f1a9c2e7b10
Revises:
Create Date: 2026-10-16 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f1a9c2e7b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'offices',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('geo_lat', sa.Float(), nullable=False),
        sa.Column('geo_lon', sa.Float(), nullable=False),
        sa.Column('geo_radius_m', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('name'),
    )

    op.create_table(
        'employees',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('office_id', sa.Integer(), sa.ForeignKey('offices.id', ondelete='RESTRICT'), nullable=True),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=160), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('face_registered', sa.Boolean(), nullable=False),
        sa.Column('face_template_id', sa.Integer(), nullable=True),
        sa.Column('face_registered_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('code'),
        sa.UniqueConstraint('email'),
    )
    op.create_index('ix_employees_office_id', 'employees', ['office_id'])

    op.create_table(
        'employee_face_profiles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False),
        sa.Column('image_url', sa.Text(), nullable=True),
        sa.Column('embedding', sa.JSON().with_variant(postgresql.JSONB(), 'postgresql'), nullable=False),
        sa.Column('embedding_version', sa.String(length=50), nullable=False),
        sa.Column('confidence', sa.Float(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_employee_face_profiles_employee_id', 'employee_face_profiles', ['employee_id'])

    op.create_table(
        'attendance_events',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False),
        sa.Column('office_id', sa.Integer(), sa.ForeignKey('offices.id', ondelete='SET NULL'), nullable=True),
        sa.Column('ts', sa.DateTime(), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('lat', sa.Float(), nullable=True),
        sa.Column('lon', sa.Float(), nullable=True),
        sa.Column('accuracy_m', sa.Float(), nullable=True),
        sa.Column('distance_m', sa.Float(), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('device_info', sa.JSON(), nullable=True),
        sa.Column('photo_url', sa.Text(), nullable=True),
        sa.Column('qr_token', sa.Text(), nullable=True),
        sa.Column('comment', sa.String(length=500), nullable=True),
        sa.Column('gps_verified', sa.Boolean(), nullable=False),
        sa.Column('qr_verified', sa.Boolean(), nullable=False),
        sa.Column('ip_verified', sa.Boolean(), nullable=False),
        sa.Column('photo_verified', sa.Boolean(), nullable=False),
        sa.Column('face_verified', sa.Boolean(), nullable=False),
        sa.Column('verified', sa.Boolean(), nullable=False),
        sa.Column('face_similarity', sa.Float(), nullable=True),
        sa.Column('face_confidence', sa.Float(), nullable=True),
        sa.Column('is_suspicious', sa.Boolean(), nullable=False),
        sa.Column('suspicious_reasons', sa.JSON(), nullable=False),
        sa.Column('is_late', sa.Boolean(), nullable=False),
        sa.Column('is_early_leave', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("kind in ('check-in','check-out')", name='ck_attendance_event_kind'),
        sa.CheckConstraint("not (is_late and kind = 'check-out')", name='ck_attendance_event_late_in'),
        sa.CheckConstraint("not (is_early_leave and kind = 'check-in')", name='ck_attendance_event_early_out'),
    )
    op.create_index('ix_attendance_events_employee_id', 'attendance_events', ['employee_id'])
    op.create_index('ix_attendance_events_office_id', 'attendance_events', ['office_id'])
    op.create_index('ix_attendance_events_ts', 'attendance_events', ['ts'])
    op.create_index('ix_attendance_event_employee_ts', 'attendance_events', ['employee_id', 'ts'])


def downgrade() -> None:
    op.drop_index('ix_attendance_event_employee_ts', table_name='attendance_events')
    op.drop_index('ix_attendance_events_ts', table_name='attendance_events')
    op.drop_index('ix_attendance_events_office_id', table_name='attendance_events')
    op.drop_index('ix_attendance_events_employee_id', table_name='attendance_events')
    op.drop_table('attendance_events')
    op.drop_index('ix_employee_face_profiles_employee_id', table_name='employee_face_profiles')
    op.drop_table('employee_face_profiles')
    op.drop_index('ix_employees_office_id', table_name='employees')
    op.drop_table('employees')
    op.drop_table('offices')
