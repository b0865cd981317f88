"""create_studio_schema

Revision ID: 8c1f4e2a9b37
Revises:
Create Date: 2026-10-18 09:12:44.105331

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '8c1f4e2a9b37'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def timestamps() -> list:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    ]


def soft_delete() -> list:
    return [
        sa.Column('is_deleted', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    ]


def organization() -> sa.Column:
    return sa.Column('organization_id', sa.String(length=36), nullable=True)


def organization_fk(table: str) -> sa.ForeignKeyConstraint:
    return sa.ForeignKeyConstraint(
        ['organization_id'], ['organizations.id'],
        name=op.f(f'fk_{table}_organization_id_organizations'),
    )


def upgrade() -> None:
    """Create the studio tables."""
    op.create_table(
        'organizations',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('slug', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('address', sa.String(length=500), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *timestamps(),
        *soft_delete(),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_organizations')),
        sa.UniqueConstraint('name', name=op.f('uq_organizations_name')),
    )
    op.create_index(op.f('ix_organizations_slug'), 'organizations', ['slug'], unique=True)
    op.create_index(op.f('ix_organizations_is_active'), 'organizations', ['is_active'], unique=False)
    op.create_index(op.f('ix_organizations_is_deleted'), 'organizations', ['is_deleted'], unique=False)

    op.create_table(
        'users',
        sa.Column('id', sa.String(length=128), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('role', sa.String(length=7), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('last_active', sa.DateTime(timezone=True), nullable=True),
        *timestamps(),
        *soft_delete(),
        organization(),
        organization_fk('users'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_users')),
    )
    op.create_index('ix_users_organization_email', 'users', ['organization_id', 'email'], unique=True)
    op.create_index(op.f('ix_users_organization_id'), 'users', ['organization_id'], unique=False)
    op.create_index(op.f('ix_users_is_deleted'), 'users', ['is_deleted'], unique=False)

    op.create_table(
        'classes',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('style', sa.String(length=12), nullable=False),
        sa.Column('level', sa.String(length=12), nullable=False),
        sa.Column('teacher_id', sa.String(length=128), nullable=True),
        sa.Column('schedule', sa.String(length=255), nullable=False),
        sa.Column('location', sa.String(length=255), nullable=False),
        sa.Column('starts_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('enrolled', sa.Integer(), nullable=False),
        sa.Column('enrolled_students', sa.JSON(), nullable=False),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        *timestamps(),
        *soft_delete(),
        organization(),
        organization_fk('classes'),
        sa.ForeignKeyConstraint(['teacher_id'], ['users.id'], name=op.f('fk_classes_teacher_id_users')),
        sa.CheckConstraint('capacity > 0', name=op.f('ck_classes_capacity_positive')),
        sa.CheckConstraint('price > 0', name=op.f('ck_classes_price_positive')),
        sa.CheckConstraint('enrolled >= 0 AND enrolled <= capacity', name=op.f('ck_classes_enrolled_within_capacity')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_classes')),
    )
    op.create_index(op.f('ix_classes_teacher_id'), 'classes', ['teacher_id'], unique=False)
    op.create_index(op.f('ix_classes_starts_at'), 'classes', ['starts_at'], unique=False)
    op.create_index(op.f('ix_classes_organization_id'), 'classes', ['organization_id'], unique=False)
    op.create_index(op.f('ix_classes_is_deleted'), 'classes', ['is_deleted'], unique=False)

    op.create_table(
        'enrollments',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('class_id', sa.String(length=64), nullable=False),
        sa.Column('payment_id', sa.String(length=255), nullable=False),
        sa.Column('amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('status', sa.String(length=9), nullable=False),
        sa.Column('enrolled_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        *timestamps(),
        organization(),
        organization_fk('enrollments'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name=op.f('fk_enrollments_user_id_users')),
        sa.ForeignKeyConstraint(['class_id'], ['classes.id'], name=op.f('fk_enrollments_class_id_classes')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_enrollments')),
    )
    op.create_index(op.f('ix_enrollments_user_id'), 'enrollments', ['user_id'], unique=False)
    op.create_index(op.f('ix_enrollments_class_id'), 'enrollments', ['class_id'], unique=False)
    op.create_index(op.f('ix_enrollments_payment_id'), 'enrollments', ['payment_id'], unique=False)
    op.create_index(op.f('ix_enrollments_organization_id'), 'enrollments', ['organization_id'], unique=False)
    # At most one active seat per student and class
    op.create_index(
        'uq_enrollments_active_user_class',
        'enrollments',
        ['user_id', 'class_id'],
        unique=True,
        sqlite_where=sa.text("status = 'active'"),
        postgresql_where=sa.text("status = 'active'"),
    )

    op.create_table(
        'payments',
        sa.Column('id', sa.String(length=255), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('class_id', sa.String(length=64), nullable=False),
        sa.Column('amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('status', sa.String(length=9), nullable=False),
        sa.Column('payment_method', sa.String(length=100), nullable=False),
        sa.Column('transaction_details', sa.JSON(), nullable=False),
        sa.Column('idempotency_key', sa.String(length=64), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=False),
        *timestamps(),
        organization(),
        organization_fk('payments'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name=op.f('fk_payments_user_id_users')),
        sa.ForeignKeyConstraint(['class_id'], ['classes.id'], name=op.f('fk_payments_class_id_classes')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_payments')),
    )
    op.create_index(op.f('ix_payments_user_id'), 'payments', ['user_id'], unique=False)
    op.create_index(op.f('ix_payments_class_id'), 'payments', ['class_id'], unique=False)
    op.create_index(op.f('ix_payments_idempotency_key'), 'payments', ['idempotency_key'], unique=False)
    op.create_index(op.f('ix_payments_organization_id'), 'payments', ['organization_id'], unique=False)

    op.create_table(
        'attendances',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('class_id', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('session_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=7), nullable=False),
        sa.Column('marked_by', sa.String(length=128), nullable=False),
        *timestamps(),
        organization(),
        organization_fk('attendances'),
        sa.ForeignKeyConstraint(['class_id'], ['classes.id'], name=op.f('fk_attendances_class_id_classes')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name=op.f('fk_attendances_user_id_users')),
        sa.ForeignKeyConstraint(['marked_by'], ['users.id'], name=op.f('fk_attendances_marked_by_users')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_attendances')),
        sa.UniqueConstraint('class_id', 'user_id', 'session_date', name='uq_attendance_class_user_date'),
    )
    op.create_index(op.f('ix_attendances_class_id'), 'attendances', ['class_id'], unique=False)
    op.create_index(op.f('ix_attendances_user_id'), 'attendances', ['user_id'], unique=False)
    op.create_index(op.f('ix_attendances_session_date'), 'attendances', ['session_date'], unique=False)
    op.create_index(op.f('ix_attendances_organization_id'), 'attendances', ['organization_id'], unique=False)
    op.create_index('idx_attendance_class_date', 'attendances', ['class_id', 'session_date'], unique=False)

    op.create_table(
        'webhook_attempts',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('key', sa.String(length=255), nullable=False),
        sa.Column('window_start', sa.DateTime(timezone=True), nullable=False),
        sa.Column('count', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_webhook_attempts')),
        sa.UniqueConstraint('key', 'window_start', name='uq_webhook_attempt_key_window'),
    )


def downgrade() -> None:
    """Drop the studio tables."""
    op.drop_table('webhook_attempts')
    op.drop_index('idx_attendance_class_date', table_name='attendances')
    op.drop_table('attendances')
    op.drop_table('payments')
    op.drop_index('uq_enrollments_active_user_class', table_name='enrollments')
    op.drop_table('enrollments')
    op.drop_table('classes')
    op.drop_table('users')
    op.drop_table('organizations')
