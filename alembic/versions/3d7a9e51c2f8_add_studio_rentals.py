"""add_studio_rentals

Revision ID: 3d7a9e51c2f8
Revises: 8c1f4e2a9b37
Create Date: 2026-10-18 16:40:02.518204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3d7a9e51c2f8'
down_revision: Union[str, Sequence[str], None] = '8c1f4e2a9b37'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create studio rentals and their slot holds."""
    op.create_table(
        'studio_rentals',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('studio_id', sa.String(length=64), nullable=False),
        sa.Column('rental_date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('purpose', sa.String(length=500), nullable=False),
        sa.Column('status', sa.String(length=9), nullable=False),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('organization_id', sa.String(length=36), nullable=True),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], name=op.f('fk_studio_rentals_organization_id_organizations')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name=op.f('fk_studio_rentals_user_id_users')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_studio_rentals')),
    )
    op.create_index(op.f('ix_studio_rentals_user_id'), 'studio_rentals', ['user_id'], unique=False)
    op.create_index(op.f('ix_studio_rentals_organization_id'), 'studio_rentals', ['organization_id'], unique=False)
    op.create_index('idx_studio_rentals_studio_date', 'studio_rentals', ['studio_id', 'rental_date'], unique=False)

    op.create_table(
        'studio_rental_slots',
        sa.Column('studio_id', sa.String(length=64), nullable=False),
        sa.Column('rental_date', sa.Date(), nullable=False),
        sa.Column('slot_start', sa.Time(), nullable=False),
        sa.Column('rental_id', sa.String(length=36), nullable=False),
        sa.ForeignKeyConstraint(['rental_id'], ['studio_rentals.id'], name=op.f('fk_studio_rental_slots_rental_id_studio_rentals')),
        sa.PrimaryKeyConstraint('studio_id', 'rental_date', 'slot_start', name=op.f('pk_studio_rental_slots')),
    )
    op.create_index(op.f('ix_studio_rental_slots_rental_id'), 'studio_rental_slots', ['rental_id'], unique=False)


def downgrade() -> None:
    """Drop studio rentals."""
    op.drop_table('studio_rental_slots')
    op.drop_index('idx_studio_rentals_studio_date', table_name='studio_rentals')
    op.drop_table('studio_rentals')
