"""Add magic_link table

Revision ID: 003_add_magic_link_table
Revises: 002_add_code_and_attempt_tables
Create Date: 2026-09-14 13:00:00.000000

"""
from typing import Sequence, Union

from alembic import op  # type: ignore[attr-defined]
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '003_add_magic_link_table'
down_revision: Union[str, None] = '002_add_code_and_attempt_tables'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the magic_link table, keyed by email with a time index."""
    op.create_table(
        'magic_link',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('token', sa.String(64), nullable=False),
        sa.Column('email', sa.String(320), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_used', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('user_agent', sa.String(500), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('token', name='uq_magic_link_token'),
    )
    op.create_index(
        'ix_magic_link_email_created_at',
        'magic_link',
        ['email', 'created_at'],
    )


def downgrade() -> None:
    op.drop_index('ix_magic_link_email_created_at', table_name='magic_link')
    op.drop_table('magic_link')
