"""Initial schema with the identity table

Identities are owned by the surrounding application and keyed by normalized
email. This migration is idempotent and can be run against a database where
the table already exists.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-09-14 12:00:00.000000
"""

from typing import Sequence, Union

from alembic import op  # type: ignore[attr-defined]
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the identity table (idempotent)."""
    connection = op.get_bind()
    inspector = sa.inspect(connection)
    if 'identity' in inspector.get_table_names():
        return

    op.create_table(
        'identity',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(320), nullable=False,
                  comment='Normalized (trimmed, lower-cased) email address'),
        sa.Column('name', sa.String(50), nullable=False,
                  comment='Display name captured during profile completion'),
        sa.Column('account_type', sa.String(20), nullable=True, comment='individual or organization'),
        sa.Column('purpose', sa.String(200), nullable=True, comment='Free-form reason given at signup'),
        sa.Column('email_verified', sa.Boolean(), nullable=False, server_default=sa.false(),
                  comment='Whether control of the email address has been proven'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true(),
                  comment='Deactivated identities cannot hold sessions'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_identity_email', 'identity', ['email'], unique=True)


def downgrade() -> None:
    """Drop the identity table."""
    op.drop_index('ix_identity_email', table_name='identity')
    op.drop_table('identity')
