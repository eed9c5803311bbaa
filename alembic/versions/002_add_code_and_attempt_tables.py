"""Add verification_code and login_attempt tables

Revision ID: 002_add_code_and_attempt_tables
Revises: 001_initial_schema
Create Date: 2026-09-14 12:30:00.000000

"""
from typing import Sequence, Union

from alembic import op  # type: ignore[attr-defined]
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '002_add_code_and_attempt_tables'
down_revision: Union[str, None] = '001_initial_schema'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create tables for one-time codes and the login attempt audit trail."""
    code_purpose_enum = sa.Enum('login', 'signup', name='code_purpose_enum')

    op.create_table(
        'verification_code',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(320), nullable=False, comment='Normalized email the code was sent to'),
        sa.Column('code', sa.String(10), nullable=False, comment='ASCII digits, leading zeros preserved'),
        sa.Column('purpose', code_purpose_enum, nullable=False, server_default='login'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('used', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_verification_code_email_created_at',
        'verification_code',
        ['email', 'created_at'],
    )

    op.create_table(
        'login_attempt',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(320), nullable=False),
        sa.Column('success', sa.Boolean(), nullable=False),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('user_agent', sa.String(500), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_login_attempt_email_created_at',
        'login_attempt',
        ['email', 'created_at'],
    )


def downgrade() -> None:
    """Drop code and attempt tables."""
    op.drop_index('ix_login_attempt_email_created_at', table_name='login_attempt')
    op.drop_table('login_attempt')
    op.drop_index('ix_verification_code_email_created_at', table_name='verification_code')
    op.drop_table('verification_code')
    sa.Enum(name='code_purpose_enum').drop(op.get_bind(), checkfirst=True)
