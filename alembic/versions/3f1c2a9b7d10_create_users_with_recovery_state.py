"""create_users_with_recovery_state

Creates the users table, including the password recovery columns:
pending one-time code, pending continuation token, attempt/request
counters, lockout deadline and the bounded password history.

Revision ID: 3f1c2a9b7d10
Revises:
Create Date: 2026-10-17 09:12:44.104211

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f1c2a9b7d10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create users table."""
    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('hashed_password', sa.String(), nullable=False),
        sa.Column('password_history', sa.JSON(), nullable=False, server_default='[]'),
        sa.Column('full_name', sa.String(), nullable=True),
        sa.Column('role', sa.String(length=20), nullable=False, server_default='user'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),

        # Password recovery state
        sa.Column('reset_otp', sa.String(length=12), nullable=True),
        sa.Column('reset_otp_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reset_token', sa.String(length=128), nullable=True),
        sa.Column('reset_token_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reset_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reset_requests', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reset_locked_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_password_reset_at', sa.DateTime(timezone=True), nullable=True),

        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)


def downgrade() -> None:
    """Drop users table."""
    op.drop_index('ix_users_email', 'users')
    op.drop_index('ix_users_id', 'users')
    op.drop_table('users')
