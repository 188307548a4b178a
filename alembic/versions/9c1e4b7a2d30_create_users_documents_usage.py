"""create users, documents and usage tables

Revision ID: 9c1e4b7a2d30
Revises:
Create Date: 2026-10-19 09:12:44.118203

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '9c1e4b7a2d30'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'users',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('token_hash', sa.String(64), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('subscription_status', sa.String(20), nullable=True),
        sa.Column('usage_this_month', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('usage_month', sa.String(7), nullable=True),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_users_token_hash', 'users', ['token_hash'], unique=True)

    op.create_table(
        'documents',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('user_id', sa.String(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('collection', sa.String(64), nullable=False),
        sa.Column('document_id', sa.String(255), nullable=False),
        sa.Column('data', sa.JSON(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('user_id', 'collection', 'document_id'),
    )
    op.create_index('ix_documents_user_id', 'documents', ['user_id'])

    op.create_table(
        'usage',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('user_id', sa.String(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('text_length', sa.Integer(), nullable=False),
        sa.Column('estimated_cost', sa.Numeric(12, 6), nullable=False),
    )
    op.create_index('ix_usage_user_id', 'usage', ['user_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('usage')
    op.drop_table('documents')
    op.drop_index('ix_users_token_hash', table_name='users')
    op.drop_table('users')
