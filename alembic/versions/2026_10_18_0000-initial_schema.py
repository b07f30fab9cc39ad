"""initial schema

Revision ID: 2026_10_18_0000
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID


# revision identifiers, used by Alembic.
revision: str = '2026_10_18_0000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create initial database schema."""

    # ========================================================================
    # Create profiles table
    # ========================================================================
    op.create_table(
        'profiles',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', UUID(as_uuid=True), nullable=False),
        sa.Column('credits', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('subscription_status', sa.String(50), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint('credits >= 0', name='ck_profile_credits_non_negative'),
        sa.UniqueConstraint('user_id', name='uq_profiles_user_id'),
    )

    # ========================================================================
    # Create generation_batches table
    # ========================================================================
    op.create_table(
        'generation_batches',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', UUID(as_uuid=True), nullable=False),
        sa.Column('tool', sa.String(100), nullable=False),
        sa.Column('scene_count', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='processing'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint('scene_count > 0', name='ck_batch_scene_count_positive'),
        sa.CheckConstraint(
            "status IN ('processing', 'completed', 'partial', 'failed')",
            name='ck_batch_status',
        ),
    )

    op.create_index('ix_generation_batches_user_id', 'generation_batches', ['user_id'])

    # ========================================================================
    # Create generations table
    # ========================================================================
    op.create_table(
        'generations',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', UUID(as_uuid=True), nullable=False),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('model', sa.String(100), nullable=False),
        sa.Column('prompt', sa.Text(), nullable=False),
        sa.Column('title', sa.String(500), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='processing'),
        sa.Column('output_url', sa.Text(), nullable=True),
        sa.Column('thumbnail_url', sa.Text(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('task_id', sa.String(255), nullable=True),
        sa.Column('provider_endpoint', sa.String(255), nullable=True),
        sa.Column('credits_used', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('batch_id', UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint('credits_used >= 0', name='ck_generation_credits_non_negative'),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name='ck_generation_status',
        ),
        sa.ForeignKeyConstraint(
            ['batch_id'], ['generation_batches.id'],
            name='fk_generations_batch', ondelete='SET NULL',
        ),
    )

    # Indexes for generations
    op.create_index('idx_generations_user_status', 'generations', ['user_id', 'status'])
    op.create_index('idx_generations_created_at', 'generations', ['created_at'])
    op.create_index('idx_generations_batch_id', 'generations', ['batch_id'], postgresql_where=sa.text('batch_id IS NOT NULL'))

    # ========================================================================
    # Create credit_transactions table
    # ========================================================================
    op.create_table(
        'credit_transactions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', UUID(as_uuid=True), nullable=False),
        sa.Column('generation_id', UUID(as_uuid=True), nullable=True),
        sa.Column('kind', sa.String(20), nullable=False),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('balance_before', sa.BigInteger(), nullable=False),
        sa.Column('balance_after', sa.BigInteger(), nullable=False),
        sa.Column('description', sa.String(), nullable=False),
        sa.Column('idempotency_key', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint('amount > 0', name='ck_credit_transaction_amount_positive'),
        sa.CheckConstraint("kind IN ('charge', 'refund')", name='ck_credit_transaction_kind'),
        sa.UniqueConstraint('idempotency_key', name='uq_credit_transactions_idempotency_key'),
    )

    # Indexes for credit_transactions
    op.create_index('ix_credit_transactions_user_id', 'credit_transactions', ['user_id'])
    op.create_index('idx_credit_transactions_created_at', 'credit_transactions', ['created_at'])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('credit_transactions')
    op.drop_table('generations')
    op.drop_table('generation_batches')
    op.drop_table('profiles')
