"""Create referral engine tables

Revision ID: 20261017_000001
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261017_000001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # User directory (owned by the account subsystem, read by the engine)
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_name', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('referred_by_code', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_users_user_name', 'users', ['user_name'], unique=True)
    op.create_index('ix_users_referred_by_code', 'users', ['referred_by_code'])

    # Commission ledger
    op.create_table(
        'commission_records',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('beneficiary_id', sa.Integer(), nullable=False),
        sa.Column('referred_user_id', sa.Integer(), nullable=False),
        sa.Column('source_transaction', sa.String(128), nullable=False),
        sa.Column('source_transaction_model', sa.String(32), nullable=False),
        sa.Column('generation', sa.Integer(), nullable=False),
        sa.Column('purchase_type', sa.String(16), nullable=False),
        sa.Column('currency', sa.String(8), nullable=False),
        sa.Column('amount', sa.DECIMAL(18, 8), nullable=False, server_default='0'),
        sa.Column('status', sa.String(16), nullable=False, server_default='completed'),
        sa.Column('base_amount', sa.DECIMAL(18, 8), nullable=False),
        sa.Column('rate', sa.DECIMAL(7, 4), nullable=False),
        sa.Column('calculated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('rolled_back_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rollback_reason', sa.String(500), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['beneficiary_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['referred_user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'beneficiary_id', 'source_transaction', 'generation',
            name='uq_commission_beneficiary_source_generation',
        ),
        sa.CheckConstraint('amount >= 0', name='check_commission_amount_non_negative'),
        sa.CheckConstraint('generation IN (1, 2, 3)', name='check_commission_generation_range'),
        sa.CheckConstraint(
            "status IN ('pending', 'completed', 'failed', 'rolled_back')",
            name='check_commission_status_values',
        ),
    )
    op.create_index('ix_commission_records_referred_user_id', 'commission_records', ['referred_user_id'])
    op.create_index('idx_commission_beneficiary_status', 'commission_records', ['beneficiary_id', 'status'])
    op.create_index(
        'idx_commission_beneficiary_generation_status',
        'commission_records',
        ['beneficiary_id', 'generation', 'status'],
    )
    op.create_index(
        'idx_commission_source',
        'commission_records',
        ['source_transaction', 'source_transaction_model'],
    )
    op.create_index(
        'idx_commission_created_desc',
        'commission_records',
        [sa.text('created_at DESC')],
    )

    # Per-user aggregates
    op.create_table(
        'referral_stats',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('referred_users', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_earnings', sa.DECIMAL(18, 8), nullable=False, server_default='0'),
        sa.Column('gen1_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('gen1_earnings', sa.DECIMAL(18, 8), nullable=False, server_default='0'),
        sa.Column('gen2_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('gen2_earnings', sa.DECIMAL(18, 8), nullable=False, server_default='0'),
        sa.Column('gen3_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('gen3_earnings', sa.DECIMAL(18, 8), nullable=False, server_default='0'),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('referred_users >= 0', name='check_stats_referred_users_non_negative'),
        sa.CheckConstraint('total_earnings >= 0', name='check_stats_total_earnings_non_negative'),
        sa.CheckConstraint('gen1_count >= 0', name='check_stats_gen1_count_non_negative'),
        sa.CheckConstraint('gen2_count >= 0', name='check_stats_gen2_count_non_negative'),
        sa.CheckConstraint('gen3_count >= 0', name='check_stats_gen3_count_non_negative'),
        sa.CheckConstraint('gen1_earnings >= 0', name='check_stats_gen1_earnings_non_negative'),
        sa.CheckConstraint('gen2_earnings >= 0', name='check_stats_gen2_earnings_non_negative'),
        sa.CheckConstraint('gen3_earnings >= 0', name='check_stats_gen3_earnings_non_negative'),
    )
    op.create_index('ix_referral_stats_user_id', 'referral_stats', ['user_id'], unique=True)

    # Commission settings (single row, id = 1)
    op.create_table(
        'site_config',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('gen1_rate', sa.DECIMAL(7, 4), nullable=True),
        sa.Column('gen2_rate', sa.DECIMAL(7, 4), nullable=True),
        sa.Column('gen3_rate', sa.DECIMAL(7, 4), nullable=True),
        sa.Column('cofounder_ratio', sa.Integer(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )

    # Counts issued at signup
    op.create_table(
        'referral_registrations',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('ancestor_id', sa.Integer(), nullable=False),
        sa.Column('referred_user_id', sa.Integer(), nullable=False),
        sa.Column('generation', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['ancestor_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['referred_user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'ancestor_id', 'referred_user_id', 'generation',
            name='uq_registration_ancestor_referred_generation',
        ),
    )
    op.create_index('ix_referral_registrations_ancestor_id', 'referral_registrations', ['ancestor_id'])
    op.create_index('ix_referral_registrations_referred_user_id', 'referral_registrations', ['referred_user_id'])


def downgrade() -> None:
    op.drop_index('ix_referral_registrations_referred_user_id', 'referral_registrations')
    op.drop_index('ix_referral_registrations_ancestor_id', 'referral_registrations')
    op.drop_table('referral_registrations')

    op.drop_table('site_config')

    op.drop_index('ix_referral_stats_user_id', 'referral_stats')
    op.drop_table('referral_stats')

    op.drop_index('idx_commission_created_desc', 'commission_records')
    op.drop_index('idx_commission_source', 'commission_records')
    op.drop_index('idx_commission_beneficiary_generation_status', 'commission_records')
    op.drop_index('idx_commission_beneficiary_status', 'commission_records')
    op.drop_index('ix_commission_records_referred_user_id', 'commission_records')
    op.drop_table('commission_records')

    op.drop_index('ix_users_referred_by_code', 'users')
    op.drop_index('ix_users_user_name', 'users')
    op.drop_table('users')
