"""create ambassador program tables

Revision ID: create_ambassador_tables
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = 'create_ambassador_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'profiles',
        sa.Column('user_id', sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column('full_name', sa.String(255), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('avatar_url', sa.String(512), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('user_id'),
    )

    tiers = op.create_table(
        'ambassador_tiers',
        sa.Column('id', sa.String(32), nullable=False),
        sa.Column('name', sa.String(64), nullable=False),
        sa.Column('min_sales', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('commission_rate', sa.DECIMAL(5, 2), nullable=False),
        sa.Column('recurring_rate', sa.DECIMAL(5, 2), nullable=False, server_default='0'),
        sa.Column('recurring_months', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('color', sa.String(32), nullable=True),
        sa.Column('icon', sa.String(64), nullable=True),
        sa.Column('benefits', sa.JSON(), nullable=True),
        sa.Column('display_order', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('active', sa.Boolean(), nullable=True, server_default=sa.true()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_ambassador_tiers_min_sales', 'ambassador_tiers', ['min_sales'], unique=True)

    op.create_table(
        'ambassadors',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.BigInteger(), nullable=False),
        sa.Column('referral_code', sa.String(32), nullable=False),
        sa.Column('tier_id', sa.String(32), nullable=False),
        sa.Column('tier_updated_at', sa.DateTime(), nullable=True),
        sa.Column('custom_commission_rate', sa.DECIMAL(5, 2), nullable=True),
        sa.Column('lifetime_sales', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('link_clicks', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('pending_commission', sa.DECIMAL(12, 2), nullable=False, server_default='0'),
        sa.Column('total_earnings', sa.DECIMAL(12, 2), nullable=False, server_default='0'),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('pix_key', sa.String(255), nullable=True),
        sa.Column('bank_data', sa.JSON(), nullable=True),
        sa.Column('payment_preference', sa.String(20), nullable=False, server_default='pix'),
        sa.Column('minimum_payout', sa.DECIMAL(10, 2), nullable=False, server_default='0'),
        sa.Column('next_payout_date', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(), nullable=True, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.user_id']),
        sa.ForeignKeyConstraint(['tier_id'], ['ambassador_tiers.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id'),
        sa.UniqueConstraint('referral_code'),
    )
    op.create_index('ix_ambassadors_active_points', 'ambassadors', ['active', 'total_points'])
    op.create_index('ix_ambassadors_tier_id', 'ambassadors', ['tier_id'])

    op.create_table(
        'ambassador_payouts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('ambassador_id', sa.Integer(), nullable=False),
        sa.Column('reference_period', sa.String(7), nullable=False),
        sa.Column('total_sales', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('gross_amount', sa.DECIMAL(12, 2), nullable=False),
        sa.Column('net_amount', sa.DECIMAL(12, 2), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('payment_method', sa.String(32), nullable=True),
        sa.Column('scheduled_date', sa.Date(), nullable=False),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(), nullable=True, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['ambassador_id'], ['ambassadors.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_ambassador_payouts_ambassador_id', 'ambassador_payouts', ['ambassador_id'])
    op.create_index('ix_ambassador_payouts_status', 'ambassador_payouts', ['status'])
    op.create_index('ix_ambassador_payouts_scheduled_date', 'ambassador_payouts', ['scheduled_date'])

    op.create_table(
        'ambassador_referrals',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('ambassador_id', sa.Integer(), nullable=False),
        sa.Column('referred_user_id', sa.BigInteger(), nullable=True),
        sa.Column('subscription_id', sa.String(64), nullable=True),
        sa.Column('payment_reference', sa.String(128), nullable=True),
        sa.Column('plan_name', sa.String(128), nullable=False),
        sa.Column('sale_amount', sa.DECIMAL(12, 2), nullable=False),
        sa.Column('commission_rate', sa.DECIMAL(5, 2), nullable=False),
        sa.Column('commission_amount', sa.DECIMAL(12, 2), nullable=False),
        sa.Column('tier_id', sa.String(32), nullable=True),
        sa.Column('is_recurring', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('payment_confirmed_at', sa.DateTime(), nullable=True),
        sa.Column('payout_eligible_date', sa.Date(), nullable=True),
        sa.Column('payout_id', sa.Integer(), nullable=True),
        sa.Column('cancel_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(), nullable=True, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['ambassador_id'], ['ambassadors.id']),
        sa.ForeignKeyConstraint(['payout_id'], ['ambassador_payouts.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('payment_reference'),
    )
    op.create_index('ix_ambassador_referrals_ambassador_id', 'ambassador_referrals', ['ambassador_id'])
    op.create_index('ix_ambassador_referrals_status', 'ambassador_referrals', ['status'])
    op.create_index('ix_ambassador_referrals_payout_id', 'ambassador_referrals', ['payout_id'])
    op.create_index('ix_ambassador_referrals_created_at', 'ambassador_referrals', ['created_at'])

    op.create_table(
        'ambassador_referral_clicks',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('ambassador_id', sa.Integer(), nullable=False),
        sa.Column('referral_code', sa.String(32), nullable=False),
        sa.Column('utm_source', sa.String(128), nullable=True),
        sa.Column('utm_medium', sa.String(128), nullable=True),
        sa.Column('utm_campaign', sa.String(128), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['ambassador_id'], ['ambassadors.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_ambassador_clicks_ambassador_created', 'ambassador_referral_clicks', ['ambassador_id', 'created_at'])

    op.create_table(
        'ambassador_achievements',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(128), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('icon', sa.String(64), nullable=True),
        sa.Column('category', sa.String(64), nullable=True),
        sa.Column('requirement_type', sa.String(32), nullable=False),
        sa.Column('requirement_value', sa.Integer(), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('badge_color', sa.String(32), nullable=True),
        sa.Column('display_order', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('active', sa.Boolean(), nullable=True, server_default=sa.true()),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'ambassador_user_achievements',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('ambassador_id', sa.Integer(), nullable=False),
        sa.Column('achievement_id', sa.Integer(), nullable=False),
        sa.Column('unlocked_at', sa.DateTime(), nullable=True, server_default=sa.text('now()')),
        sa.Column('notified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.ForeignKeyConstraint(['ambassador_id'], ['ambassadors.id']),
        sa.ForeignKeyConstraint(['achievement_id'], ['ambassador_achievements.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('ambassador_id', 'achievement_id', name='uq_ambassador_user_achievement'),
    )

    op.create_table(
        'ambassador_points',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('ambassador_id', sa.Integer(), nullable=False),
        sa.Column('points_type', sa.String(32), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(255), nullable=True),
        sa.Column('reference_id', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['ambassador_id'], ['ambassadors.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_ambassador_points_ambassador_id', 'ambassador_points', ['ambassador_id', 'created_at'])

    op.create_table(
        'ambassador_notifications',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('ambassador_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(32), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('read_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['ambassador_id'], ['ambassadors.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_ambassador_notifications_ambassador_read', 'ambassador_notifications', ['ambassador_id', 'read'])

    op.bulk_insert(tiers, [
        {'id': 'bronze', 'name': 'Bronze', 'min_sales': 0, 'commission_rate': 5, 'recurring_rate': 0,
         'recurring_months': 0, 'color': '#b45309', 'icon': 'medal', 'display_order': 1, 'active': True,
         'benefits': ['Link de indicação exclusivo', 'Painel de acompanhamento']},
        {'id': 'silver', 'name': 'Prata', 'min_sales': 10, 'commission_rate': 8, 'recurring_rate': 3,
         'recurring_months': 6, 'color': '#9ca3af', 'icon': 'award', 'display_order': 2, 'active': True,
         'benefits': ['Comissão recorrente por 6 meses', 'Materiais de divulgação']},
        {'id': 'gold', 'name': 'Ouro', 'min_sales': 30, 'commission_rate': 12, 'recurring_rate': 5,
         'recurring_months': 12, 'color': '#eab308', 'icon': 'crown', 'display_order': 3, 'active': True,
         'benefits': ['Comissão recorrente por 12 meses', 'Destaque na página de embaixadoras']},
    ])


def downgrade() -> None:
    op.drop_index('ix_ambassador_notifications_ambassador_read', table_name='ambassador_notifications')
    op.drop_table('ambassador_notifications')
    op.drop_index('ix_ambassador_points_ambassador_id', table_name='ambassador_points')
    op.drop_table('ambassador_points')
    op.drop_table('ambassador_user_achievements')
    op.drop_table('ambassador_achievements')
    op.drop_index('ix_ambassador_clicks_ambassador_created', table_name='ambassador_referral_clicks')
    op.drop_table('ambassador_referral_clicks')
    op.drop_index('ix_ambassador_referrals_created_at', table_name='ambassador_referrals')
    op.drop_index('ix_ambassador_referrals_payout_id', table_name='ambassador_referrals')
    op.drop_index('ix_ambassador_referrals_status', table_name='ambassador_referrals')
    op.drop_index('ix_ambassador_referrals_ambassador_id', table_name='ambassador_referrals')
    op.drop_table('ambassador_referrals')
    op.drop_index('ix_ambassador_payouts_scheduled_date', table_name='ambassador_payouts')
    op.drop_index('ix_ambassador_payouts_status', table_name='ambassador_payouts')
    op.drop_index('ix_ambassador_payouts_ambassador_id', table_name='ambassador_payouts')
    op.drop_table('ambassador_payouts')
    op.drop_index('ix_ambassadors_tier_id', table_name='ambassadors')
    op.drop_index('ix_ambassadors_active_points', table_name='ambassadors')
    op.drop_table('ambassadors')
    op.drop_index('ix_ambassador_tiers_min_sales', table_name='ambassador_tiers')
    op.drop_table('ambassador_tiers')
    op.drop_table('profiles')
