"""Create storefront orders and affiliate ledger tables

Revision ID: 3b7e91c4d2a0
Revises:
Create Date: 2026-10-19 09:12:41.504113

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3b7e91c4d2a0'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table('products',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('price', sa.Integer(), nullable=False),
        sa.Column('stock', sa.Integer(), nullable=False),
        sa.Column('variants', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.CheckConstraint('stock >= 0', name='ck_products_stock_non_negative'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_table('orders',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=True),
        sa.Column('status', sa.Enum('pending', 'confirmed', 'cancelled', 'processing', 'completed', name='orderstatus'), nullable=False),
        sa.Column('payment_status', sa.Enum('pending', 'verified', 'rejected', name='paymentstatus'), nullable=False),
        sa.Column('items', sa.JSON(), nullable=False),
        sa.Column('customer_info', sa.JSON(), nullable=False),
        sa.Column('shipping_fee', sa.Integer(), nullable=False),
        sa.Column('total_price', sa.Integer(), nullable=False),
        sa.Column('payment_proof_url', sa.String(), nullable=True),
        sa.Column('affiliate_id', sa.String(), nullable=True),
        sa.Column('visitor_id', sa.String(), nullable=True),
        sa.Column('referral_code', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('confirmed_at', sa.DateTime(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_orders_user_id'), 'orders', ['user_id'], unique=False)
    op.create_index(op.f('ix_orders_status'), 'orders', ['status'], unique=False)
    op.create_index(op.f('ix_orders_affiliate_id'), 'orders', ['affiliate_id'], unique=False)

    op.create_table('affiliates',
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('display_name', sa.String(), nullable=False),
        sa.Column('referral_code', sa.String(), nullable=False),
        sa.Column('total_clicks', sa.Integer(), nullable=False),
        sa.Column('total_referrals', sa.Integer(), nullable=False),
        sa.Column('total_commission', sa.Integer(), nullable=False),
        sa.Column('pending_commission', sa.Integer(), nullable=False),
        sa.Column('paid_commission', sa.Integer(), nullable=False),
        sa.Column('bank_info', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('user_id')
    )
    op.create_index(op.f('ix_affiliates_referral_code'), 'affiliates', ['referral_code'], unique=True)

    op.create_table('affiliate_referrals',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('referral_code', sa.String(), nullable=False),
        sa.Column('referrer_id', sa.String(), nullable=False),
        sa.Column('visitor_id', sa.String(), nullable=True),
        sa.Column('referred_user_id', sa.String(), nullable=True),
        sa.Column('referred_user_email', sa.String(), nullable=True),
        sa.Column('referred_user_name', sa.String(), nullable=True),
        sa.Column('status', sa.Enum('clicked', 'registered', 'ordered', 'approved', 'rejected', 'paid', 'purchased', name='referralstatus'), nullable=False),
        sa.Column('order_id', sa.UUID(), nullable=True),
        sa.Column('order_total', sa.Integer(), nullable=True),
        sa.Column('commission_amount', sa.Integer(), nullable=True),
        sa.Column('clicked_at', sa.DateTime(), nullable=True),
        sa.Column('registered_at', sa.DateTime(), nullable=True),
        sa.Column('ordered_at', sa.DateTime(), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('approved_by', sa.String(), nullable=True),
        sa.Column('rejected_at', sa.DateTime(), nullable=True),
        sa.Column('rejected_by', sa.String(), nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['referrer_id'], ['affiliates.user_id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('referral_code', 'visitor_id', name='uq_referral_code_visitor')
    )
    op.create_index(op.f('ix_affiliate_referrals_referral_code'), 'affiliate_referrals', ['referral_code'], unique=False)
    op.create_index(op.f('ix_affiliate_referrals_referrer_id'), 'affiliate_referrals', ['referrer_id'], unique=False)
    op.create_index(op.f('ix_affiliate_referrals_referred_user_id'), 'affiliate_referrals', ['referred_user_id'], unique=False)

    op.create_table('affiliate_payouts',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('affiliate_id', sa.String(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('method', sa.String(), nullable=False),
        sa.Column('status', sa.Enum('pending', 'processing', 'completed', 'rejected', name='affiliatepayoutstatus'), nullable=False),
        sa.Column('bank_info', sa.JSON(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('requested_at', sa.DateTime(), nullable=False),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('processed_by', sa.String(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('completed_by', sa.String(), nullable=True),
        sa.Column('rejected_at', sa.DateTime(), nullable=True),
        sa.Column('rejected_by', sa.String(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['affiliate_id'], ['affiliates.user_id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_affiliate_payouts_affiliate_id'), 'affiliate_payouts', ['affiliate_id'], unique=False)

    op.create_table('affiliate_commissions',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('affiliate_id', sa.String(), nullable=False),
        sa.Column('referral_id', sa.UUID(), nullable=True),
        sa.Column('order_id', sa.UUID(), nullable=False),
        sa.Column('order_total', sa.Integer(), nullable=False),
        sa.Column('commission_rate', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('commission_amount', sa.Integer(), nullable=False),
        sa.Column('status', sa.Enum('pending', 'approved', 'rejected', 'paid', name='commissionstatus'), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('approved_by', sa.String(), nullable=True),
        sa.Column('rejected_at', sa.DateTime(), nullable=True),
        sa.Column('rejected_by', sa.String(), nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('payout_id', sa.UUID(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['affiliate_id'], ['affiliates.user_id']),
        sa.ForeignKeyConstraint(['referral_id'], ['affiliate_referrals.id']),
        sa.ForeignKeyConstraint(['payout_id'], ['affiliate_payouts.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_id')
    )
    op.create_index(op.f('ix_affiliate_commissions_affiliate_id'), 'affiliate_commissions', ['affiliate_id'], unique=False)

    op.create_table('affiliate_settings',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('default_commission_rate', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('min_payout_amount', sa.Integer(), nullable=False),
        sa.Column('payout_methods', sa.JSON(), nullable=False),
        sa.Column('terms_and_conditions', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )


def downgrade() -> None:
    op.drop_table('affiliate_settings')
    op.drop_index(op.f('ix_affiliate_commissions_affiliate_id'), table_name='affiliate_commissions')
    op.drop_table('affiliate_commissions')
    op.drop_index(op.f('ix_affiliate_payouts_affiliate_id'), table_name='affiliate_payouts')
    op.drop_table('affiliate_payouts')
    op.drop_index(op.f('ix_affiliate_referrals_referred_user_id'), table_name='affiliate_referrals')
    op.drop_index(op.f('ix_affiliate_referrals_referrer_id'), table_name='affiliate_referrals')
    op.drop_index(op.f('ix_affiliate_referrals_referral_code'), table_name='affiliate_referrals')
    op.drop_table('affiliate_referrals')
    op.drop_index(op.f('ix_affiliates_referral_code'), table_name='affiliates')
    op.drop_table('affiliates')
    op.drop_index(op.f('ix_orders_affiliate_id'), table_name='orders')
    op.drop_index(op.f('ix_orders_status'), table_name='orders')
    op.drop_index(op.f('ix_orders_user_id'), table_name='orders')
    op.drop_table('orders')
    op.drop_table('products')
    sa.Enum(name='affiliatepayoutstatus').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='commissionstatus').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='referralstatus').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='paymentstatus').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='orderstatus').drop(op.get_bind(), checkfirst=True)
