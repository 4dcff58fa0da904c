"""create escrow core tables

Revision ID: create_escrow_core_20261019
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = 'create_escrow_core_20261019'
down_revision = None
branch_labels = None
depends_on = None

USER_ROLES = ('USER', 'MODERATOR', 'ADMIN')
ACTIVE_ORDER_PREDICATE = sa.text("status IN ('PENDING_DELIVERY', 'DISPUTED')")


def _base_columns():
    return [
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade():
    op.create_table(
        'users',
        *_base_columns(),
        sa.Column('username', sa.String(length=50), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('role', sa.Enum(*USER_ROLES, name='user_role'), nullable=False, server_default='USER'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table(
        'wallets',
        *_base_columns(),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('balance_available', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('balance_held', sa.BigInteger(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_wallets_user_id'),
        sa.CheckConstraint('balance_available >= 0', name='check_wallets_available_non_negative'),
        sa.CheckConstraint('balance_held >= 0', name='check_wallets_held_non_negative'),
    )
    op.create_index('ix_wallets_user_id', 'wallets', ['user_id'], unique=True)

    op.create_table(
        'wallet_transactions',
        *_base_columns(),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('type', sa.Enum('DEPOSIT', 'WITHDRAWAL', 'WITHDRAW_REQUEST', 'HOLD', 'RELEASE', 'REFUND', name='wallet_transaction_type'), nullable=False),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('status', sa.Enum('SUCCESS', 'FAILED', 'PENDING', name='wallet_transaction_status'), nullable=False, server_default='SUCCESS'),
        sa.Column('provider', sa.Enum('INTERNAL', 'PAYTR', name='wallet_transaction_provider'), nullable=False, server_default='INTERNAL'),
        sa.Column('reference_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_wallet_transactions_user_id'),
        sa.CheckConstraint('amount > 0', name='check_wallet_transactions_amount_positive'),
    )
    op.create_index('ix_wallet_transactions_user_id', 'wallet_transactions', ['user_id'])
    op.create_index('ix_wallet_transactions_type', 'wallet_transactions', ['type'])
    op.create_index('ix_wallet_transactions_status', 'wallet_transactions', ['status'])
    op.create_index('ix_wallet_transactions_reference_id', 'wallet_transactions', ['reference_id'])
    op.create_index('ix_wallet_transactions_user_created', 'wallet_transactions', ['user_id', 'created_at'])

    op.create_table(
        'marketplace_listings',
        *_base_columns(),
        sa.Column('seller_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('status', sa.Enum('PENDING', 'ACTIVE', 'SOLD', 'REJECTED', name='listing_status'), nullable=False, server_default='PENDING'),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['seller_id'], ['users.id'], name='fk_marketplace_listings_seller_id'),
        sa.CheckConstraint('price > 0', name='check_marketplace_listings_price_positive'),
    )
    op.create_index('ix_marketplace_listings_seller_id', 'marketplace_listings', ['seller_id'])
    op.create_index('ix_marketplace_listings_status', 'marketplace_listings', ['status'])

    op.create_table(
        'marketplace_orders',
        *_base_columns(),
        sa.Column('listing_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('buyer_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('seller_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('status', sa.Enum('PENDING_DELIVERY', 'DISPUTED', 'COMPLETED', 'REFUNDED', 'CANCELLED', name='order_status'), nullable=False, server_default='PENDING_DELIVERY'),
        sa.Column('auto_release_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('disputed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['listing_id'], ['marketplace_listings.id'], name='fk_marketplace_orders_listing_id'),
        sa.ForeignKeyConstraint(['buyer_id'], ['users.id'], name='fk_marketplace_orders_buyer_id'),
        sa.ForeignKeyConstraint(['seller_id'], ['users.id'], name='fk_marketplace_orders_seller_id'),
        sa.CheckConstraint('amount > 0', name='check_marketplace_orders_amount_positive'),
    )
    op.create_index('ix_marketplace_orders_listing_id', 'marketplace_orders', ['listing_id'])
    op.create_index('ix_marketplace_orders_buyer_id', 'marketplace_orders', ['buyer_id'])
    op.create_index('ix_marketplace_orders_seller_id', 'marketplace_orders', ['seller_id'])
    op.create_index('ix_marketplace_orders_status', 'marketplace_orders', ['status'])
    op.create_index('ix_marketplace_orders_auto_release_at', 'marketplace_orders', ['auto_release_at'])
    op.create_index('ix_marketplace_orders_status_auto_release', 'marketplace_orders', ['status', 'auto_release_at'])
    # At most one non-terminal order per listing
    op.create_index(
        'uq_marketplace_orders_active_listing',
        'marketplace_orders',
        ['listing_id'],
        unique=True,
        postgresql_where=ACTIVE_ORDER_PREDICATE,
        sqlite_where=ACTIVE_ORDER_PREDICATE,
    )

    op.create_table(
        'trade_conversations',
        *_base_columns(),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('buyer_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('seller_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('is_locked', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('locked_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['order_id'], ['marketplace_orders.id'], name='fk_trade_conversations_order_id'),
        sa.ForeignKeyConstraint(['buyer_id'], ['users.id'], name='fk_trade_conversations_buyer_id'),
        sa.ForeignKeyConstraint(['seller_id'], ['users.id'], name='fk_trade_conversations_seller_id'),
    )
    op.create_index('ix_trade_conversations_order_id', 'trade_conversations', ['order_id'], unique=True)

    op.create_table(
        'disputes',
        *_base_columns(),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('opened_by_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('reason', sa.String(length=500), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('status', sa.Enum('OPEN', 'RESOLVED', name='dispute_status'), nullable=False, server_default='OPEN'),
        sa.Column('resolution', sa.Enum('REFUND_BUYER', 'RELEASE_SELLER', 'PARTIAL', name='dispute_resolution'), nullable=True),
        sa.Column('resolved_by_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['order_id'], ['marketplace_orders.id'], name='fk_disputes_order_id'),
        sa.ForeignKeyConstraint(['opened_by_id'], ['users.id'], name='fk_disputes_opened_by_id'),
        sa.ForeignKeyConstraint(['resolved_by_id'], ['users.id'], name='fk_disputes_resolved_by_id'),
    )
    op.create_index('ix_disputes_order_id', 'disputes', ['order_id'], unique=True)
    op.create_index('ix_disputes_opened_by_id', 'disputes', ['opened_by_id'])
    op.create_index('ix_disputes_status', 'disputes', ['status'])

    op.create_table(
        'notifications',
        *_base_columns(),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('actor_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('type', sa.String(length=50), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('url', sa.String(length=500), nullable=True),
        sa.Column('target_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_notifications_user_id'),
        sa.ForeignKeyConstraint(['actor_id'], ['users.id'], name='fk_notifications_actor_id'),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])
    op.create_index('ix_notifications_type', 'notifications', ['type'])

    op.create_table(
        'audit_logs',
        *_base_columns(),
        sa.Column('actor_user_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('actor_role', sa.Enum(*USER_ROLES, name='actor_role'), nullable=False),
        sa.Column('action', sa.String(length=100), nullable=False),
        sa.Column('entity_type', sa.String(length=50), nullable=False),
        sa.Column('entity_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('before', sa.JSON(), nullable=True),
        sa.Column('after', sa.JSON(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('ip', sa.String(length=45), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['actor_user_id'], ['users.id'], name='fk_audit_logs_actor_user_id'),
    )
    op.create_index('ix_audit_logs_actor_user_id', 'audit_logs', ['actor_user_id'])
    op.create_index('ix_audit_logs_actor_role', 'audit_logs', ['actor_role'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_entity_type', 'audit_logs', ['entity_type'])
    op.create_index('ix_audit_logs_entity_id', 'audit_logs', ['entity_id'])


def downgrade():
    op.drop_table('audit_logs')
    op.drop_table('notifications')
    op.drop_table('disputes')
    op.drop_table('trade_conversations')
    op.drop_index('uq_marketplace_orders_active_listing', table_name='marketplace_orders')
    op.drop_table('marketplace_orders')
    op.drop_table('marketplace_listings')
    op.drop_table('wallet_transactions')
    op.drop_table('wallets')
    op.drop_table('users')

    for enum_name in (
        'actor_role', 'dispute_resolution', 'dispute_status', 'order_status',
        'listing_status', 'wallet_transaction_provider', 'wallet_transaction_status',
        'wallet_transaction_type', 'user_role',
    ):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
