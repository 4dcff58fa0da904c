"""add withdrawal requests and payout transaction type

Revision ID: add_withdrawal_requests_20261019
Revises: create_escrow_core_20261019
Create Date: 2026-10-19 14:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = 'add_withdrawal_requests_20261019'
down_revision = 'create_escrow_core_20261019'
branch_labels = None
depends_on = None

WITHDRAWAL_STATUSES = ('PENDING', 'APPROVED', 'REJECTED', 'PAID')


def upgrade() -> None:
    # Step 1: Extend ledger enums (PostgreSQL only; SQLite stores enums as VARCHAR)
    if op.get_bind().dialect.name == 'postgresql':
        op.execute("""
            DO $$
            BEGIN
                IF NOT EXISTS (
                    SELECT 1 FROM pg_enum
                    WHERE enumlabel = 'WITHDRAW_PAID'
                    AND enumtypid = (SELECT oid FROM pg_type WHERE typname = 'wallet_transaction_type')
                ) THEN
                    ALTER TYPE wallet_transaction_type ADD VALUE 'WITHDRAW_PAID';
                END IF;

                IF NOT EXISTS (
                    SELECT 1 FROM pg_enum
                    WHERE enumlabel = 'MANUAL'
                    AND enumtypid = (SELECT oid FROM pg_type WHERE typname = 'wallet_transaction_provider')
                ) THEN
                    ALTER TYPE wallet_transaction_provider ADD VALUE 'MANUAL';
                END IF;
            END $$;
        """)

    # Step 2: withdrawal_requests table
    op.create_table(
        'withdrawal_requests',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('iban', sa.String(length=34), nullable=False),
        sa.Column('account_name', sa.String(length=200), nullable=False),
        sa.Column('status', sa.Enum(*WITHDRAWAL_STATUSES, name='withdrawal_status'), nullable=False, server_default='PENDING'),
        sa.Column('reject_reason', sa.String(length=500), nullable=True),
        sa.Column('reviewed_by_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_withdrawal_requests_user_id'),
        sa.ForeignKeyConstraint(['reviewed_by_id'], ['users.id'], name='fk_withdrawal_requests_reviewed_by_id'),
        sa.CheckConstraint('amount > 0', name='check_withdrawal_requests_amount_positive'),
    )
    op.create_index('ix_withdrawal_requests_user_id', 'withdrawal_requests', ['user_id'])
    op.create_index('ix_withdrawal_requests_status', 'withdrawal_requests', ['status'])


def downgrade() -> None:
    op.drop_index('ix_withdrawal_requests_status', table_name='withdrawal_requests')
    op.drop_index('ix_withdrawal_requests_user_id', table_name='withdrawal_requests')
    op.drop_table('withdrawal_requests')
    sa.Enum(name='withdrawal_status').drop(op.get_bind(), checkfirst=True)
    # PostgreSQL cannot drop enum values; WITHDRAW_PAID and MANUAL stay on the types
