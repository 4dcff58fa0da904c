"""
Wallet models - Wallet (balances) and WalletTransaction (IMMUTABLE log)
"""

from sqlalchemy import (
    BigInteger, CheckConstraint, Column, ForeignKey, Index, JSON, Uuid,
    Enum as SQLEnum,
)
from sqlalchemy.orm import relationship
import enum
from escrow_core.core.common.base_model import BaseModel


class WalletTransactionType(str, enum.Enum):
    """Wallet transaction type - direction is implied by the type, amounts are always positive"""
    DEPOSIT = "DEPOSIT"  # +available (external money in, or incoming settlement)
    WITHDRAWAL = "WITHDRAWAL"  # -available (external money out)
    WITHDRAW_REQUEST = "WITHDRAW_REQUEST"  # available -> held, pending payout
    WITHDRAW_PAID = "WITHDRAW_PAID"  # -held (payout sent to the bank account)
    HOLD = "HOLD"  # available -> held (escrow for a purchase)
    RELEASE = "RELEASE"  # -held (paid out to another user's available)
    REFUND = "REFUND"  # held -> available (same user)


class WalletTransactionStatus(str, enum.Enum):
    """Wallet transaction status"""
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    PENDING = "PENDING"


class WalletTransactionProvider(str, enum.Enum):
    """Where the money movement originated"""
    INTERNAL = "INTERNAL"
    PAYTR = "PAYTR"  # External payment provider (deposit callbacks)
    MANUAL = "MANUAL"  # Bank transfer made by staff (withdrawal payouts)


class Wallet(BaseModel):
    """
    Wallet model - one per user, created lazily, never deleted.

    Balances are integers in minor currency unit (kuruş). Both buckets are
    non-negative (enforced by check constraints) and only change through the
    wallet ledger service.
    """

    __tablename__ = "wallets"

    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_wallets_user_id"), nullable=False, unique=True, index=True)
    balance_available = Column(BigInteger, nullable=False, default=0)
    balance_held = Column(BigInteger, nullable=False, default=0)

    user = relationship("User", foreign_keys=[user_id], lazy="select")

    __table_args__ = (
        CheckConstraint("balance_available >= 0", name="check_wallets_available_non_negative"),
        CheckConstraint("balance_held >= 0", name="check_wallets_held_non_negative"),
    )

    @property
    def total(self) -> int:
        return self.balance_available + self.balance_held


class WalletTransaction(BaseModel):
    """
    WalletTransaction model - IMMUTABLE (WRITE-ONCE)

    Every balance mutation on Wallet creates exactly one row (two for a
    release between users) in the same database transaction.

    IMMUTABILITY RULES (application-level):
    - NEVER UPDATE a WalletTransaction
    - NEVER DELETE a WalletTransaction
    - Corrections are new rows
    """

    __tablename__ = "wallet_transactions"

    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_wallet_transactions_user_id"), nullable=False, index=True)
    type = Column(SQLEnum(WalletTransactionType, name="wallet_transaction_type"), nullable=False, index=True)
    amount = Column(BigInteger, nullable=False)
    status = Column(SQLEnum(WalletTransactionStatus, name="wallet_transaction_status"), nullable=False, default=WalletTransactionStatus.SUCCESS, index=True)
    provider = Column(SQLEnum(WalletTransactionProvider, name="wallet_transaction_provider"), nullable=False, default=WalletTransactionProvider.INTERNAL)
    reference_id = Column(Uuid(as_uuid=True), nullable=True, index=True)  # Order or listing that caused the entry
    meta = Column(JSON, nullable=True)
    # Note: updated_at exists in BaseModel but MUST NOT be used - rows are write-once

    __table_args__ = (
        CheckConstraint("amount > 0", name="check_wallet_transactions_amount_positive"),
        Index("ix_wallet_transactions_user_created", "user_id", "created_at"),
    )
