"""
Withdrawal request model - payout of available balance to a bank account
"""

from sqlalchemy import BigInteger, CheckConstraint, Column, DateTime, ForeignKey, String, Uuid, Enum as SQLEnum
from sqlalchemy.orm import relationship
import enum
from escrow_core.core.common.base_model import BaseModel


class WithdrawalStatus(str, enum.Enum):
    """Withdrawal request status"""
    PENDING = "PENDING"  # Funds held, waiting for staff review
    APPROVED = "APPROVED"  # Reviewed, bank transfer not yet made
    REJECTED = "REJECTED"  # Hold refunded to available
    PAID = "PAID"  # Held funds left the system


OPEN_WITHDRAWAL_STATUSES = (WithdrawalStatus.PENDING, WithdrawalStatus.APPROVED)


class WithdrawalRequest(BaseModel):
    """
    WithdrawalRequest model

    Creating a request holds `amount` on the user's wallet (WITHDRAW_REQUEST).
    Staff then reject it (hold refunded) or mark it paid (held amount removed,
    WITHDRAW_PAID). Approval is a review step only and moves no money.
    """

    __tablename__ = "withdrawal_requests"

    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_withdrawal_requests_user_id"), nullable=False, index=True)
    amount = Column(BigInteger, nullable=False)  # kuruş
    iban = Column(String(34), nullable=False)
    account_name = Column(String(200), nullable=False)
    status = Column(SQLEnum(WithdrawalStatus, name="withdrawal_status"), nullable=False, default=WithdrawalStatus.PENDING, index=True)
    reject_reason = Column(String(500), nullable=True)
    reviewed_by_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_withdrawal_requests_reviewed_by_id"), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", foreign_keys=[user_id], lazy="select")
    reviewer = relationship("User", foreign_keys=[reviewed_by_id], lazy="select")

    __table_args__ = (
        CheckConstraint("amount > 0", name="check_withdrawal_requests_amount_positive"),
    )
