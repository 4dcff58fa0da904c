"""
Withdrawal API schemas
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from escrow_core.core.withdrawals.models import WithdrawalStatus


class CreateWithdrawalRequest(BaseModel):
    """Pay out available balance to a Turkish bank account"""
    amount: int = Field(..., gt=0, description="Amount in kuruş (minimum WITHDRAWAL_MIN_AMOUNT)")
    iban: str = Field(..., min_length=1, max_length=64, description="TR IBAN, spaces allowed")
    account_name: str = Field(..., min_length=1, max_length=200)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "amount": 10000,
                "iban": "TR33 0006 1005 1978 6457 8413 26",
                "account_name": "Ayşe Yılmaz",
            }
        }
    )


class RejectWithdrawalRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class WithdrawalResponse(BaseModel):
    """Withdrawal request (amount in kuruş)"""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    amount: int
    iban: str
    account_name: str
    status: WithdrawalStatus
    reject_reason: Optional[str] = None
    reviewed_by_id: Optional[UUID] = None
    reviewed_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    created_at: datetime


class WithdrawalPage(BaseModel):
    items: List[WithdrawalResponse]
    total: int
    page: int
    limit: int
    total_pages: int
