"""
Wallet API response schemas
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from escrow_core.core.wallets.models import (
    WalletTransactionProvider,
    WalletTransactionStatus,
    WalletTransactionType,
)


class WalletBalanceResponse(BaseModel):
    """Wallet balance response schema (amounts in kuruş)"""
    user_id: UUID
    balance_available: int = Field(..., description="Spendable balance")
    balance_held: int = Field(..., description="Escrow-held balance (open orders, pending withdrawals)")
    total: int = Field(..., description="balance_available + balance_held")
    display_available: str = Field(..., description="Available balance formatted for display (e.g., '12.50 ₺')")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "user_id": "123e4567-e89b-12d3-a456-426614174000",
                "balance_available": 30000,
                "balance_held": 20000,
                "total": 50000,
                "display_available": "300.00 ₺",
            }
        }
    )


class WalletTransactionItem(BaseModel):
    """Wallet transaction list item"""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    type: WalletTransactionType
    amount: int
    status: WalletTransactionStatus
    provider: WalletTransactionProvider
    reference_id: Optional[UUID] = None
    meta: Optional[dict] = None
    created_at: datetime


class WalletTransactionPage(BaseModel):
    """Paginated wallet transactions, newest first"""
    items: List[WalletTransactionItem]
    total: int
    page: int
    limit: int
    total_pages: int
