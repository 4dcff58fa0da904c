"""
Wallet API endpoints - READ-ONLY
"""

from typing import Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from escrow_core.auth.dependencies import require_user
from escrow_core.auth.principal import Principal
from escrow_core.core.wallets.models import WalletTransactionStatus, WalletTransactionType
from escrow_core.infrastructure.database import get_db
from escrow_core.infrastructure.settings import get_settings
from escrow_core.schemas.wallet import WalletBalanceResponse, WalletTransactionItem, WalletTransactionPage
from escrow_core.services import wallet_ledger
from escrow_core.services.notifications import format_minor

router = APIRouter(tags=["wallet"])
settings = get_settings()


@router.get(
    "/wallet",
    response_model=WalletBalanceResponse,
    summary="Get wallet balances",
    description="Available and held balances (kuruş) for the authenticated user. Creates an empty wallet on first access.",
)
def get_wallet(
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_user()),
) -> WalletBalanceResponse:
    wallet = wallet_ledger.get_or_create_wallet(db, principal.user_id)
    return WalletBalanceResponse(
        user_id=wallet.user_id,
        balance_available=wallet.balance_available,
        balance_held=wallet.balance_held,
        total=wallet.total,
        display_available=format_minor(wallet.balance_available),
    )


@router.get(
    "/wallet/transactions",
    response_model=WalletTransactionPage,
    summary="List wallet transactions",
    description="Immutable transaction log for the authenticated user, newest first.",
)
def list_wallet_transactions(
    type: Optional[WalletTransactionType] = Query(None, description="Filter by transaction type"),
    status: Optional[WalletTransactionStatus] = Query(None, description="Filter by status"),
    reference_id: Optional[UUID] = Query(None, description="Filter by order/listing reference"),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.TRANSACTIONS_PAGE_DEFAULT, ge=1, description="Capped at TRANSACTIONS_PAGE_MAX"),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_user()),
) -> WalletTransactionPage:
    result = wallet_ledger.get_transactions(
        db,
        principal.user_id,
        type=type,
        status=status,
        reference_id=reference_id,
        page=page,
        limit=limit,
    )
    return WalletTransactionPage(
        items=[WalletTransactionItem.model_validate(tx) for tx in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
        total_pages=result.total_pages,
    )
