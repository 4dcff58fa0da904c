"""
Withdrawal API endpoints - user side
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from escrow_core.auth.dependencies import require_user
from escrow_core.auth.principal import Principal
from escrow_core.core.withdrawals.models import WithdrawalStatus
from escrow_core.infrastructure.database import get_db
from escrow_core.schemas.withdrawals import CreateWithdrawalRequest, WithdrawalPage, WithdrawalResponse
from escrow_core.services.withdrawals import service as withdrawal_service

router = APIRouter(tags=["withdrawals"])


@router.post(
    "/withdrawals",
    response_model=WithdrawalResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request a withdrawal",
    description="Holds the amount on the wallet until staff reject it or mark it paid.",
)
def create_withdrawal(
    payload: CreateWithdrawalRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_user()),
) -> WithdrawalResponse:
    withdrawal = withdrawal_service.request_withdrawal(
        db,
        principal.user_id,
        payload.amount,
        payload.iban,
        payload.account_name,
    )
    return WithdrawalResponse.model_validate(withdrawal)


@router.get(
    "/withdrawals",
    response_model=WithdrawalPage,
    summary="List my withdrawals",
)
def list_withdrawals(
    status: Optional[WithdrawalStatus] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_user()),
) -> WithdrawalPage:
    result = withdrawal_service.get_withdrawals(db, status=status, user_id=principal.user_id, page=page, limit=limit)
    return WithdrawalPage(
        items=[WithdrawalResponse.model_validate(w) for w in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
        total_pages=result.total_pages,
    )
