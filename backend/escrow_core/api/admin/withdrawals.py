"""
Admin withdrawal endpoints - review queue, approve / reject / paid
"""

import logging
from typing import Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from escrow_core.auth.dependencies import require_staff
from escrow_core.auth.principal import Principal
from escrow_core.core.compliance.models import AuditLog
from escrow_core.core.withdrawals.models import WithdrawalRequest, WithdrawalStatus
from escrow_core.infrastructure.database import get_db
from escrow_core.schemas.withdrawals import RejectWithdrawalRequest, WithdrawalPage, WithdrawalResponse
from escrow_core.services.notifications import NotificationSink, get_notification_sink
from escrow_core.services.withdrawals import service as withdrawal_service
from escrow_core.utils.request_logging import get_client_ip

logger = logging.getLogger(__name__)

router = APIRouter()


def _snapshot(withdrawal: WithdrawalRequest) -> dict:
    return {
        "status": withdrawal.status.value,
        "user_id": str(withdrawal.user_id),
        "amount": withdrawal.amount,
        "iban": withdrawal.iban,
    }


def _audit(
    db: Session,
    request: Request,
    principal: Principal,
    action: str,
    before: dict,
    withdrawal: WithdrawalRequest,
    reason: Optional[str] = None,
) -> None:
    db.add(AuditLog(
        actor_user_id=principal.user_id,
        actor_role=principal.role,
        action=action,
        entity_type="WithdrawalRequest",
        entity_id=withdrawal.id,
        before=before,
        after=_snapshot(withdrawal),
        reason=reason,
        ip=get_client_ip(request),
    ))
    db.commit()
    logger.info(
        "Withdrawal review audited",
        extra={"withdrawal_id": str(withdrawal.id), "actor_user_id": str(principal.user_id), "action": action},
    )


@router.get(
    "/withdrawals",
    response_model=WithdrawalPage,
    summary="List withdrawals",
)
def list_withdrawals(
    status: Optional[WithdrawalStatus] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_staff()),
) -> WithdrawalPage:
    result = withdrawal_service.get_withdrawals(db, status=status, page=page, limit=limit)
    return WithdrawalPage(
        items=[WithdrawalResponse.model_validate(w) for w in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
        total_pages=result.total_pages,
    )


@router.post(
    "/withdrawals/{withdrawal_id}/approve",
    response_model=WithdrawalResponse,
    summary="Approve withdrawal",
)
def approve_withdrawal(
    withdrawal_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_staff()),
) -> WithdrawalResponse:
    before = _snapshot(withdrawal_service.get_withdrawal_by_id(db, withdrawal_id))
    withdrawal = withdrawal_service.approve_withdrawal(db, withdrawal_id, principal.user_id)
    _audit(db, request, principal, "WITHDRAWAL_APPROVED", before, withdrawal)
    return WithdrawalResponse.model_validate(withdrawal)


@router.post(
    "/withdrawals/{withdrawal_id}/reject",
    response_model=WithdrawalResponse,
    summary="Reject withdrawal",
    description="Refunds the held amount to the user's available balance.",
)
def reject_withdrawal(
    withdrawal_id: UUID,
    payload: RejectWithdrawalRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_staff()),
    notifier: NotificationSink = Depends(get_notification_sink),
) -> WithdrawalResponse:
    before = _snapshot(withdrawal_service.get_withdrawal_by_id(db, withdrawal_id))
    withdrawal = withdrawal_service.reject_withdrawal(
        db, withdrawal_id, principal.user_id, payload.reason, notifier=notifier,
    )
    _audit(db, request, principal, "WITHDRAWAL_REJECTED", before, withdrawal, reason=payload.reason)
    return WithdrawalResponse.model_validate(withdrawal)


@router.post(
    "/withdrawals/{withdrawal_id}/paid",
    response_model=WithdrawalResponse,
    summary="Mark withdrawal paid",
    description="Call after the bank transfer was made. Removes the held amount from the wallet.",
)
def mark_withdrawal_paid(
    withdrawal_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_staff()),
    notifier: NotificationSink = Depends(get_notification_sink),
) -> WithdrawalResponse:
    before = _snapshot(withdrawal_service.get_withdrawal_by_id(db, withdrawal_id))
    withdrawal = withdrawal_service.mark_withdrawal_paid(db, withdrawal_id, principal.user_id, notifier=notifier)
    _audit(db, request, principal, "WITHDRAWAL_PAID", before, withdrawal)
    return WithdrawalResponse.model_validate(withdrawal)
