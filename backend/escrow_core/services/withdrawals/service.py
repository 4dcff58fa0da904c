"""
Withdrawal service - request, review and pay out withdrawals

A request holds the amount on the user's wallet (WITHDRAW_REQUEST). Staff
then approve it (review only), reject it (hold refunded) or mark it paid
(held amount removed with WITHDRAW_PAID). Every step is one unit of work.
"""

import logging
import re
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from escrow_core.core.wallets.models import WalletTransactionType
from escrow_core.core.withdrawals.models import (
    OPEN_WITHDRAWAL_STATUSES,
    WithdrawalRequest,
    WithdrawalStatus,
)
from escrow_core.infrastructure.database import atomic
from escrow_core.infrastructure.settings import get_settings
from escrow_core.schemas.meta import WithdrawalMeta
from escrow_core.services import wallet_ledger
from escrow_core.services.errors import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from escrow_core.services.identity import is_staff
from escrow_core.services.notifications import (
    NotificationSink,
    dispatch_notifications,
    format_minor,
    withdrawal_paid_event,
    withdrawal_rejected_event,
)
from escrow_core.services.pagination import Page, clamp_page, paginate
from escrow_core.utils.metrics import record_escrow_operation
from escrow_core.utils.time import utcnow

logger = logging.getLogger(__name__)

IBAN_PATTERN = re.compile(r"^TR\d{24}$")
ACCOUNT_NAME_MAX_LENGTH = 200
REJECT_REASON_MAX_LENGTH = 500
WITHDRAWALS_PAGE_MAX = 50


def normalize_iban(iban: Optional[str]) -> str:
    """'tr33 0006 ...' -> 'TR330006...'"""
    return re.sub(r"\s", "", iban or "").upper()


def _validate_request(amount: Any, iban: Optional[str], account_name: Optional[str]) -> tuple[int, str, str]:
    min_amount = get_settings().WITHDRAWAL_MIN_AMOUNT
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError("Withdrawal amount must be an integer in minor unit")
    if amount < min_amount:
        raise ValidationError(f"Minimum withdrawal amount is {format_minor(min_amount)}")

    iban = normalize_iban(iban)
    if not IBAN_PATTERN.match(iban):
        raise ValidationError("Invalid IBAN format (expected TR followed by 24 digits)")

    account_name = (account_name or "").strip()
    if not account_name:
        raise ValidationError("Account holder name is required")
    if len(account_name) > ACCOUNT_NAME_MAX_LENGTH:
        raise ValidationError(f"Account holder name must be at most {ACCOUNT_NAME_MAX_LENGTH} characters")

    return amount, iban, account_name


def request_withdrawal(
    db: Session,
    user_id: UUID,
    amount: int,
    iban: str,
    account_name: str,
) -> WithdrawalRequest:
    """
    Create a PENDING withdrawal and hold its amount.

    The wallet row lock taken by the hold serializes concurrent requests of
    the same user, so the pending-request limit cannot be overrun.

    Raises:
        ValidationError: Bad amount, IBAN or account name, or too many pending requests
        InsufficientFundsError: available < amount (nothing is written)
    """
    amount, iban, account_name = _validate_request(amount, iban, account_name)
    max_pending = get_settings().WITHDRAWAL_MAX_PENDING_REQUESTS
    withdrawal_id = uuid4()

    with atomic(db):
        wallet_ledger.hold(
            db,
            user_id,
            amount,
            type=WalletTransactionType.WITHDRAW_REQUEST,
            reference_id=withdrawal_id,
            meta=WithdrawalMeta(withdrawal_id=withdrawal_id, iban=iban, account_name=account_name),
            commit=False,
        )

        pending = db.execute(
            select(func.count(WithdrawalRequest.id)).where(
                WithdrawalRequest.user_id == user_id,
                WithdrawalRequest.status == WithdrawalStatus.PENDING,
            )
        ).scalar_one()
        if pending >= max_pending:
            raise ValidationError(f"You already have {pending} pending withdrawal requests, wait for review")

        withdrawal = WithdrawalRequest(
            id=withdrawal_id,
            user_id=user_id,
            amount=amount,
            iban=iban,
            account_name=account_name,
            status=WithdrawalStatus.PENDING,
        )
        db.add(withdrawal)
        db.flush()

    record_escrow_operation("withdrawal_requested")
    logger.info(
        "Withdrawal requested",
        extra={"withdrawal_id": str(withdrawal_id), "user_id": str(user_id), "amount": amount},
    )
    return withdrawal


def _lock_for_review(
    db: Session,
    withdrawal_id: UUID,
    reviewer_id: UUID,
    allowed: tuple,
    action: str,
) -> WithdrawalRequest:
    if not is_staff(db, reviewer_id):
        raise ForbiddenError("Only moderators and admins can review withdrawals")

    withdrawal = db.execute(
        select(WithdrawalRequest)
        .where(WithdrawalRequest.id == withdrawal_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if withdrawal is None:
        raise NotFoundError(f"Withdrawal {withdrawal_id} not found")
    if withdrawal.status not in allowed:
        raise InvalidStateError(
            f"Withdrawal cannot be {action} (current status: {withdrawal.status.value})"
        )
    return withdrawal


def _transition(db: Session, withdrawal: WithdrawalRequest, **values) -> None:
    """Guarded status change: only applies while the row is still in its locked status"""
    result = db.execute(
        update(WithdrawalRequest)
        .where(WithdrawalRequest.id == withdrawal.id, WithdrawalRequest.status == withdrawal.status)
        .values(**values)
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount != 1:
        raise ConflictError(f"Withdrawal {withdrawal.id} changed state concurrently")


def approve_withdrawal(db: Session, withdrawal_id: UUID, reviewer_id: UUID) -> WithdrawalRequest:
    """PENDING -> APPROVED. No money moves."""
    with atomic(db):
        withdrawal = _lock_for_review(db, withdrawal_id, reviewer_id, (WithdrawalStatus.PENDING,), "approved")
        _transition(
            db, withdrawal,
            status=WithdrawalStatus.APPROVED,
            reviewed_by_id=reviewer_id,
            reviewed_at=utcnow(),
        )

    record_escrow_operation("withdrawal_approved")
    logger.info("Withdrawal approved", extra={"withdrawal_id": str(withdrawal_id), "reviewed_by_id": str(reviewer_id)})
    return withdrawal


def reject_withdrawal(
    db: Session,
    withdrawal_id: UUID,
    reviewer_id: UUID,
    reason: str,
    notifier: Optional[NotificationSink] = None,
) -> WithdrawalRequest:
    """
    PENDING or APPROVED -> REJECTED; the held amount goes back to available.

    Raises:
        ValidationError: Empty or too long reason
        ForbiddenError: Reviewer is not staff
        NotFoundError: Withdrawal missing
        InvalidStateError: Already REJECTED or PAID
        InsufficientHeldFundsError: Ledger/withdrawal desync, propagated as-is
    """
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Reject reason is required")
    if len(reason) > REJECT_REASON_MAX_LENGTH:
        raise ValidationError(f"Reject reason must be at most {REJECT_REASON_MAX_LENGTH} characters")

    with atomic(db):
        withdrawal = _lock_for_review(db, withdrawal_id, reviewer_id, OPEN_WITHDRAWAL_STATUSES, "rejected")
        wallet_ledger.refund(
            db,
            withdrawal.user_id,
            withdrawal.amount,
            reference_id=withdrawal.id,
            meta=WithdrawalMeta(withdrawal_id=withdrawal.id, reject_reason=reason),
            commit=False,
        )
        _transition(
            db, withdrawal,
            status=WithdrawalStatus.REJECTED,
            reject_reason=reason,
            reviewed_by_id=reviewer_id,
            reviewed_at=utcnow(),
        )
        user_id = withdrawal.user_id

    record_escrow_operation("withdrawal_rejected")
    logger.info("Withdrawal rejected", extra={"withdrawal_id": str(withdrawal_id), "reviewed_by_id": str(reviewer_id)})

    dispatch_notifications(notifier, [withdrawal_rejected_event(
        user_id=user_id,
        reviewed_by_id=reviewer_id,
        withdrawal_id=withdrawal_id,
        reason=reason,
    )])
    return withdrawal


def mark_withdrawal_paid(
    db: Session,
    withdrawal_id: UUID,
    reviewer_id: UUID,
    notifier: Optional[NotificationSink] = None,
) -> WithdrawalRequest:
    """
    PENDING or APPROVED -> PAID; the held amount leaves the system.

    Raises:
        ForbiddenError: Reviewer is not staff
        NotFoundError: Withdrawal missing
        InvalidStateError: Already REJECTED or PAID
        InsufficientHeldFundsError: Ledger/withdrawal desync, propagated as-is
    """
    now = utcnow()

    with atomic(db):
        withdrawal = _lock_for_review(db, withdrawal_id, reviewer_id, OPEN_WITHDRAWAL_STATUSES, "paid")
        wallet_ledger.settle_held(
            db,
            withdrawal.user_id,
            withdrawal.amount,
            reference_id=withdrawal.id,
            meta=WithdrawalMeta(withdrawal_id=withdrawal.id, iban=withdrawal.iban, account_name=withdrawal.account_name),
            commit=False,
        )
        _transition(
            db, withdrawal,
            status=WithdrawalStatus.PAID,
            paid_at=now,
            reviewed_by_id=reviewer_id,
            reviewed_at=withdrawal.reviewed_at or now,
        )
        user_id, amount = withdrawal.user_id, withdrawal.amount

    record_escrow_operation("withdrawal_paid")
    logger.info(
        "Withdrawal paid",
        extra={"withdrawal_id": str(withdrawal_id), "reviewed_by_id": str(reviewer_id), "amount": amount},
    )

    dispatch_notifications(notifier, [withdrawal_paid_event(
        user_id=user_id,
        reviewed_by_id=reviewer_id,
        withdrawal_id=withdrawal_id,
        amount=amount,
    )])
    return withdrawal


def get_withdrawal_by_id(db: Session, withdrawal_id: UUID) -> WithdrawalRequest:
    withdrawal = db.get(WithdrawalRequest, withdrawal_id, populate_existing=True)
    if withdrawal is None:
        raise NotFoundError(f"Withdrawal {withdrawal_id} not found")
    return withdrawal


def get_withdrawals(
    db: Session,
    status: Optional[WithdrawalStatus] = None,
    user_id: Optional[UUID] = None,
    page: int = 1,
    limit: int = 20,
) -> Page[WithdrawalRequest]:
    """Staff review queue (oldest first), or one user's requests when user_id is given (newest first)"""
    page, limit = clamp_page(page, limit, WITHDRAWALS_PAGE_MAX)
    stmt = select(WithdrawalRequest)
    if status is not None:
        stmt = stmt.where(WithdrawalRequest.status == status)
    if user_id is not None:
        stmt = stmt.where(WithdrawalRequest.user_id == user_id).order_by(
            WithdrawalRequest.created_at.desc(), WithdrawalRequest.id.desc()
        )
    else:
        stmt = stmt.order_by(WithdrawalRequest.created_at.asc(), WithdrawalRequest.id.asc())
    return paginate(db, stmt, page, limit)
