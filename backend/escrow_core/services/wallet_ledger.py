"""
Wallet ledger - Balance state (available / held) and the immutable transaction log

Every function that changes a balance writes its WalletTransaction row(s) in
the same database transaction as the balance change. Wallet rows are locked
with SELECT ... FOR UPDATE; two-party operations lock in sorted user_id order.

Composite callers (orders, disputes) pass commit=False and own the unit of
work through `atomic(db)`.
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from escrow_core.core.wallets.models import (
    Wallet,
    WalletTransaction,
    WalletTransactionType,
    WalletTransactionStatus,
    WalletTransactionProvider,
)
from escrow_core.infrastructure.database import atomic
from escrow_core.infrastructure.settings import get_settings
from escrow_core.schemas.meta import MetaInput, dump_meta
from escrow_core.services.errors import (
    InsufficientFundsError,
    InsufficientHeldFundsError,
    ValidationError,
)
from escrow_core.services.pagination import Page, clamp_page, paginate
from escrow_core.utils.metrics import record_ledger_anomaly

logger = logging.getLogger(__name__)

CREDIT_TYPES = frozenset({WalletTransactionType.DEPOSIT})
DEBIT_TYPES = frozenset({WalletTransactionType.WITHDRAWAL})
HOLD_TYPES = frozenset({WalletTransactionType.HOLD, WalletTransactionType.WITHDRAW_REQUEST})
SETTLE_HELD_TYPES = frozenset({WalletTransactionType.WITHDRAW_PAID})


def _validate_amount(amount: int) -> None:
    """Amounts are positive integers in minor unit"""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError(f"Amount must be an integer in minor unit, got {type(amount).__name__}")
    if amount <= 0:
        raise ValidationError("Amount must be greater than 0")


def _validate_type(tx_type: WalletTransactionType, allowed: frozenset, operation: str) -> None:
    if tx_type not in allowed:
        allowed_names = ", ".join(sorted(t.value for t in allowed))
        raise ValidationError(f"Transaction type {tx_type} is not allowed for {operation} (allowed: {allowed_names})")


def _insert_wallet_if_missing(db: Session, user_id: UUID) -> None:
    """Insert an empty wallet, ignoring a concurrent insert for the same user"""
    dialect = db.get_bind().dialect.name
    values = {"user_id": user_id, "balance_available": 0, "balance_held": 0}

    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
        db.execute(insert(Wallet).values(**values).on_conflict_do_nothing(index_elements=["user_id"]))
        return
    if dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
        db.execute(insert(Wallet).values(**values).on_conflict_do_nothing(index_elements=["user_id"]))
        return

    try:
        with db.begin_nested():
            db.add(Wallet(**values))
    except IntegrityError:
        logger.info("Wallet created concurrently", extra={"user_id": str(user_id)})


def get_or_create_wallet(db: Session, user_id: UUID, *, commit: bool = True) -> Wallet:
    """
    Return the user's wallet, creating it with zero balances if missing.

    Idempotent. Concurrent first calls for the same user converge on one row
    (unique user_id).
    """
    wallet = db.execute(
        select(Wallet).where(Wallet.user_id == user_id)
    ).scalar_one_or_none()
    if wallet:
        return wallet

    with atomic(db, commit=commit):
        _insert_wallet_if_missing(db, user_id)
        wallet = db.execute(
            select(Wallet).where(Wallet.user_id == user_id)
        ).scalar_one()
        logger.info("Wallet created", extra={"user_id": str(user_id), "wallet_id": str(wallet.id)})
    return wallet


def _lock_wallet(db: Session, user_id: UUID) -> Wallet:
    """Ensure the wallet exists and lock its row for the rest of the transaction"""
    get_or_create_wallet(db, user_id, commit=False)
    return db.execute(
        select(Wallet)
        .where(Wallet.user_id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one()


def _lock_wallets(db: Session, *user_ids: UUID) -> dict[UUID, Wallet]:
    """Lock several wallets in deterministic (sorted) order to avoid deadlocks"""
    return {user_id: _lock_wallet(db, user_id) for user_id in sorted(set(user_ids), key=str)}


def _record(
    db: Session,
    *,
    user_id: UUID,
    tx_type: WalletTransactionType,
    amount: int,
    provider: WalletTransactionProvider,
    reference_id: Optional[UUID],
    meta: MetaInput,
) -> WalletTransaction:
    tx = WalletTransaction(
        user_id=user_id,
        type=tx_type,
        amount=amount,
        status=WalletTransactionStatus.SUCCESS,
        provider=provider,
        reference_id=reference_id,
        meta=dump_meta(meta),
    )
    db.add(tx)
    return tx


def _insufficient_held(wallet: Wallet, amount: int, operation: str, reference_id: Optional[UUID]) -> InsufficientHeldFundsError:
    """Held funds are always backed by an open order or withdrawal; a shortfall means the ledger and those records disagree"""
    logger.error(
        "Insufficient held funds - ledger anomaly",
        extra={
            "operation": operation,
            "user_id": str(wallet.user_id),
            "balance_held": wallet.balance_held,
            "amount": amount,
            "reference_id": str(reference_id) if reference_id else None,
        },
    )
    record_ledger_anomaly("insufficient_held")
    return InsufficientHeldFundsError(
        f"Held balance {wallet.balance_held} is lower than {amount} for user {wallet.user_id}"
    )


def credit(
    db: Session,
    user_id: UUID,
    amount: int,
    type: WalletTransactionType = WalletTransactionType.DEPOSIT,
    provider: WalletTransactionProvider = WalletTransactionProvider.INTERNAL,
    reference_id: Optional[UUID] = None,
    meta: MetaInput = None,
    *,
    commit: bool = True,
) -> WalletTransaction:
    """Increase available balance (money entering the system)"""
    _validate_amount(amount)
    _validate_type(type, CREDIT_TYPES, "credit")

    with atomic(db, commit=commit):
        wallet = _lock_wallet(db, user_id)
        wallet.balance_available += amount
        tx = _record(db, user_id=user_id, tx_type=type, amount=amount, provider=provider, reference_id=reference_id, meta=meta)
        db.flush()

    logger.info("Wallet credited", extra={"user_id": str(user_id), "amount": amount, "type": type.value})
    return tx


def debit(
    db: Session,
    user_id: UUID,
    amount: int,
    type: WalletTransactionType = WalletTransactionType.WITHDRAWAL,
    provider: WalletTransactionProvider = WalletTransactionProvider.INTERNAL,
    reference_id: Optional[UUID] = None,
    meta: MetaInput = None,
    *,
    commit: bool = True,
) -> WalletTransaction:
    """
    Decrease available balance (money leaving the system).

    Raises:
        InsufficientFundsError: available < amount (nothing is written)
    """
    _validate_amount(amount)
    _validate_type(type, DEBIT_TYPES, "debit")

    with atomic(db, commit=commit):
        wallet = _lock_wallet(db, user_id)
        if wallet.balance_available < amount:
            raise InsufficientFundsError(
                f"Available balance {wallet.balance_available} is lower than {amount}"
            )
        wallet.balance_available -= amount
        tx = _record(db, user_id=user_id, tx_type=type, amount=amount, provider=provider, reference_id=reference_id, meta=meta)
        db.flush()

    logger.info("Wallet debited", extra={"user_id": str(user_id), "amount": amount, "type": type.value})
    return tx


def hold(
    db: Session,
    user_id: UUID,
    amount: int,
    type: WalletTransactionType = WalletTransactionType.HOLD,
    reference_id: Optional[UUID] = None,
    meta: MetaInput = None,
    *,
    commit: bool = True,
) -> WalletTransaction:
    """
    Move amount from available to held for the same user.

    Used for purchase escrow (HOLD) and pending withdrawals (WITHDRAW_REQUEST).

    Raises:
        InsufficientFundsError: available < amount (nothing is written)
    """
    _validate_amount(amount)
    _validate_type(type, HOLD_TYPES, "hold")

    with atomic(db, commit=commit):
        wallet = _lock_wallet(db, user_id)
        if wallet.balance_available < amount:
            raise InsufficientFundsError(
                f"Available balance {wallet.balance_available} is lower than {amount}"
            )
        wallet.balance_available -= amount
        wallet.balance_held += amount
        tx = _record(
            db,
            user_id=user_id,
            tx_type=type,
            amount=amount,
            provider=WalletTransactionProvider.INTERNAL,
            reference_id=reference_id,
            meta=meta,
        )
        db.flush()

    logger.info(
        "Funds held",
        extra={"user_id": str(user_id), "amount": amount, "reference_id": str(reference_id) if reference_id else None},
    )
    return tx


def release(
    db: Session,
    from_user_id: UUID,
    to_user_id: UUID,
    amount: int,
    reference_id: Optional[UUID] = None,
    meta: MetaInput = None,
    *,
    commit: bool = True,
) -> tuple[WalletTransaction, WalletTransaction]:
    """
    Pay held funds of one user into another user's available balance.

    Writes two rows: RELEASE for from_user_id and DEPOSIT for to_user_id.

    Raises:
        ValidationError: from_user_id == to_user_id (use refund)
        InsufficientHeldFundsError: from.held < amount (ledger anomaly)
    """
    _validate_amount(amount)
    if from_user_id == to_user_id:
        raise ValidationError("Cannot release held funds to the same user, use refund")

    with atomic(db, commit=commit):
        wallets = _lock_wallets(db, from_user_id, to_user_id)
        source = wallets[from_user_id]
        target = wallets[to_user_id]

        if source.balance_held < amount:
            raise _insufficient_held(source, amount, "release", reference_id)

        source.balance_held -= amount
        target.balance_available += amount

        release_tx = _record(
            db,
            user_id=from_user_id,
            tx_type=WalletTransactionType.RELEASE,
            amount=amount,
            provider=WalletTransactionProvider.INTERNAL,
            reference_id=reference_id,
            meta=meta,
        )
        deposit_tx = _record(
            db,
            user_id=to_user_id,
            tx_type=WalletTransactionType.DEPOSIT,
            amount=amount,
            provider=WalletTransactionProvider.INTERNAL,
            reference_id=reference_id,
            meta=meta,
        )
        db.flush()

    logger.info(
        "Held funds released",
        extra={
            "from_user_id": str(from_user_id),
            "to_user_id": str(to_user_id),
            "amount": amount,
            "reference_id": str(reference_id) if reference_id else None,
        },
    )
    return release_tx, deposit_tx


def refund(
    db: Session,
    user_id: UUID,
    amount: int,
    reference_id: Optional[UUID] = None,
    meta: MetaInput = None,
    *,
    commit: bool = True,
) -> WalletTransaction:
    """
    Move amount from held back to available for the same user.

    Raises:
        InsufficientHeldFundsError: held < amount (ledger anomaly)
    """
    _validate_amount(amount)

    with atomic(db, commit=commit):
        wallet = _lock_wallet(db, user_id)
        if wallet.balance_held < amount:
            raise _insufficient_held(wallet, amount, "refund", reference_id)
        wallet.balance_held -= amount
        wallet.balance_available += amount
        tx = _record(
            db,
            user_id=user_id,
            tx_type=WalletTransactionType.REFUND,
            amount=amount,
            provider=WalletTransactionProvider.INTERNAL,
            reference_id=reference_id,
            meta=meta,
        )
        db.flush()

    logger.info(
        "Held funds refunded",
        extra={"user_id": str(user_id), "amount": amount, "reference_id": str(reference_id) if reference_id else None},
    )
    return tx


def settle_held(
    db: Session,
    user_id: UUID,
    amount: int,
    type: WalletTransactionType = WalletTransactionType.WITHDRAW_PAID,
    provider: WalletTransactionProvider = WalletTransactionProvider.MANUAL,
    reference_id: Optional[UUID] = None,
    meta: MetaInput = None,
    *,
    commit: bool = True,
) -> WalletTransaction:
    """
    Remove held funds from the system (payout of a pending withdrawal).

    Raises:
        InsufficientHeldFundsError: held < amount (ledger anomaly)
    """
    _validate_amount(amount)
    _validate_type(type, SETTLE_HELD_TYPES, "settle_held")

    with atomic(db, commit=commit):
        wallet = _lock_wallet(db, user_id)
        if wallet.balance_held < amount:
            raise _insufficient_held(wallet, amount, "settle_held", reference_id)
        wallet.balance_held -= amount
        tx = _record(db, user_id=user_id, tx_type=type, amount=amount, provider=provider, reference_id=reference_id, meta=meta)
        db.flush()

    logger.info(
        "Held funds paid out",
        extra={"user_id": str(user_id), "amount": amount, "reference_id": str(reference_id) if reference_id else None},
    )
    return tx


def get_transactions(
    db: Session,
    user_id: UUID,
    *,
    type: Optional[WalletTransactionType] = None,
    status: Optional[WalletTransactionStatus] = None,
    reference_id: Optional[UUID] = None,
    page: int = 1,
    limit: Optional[int] = None,
) -> Page[WalletTransaction]:
    """Paginated read of the user's transaction log, newest first"""
    settings = get_settings()
    page, limit = clamp_page(page, limit or settings.TRANSACTIONS_PAGE_DEFAULT, settings.TRANSACTIONS_PAGE_MAX)

    stmt = select(WalletTransaction).where(WalletTransaction.user_id == user_id)
    if type is not None:
        stmt = stmt.where(WalletTransaction.type == type)
    if status is not None:
        stmt = stmt.where(WalletTransaction.status == status)
    if reference_id is not None:
        stmt = stmt.where(WalletTransaction.reference_id == reference_id)
    stmt = stmt.order_by(WalletTransaction.created_at.desc(), WalletTransaction.id.desc())

    return paginate(db, stmt, page, limit)
