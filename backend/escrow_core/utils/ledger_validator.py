"""
Ledger consistency validation - replay the transaction log against wallet balances
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from escrow_core.core.wallets.models import (
    Wallet,
    WalletTransaction,
    WalletTransactionStatus,
    WalletTransactionType,
)
from escrow_core.utils.metrics import record_ledger_anomaly

logger = logging.getLogger(__name__)

# (available delta, held delta) per unit of amount
BALANCE_EFFECTS = {
    WalletTransactionType.DEPOSIT: (1, 0),
    WalletTransactionType.WITHDRAWAL: (-1, 0),
    WalletTransactionType.HOLD: (-1, 1),
    WalletTransactionType.WITHDRAW_REQUEST: (-1, 1),
    WalletTransactionType.WITHDRAW_PAID: (0, -1),
    WalletTransactionType.RELEASE: (0, -1),
    WalletTransactionType.REFUND: (1, -1),
}


@dataclass
class WalletCheckResult:
    """Outcome of comparing one wallet with its replayed log"""
    user_id: UUID
    stored_available: int
    stored_held: int
    replayed_available: int
    replayed_held: int

    @property
    def ok(self) -> bool:
        return (
            self.stored_available == self.replayed_available
            and self.stored_held == self.replayed_held
        )


def apply_transactions(transactions: Iterable[WalletTransaction]) -> tuple[int, int]:
    """Fold SUCCESS transactions into (available, held) starting from zero"""
    available = 0
    held = 0
    for tx in transactions:
        if tx.status != WalletTransactionStatus.SUCCESS:
            continue
        d_available, d_held = BALANCE_EFFECTS[tx.type]
        available += d_available * tx.amount
        held += d_held * tx.amount
    return available, held


def replay_wallet(db: Session, user_id: UUID) -> tuple[int, int]:
    """Recompute (available, held) for a user from the immutable log"""
    transactions = db.execute(
        select(WalletTransaction)
        .where(WalletTransaction.user_id == user_id)
        .order_by(WalletTransaction.created_at.asc(), WalletTransaction.id.asc())
    ).scalars()
    return apply_transactions(transactions)


def validate_wallet_against_log(db: Session, user_id: UUID) -> WalletCheckResult:
    """
    Compare the stored wallet balances with the replayed log.

    A wallet that was never created is compared as {0, 0}.

    Side effects:
        Logs at ERROR and records `ledger_anomalies_total{kind="replay_mismatch"}` on mismatch
    """
    wallet = db.execute(select(Wallet).where(Wallet.user_id == user_id)).scalar_one_or_none()
    stored_available = wallet.balance_available if wallet else 0
    stored_held = wallet.balance_held if wallet else 0
    replayed_available, replayed_held = replay_wallet(db, user_id)

    result = WalletCheckResult(
        user_id=user_id,
        stored_available=stored_available,
        stored_held=stored_held,
        replayed_available=replayed_available,
        replayed_held=replayed_held,
    )

    if not result.ok:
        logger.error(
            "Wallet balance does not match transaction log",
            extra={
                "user_id": str(user_id),
                "stored_available": stored_available,
                "stored_held": stored_held,
                "replayed_available": replayed_available,
                "replayed_held": replayed_held,
            },
        )
        record_ledger_anomaly("replay_mismatch")

    return result


def validate_all_wallets(db: Session, user_ids: Optional[List[UUID]] = None) -> List[WalletCheckResult]:
    """Validate every wallet (or the given users); returns only the mismatches"""
    if user_ids is None:
        user_ids = list(db.execute(select(Wallet.user_id)).scalars().all())
    return [
        result
        for result in (validate_wallet_against_log(db, user_id) for user_id in user_ids)
        if not result.ok
    ]
