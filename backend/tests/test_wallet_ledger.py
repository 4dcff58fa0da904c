"""
Tests for the wallet ledger (balances + immutable transaction log)
"""

import pytest
from uuid import uuid4

from sqlalchemy import select

from escrow_core.core.wallets.models import Wallet, WalletTransaction, WalletTransactionType
from escrow_core.services import wallet_ledger
from escrow_core.services.errors import (
    InsufficientFundsError,
    InsufficientHeldFundsError,
    ValidationError,
)
from escrow_core.utils.metrics import metrics_registry
from tests.factories import balances, total_money


def _transactions(db, user):
    return db.execute(
        select(WalletTransaction).where(WalletTransaction.user_id == user.id)
    ).scalars().all()


def test_get_or_create_wallet_is_idempotent(db_session, buyer):
    """First access creates an empty wallet; later calls return the same row"""
    first = wallet_ledger.get_or_create_wallet(db_session, buyer.id)
    second = wallet_ledger.get_or_create_wallet(db_session, buyer.id)

    assert first.id == second.id
    assert (first.balance_available, first.balance_held) == (0, 0)
    count = db_session.execute(select(Wallet).where(Wallet.user_id == buyer.id)).scalars().all()
    assert len(count) == 1


def test_credit_and_debit_write_one_row_each(db_session, buyer):
    wallet_ledger.credit(db_session, buyer.id, 50000)
    wallet_ledger.debit(db_session, buyer.id, 12000)

    assert balances(db_session, buyer) == (38000, 0)
    types = sorted(tx.type.value for tx in _transactions(db_session, buyer))
    assert types == ["DEPOSIT", "WITHDRAWAL"]


def test_debit_insufficient_funds_writes_nothing(db_session, buyer):
    wallet_ledger.credit(db_session, buyer.id, 1000)

    with pytest.raises(InsufficientFundsError):
        wallet_ledger.debit(db_session, buyer.id, 1001)

    assert balances(db_session, buyer) == (1000, 0)
    assert len(_transactions(db_session, buyer)) == 1


@pytest.mark.parametrize("amount", [0, -5, 10.5, True])
def test_rejects_non_positive_or_non_integer_amounts(db_session, buyer, amount):
    with pytest.raises(ValidationError):
        wallet_ledger.credit(db_session, buyer.id, amount)


def test_credit_rejects_debit_type(db_session, buyer):
    with pytest.raises(ValidationError):
        wallet_ledger.credit(db_session, buyer.id, 100, WalletTransactionType.WITHDRAWAL)


def test_hold_moves_available_to_held(db_session, buyer):
    wallet_ledger.credit(db_session, buyer.id, 50000)
    reference_id = uuid4()

    tx = wallet_ledger.hold(db_session, buyer.id, 20000, reference_id=reference_id, meta={"source": "test"})

    assert balances(db_session, buyer) == (30000, 20000)
    assert tx.type == WalletTransactionType.HOLD
    assert tx.reference_id == reference_id
    assert tx.meta == {"source": "test"}


def test_withdraw_request_is_a_hold(db_session, buyer):
    wallet_ledger.credit(db_session, buyer.id, 5000)
    wallet_ledger.hold(db_session, buyer.id, 2000, WalletTransactionType.WITHDRAW_REQUEST)
    assert balances(db_session, buyer) == (3000, 2000)


def test_hold_insufficient_funds(db_session, buyer):
    wallet_ledger.credit(db_session, buyer.id, 100)
    with pytest.raises(InsufficientFundsError):
        wallet_ledger.hold(db_session, buyer.id, 101)
    assert balances(db_session, buyer) == (100, 0)


def test_release_pays_other_user_and_conserves_money(db_session, buyer, seller):
    wallet_ledger.credit(db_session, buyer.id, 50000)
    wallet_ledger.hold(db_session, buyer.id, 20000)
    before = total_money(db_session)

    release_tx, deposit_tx = wallet_ledger.release(db_session, buyer.id, seller.id, 20000, reference_id=uuid4())

    assert balances(db_session, buyer) == (30000, 0)
    assert balances(db_session, seller) == (20000, 0)
    assert total_money(db_session) == before
    assert release_tx.type == WalletTransactionType.RELEASE
    assert release_tx.user_id == buyer.id
    assert deposit_tx.type == WalletTransactionType.DEPOSIT
    assert deposit_tx.user_id == seller.id
    assert release_tx.reference_id == deposit_tx.reference_id


def test_release_to_self_is_rejected(db_session, buyer):
    wallet_ledger.credit(db_session, buyer.id, 1000)
    wallet_ledger.hold(db_session, buyer.id, 1000)
    with pytest.raises(ValidationError):
        wallet_ledger.release(db_session, buyer.id, buyer.id, 1000)


def test_release_more_than_held_is_an_anomaly(db_session, buyer, seller):
    wallet_ledger.credit(db_session, buyer.id, 1000)
    wallet_ledger.hold(db_session, buyer.id, 500)
    before = metrics_registry.get_sample_value("ledger_anomalies_total", {"kind": "insufficient_held"}) or 0

    with pytest.raises(InsufficientHeldFundsError):
        wallet_ledger.release(db_session, buyer.id, seller.id, 600)

    assert balances(db_session, buyer) == (500, 500)
    assert balances(db_session, seller) == (0, 0)
    after = metrics_registry.get_sample_value("ledger_anomalies_total", {"kind": "insufficient_held"})
    assert after == before + 1


def test_refund_returns_held_to_available(db_session, buyer):
    wallet_ledger.credit(db_session, buyer.id, 50000)
    wallet_ledger.hold(db_session, buyer.id, 20000)

    tx = wallet_ledger.refund(db_session, buyer.id, 20000)

    assert tx.type == WalletTransactionType.REFUND
    assert balances(db_session, buyer) == (50000, 0)


def test_refund_more_than_held(db_session, buyer):
    wallet_ledger.credit(db_session, buyer.id, 1000)
    with pytest.raises(InsufficientHeldFundsError):
        wallet_ledger.refund(db_session, buyer.id, 1)


def test_get_transactions_paginates_newest_first(db_session, buyer):
    for amount in (100, 200, 300):
        wallet_ledger.credit(db_session, buyer.id, amount)

    page = wallet_ledger.get_transactions(db_session, buyer.id, page=1, limit=2)

    assert page.total == 3
    assert page.total_pages == 2
    assert [tx.amount for tx in page.items] == [300, 200]

    second = wallet_ledger.get_transactions(db_session, buyer.id, page=2, limit=2)
    assert [tx.amount for tx in second.items] == [100]


def test_get_transactions_filters_and_caps_limit(db_session, buyer):
    wallet_ledger.credit(db_session, buyer.id, 1000)
    wallet_ledger.hold(db_session, buyer.id, 400)

    holds = wallet_ledger.get_transactions(db_session, buyer.id, type=WalletTransactionType.HOLD)
    assert [tx.type for tx in holds.items] == [WalletTransactionType.HOLD]

    capped = wallet_ledger.get_transactions(db_session, buyer.id, limit=500)
    assert capped.limit == 50


def test_get_transactions_rejects_page_zero(db_session, buyer):
    with pytest.raises(ValidationError):
        wallet_ledger.get_transactions(db_session, buyer.id, page=0)
