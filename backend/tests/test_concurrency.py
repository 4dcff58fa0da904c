"""
Concurrency tests for row locks and status guards

SQLite has no row-level locking, so these run only against PostgreSQL
(TEST_DATABASE_URL=postgresql://...).
"""

import pytest
import os
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from threading import Barrier

from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from escrow_core.core.disputes.models import Dispute
from escrow_core.core.marketplace.models import MarketplaceOrder, OrderStatus
from escrow_core.core.wallets.models import WalletTransaction, WalletTransactionType
from escrow_core.services import wallet_ledger
from escrow_core.services.errors import ConflictError, InvalidStateError
from escrow_core.services.disputes.service import open_dispute
from escrow_core.services.orders.service import auto_release_order, confirm_delivery, create_order
from escrow_core.services.withdrawals.service import mark_withdrawal_paid, reject_withdrawal, request_withdrawal
from escrow_core.utils.time import utcnow
from tests.factories import balances, make_user, total_money

pytestmark = pytest.mark.skipif(
    not os.environ["DATABASE_URL"].startswith("postgresql"),
    reason="row-level locking requires PostgreSQL",
)

WORKERS = 5


@pytest.fixture
def thread_sessions(db_session):
    """Session factory with a real connection pool, one session per thread"""
    engine = create_engine(os.environ["DATABASE_URL"], pool_size=WORKERS + 1, max_overflow=0)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    try:
        yield factory
    finally:
        engine.dispose()


def _run_concurrently(factory, fn, args_list):
    barrier = Barrier(len(args_list))

    def worker(args):
        db = factory()
        try:
            barrier.wait()
            return fn(db, *args), None
        except Exception as e:
            return None, e
        finally:
            db.close()

    with ThreadPoolExecutor(max_workers=len(args_list)) as pool:
        return list(pool.map(worker, args_list))


def test_only_one_buyer_wins_a_listing(db_session, thread_sessions, listing):
    buyers = [make_user(db_session, f"yarisan_{i}") for i in range(WORKERS)]
    for buyer in buyers:
        wallet_ledger.credit(db_session, buyer.id, 50000)
    db_session.commit()
    start = total_money(db_session)
    listing_id = listing.id

    results = _run_concurrently(
        thread_sessions,
        lambda db, buyer_id: create_order(db, listing_id, buyer_id),
        [(buyer.id,) for buyer in buyers],
    )

    winners = [order for order, error in results if error is None]
    losers = [error for order, error in results if error is not None]
    assert len(winners) == 1
    assert all(isinstance(error, (ConflictError, InvalidStateError)) for error in losers)

    db_session.expire_all()
    orders = db_session.execute(select(MarketplaceOrder)).scalars().all()
    assert len(orders) == 1
    holds = db_session.execute(
        select(WalletTransaction).where(WalletTransaction.type == WalletTransactionType.HOLD)
    ).scalars().all()
    assert len(holds) == 1
    held = [balances(db_session, buyer)[1] for buyer in buyers]
    assert sorted(held) == [0] * (WORKERS - 1) + [20000]
    assert total_money(db_session) == start


def test_confirm_and_auto_release_settle_once(db_session, thread_sessions, funded_buyer, seller, listing):
    order = create_order(db_session, listing.id, funded_buyer.id)
    order_id, buyer_id = order.id, funded_buyer.id
    later = utcnow() + timedelta(hours=73)

    def settle(db, kind):
        if kind == "confirm":
            return confirm_delivery(db, order_id, buyer_id)
        return auto_release_order(db, order_id, now=later)

    results = _run_concurrently(thread_sessions, settle, [("confirm",), ("auto",), ("auto",), ("confirm",)])

    for _, error in results:
        assert error is None or isinstance(error, (ConflictError, InvalidStateError))

    db_session.expire_all()
    releases = db_session.execute(
        select(WalletTransaction).where(
            WalletTransaction.reference_id == order_id,
            WalletTransaction.type == WalletTransactionType.RELEASE,
        )
    ).scalars().all()
    assert len(releases) == 1
    assert balances(db_session, seller) == (20000, 0)
    assert balances(db_session, funded_buyer) == (30000, 0)


def test_concurrent_first_wallet_access_creates_one_row(db_session, thread_sessions, buyer):
    results = _run_concurrently(
        thread_sessions,
        lambda db, user_id: wallet_ledger.get_or_create_wallet(db, user_id).id,
        [(buyer.id,)] * WORKERS,
    )

    ids = {wallet_id for wallet_id, error in results}
    assert all(error is None for _, error in results)
    assert len(ids) == 1


def test_concurrent_disputes_on_one_order(db_session, thread_sessions, funded_buyer, listing):
    order = create_order(db_session, listing.id, funded_buyer.id)
    order_id, buyer_id = order.id, funded_buyer.id

    results = _run_concurrently(
        thread_sessions,
        lambda db, reason: open_dispute(db, order_id, buyer_id, reason),
        [("Ürün gelmedi",), ("Kargo kayıp",)],
    )

    winners = [dispute for dispute, error in results if error is None]
    losers = [error for dispute, error in results if error is not None]
    assert len(winners) == 1
    assert len(losers) == 1
    assert isinstance(losers[0], ConflictError)

    db_session.expire_all()
    disputes = db_session.execute(select(Dispute).where(Dispute.order_id == order_id)).scalars().all()
    assert len(disputes) == 1
    assert db_session.get(MarketplaceOrder, order_id).status == OrderStatus.DISPUTED
    assert balances(db_session, funded_buyer) == (30000, 20000)


def test_dispute_and_auto_release_race_on_overdue_order(db_session, thread_sessions, funded_buyer, seller, listing):
    order = create_order(db_session, listing.id, funded_buyer.id)
    order_id, buyer_id = order.id, funded_buyer.id
    later = utcnow() + timedelta(hours=73)
    start = total_money(db_session)

    def act(db, kind):
        if kind == "dispute":
            return open_dispute(db, order_id, buyer_id, "Ürün açıklamaya uymuyor")
        return auto_release_order(db, order_id, now=later)

    results = dict(zip(
        ["dispute", "auto"],
        _run_concurrently(thread_sessions, act, [("dispute",), ("auto",)]),
    ))
    dispute, dispute_error = results["dispute"]
    released, auto_error = results["auto"]

    assert auto_error is None
    assert (dispute is not None) != (released is not None)
    if released is not None:
        assert isinstance(dispute_error, InvalidStateError)

    db_session.expire_all()
    releases = db_session.execute(
        select(WalletTransaction).where(
            WalletTransaction.reference_id == order_id,
            WalletTransaction.type == WalletTransactionType.RELEASE,
        )
    ).scalars().all()
    disputes = db_session.execute(select(Dispute).where(Dispute.order_id == order_id)).scalars().all()
    assert len(releases) + len(disputes) == 1

    if released is not None:
        assert balances(db_session, seller) == (20000, 0)
        assert balances(db_session, funded_buyer) == (30000, 0)
    else:
        assert balances(db_session, seller) == (0, 0)
        assert balances(db_session, funded_buyer) == (30000, 20000)
    assert total_money(db_session) == start


def test_withdrawal_paid_and_rejected_settle_once(db_session, thread_sessions, funded_buyer, moderator):
    withdrawal = request_withdrawal(db_session, funded_buyer.id, 10000, "TR330006100519786457841326", "Ayşe Yılmaz")
    withdrawal_id, moderator_id = withdrawal.id, moderator.id

    def review(db, kind):
        if kind == "paid":
            return mark_withdrawal_paid(db, withdrawal_id, moderator_id)
        return reject_withdrawal(db, withdrawal_id, moderator_id, "IBAN sahibi eşleşmiyor")

    results = _run_concurrently(thread_sessions, review, [("paid",), ("reject",), ("paid",)])

    winners = [w for w, error in results if error is None]
    assert len(winners) == 1
    for _, error in results:
        assert error is None or isinstance(error, (ConflictError, InvalidStateError))

    db_session.expire_all()
    settled = db_session.execute(
        select(WalletTransaction).where(
            WalletTransaction.reference_id == withdrawal_id,
            WalletTransaction.type.in_([WalletTransactionType.WITHDRAW_PAID, WalletTransactionType.REFUND]),
        )
    ).scalars().all()
    assert len(settled) == 1
    if settled[0].type == WalletTransactionType.WITHDRAW_PAID:
        assert balances(db_session, funded_buyer) == (40000, 0)
    else:
        assert balances(db_session, funded_buyer) == (50000, 0)
