"""
Tests for opening and resolving disputes
"""

import pytest
import importlib
import warnings
from uuid import uuid4

from pydantic import PydanticDeprecatedSince20
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from escrow_core.core.disputes.models import DisputeResolution, DisputeStatus
from escrow_core.core.marketplace.models import MarketplaceOrder, OrderStatus, TradeConversation
from escrow_core.core.wallets.models import WalletTransaction, WalletTransactionType
from escrow_core.services import wallet_ledger
from escrow_core.schemas import disputes as dispute_schemas
from escrow_core.schemas import wallet as wallet_schemas
from escrow_core.services.disputes import service as dispute_service
from escrow_core.services.disputes.service import (
    get_dispute_by_id,
    get_disputes,
    open_dispute,
    resolve_dispute,
)
from escrow_core.services.errors import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from escrow_core.services.orders.service import confirm_delivery, create_order
from escrow_core.utils.metrics import metrics_registry
from tests.factories import balances, make_listing, total_money


@pytest.fixture
def order(db_session, funded_buyer, listing):
    """PENDING_DELIVERY order for 200.00 TL"""
    return create_order(db_session, listing.id, funded_buyer.id)


@pytest.fixture
def dispute(db_session, order, funded_buyer, moderator):
    return open_dispute(db_session, order.id, funded_buyer.id, "Ürün açıklamaya uymuyor")


def _order(db, order_id):
    return db.get(MarketplaceOrder, order_id, populate_existing=True)


def _conversation_locked(db, order_id):
    return db.execute(
        select(TradeConversation.is_locked).where(TradeConversation.order_id == order_id)
    ).scalar_one()


def test_open_dispute_suspends_order_without_moving_money(db_session, order, funded_buyer, moderator, sink):
    dispute = open_dispute(db_session, order.id, funded_buyer.id, "  Ürün gelmedi  ", note="Kargo takip yok", notifier=sink)

    assert dispute.status == DisputeStatus.OPEN
    assert dispute.reason == "Ürün gelmedi"
    assert dispute.note == "Kargo takip yok"
    assert dispute.opened_by_id == funded_buyer.id

    refreshed = _order(db_session, order.id)
    assert refreshed.status == OrderStatus.DISPUTED
    assert refreshed.disputed_at is not None
    assert balances(db_session, funded_buyer) == (30000, 20000)

    (event,) = sink.events
    assert event.user_id == moderator.id
    assert event.actor_id == funded_buyer.id
    assert event.title == "Yeni İtiraz"
    assert event.url == f"/admin/disputes/{dispute.id}"


@pytest.mark.parametrize("reason", ["", "   ", "x" * 501])
def test_open_dispute_reason_validation(db_session, order, funded_buyer, reason):
    with pytest.raises(ValidationError):
        open_dispute(db_session, order.id, funded_buyer.id, reason)
    assert _order(db_session, order.id).status == OrderStatus.PENDING_DELIVERY


def test_open_dispute_only_by_buyer(db_session, order, seller):
    with pytest.raises(ForbiddenError):
        open_dispute(db_session, order.id, seller.id, "Alıcı cevap vermiyor")


def test_open_dispute_missing_order(db_session, funded_buyer):
    with pytest.raises(NotFoundError):
        open_dispute(db_session, uuid4(), funded_buyer.id, "Ürün gelmedi")


def test_open_dispute_staff_lookup_failure_rolls_back(db_session, order, funded_buyer, monkeypatch):
    def lost_connection(db):
        raise OperationalError("SELECT users.id FROM users", {}, Exception("server closed the connection"))

    monkeypatch.setattr(dispute_service, "get_staff_user_ids", lost_connection)

    with pytest.raises(OperationalError):
        open_dispute(db_session, order.id, funded_buyer.id, "Ürün gelmedi")

    assert _order(db_session, order.id).status == OrderStatus.PENDING_DELIVERY
    assert get_disputes(db_session).total == 0


def test_second_dispute_is_conflict(db_session, dispute, order, funded_buyer):
    with pytest.raises(ConflictError):
        open_dispute(db_session, order.id, funded_buyer.id, "Tekrar deniyorum")


def test_dispute_after_completion_is_invalid(db_session, order, funded_buyer):
    confirm_delivery(db_session, order.id, funded_buyer.id)

    with pytest.raises(InvalidStateError):
        open_dispute(db_session, order.id, funded_buyer.id, "Geç kaldım")


def test_resolve_refund_buyer(db_session, dispute, order, funded_buyer, seller, moderator, sink):
    before = total_money(db_session)

    resolved = resolve_dispute(db_session, dispute.id, moderator.id, DisputeResolution.REFUND_BUYER, notifier=sink)

    assert resolved.status == DisputeStatus.RESOLVED
    assert resolved.resolution == DisputeResolution.REFUND_BUYER
    assert resolved.resolved_by_id == moderator.id
    assert resolved.resolved_at is not None
    assert _order(db_session, order.id).status == OrderStatus.REFUNDED
    assert balances(db_session, funded_buyer) == (50000, 0)
    assert balances(db_session, seller) == (0, 0)
    assert total_money(db_session) == before
    assert _conversation_locked(db_session, order.id) is True

    assert {event.user_id for event in sink.events} == {funded_buyer.id, seller.id}
    assert all(event.type == "admin_warning" and event.actor_id == moderator.id for event in sink.events)


def test_resolve_release_seller(db_session, dispute, order, funded_buyer, seller, moderator):
    resolve_dispute(db_session, dispute.id, moderator.id, "RELEASE_SELLER")

    refreshed = _order(db_session, order.id)
    assert refreshed.status == OrderStatus.COMPLETED
    assert refreshed.completed_at is not None
    assert balances(db_session, funded_buyer) == (30000, 0)
    assert balances(db_session, seller) == (20000, 0)


def test_resolve_partial_split(db_session, dispute, order, funded_buyer, seller, moderator):
    before = total_money(db_session)

    resolved = resolve_dispute(
        db_session, dispute.id, moderator.id, DisputeResolution.PARTIAL,
        buyer_amount=5000, meta={"ticket": "DST-42"},
    )

    assert balances(db_session, funded_buyer) == (35000, 0)
    assert balances(db_session, seller) == (15000, 0)
    assert total_money(db_session) == before
    assert _order(db_session, order.id).status == OrderStatus.COMPLETED
    assert resolved.meta["kind"] == "partial_split"
    assert resolved.meta["buyer_amount"] == 5000
    assert resolved.meta["seller_amount"] == 15000
    assert resolved.meta["ticket"] == "DST-42"

    settlement = db_session.execute(
        select(WalletTransaction).where(WalletTransaction.reference_id == order.id)
    ).scalars().all()
    amounts = {(tx.user_id, tx.type): tx.amount for tx in settlement}
    assert amounts == {
        (funded_buyer.id, WalletTransactionType.REFUND): 5000,
        (funded_buyer.id, WalletTransactionType.RELEASE): 15000,
        (seller.id, WalletTransactionType.DEPOSIT): 15000,
    }
    assert all(tx.meta["partial"] is True for tx in settlement)


def test_resolve_partial_split_is_exact(db_session, buyer, seller, moderator):
    wallet_ledger.credit(db_session, buyer.id, 10000)
    listing = make_listing(db_session, seller, price="100.00")
    order = create_order(db_session, listing.id, buyer.id)
    dispute = open_dispute(db_session, order.id, buyer.id, "Eksik parça")

    resolve_dispute(db_session, dispute.id, moderator.id, DisputeResolution.PARTIAL, buyer_amount=3000)

    assert balances(db_session, buyer) == (3000, 0)
    assert balances(db_session, seller) == (7000, 0)
    assert total_money(db_session) == 10000


@pytest.mark.parametrize("buyer_amount", [None, 0, -1, 20000, 25000])
def test_resolve_partial_rejects_bad_split(db_session, dispute, order, funded_buyer, moderator, buyer_amount):
    with pytest.raises(ValidationError):
        resolve_dispute(db_session, dispute.id, moderator.id, DisputeResolution.PARTIAL, buyer_amount=buyer_amount)

    assert get_dispute_by_id(db_session, dispute.id).status == DisputeStatus.OPEN
    assert _order(db_session, order.id).status == OrderStatus.DISPUTED
    assert balances(db_session, funded_buyer) == (30000, 20000)


def test_resolve_rejects_buyer_amount_without_partial(db_session, dispute, moderator):
    with pytest.raises(ValidationError):
        resolve_dispute(db_session, dispute.id, moderator.id, DisputeResolution.REFUND_BUYER, buyer_amount=100)


def test_resolve_rejects_unknown_resolution(db_session, dispute, moderator):
    with pytest.raises(ValidationError):
        resolve_dispute(db_session, dispute.id, moderator.id, "SPLIT_EVENLY")


def test_resolve_requires_staff(db_session, dispute, funded_buyer, seller):
    with pytest.raises(ForbiddenError):
        resolve_dispute(db_session, dispute.id, seller.id, DisputeResolution.RELEASE_SELLER)
    assert balances(db_session, seller) == (0, 0)


def test_resolve_twice_is_invalid_state(db_session, dispute, moderator, seller):
    resolve_dispute(db_session, dispute.id, moderator.id, DisputeResolution.RELEASE_SELLER)

    with pytest.raises(InvalidStateError):
        resolve_dispute(db_session, dispute.id, moderator.id, DisputeResolution.REFUND_BUYER)
    assert balances(db_session, seller) == (20000, 0)


def test_resolve_missing_dispute(db_session, moderator):
    with pytest.raises(NotFoundError):
        resolve_dispute(db_session, uuid4(), moderator.id, DisputeResolution.REFUND_BUYER)


def test_resolve_counts_operation(db_session, dispute, moderator):
    before = metrics_registry.get_sample_value("escrow_operations_total", {"operation": "resolve_dispute"}) or 0

    resolve_dispute(db_session, dispute.id, moderator.id, DisputeResolution.REFUND_BUYER)

    after = metrics_registry.get_sample_value("escrow_operations_total", {"operation": "resolve_dispute"})
    assert after == before + 1


def test_get_disputes_filters_by_status(db_session, dispute, moderator):
    assert get_disputes(db_session).total == 1
    assert get_disputes(db_session, status=DisputeStatus.OPEN).total == 1

    resolve_dispute(db_session, dispute.id, moderator.id, DisputeResolution.REFUND_BUYER)

    assert get_disputes(db_session, status=DisputeStatus.OPEN).total == 0
    assert [d.id for d in get_disputes(db_session, status=DisputeStatus.RESOLVED).items] == [dispute.id]


def test_get_dispute_by_id_missing(db_session):
    with pytest.raises(NotFoundError):
        get_dispute_by_id(db_session, uuid4())


def test_request_schemas_load_without_deprecation_warnings():
    with warnings.catch_warnings():
        warnings.simplefilter("error", PydanticDeprecatedSince20)
        importlib.reload(dispute_schemas)
        importlib.reload(wallet_schemas)

    example = dispute_schemas.ResolveDisputeRequest.model_config["json_schema_extra"]["example"]
    assert example["resolution"] == "PARTIAL"
    assert "example" in wallet_schemas.WalletBalanceResponse.model_json_schema()
