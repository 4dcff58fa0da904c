"""
Tests for notification dispatch and the notification worker job
"""

from uuid import uuid4

from sqlalchemy import select

from escrow_core.core.marketplace.models import OrderStatus
from escrow_core.core.notifications.models import Notification
from escrow_core.services.notifications import (
    DELIVER_JOB,
    NotificationEvent,
    NullNotificationSink,
    RQNotificationSink,
    dispatch_notifications,
    dispute_opened_events,
    format_minor,
    get_notification_sink,
    listing_sold_event,
)
from escrow_core.services.orders.service import confirm_delivery, create_order
from escrow_core.utils.metrics import metrics_registry
from escrow_core.workers.jobs import persist_notification
from tests.factories import FailingSink, RecordingSink, balances


class FakeQueue:
    def __init__(self):
        self.jobs = []

    def enqueue(self, func, *args, **kwargs):
        self.jobs.append((func, args, kwargs))


def _event(user_id=None, actor_id=None):
    return NotificationEvent(
        user_id=user_id or uuid4(),
        type="system_announcement",
        title="Duyuru",
        content="Test",
        actor_id=actor_id,
    )


def test_format_minor():
    assert format_minor(1250) == "12.50 ₺"
    assert format_minor(20000) == "200.00 ₺"
    assert format_minor(1) == "0.01 ₺"


def test_dispatch_swallows_and_counts_failures():
    sink = FailingSink()
    before = metrics_registry.get_sample_value("notification_failures_total") or 0

    delivered = dispatch_notifications(sink, [_event(), _event()])

    assert delivered == 0
    assert sink.calls == 2
    assert metrics_registry.get_sample_value("notification_failures_total") == before + 2


def test_dispatch_delivers_every_event():
    sink = RecordingSink()
    events = [_event(), _event()]

    assert dispatch_notifications(sink, events) == 2
    assert sink.events == events


def test_disabled_notifications_use_null_sink():
    assert isinstance(get_notification_sink(), NullNotificationSink)
    assert dispatch_notifications(None, [_event()]) == 1


def test_rq_sink_enqueues_json_payload():
    queue = FakeQueue()
    user_id, order_id, buyer_id = uuid4(), uuid4(), uuid4()
    event = listing_sold_event(seller_id=user_id, buyer_id=buyer_id, order_id=order_id, listing_title="Bisiklet")

    RQNotificationSink(queue=queue).notify(event)

    ((func, args, _),) = queue.jobs
    assert func == DELIVER_JOB
    payload = args[0]
    assert payload["user_id"] == str(user_id)
    assert payload["actor_id"] == str(buyer_id)
    assert payload["target_id"] == str(order_id)
    assert payload["url"] == f"/marketplace/orders/{order_id}"
    assert '"Bisiklet"' in payload["content"]


def test_dispute_opened_events_one_per_staff_member():
    staff = [uuid4(), uuid4()]
    events = dispute_opened_events(staff_ids=staff, opened_by_id=uuid4(), dispute_id=uuid4(), listing_title="Saat")
    assert [event.user_id for event in events] == staff


def test_failing_sink_does_not_undo_financial_operations(db_session, funded_buyer, seller, listing):
    sink = FailingSink()

    order = create_order(db_session, listing.id, funded_buyer.id, notifier=sink)
    confirm_delivery(db_session, order.id, funded_buyer.id, notifier=sink)

    assert sink.calls == 2
    assert order.status == OrderStatus.COMPLETED
    assert balances(db_session, seller) == (20000, 0)


def test_persist_notification_writes_row(db_session, buyer, seller):
    event = listing_sold_event(seller_id=seller.id, buyer_id=buyer.id, order_id=uuid4(), listing_title="Kamera")

    notification = persist_notification(db_session, event.to_payload())

    stored = db_session.execute(select(Notification)).scalar_one()
    assert stored.id == notification.id
    assert stored.user_id == seller.id
    assert stored.actor_id == buyer.id
    assert stored.title == "İlanınız Satıldı"
    assert stored.read_at is None


def test_persist_notification_skips_self_notification(db_session, buyer):
    payload = _event(user_id=buyer.id, actor_id=buyer.id).to_payload()

    assert persist_notification(db_session, payload) is None
    assert db_session.execute(select(Notification)).scalars().all() == []
