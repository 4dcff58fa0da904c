"""
Notification sink - fire-and-forget delivery of escrow events

Services collect NotificationEvent objects while a unit of work runs and hand
them to `dispatch_notifications` only after the commit. Delivery goes through
an RQ queue; the worker job persists the Notification row. A failing sink is
logged and counted, never raised, so it cannot undo a financial operation.
"""

import logging
from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Iterable, Optional, Protocol
from uuid import UUID

from rq import Queue

from escrow_core.infrastructure.redis_client import get_redis
from escrow_core.infrastructure.settings import get_settings
from escrow_core.utils.metrics import record_notification_failure

logger = logging.getLogger(__name__)

DELIVER_JOB = "escrow_core.workers.jobs.deliver_notification"

# Notification types understood by the host application
TYPE_MARKETPLACE_SOLD = "marketplace_sold"
TYPE_SYSTEM_ANNOUNCEMENT = "system_announcement"
TYPE_ADMIN_WARNING = "admin_warning"


@dataclass(frozen=True)
class NotificationEvent:
    """One notification for one user"""
    user_id: UUID
    type: str
    title: str
    content: str
    url: Optional[str] = None
    actor_id: Optional[UUID] = None
    target_id: Optional[UUID] = None

    def to_payload(self) -> dict:
        """JSON-safe dict for the queue"""
        return {
            key: str(value) if isinstance(value, UUID) else value
            for key, value in asdict(self).items()
        }


class NotificationSink(Protocol):
    def notify(self, event: NotificationEvent) -> None:
        ...


class RQNotificationSink:
    """Enqueue each event for the notification worker"""

    def __init__(self, queue: Optional[Queue] = None):
        self._queue = queue

    @property
    def queue(self) -> Queue:
        if self._queue is None:
            self._queue = Queue(get_settings().NOTIFICATIONS_QUEUE, connection=get_redis())
        return self._queue

    def notify(self, event: NotificationEvent) -> None:
        self.queue.enqueue(DELIVER_JOB, event.to_payload())


class NullNotificationSink:
    """Drop every event (notifications disabled)"""

    def notify(self, event: NotificationEvent) -> None:
        logger.debug("Notifications disabled, dropping event", extra={"user_id": str(event.user_id), "type": event.type})


def get_notification_sink() -> NotificationSink:
    """Default sink for the current settings (also used as a FastAPI dependency)"""
    if not get_settings().NOTIFICATIONS_ENABLED:
        return NullNotificationSink()
    return RQNotificationSink()


def dispatch_notifications(sink: Optional[NotificationSink], events: Iterable[NotificationEvent]) -> int:
    """
    Deliver events best-effort.

    Returns the number of events the sink accepted. Every failure is logged
    with its traceback and counted; none is re-raised.
    """
    if sink is None:
        sink = get_notification_sink()

    delivered = 0
    for event in events:
        try:
            sink.notify(event)
            delivered += 1
        except Exception:
            logger.exception(
                "Notification dispatch failed",
                extra={"user_id": str(event.user_id), "notification_type": event.type},
            )
            record_notification_failure()
    return delivered


def format_minor(amount: int) -> str:
    """Presentation only: 1250 -> '12.50 ₺'"""
    return f"{(Decimal(amount) / 100).quantize(Decimal('0.01'))} ₺"


def _order_url(order_id: UUID) -> str:
    return f"/marketplace/orders/{order_id}"


def listing_sold_event(*, seller_id: UUID, buyer_id: UUID, order_id: UUID, listing_title: str) -> NotificationEvent:
    return NotificationEvent(
        user_id=seller_id,
        type=TYPE_MARKETPLACE_SOLD,
        title="İlanınız Satıldı",
        content=f'"{listing_title}" ilanınız satıldı. Sipariş detaylarını görüntüleyin.',
        url=_order_url(order_id),
        actor_id=buyer_id,
        target_id=order_id,
    )


def delivery_confirmed_event(*, seller_id: UUID, buyer_id: UUID, order_id: UUID, listing_title: str, amount: int) -> NotificationEvent:
    return NotificationEvent(
        user_id=seller_id,
        type=TYPE_MARKETPLACE_SOLD,
        title="Teslimat Onaylandı",
        content=(
            f'"{listing_title}" siparişi için teslimat onaylandı. '
            f"{format_minor(amount)} hesabınıza aktarıldı."
        ),
        url=_order_url(order_id),
        actor_id=buyer_id,
        target_id=order_id,
    )


def auto_release_events(*, seller_id: UUID, buyer_id: UUID, order_id: UUID, listing_title: str, window_hours: int) -> list[NotificationEvent]:
    return [
        NotificationEvent(
            user_id=seller_id,
            type=TYPE_MARKETPLACE_SOLD,
            title="Otomatik Ödeme",
            content=f'"{listing_title}" siparişi için {window_hours} saat geçti ve ödeme otomatik olarak hesabınıza aktarıldı.',
            url=_order_url(order_id),
            target_id=order_id,
        ),
        NotificationEvent(
            user_id=buyer_id,
            type=TYPE_SYSTEM_ANNOUNCEMENT,
            title="Otomatik Ödeme",
            content=f'"{listing_title}" siparişi için {window_hours} saat geçti ve ödeme satıcıya otomatik olarak aktarıldı.',
            url=_order_url(order_id),
            target_id=order_id,
        ),
    ]


def dispute_opened_events(*, staff_ids: Iterable[UUID], opened_by_id: UUID, dispute_id: UUID, listing_title: str) -> list[NotificationEvent]:
    return [
        NotificationEvent(
            user_id=staff_id,
            type=TYPE_SYSTEM_ANNOUNCEMENT,
            title="Yeni İtiraz",
            content=f'"{listing_title}" siparişi için itiraz açıldı.',
            url=f"/admin/disputes/{dispute_id}",
            actor_id=opened_by_id,
            target_id=dispute_id,
        )
        for staff_id in staff_ids
    ]


def dispute_resolved_events(*, buyer_id: UUID, seller_id: UUID, resolved_by_id: UUID, dispute_id: UUID, order_id: UUID, listing_title: str) -> list[NotificationEvent]:
    return [
        NotificationEvent(
            user_id=buyer_id,
            type=TYPE_ADMIN_WARNING,
            title="İtiraz Çözüldü",
            content=f'"{listing_title}" siparişi için itirazınız çözüldü.',
            url=_order_url(order_id),
            actor_id=resolved_by_id,
            target_id=dispute_id,
        ),
        NotificationEvent(
            user_id=seller_id,
            type=TYPE_ADMIN_WARNING,
            title="İtiraz Çözüldü",
            content=f'"{listing_title}" siparişi için itiraz çözüldü.',
            url=_order_url(order_id),
            actor_id=resolved_by_id,
            target_id=dispute_id,
        ),
    ]


def withdrawal_paid_event(*, user_id: UUID, reviewed_by_id: UUID, withdrawal_id: UUID, amount: int) -> NotificationEvent:
    return NotificationEvent(
        user_id=user_id,
        type=TYPE_SYSTEM_ANNOUNCEMENT,
        title="Çekim Ödendi",
        content=f"{format_minor(amount)} tutarındaki çekim talebiniz ödendi.",
        url="/wallet/history",
        actor_id=reviewed_by_id,
        target_id=withdrawal_id,
    )


def withdrawal_rejected_event(*, user_id: UUID, reviewed_by_id: UUID, withdrawal_id: UUID, reason: str) -> NotificationEvent:
    return NotificationEvent(
        user_id=user_id,
        type=TYPE_ADMIN_WARNING,
        title="Çekim Talebi Reddedildi",
        content=f"Çekim talebiniz reddedildi. Sebep: {reason}. Tutar hesabınıza iade edildi.",
        url="/wallet/history",
        actor_id=reviewed_by_id,
        target_id=withdrawal_id,
    )
