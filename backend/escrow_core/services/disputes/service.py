"""
Dispute service - open and adjudicate disputes on escrowed orders
"""

import logging
from typing import Any, Optional, Union
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from escrow_core.core.disputes.models import Dispute, DisputeResolution, DisputeStatus
from escrow_core.core.marketplace.models import OrderStatus
from escrow_core.infrastructure.database import atomic
from escrow_core.schemas.meta import OrderSettlementMeta, PartialSplitMeta, merge_meta
from escrow_core.services import wallet_ledger
from escrow_core.services.errors import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from escrow_core.services.identity import get_staff_user_ids, is_staff
from escrow_core.services.notifications import (
    NotificationSink,
    dispatch_notifications,
    dispute_opened_events,
    dispute_resolved_events,
)
from escrow_core.services.orders.service import lock_conversation, lock_order, transition_order
from escrow_core.services.pagination import Page, clamp_page, paginate
from escrow_core.utils.metrics import record_escrow_operation
from escrow_core.utils.time import utcnow

logger = logging.getLogger(__name__)

DISPUTES_PAGE_MAX = 50
REASON_MAX_LENGTH = 500


def open_dispute(
    db: Session,
    order_id: UUID,
    opened_by_id: UUID,
    reason: str,
    note: Optional[str] = None,
    notifier: Optional[NotificationSink] = None,
) -> Dispute:
    """
    Buyer disputes an order awaiting delivery confirmation.

    The order moves to DISPUTED, which suppresses auto-release. No money moves.
    Staff users are notified after commit.

    Raises:
        ValidationError: Empty or too long reason
        NotFoundError: Order missing
        ForbiddenError: Caller is not the buyer
        ConflictError: A dispute already exists for the order
        InvalidStateError: Order is not PENDING_DELIVERY
    """
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Dispute reason is required")
    if len(reason) > REASON_MAX_LENGTH:
        raise ValidationError(f"Dispute reason must be at most {REASON_MAX_LENGTH} characters")

    now = utcnow()

    try:
        with atomic(db):
            order = lock_order(db, order_id)
            if order is None:
                raise NotFoundError(f"Order {order_id} not found")
            if order.buyer_id != opened_by_id:
                raise ForbiddenError("Only the buyer can open a dispute")

            existing = db.execute(select(Dispute.id).where(Dispute.order_id == order_id)).first()
            if existing is not None:
                raise ConflictError(f"A dispute already exists for order {order_id}")

            if order.status != OrderStatus.PENDING_DELIVERY:
                raise InvalidStateError(f"Order cannot be disputed (current status: {order.status.value})")

            dispute = Dispute(
                order_id=order_id,
                opened_by_id=opened_by_id,
                reason=reason,
                note=note,
                status=DisputeStatus.OPEN,
            )
            db.add(dispute)
            db.flush()

            if not transition_order(db, order_id, OrderStatus.PENDING_DELIVERY, status=OrderStatus.DISPUTED, disputed_at=now):
                raise ConflictError(f"Order {order_id} changed state concurrently")

            listing_title = order.listing.title
            staff_ids = get_staff_user_ids(db)
    except IntegrityError as e:
        logger.warning(
            "Dispute creation lost a uniqueness race",
            extra={"order_id": str(order_id), "error": str(e.orig)},
        )
        raise ConflictError(f"A dispute already exists for order {order_id}") from e

    record_escrow_operation("open_dispute")
    logger.info("Dispute opened", extra={"dispute_id": str(dispute.id), "order_id": str(order_id)})

    dispatch_notifications(notifier, dispute_opened_events(
        staff_ids=staff_ids,
        opened_by_id=opened_by_id,
        dispute_id=dispute.id,
        listing_title=listing_title,
    ))
    return dispute


def _coerce_resolution(resolution: Union[DisputeResolution, str]) -> DisputeResolution:
    try:
        return DisputeResolution(resolution)
    except ValueError:
        allowed = ", ".join(r.value for r in DisputeResolution)
        raise ValidationError(f"Unknown resolution {resolution!r} (allowed: {allowed})") from None


def _validate_split(buyer_amount: Any, order_amount: int) -> int:
    if buyer_amount is None:
        raise ValidationError("buyer_amount is required for PARTIAL resolution")
    if isinstance(buyer_amount, bool) or not isinstance(buyer_amount, int):
        raise ValidationError("buyer_amount must be an integer in minor unit")
    if buyer_amount <= 0 or buyer_amount >= order_amount:
        raise ValidationError(f"buyer_amount must be between 1 and {order_amount - 1}")
    return buyer_amount


def resolve_dispute(
    db: Session,
    dispute_id: UUID,
    resolved_by_id: UUID,
    resolution: Union[DisputeResolution, str],
    buyer_amount: Optional[int] = None,
    meta: Optional[dict] = None,
    notifier: Optional[NotificationSink] = None,
) -> Dispute:
    """
    Settle a disputed order.

    - REFUND_BUYER: held amount back to the buyer, order -> REFUNDED
    - RELEASE_SELLER: held amount to the seller, order -> COMPLETED
    - PARTIAL: buyer_amount back to the buyer, the rest to the seller, order -> COMPLETED

    Ledger calls, order and dispute transitions and the conversation lock are
    one transaction. Buyer and seller are notified after commit.

    Raises:
        ValidationError: Unknown resolution or malformed PARTIAL split
        ForbiddenError: Resolver is not staff
        NotFoundError: Dispute missing
        InvalidStateError: Dispute not OPEN (or order not DISPUTED)
        InsufficientHeldFundsError: Ledger/order desync, propagated as-is
    """
    resolution = _coerce_resolution(resolution)
    if resolution == DisputeResolution.PARTIAL:
        if buyer_amount is None:
            raise ValidationError("buyer_amount is required for PARTIAL resolution")
    elif buyer_amount is not None:
        raise ValidationError("buyer_amount is only accepted for PARTIAL resolution")

    now = utcnow()

    with atomic(db):
        if not is_staff(db, resolved_by_id):
            raise ForbiddenError("Only moderators and admins can resolve disputes")

        dispute = db.execute(
            select(Dispute)
            .where(Dispute.id == dispute_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if dispute is None:
            raise NotFoundError(f"Dispute {dispute_id} not found")
        if dispute.status != DisputeStatus.OPEN:
            raise InvalidStateError(f"Dispute is already {dispute.status.value}")

        order = lock_order(db, dispute.order_id)
        if order is None or order.status != OrderStatus.DISPUTED:
            raise InvalidStateError(f"Order {dispute.order_id} is not DISPUTED")

        listing_title = order.listing.title
        settlement_meta = OrderSettlementMeta(
            order_id=order.id,
            listing_title=listing_title,
            dispute_id=dispute.id,
            resolution=resolution.value,
            partial=resolution == DisputeResolution.PARTIAL,
        )
        split = None

        if resolution == DisputeResolution.REFUND_BUYER:
            wallet_ledger.refund(db, order.buyer_id, order.amount, reference_id=order.id, meta=settlement_meta, commit=False)
            new_status = OrderStatus.REFUNDED
            order_values = {}
        elif resolution == DisputeResolution.RELEASE_SELLER:
            wallet_ledger.release(
                db, order.buyer_id, order.seller_id, order.amount,
                reference_id=order.id, meta=settlement_meta, commit=False,
            )
            new_status = OrderStatus.COMPLETED
            order_values = {"completed_at": now}
        else:
            refund_amount = _validate_split(buyer_amount, order.amount)
            seller_amount = order.amount - refund_amount
            split = PartialSplitMeta(buyer_amount=refund_amount, seller_amount=seller_amount)
            wallet_ledger.refund(db, order.buyer_id, refund_amount, reference_id=order.id, meta=settlement_meta, commit=False)
            wallet_ledger.release(
                db, order.buyer_id, order.seller_id, seller_amount,
                reference_id=order.id, meta=settlement_meta, commit=False,
            )
            new_status = OrderStatus.COMPLETED
            order_values = {"completed_at": now}

        if not transition_order(db, order.id, OrderStatus.DISPUTED, status=new_status, **order_values):
            raise ConflictError(f"Order {order.id} changed state concurrently")

        result = db.execute(
            update(Dispute)
            .where(Dispute.id == dispute_id, Dispute.status == DisputeStatus.OPEN)
            .values(
                status=DisputeStatus.RESOLVED,
                resolution=resolution,
                resolved_by_id=resolved_by_id,
                resolved_at=now,
                meta=merge_meta(split, meta),
            )
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount != 1:
            raise ConflictError(f"Dispute {dispute_id} changed state concurrently")

        lock_conversation(db, order.id, now)
        buyer_id, seller_id, order_id = order.buyer_id, order.seller_id, order.id

    record_escrow_operation("resolve_dispute")
    logger.info(
        "Dispute resolved",
        extra={
            "dispute_id": str(dispute_id),
            "order_id": str(order_id),
            "resolution": resolution.value,
            "resolved_by_id": str(resolved_by_id),
        },
    )

    dispatch_notifications(notifier, dispute_resolved_events(
        buyer_id=buyer_id,
        seller_id=seller_id,
        resolved_by_id=resolved_by_id,
        dispute_id=dispute_id,
        order_id=order_id,
        listing_title=listing_title,
    ))
    return dispute


def get_dispute_by_id(db: Session, dispute_id: UUID) -> Dispute:
    dispute = db.get(Dispute, dispute_id, populate_existing=True)
    if dispute is None:
        raise NotFoundError(f"Dispute {dispute_id} not found")
    return dispute


def get_disputes(
    db: Session,
    status: Optional[DisputeStatus] = None,
    page: int = 1,
    limit: int = 20,
) -> Page[Dispute]:
    """Disputes for the staff queue, oldest open first"""
    page, limit = clamp_page(page, limit, DISPUTES_PAGE_MAX)
    stmt = select(Dispute)
    if status is not None:
        stmt = stmt.where(Dispute.status == status)
    stmt = stmt.order_by(Dispute.created_at.asc(), Dispute.id.asc())
    return paginate(db, stmt, page, limit)
