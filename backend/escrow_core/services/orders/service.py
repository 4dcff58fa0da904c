"""
Order/escrow service - purchase lifecycle on top of the wallet ledger

State machine:
    (none) --create_order--> PENDING_DELIVERY
    PENDING_DELIVERY --confirm_delivery--> COMPLETED
    PENDING_DELIVERY --auto_release_order--> COMPLETED
    PENDING_DELIVERY --open_dispute--> DISPUTED (see services/disputes)
COMPLETED, REFUNDED and CANCELLED are terminal.

Every transition is a status-guarded UPDATE inside the same transaction as
the ledger call, so a lost race never moves money twice.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from escrow_core.core.disputes.models import Dispute, DisputeStatus
from escrow_core.core.marketplace.models import (
    ACTIVE_ORDER_STATUSES,
    ListingStatus,
    MarketplaceOrder,
    OrderStatus,
    TradeConversation,
)
from escrow_core.core.wallets.models import WalletTransactionType
from escrow_core.infrastructure.database import atomic
from escrow_core.infrastructure.settings import get_settings
from escrow_core.schemas.meta import ListingHoldMeta, OrderSettlementMeta
from escrow_core.services import wallet_ledger
from escrow_core.services.errors import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from escrow_core.services.identity import is_staff
from escrow_core.services.listings import listing_amount_minor, lock_listing, mark_listing_sold
from escrow_core.services.notifications import (
    NotificationSink,
    auto_release_events,
    delivery_confirmed_event,
    dispatch_notifications,
    listing_sold_event,
)
from escrow_core.services.pagination import Page, clamp_page, paginate
from escrow_core.utils.metrics import record_escrow_operation
from escrow_core.utils.time import ensure_utc, utcnow

logger = logging.getLogger(__name__)

ORDERS_PAGE_MAX = 50
ORDER_ROLES = ("all", "buyer", "seller")


def lock_order(db: Session, order_id: UUID) -> Optional[MarketplaceOrder]:
    """Select the order row FOR UPDATE (None if missing)"""
    return db.execute(
        select(MarketplaceOrder)
        .where(MarketplaceOrder.id == order_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


def transition_order(db: Session, order_id: UUID, from_status: OrderStatus, **values) -> bool:
    """
    Move the order out of from_status.

    Conditional UPDATE: returns False if the order is no longer in from_status.
    """
    result = db.execute(
        update(MarketplaceOrder)
        .where(MarketplaceOrder.id == order_id, MarketplaceOrder.status == from_status)
        .values(**values)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount == 1


def lock_conversation(db: Session, order_id: UUID, now: datetime) -> None:
    """Close the buyer/seller channel of an order that reached a terminal state"""
    db.execute(
        update(TradeConversation)
        .where(TradeConversation.order_id == order_id, TradeConversation.is_locked.is_(False))
        .values(is_locked=True, locked_at=now)
        .execution_options(synchronize_session="fetch")
    )


def has_open_dispute(db: Session, order_id: UUID) -> bool:
    return db.execute(
        select(Dispute.id).where(Dispute.order_id == order_id, Dispute.status == DisputeStatus.OPEN)
    ).first() is not None


def create_order(
    db: Session,
    listing_id: UUID,
    buyer_id: UUID,
    notifier: Optional[NotificationSink] = None,
) -> MarketplaceOrder:
    """
    Buy a listing: hold the buyer's funds and open the order.

    Hold, order row, listing ACTIVE -> SOLD and the conversation are one
    transaction. The seller is notified after commit.

    Raises:
        NotFoundError: Listing missing or soft-deleted
        ConflictError: Listing already has an open order (or a concurrent buyer won)
        InvalidStateError: Listing is not ACTIVE
        ValidationError: Buyer is the seller
        InsufficientFundsError: Buyer cannot cover the price
    """
    settings = get_settings()
    now = utcnow()

    try:
        with atomic(db):
            listing = lock_listing(db, listing_id)
            if listing is None or listing.deleted_at is not None:
                raise NotFoundError(f"Listing {listing_id} not found")

            open_order = db.execute(
                select(MarketplaceOrder.id).where(
                    MarketplaceOrder.listing_id == listing_id,
                    MarketplaceOrder.status.in_(list(ACTIVE_ORDER_STATUSES)),
                )
            ).first()
            if open_order is not None:
                raise ConflictError(f"Listing {listing_id} already has an open order")

            if listing.status != ListingStatus.ACTIVE:
                raise InvalidStateError(f"Listing is not purchasable (current status: {listing.status.value})")

            if listing.seller_id == buyer_id:
                raise ValidationError("You cannot buy your own listing")

            seller_id = listing.seller_id
            listing_title = listing.title
            amount = listing_amount_minor(listing.price)

            wallet_ledger.hold(
                db,
                buyer_id,
                amount,
                WalletTransactionType.HOLD,
                reference_id=listing_id,
                meta=ListingHoldMeta(listing_id=listing_id, listing_title=listing_title, seller_id=seller_id),
                commit=False,
            )

            order = MarketplaceOrder(
                listing_id=listing_id,
                buyer_id=buyer_id,
                seller_id=seller_id,
                amount=amount,
                status=OrderStatus.PENDING_DELIVERY,
                auto_release_at=now + timedelta(hours=settings.ESCROW_AUTO_RELEASE_HOURS),
            )
            db.add(order)
            db.flush()

            if not mark_listing_sold(db, listing_id):
                raise ConflictError(f"Listing {listing_id} was sold concurrently")

            db.add(TradeConversation(order_id=order.id, buyer_id=buyer_id, seller_id=seller_id))
            db.flush()
    except IntegrityError as e:
        logger.warning(
            "Order creation lost a uniqueness race",
            extra={"listing_id": str(listing_id), "buyer_id": str(buyer_id), "error": str(e.orig)},
        )
        raise ConflictError(f"Listing {listing_id} already has an open order") from e

    record_escrow_operation("create_order")
    logger.info(
        "Order created",
        extra={"order_id": str(order.id), "listing_id": str(listing_id), "buyer_id": str(buyer_id), "amount": amount},
    )

    dispatch_notifications(notifier, [
        listing_sold_event(seller_id=seller_id, buyer_id=buyer_id, order_id=order.id, listing_title=listing_title),
    ])
    return order


def _settle_to_seller(db: Session, order: MarketplaceOrder, now: datetime, *, auto_release: bool) -> bool:
    """Guarded PENDING_DELIVERY -> COMPLETED plus payout; False if another transaction moved the order first"""
    if not transition_order(db, order.id, OrderStatus.PENDING_DELIVERY, status=OrderStatus.COMPLETED, completed_at=now):
        return False

    wallet_ledger.release(
        db,
        order.buyer_id,
        order.seller_id,
        order.amount,
        reference_id=order.id,
        meta=OrderSettlementMeta(order_id=order.id, listing_title=order.listing.title, auto_release=auto_release),
        commit=False,
    )
    lock_conversation(db, order.id, now)
    return True


def confirm_delivery(
    db: Session,
    order_id: UUID,
    buyer_id: UUID,
    notifier: Optional[NotificationSink] = None,
) -> MarketplaceOrder:
    """
    Buyer confirms delivery: pay the held amount to the seller.

    Raises:
        NotFoundError: Order missing
        ForbiddenError: Caller is not the buyer
        InvalidStateError: Order is not PENDING_DELIVERY
        ConflictError: Order changed state concurrently
    """
    now = utcnow()

    with atomic(db):
        order = lock_order(db, order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        if order.buyer_id != buyer_id:
            raise ForbiddenError("Only the buyer can confirm delivery")
        if order.status != OrderStatus.PENDING_DELIVERY:
            raise InvalidStateError(f"Order cannot be confirmed (current status: {order.status.value})")

        listing_title = order.listing.title
        if not _settle_to_seller(db, order, now, auto_release=False):
            raise ConflictError(f"Order {order_id} changed state concurrently")

    record_escrow_operation("confirm_delivery")
    logger.info("Delivery confirmed", extra={"order_id": str(order_id), "buyer_id": str(buyer_id), "amount": order.amount})

    dispatch_notifications(notifier, [
        delivery_confirmed_event(
            seller_id=order.seller_id,
            buyer_id=buyer_id,
            order_id=order_id,
            listing_title=listing_title,
            amount=order.amount,
        ),
    ])
    return order


def auto_release_order(
    db: Session,
    order_id: UUID,
    now: Optional[datetime] = None,
    notifier: Optional[NotificationSink] = None,
) -> Optional[MarketplaceOrder]:
    """
    Pay the seller once the confirmation window has passed.

    Idempotent: returns None (no error, no money movement) when the order is
    missing, not PENDING_DELIVERY, not yet due, has an OPEN dispute, or was
    settled by a concurrent caller. Returns the completed order otherwise.
    """
    now = now or utcnow()
    released = None

    with atomic(db):
        order = lock_order(db, order_id)
        if (
            order is not None
            and order.status == OrderStatus.PENDING_DELIVERY
            and order.auto_release_at is not None
            and ensure_utc(order.auto_release_at) <= now
            and not has_open_dispute(db, order_id)
        ):
            listing_title = order.listing.title
            if _settle_to_seller(db, order, now, auto_release=True):
                released = order

    if released is None:
        logger.debug("Auto-release not applicable", extra={"order_id": str(order_id)})
        return None

    record_escrow_operation("auto_release")
    logger.info("Order auto-released", extra={"order_id": str(order_id), "amount": released.amount})

    dispatch_notifications(notifier, auto_release_events(
        seller_id=released.seller_id,
        buyer_id=released.buyer_id,
        order_id=order_id,
        listing_title=listing_title,
        window_hours=get_settings().ESCROW_AUTO_RELEASE_HOURS,
    ))
    return released


def get_order_by_id(
    db: Session,
    order_id: UUID,
    requesting_user_id: Optional[UUID] = None,
    notifier: Optional[NotificationSink] = None,
    now: Optional[datetime] = None,
) -> MarketplaceOrder:
    """
    Read an order, settling it first if its auto-release deadline has passed.

    Raises:
        NotFoundError: Order missing
        ForbiddenError: Requester is neither buyer, seller nor staff
    """
    now = now or utcnow()

    order = db.get(MarketplaceOrder, order_id, populate_existing=True)
    if order is None:
        raise NotFoundError(f"Order {order_id} not found")

    if (
        requesting_user_id is not None
        and requesting_user_id not in (order.buyer_id, order.seller_id)
        and not is_staff(db, requesting_user_id)
    ):
        raise ForbiddenError("You are not a participant of this order")

    if (
        order.status == OrderStatus.PENDING_DELIVERY
        and order.auto_release_at is not None
        and ensure_utc(order.auto_release_at) <= now
    ):
        auto_release_order(db, order_id, now=now, notifier=notifier)
        db.refresh(order)

    return order


def get_user_orders(
    db: Session,
    user_id: UUID,
    role: str = "all",
    status: Optional[OrderStatus] = None,
    page: int = 1,
    limit: int = 20,
) -> Page[MarketplaceOrder]:
    """Orders where the user is buyer, seller or either, newest first"""
    if role not in ORDER_ROLES:
        raise ValidationError(f"role must be one of {', '.join(ORDER_ROLES)}")
    page, limit = clamp_page(page, limit, ORDERS_PAGE_MAX)

    stmt = select(MarketplaceOrder)
    if role == "buyer":
        stmt = stmt.where(MarketplaceOrder.buyer_id == user_id)
    elif role == "seller":
        stmt = stmt.where(MarketplaceOrder.seller_id == user_id)
    else:
        stmt = stmt.where(or_(MarketplaceOrder.buyer_id == user_id, MarketplaceOrder.seller_id == user_id))
    if status is not None:
        stmt = stmt.where(MarketplaceOrder.status == status)
    stmt = stmt.order_by(MarketplaceOrder.created_at.desc(), MarketplaceOrder.id.desc())

    return paginate(db, stmt, page, limit)


def release_expired_orders(
    db: Session,
    *,
    now: Optional[datetime] = None,
    max_orders: Optional[int] = None,
    dry_run: bool = False,
    notifier: Optional[NotificationSink] = None,
) -> Dict[str, Any]:
    """
    Sweep PENDING_DELIVERY orders whose auto-release deadline has passed.

    Each order is settled in its own transaction through auto_release_order,
    so one failure does not block the rest and re-running the sweep is safe.

    Args:
        db: Database session
        now: Reference time (default: current UTC time)
        max_orders: Maximum orders per run (default: AUTO_RELEASE_SWEEP_MAX_ORDERS)
        dry_run: Only count due orders, move no money
        notifier: Notification sink (default: configured sink)

    Returns:
        Dict with summary statistics:
        - found: Number of due orders selected
        - released_count: Orders settled by this run
        - released_amount: Total minor units paid out
        - skipped_count: Orders that turned out not to be eligible (disputed, already settled)
        - errors_count / errors: Per-order failures
        - as_of: Reference time (ISO format)
        - dry_run: Whether money was moved
    """
    now = now or utcnow()
    if max_orders is None:
        max_orders = get_settings().AUTO_RELEASE_SWEEP_MAX_ORDERS

    stats: Dict[str, Any] = {
        'found': 0,
        'released_count': 0,
        'released_amount': 0,
        'skipped_count': 0,
        'errors_count': 0,
        'errors': [],
        'as_of': now.isoformat(),
        'dry_run': dry_run,
    }

    # Eligibility is re-checked per order by auto_release_order's guarded UPDATE
    due_ids = db.execute(
        select(MarketplaceOrder.id)
        .where(
            MarketplaceOrder.status == OrderStatus.PENDING_DELIVERY,
            MarketplaceOrder.auto_release_at.is_not(None),
            MarketplaceOrder.auto_release_at <= now,
        )
        .order_by(MarketplaceOrder.auto_release_at.asc())
        .limit(max_orders)
    ).scalars().all()
    db.rollback()

    stats['found'] = len(due_ids)
    if dry_run:
        return stats

    for order_id in due_ids:
        try:
            released = auto_release_order(db, order_id, now=now, notifier=notifier)
        except Exception as e:
            logger.exception("Auto-release failed", extra={"order_id": str(order_id)})
            stats['errors'].append(f"Error releasing order {order_id}: {e}")
            stats['errors_count'] += 1
            continue

        if released is None:
            stats['skipped_count'] += 1
        else:
            stats['released_count'] += 1
            stats['released_amount'] += released.amount

    logger.info(
        "Auto-release sweep finished",
        extra={key: value for key, value in stats.items() if key != 'errors'},
    )
    return stats
