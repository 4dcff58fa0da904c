"""
Marketplace models - Listing, MarketplaceOrder and TradeConversation
"""

from sqlalchemy import (
    BigInteger, Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index,
    Numeric, String, Uuid, text, Enum as SQLEnum,
)
from sqlalchemy.orm import relationship
import enum
from escrow_core.core.common.base_model import BaseModel


class ListingStatus(str, enum.Enum):
    """Listing status enum"""
    PENDING = "PENDING"  # Awaiting moderator approval
    ACTIVE = "ACTIVE"  # Purchasable
    SOLD = "SOLD"
    REJECTED = "REJECTED"


class OrderStatus(str, enum.Enum):
    """Order status enum (escrow state machine)"""
    PENDING_DELIVERY = "PENDING_DELIVERY"  # Funds held, waiting for buyer confirmation
    DISPUTED = "DISPUTED"  # Buyer opened a dispute, auto-release suppressed
    COMPLETED = "COMPLETED"  # Funds settled to seller (fully or by partial split)
    REFUNDED = "REFUNDED"  # Funds returned to buyer
    CANCELLED = "CANCELLED"


TERMINAL_ORDER_STATUSES = frozenset({
    OrderStatus.COMPLETED,
    OrderStatus.REFUNDED,
    OrderStatus.CANCELLED,
})

ACTIVE_ORDER_STATUSES = frozenset({
    OrderStatus.PENDING_DELIVERY,
    OrderStatus.DISPUTED,
})

_ACTIVE_ORDER_PREDICATE = text("status IN ('PENDING_DELIVERY', 'DISPUTED')")


class Listing(BaseModel):
    """
    Listing model - marketplace listing as seen by the escrow core.

    Listing CRUD, images and moderation belong to the host application; the
    core reads seller/price/status and flips the listing to SOLD.
    Price is in major unit (TL) with two decimals.
    """

    __tablename__ = "marketplace_listings"

    seller_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_marketplace_listings_seller_id"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    status = Column(SQLEnum(ListingStatus, name="listing_status"), nullable=False, default=ListingStatus.PENDING, index=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    seller = relationship("User", foreign_keys=[seller_id], lazy="select")

    __table_args__ = (
        CheckConstraint("price > 0", name="check_marketplace_listings_price_positive"),
    )


class MarketplaceOrder(BaseModel):
    """
    MarketplaceOrder model - one per purchase attempt, never deleted.

    amount is the listing price snapshot in minor unit at purchase time.
    At most one order per listing may be in a non-terminal state
    (partial unique index below).
    """

    __tablename__ = "marketplace_orders"

    listing_id = Column(Uuid(as_uuid=True), ForeignKey("marketplace_listings.id", name="fk_marketplace_orders_listing_id"), nullable=False, index=True)
    buyer_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_marketplace_orders_buyer_id"), nullable=False, index=True)
    seller_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_marketplace_orders_seller_id"), nullable=False, index=True)
    amount = Column(BigInteger, nullable=False)
    status = Column(SQLEnum(OrderStatus, name="order_status"), nullable=False, default=OrderStatus.PENDING_DELIVERY, index=True)
    auto_release_at = Column(DateTime(timezone=True), nullable=True, index=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    disputed_at = Column(DateTime(timezone=True), nullable=True)

    listing = relationship("Listing", foreign_keys=[listing_id], lazy="select")
    conversation = relationship("TradeConversation", back_populates="order", uselist=False, lazy="select")
    dispute = relationship("Dispute", back_populates="order", uselist=False, lazy="select")

    __table_args__ = (
        CheckConstraint("amount > 0", name="check_marketplace_orders_amount_positive"),
        Index(
            "uq_marketplace_orders_active_listing",
            "listing_id",
            unique=True,
            postgresql_where=_ACTIVE_ORDER_PREDICATE,
            sqlite_where=_ACTIVE_ORDER_PREDICATE,
        ),
        Index("ix_marketplace_orders_status_auto_release", "status", "auto_release_at"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_ORDER_STATUSES


class TradeConversation(BaseModel):
    """
    TradeConversation model - buyer/seller message channel, 1:1 with an order.

    Message content is handled by the host application; the core only creates
    the channel and locks it once the order reaches a terminal state.
    """

    __tablename__ = "trade_conversations"

    order_id = Column(Uuid(as_uuid=True), ForeignKey("marketplace_orders.id", name="fk_trade_conversations_order_id"), nullable=False, unique=True, index=True)
    buyer_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_trade_conversations_buyer_id"), nullable=False)
    seller_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_trade_conversations_seller_id"), nullable=False)
    is_locked = Column(Boolean, nullable=False, default=False)
    locked_at = Column(DateTime(timezone=True), nullable=True)

    order = relationship("MarketplaceOrder", back_populates="conversation", lazy="select")
