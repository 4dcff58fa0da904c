"""
Dispute model - adjudication of a disputed order
"""

from sqlalchemy import Column, DateTime, ForeignKey, JSON, String, Text, Uuid, Enum as SQLEnum
from sqlalchemy.orm import relationship
import enum
from escrow_core.core.common.base_model import BaseModel


class DisputeStatus(str, enum.Enum):
    """Dispute status enum"""
    OPEN = "OPEN"
    RESOLVED = "RESOLVED"


class DisputeResolution(str, enum.Enum):
    """Dispute resolution enum"""
    REFUND_BUYER = "REFUND_BUYER"  # Full refund, order -> REFUNDED
    RELEASE_SELLER = "RELEASE_SELLER"  # Full payout, order -> COMPLETED
    PARTIAL = "PARTIAL"  # Split payout, order -> COMPLETED


class Dispute(BaseModel):
    """
    Dispute model - at most one per order (unique order_id).

    Opened only by the buyer while the order is PENDING_DELIVERY. Resolving it
    is the only way a DISPUTED order reaches a terminal state. For PARTIAL
    resolutions, meta records the exact split.
    """

    __tablename__ = "disputes"

    order_id = Column(Uuid(as_uuid=True), ForeignKey("marketplace_orders.id", name="fk_disputes_order_id"), nullable=False, unique=True, index=True)
    opened_by_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_disputes_opened_by_id"), nullable=False, index=True)
    reason = Column(String(500), nullable=False)
    note = Column(Text, nullable=True)
    status = Column(SQLEnum(DisputeStatus, name="dispute_status"), nullable=False, default=DisputeStatus.OPEN, index=True)
    resolution = Column(SQLEnum(DisputeResolution, name="dispute_resolution"), nullable=True)
    resolved_by_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_disputes_resolved_by_id"), nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    meta = Column(JSON, nullable=True)

    order = relationship("MarketplaceOrder", back_populates="dispute", lazy="select")
    opener = relationship("User", foreign_keys=[opened_by_id], lazy="select")
    resolver = relationship("User", foreign_keys=[resolved_by_id], lazy="select")
