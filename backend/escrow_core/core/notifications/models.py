"""
Notification model - persisted by the notification worker
"""

from sqlalchemy import Column, DateTime, ForeignKey, String, Text, Uuid
from escrow_core.core.common.base_model import BaseModel


class Notification(BaseModel):
    """
    Notification model - in-app notification for a user.

    Rows are written by the RQ worker after the financial transaction has
    committed; the escrow core never writes them inline.
    """

    __tablename__ = "notifications"

    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_notifications_user_id"), nullable=False, index=True)
    actor_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_notifications_actor_id"), nullable=True)
    type = Column(String(50), nullable=False, index=True)  # marketplace_sold, admin_warning, system_announcement
    title = Column(String(200), nullable=False)
    content = Column(Text, nullable=False)
    url = Column(String(500), nullable=True)
    target_id = Column(Uuid(as_uuid=True), nullable=True)
    read_at = Column(DateTime(timezone=True), nullable=True)
