"""
RQ Jobs - Background tasks
"""

import logging
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from escrow_core.core.notifications.models import Notification
from escrow_core.infrastructure.database import SessionLocal

logger = logging.getLogger(__name__)


def _uuid_or_none(value: Optional[str]) -> Optional[UUID]:
    return UUID(str(value)) if value else None


def persist_notification(db: Session, payload: Dict[str, Any]) -> Optional[Notification]:
    """
    Write one Notification row from a queued event payload.

    Users are never notified about their own actions (actor_id == user_id).
    """
    user_id = UUID(str(payload["user_id"]))
    actor_id = _uuid_or_none(payload.get("actor_id"))
    if actor_id is not None and actor_id == user_id:
        logger.debug("Skipping self-notification", extra={"user_id": str(user_id)})
        return None

    notification = Notification(
        user_id=user_id,
        actor_id=actor_id,
        type=payload["type"],
        title=payload["title"],
        content=payload["content"],
        url=payload.get("url"),
        target_id=_uuid_or_none(payload.get("target_id")),
    )
    db.add(notification)
    db.commit()
    return notification


def deliver_notification(payload: Dict[str, Any]) -> Optional[str]:
    """Persist a notification enqueued by RQNotificationSink; returns the new row id"""
    db = SessionLocal()
    try:
        notification = persist_notification(db, payload)
        if notification is None:
            return None
        notification_id = str(notification.id)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

    logger.info(
        "Notification delivered",
        extra={"notification_id": notification_id, "user_id": payload["user_id"], "notification_type": payload["type"]},
    )
    return notification_id

