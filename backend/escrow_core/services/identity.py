"""
Identity/role provider - who counts as staff (moderator or admin)
"""

from typing import List
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from escrow_core.core.users.models import User, STAFF_ROLES


def is_staff(db: Session, user_id: UUID) -> bool:
    role = db.execute(select(User.role).where(User.id == user_id)).scalar_one_or_none()
    return role in STAFF_ROLES


def get_staff_user_ids(db: Session) -> List[UUID]:
    return list(db.execute(select(User.id).where(User.role.in_(STAFF_ROLES))).scalars().all())
