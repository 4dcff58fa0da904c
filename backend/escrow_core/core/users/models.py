"""
User model - identity/role provider for the escrow core
"""

from sqlalchemy import Column, String, Enum as SQLEnum
import enum
from escrow_core.core.common.base_model import BaseModel


class UserRole(str, enum.Enum):
    """User role enum"""
    USER = "USER"
    MODERATOR = "MODERATOR"
    ADMIN = "ADMIN"


STAFF_ROLES = (UserRole.ADMIN, UserRole.MODERATOR)


class User(BaseModel):
    """
    User model

    Accounts, sessions and profiles are owned by the host application. The
    escrow core only reads the role to decide who may view orders and resolve
    disputes.
    """

    __tablename__ = "users"

    username = Column(String(50), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    role = Column(SQLEnum(UserRole, name="user_role"), nullable=False, default=UserRole.USER, index=True)

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES
