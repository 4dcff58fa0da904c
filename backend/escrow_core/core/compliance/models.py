"""
AuditLog model - Transversal audit trail
"""

from sqlalchemy import Column, String, ForeignKey, JSON, Text, Uuid, Enum as SQLEnum
from sqlalchemy.orm import relationship
from escrow_core.core.common.base_model import BaseModel
from escrow_core.core.users.models import UserRole


class AuditLog(BaseModel):
    """
    AuditLog model - Audit trail for staff actions (dispute resolutions, sweeps)
    """

    __tablename__ = "audit_logs"

    actor_user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", name="fk_audit_logs_actor_user_id"), nullable=True, index=True)
    actor_role = Column(SQLEnum(UserRole, name="actor_role"), nullable=False, index=True)
    action = Column(String(100), nullable=False, index=True)
    entity_type = Column(String(50), nullable=False, index=True)
    entity_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    before = Column(JSON, nullable=True)  # state before action
    after = Column(JSON, nullable=True)  # state after action
    reason = Column(Text, nullable=True)
    ip = Column(String(45), nullable=True)  # IPv6 max length

    # Relationships
    actor = relationship("User", foreign_keys=[actor_user_id])
