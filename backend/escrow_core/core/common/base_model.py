"""
Base model with common fields
"""

import uuid
from sqlalchemy import Column, DateTime, Uuid
from sqlalchemy.sql import func
from escrow_core.infrastructure.database import Base
from escrow_core.utils.time import utcnow


class BaseModel(Base):
    """
    Base model with common fields

    All models inherit from this base class and get:
    - id: UUID primary key
    - created_at: Timezone-aware timestamp (set client-side for sub-second ordering)
    - updated_at: Timezone-aware timestamp (nullable)

    Note: WalletTransaction is write-once and never sets updated_at.
    """
    __abstract__ = True

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)
