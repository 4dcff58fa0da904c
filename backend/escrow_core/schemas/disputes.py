"""
Dispute API schemas
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from escrow_core.core.disputes.models import DisputeResolution, DisputeStatus


class OpenDisputeRequest(BaseModel):
    """Buyer opens a dispute on an order awaiting delivery confirmation"""
    order_id: UUID
    reason: str = Field(..., min_length=1, max_length=500)
    note: Optional[str] = Field(None, max_length=5000)


class ResolveDisputeRequest(BaseModel):
    """Staff decision on an open dispute"""
    resolution: DisputeResolution
    buyer_amount: Optional[int] = Field(None, description="Refund to buyer in kuruş (PARTIAL only)")
    reason: Optional[str] = Field(None, max_length=1000, description="Stored in the audit log")
    meta: Optional[dict] = Field(None, description="Extra context stored on the dispute")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "resolution": "PARTIAL",
                "buyer_amount": 5000,
                "reason": "Item partially delivered",
            }
        }
    )


class DisputeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_id: UUID
    opened_by_id: UUID
    reason: str
    note: Optional[str] = None
    status: DisputeStatus
    resolution: Optional[DisputeResolution] = None
    resolved_by_id: Optional[UUID] = None
    resolved_at: Optional[datetime] = None
    meta: Optional[dict] = None
    created_at: datetime


class DisputePage(BaseModel):
    items: List[DisputeResponse]
    total: int
    page: int
    limit: int
    total_pages: int
