"""
Order API schemas
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from escrow_core.core.marketplace.models import OrderStatus


class CreateOrderRequest(BaseModel):
    """Buy a listing"""
    listing_id: UUID = Field(..., description="Listing to purchase")


class OrderResponse(BaseModel):
    """Marketplace order (amount in kuruş)"""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    listing_id: UUID
    buyer_id: UUID
    seller_id: UUID
    amount: int
    status: OrderStatus
    auto_release_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    disputed_at: Optional[datetime] = None
    created_at: datetime


class OrderPage(BaseModel):
    items: List[OrderResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class AutoReleaseResponse(BaseModel):
    """Result of an auto-release attempt (released=False is a no-op, not an error)"""
    released: bool
    order: Optional[OrderResponse] = None


class AutoReleaseSweepRequest(BaseModel):
    max_orders: Optional[int] = Field(None, gt=0, description="Override AUTO_RELEASE_SWEEP_MAX_ORDERS")
    dry_run: bool = False


class AutoReleaseSweepResponse(BaseModel):
    found: int
    released_count: int
    released_amount: int
    skipped_count: int
    errors_count: int
    errors: List[str]
    as_of: str
    dry_run: bool
