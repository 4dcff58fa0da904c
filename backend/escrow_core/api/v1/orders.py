"""
Order API endpoints - purchase, delivery confirmation, auto-release
"""

from typing import Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from escrow_core.auth.dependencies import require_user
from escrow_core.auth.principal import Principal
from escrow_core.core.marketplace.models import OrderStatus
from escrow_core.infrastructure.database import get_db
from escrow_core.schemas.orders import AutoReleaseResponse, CreateOrderRequest, OrderPage, OrderResponse
from escrow_core.services.notifications import NotificationSink, get_notification_sink
from escrow_core.services.orders import service as order_service

router = APIRouter(tags=["orders"])


@router.post(
    "/orders",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Buy a listing",
    description="Hold the listing price from the buyer's wallet and open an order awaiting delivery.",
)
def create_order(
    payload: CreateOrderRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_user()),
    notifier: NotificationSink = Depends(get_notification_sink),
) -> OrderResponse:
    order = order_service.create_order(db, payload.listing_id, principal.user_id, notifier=notifier)
    return OrderResponse.model_validate(order)


@router.get(
    "/orders",
    response_model=OrderPage,
    summary="List my orders",
)
def list_orders(
    role: str = Query("all", pattern="^(all|buyer|seller)$"),
    status: Optional[OrderStatus] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_user()),
) -> OrderPage:
    result = order_service.get_user_orders(db, principal.user_id, role=role, status=status, page=page, limit=limit)
    return OrderPage(
        items=[OrderResponse.model_validate(order) for order in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
        total_pages=result.total_pages,
    )


@router.get(
    "/orders/{order_id}",
    response_model=OrderResponse,
    summary="Get order",
    description="Buyer, seller or staff only. Settles the order first if its auto-release deadline has passed.",
)
def get_order(
    order_id: UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_user()),
    notifier: NotificationSink = Depends(get_notification_sink),
) -> OrderResponse:
    order = order_service.get_order_by_id(db, order_id, requesting_user_id=principal.user_id, notifier=notifier)
    return OrderResponse.model_validate(order)


@router.post(
    "/orders/{order_id}/confirm-delivery",
    response_model=OrderResponse,
    summary="Confirm delivery",
    description="Buyer confirms delivery; the held amount is paid to the seller.",
)
def confirm_delivery(
    order_id: UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_user()),
    notifier: NotificationSink = Depends(get_notification_sink),
) -> OrderResponse:
    order = order_service.confirm_delivery(db, order_id, principal.user_id, notifier=notifier)
    return OrderResponse.model_validate(order)


@router.post(
    "/orders/{order_id}/auto-release",
    response_model=AutoReleaseResponse,
    summary="Trigger auto-release",
    description="Idempotent. Pays the seller if the order is due and not disputed; otherwise a no-op.",
)
def auto_release(
    order_id: UUID,
    db: Session = Depends(get_db),
    notifier: NotificationSink = Depends(get_notification_sink),
) -> AutoReleaseResponse:
    order = order_service.auto_release_order(db, order_id, notifier=notifier)
    if order is None:
        return AutoReleaseResponse(released=False)
    return AutoReleaseResponse(released=True, order=OrderResponse.model_validate(order))
