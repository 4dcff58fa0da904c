"""
Admin order endpoints - manual auto-release sweep
"""

from typing import Optional
from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from escrow_core.auth.dependencies import require_staff
from escrow_core.auth.principal import Principal
from escrow_core.infrastructure.database import get_db
from escrow_core.schemas.orders import AutoReleaseSweepRequest, AutoReleaseSweepResponse
from escrow_core.services.notifications import NotificationSink, get_notification_sink
from escrow_core.services.orders.service import release_expired_orders

router = APIRouter()


@router.post(
    "/orders/auto-release-sweep",
    response_model=AutoReleaseSweepResponse,
    summary="Run auto-release sweep",
    description="Settle every PENDING_DELIVERY order past its deadline. Same job the worker runs periodically.",
)
def run_auto_release_sweep(
    payload: Optional[AutoReleaseSweepRequest] = Body(None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_staff()),
    notifier: NotificationSink = Depends(get_notification_sink),
) -> AutoReleaseSweepResponse:
    payload = payload or AutoReleaseSweepRequest()
    stats = release_expired_orders(
        db,
        max_orders=payload.max_orders,
        dry_run=payload.dry_run,
        notifier=notifier,
    )
    return AutoReleaseSweepResponse(**stats)
