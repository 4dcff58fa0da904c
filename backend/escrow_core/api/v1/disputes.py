"""
Dispute API endpoints - buyer side
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from escrow_core.auth.dependencies import require_user
from escrow_core.auth.principal import Principal
from escrow_core.infrastructure.database import get_db
from escrow_core.schemas.disputes import DisputeResponse, OpenDisputeRequest
from escrow_core.services.disputes import service as dispute_service
from escrow_core.services.notifications import NotificationSink, get_notification_sink

router = APIRouter(tags=["disputes"])


@router.post(
    "/disputes",
    response_model=DisputeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Open a dispute",
    description="Buyer only, while the order awaits delivery confirmation. Suspends auto-release.",
)
def open_dispute(
    payload: OpenDisputeRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_user()),
    notifier: NotificationSink = Depends(get_notification_sink),
) -> DisputeResponse:
    dispute = dispute_service.open_dispute(
        db,
        payload.order_id,
        principal.user_id,
        payload.reason,
        note=payload.note,
        notifier=notifier,
    )
    return DisputeResponse.model_validate(dispute)
