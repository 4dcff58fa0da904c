"""
Admin dispute endpoints - staff queue and resolution
"""

import logging
from typing import Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from escrow_core.auth.dependencies import require_staff
from escrow_core.auth.principal import Principal
from escrow_core.core.compliance.models import AuditLog
from escrow_core.core.disputes.models import Dispute, DisputeStatus
from escrow_core.infrastructure.database import get_db
from escrow_core.schemas.disputes import DisputePage, DisputeResponse, ResolveDisputeRequest
from escrow_core.services.disputes import service as dispute_service
from escrow_core.services.notifications import NotificationSink, get_notification_sink
from escrow_core.utils.request_logging import get_client_ip

logger = logging.getLogger(__name__)

router = APIRouter()


def _snapshot(dispute: Dispute) -> dict:
    order = dispute.order
    return {
        "dispute_status": dispute.status.value,
        "resolution": dispute.resolution.value if dispute.resolution else None,
        "order_id": str(order.id),
        "order_status": order.status.value,
        "amount": order.amount,
    }


@router.get(
    "/disputes",
    response_model=DisputePage,
    summary="List disputes",
)
def list_disputes(
    status: Optional[DisputeStatus] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_staff()),
) -> DisputePage:
    result = dispute_service.get_disputes(db, status=status, page=page, limit=limit)
    return DisputePage(
        items=[DisputeResponse.model_validate(d) for d in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
        total_pages=result.total_pages,
    )


@router.get(
    "/disputes/{dispute_id}",
    response_model=DisputeResponse,
    summary="Get dispute",
)
def get_dispute(
    dispute_id: UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_staff()),
) -> DisputeResponse:
    return DisputeResponse.model_validate(dispute_service.get_dispute_by_id(db, dispute_id))


@router.post(
    "/disputes/{dispute_id}/resolve",
    response_model=DisputeResponse,
    summary="Resolve dispute",
    description="REFUND_BUYER, RELEASE_SELLER or PARTIAL (buyer_amount required). Writes an audit log entry.",
)
def resolve_dispute(
    dispute_id: UUID,
    payload: ResolveDisputeRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_staff()),
    notifier: NotificationSink = Depends(get_notification_sink),
) -> DisputeResponse:
    before = _snapshot(dispute_service.get_dispute_by_id(db, dispute_id))

    dispute = dispute_service.resolve_dispute(
        db,
        dispute_id,
        principal.user_id,
        payload.resolution,
        buyer_amount=payload.buyer_amount,
        meta=payload.meta,
        notifier=notifier,
    )

    audit_log = AuditLog(
        actor_user_id=principal.user_id,
        actor_role=principal.role,
        action="DISPUTE_RESOLVED",
        entity_type="Dispute",
        entity_id=dispute_id,
        before=before,
        after={**_snapshot(dispute), "buyer_amount": payload.buyer_amount},
        reason=payload.reason,
        ip=get_client_ip(request),
    )
    db.add(audit_log)
    db.commit()

    logger.info(
        "Dispute resolution audited",
        extra={"dispute_id": str(dispute_id), "actor_user_id": str(principal.user_id), "resolution": payload.resolution.value},
    )
    return DisputeResponse.model_validate(dispute)
