"""
Prometheus metrics endpoint
"""

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from escrow_core.auth.dependencies import get_current_principal
from escrow_core.auth.principal import Principal
from escrow_core.infrastructure.settings import get_settings
from escrow_core.utils.metrics import get_metrics_output, CONTENT_TYPE_LATEST

router = APIRouter(tags=["metrics"])


def _metrics_body() -> Response:
    return Response(content=get_metrics_output(), media_type=CONTENT_TYPE_LATEST)


@router.get(
    "/metrics",
    summary="Prometheus metrics endpoint",
    description="Expose Prometheus metrics. Public when METRICS_PUBLIC=true, otherwise staff bearer token required.",
)
async def get_metrics() -> Response:
    if not get_settings().METRICS_PUBLIC:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Metrics are private; use /metrics/private with a staff token",
        )
    return _metrics_body()


@router.get("/metrics/private", include_in_schema=False)
async def get_private_metrics(principal: Principal = Depends(get_current_principal)) -> Response:
    if not principal.is_staff:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Staff role required")
    return _metrics_body()
