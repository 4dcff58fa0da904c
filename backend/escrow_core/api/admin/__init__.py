"""
Admin API routes - staff only (MODERATOR / ADMIN)
"""

from fastapi import APIRouter
from escrow_core.infrastructure.settings import get_settings
from escrow_core.api.admin.disputes import router as disputes_router
from escrow_core.api.admin.orders import router as orders_router
from escrow_core.api.admin.withdrawals import router as withdrawals_router

settings = get_settings()
router = APIRouter(prefix=settings.ADMIN_V1_PREFIX, tags=["admin-v1"])

# Register admin routers
router.include_router(disputes_router, tags=["admin-disputes"])
router.include_router(orders_router, tags=["admin-orders"])
router.include_router(withdrawals_router, tags=["admin-withdrawals"])
