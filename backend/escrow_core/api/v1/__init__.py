"""
API v1 routes - User-facing API
"""

from fastapi import APIRouter
from escrow_core.infrastructure.settings import get_settings
from escrow_core.api.v1.wallet import router as wallet_router
from escrow_core.api.v1.orders import router as orders_router
from escrow_core.api.v1.disputes import router as disputes_router
from escrow_core.api.v1.withdrawals import router as withdrawals_router

settings = get_settings()
router = APIRouter(prefix=settings.API_V1_PREFIX, tags=["api-v1"])

# Register sub-routers
router.include_router(wallet_router)
router.include_router(orders_router)
router.include_router(disputes_router)
router.include_router(withdrawals_router)
