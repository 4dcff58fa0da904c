"""
FastAPI application entry point
"""

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from escrow_core.infrastructure.settings import get_settings
from escrow_core.infrastructure.logging_config import setup_logging
from escrow_core.api.exceptions import (
    escrow_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    general_exception_handler,
)
from escrow_core.api.public.health import router as health_router
from escrow_core.api.public.metrics import router as metrics_router
from escrow_core.api.v1 import router as api_v1_router
from escrow_core.api.admin import router as admin_router
from escrow_core.services.errors import EscrowError
from escrow_core.utils.trace_id import TraceIDMiddleware
from escrow_core.utils.request_logging import RequestLoggingMiddleware

# Setup logging
setup_logging()

# Get settings
settings = get_settings()

# Create FastAPI app
app = FastAPI(
    title="Pazar Escrow API",
    description="Wallet ledger, order escrow and dispute resolution for the marketplace",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

# Add custom middlewares (last added is outermost: trace id must wrap request logging)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(TraceIDMiddleware)

# Register exception handlers
app.add_exception_handler(EscrowError, escrow_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)

# Register routers
app.include_router(health_router)
app.include_router(metrics_router)
app.include_router(api_v1_router)
app.include_router(admin_router)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "name": "Pazar Escrow API",
        "version": "1.0.0",
        "status": "running",
    }
