"""
FastAPI application initialization
"""

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from api.routes import health, outbox
from api.middleware import RequestContextMiddleware
from core.config import settings
from core.exceptions import (
    ConfigurationError,
    ConflictError,
    EntityNotFoundError,
    TenancyException,
    TransientStoreError,
)
from core.logging import setup_logging
from outbox.scheduler import OutboxScheduler
import logging

setup_logging()

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Tenancy Outbox API",
    description="Tenant-scoped side effect outbox",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)

# Include routers
app.include_router(health.router)
app.include_router(outbox.router)

# Exception type -> HTTP status, most specific first
ERROR_STATUS = (
    (EntityNotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (TransientStoreError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ConfigurationError, status.HTTP_400_BAD_REQUEST),
)


@app.exception_handler(TenancyException)
async def tenancy_exception_handler(request: Request, exc: TenancyException):
    status_code = next(
        (code for exc_type, code in ERROR_STATUS if isinstance(exc, exc_type)),
        status.HTTP_500_INTERNAL_SERVER_ERROR
    )
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc}")
    return JSONResponse(status_code=status_code, content=jsonable_encoder(exc.to_dict()))


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    logger.info("Starting Tenancy Outbox API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")
    
    if settings.OUTBOX_SCHEDULER_ENABLED:
        app.state.scheduler = OutboxScheduler()
        app.state.scheduler.start()


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down Tenancy Outbox API")
    scheduler = getattr(app.state, "scheduler", None)
    if scheduler is not None:
        scheduler.stop()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Tenancy Outbox API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "enqueue": "POST /outbox",
            "stats": "/outbox/stats",
            "aggregate": "/outbox/aggregates/{aggregate_type}/{aggregate_id}"
        }
    }
