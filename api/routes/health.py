"""
Health check endpoint with database and scheduler status
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from api.dependencies import get_db
from schemas.api import HealthCheckResponse
from models.base import utcnow
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(request: Request, db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint.
    
    Returns:
    - Database connectivity status
    - Whether the outbox scheduler is running in this process
    """
    db_connected = False
    
    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except Exception as e:
        logger.error(f"Database connection failed: {str(e)}")
    
    scheduler = getattr(request.app.state, "scheduler", None)
    
    # Status calculation is handled by the validator in HealthCheckResponse
    return HealthCheckResponse(
        timestamp=utcnow(),
        database_connected=db_connected,
        scheduler_running=bool(scheduler and scheduler.scheduler.running),
    )
