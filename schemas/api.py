"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field, model_validator
from typing import Dict, List
from datetime import datetime
from schemas.outbox import SideEffectResponse


# ============================================================================
# Health Check Schemas
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field("healthy", description="Overall system status: healthy, unhealthy")
    timestamp: datetime
    database_connected: bool
    scheduler_running: bool = False
    
    @model_validator(mode="after")
    def determine_status(self):
        """Determine overall health status"""
        self.status = "healthy" if self.database_connected else "unhealthy"
        return self
    
    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "timestamp": "2024-01-15T10:30:00Z",
                "database_connected": True,
                "scheduler_running": True,
            }
        }


# ============================================================================
# Outbox Schemas
# ============================================================================

class OutboxStatsResponse(BaseModel):
    """Per-status row counts for the active tenant"""
    tenant_id: str
    counts: Dict[str, int]
    total: int
    request_id: str


class EnqueueResponse(BaseModel):
    """Result of an idempotent enqueue"""
    outcome: str = Field(..., description="inserted or existing")
    side_effect: SideEffectResponse
    request_id: str


class AggregateSideEffectsResponse(BaseModel):
    aggregate_type: str
    aggregate_id: str
    items: List[SideEffectResponse]
    request_id: str

