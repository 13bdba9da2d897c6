"""
Pydantic schemas for outbox side effects with validation
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, Dict, Any
from datetime import datetime, timezone
from uuid import UUID
from models.base import OutboxStatus, SideEffectType


class SideEffectCreate(BaseModel):
    """
    Schema for enqueueing a side effect.
    
    Ensures:
    - Aggregate and event identifiers are present
    - Payload is a JSON object
    - idempotency_key, when given, is non-blank
    """
    
    effect_type: SideEffectType
    event_type: str = Field(..., min_length=1, max_length=100)
    aggregate_type: str = Field(..., min_length=1, max_length=100)
    aggregate_id: str = Field(..., min_length=1, max_length=64)
    
    payload: Dict[str, Any] = Field(default_factory=dict)
    extra_metadata: Optional[Dict[str, Any]] = Field(None, alias="metadata")
    
    idempotency_key: Optional[str] = Field(None, max_length=255)
    scheduled_at: Optional[datetime] = None
    max_retries: Optional[int] = Field(None, ge=1, le=100)
    
    @field_validator("idempotency_key")
    @classmethod
    def clean_idempotency_key(cls, v):
        """Blank keys mean "no idempotency tracking" """
        if v is None:
            return None
        v = v.strip()
        return v or None
    
    @field_validator("scheduled_at")
    @classmethod
    def naive_utc(cls, v):
        """Stored timestamps are naive UTC"""
        if v is not None and v.tzinfo is not None:
            v = v.astimezone(timezone.utc).replace(tzinfo=None)
        return v
    
    class Config:
        populate_by_name = True
        use_enum_values = True


class SideEffectResponse(BaseModel):
    """Response model for an outbox row"""
    id: UUID
    tenant_id: str
    effect_type: SideEffectType
    event_type: str
    aggregate_type: str
    aggregate_id: str
    payload: Dict[str, Any]
    status: OutboxStatus
    retry_count: int
    max_retries: int
    last_error: Optional[str]
    idempotency_key: Optional[str]
    scheduled_at: Optional[datetime]
    next_attempt_at: Optional[datetime]
    processed_at: Optional[datetime]
    created_at: datetime
    
    class Config:
        from_attributes = True
        use_enum_values = True
