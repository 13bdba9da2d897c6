from sqlalchemy import Column, String, Integer, DateTime, Text, Enum, Index, UniqueConstraint, Uuid
import uuid
from models.base import (
    Base, JSONType, OutboxStatus, SideEffectType,
    TenantMixin, TimestampMixin, SoftDeleteMixin, utcnow,
)


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class SideEffectOutbox(TenantMixin, TimestampMixin, SoftDeleteMixin, Base):
    """
    Outbox row for a side effect (queue message, notification, email, audit).
    
    Lifecycle:
    1. Written with status=pending in the same transaction as the business change
    2. A worker claims it (pending -> in_progress) with SKIP LOCKED
    3. On success: status=completed, processed_at set
    4. On failure: retry_count++, next_attempt_at pushed out with exponential
       backoff and status back to pending, or status=failed once
       retry_count reaches max_retries
    
    Design:
    - idempotency_key is unique per tenant so duplicate submissions collapse
    - scheduled_at allows delayed execution
    - last_error keeps the most recent failure visible on the row itself
    """
    __tablename__ = "side_effect_outbox"
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    
    # What to do
    effect_type = Column(
        Enum(SideEffectType, values_callable=_enum_values, native_enum=False, length=20),
        nullable=False,
    )
    event_type = Column(String(100), nullable=False)
    payload = Column(JSONType, nullable=False, default=dict)
    extra_metadata = Column("metadata", JSONType, nullable=True)
    
    # What triggered it
    aggregate_type = Column(String(100), nullable=False)
    aggregate_id = Column(String(64), nullable=False)
    
    # Processing state
    status = Column(
        Enum(OutboxStatus, values_callable=_enum_values, native_enum=False, length=20),
        nullable=False,
        default=OutboxStatus.PENDING,
    )
    scheduled_at = Column(DateTime, nullable=True, default=utcnow)
    next_attempt_at = Column(DateTime, nullable=True)
    claimed_at = Column(DateTime, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)
    max_retries = Column(Integer, nullable=False, default=3)
    last_error = Column(Text, nullable=True)
    processed_at = Column(DateTime, nullable=True)
    
    idempotency_key = Column(String(255), nullable=True)
    
    __table_args__ = (
        UniqueConstraint("tenant_id", "idempotency_key", name="uq_outbox_tenant_idempotency_key"),
        Index("idx_outbox_claim", "tenant_id", "status", "created_at"),
        Index("idx_outbox_aggregate", "aggregate_type", "aggregate_id"),
    )
