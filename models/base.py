from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, JSON
from sqlalchemy.orm import declarative_base
from sqlalchemy.dialects.postgresql import JSONB
import enum

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    """Naive UTC timestamp, the representation stored in every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ============================================================================
# ENUMS
# ============================================================================

class OutboxStatus(str, enum.Enum):
    """Outbox row status"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class SideEffectType(str, enum.Enum):
    """Kinds of side effects an outbox row can carry"""
    SQS = "sqs"
    SNS = "sns"
    EMAIL = "email"
    AUDIT = "audit"


# ============================================================================
# MIXINS
# ============================================================================

class TenantMixin:
    """Every tenant-scoped table carries a non-null tenant_id column."""
    tenant_id = Column(String(64), nullable=False, index=True)


class TimestampMixin:
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class SoftDeleteMixin:
    """Rows with a non-null deleted_at are hidden from tenant-scoped reads."""
    deleted_at = Column(DateTime, nullable=True)
