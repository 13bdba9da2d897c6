"""
Models used only by the test-suite to exercise the tenancy layer on a
record shape other than the outbox.
"""

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String, UniqueConstraint
from core.tenant_context import StaticTenantContext
from models.base import Base, utcnow
from tenancy.store import TenantScopedStore


class Task(Base):
    """Generic queue row: camelCase-addressable columns, integer pk, soft delete."""
    __tablename__ = "test_tasks"
    
    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    key = Column(String(100), nullable=True)
    value = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default="PENDING")
    attempts = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    next_attempt_at = Column(DateTime, nullable=True)
    run_after = Column(DateTime, nullable=True)
    claimed_at = Column(DateTime, nullable=True)
    deleted_at = Column(DateTime, nullable=True)
    
    __table_args__ = (
        UniqueConstraint("tenant_id", "key", name="uq_test_tasks_tenant_key"),
        CheckConstraint("attempts >= 0", name="ck_test_tasks_attempts"),
    )


class Job(Base):
    """Queue row whose creation time may be missing (imported or backfilled rows)."""
    __tablename__ = "test_jobs"
    
    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    name = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False)
    created_at = Column(DateTime, nullable=True)
    next_attempt_at = Column(DateTime, nullable=True)


class Untenanted(Base):
    """A table the tenancy layer must refuse to wrap."""
    __tablename__ = "test_untenanted"
    
    id = Column(Integer, primary_key=True)
    name = Column(String(50))


def tenant_store(session, tenant_id, model=Task, **kwargs):
    """Store pinned to ``tenant_id`` without touching the shared context variable"""
    return TenantScopedStore(session, model, tenant_context=StaticTenantContext(tenant_id), **kwargs)
