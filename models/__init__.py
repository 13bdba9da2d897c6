"""
SQLAlchemy ORM models for database tables.

Models:
    base: Declarative base, shared enums (OutboxStatus, SideEffectType) and
          the TenantMixin / TimestampMixin / SoftDeleteMixin column sets
    outbox: SideEffectOutbox, the status-driven queue drained by workers

Database Schema:
    Every tenant-scoped table mixes in TenantMixin so it carries a non-null
    tenant_id column. Tables drained by ClaimEngine also need a status column,
    a creation timestamp, a next-attempt timestamp and an attempts counter;
    their names are declared per table through ClaimConfig.

Usage:
    from models import SideEffectOutbox, OutboxStatus
"""

from models.base import (
    Base,
    OutboxStatus,
    SideEffectType,
    TenantMixin,
    TimestampMixin,
    SoftDeleteMixin,
)
from models.outbox import SideEffectOutbox

__all__ = [
    "Base",
    "OutboxStatus",
    "SideEffectType",
    "TenantMixin",
    "TimestampMixin",
    "SoftDeleteMixin",
    "SideEffectOutbox",
]
