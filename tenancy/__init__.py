"""
Tenant-scoped data access and work claiming.

Modules:
    columns: ColumnResolver, field name -> column / table resolution
    query_scope: QueryScopeBuilder, tenant-restricted criteria and SELECTs
    store: TenantScopedStore, CRUD confined to the active tenant
    idempotency: IdempotentWriter, duplicate submissions collapse onto one row
    claims: ClaimEngine / ClaimConfig, SKIP LOCKED batch claiming with backoff
    conflicts: per-dialect unique-violation and transient-error predicates

Usage:
    from core.tenant_context import tenant_context
    from tenancy import TenantScopedStore, ClaimEngine, ClaimConfig

    with tenant_context.scope("tenant-a"):
        store = TenantScopedStore(session, SideEffectOutbox)
        batch = await ClaimEngine(store).claim_batch(config, limit=50)
"""

from tenancy.columns import ColumnResolver
from tenancy.query_scope import QueryScopeBuilder
from tenancy.store import TenantScopedStore
from tenancy.idempotency import IdempotentWriter, IdempotentResult, IdempotencyOutcome
from tenancy.claims import ClaimEngine, ClaimConfig, compute_backoff_delay
from tenancy.conflicts import is_unique_violation

__all__ = [
    "ColumnResolver",
    "QueryScopeBuilder",
    "TenantScopedStore",
    "IdempotentWriter",
    "IdempotentResult",
    "IdempotencyOutcome",
    "ClaimEngine",
    "ClaimConfig",
    "compute_backoff_delay",
    "is_unique_violation",
]
