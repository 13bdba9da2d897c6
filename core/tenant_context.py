"""
Tenant context propagation.

The active tenant is held in a ``contextvars.ContextVar`` so it follows the
logical unit of work: one HTTP request, one asyncio task, one worker cycle.
Stores never take the tenant as an argument, they ask the context.
"""

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional, Protocol

_current_tenant: ContextVar[Optional[str]] = ContextVar("current_tenant", default=None)


class TenantContext(Protocol):
    """Anything that can tell which tenant the current unit of work belongs to."""

    def current_tenant_id(self) -> Optional[str]:
        ...


class ContextVarTenantContext:
    """
    Default tenant context backed by a context variable.

    Usage:
        with tenant_context.scope("tenant-a"):
            await store.find({"status": "pending"})
    """

    def current_tenant_id(self) -> Optional[str]:
        return _current_tenant.get()

    def set(self, tenant_id: Optional[str]):
        """Bind a tenant and return the token needed to reset it."""
        return _current_tenant.set(tenant_id)

    def reset(self, token) -> None:
        _current_tenant.reset(token)

    @contextmanager
    def scope(self, tenant_id: Optional[str]) -> Iterator[None]:
        """Bind ``tenant_id`` for the duration of the ``with`` block."""
        token = _current_tenant.set(tenant_id)
        try:
            yield
        finally:
            _current_tenant.reset(token)


class StaticTenantContext:
    """Tenant context pinned to one tenant; used by per-tenant worker loops."""

    def __init__(self, tenant_id: Optional[str]):
        self.tenant_id = tenant_id

    def current_tenant_id(self) -> Optional[str]:
        return self.tenant_id


tenant_context = ContextVarTenantContext()
