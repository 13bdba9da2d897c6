"""
Core utilities and configuration for the tenancy outbox service.

Modules:
    config: Application configuration and environment variable management
    database: Async engine and session factory
    exceptions: Exception hierarchy with structured context
    logging: Logging configuration
    tenant_context: Active-tenant propagation via context variables

Usage:
    from core.config import settings
    from core.database import async_session_maker
    from core.tenant_context import tenant_context

Example:
    setup_logging()
    
    with tenant_context.scope("tenant-a"):
        async with async_session_maker() as session:
            ...
"""

__all__ = [
    "settings",
    "async_session_maker",
    "setup_logging",
    "tenant_context",
    "StaticTenantContext",
    # Exceptions
    "TenancyException",
    "RetryableError",
    "NonRetryableError",
    "ConfigurationError",
    "TenantContextMissingError",
    "UnknownFieldError",
    "TenantMismatchError",
    "StoreError",
    "ConflictError",
    "TransientStoreError",
    "EntityNotFoundError",
]
