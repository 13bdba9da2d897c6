"""
Custom exceptions for the tenancy layer with structured error context.

Every exception carries a ``context`` dictionary (tenant, model, column,
constraint, ...) so failures can be logged and inspected without parsing
messages.

Exception Hierarchy:
    TenancyException (base)
    ├── ConfigurationError
    │   ├── TenantContextMissingError
    │   ├── UnknownFieldError
    │   └── TenantMismatchError
    ├── StoreError
    │   ├── ConflictError
    │   ├── TransientStoreError
    │   └── EntityNotFoundError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class TenancyException(Exception):
    """
    Base exception for all tenancy-layer errors.
    
    Attributes:
        message: Human-readable error message
        context: Additional context information (tenant, model, column, etc.)
        original_exception: The original exception that was caught (if any)
    """
    
    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)
        
        # Add timestamp to context
        self.context["error_timestamp"] = self.timestamp.isoformat()
        
        # Chain original exception if provided
        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception
    
    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"
        
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"
        
        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"
        
        return base_msg
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(TenancyException):
    """
    Mixin for errors a caller may retry.
    
    The tenancy layer never retries on its own; the flag only tells the
    caller (or a queue worker) that the failure was transient.
    """
    pass


class NonRetryableError(TenancyException):
    """
    Mixin for errors that must NOT be retried.
    
    Use this for permanent errors like:
    - Missing tenant context
    - Unknown field or column references
    - Unique constraint conflicts outside idempotent writes
    """
    pass


# ============================================================================
# Configuration Errors
# ============================================================================

class ConfigurationError(NonRetryableError):
    """Base exception for misconfiguration detected at call time."""
    pass


class TenantContextMissingError(ConfigurationError):
    """
    Raised when an operation needs a tenant but none is bound.
    
    Context should include:
        - model: Name of the record type being accessed
        - operation: The store operation that was attempted
    """
    pass


class UnknownFieldError(ConfigurationError):
    """
    Raised when a logical field name cannot be resolved to a column.
    
    Context should include:
        - model: Name of the record type
        - field: The field name that was requested
    """
    pass


class TenantMismatchError(ConfigurationError):
    """
    Raised under the "reject" mismatch policy when a caller supplies a
    tenant_id different from the active tenant.
    """
    pass


# ============================================================================
# Store Errors
# ============================================================================

class StoreError(TenancyException):
    """Base exception for failures reported by the backing store."""
    pass


class ConflictError(NonRetryableError, StoreError):
    """
    Unique constraint violation.
    
    Context should include:
        - model: Name of the record type
        - constraint: Name of violated constraint (if the driver reports it)
    """
    pass


class TransientStoreError(RetryableError, StoreError):
    """Connection loss, timeout or other transient store failure."""
    pass


class EntityNotFoundError(NonRetryableError, StoreError):
    """
    Raised by the ``..._or_fail`` lookups when nothing matches.
    
    Context should include:
        - model: Name of the record type
        - criteria: The (tenant-scoped) lookup criteria
    """
    pass
