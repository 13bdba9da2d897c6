"""
Store-specific detection of unique-constraint violations and transient failures.

The rest of the tenancy layer stays dialect-agnostic: it asks
``is_unique_violation(exc, dialect)`` and never inspects driver errors itself.
"""

from typing import Callable, Dict, Optional
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

PG_UNIQUE_VIOLATION = "23505"

# SQLSTATE classes that mean "try again later" on PostgreSQL
PG_TRANSIENT_CLASSES = ("08", "40", "53", "57")


def _driver_errors(exc: BaseException):
    # SQLAlchemy's asyncpg adapter wraps the driver exception, which is kept as __cause__
    orig = getattr(exc, "orig", None)
    if orig is not None:
        yield orig
        cause = getattr(orig, "__cause__", None)
        if cause is not None:
            yield cause


def _sqlstate(exc: DBAPIError) -> Optional[str]:
    """SQLSTATE from asyncpg (sqlstate) or psycopg (sqlstate / pgcode)."""
    for err in _driver_errors(exc):
        for attr in ("sqlstate", "pgcode"):
            code = getattr(err, attr, None)
            if code:
                return str(code)
    return None


def _pg_unique_violation(exc: IntegrityError) -> bool:
    return _sqlstate(exc) == PG_UNIQUE_VIOLATION


def _sqlite_unique_violation(exc: IntegrityError) -> bool:
    orig = getattr(exc, "orig", None)
    if getattr(orig, "sqlite_errorname", None) == "SQLITE_CONSTRAINT_UNIQUE":
        return True
    message = str(orig or exc)
    return "UNIQUE constraint failed" in message


UNIQUE_VIOLATION_CHECKS: Dict[str, Callable[[IntegrityError], bool]] = {
    "postgresql": _pg_unique_violation,
    "sqlite": _sqlite_unique_violation,
}


def is_unique_violation(exc: BaseException, dialect: Optional[str] = None) -> bool:
    """
    True when ``exc`` is the store's unique-constraint conflict signal.
    
    With no dialect given every registered predicate is tried.
    """
    if not isinstance(exc, IntegrityError):
        return False
    if dialect is not None:
        check = UNIQUE_VIOLATION_CHECKS.get(dialect)
        return bool(check and check(exc))
    return any(check(exc) for check in UNIQUE_VIOLATION_CHECKS.values())


def is_transient(exc: BaseException) -> bool:
    """Connection loss, timeouts, serialization failures and similar."""
    if not isinstance(exc, DBAPIError):
        return False
    if exc.connection_invalidated:
        return True
    code = _sqlstate(exc)
    if code:
        return code[:2] in PG_TRANSIENT_CLASSES
    message = str(getattr(exc, "orig", exc)).lower()
    return isinstance(exc, OperationalError) and any(
        marker in message for marker in ("locked", "busy", "timeout")
    )


def constraint_name(exc: BaseException) -> Optional[str]:
    """Violated constraint name when the driver reports it."""
    for err in _driver_errors(exc):
        name = getattr(err, "constraint_name", None)
        if name:
            return name
        diag = getattr(err, "diag", None)
        if getattr(diag, "constraint_name", None):
            return diag.constraint_name
    return None
