import sqlite3
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from tenancy.conflicts import constraint_name, is_transient, is_unique_violation


class FakePgError(Exception):
    def __init__(self, sqlstate, constraint_name=None):
        super().__init__(f"pg error {sqlstate}")
        self.sqlstate = sqlstate
        self.constraint_name = constraint_name


def integrity_error(orig):
    return IntegrityError("INSERT ...", {}, orig)


def test_postgres_unique_violation():
    exc = integrity_error(FakePgError("23505", "uq_outbox_tenant_idempotency_key"))
    
    assert is_unique_violation(exc, "postgresql")
    assert is_unique_violation(exc)
    assert constraint_name(exc) == "uq_outbox_tenant_idempotency_key"


def test_postgres_other_integrity_errors_are_not_conflicts():
    # 23502 = not_null_violation
    assert not is_unique_violation(integrity_error(FakePgError("23502")), "postgresql")


def test_postgres_code_on_wrapped_cause():
    wrapper = Exception("adapter error")
    wrapper.__cause__ = FakePgError("23505")
    assert is_unique_violation(integrity_error(wrapper), "postgresql")


def test_sqlite_unique_violation():
    exc = integrity_error(sqlite3.IntegrityError("UNIQUE constraint failed: test_tasks.tenant_id, test_tasks.key"))
    
    assert is_unique_violation(exc, "sqlite")
    assert not is_unique_violation(
        integrity_error(sqlite3.IntegrityError("NOT NULL constraint failed: test_tasks.status")),
        "sqlite"
    )


def test_unknown_dialect_and_non_integrity_errors():
    exc = integrity_error(FakePgError("23505"))
    
    assert not is_unique_violation(exc, "mssql")
    assert not is_unique_violation(ValueError("nope"))


def test_transient_detection():
    assert is_transient(OperationalError("SELECT 1", {}, sqlite3.OperationalError("database is locked")))
    assert is_transient(DBAPIError("SELECT 1", {}, Exception("gone"), connection_invalidated=True))
    # 40001 = serialization_failure
    assert is_transient(OperationalError("SELECT 1", {}, FakePgError("40001")))
    assert not is_transient(integrity_error(FakePgError("23505")))
    assert not is_transient(RuntimeError("boom"))
