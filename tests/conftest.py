"""
Pytest configuration and fixtures
"""

import os

# Settings are read at import time; point everything at SQLite and keep the
# scheduler out of the app before any project module is imported
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["OUTBOX_SCHEDULER_ENABLED"] = "false"
os.environ["OUTBOX_TENANTS"] = ""
os.environ["TENANT_MISMATCH_POLICY"] = "override"

import pytest
import pytest_asyncio
from datetime import datetime, timedelta
from typing import AsyncGenerator
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession
from core.database import build_engine, build_session_factory
from sqlalchemy.pool import NullPool
from models import Base
from tests.support import Job, Task, Untenanted  # noqa: F401  (registers the test tables)

TENANT_A = "tenant-a"
TENANT_B = "tenant-b"


def _enable_sqlite_savepoints(engine):
    """pysqlite's implicit transaction handling breaks SAVEPOINT; take over BEGIN ourselves"""
    
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
    
    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """File-backed SQLite engine so several sessions see the same data"""
    engine = build_engine(
        f"sqlite+aiosqlite:///{tmp_path}/test.db",
        echo=False,
        poolclass=NullPool,  # Disable connection pooling for tests
    )
    _enable_sqlite_savepoints(engine)
    
    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    
    yield engine
    
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return build_session_factory(test_engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def base_time():
    return datetime(2024, 1, 15, 10, 0, 0)


@pytest.fixture
def frozen_clock(base_time):
    """Mutable clock: tests move time by assigning clock.now"""
    
    class Clock:
        now = base_time
        
        def __call__(self):
            return self.now
        
        def advance(self, seconds):
            self.now = self.now + timedelta(seconds=seconds)
    
    return Clock()
