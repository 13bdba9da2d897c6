"""
Async engine and session factory shared by the API and the outbox scheduler
"""

import logging
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from core.config import settings

logger = logging.getLogger(__name__)


def build_engine(url: str, **kwargs) -> AsyncEngine:
    """Engine for ``url``; pre-ping only matters for pooled server connections"""
    if not url.startswith("sqlite"):
        kwargs.setdefault("pool_pre_ping", True)
    kwargs.setdefault("echo", settings.ENVIRONMENT == "development")
    return create_async_engine(url, **kwargs)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    # stores hand rows back after commit, so they must not expire
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False, autoflush=False)


engine = build_engine(settings.DATABASE_URL)
async_session_maker = build_session_factory(engine)
