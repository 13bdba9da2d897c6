"""
Script to drain the outbox once for the given (or configured) tenants

    python scripts/run_worker.py tenant-a tenant-b
    python scripts/run_worker.py --loop
"""

import argparse
import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from core.config import settings
from core.logging import setup_logging
from outbox.scheduler import OutboxScheduler

setup_logging()
logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Drain the side effect outbox")
    parser.add_argument("tenants", nargs="*", help="Tenant ids (default: OUTBOX_TENANTS)")
    parser.add_argument("--loop", action="store_true", help="Keep draining every OUTBOX_POLL_SECONDS")
    return parser.parse_args(argv)


async def run_worker(tenants, loop: bool = False):
    """Drain the outbox for every tenant, once or until interrupted"""
    
    engine = create_async_engine(
        settings.DATABASE_URL,
        echo=False,
    )
    
    AsyncSessionLocal = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    
    tenants = tenants or settings.outbox_tenants
    if not tenants:
        logger.warning("No tenants given and OUTBOX_TENANTS is empty. Nothing to drain.")
        await engine.dispose()
        return
    
    scheduler = OutboxScheduler(tenants=tenants, session_factory=AsyncSessionLocal)
    failed = False
    
    try:
        while True:
            results = await scheduler.run_outbox_job()
            for tenant_id, result in results.items():
                logger.info(f"Outbox drain for {tenant_id}: {result}")
            failed = any("error" in result for result in results.values())
            if not loop:
                break
            await asyncio.sleep(settings.OUTBOX_POLL_SECONDS)
    finally:
        await engine.dispose()
    
    if failed:
        sys.exit(1)


if __name__ == "__main__":
    args = parse_args()
    asyncio.run(run_worker(args.tenants, loop=args.loop))
