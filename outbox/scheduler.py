import logging
from typing import Callable, Dict, List, Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from core.config import settings
from core.database import async_session_maker
from outbox.worker import OutboxWorker

logger = logging.getLogger(__name__)


class OutboxScheduler:
    """Runs one outbox drain per configured tenant on a fixed interval."""
    
    def __init__(
        self,
        tenants: Optional[List[str]] = None,
        session_factory: Optional[async_sessionmaker] = None,
        worker_factory: Callable[[AsyncSession, str], OutboxWorker] = OutboxWorker,
        interval_seconds: Optional[int] = None
    ):
        self.scheduler = AsyncIOScheduler()
        self.tenants = tenants if tenants is not None else settings.outbox_tenants
        self.SessionLocal = session_factory or async_session_maker
        self.worker_factory = worker_factory
        self.interval_seconds = interval_seconds or settings.OUTBOX_POLL_SECONDS

    async def run_outbox_job(self) -> Dict[str, dict]:
        """Job to drain the outbox of every tenant; one tenant failing does not stop the rest"""
        results = {}
        for tenant_id in self.tenants:
            async with self.SessionLocal() as session:
                try:
                    worker = self.worker_factory(session, tenant_id)
                    await worker.release_stale()
                    results[tenant_id] = (await worker.drain_once()).to_dict()
                except Exception as e:
                    logger.error(f"Scheduler: outbox drain failed for tenant {tenant_id} - {e}")
                    results[tenant_id] = {"error": str(e)}
        return results

    def start(self):
        """Start the scheduler"""
        if not self.tenants:
            logger.warning("Outbox scheduler has no tenants configured (OUTBOX_TENANTS)")
        self.scheduler.add_job(
            self.run_outbox_job,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id="outbox_job",
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )
        self.scheduler.start()
        logger.info(f"Outbox scheduler started ({len(self.tenants)} tenant(s), every {self.interval_seconds}s)")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown()
        logger.info("Outbox scheduler stopped")
