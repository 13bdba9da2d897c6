"""
Outbox worker: drains pending side effects for one tenant.

Each cycle claims a batch with ClaimEngine (FOR UPDATE SKIP LOCKED, so any
number of workers may run side by side), runs the handler for every row and
finalises it:

- handler returns            -> completed, processed_at stamped
- handler raises, retryable  -> back to pending with exponential backoff
- retries exhausted, non-retryable error or no handler -> failed
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Mapping, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from core.config import settings
from core.exceptions import NonRetryableError
from core.tenant_context import StaticTenantContext
from models.base import OutboxStatus, SideEffectType, utcnow
from models.outbox import SideEffectOutbox
from outbox.handlers import Handler, default_handlers
from tenancy.claims import ClaimConfig, ClaimEngine
from tenancy.store import TenantScopedStore
import logging

logger = logging.getLogger(__name__)

OUTBOX_CLAIM_CONFIG = ClaimConfig(
    status_column="status",
    pending_value=OutboxStatus.PENDING,
    in_progress_value=OutboxStatus.IN_PROGRESS,
    created_at_column="created_at",
    next_attempt_at_column="next_attempt_at",
    schedule_at_column="scheduled_at",
    claimed_at_column="claimed_at",
)

# last_error is truncated so a huge traceback cannot bloat the row
MAX_ERROR_LENGTH = 2000


@dataclass
class DrainResult:
    claimed: int = 0
    completed: int = 0
    retried: int = 0
    failed: int = 0
    
    def to_dict(self) -> Dict[str, int]:
        return {
            "claimed": self.claimed,
            "completed": self.completed,
            "retried": self.retried,
            "failed": self.failed,
        }


class OutboxWorker:
    """
    Processes the outbox of a single tenant.
    
    Usage:
        async with SessionLocal() as session:
            worker = OutboxWorker(session, "tenant-a")
            result = await worker.drain_once()
    """
    
    def __init__(
        self,
        db_session: AsyncSession,
        tenant_id: str,
        handlers: Optional[Mapping[SideEffectType, Handler]] = None,
        batch_size: Optional[int] = None,
        base_delay_seconds: Optional[float] = None,
        cap_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.tenant_id = tenant_id
        self.store: TenantScopedStore[SideEffectOutbox] = TenantScopedStore(
            db_session, SideEffectOutbox, tenant_context=StaticTenantContext(tenant_id)
        )
        self.engine = ClaimEngine(self.store, clock=clock)
        self.handlers = dict(handlers) if handlers is not None else default_handlers()
        self.batch_size = batch_size or settings.CLAIM_BATCH_SIZE
        self.base_delay_seconds = (
            settings.BACKOFF_BASE_SECONDS if base_delay_seconds is None else base_delay_seconds
        )
        self.cap_seconds = settings.BACKOFF_CAP_SECONDS if cap_seconds is None else cap_seconds
    
    async def drain_once(self) -> DrainResult:
        """Claim one batch and process every row in it."""
        result = DrainResult()
        batch = await self.engine.claim_batch(OUTBOX_CLAIM_CONFIG, self.batch_size)
        result.claimed = len(batch)
        
        for row in batch:
            try:
                await self._run_handler(row)
            except Exception as e:
                if await self._record_failure(row, e):
                    result.retried += 1
                else:
                    result.failed += 1
                continue
            
            await self.engine.update_status_by_id(
                row.id, "status", OutboxStatus.COMPLETED,
                extra={"processed_at": self.engine.clock(), "last_error": None},
            )
            result.completed += 1
        
        if result.claimed:
            logger.info(f"Outbox drain for tenant {self.tenant_id}: {result.to_dict()}")
        return result
    
    async def _run_handler(self, row: SideEffectOutbox) -> None:
        handler = self.handlers.get(SideEffectType(row.effect_type))
        if handler is None:
            raise NonRetryableError(
                f"No handler registered for side effect type {row.effect_type}",
                context={"side_effect_id": str(row.id), "effect_type": str(row.effect_type)}
            )
        await handler(row)
    
    async def _record_failure(self, row: SideEffectOutbox, error: Exception) -> bool:
        """
        Finalise a failed row. Returns True when it was rescheduled and False
        when it was marked failed for good.
        """
        message = str(error)[:MAX_ERROR_LENGTH]
        attempts = row.retry_count or 0
        max_retries = settings.OUTBOX_MAX_RETRIES if row.max_retries is None else row.max_retries
        exhausted = attempts + 1 >= max_retries
        
        if exhausted or isinstance(error, NonRetryableError):
            logger.error(
                f"Side effect {row.id} failed permanently after {attempts + 1} attempt(s): {message}"
            )
            await self.engine.update_status_by_id(
                row.id, "status", OutboxStatus.FAILED,
                extra={"retry_count": attempts + 1, "last_error": message},
            )
            return False
        
        await self.engine.mark_failure_with_backoff(
            row.id,
            attempts_column="retry_count",
            next_attempt_at_column="next_attempt_at",
            status_column="status",
            pending_value=OutboxStatus.PENDING,
            attempts_so_far=attempts,
            base_delay_seconds=self.base_delay_seconds,
            cap_seconds=self.cap_seconds,
            extra={"last_error": message},
        )
        return True
    
    async def release_stale(self, older_than_seconds: Optional[float] = None) -> int:
        """Send rows stuck in progress (crashed worker) back to pending."""
        timeout = settings.STALE_CLAIM_TIMEOUT_SECONDS if older_than_seconds is None else older_than_seconds
        return await self.engine.release_stale_claims(OUTBOX_CLAIM_CONFIG, timeout)
