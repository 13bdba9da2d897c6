"""
Enqueueing and inspecting outbox side effects for the active tenant
"""

from typing import Dict, List, Optional, Sequence
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from core.config import settings
from core.tenant_context import TenantContext
from models.base import OutboxStatus, SideEffectType
from models.outbox import SideEffectOutbox
from schemas.outbox import SideEffectCreate
from tenancy.idempotency import IdempotentResult, IdempotentWriter
from tenancy.store import TenantScopedStore
import logging

logger = logging.getLogger(__name__)


class SideEffectService:
    """
    Writes side effects into the outbox table.
    
    Ensures:
    - Every row belongs to the active tenant
    - Rows with the same idempotency_key collapse onto one (per tenant)
    - Rows start pending so the next worker cycle picks them up
    """
    
    def __init__(
        self,
        db_session: AsyncSession,
        tenant_context: Optional[TenantContext] = None,
        auto_commit: bool = True
    ):
        self.store: TenantScopedStore[SideEffectOutbox] = TenantScopedStore(
            db_session, SideEffectOutbox, tenant_context=tenant_context, auto_commit=auto_commit
        )
        self.writer = IdempotentWriter(self.store)
    
    def _row_values(self, effect: SideEffectCreate) -> dict:
        values = effect.model_dump(exclude_none=True)
        values["effect_type"] = SideEffectType(values["effect_type"])
        values["status"] = OutboxStatus.PENDING
        values["retry_count"] = 0
        values.setdefault("max_retries", settings.OUTBOX_MAX_RETRIES)
        return values
    
    async def create_side_effect(self, effect: SideEffectCreate) -> IdempotentResult[SideEffectOutbox]:
        """
        Enqueue one side effect.
        
        Returns:
            IdempotentResult whose outcome tells whether a new row was written
            or an earlier submission with the same idempotency_key was found
        """
        result = await self.writer.save_with_idempotency(self._row_values(effect), "idempotency_key")
        logger.info(
            f"Side effect {result.outcome.value}: {result.record.id} "
            f"[{effect.effect_type}] {effect.aggregate_type}:{effect.aggregate_id} {effect.event_type}"
        )
        return result
    
    async def create_side_effects(
        self,
        effects: Sequence[SideEffectCreate]
    ) -> List[IdempotentResult[SideEffectOutbox]]:
        """Enqueue several side effects, each with its own idempotency check"""
        return [await self.create_side_effect(effect) for effect in effects]
    
    async def find_by_aggregate(self, aggregate_type: str, aggregate_id: str) -> List[SideEffectOutbox]:
        return await self.store.find(
            {"aggregate_type": aggregate_type, "aggregate_id": aggregate_id},
            order_by=["created_at"],
        )
    
    async def get_stats(self) -> Dict[str, int]:
        """Row count per status, every status present (zero when absent)"""
        outbox = self.store.scoped_query("o").subquery()
        stmt = select(outbox.c.status, func.count()).group_by(outbox.c.status)
        with self.store.translate_errors("get_stats"):
            result = await self.store.session.execute(stmt)
        
        counts = {status.value: 0 for status in OutboxStatus}
        for status, count in result.all():
            key = status.value if isinstance(status, OutboxStatus) else str(status)
            counts[key] = count
        return counts
