"""
Claim / backoff protocol for status-driven queue tables.

Any number of workers can drain the same table concurrently. Each claim is a
single statement:

    WITH pick AS (
        SELECT id FROM <table>
        WHERE tenant_id = :tenant AND status = :pending
          AND (next_attempt_at IS NULL OR next_attempt_at <= :now)
          [AND (schedule_at IS NULL OR schedule_at <= :now)]
        ORDER BY created_at ASC
        LIMIT :limit
        FOR UPDATE SKIP LOCKED
    )
    UPDATE <table> SET status = :in_progress WHERE id IN (SELECT id FROM pick)
    RETURNING *

Rows locked by another in-flight claim are skipped instead of waited on, so
concurrent workers receive disjoint batches and never block each other.
Finalisation is up to the caller: update_status_by_id() for terminal states,
mark_failure_with_backoff() to send a row back to pending with a delay.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, List, Mapping, Optional
from sqlalchemy import or_, select, update as sa_update
from sqlalchemy.sql import Update
from core.exceptions import ConfigurationError
from models.base import utcnow
from tenancy.columns import TENANT_FIELD
from tenancy.store import TenantScopedStore
import logging

logger = logging.getLogger(__name__)

DEFAULT_BASE_DELAY_SECONDS = 5
DEFAULT_CAP_SECONDS = 60 * 60


@dataclass(frozen=True)
class ClaimConfig:
    """
    Per-table description of the queue columns. Built once per worker type.

    Column names are field names understood by ColumnResolver (attribute
    key, camelCase or physical column name).
    """
    status_column: str
    pending_value: Any
    in_progress_value: Any
    created_at_column: str
    next_attempt_at_column: str
    schedule_at_column: Optional[str] = None
    # Stamped at claim time; required by release_stale_claims()
    claimed_at_column: Optional[str] = None


def compute_backoff_delay(
    attempts: int,
    base_delay_seconds: float = DEFAULT_BASE_DELAY_SECONDS,
    cap_seconds: float = DEFAULT_CAP_SECONDS
) -> float:
    """
    Exponential backoff with a hard ceiling: min(cap, base * 2 ** attempts).

    Non-decreasing in ``attempts`` and never above ``cap_seconds``.
    """
    if attempts < 0:
        raise ValueError(f"attempts must be >= 0, got {attempts}")
    if base_delay_seconds < 0 or cap_seconds < 0:
        raise ValueError("base_delay_seconds and cap_seconds must be >= 0")
    # past 2**64 the product only matters as "more than cap"
    if attempts >= 64:
        return cap_seconds if base_delay_seconds > 0 else 0
    return min(cap_seconds, base_delay_seconds * (2 ** attempts))


class ClaimEngine:
    """
    Claims batches of pending rows and finalises them, all tenant-scoped.

    The engine shares its store's session and transaction mode: with an
    auto-committing store every claim and every finalisation is its own
    transaction, which releases row locks as soon as the claim returns.
    """

    def __init__(self, store: TenantScopedStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.columns = store.columns
        self.clock = clock

    # ========================================================================
    # Claim
    # ========================================================================

    def build_claim_statement(self, config: ClaimConfig, limit: int, tenant_id: str, now: datetime) -> Update:
        model = self.store.model
        pk = self.columns.attribute(self.columns.primary_key)
        status = self.columns.attribute(config.status_column)
        created_at = self.columns.attribute(config.created_at_column)
        next_attempt_at = self.columns.attribute(config.next_attempt_at_column)

        conditions = [
            self.columns.attribute(TENANT_FIELD) == tenant_id,
            status == config.pending_value,
            or_(next_attempt_at.is_(None), next_attempt_at <= now),
        ]
        if config.schedule_at_column:
            schedule_at = self.columns.attribute(config.schedule_at_column)
            conditions.append(or_(schedule_at.is_(None), schedule_at <= now))
        if self.columns.has_field("deleted_at"):
            conditions.append(self.columns.attribute("deleted_at").is_(None))

        pick = (
            select(pk.label("claim_id"))
            .where(*conditions)
            .order_by(created_at.asc().nulls_last(), pk.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
            .cte("pick")
        )

        values = {status: config.in_progress_value}
        if config.claimed_at_column:
            values[self.columns.attribute(config.claimed_at_column)] = now

        return (
            sa_update(model)
            .where(pk.in_(select(pick.c.claim_id)))
            .values(values)
            .returning(model)
            .execution_options(synchronize_session=False)
        )

    async def claim_batch(self, config: ClaimConfig, limit: int) -> List[Any]:
        """
        Atomically move up to ``limit`` eligible rows from pending to in
        progress and return them oldest first.

        Either the whole batch is claimed or, on error, nothing is.
        """
        tenant_id = self.store.require_tenant_id("claim_batch")
        if limit <= 0:
            return []

        now = self.clock()
        stmt = self.build_claim_statement(config, limit, tenant_id, now)
        rows = await self.store.execute_write(
            stmt, "claim_batch", execution_options={"populate_existing": True}
        )

        created_key = self.columns.resolve(config.created_at_column)
        pk_key = self.columns.primary_key

        # same order as the SQL side: NULL creation times last
        def fifo_key(record):
            created = getattr(record, created_key)
            return (created is None, created, str(getattr(record, pk_key)))

        batch = sorted((row[0] for row in rows), key=fifo_key)
        if batch:
            logger.info(
                f"Claimed {len(batch)} {self.columns.model_name} row(s) for tenant {tenant_id}"
            )
        return batch

    # ========================================================================
    # Finalisation
    # ========================================================================

    async def update_status_by_id(
        self,
        record_id: Any,
        status_column: str,
        status: Any,
        extra: Optional[Mapping[str, Any]] = None
    ) -> bool:
        """Unconditional, tenant-scoped status transition; True if a row changed."""
        patch = dict(extra or {})
        patch[status_column] = status
        affected = await self.store.update({self.columns.primary_key: record_id}, patch)
        return affected > 0

    async def mark_failure_with_backoff(
        self,
        record_id: Any,
        attempts_column: str,
        next_attempt_at_column: str,
        status_column: str,
        pending_value: Any,
        attempts_so_far: int,
        base_delay_seconds: float = DEFAULT_BASE_DELAY_SECONDS,
        cap_seconds: float = DEFAULT_CAP_SECONDS,
        extra: Optional[Mapping[str, Any]] = None
    ) -> Optional[datetime]:
        """
        Put a failed row back to pending with attempts + 1 and
        next_attempt_at = now + min(cap, base * 2 ** attempts_so_far).

        Returns the scheduled next attempt time, or None when no row of the
        active tenant has ``record_id``. Capping the number of attempts is
        the caller's decision.
        """
        delay = compute_backoff_delay(attempts_so_far, base_delay_seconds, cap_seconds)
        next_attempt_at = self.clock() + timedelta(seconds=delay)

        patch = dict(extra or {})
        patch.update({
            status_column: pending_value,
            attempts_column: attempts_so_far + 1,
            next_attempt_at_column: next_attempt_at,
        })
        affected = await self.store.update({self.columns.primary_key: record_id}, patch)
        if not affected:
            logger.warning(
                f"{self.columns.model_name} {record_id} not found for tenant, backoff not recorded"
            )
            return None

        logger.info(
            f"{self.columns.model_name} {record_id} failed (attempt {attempts_so_far + 1}), "
            f"retrying in {delay}s"
        )
        return next_attempt_at

    # ========================================================================
    # Stuck-row reaper
    # ========================================================================

    async def release_stale_claims(self, config: ClaimConfig, older_than_seconds: float) -> int:
        """
        Reset rows stuck in progress (worker crashed before finalising) back
        to pending when they were claimed more than ``older_than_seconds`` ago.
        """
        if not config.claimed_at_column:
            raise ConfigurationError(
                "release_stale_claims needs ClaimConfig.claimed_at_column",
                context={"model": self.columns.model_name}
            )
        self.store.require_tenant_id("release_stale_claims")
        status = self.columns.attribute(config.status_column)
        claimed_at = self.columns.attribute(config.claimed_at_column)
        cutoff = self.clock() - timedelta(seconds=older_than_seconds)

        released = await self.store.update_where(
            [status == config.in_progress_value, claimed_at < cutoff],
            {config.status_column: config.pending_value, config.claimed_at_column: None},
        )
        if released:
            logger.warning(
                f"Released {released} stale {self.columns.model_name} claim(s) older than {older_than_seconds}s"
            )
        return released
