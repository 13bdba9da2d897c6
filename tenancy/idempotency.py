"""
Idempotent inserts keyed by a caller-supplied idempotency key.

The unique constraint on (tenant_id, <key column>) is the arbiter: the insert
is attempted inside a SAVEPOINT, and a unique violation is turned into "return
the row that already holds this key" instead of an error.
"""

from dataclasses import dataclass
from typing import Any, Generic, Mapping, TypeVar, Union
from core.exceptions import ConflictError
from tenancy.store import TenantScopedStore
import enum
import logging

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")


class IdempotencyOutcome(str, enum.Enum):
    INSERTED = "inserted"
    EXISTING = "existing"


@dataclass(frozen=True)
class IdempotentResult(Generic[ModelT]):
    """The stored record plus whether this call created it."""
    record: ModelT
    outcome: IdempotencyOutcome

    @property
    def inserted(self) -> bool:
        return self.outcome == IdempotencyOutcome.INSERTED


class IdempotentWriter(Generic[ModelT]):
    """
    save_with_idempotency() on top of a TenantScopedStore.

    - key absent/None: plain tenant-scoped save, outcome INSERTED
    - insert succeeds: outcome INSERTED
    - unique violation: the existing row for (key, tenant) with outcome EXISTING
    - unique violation but the row is gone again: the insert is retried once
    - any other error propagates unchanged
    """

    def __init__(self, store: TenantScopedStore):
        self.store = store

    def _key_value(self, partial: Union[Mapping[str, Any], Any], key: str) -> Any:
        if isinstance(partial, Mapping):
            for field, value in partial.items():
                if self.store.columns.find(field) == key:
                    return value
            return None
        return getattr(partial, key, None)

    async def _insert(self, partial: Union[Mapping[str, Any], Any]) -> ModelT:
        tenant_id = self.store.require_tenant_id("save_with_idempotency")
        record = self.store.stamp(partial, tenant_id)
        async with self.store.session.begin_nested():
            await self.store.flush([record], "save_with_idempotency")
        return record

    async def save_with_idempotency(
        self,
        partial: Union[Mapping[str, Any], Any],
        idempotency_key_field: str
    ) -> IdempotentResult[ModelT]:
        tenant_id = self.store.require_tenant_id("save_with_idempotency")
        key = self.store.columns.resolve(idempotency_key_field)
        value = self._key_value(partial, key)

        if value is None:
            record = await self.store.save(partial)
            return IdempotentResult(record, IdempotencyOutcome.INSERTED)

        try:
            try:
                record = await self._insert(partial)
            except ConflictError:
                existing = await self.store.find_one({key: value}, with_deleted=True)
                if existing is not None:
                    logger.info(
                        f"Idempotent {self.store.columns.model_name} write collapsed onto existing row "
                        f"({key}={value!r}, tenant={tenant_id})"
                    )
                    await self.store.finish("save_with_idempotency")
                    return IdempotentResult(existing, IdempotencyOutcome.EXISTING)

                logger.warning(
                    f"Conflicting {self.store.columns.model_name} row for {key}={value!r} vanished, "
                    f"retrying insert once"
                )
                record = await self._insert(partial)
            await self.store.finish("save_with_idempotency")
        except Exception:
            await self.store.abort()
            raise
        return IdempotentResult(record, IdempotencyOutcome.INSERTED)
