"""
Tenant-scoped data access over SQLAlchemy async sessions.

TenantScopedStore wraps one mapped model and guarantees that every read
filter and every write payload carries the active tenant:

- reads/updates/deletes AND ``tenant_id = <active tenant>`` into the criteria
- create/save force ``tenant_id`` onto the record
- no active tenant means TenantContextMissingError before any SQL is sent

Transactions:
    With ``auto_commit=True`` (default) each mutating call commits on success
    and rolls back on failure. With ``auto_commit=False`` calls only flush and
    the caller owns commit/rollback.
"""

from contextlib import contextmanager
from typing import Any, Generic, Iterable, List, Mapping, Optional, Sequence, Tuple, TypeVar, Union
from sqlalchemy import delete as sa_delete, exists as sa_exists, select, update as sa_update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement, Select
from core.config import settings
from core.exceptions import (
    ConfigurationError,
    ConflictError,
    EntityNotFoundError,
    TenantContextMissingError,
    TransientStoreError,
)
from core.tenant_context import TenantContext, tenant_context as default_tenant_context
from models.base import utcnow
from tenancy.columns import ColumnResolver, TENANT_FIELD
from tenancy.conflicts import constraint_name, is_transient, is_unique_violation
from tenancy.query_scope import Filter, QueryScopeBuilder
import logging

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")

Criteria = Union[Any, Sequence[Any], Mapping[str, Any], Sequence[Mapping[str, Any]]]


class TenantScopedStore(Generic[ModelT]):
    """
    CRUD and query composition for one model, confined to the active tenant.

    Usage:
        store = TenantScopedStore(session, SideEffectOutbox)
        with tenant_context.scope("tenant-a"):
            rows = await store.find({"status": "pending"}, order_by=["created_at"])
    """

    def __init__(
        self,
        session: AsyncSession,
        model: type,
        tenant_context: Optional[TenantContext] = None,
        auto_commit: bool = True,
        mismatch_policy: Optional[str] = None
    ):
        self.session = session
        self.model = model
        self.tenant_context = tenant_context or default_tenant_context
        self.auto_commit = auto_commit
        self.columns = ColumnResolver(model)
        self.scope = QueryScopeBuilder(self.columns, mismatch_policy or settings.TENANT_MISMATCH_POLICY)

    # ========================================================================
    # Tenant / transaction plumbing
    # ========================================================================

    def require_tenant_id(self, operation: str) -> str:
        """Active tenant id; raises before any store access when absent."""
        tenant_id = self.tenant_context.current_tenant_id()
        if tenant_id is None:
            raise TenantContextMissingError(
                f"Tenant context is required for {operation} but not available",
                context={"model": self.columns.model_name, "operation": operation}
            )
        if not str(tenant_id).strip():
            raise TenantContextMissingError(
                f"Tenant context for {operation} is blank",
                context={"model": self.columns.model_name, "operation": operation}
            )
        return tenant_id

    @property
    def dialect_name(self) -> Optional[str]:
        bind = self.session.bind
        dialect = getattr(bind, "dialect", None)
        return getattr(dialect, "name", None)

    @contextmanager
    def translate_errors(self, operation: str):
        """Map driver errors onto ConflictError / TransientStoreError."""
        try:
            yield
        except IntegrityError as e:
            if is_unique_violation(e, self.dialect_name):
                raise ConflictError(
                    f"Unique constraint violated during {operation} on {self.columns.model_name}",
                    context={
                        "model": self.columns.model_name,
                        "operation": operation,
                        "constraint": constraint_name(e),
                    },
                    original_exception=e
                ) from e
            raise
        except DBAPIError as e:
            if is_transient(e):
                raise TransientStoreError(
                    f"Transient store failure during {operation} on {self.columns.model_name}",
                    context={"model": self.columns.model_name, "operation": operation},
                    original_exception=e
                ) from e
            raise

    async def finish(self, operation: str) -> None:
        """Commit when this store owns the transaction."""
        if self.auto_commit:
            with self.translate_errors(operation):
                await self.session.commit()

    async def abort(self) -> None:
        if self.auto_commit:
            await self.session.rollback()

    async def flush(self, instances: Iterable[Any], operation: str) -> None:
        """Add and flush without committing; conflicts surface as ConflictError."""
        with self.translate_errors(operation):
            self.session.add_all(list(instances))
            await self.session.flush()

    async def execute_write(self, stmt, operation: str, execution_options: Optional[dict] = None) -> list:
        """Run a DML ... RETURNING statement, commit if owned and return its rows."""
        try:
            with self.translate_errors(operation):
                result = await self.session.execute(stmt, execution_options=execution_options or {})
                rows = list(result.all())
            await self.finish(operation)
        except Exception:
            await self.abort()
            raise
        return rows

    # ========================================================================
    # Reads
    # ========================================================================

    async def find(
        self,
        filter: Filter = None,
        *,
        order_by: Optional[Sequence[str]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        with_deleted: bool = False
    ) -> List[ModelT]:
        tenant_id = self.require_tenant_id("find")
        stmt = select(self.model).where(
            self.scope.where(tenant_id, filter, with_deleted=with_deleted)
        )
        stmt = stmt.order_by(*self.scope.order_by(order_by))
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset is not None:
            stmt = stmt.offset(offset)

        with self.translate_errors("find"):
            result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def find_one(
        self,
        filter: Filter = None,
        *,
        order_by: Optional[Sequence[str]] = None,
        with_deleted: bool = False
    ) -> Optional[ModelT]:
        rows = await self.find(filter, order_by=order_by, limit=1, with_deleted=with_deleted)
        return rows[0] if rows else None

    async def find_one_by_id(self, record_id: Any, *, with_deleted: bool = False) -> Optional[ModelT]:
        return await self.find_one({self.columns.primary_key: record_id}, with_deleted=with_deleted)

    async def find_one_or_fail(self, filter: Filter = None, *, with_deleted: bool = False) -> ModelT:
        record = await self.find_one(filter, with_deleted=with_deleted)
        if record is None:
            raise EntityNotFoundError(
                f"{self.columns.model_name} not found in tenant context",
                context={
                    "model": self.columns.model_name,
                    "tenant_id": self.tenant_context.current_tenant_id(),
                    "criteria": filter,
                }
            )
        return record

    async def count(self, filter: Filter = None, *, with_deleted: bool = False) -> int:
        tenant_id = self.require_tenant_id("count")
        with self.translate_errors("count"):
            result = await self.session.execute(
                self.scope.count(tenant_id, filter, with_deleted=with_deleted)
            )
        return int(result.scalar() or 0)

    async def exists(self, filter: Filter = None, *, with_deleted: bool = False) -> bool:
        tenant_id = self.require_tenant_id("exists")
        stmt = select(
            sa_exists().where(self.scope.where(tenant_id, filter, with_deleted=with_deleted))
        )
        with self.translate_errors("exists"):
            result = await self.session.execute(stmt)
        return bool(result.scalar())

    async def find_and_count(
        self,
        filter: Filter = None,
        *,
        order_by: Optional[Sequence[str]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        with_deleted: bool = False
    ) -> Tuple[List[ModelT], int]:
        rows = await self.find(
            filter, order_by=order_by, limit=limit, offset=offset, with_deleted=with_deleted
        )
        total = await self.count(filter, with_deleted=with_deleted)
        return rows, total

    # ========================================================================
    # Writes
    # ========================================================================

    def create(self, partial: Optional[Mapping[str, Any]] = None, **fields: Any) -> ModelT:
        """New, unsaved record with tenant_id forced from context."""
        tenant_id = self.require_tenant_id("create")
        values = dict(partial or {})
        values.update(fields)
        values = self.scope.scrub_tenant(tenant_id, values)
        values[TENANT_FIELD] = tenant_id
        return self.model(**values)

    def stamp(self, record: Any, tenant_id: str) -> Any:
        if isinstance(record, Mapping):
            return self.create(record)
        if not isinstance(record, self.model):
            raise ConfigurationError(
                f"Cannot save {type(record).__name__} through a {self.columns.model_name} store",
                context={"model": self.columns.model_name, "record_type": type(record).__name__}
            )
        current = getattr(record, TENANT_FIELD, None)
        self.scope.scrub_tenant(tenant_id, {TENANT_FIELD: current})
        setattr(record, TENANT_FIELD, tenant_id)
        return record

    async def save(self, records: Union[Any, Sequence[Any]]):
        """
        Persist one record or a list of records (instances or mappings).

        The tenant is forced onto every record; a list is flushed in one
        unit of work so inserts go out as a multi-row statement.
        """
        tenant_id = self.require_tenant_id("save")
        many = isinstance(records, (list, tuple))
        instances = [self.stamp(r, tenant_id) for r in (records if many else [records])]

        try:
            await self.flush(instances, "save")
            await self.finish("save")
        except Exception:
            await self.abort()
            raise

        logger.debug(f"Saved {len(instances)} {self.columns.model_name} row(s) for tenant {tenant_id}")
        return instances if many else instances[0]

    async def save_many(self, records: Sequence[Any]) -> List[ModelT]:
        return await self.save(list(records))

    def _criteria_filter(self, criteria: Criteria) -> Filter:
        """Primary key value(s) or filter mapping(s) -> filter."""
        if isinstance(criteria, Mapping):
            return criteria
        if isinstance(criteria, (list, tuple)):
            if criteria and all(isinstance(c, Mapping) for c in criteria):
                return list(criteria)
            return {self.columns.primary_key: list(criteria)}
        return {self.columns.primary_key: criteria}

    def _patch_values(self, tenant_id: str, patch: Mapping[str, Any]) -> dict:
        values = self.scope.scrub_tenant(tenant_id, patch)
        return {self.columns.attribute(key): value for key, value in values.items()}

    async def update(self, criteria: Criteria, patch: Mapping[str, Any]) -> int:
        """Apply ``patch`` to matching rows of the active tenant; returns rows affected."""
        tenant_id = self.require_tenant_id("update")
        where = self.scope.where(tenant_id, self._criteria_filter(criteria))
        return await self._update(tenant_id, where, patch, "update")

    async def update_where(self, clauses: Iterable[ColumnElement], patch: Mapping[str, Any]) -> int:
        """Like update() but with raw SQLAlchemy criteria, still tenant-scoped."""
        tenant_id = self.require_tenant_id("update")
        where = self.scope.where(tenant_id, None, extra=list(clauses))
        return await self._update(tenant_id, where, patch, "update")

    async def _update(self, tenant_id: str, where: ColumnElement, patch: Mapping[str, Any], operation: str) -> int:
        values = self._patch_values(tenant_id, patch)
        if not values:
            return 0
        stmt = (
            sa_update(self.model)
            .where(where)
            .values(values)
            .returning(self.columns.attribute(self.columns.primary_key))
            .execution_options(synchronize_session="fetch")
        )
        rows = await self.execute_write(stmt, operation)
        return len(rows)

    async def delete(self, criteria: Criteria) -> int:
        tenant_id = self.require_tenant_id("delete")
        stmt = (
            sa_delete(self.model)
            .where(self.scope.where(tenant_id, self._criteria_filter(criteria)))
            .returning(self.columns.attribute(self.columns.primary_key))
            .execution_options(synchronize_session="fetch")
        )
        rows = await self.execute_write(stmt, "delete")
        return len(rows)

    async def soft_delete(self, criteria: Criteria) -> int:
        """Stamp deleted_at on matching live rows; requires a deleted_at column."""
        self.columns.resolve("deleted_at")
        tenant_id = self.require_tenant_id("soft_delete")
        where = self.scope.where(
            tenant_id, self._criteria_filter(criteria), with_deleted=False
        )
        return await self._update(tenant_id, where, {"deleted_at": utcnow()}, "soft_delete")

    async def restore(self, criteria: Criteria) -> int:
        deleted_at = self.columns.attribute("deleted_at")
        tenant_id = self.require_tenant_id("restore")
        where = self.scope.where(
            tenant_id, self._criteria_filter(criteria), extra=[deleted_at.isnot(None)]
        )
        return await self._update(tenant_id, where, {"deleted_at": None}, "restore")

    # ========================================================================
    # Query composition
    # ========================================================================

    def scoped_query(self, alias: Optional[str] = None, *, with_deleted: bool = False) -> Select:
        """
        SELECT pre-filtered to the active tenant, for bespoke joins/aggregates.

        Further ``.where()`` calls only narrow the result, so the tenant
        restriction cannot be lost by composition.
        """
        tenant_id = self.require_tenant_id("scoped_query")
        return self.scope.select(tenant_id, alias, with_deleted=with_deleted)

    async def scalars(self, stmt: Select) -> List[Any]:
        """Execute a statement obtained from scoped_query()."""
        with self.translate_errors("query"):
            result = await self.session.execute(stmt)
        return list(result.scalars().all())
