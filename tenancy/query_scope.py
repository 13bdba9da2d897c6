"""
Tenant-scoped query composition.

QueryScopeBuilder turns caller filters into SQLAlchemy criteria with the
tenant condition always ANDed in, and hands out SELECT statements that are
already restricted to one tenant so callers can add joins and aggregates on
top without ever dropping the tenant filter.
"""

from typing import Any, Iterable, List, Mapping, Optional, Sequence, Union
from sqlalchemy import and_, func, or_, select, true
from sqlalchemy.orm import aliased
from sqlalchemy.sql import ColumnElement, Select
from core.exceptions import ConfigurationError, TenantMismatchError
from tenancy.columns import ColumnResolver, TENANT_FIELD
import logging

logger = logging.getLogger(__name__)

Filter = Union[Mapping[str, Any], Sequence[Mapping[str, Any]], None]

MISMATCH_OVERRIDE = "override"
MISMATCH_REJECT = "reject"


class QueryScopeBuilder:
    """
    Builds tenant-restricted criteria and statements for one model.

    Filter semantics:
    - a mapping is an AND of conditions: ``None`` means IS NULL, a
      list/tuple/set means IN, anything else means equality
    - a list of mappings is an OR of such ANDs, each branch tenant-scoped
    - a ``tenant_id`` key that disagrees with the active tenant is dropped
      with a warning ("override") or raises TenantMismatchError ("reject")
    """

    def __init__(self, resolver: ColumnResolver, mismatch_policy: str = MISMATCH_OVERRIDE):
        if mismatch_policy not in (MISMATCH_OVERRIDE, MISMATCH_REJECT):
            raise ConfigurationError(
                f"Unknown tenant mismatch policy '{mismatch_policy}'",
                context={"model": resolver.model_name, "policy": mismatch_policy}
            )
        self.resolver = resolver
        self.mismatch_policy = mismatch_policy

    # ------------------------------------------------------------------
    # Filter normalisation
    # ------------------------------------------------------------------

    def scrub_tenant(self, tenant_id: str, values: Mapping[str, Any]) -> dict:
        """
        Copy of ``values`` keyed by attribute name, with any tenant_id entry
        removed after applying the mismatch policy.
        """
        scrubbed = {}
        for field, value in values.items():
            key = self.resolver.resolve(field)
            if key != TENANT_FIELD:
                scrubbed[key] = value
                continue
            if value is not None and value != tenant_id:
                if self.mismatch_policy == MISMATCH_REJECT:
                    raise TenantMismatchError(
                        f"Caller supplied tenant_id does not match the active tenant on {self.resolver.model_name}",
                        context={
                            "model": self.resolver.model_name,
                            "active_tenant": tenant_id,
                            "requested_tenant": value,
                        }
                    )
                logger.warning(
                    f"Overriding caller supplied tenant_id={value!r} with active tenant "
                    f"{tenant_id!r} on {self.resolver.model_name}"
                )
        return scrubbed

    def _branches(self, tenant_id: str, filter: Filter) -> List[dict]:
        if filter is None:
            return [{}]
        if isinstance(filter, Mapping):
            return [self.scrub_tenant(tenant_id, filter)]
        branches = [self.scrub_tenant(tenant_id, branch) for branch in filter]
        return branches or [{}]

    def _condition(self, entity: Any, key: str, value: Any) -> ColumnElement:
        attr = self.resolver.attribute(key, entity)
        if value is None:
            return attr.is_(None)
        if isinstance(value, (list, tuple, set, frozenset)):
            return attr.in_(list(value))
        return attr == value

    # ------------------------------------------------------------------
    # Criteria
    # ------------------------------------------------------------------

    def tenant_clause(self, tenant_id: str, entity: Any = None) -> ColumnElement:
        return self.resolver.attribute(TENANT_FIELD, entity) == tenant_id

    def not_deleted_clause(self, entity: Any = None) -> ColumnElement:
        if not self.resolver.has_field("deleted_at"):
            return true()
        return self.resolver.attribute("deleted_at", entity).is_(None)

    def where(
        self,
        tenant_id: str,
        filter: Filter = None,
        *,
        entity: Any = None,
        with_deleted: bool = True,
        extra: Iterable[ColumnElement] = ()
    ) -> ColumnElement:
        """Full WHERE criterion: tenant AND (branch OR branch ...) AND extra."""
        branches = []
        for branch in self._branches(tenant_id, filter):
            conditions = [self._condition(entity, key, value) for key, value in branch.items()]
            branches.append(and_(true(), *conditions))

        clauses = [self.tenant_clause(tenant_id, entity), or_(*branches)]
        if not with_deleted:
            clauses.append(self.not_deleted_clause(entity))
        clauses.extend(extra)
        return and_(*clauses)

    def order_by(self, order_by: Optional[Sequence[str]], entity: Any = None) -> list:
        """``["-created_at", "id"]`` -> [created_at DESC, id ASC]."""
        clauses = []
        for field in order_by or ():
            descending = field.startswith("-")
            attr = self.resolver.attribute(field.lstrip("-"), entity)
            clauses.append(attr.desc() if descending else attr.asc())
        return clauses

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def select(self, tenant_id: str, alias: Optional[str] = None, *, with_deleted: bool = False) -> Select:
        """SELECT of the model (optionally aliased) pre-filtered to the tenant."""
        entity = aliased(self.resolver.model, name=alias) if alias else self.resolver.model
        stmt = select(entity).where(self.tenant_clause(tenant_id, entity))
        if not with_deleted and self.resolver.has_field("deleted_at"):
            stmt = stmt.where(self.not_deleted_clause(entity))
        return stmt

    def count(self, tenant_id: str, filter: Filter = None, *, with_deleted: bool = False) -> Select:
        return select(func.count()).select_from(self.resolver.model).where(
            self.where(tenant_id, filter, with_deleted=with_deleted)
        )
