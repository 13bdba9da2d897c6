import pytest
from core.exceptions import ConfigurationError, TenantMismatchError
from tenancy.columns import ColumnResolver
from tenancy.query_scope import MISMATCH_REJECT, QueryScopeBuilder
from tests.support import Task


def render(clause) -> str:
    return str(clause.compile(compile_kwargs={"literal_binds": True}))


@pytest.fixture
def builder():
    return QueryScopeBuilder(ColumnResolver(Task))


def test_where_always_contains_tenant(builder):
    sql = render(builder.where("tenant-a", {"status": "PENDING"}))
    
    assert "test_tasks.tenant_id = 'tenant-a'" in sql
    assert "test_tasks.status = 'PENDING'" in sql


def test_conflicting_tenant_in_filter_is_overridden(builder, caplog):
    sql = render(builder.where("tenant-a", {"tenantId": "tenant-b", "key": "k"}))
    
    assert "tenant-b" not in sql
    assert "test_tasks.tenant_id = 'tenant-a'" in sql
    assert "Overriding caller supplied tenant_id" in caplog.text


def test_reject_policy_raises_on_mismatch():
    builder = QueryScopeBuilder(ColumnResolver(Task), MISMATCH_REJECT)
    
    with pytest.raises(TenantMismatchError):
        builder.where("tenant-a", {"tenant_id": "tenant-b"})
    
    # agreeing tenant_id is accepted
    assert "tenant-a" in render(builder.where("tenant-a", {"tenant_id": "tenant-a"}))


def test_unknown_policy_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        QueryScopeBuilder(ColumnResolver(Task), "ignore")


def test_none_and_list_values(builder):
    sql = render(builder.where("tenant-a", {"deletedAt": None, "status": ["PENDING", "FAILED"]}))
    
    assert "test_tasks.deleted_at IS NULL" in sql
    assert "test_tasks.status IN ('PENDING', 'FAILED')" in sql


def test_list_of_filters_is_or_with_tenant_outside(builder):
    sql = render(builder.where("tenant-a", [{"key": "a"}, {"key": "b"}]))
    
    assert "test_tasks.key = 'a' OR test_tasks.key = 'b'" in sql
    assert sql.count("tenant_id = 'tenant-a'") == 1


def test_live_rows_only_when_requested(builder):
    assert "deleted_at IS NULL" in render(builder.where("tenant-a", None, with_deleted=False))
    assert "deleted_at" not in render(builder.where("tenant-a", None))


def test_order_by(builder):
    clauses = builder.order_by(["-created_at", "id"])
    assert [render(c) for c in clauses] == ["test_tasks.created_at DESC", "test_tasks.id ASC"]


def test_select_is_pre_filtered_and_aliasable(builder):
    sql = render(builder.select("tenant-a", "t"))
    
    assert "FROM test_tasks AS t" in sql
    assert "t.tenant_id = 'tenant-a'" in sql
    assert "t.deleted_at IS NULL" in sql
