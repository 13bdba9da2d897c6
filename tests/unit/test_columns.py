import pytest
from core.exceptions import ConfigurationError, UnknownFieldError
from models.outbox import SideEffectOutbox
from tenancy.columns import ColumnResolver, to_snake_case
from tests.support import Task, Untenanted


@pytest.mark.parametrize("name,expected", [
    ("nextAttemptAt", "next_attempt_at"),
    ("tenantId", "tenant_id"),
    ("status", "status"),
    ("created_at", "created_at"),
])
def test_to_snake_case(name, expected):
    assert to_snake_case(name) == expected


def test_resolves_attribute_camel_case_and_column_names():
    resolver = ColumnResolver(SideEffectOutbox)
    
    assert resolver.resolve("next_attempt_at") == "next_attempt_at"
    assert resolver.resolve("nextAttemptAt") == "next_attempt_at"
    # physical column "metadata" is mapped to the extra_metadata attribute
    assert resolver.resolve("metadata") == "extra_metadata"
    assert resolver.column_name("extraMetadata") == "metadata"


def test_table_name_and_primary_key():
    resolver = ColumnResolver(Task)
    
    assert resolver.table_name() == "test_tasks"
    assert resolver.primary_key == "id"
    assert resolver.model_name == "Task"


def test_unknown_field_fails_fast():
    resolver = ColumnResolver(Task)
    
    with pytest.raises(UnknownFieldError) as exc_info:
        resolver.resolve("doesNotExist")
    
    assert exc_info.value.context["field"] == "doesNotExist"
    assert exc_info.value.context["model"] == "Task"
    assert resolver.has_field("doesNotExist") is False


def test_attribute_returns_instrumented_column():
    resolver = ColumnResolver(Task)
    assert resolver.attribute("runAfter") is Task.run_after
    assert resolver.is_tenant_field("tenantId")


def test_model_without_tenant_column_is_rejected():
    with pytest.raises(ConfigurationError):
        ColumnResolver(Untenanted)
