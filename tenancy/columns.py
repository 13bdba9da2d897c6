"""
Logical field -> physical column resolution for tenant-scoped models.

A resolver is built once per model from its SQLAlchemy mapper and answers
three questions: which mapped attribute a field name refers to, what the
physical column is called, and which table the model lives in. Field names
may be given as the attribute key (``next_attempt_at``), in camelCase
(``nextAttemptAt``) or as the physical column name (``metadata``).
"""

from typing import Any, Dict, Optional
from sqlalchemy import inspect as sa_inspect
from core.exceptions import ConfigurationError, UnknownFieldError
import re

TENANT_FIELD = "tenant_id"

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def to_snake_case(name: str) -> str:
    """``nextAttemptAt`` -> ``next_attempt_at``; snake_case input is unchanged."""
    return _CAMEL_BOUNDARY.sub("_", name).lower()


class ColumnResolver:
    """
    Resolves field names of one mapped model.
    
    Raises UnknownFieldError at call time for names that match nothing, and
    ConfigurationError at construction for models the tenancy layer cannot
    handle (no tenant_id column, composite primary key).
    """
    
    def __init__(self, model: type):
        self.model = model
        mapper = sa_inspect(model)
        self.table = mapper.local_table
        
        self._columns: Dict[str, str] = {}
        self._by_column_name: Dict[str, str] = {}
        for prop in mapper.column_attrs:
            column = prop.columns[0]
            self._columns[prop.key] = column.name
            self._by_column_name[column.name] = prop.key
        
        if TENANT_FIELD not in self._columns:
            raise ConfigurationError(
                f"{model.__name__} has no {TENANT_FIELD} column and cannot be tenant-scoped",
                context={"model": model.__name__}
            )
        
        if len(mapper.primary_key) != 1:
            raise ConfigurationError(
                f"{model.__name__} must have a single-column primary key",
                context={"model": model.__name__}
            )
        self.primary_key = mapper.get_property_by_column(mapper.primary_key[0]).key
    
    @property
    def model_name(self) -> str:
        return self.model.__name__
    
    def table_name(self) -> str:
        """Physical table identifier, schema-qualified when a schema is set."""
        return self.table.fullname
    
    def find(self, field: str) -> Optional[str]:
        """Attribute key for ``field``, or None."""
        if field in self._columns:
            return field
        snake = to_snake_case(field)
        if snake in self._columns:
            return snake
        return self._by_column_name.get(field)
    
    def has_field(self, field: str) -> bool:
        return self.find(field) is not None
    
    def resolve(self, field: str) -> str:
        """Attribute key for ``field``; fails fast when unknown."""
        key = self.find(field)
        if key is None:
            raise UnknownFieldError(
                f"Unknown field '{field}' on {self.model_name}",
                context={"model": self.model_name, "field": field}
            )
        return key
    
    def column_name(self, field: str) -> str:
        """Physical column name for ``field``."""
        return self._columns[self.resolve(field)]
    
    def attribute(self, field: str, entity: Any = None):
        """Instrumented attribute for ``field`` on the model (or an alias of it)."""
        return getattr(entity if entity is not None else self.model, self.resolve(field))
    
    def is_tenant_field(self, field: str) -> bool:
        return self.find(field) == TENANT_FIELD
