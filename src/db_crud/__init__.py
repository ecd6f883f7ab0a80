"""db-crud: async CRUD facade with whitelisted tables and parameterized SQL."""

from db_crud.core.hooks import HookContext
from db_crud.core.transaction import Transaction
from db_crud.database import Database, create_database
from db_crud.errors import (
    DangerousStatement,
    DbCrudError,
    ForbiddenTable,
    InconsistentRows,
    InvalidIdentifier,
    InvalidInput,
    NotFound,
    ProviderError,
    UnsupportedFeature,
    UnsupportedJoinType,
    UnsupportedOperator,
)
from db_crud.models import (
    AggregateSpec,
    CursorPage,
    DatabaseConfig,
    DatabaseOptions,
    FindOrCreateResult,
    JoinSpec,
    JoinType,
    OrderBy,
    Page,
    PageInfo,
)
from db_crud.sql.conditions import Filter, Operator, RawClause

__version__ = "0.1.0"

__all__ = [
    "Database",
    "create_database",
    "DatabaseConfig",
    "DatabaseOptions",
    "Transaction",
    "HookContext",
    "Filter",
    "Operator",
    "RawClause",
    "AggregateSpec",
    "JoinSpec",
    "JoinType",
    "OrderBy",
    "Page",
    "PageInfo",
    "CursorPage",
    "FindOrCreateResult",
    "DbCrudError",
    "ForbiddenTable",
    "InvalidIdentifier",
    "InvalidInput",
    "UnsupportedOperator",
    "UnsupportedJoinType",
    "InconsistentRows",
    "DangerousStatement",
    "UnsupportedFeature",
    "ProviderError",
    "NotFound",
]
