"""Pydantic models for configuration, structured inputs and results."""

from .capabilities import DatabaseCapabilities
from .config import DatabaseConfig, DatabaseOptions, PaginationDefaults
from .pagination import CursorPage, FindOrCreateResult, Page, PageInfo
from .query import ExecutionResult
from .specs import AggregateSpec, JoinSpec, JoinType, OrderBy, SortDirection
from .status import CacheStats, HealthStatus, PoolInfo
from .table import ColumnInfo, DatabaseStats, IndexInfo, TableInfo

__all__ = [
    "DatabaseCapabilities",
    "DatabaseConfig",
    "DatabaseOptions",
    "PaginationDefaults",
    "ExecutionResult",
    "Page",
    "PageInfo",
    "CursorPage",
    "FindOrCreateResult",
    "JoinSpec",
    "JoinType",
    "AggregateSpec",
    "OrderBy",
    "SortDirection",
    "CacheStats",
    "HealthStatus",
    "PoolInfo",
    "TableInfo",
    "ColumnInfo",
    "IndexInfo",
    "DatabaseStats",
]
