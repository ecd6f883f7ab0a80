"""Shared plumbing for the facade's operation families."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Mapping, Optional

from db_crud.core.cache import ANY_TABLE, QueryCache
from db_crud.core.connection import DatabaseConnection
from db_crud.core.executor import QueryExecutor
from db_crud.core.hooks import HookContext, HookRegistry
from db_crud.core.inspector import MetadataInspector
from db_crud.core.transaction import TransactionCoordinator, stamp_insert, stamp_update
from db_crud.models.config import DatabaseOptions
from db_crud.models.query import ExecutionResult
from db_crud.sql.builder import StatementBuilder
from db_crud.sql.identifiers import IdentifierQuoter
from db_crud.sql.statements import Statement
from db_crud.utils.serialization import cache_key

if TYPE_CHECKING:
    from db_crud.adapters.base import BaseAdapter

logger = logging.getLogger(__name__)


def to_number(value: Any) -> Any:
    """Driver numerics as plain Python numbers (Decimal becomes float)."""
    if isinstance(value, Decimal):
        return float(value)
    return value


def column_values(rows: list[dict[str, Any]]) -> list[Any]:
    """Values of single-column rows; drivers key them by the bare column name."""
    return [next(iter(row.values())) for row in rows]


class OperationsBase:
    """Attributes and helpers every operation family relies on."""

    options: DatabaseOptions
    connection: DatabaseConnection
    adapter: "BaseAdapter"
    quoter: IdentifierQuoter
    builder: StatementBuilder
    executor: QueryExecutor
    cache: QueryCache
    hooks: HookRegistry
    transactions: TransactionCoordinator
    inspector: MetadataInspector

    def _now(self) -> datetime:
        return datetime.now()

    def _stamp_insert(self, data: Mapping[str, Any]) -> dict[str, Any]:
        if not self.options.use_timestamps:
            return dict(data)
        return stamp_insert(data, self._now())

    def _stamp_update(self, data: Mapping[str, Any]) -> dict[str, Any]:
        if not self.options.use_timestamps:
            return dict(data)
        return stamp_update(data, self._now())

    async def _fetch(
        self, statement: Statement, use_cache: bool = False
    ) -> list[dict[str, Any]]:
        """Rows of a read, served from the cache when the caller opts in."""
        key = None
        if use_cache and self.cache.enabled:
            key = cache_key(statement.text, statement.params)
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug(f"Cache hit: {statement.text[:80]}")
                return cached

        result = await self.executor.execute(statement)

        if key is not None:
            self.cache.put(key, result.rows, statement.tables)
        return result.rows

    async def _fetch_one(
        self, statement: Statement, use_cache: bool = False
    ) -> Optional[dict[str, Any]]:
        rows = await self._fetch(statement, use_cache)
        return rows[0] if rows else None

    async def _scalar(
        self, statement: Statement, column: str, use_cache: bool = False
    ) -> Any:
        row = await self._fetch_one(statement, use_cache)
        return row.get(column) if row else None

    async def _write(
        self, statement: Statement, autocommit: bool = False
    ) -> ExecutionResult:
        """Execute a mutating statement and drop cache entries for its tables."""
        result = await self.executor.execute(statement, autocommit=autocommit)
        self._invalidate(statement.tables)
        return result

    def _invalidate(self, tables: Any) -> None:
        tables = set(tables)
        if not tables or ANY_TABLE in tables:
            self.cache.invalidate_all()
        else:
            self.cache.invalidate_tables(tables)

    async def _before(self, operation: str, table: str, **fields: Any) -> HookContext:
        context = HookContext(table=table, operation=operation, **fields)
        return await self.hooks.run("before", context)

    async def _after(self, context: HookContext, **fields: Any) -> None:
        await self.hooks.run("after", context.model_copy(update=fields))
