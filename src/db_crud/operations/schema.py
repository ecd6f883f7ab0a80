"""Schema introspection and table maintenance."""

import logging
from typing import Any

from db_crud.models.table import ColumnInfo, DatabaseStats, IndexInfo, TableInfo
from db_crud.operations.base import OperationsBase

logger = logging.getLogger(__name__)


class SchemaOperations(OperationsBase):
    """Read-only reflection plus OPTIMIZE/ANALYZE style maintenance."""

    async def get_table_schema(self, table: str) -> list[ColumnInfo]:
        self.quoter.validate_table(table)
        return await self.inspector.get_columns(table)

    async def get_table_indexes(self, table: str) -> list[IndexInfo]:
        self.quoter.validate_table(table)
        return await self.inspector.get_indexes(table)

    async def get_table_info(self, table: str) -> TableInfo:
        """Columns, indexes, exact row count and, where available, sizes."""
        self.quoter.validate_table(table)
        total = await self._scalar(self.builder.count(table), "count")
        return await self.inspector.describe_table(table, row_count=int(total or 0))

    async def list_tables(self) -> list[str]:
        """Whitelisted tables that exist in the database."""
        tables = await self.inspector.list_tables()
        return [table for table in tables if table in self.quoter.allowed_tables]

    async def table_exists(self, table: str) -> bool:
        self.quoter.validate_table(table)
        return await self.inspector.has_table(table)

    async def _maintain(self, table: str, action: str) -> list[dict[str, Any]]:
        self.quoter.validate_table(table)
        statement = self.builder.maintenance(table, action)
        autocommit = self.adapter.maintenance_requires_autocommit(action)
        logger.info(f"Running {action} on {table}")
        result = await self.executor.execute(statement, autocommit=autocommit)
        return result.rows

    async def optimize_table(self, table: str) -> list[dict[str, Any]]:
        """
        Reclaim space and defragment.

        ``OPTIMIZE TABLE`` on MySQL, ``VACUUM`` on PostgreSQL and SQLite
        (SQLite vacuums the whole database file).
        """
        return await self._maintain(table, "optimize")

    async def analyze_table(self, table: str) -> list[dict[str, Any]]:
        """Refresh planner statistics for the table."""
        return await self._maintain(table, "analyze")

    async def get_database_stats(self) -> DatabaseStats:
        return await self.inspector.get_database_stats()
