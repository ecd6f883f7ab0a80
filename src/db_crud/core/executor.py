"""Statement execution: timing, slow-statement warnings, result normalization."""

import logging
import re
import time
from typing import TYPE_CHECKING, Iterable

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection

from db_crud.core.connection import DatabaseConnection
from db_crud.errors import DangerousStatement, ProviderError
from db_crud.models.query import ExecutionResult
from db_crud.sql.statements import Statement

if TYPE_CHECKING:
    from db_crud.adapters.base import BaseAdapter

logger = logging.getLogger(__name__)


class QueryExecutor:
    """Runs statements against the pool and normalizes their results."""

    # Statements slower than this are logged at WARNING
    SLOW_QUERY_THRESHOLD_MS = 500

    # Keywords rejected by the guarded raw entry point
    DANGEROUS_KEYWORDS = ("DROP", "TRUNCATE", "DELETE", "ALTER", "CREATE")

    def __init__(self, connection: DatabaseConnection, adapter: "BaseAdapter"):
        """
        Initialize query executor.

        Args:
            connection: Database connection manager
            adapter: Database-specific adapter
        """
        self.connection = connection
        self.adapter = adapter

    async def execute(
        self, statement: Statement, autocommit: bool = False
    ) -> ExecutionResult:
        """
        Execute one statement on a pooled connection and commit it.

        Args:
            statement: Statement to run
            autocommit: Run outside a transaction block (VACUUM and friends)

        Returns:
            Normalized result

        Raises:
            ProviderError: If the driver or pool fails
        """
        async with self.connection.get_connection(autocommit=autocommit) as conn:
            result = await self.execute_on(conn, statement)
            await self._commit(conn)
            return result

    async def execute_many(
        self, statements: Iterable[Statement], autocommit: bool = False
    ) -> list[ExecutionResult]:
        """Execute statements in order on one connection, then commit."""
        async with self.connection.get_connection(autocommit=autocommit) as conn:
            results = []
            for statement in statements:
                results.append(await self.execute_on(conn, statement))
            await self._commit(conn)
            return results

    async def execute_on(
        self, conn: AsyncConnection, statement: Statement
    ) -> ExecutionResult:
        """
        Execute on a connection the caller already holds; no commit.

        Raises:
            ProviderError: If the driver fails
        """
        start_time = time.time()

        try:
            result = await conn.execute(text(statement.text), statement.params)

            rows = []
            columns: list[str] = []
            if result.returns_rows:
                columns = list(result.keys())
                rows = [dict(zip(columns, row)) for row in result.fetchall()]

            insert_id = None
            if statement.returns_id:
                insert_id = next(iter(rows[0].values())) if rows else None
            elif not result.returns_rows and not self.adapter.capabilities.returning:
                insert_id = result.lastrowid or None

            affected_rows = result.rowcount if result.rowcount >= 0 else len(rows)
        except SQLAlchemyError as e:
            logger.error(f"Query error: {e} -- {statement.text}")
            raise ProviderError(str(e), statement.text) from e

        execution_time = (time.time() - start_time) * 1000  # Convert to ms
        if execution_time > self.SLOW_QUERY_THRESHOLD_MS:
            logger.warning(f"Slow query ({execution_time:.0f}ms): {statement.text}")

        return ExecutionResult(
            query=statement.text,
            rows=rows,
            columns=columns,
            affected_rows=affected_rows,
            insert_id=insert_id,
            execution_time_ms=execution_time,
        )

    async def _commit(self, conn: AsyncConnection) -> None:
        if not conn.in_transaction():
            return
        try:
            await conn.commit()
        except SQLAlchemyError as e:
            logger.error(f"Commit failed: {e}")
            raise ProviderError(str(e)) from e

    def validate_raw(self, query: str) -> None:
        """
        Coarse guard for caller-supplied SQL.

        Args:
            query: SQL statement to check

        Raises:
            DangerousStatement: If a blocked keyword appears as a whole word
        """
        normalized = query.upper()

        # Remove comments; MySQL executable comments (/*! ... */) are kept
        normalized = re.sub(r"--[^\n]*", "", normalized)
        normalized = re.sub(r"/\*(?!!).*?\*/", "", normalized, flags=re.DOTALL)

        for keyword in self.DANGEROUS_KEYWORDS:
            # Use word boundaries to avoid false positives (e.g., "created_at")
            if re.search(rf"\b{keyword}\b", normalized):
                raise DangerousStatement(keyword)
