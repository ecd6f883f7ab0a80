"""Transaction coordinator: one dedicated connection, all-or-nothing."""

import inspect
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Mapping, Optional, TypeVar, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncTransaction

from db_crud.core.cache import ANY_TABLE, QueryCache, referenced_tables
from db_crud.core.connection import DatabaseConnection
from db_crud.core.executor import QueryExecutor
from db_crud.errors import ProviderError
from db_crud.models.query import ExecutionResult
from db_crud.sql.builder import Conditions, StatementBuilder
from db_crud.sql.statements import Statement

logger = logging.getLogger(__name__)

T = TypeVar("T")


def stamp_insert(payload: Mapping[str, Any], now: datetime) -> dict[str, Any]:
    """Payload with ``created_at``/``updated_at`` set to ``now``."""
    return {**payload, "created_at": now, "updated_at": now}


def stamp_update(payload: Mapping[str, Any], now: datetime) -> dict[str, Any]:
    return {**payload, "updated_at": now}


class Transaction:
    """
    Handle passed to a transaction body.

    Every statement issued through it runs on the transaction's connection,
    in the order the body awaits them. Hooks are not dispatched here.
    """

    def __init__(
        self,
        conn: AsyncConnection,
        executor: QueryExecutor,
        builder: StatementBuilder,
        use_timestamps: bool = True,
    ):
        self._conn = conn
        self._executor = executor
        self._builder = builder
        self._use_timestamps = use_timestamps
        self.touched_tables: set[str] = set()

    @property
    def connection(self) -> AsyncConnection:
        """The underlying SQLAlchemy connection."""
        return self._conn

    async def _run(self, statement: Statement, writes: bool = True) -> ExecutionResult:
        if writes:
            self.touched_tables.update(statement.tables)
        return await self._executor.execute_on(self._conn, statement)

    async def execute(
        self, sql: str, params: Optional[Mapping[str, Any]] = None
    ) -> ExecutionResult:
        """Run free-form SQL; tables it names are invalidated after commit."""
        tables = referenced_tables(sql, self._builder.quoter.allowed_tables)
        self.touched_tables.update(tables or {ANY_TABLE})
        return await self._executor.execute_on(self._conn, Statement.raw(sql, params))

    async def fetch_all(
        self, sql: str, params: Optional[Mapping[str, Any]] = None
    ) -> list[dict[str, Any]]:
        result = await self._executor.execute_on(self._conn, Statement.raw(sql, params))
        return result.rows

    async def fetch_one(
        self, sql: str, params: Optional[Mapping[str, Any]] = None
    ) -> Optional[dict[str, Any]]:
        rows = await self.fetch_all(sql, params)
        return rows[0] if rows else None

    async def insert(
        self, table: str, data: Mapping[str, Any], id_field: str = "id"
    ) -> Any:
        payload = stamp_insert(data, datetime.now()) if self._use_timestamps else dict(data)
        result = await self._run(self._builder.insert(table, payload, id_field))
        return result.insert_id

    async def update_by_id(
        self, table: str, id: Any, data: Mapping[str, Any], id_field: str = "id"
    ) -> int:
        return await self.update_where(table, {id_field: id}, data)

    async def update_where(
        self, table: str, conditions: Conditions, data: Mapping[str, Any]
    ) -> int:
        payload = stamp_update(data, datetime.now()) if self._use_timestamps else dict(data)
        result = await self._run(self._builder.update(table, payload, conditions))
        return result.affected_rows

    async def delete_by_id(
        self, table: str, id: Any, soft: bool = False, id_field: str = "id"
    ) -> int:
        return await self.delete_where(table, {id_field: id}, soft)

    async def delete_where(
        self, table: str, conditions: Conditions, soft: bool = False
    ) -> int:
        result = await self._run(self._builder.delete(table, conditions, soft))
        return result.affected_rows

    async def find_one(
        self, table: str, conditions: Conditions = None
    ) -> Optional[dict[str, Any]]:
        statement = self._builder.select(table, where=conditions, limit=1)
        return (await self._run(statement, writes=False)).first()

    async def select_where(
        self,
        table: str,
        conditions: Conditions = None,
        order_by: Any = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        statement = self._builder.select(
            table, where=conditions, order_by=order_by, limit=limit, offset=offset
        )
        return (await self._run(statement, writes=False)).rows


TransactionBody = Callable[[Transaction], Union[Awaitable[T], T]]


class TransactionCoordinator:
    """Brackets a caller-supplied body with BEGIN and COMMIT/ROLLBACK."""

    def __init__(
        self,
        connection: DatabaseConnection,
        executor: QueryExecutor,
        builder: StatementBuilder,
        cache: QueryCache,
        use_timestamps: bool = True,
    ):
        self.connection = connection
        self.executor = executor
        self.builder = builder
        self.cache = cache
        self.use_timestamps = use_timestamps

    async def run(self, body: TransactionBody) -> Any:
        """
        Run ``body`` inside one transaction.

        Commits and returns the body's result on success. On any exception
        the transaction is rolled back and the body's exception is re-raised
        unchanged. The connection goes back to the pool exactly once on
        every path. Nested calls are not supported.
        """
        async with self.connection.get_connection() as conn:
            try:
                trans = await conn.begin()
            except SQLAlchemyError as e:
                logger.error(f"Failed to begin transaction: {e}")
                raise ProviderError(str(e)) from e

            tx = Transaction(conn, self.executor, self.builder, self.use_timestamps)
            try:
                result = body(tx)
                if inspect.isawaitable(result):
                    result = await result
            except Exception as e:
                logger.error(f"Transaction error, rolling back: {e}")
                await self._rollback(trans)
                raise

            try:
                await trans.commit()
            except SQLAlchemyError as e:
                logger.error(f"Transaction commit failed: {e}")
                raise ProviderError(str(e)) from e

        self._invalidate(tx.touched_tables)
        return result

    async def _rollback(self, trans: AsyncTransaction) -> None:
        try:
            await trans.rollback()
        except SQLAlchemyError as e:
            # The body's exception is the one the caller needs to see
            logger.error(f"Rollback failed: {e}")

    def _invalidate(self, tables: set[str]) -> None:
        if ANY_TABLE in tables:
            self.cache.invalidate_all()
        else:
            self.cache.invalidate_tables(tables)
