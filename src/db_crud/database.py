"""The ``Database`` facade and its factory."""

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any, Optional, Union

from sqlalchemy.ext.asyncio import AsyncEngine

from db_crud.adapters import create_adapter
from db_crud.core.cache import QueryCache
from db_crud.core.connection import DatabaseConnection
from db_crud.core.executor import QueryExecutor
from db_crud.core.hooks import HookCallback, HookRegistry
from db_crud.core.inspector import MetadataInspector
from db_crud.core.transaction import TransactionBody, TransactionCoordinator
from db_crud.errors import DbCrudError
from db_crud.models.config import DatabaseConfig, DatabaseOptions
from db_crud.models.status import CacheStats, HealthStatus, PoolInfo
from db_crud.operations import (
    AnalyticsOperations,
    RawOperations,
    ReadOperations,
    RelationOperations,
    SchemaOperations,
    WriteOperations,
)
from db_crud.sql.builder import StatementBuilder
from db_crud.sql.identifiers import IdentifierQuoter
from db_crud.sql.statements import Statement
from db_crud.utils.serialization import dumps

logger = logging.getLogger(__name__)

AUDIT_TABLE = "audit_logs"

ConnectionSource = Union[str, DatabaseConfig, DatabaseConnection, AsyncEngine]
OptionsSource = Union[DatabaseOptions, Mapping[str, Any], None]


def _as_connection(source: ConnectionSource) -> DatabaseConnection:
    if isinstance(source, DatabaseConnection):
        return source
    if isinstance(source, AsyncEngine):
        return DatabaseConnection.from_engine(source)
    if isinstance(source, DatabaseConfig):
        return DatabaseConnection(source)
    if isinstance(source, str):
        return DatabaseConnection(DatabaseConfig(url=source))
    raise TypeError(f"Unsupported connection source: {type(source).__name__}")


def _as_options(options: OptionsSource) -> DatabaseOptions:
    if options is None:
        return DatabaseOptions()
    if isinstance(options, DatabaseOptions):
        return options
    return DatabaseOptions.model_validate(dict(options))


class Database(
    RawOperations,
    WriteOperations,
    ReadOperations,
    AnalyticsOperations,
    RelationOperations,
    SchemaOperations,
):
    """
    CRUD facade over one connection pool and one table whitelist.

    Every operation checks its table arguments against the whitelist before
    any statement is built. Cache and hooks belong to this instance, so
    several instances can coexist in one process.

    Example:
        async with create_database("sqlite+aiosqlite:///app.db", ["users"]) as db:
            user_id = await db.insert("users", {"name": "Ann"})
            user = await db.find_one("users", {"id": user_id})
    """

    def __init__(
        self,
        connection: ConnectionSource,
        allowed_tables: Iterable[str],
        options: OptionsSource = None,
    ):
        self.options = _as_options(options)
        self.connection = _as_connection(connection)
        self.adapter = create_adapter(self.connection.config)
        self.quoter = IdentifierQuoter(allowed_tables, self.adapter.sa_dialect)
        self.builder = StatementBuilder(self.quoter, self.adapter)
        self.executor = QueryExecutor(self.connection, self.adapter)
        self.cache = QueryCache(
            expiry_ms=self.options.cache_expiry_ms,
            enabled=self.options.enable_query_cache,
        )
        self.hooks = HookRegistry(enabled=self.options.enable_hooks)
        self.transactions = TransactionCoordinator(
            self.connection,
            self.executor,
            self.builder,
            self.cache,
            use_timestamps=self.options.use_timestamps,
        )
        self.inspector = MetadataInspector(self.connection, self.adapter)

    @property
    def allowed_tables(self) -> frozenset[str]:
        return self.quoter.allowed_tables

    @property
    def dialect(self) -> str:
        return self.connection.dialect

    async def initialize(self) -> None:
        """Create the engine (no-op when it already exists)."""
        await self.connection.initialize()
        logger.info(
            f"Database ready: {self.dialect}, {len(self.allowed_tables)} allowed tables"
        )

    async def dispose(self) -> None:
        """Dispose the engine and drop every cached result."""
        self.cache.invalidate_all()
        await self.connection.dispose()

    async def __aenter__(self) -> "Database":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.dispose()

    # Transactions

    async def transaction(self, body: TransactionBody) -> Any:
        """
        Run ``body(tx)`` in one transaction on a dedicated connection.

        ``tx`` is a ``Transaction`` handle; hooks are not dispatched for
        statements issued through it. Any exception rolls the transaction
        back and is re-raised unchanged.

        Example:
            async def transfer(tx):
                await tx.execute(
                    "UPDATE accounts SET balance = balance - :amount WHERE id = :id",
                    {"amount": 10, "id": 1},
                )
                await tx.execute(
                    "UPDATE accounts SET balance = balance + :amount WHERE id = :id",
                    {"amount": 10, "id": 2},
                )

            await db.transaction(transfer)
        """
        return await self.transactions.run(body)

    # Hooks

    def add_hook(self, phase: str, operation: str, callback: HookCallback) -> None:
        """
        Register ``callback`` for ``phase`` ("before"/"after") of ``operation``.

        A second registration for the same pair replaces the first. A
        before-hook may return a modified ``HookContext``; returning None
        keeps the original.
        """
        self.hooks.register(phase, operation, callback)

    def remove_hook(self, phase: str, operation: str) -> None:
        self.hooks.remove(phase, operation)

    # Cache

    def clear_cache(self, table: Optional[str] = None) -> None:
        """Drop cached results for ``table``, or every cached result."""
        if table is None:
            self.cache.invalidate_all()
            return
        self.quoter.validate_table(table)
        self.cache.invalidate_table(table)

    def get_cache_stats(self) -> CacheStats:
        return self.cache.stats()

    # Operational

    async def health_check(self) -> HealthStatus:
        """Probe the database with ``SELECT 1``; failures are reported, not raised."""
        try:
            await self.executor.execute(Statement.raw("SELECT 1"))
        except (DbCrudError, RuntimeError) as e:
            logger.warning(f"Health check failed: {e}")
            return HealthStatus(status="unhealthy", timestamp=datetime.now(), error=str(e))
        return HealthStatus(status="healthy", timestamp=datetime.now())

    def get_pool_info(self) -> PoolInfo:
        return self.connection.pool_info()

    async def log_audit(
        self,
        action: str,
        table: str,
        data: Any,
        user_id: Any = None,
    ) -> Any:
        """
        Best-effort audit record in ``audit_logs``.

        Does nothing unless ``audit_logs`` is whitelisted. Failures are
        logged as warnings and never raised.

        Returns:
            The audit row id, or None
        """
        if AUDIT_TABLE not in self.allowed_tables:
            return None

        try:
            entry = {
                "action": action,
                "table_name": table,
                "data": dumps(data),
                "user_id": user_id,
                "timestamp": self._now(),
            }
            return await self.insert(AUDIT_TABLE, entry)
        except Exception as e:
            logger.warning(f"Audit logging failed for {action} on {table}: {e}")
            return None


def create_database(
    connection: ConnectionSource,
    allowed_tables: Iterable[str],
    options: OptionsSource = None,
) -> Database:
    """
    Build a ``Database`` facade.

    Args:
        connection: Database URL, ``DatabaseConfig``, ``DatabaseConnection`` or
            an existing ``AsyncEngine`` (left undisposed on exit)
        allowed_tables: Whitelist of table names
        options: ``DatabaseOptions`` or a mapping of its fields

    Returns:
        An uninitialized facade; use ``async with`` or call ``initialize()``
    """
    return Database(connection, allowed_tables, options)
