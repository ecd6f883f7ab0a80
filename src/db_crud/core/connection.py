"""Database connection management with SQLAlchemy."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from db_crud.errors import ProviderError
from db_crud.models.config import DatabaseConfig
from db_crud.models.status import PoolInfo

logger = logging.getLogger(__name__)


class DatabaseConnection:
    """Manages SQLAlchemy async engine and connection pool."""

    def __init__(self, config: DatabaseConfig):
        """
        Initialize database connection.

        Args:
            config: Database configuration with connection URL and pool settings
        """
        self.config = config
        self.engine: Optional[AsyncEngine] = None
        self._dialect = config.dialect
        self._driver = config.driver
        self._owns_engine = True

    @classmethod
    def from_engine(cls, engine: AsyncEngine) -> "DatabaseConnection":
        """
        Wrap an engine created elsewhere.

        The caller keeps ownership: ``dispose()`` leaves the engine alone.
        """
        config = DatabaseConfig(url=engine.url.render_as_string(hide_password=False))
        connection = cls(config)
        connection.engine = engine
        connection._owns_engine = False
        return connection

    async def initialize(self) -> None:
        """Create the async engine."""
        if self.engine is not None:
            return  # Already initialized

        connect_args = {}
        if self._dialect == "postgresql" and self._driver == "asyncpg":
            url_obj = make_url(self.config.url)

            # asyncpg expects 'ssl' in connect_args, not in the URL
            if "sslmode" in url_obj.query:
                sslmode = url_obj.query["sslmode"]
                if sslmode in ["require", "prefer", "allow"]:
                    connect_args["ssl"] = sslmode
                elif sslmode == "disable":
                    connect_args["ssl"] = False
                url_obj = url_obj.difference_update_query(["sslmode"])
                self.config.url = url_obj.render_as_string(hide_password=False)

        engine_args = {
            "echo": self.config.echo_sql,
            "connect_args": connect_args,
        }
        # SQLite picks its own pool class; queue pool arguments do not apply
        if self._dialect != "sqlite":
            engine_args.update(
                pool_size=self.config.pool_size,
                max_overflow=self.config.max_overflow,
                pool_timeout=self.config.pool_timeout,
                pool_pre_ping=True,  # Verify connections before using
            )

        self.engine = create_async_engine(self.config.url, **engine_args)
        logger.info(f"Initialized {self._dialect}+{self._driver} engine")

    async def dispose(self) -> None:
        """Dispose of the connection pool and cleanup resources."""
        if self.engine is not None:
            if self._owns_engine:
                await self.engine.dispose()
            self.engine = None

    @asynccontextmanager
    async def get_connection(
        self, autocommit: bool = False
    ) -> AsyncGenerator[AsyncConnection, None]:
        """
        Get a connection from the pool as an async context manager.

        The connection is returned to the pool when the block exits, on
        every path. Session setup (read-only, timeout) is committed before
        the connection is yielded, so the caller starts with no open
        transaction.

        Args:
            autocommit: Run statements outside a transaction block

        Yields:
            AsyncConnection for executing statements

        Raises:
            RuntimeError: If engine not initialized
            ProviderError: If no connection can be acquired or set up
        """
        if self.engine is None:
            raise RuntimeError(
                "DatabaseConnection not initialized. Call initialize() first."
            )

        try:
            conn = await self.engine.connect()
        except SQLAlchemyError as e:
            logger.error(f"Failed to acquire connection: {e}")
            raise ProviderError(str(e)) from e

        try:
            await self._prepare(conn, autocommit)
            yield conn
        finally:
            await conn.close()

    async def _prepare(self, conn: AsyncConnection, autocommit: bool) -> None:
        try:
            if autocommit:
                await conn.execution_options(isolation_level="AUTOCOMMIT")

            if self.config.read_only:
                await self._set_readonly(conn)

            if self.config.statement_timeout:
                await self._set_timeout(conn, self.config.statement_timeout)

            if conn.in_transaction():
                await conn.commit()
        except SQLAlchemyError as e:
            logger.error(f"Connection setup failed: {e}")
            raise ProviderError(str(e)) from e

    async def _set_readonly(self, conn: AsyncConnection) -> None:
        """Set connection to read-only mode based on database dialect."""
        if self._dialect == "postgresql":
            await conn.execute(
                text("SET SESSION CHARACTERISTICS AS TRANSACTION READ ONLY")
            )
        elif self._dialect == "mysql":
            await conn.execute(text("SET SESSION TRANSACTION READ ONLY"))
        elif self._dialect == "sqlite":
            await conn.execute(text("PRAGMA query_only = ON"))

    async def _set_timeout(self, conn: AsyncConnection, timeout: int) -> None:
        """Set statement timeout based on database dialect."""
        timeout_ms = timeout * 1000

        if self._dialect == "postgresql":
            await conn.execute(text(f"SET statement_timeout = {timeout_ms}"))
        elif self._dialect == "mysql":
            await conn.execute(text(f"SET SESSION max_execution_time = {timeout_ms}"))
        # SQLite has no server-side statement timeout

    @property
    def dialect(self) -> str:
        """Get database dialect name."""
        return self._dialect

    @property
    def driver(self) -> str:
        """Get database driver name."""
        return self._driver

    @property
    def is_initialized(self) -> bool:
        """Check if engine is initialized."""
        return self.engine is not None

    def pool_info(self) -> PoolInfo:
        """Counters of the engine's pool; zero where the pool does not track them."""
        if self.engine is None:
            raise RuntimeError(
                "DatabaseConnection not initialized. Call initialize() first."
            )

        pool = self.engine.pool
        info = PoolInfo(pool_class=type(pool).__name__)
        for field_name, method_name in (
            ("size", "size"),
            ("checked_in", "checkedin"),
            ("checked_out", "checkedout"),
            ("overflow", "overflow"),
        ):
            method = getattr(pool, method_name, None)
            if callable(method):
                setattr(info, field_name, int(method()))
        return info

    async def __aenter__(self) -> "DatabaseConnection":
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.dispose()
