"""Pytest configuration and shared fixtures for db-crud tests"""

import os
import sys
from typing import Any, AsyncGenerator, Awaitable, Callable, Optional

import pytest
from dotenv import load_dotenv
from sqlalchemy import event, text

from db_crud import Database, create_database
from db_crud.adapters import MySQLAdapter, PostgresAdapter, SQLiteAdapter
from db_crud.sql import IdentifierQuoter, StatementBuilder

# Load environment variables
load_dotenv()

# Fix for Windows: asyncpg requires SelectorEventLoop on Windows
if sys.platform == "win32":
    import asyncio

    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())  # type: ignore[attr-defined]


ALLOWED_TABLES = [
    "users",
    "orders",
    "roles",
    "role_user",
    "audit_logs",
    "left_items",
    "right_items",
]

SQLITE_SCHEMA = [
    """
    CREATE TABLE users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        email TEXT UNIQUE,
        age INTEGER,
        score REAL,
        status TEXT,
        login_count INTEGER DEFAULT 0,
        balance INTEGER DEFAULT 0,
        created_at TIMESTAMP,
        updated_at TIMESTAMP,
        deleted_at TIMESTAMP
    )
    """,
    "CREATE INDEX ix_users_status ON users (status)",
    """
    CREATE TABLE orders (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER,
        total REAL,
        created_at TIMESTAMP,
        updated_at TIMESTAMP
    )
    """,
    """
    CREATE TABLE roles (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT,
        created_at TIMESTAMP,
        updated_at TIMESTAMP
    )
    """,
    "CREATE TABLE role_user (users_id INTEGER, roles_id INTEGER)",
    """
    CREATE TABLE audit_logs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        action TEXT,
        table_name TEXT,
        data TEXT,
        user_id INTEGER,
        timestamp TIMESTAMP,
        created_at TIMESTAMP,
        updated_at TIMESTAMP
    )
    """,
    "CREATE TABLE left_items (id INTEGER PRIMARY KEY, label TEXT)",
    "CREATE TABLE right_items (id INTEGER PRIMARY KEY, left_id INTEGER, note TEXT)",
    "CREATE TABLE secrets (id INTEGER PRIMARY KEY, value TEXT)",
]


class StatementCounter:
    """Records every statement sent to the driver."""

    def __init__(self) -> None:
        self.statements: list[str] = []

    def __call__(self, conn, cursor, statement, parameters, context, executemany):
        self.statements.append(statement)

    @property
    def count(self) -> int:
        return len(self.statements)

    def reset(self) -> None:
        self.statements.clear()


# ==================== Builder Fixtures ====================


@pytest.fixture
def sqlite_builder() -> StatementBuilder:
    """Statement builder for SQLite with the test whitelist"""
    adapter = SQLiteAdapter()
    return StatementBuilder(IdentifierQuoter(ALLOWED_TABLES, adapter.sa_dialect), adapter)


@pytest.fixture
def mysql_builder() -> StatementBuilder:
    """Statement builder for MySQL with the test whitelist"""
    adapter = MySQLAdapter()
    return StatementBuilder(IdentifierQuoter(ALLOWED_TABLES, adapter.sa_dialect), adapter)


@pytest.fixture
def pg_builder() -> StatementBuilder:
    """Statement builder for PostgreSQL with the test whitelist"""
    adapter = PostgresAdapter()
    return StatementBuilder(IdentifierQuoter(ALLOWED_TABLES, adapter.sa_dialect), adapter)


# ==================== SQLite Facade Fixtures ====================


@pytest.fixture
def sqlite_url(tmp_path) -> str:
    """URL of a fresh SQLite database file"""
    return f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"


@pytest.fixture
def statement_counter() -> StatementCounter:
    return StatementCounter()


@pytest.fixture
async def make_db(
    sqlite_url: str, statement_counter: StatementCounter
) -> AsyncGenerator[Callable[..., Awaitable[Database]], None]:
    """Factory for facades over one schema-initialized SQLite file"""
    created: list[Database] = []

    async def factory(**options: Any) -> Database:
        db = create_database(sqlite_url, ALLOWED_TABLES, options)
        await db.initialize()

        if not created:
            async with db.connection.engine.begin() as conn:
                for ddl in SQLITE_SCHEMA:
                    await conn.execute(text(ddl))

        event.listen(
            db.connection.engine.sync_engine, "before_cursor_execute", statement_counter
        )
        created.append(db)
        statement_counter.reset()
        return db

    yield factory

    for db in created:
        await db.dispose()


@pytest.fixture
async def db(make_db) -> Database:
    """Facade with default options (timestamps and hooks on, cache off)"""
    return await make_db()


@pytest.fixture
async def cached_db(make_db) -> Database:
    """Facade with the query cache enabled"""
    return await make_db(enable_query_cache=True)


# ==================== Server URL Fixtures ====================


@pytest.fixture(scope="session")
def pg_database_url() -> Optional[str]:
    """PostgreSQL test database URL from environment"""
    return os.getenv("PG_TEST_DATABASE_URL")


@pytest.fixture(scope="session")
def mysql_database_url() -> Optional[str]:
    """MySQL test database URL from environment"""
    return os.getenv("MYSQL_TEST_DATABASE_URL")


# ==================== Pytest Configuration ====================


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line("markers", "postgresql: PostgreSQL-specific tests")
    config.addinivalue_line("markers", "mysql: MySQL-specific tests")
    config.addinivalue_line(
        "markers", "integration: Integration tests requiring database"
    )
