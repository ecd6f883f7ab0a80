"""Database adapters for dialect-specific SQL."""

from sqlalchemy.engine.url import make_url

from .base import BaseAdapter
from .mysql import MySQLAdapter
from .postgresql import PostgresAdapter
from .sqlite import SQLiteAdapter
from ..models.config import DatabaseConfig

__all__ = [
    "BaseAdapter",
    "MySQLAdapter",
    "PostgresAdapter",
    "SQLiteAdapter",
    "create_adapter",
    "detect_dialect",
]

ADAPTERS: dict[str, type[BaseAdapter]] = {
    "mysql": MySQLAdapter,
    "postgresql": PostgresAdapter,
    "sqlite": SQLiteAdapter,
}


def detect_dialect(url: str) -> str:
    """
    Detect database dialect from connection URL.

    Args:
        url: Database connection URL

    Returns:
        Dialect name (mysql, postgresql, sqlite)

    Raises:
        ValueError: If dialect cannot be detected
    """
    try:
        parsed_url = make_url(url)
        # Extract base dialect (e.g., "mysql" from "mysql+aiomysql")
        return parsed_url.drivername.split("+")[0]
    except Exception as e:
        raise ValueError(f"Failed to detect dialect from URL: {e}")


def create_adapter(config: DatabaseConfig) -> BaseAdapter:
    """
    Factory function to create appropriate database adapter.

    Args:
        config: Database configuration

    Returns:
        Database adapter instance

    Raises:
        ValueError: If database type is not supported
    """
    adapter_class = ADAPTERS.get(config.dialect)

    if adapter_class is None:
        raise ValueError(
            f"Unsupported database dialect: {config.dialect}. "
            f"Supported dialects: {', '.join(ADAPTERS.keys())}"
        )

    return adapter_class()
