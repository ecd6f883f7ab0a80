"""Base adapter abstract class for database-specific SQL fragments."""

from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy.engine import Dialect
from sqlalchemy.ext.asyncio import AsyncConnection

from db_crud.errors import InvalidInput, UnsupportedFeature
from db_crud.models.capabilities import DatabaseCapabilities
from db_crud.models.table import DatabaseStats, TableInfo
from db_crud.sql.identifiers import IdentifierQuoter
from db_crud.sql.statements import ParamCollector

DATE_PARTS = ("YEAR", "MONTH", "DAY")
MAINTENANCE_ACTIONS = ("optimize", "analyze")


class BaseAdapter(ABC):
    """Base adapter defining the dialect-specific interface."""

    name: str = ""

    @property
    @abstractmethod
    def capabilities(self) -> DatabaseCapabilities:
        """Get capabilities for this database type."""
        ...

    @property
    @abstractmethod
    def sa_dialect(self) -> Dialect:
        """SQLAlchemy dialect used for identifier quoting."""
        ...

    @abstractmethod
    def upsert_clause(
        self,
        quoter: IdentifierQuoter,
        conflict_keys: list[str],
        update_columns: list[str],
    ) -> str:
        """
        Conflict-handling suffix appended to an INSERT ... VALUES statement.

        Args:
            quoter: Identifier quoter for the current instance
            conflict_keys: Columns identifying a conflicting row
            update_columns: Columns overwritten from the proposed row

        Returns:
            SQL suffix
        """
        ...

    def returning_clause(self, quoter: IdentifierQuoter, id_field: str) -> str:
        """Suffix that makes an INSERT report its generated id, if needed."""
        return ""

    @abstractmethod
    def truncate_statements(self, quoted_table: str) -> list[str]:
        """Statements emptying a table, run in order on one connection."""
        ...

    @abstractmethod
    def random_function(self) -> str:
        ...

    @abstractmethod
    def date_part(self, part: str, expr: str) -> str:
        """Integer YEAR/MONTH/DAY of a date or timestamp expression."""
        ...

    @abstractmethod
    def date_expr(self, expr: str) -> str:
        """Date portion of a timestamp expression."""
        ...

    @abstractmethod
    def like_predicate(self, expr: str, placeholder: str, case_sensitive: bool) -> str:
        ...

    @abstractmethod
    def group_concat(
        self,
        expr: str,
        separator: str,
        quoter: IdentifierQuoter,
        params: ParamCollector,
    ) -> str:
        """
        Concatenate grouped values.

        Dialects that accept a bound separator register it with ``params``;
        others render it as a validated literal.
        """
        ...

    def json_extract(self, expr: str, path_placeholder: str) -> str:
        raise UnsupportedFeature(f"JSON extraction is not supported on {self.name}")

    def json_contains(self, expr: str, value_placeholder: str) -> str:
        raise UnsupportedFeature(f"JSON containment is not supported on {self.name}")

    def full_text(
        self, columns: list[str], mode: str, placeholder: str
    ) -> tuple[str, str]:
        """
        Relevance expression and match predicate for full-text search.

        Returns:
            (relevance_expr, predicate)
        """
        raise UnsupportedFeature(f"Full-text search is not supported on {self.name}")

    def limit_clause(self, limit: Optional[int], offset: Optional[int]) -> str:
        """Render LIMIT/OFFSET from already-validated integers."""
        parts = []
        if limit:
            parts.append(f"LIMIT {int(limit)}")
        if offset:
            parts.append(f"OFFSET {int(offset)}")
        return " ".join(parts)

    @abstractmethod
    def maintenance_statement(self, action: str, quoted_table: str) -> str:
        ...

    def maintenance_requires_autocommit(self, action: str) -> bool:
        return False

    async def enrich_table_info(
        self, conn: AsyncConnection, table_info: TableInfo
    ) -> TableInfo:
        """Add database-specific table metadata (sizes, engine, comment)."""
        return table_info

    async def get_database_stats(
        self, conn: AsyncConnection, table_count: int
    ) -> DatabaseStats:
        """Aggregate size figures for the current database."""
        return DatabaseStats(table_count=table_count)

    def _check_date_part(self, part: str) -> str:
        normalized = part.upper()
        if normalized not in DATE_PARTS:
            raise InvalidInput(f"Unsupported date part: {part!r}")
        return normalized

    def _check_maintenance(self, action: str) -> str:
        if action not in MAINTENANCE_ACTIONS:
            raise InvalidInput(f"Unsupported maintenance action: {action!r}")
        return action
