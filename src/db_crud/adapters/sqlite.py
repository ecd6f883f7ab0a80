"""SQLite adapter (aiosqlite driver)."""

from typing import Optional

from sqlalchemy import text
from sqlalchemy.dialects import sqlite
from sqlalchemy.engine import Dialect
from sqlalchemy.ext.asyncio import AsyncConnection

from db_crud.adapters.base import BaseAdapter
from db_crud.errors import UnsupportedFeature
from db_crud.models.capabilities import DatabaseCapabilities
from db_crud.models.table import DatabaseStats
from db_crud.sql.identifiers import IdentifierQuoter
from db_crud.sql.statements import ParamCollector

DATE_FORMATS = {"YEAR": "%Y", "MONTH": "%m", "DAY": "%d"}


class SQLiteAdapter(BaseAdapter):
    """SQLite adapter, mostly used for embedded deployments and tests."""

    name = "sqlite"

    def __init__(self) -> None:
        self._dialect = sqlite.dialect()

    @property
    def capabilities(self) -> DatabaseCapabilities:
        return DatabaseCapabilities(
            foreign_keys=True,
            indexes=True,
            transactions=True,
            window_functions=True,  # SQLite 3.25+
            full_outer_join=False,
            full_text_search=False,  # FTS5 needs virtual tables
            json_functions=False,
            returning=False,
            table_statistics=False,
        )

    @property
    def sa_dialect(self) -> Dialect:
        return self._dialect

    def upsert_clause(
        self,
        quoter: IdentifierQuoter,
        conflict_keys: list[str],
        update_columns: list[str],
    ) -> str:
        target = ", ".join(quoter.quote(key, "column") for key in conflict_keys)
        if not update_columns:
            return f"ON CONFLICT ({target}) DO NOTHING"
        assignments = ", ".join(
            f"{quoter.quote(col, 'column')} = excluded.{quoter.quote(col, 'column')}"
            for col in update_columns
        )
        return f"ON CONFLICT ({target}) DO UPDATE SET {assignments}"

    def truncate_statements(self, quoted_table: str) -> list[str]:
        return [f"DELETE FROM {quoted_table}"]

    def random_function(self) -> str:
        return "RANDOM()"

    def date_part(self, part: str, expr: str) -> str:
        fmt = DATE_FORMATS[self._check_date_part(part)]
        return f"CAST(strftime('{fmt}', {expr}) AS INTEGER)"

    def date_expr(self, expr: str) -> str:
        return f"date({expr})"

    def like_predicate(self, expr: str, placeholder: str, case_sensitive: bool) -> str:
        if case_sensitive:
            raise UnsupportedFeature(
                "Case-sensitive LIKE is not supported on sqlite"
            )
        return f"{expr} LIKE {placeholder}"

    def group_concat(
        self,
        expr: str,
        separator: str,
        quoter: IdentifierQuoter,
        params: ParamCollector,
    ) -> str:
        return f"group_concat({expr}, {params.add(separator)})"

    def json_extract(self, expr: str, path_placeholder: str) -> str:
        # JSON1 is compiled into every current SQLite build
        return f"json_extract({expr}, {path_placeholder})"

    def limit_clause(self, limit: Optional[int], offset: Optional[int]) -> str:
        if offset and not limit:
            return f"LIMIT -1 OFFSET {int(offset)}"
        return super().limit_clause(limit, offset)

    def maintenance_statement(self, action: str, quoted_table: str) -> str:
        if self._check_maintenance(action) == "optimize":
            # VACUUM rebuilds the whole database file
            return "VACUUM"
        return f"ANALYZE {quoted_table}"

    def maintenance_requires_autocommit(self, action: str) -> bool:
        return action == "optimize"

    async def get_database_stats(
        self, conn: AsyncConnection, table_count: int
    ) -> DatabaseStats:
        result = await conn.execute(
            text(
                "SELECT page_count * page_size "
                "FROM pragma_page_count(), pragma_page_size()"
            )
        )
        row = result.fetchone()
        return DatabaseStats(
            table_count=table_count,
            total_size_bytes=int(row[0]) if row and row[0] is not None else None,
        )
