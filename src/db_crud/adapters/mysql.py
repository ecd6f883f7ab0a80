"""MySQL adapter."""

from typing import Optional

from sqlalchemy import text
from sqlalchemy.dialects import mysql
from sqlalchemy.engine import Dialect
from sqlalchemy.ext.asyncio import AsyncConnection

from db_crud.adapters.base import BaseAdapter
from db_crud.errors import InvalidInput
from db_crud.models.capabilities import DatabaseCapabilities
from db_crud.models.table import DatabaseStats, TableInfo
from db_crud.sql.identifiers import IdentifierQuoter
from db_crud.sql.statements import ParamCollector

# MySQL requires a LIMIT whenever OFFSET is given; this is its documented "no limit"
MAX_LIMIT = 18446744073709551615

FULL_TEXT_MODES = {
    "NATURAL LANGUAGE": "IN NATURAL LANGUAGE MODE",
    "BOOLEAN": "IN BOOLEAN MODE",
    "QUERY EXPANSION": "WITH QUERY EXPANSION",
}


class MySQLAdapter(BaseAdapter):
    """MySQL adapter."""

    name = "mysql"

    def __init__(self) -> None:
        self._dialect = mysql.dialect()

    @property
    def capabilities(self) -> DatabaseCapabilities:
        return DatabaseCapabilities(
            foreign_keys=True,
            indexes=True,
            transactions=True,
            window_functions=True,  # MySQL 8.0+
            full_outer_join=False,
            full_text_search=True,
            json_functions=True,
            returning=False,
            table_statistics=True,
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
        if not update_columns:
            # Nothing to overwrite: make the conflict a no-op
            key = quoter.quote(conflict_keys[0], "column")
            return f"ON DUPLICATE KEY UPDATE {key} = {key}"
        assignments = ", ".join(
            f"{quoter.quote(col, 'column')} = VALUES({quoter.quote(col, 'column')})"
            for col in update_columns
        )
        return f"ON DUPLICATE KEY UPDATE {assignments}"

    def truncate_statements(self, quoted_table: str) -> list[str]:
        return [
            "SET FOREIGN_KEY_CHECKS = 0",
            f"TRUNCATE TABLE {quoted_table}",
            "SET FOREIGN_KEY_CHECKS = 1",
        ]

    def random_function(self) -> str:
        return "RAND()"

    def date_part(self, part: str, expr: str) -> str:
        return f"{self._check_date_part(part)}({expr})"

    def date_expr(self, expr: str) -> str:
        return f"DATE({expr})"

    def like_predicate(self, expr: str, placeholder: str, case_sensitive: bool) -> str:
        operator = "LIKE BINARY" if case_sensitive else "LIKE"
        return f"{expr} {operator} {placeholder}"

    def group_concat(
        self,
        expr: str,
        separator: str,
        quoter: IdentifierQuoter,
        params: ParamCollector,
    ) -> str:
        # SEPARATOR only takes a string literal
        return f"GROUP_CONCAT({expr} SEPARATOR {quoter.separator_literal(separator)})"

    def json_extract(self, expr: str, path_placeholder: str) -> str:
        return f"JSON_EXTRACT({expr}, {path_placeholder})"

    def json_contains(self, expr: str, value_placeholder: str) -> str:
        return f"JSON_CONTAINS({expr}, {value_placeholder})"

    def full_text(
        self, columns: list[str], mode: str, placeholder: str
    ) -> tuple[str, str]:
        modifier = FULL_TEXT_MODES.get(" ".join(mode.split()).upper())
        if modifier is None:
            raise InvalidInput(
                f"Unsupported full-text mode: {mode!r}. "
                f"Supported: {', '.join(FULL_TEXT_MODES)}"
            )
        match = f"MATCH({', '.join(columns)}) AGAINST({placeholder} {modifier})"
        return match, match

    def limit_clause(self, limit: Optional[int], offset: Optional[int]) -> str:
        if offset and not limit:
            limit = MAX_LIMIT
        return super().limit_clause(limit, offset)

    def maintenance_statement(self, action: str, quoted_table: str) -> str:
        return f"{self._check_maintenance(action).upper()} TABLE {quoted_table}"

    async def enrich_table_info(
        self, conn: AsyncConnection, table_info: TableInfo
    ) -> TableInfo:
        """Add MySQL-specific table metadata."""
        query = text("""
            SELECT
                engine,
                table_rows,
                data_length,
                index_length,
                table_comment
            FROM information_schema.TABLES
            WHERE table_schema = DATABASE()
              AND table_name = :table_name
        """)

        result = await conn.execute(query, {"table_name": table_info.name})
        row = result.fetchone()

        if row:
            if table_info.row_count is None and row[1] is not None:
                table_info.row_count = int(row[1])
            table_info.size_bytes = int(row[2]) if row[2] is not None else None
            table_info.index_size_bytes = int(row[3]) if row[3] is not None else None
            table_info.comment = row[4] if row[4] else None

            # MySQL-specific: storage engine
            table_info.extra_info["engine"] = row[0]

        return table_info

    async def get_database_stats(
        self, conn: AsyncConnection, table_count: int
    ) -> DatabaseStats:
        query = text("""
            SELECT
                SUM(table_rows) as total_rows,
                SUM(data_length + index_length) as total_size
            FROM information_schema.TABLES
            WHERE table_schema = DATABASE()
        """)

        result = await conn.execute(query)
        row = result.fetchone()

        return DatabaseStats(
            table_count=table_count,
            total_rows=int(row[0]) if row and row[0] is not None else None,
            total_size_bytes=int(row[1]) if row and row[1] is not None else None,
        )
