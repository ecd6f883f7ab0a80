"""PostgreSQL adapter."""

import logging

from sqlalchemy import text
from sqlalchemy.dialects import postgresql
from sqlalchemy.engine import Dialect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection

from db_crud.adapters.base import BaseAdapter
from db_crud.errors import InvalidInput
from db_crud.models.capabilities import DatabaseCapabilities
from db_crud.models.table import DatabaseStats, TableInfo
from db_crud.sql.identifiers import IdentifierQuoter
from db_crud.sql.statements import ParamCollector

logger = logging.getLogger(__name__)

FULL_TEXT_QUERY_FUNCTIONS = {
    "NATURAL LANGUAGE": "plainto_tsquery",
    "BOOLEAN": "to_tsquery",
    "WEB": "websearch_to_tsquery",
}


class PostgresAdapter(BaseAdapter):
    """PostgreSQL adapter."""

    name = "postgresql"

    def __init__(self) -> None:
        self._dialect = postgresql.dialect()

    @property
    def capabilities(self) -> DatabaseCapabilities:
        return DatabaseCapabilities(
            foreign_keys=True,
            indexes=True,
            transactions=True,
            window_functions=True,
            full_outer_join=True,
            full_text_search=True,
            json_functions=True,
            returning=True,
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
        target = ", ".join(quoter.quote(key, "column") for key in conflict_keys)
        if not update_columns:
            return f"ON CONFLICT ({target}) DO NOTHING"
        assignments = ", ".join(
            f"{quoter.quote(col, 'column')} = EXCLUDED.{quoter.quote(col, 'column')}"
            for col in update_columns
        )
        return f"ON CONFLICT ({target}) DO UPDATE SET {assignments}"

    def returning_clause(self, quoter: IdentifierQuoter, id_field: str) -> str:
        return f"RETURNING {quoter.quote(id_field, 'column')}"

    def truncate_statements(self, quoted_table: str) -> list[str]:
        return [f"TRUNCATE TABLE {quoted_table}"]

    def random_function(self) -> str:
        return "RANDOM()"

    def date_part(self, part: str, expr: str) -> str:
        return f"CAST(EXTRACT({self._check_date_part(part)} FROM {expr}) AS INTEGER)"

    def date_expr(self, expr: str) -> str:
        return f"CAST({expr} AS DATE)"

    def like_predicate(self, expr: str, placeholder: str, case_sensitive: bool) -> str:
        operator = "LIKE" if case_sensitive else "ILIKE"
        return f"{expr} {operator} {placeholder}"

    def group_concat(
        self,
        expr: str,
        separator: str,
        quoter: IdentifierQuoter,
        params: ParamCollector,
    ) -> str:
        return f"STRING_AGG(CAST({expr} AS TEXT), {params.add(separator)})"

    def json_extract(self, expr: str, path_placeholder: str) -> str:
        return (
            f"jsonb_path_query_first(CAST({expr} AS jsonb), "
            f"CAST({path_placeholder} AS jsonpath))"
        )

    def json_contains(self, expr: str, value_placeholder: str) -> str:
        return f"CAST({expr} AS jsonb) @> CAST({value_placeholder} AS jsonb)"

    def full_text(
        self, columns: list[str], mode: str, placeholder: str
    ) -> tuple[str, str]:
        function = FULL_TEXT_QUERY_FUNCTIONS.get(" ".join(mode.split()).upper())
        if function is None:
            raise InvalidInput(
                f"Unsupported full-text mode: {mode!r}. "
                f"Supported: {', '.join(FULL_TEXT_QUERY_FUNCTIONS)}"
            )
        document = f"to_tsvector(concat_ws(' ', {', '.join(columns)}))"
        query = f"{function}({placeholder})"
        return f"ts_rank({document}, {query})", f"{document} @@ {query}"

    def maintenance_statement(self, action: str, quoted_table: str) -> str:
        if self._check_maintenance(action) == "optimize":
            return f"VACUUM ANALYZE {quoted_table}"
        return f"ANALYZE {quoted_table}"

    def maintenance_requires_autocommit(self, action: str) -> bool:
        # VACUUM cannot run inside a transaction block
        return action == "optimize"

    async def enrich_table_info(
        self, conn: AsyncConnection, table_info: TableInfo
    ) -> TableInfo:
        """Add PostgreSQL-specific table metadata."""
        query = text("""
            SELECT
                pg_relation_size(c.oid)::bigint as table_size,
                pg_indexes_size(c.oid)::bigint as indexes_size,
                c.reltuples::bigint as row_estimate,
                obj_description(c.oid, 'pg_class') as comment,
                c.relkind as table_kind
            FROM pg_class c
            JOIN pg_namespace n ON n.oid = c.relnamespace
            WHERE c.relname = :table_name
              AND n.nspname = current_schema()
        """)

        try:
            result = await conn.execute(query, {"table_name": table_info.name})
            row = result.fetchone()
        except SQLAlchemyError as e:
            # Size figures are informational; the basic description still stands
            logger.warning(f"Failed to enrich table info for {table_info.name}: {e}")
            return table_info

        if row:
            table_info.size_bytes = int(row[0]) if row[0] is not None else None
            table_info.index_size_bytes = int(row[1]) if row[1] is not None else None
            if table_info.row_count is None and row[2] is not None and row[2] >= 0:
                table_info.row_count = int(row[2])
            table_info.comment = row[3]
            table_info.extra_info["relkind"] = row[4]

        return table_info

    async def get_database_stats(
        self, conn: AsyncConnection, table_count: int
    ) -> DatabaseStats:
        query = text("""
            SELECT
                (SELECT SUM(GREATEST(c.reltuples, 0))::bigint
                   FROM pg_class c
                   JOIN pg_namespace n ON n.oid = c.relnamespace
                  WHERE c.relkind = 'r' AND n.nspname = current_schema()) as total_rows,
                pg_database_size(current_database())::bigint as total_size
        """)

        result = await conn.execute(query)
        row = result.fetchone()

        return DatabaseStats(
            table_count=table_count,
            total_rows=int(row[0]) if row and row[0] is not None else None,
            total_size_bytes=int(row[1]) if row and row[1] is not None else None,
        )
