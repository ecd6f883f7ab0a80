"""Free-form SQL operations."""

from typing import Any, Mapping, Optional

from db_crud.core.cache import referenced_tables
from db_crud.operations.base import OperationsBase
from db_crud.sql.statements import Statement
from db_crud.utils.serialization import cache_key


class RawOperations(OperationsBase):
    """``query``, ``get_one``, ``raw`` and ``raw_unsafe``."""

    def _raw_statement(
        self, sql: str, params: Optional[Mapping[str, Any]]
    ) -> Statement:
        return Statement.raw(
            sql, params, referenced_tables(sql, self.quoter.allowed_tables)
        )

    async def query(
        self,
        sql: str,
        params: Optional[Mapping[str, Any]] = None,
        use_cache: bool = False,
    ) -> list[dict[str, Any]]:
        """
        Run free-form SQL with ``:name`` parameters.

        Results of statements that return rows may be cached. Statements that
        return no rows are treated as writes: cache entries for the
        whitelisted tables they name are dropped (all entries when they
        name none).
        """
        statement = self._raw_statement(sql, params)

        key = None
        if use_cache and self.cache.enabled:
            key = cache_key(statement.text, statement.params)
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        result = await self.executor.execute(statement)
        if not result.columns:
            self._invalidate(statement.tables)
        elif key is not None:
            self.cache.put(key, result.rows, statement.tables)
        return result.rows

    async def get_one(
        self,
        sql: str,
        params: Optional[Mapping[str, Any]] = None,
        use_cache: bool = False,
    ) -> Optional[dict[str, Any]]:
        rows = await self.query(sql, params, use_cache)
        return rows[0] if rows else None

    async def raw(
        self, sql: str, params: Optional[Mapping[str, Any]] = None
    ) -> list[dict[str, Any]]:
        """
        Free-form SQL behind a coarse keyword guard.

        Raises:
            DangerousStatement: If DROP, TRUNCATE, DELETE, ALTER or CREATE
                appears as a whole word outside comments
        """
        self.executor.validate_raw(sql)
        return await self.query(sql, params)

    async def raw_unsafe(
        self, sql: str, params: Optional[Mapping[str, Any]] = None
    ) -> list[dict[str, Any]]:
        """Free-form SQL with no guard at all."""
        return await self.query(sql, params)
