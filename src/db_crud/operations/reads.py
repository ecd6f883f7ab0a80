"""Read operations: selection, lookup, pagination, filters, dates, JSON and search."""

import inspect
import logging
from collections.abc import Mapping, Sequence
from typing import Any, Awaitable, Callable, Optional, Union

from db_crud.errors import InvalidInput, UnsupportedFeature
from db_crud.models.pagination import CursorPage, Page, PageInfo
from db_crud.models.specs import SortDirection
from db_crud.operations.base import OperationsBase, column_values
from db_crud.sql.builder import SOFT_DELETE_COLUMN, Conditions, check_count
from db_crud.sql.conditions import Condition, Operator, RawClause, decode_conditions, make_condition
from db_crud.sql.dates import calendar_window
from db_crud.utils.serialization import dumps

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[list[dict[str, Any]], int], Union[Awaitable[Any], Any]]


def _with_raw_params(
    clause: Union[str, RawClause, None], params: Optional[Mapping[str, Any]]
) -> Union[str, RawClause, None]:
    if not clause or isinstance(clause, RawClause):
        return clause
    return RawClause(sql=clause, params=dict(params or {}))


class ReadOperations(OperationsBase):
    """SELECT-based operations; none of them invalidate the cache."""

    async def select(
        self,
        table: str,
        columns: Union[str, Sequence[str], None] = None,
        where: Conditions = None,
        where_raw: Union[str, RawClause, None] = None,
        where_params: Optional[Mapping[str, Any]] = None,
        order_by: Any = None,
        group_by: Union[str, Sequence[str], None] = None,
        having: Union[str, RawClause, None] = None,
        having_params: Optional[Mapping[str, Any]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        distinct: bool = False,
        use_cache: bool = False,
    ) -> list[dict[str, Any]]:
        """
        SELECT with the full set of options.

        ``where`` conditions and ``where_raw`` are combined with AND; an empty
        ``where`` with no ``where_raw`` selects every row. ``where_raw`` and
        ``having`` are trusted SQL with ``:name`` parameters supplied in
        ``where_params``/``having_params``.

        When ``limit``/``offset`` are omitted the instance's default pagination
        applies; a limit of 0 means no limit.
        """
        self.quoter.validate_table(table)
        defaults = self.options.default_pagination
        if limit is None:
            limit = defaults.limit
        if offset is None:
            offset = defaults.offset

        statement = self.builder.select(
            table,
            columns=columns,
            where=where,
            where_raw=_with_raw_params(where_raw, where_params),
            order_by=order_by,
            group_by=group_by,
            having=_with_raw_params(having, having_params),
            limit=limit or None,
            offset=offset or None,
            distinct=distinct,
        )
        return await self._fetch(statement, use_cache)

    async def select_where(
        self,
        table: str,
        conditions: Conditions = None,
        order_by: Any = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        use_cache: bool = False,
    ) -> list[dict[str, Any]]:
        """Rows matching ``conditions``; no conditions means every row."""
        self.quoter.validate_table(table)
        statement = self.builder.select(
            table, where=conditions, order_by=order_by, limit=limit, offset=offset
        )
        return await self._fetch(statement, use_cache)

    async def find_one(
        self, table: str, conditions: Conditions = None, use_cache: bool = False
    ) -> Optional[dict[str, Any]]:
        self.quoter.validate_table(table)
        return await self._fetch_one(
            self.builder.select(table, where=conditions, limit=1), use_cache
        )

    async def get_by_ids(
        self,
        table: str,
        ids: Sequence[Any],
        id_field: str = "id",
        use_cache: bool = False,
    ) -> list[dict[str, Any]]:
        self.quoter.validate_table(table)
        if not ids:
            return []
        return await self.select_where(
            table, [make_condition(id_field, Operator.IN, list(ids))], use_cache=use_cache
        )

    async def first(
        self,
        table: str,
        order_by: str = "id",
        direction: Union[str, SortDirection] = SortDirection.ASC,
    ) -> Optional[dict[str, Any]]:
        self.quoter.validate_table(table)
        statement = self.builder.select(
            table, order_by={"column": order_by, "direction": direction}, limit=1
        )
        return await self._fetch_one(statement)

    async def last(
        self,
        table: str,
        order_by: str = "id",
        direction: Union[str, SortDirection] = SortDirection.DESC,
    ) -> Optional[dict[str, Any]]:
        return await self.first(table, order_by, direction)

    async def random(self, table: str, count: int = 1) -> list[dict[str, Any]]:
        """Up to ``count`` rows in random order."""
        self.quoter.validate_table(table)
        return await self._fetch(self.builder.random(table, count))

    async def exists(self, table: str, conditions: Conditions = None) -> bool:
        return await self.find_one(table, conditions) is not None

    async def is_duplicate(
        self,
        table: str,
        fields: Mapping[str, Any],
        exclude_id: Any = None,
        id_field: str = "id",
    ) -> bool:
        """
        Whether another row already has these field values.

        ``exclude_id`` skips the row being edited.
        """
        self.quoter.validate_table(table)
        if not fields:
            raise InvalidInput("is_duplicate needs at least one field")
        conditions = decode_conditions(fields)
        if exclude_id is not None:
            conditions.append(make_condition(id_field, Operator.NE, exclude_id))

        total = await self._scalar(self.builder.count(table, conditions), "count")
        return bool(total)

    async def pluck(
        self, table: str, column: str, conditions: Conditions = None
    ) -> list[Any]:
        """Values of one column."""
        self.quoter.validate_table(table)
        rows = await self._fetch(self.builder.select(table, columns=[column], where=conditions))
        return column_values(rows)

    async def chunk(
        self,
        table: str,
        size: int,
        callback: ChunkCallback,
        conditions: Conditions = None,
        order_by: Any = None,
    ) -> int:
        """
        Feed matching rows to ``callback(rows, chunk_index)`` ``size`` rows at a time.

        Pages are read with LIMIT/OFFSET, so pass ``order_by`` for a stable
        iteration order. The callback may be a coroutine function.

        Returns:
            Number of chunks processed
        """
        self.quoter.validate_table(table)
        if not check_count(size, "size"):
            raise InvalidInput("Chunk size must be positive")

        index = 0
        while True:
            rows = await self.select_where(
                table, conditions, order_by=order_by, limit=size, offset=index * size
            )
            if not rows:
                break

            outcome = callback(rows, index)
            if inspect.isawaitable(outcome):
                await outcome
            index += 1

            if len(rows) < size:
                break
        return index

    async def paginate(
        self,
        table: str,
        page: int = 1,
        per_page: int = 20,
        conditions: Conditions = None,
        order_by: Any = None,
        use_cache: bool = False,
    ) -> Page:
        """
        Offset pagination.

        The total comes from a COUNT under the same conditions. A page past the
        last one returns no rows.
        """
        self.quoter.validate_table(table)
        if isinstance(page, bool) or not isinstance(page, int) or page < 1:
            raise InvalidInput(f"page must be a positive integer, got {page!r}")
        if isinstance(per_page, bool) or not isinstance(per_page, int) or per_page < 1:
            raise InvalidInput(f"per_page must be a positive integer, got {per_page!r}")

        total = await self._scalar(self.builder.count(table, conditions), "count", use_cache)
        rows = await self._fetch(
            self.builder.select(
                table,
                where=conditions,
                order_by=order_by,
                limit=per_page,
                offset=(page - 1) * per_page,
            ),
            use_cache,
        )
        return Page(data=rows, pagination=PageInfo.compute(int(total or 0), page, per_page))

    async def cursor_paginate(
        self,
        table: str,
        cursor: Any = None,
        limit: int = 20,
        cursor_column: str = "id",
        direction: Union[str, SortDirection] = SortDirection.ASC,
        conditions: Conditions = None,
    ) -> CursorPage:
        """
        Keyset pagination on ``cursor_column``.

        ``next_cursor`` is the cursor value of the last returned row when
        another page exists, else None.
        """
        self.quoter.validate_table(table)
        rows = await self._fetch(
            self.builder.cursor_page(table, cursor_column, limit, cursor, direction, conditions)
        )
        has_more = len(rows) > limit
        data = rows[:limit]
        key = cursor_column.rsplit(".", 1)[-1]
        next_cursor = data[-1][key] if has_more and data else None
        return CursorPage(data=data, next_cursor=next_cursor, has_more=has_more)

    # Soft-delete views

    async def with_trashed(
        self,
        table: str,
        conditions: Conditions = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """Rows including soft-deleted ones (the same as ``select_where``)."""
        return await self.select_where(table, conditions, limit=limit, offset=offset)

    async def only_trashed(
        self,
        table: str,
        conditions: Conditions = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        self.quoter.validate_table(table)
        filters = self.builder.decode(conditions)
        filters.append(make_condition(SOFT_DELETE_COLUMN, Operator.IS_NOT_NULL))
        return await self.select_where(table, filters, limit=limit, offset=offset)

    # Single-column filters

    async def _filter(self, table: str, condition: Condition) -> list[dict[str, Any]]:
        self.quoter.validate_table(table)
        return await self.select_where(table, [condition])

    async def where_in(self, table: str, column: str, values: Sequence[Any]) -> list[dict[str, Any]]:
        """Rows whose column is in ``values``; an empty list matches nothing."""
        return await self._filter(table, make_condition(column, Operator.IN, values))

    async def where_not_in(
        self, table: str, column: str, values: Sequence[Any]
    ) -> list[dict[str, Any]]:
        """Rows whose column is not in ``values``; an empty list matches everything."""
        return await self._filter(table, make_condition(column, Operator.NOT_IN, values))

    async def where_between(
        self, table: str, column: str, low: Any, high: Any
    ) -> list[dict[str, Any]]:
        return await self._filter(table, make_condition(column, Operator.BETWEEN, (low, high)))

    async def where_not_between(
        self, table: str, column: str, low: Any, high: Any
    ) -> list[dict[str, Any]]:
        return await self._filter(
            table, make_condition(column, Operator.NOT_BETWEEN, (low, high))
        )

    async def where_null(self, table: str, column: str) -> list[dict[str, Any]]:
        return await self._filter(table, make_condition(column, Operator.IS_NULL))

    async def where_not_null(self, table: str, column: str) -> list[dict[str, Any]]:
        return await self._filter(table, make_condition(column, Operator.IS_NOT_NULL))

    async def where_greater_than(self, table: str, column: str, value: Any) -> list[dict[str, Any]]:
        return await self._filter(table, make_condition(column, Operator.GT, value))

    async def where_less_than(self, table: str, column: str, value: Any) -> list[dict[str, Any]]:
        return await self._filter(table, make_condition(column, Operator.LT, value))

    async def _like(
        self, table: str, column: str, pattern: str, case_sensitive: bool = False
    ) -> list[dict[str, Any]]:
        self.quoter.validate_table(table)
        return await self._fetch(self.builder.like(table, column, pattern, case_sensitive))

    async def where_starts_with(self, table: str, column: str, value: str) -> list[dict[str, Any]]:
        return await self._like(table, column, f"{value}%")

    async def where_ends_with(self, table: str, column: str, value: str) -> list[dict[str, Any]]:
        return await self._like(table, column, f"%{value}")

    async def where_contains(self, table: str, column: str, value: str) -> list[dict[str, Any]]:
        return await self._like(table, column, f"%{value}%")

    async def where_like(
        self, table: str, column: str, value: str, case_sensitive: bool = False
    ) -> list[dict[str, Any]]:
        """
        Rows whose column contains ``value``.

        ``case_sensitive`` uses ``LIKE BINARY`` on MySQL and ``LIKE`` on
        PostgreSQL (otherwise ``ILIKE``); SQLite raises ``UnsupportedFeature``.
        """
        return await self._like(table, column, f"%{value}%", case_sensitive)

    # Dates

    async def where_date_between(
        self, table: str, column: str, start: Any, end: Any
    ) -> list[dict[str, Any]]:
        """Rows with ``start <= column <= end`` (compared as stored, time included)."""
        return await self.where_between(table, column, start, end)

    async def where_date(
        self, table: str, column: str, value: Any, operator: str = "="
    ) -> list[dict[str, Any]]:
        """Compare the date part of ``column`` with ``value``."""
        self.quoter.validate_table(table)
        return await self._fetch(self.builder.date_compare(table, column, value, operator))

    async def _date_part(
        self, table: str, column: str, part: str, value: int
    ) -> list[dict[str, Any]]:
        self.quoter.validate_table(table)
        return await self._fetch(self.builder.date_part_filter(table, column, part, value))

    async def where_year(self, table: str, column: str, year: int) -> list[dict[str, Any]]:
        return await self._date_part(table, column, "year", year)

    async def where_month(self, table: str, column: str, month: int) -> list[dict[str, Any]]:
        return await self._date_part(table, column, "month", month)

    async def where_day(self, table: str, column: str, day: int) -> list[dict[str, Any]]:
        return await self._date_part(table, column, "day", day)

    async def created_within(
        self, table: str, period: str, column: str = "created_at"
    ) -> list[dict[str, Any]]:
        """Rows whose ``column`` falls in the current day, week, month or year."""
        self.quoter.validate_table(table)
        start, end = calendar_window(period, self._now())
        return await self.select_where(
            table,
            [
                make_condition(column, Operator.GE, start),
                make_condition(column, Operator.LT, end),
            ],
        )

    async def created_today(self, table: str, column: str = "created_at") -> list[dict[str, Any]]:
        return await self.created_within(table, "day", column)

    async def created_this_week(
        self, table: str, column: str = "created_at"
    ) -> list[dict[str, Any]]:
        return await self.created_within(table, "week", column)

    async def created_this_month(
        self, table: str, column: str = "created_at"
    ) -> list[dict[str, Any]]:
        return await self.created_within(table, "month", column)

    async def created_this_year(
        self, table: str, column: str = "created_at"
    ) -> list[dict[str, Any]]:
        return await self.created_within(table, "year", column)

    # JSON

    def _require(self, capability: str, operation: str) -> None:
        if not getattr(self.adapter.capabilities, capability):
            raise UnsupportedFeature(
                f"{operation} is not supported on {self.connection.dialect}"
            )

    async def json_extract(
        self,
        table: str,
        column: str,
        path: str,
        conditions: Conditions = None,
        id_field: str = "id",
    ) -> list[dict[str, Any]]:
        """``id_field`` and the value at JSON ``path`` (as ``extracted_value``) per row."""
        self.quoter.validate_table(table)
        self._require("json_functions", "json_extract")
        return await self._fetch(
            self.builder.json_extract(table, column, path, conditions, id_field)
        )

    async def json_contains(
        self, table: str, column: str, value: Any, conditions: Conditions = None
    ) -> list[dict[str, Any]]:
        """Rows whose JSON column contains ``value`` (serialized to JSON first)."""
        self.quoter.validate_table(table)
        self._require("json_functions", "json_contains")
        return await self._fetch(
            self.builder.json_contains(table, column, dumps(value), conditions)
        )

    # Search

    async def search(
        self, table: str, fields: Sequence[str], keyword: str
    ) -> list[dict[str, Any]]:
        """Rows where any field contains ``keyword``; an empty keyword returns nothing."""
        self.quoter.validate_table(table)
        if not keyword or not fields:
            return []
        return await self._fetch(self.builder.search(table, fields, keyword))

    async def advanced_search(
        self,
        table: str,
        criteria: Conditions = None,
        limit: int = 100,
        offset: int = 0,
        order_by: Any = None,
    ) -> list[dict[str, Any]]:
        """
        Rows matching a condition map of literals and filter descriptors.

        Example:
            await db.advanced_search(
                "users",
                {
                    "age": {"operator": "BETWEEN", "value": {"min": 18, "max": 30}},
                    "name": {"operator": "LIKE", "value": "ann"},
                    "deleted_at": {"operator": "IS NULL"},
                },
                order_by=["name"],
            )
        """
        self.quoter.validate_table(table)
        statement = self.builder.select(
            table, where=criteria, order_by=order_by, limit=limit, offset=offset or None
        )
        return await self._fetch(statement)

    async def full_text_search(
        self,
        table: str,
        columns: Sequence[str],
        term: str,
        mode: str = "NATURAL LANGUAGE",
        limit: int = 100,
        min_score: float = 0,
    ) -> list[dict[str, Any]]:
        """
        Full-text match ordered by ``relevance``.

        Raises:
            UnsupportedFeature: If the dialect has no full-text search
        """
        self.quoter.validate_table(table)
        self._require("full_text_search", "full_text_search")
        return await self._fetch(
            self.builder.full_text(table, columns, term, mode, limit, min_score)
        )
