"""Aggregates and statistics."""

import logging
import math
from collections.abc import Mapping, Sequence
from typing import Any, Optional, Union

from db_crud.errors import InvalidInput
from db_crud.models.specs import AggregateSpec
from db_crud.operations.base import OperationsBase, column_values, to_number
from db_crud.sql.builder import Conditions
from db_crud.sql.conditions import RawClause

logger = logging.getLogger(__name__)


class AnalyticsOperations(OperationsBase):
    """COUNT/MIN/MAX/AVG/SUM, median, percentiles and grouping helpers."""

    async def aggregate(
        self,
        table: str,
        functions: Sequence[Union[AggregateSpec, Mapping[str, Any]]],
        group_by: Union[str, Sequence[str], None] = None,
        conditions: Conditions = None,
        having: Optional[str] = None,
        having_params: Optional[Mapping[str, Any]] = None,
        use_cache: bool = False,
    ) -> list[dict[str, Any]]:
        """
        Run aggregate functions, optionally grouped.

        Example:
            await db.aggregate(
                "orders",
                [{"func": "COUNT", "column": "*", "alias": "orders"},
                 {"func": "SUM", "column": "total", "alias": "revenue"}],
                group_by="customer_id",
                having="SUM(total) > :floor",
                having_params={"floor": 100},
            )
        """
        self.quoter.validate_table(table)
        raw_having = RawClause(sql=having, params=dict(having_params or {})) if having else None
        statement = self.builder.aggregate(table, functions, group_by, conditions, raw_having)
        return await self._fetch(statement, use_cache)

    async def count(
        self, table: str, conditions: Conditions = None, use_cache: bool = False
    ) -> int:
        """Rows matching ``conditions`` (all rows when empty)."""
        self.quoter.validate_table(table)
        total = await self._scalar(self.builder.count(table, conditions), "count", use_cache)
        return int(total or 0)

    async def count_by(
        self, table: str, column: str, conditions: Conditions = None
    ) -> list[dict[str, Any]]:
        """``{column: value, "count": n}`` per distinct value."""
        self.quoter.validate_table(table)
        return await self._fetch(self.builder.count_by(table, column, conditions))

    async def _single(
        self, table: str, func: str, column: str, conditions: Conditions
    ) -> Any:
        alias = f"{func.lower()}_value"
        rows = await self.aggregate(
            table, [AggregateSpec(func=func, column=column, alias=alias)], conditions=conditions
        )
        return rows[0][alias] if rows else None

    async def min(self, table: str, column: str, conditions: Conditions = None) -> Any:
        """Smallest value, or None for an empty set."""
        return await self._single(table, "MIN", column, conditions)

    async def max(self, table: str, column: str, conditions: Conditions = None) -> Any:
        return await self._single(table, "MAX", column, conditions)

    async def avg(self, table: str, column: str, conditions: Conditions = None) -> Any:
        """Mean value, 0 for an empty set."""
        value = await self._single(table, "AVG", column, conditions)
        return 0 if value is None else to_number(value)

    async def sum(self, table: str, column: str, conditions: Conditions = None) -> Any:
        value = await self._single(table, "SUM", column, conditions)
        return 0 if value is None else to_number(value)

    async def _non_null_count(self, table: str, column: str, conditions: Conditions) -> int:
        total = await self._scalar(self.builder.count(table, conditions, column=column), "count")
        return int(total or 0)

    async def median(
        self, table: str, column: str, conditions: Conditions = None
    ) -> Optional[float]:
        """
        Median of the non-null values of ``column``; None for an empty set.

        Uses a ROW_NUMBER() window where the dialect has one. Otherwise counts
        first, then reads the middle value or the two middle values by offset.
        """
        self.quoter.validate_table(table)

        if self.adapter.capabilities.window_functions:
            value = await self._scalar(
                self.builder.median(table, column, conditions), "median_value"
            )
            return None if value is None else to_number(value)

        count = await self._non_null_count(table, column, conditions)
        if count == 0:
            return None
        if count % 2:
            limit, offset = 1, (count - 1) // 2
        else:
            limit, offset = 2, count // 2 - 1
        rows = await self._fetch(
            self.builder.ordered_values(table, column, limit, offset, conditions)
        )
        values = [to_number(row["value"]) for row in rows]
        return sum(values) / len(values)

    async def percentile(
        self,
        table: str,
        column: str,
        percentile: float = 50,
        conditions: Conditions = None,
    ) -> Any:
        """
        Nearest-rank percentile of the non-null values of ``column``.

        The rank is ``ceil(percentile / 100 * n)`` (at least 1). Returns None
        for an empty set.
        """
        self.quoter.validate_table(table)
        if isinstance(percentile, bool) or not isinstance(percentile, (int, float)):
            raise InvalidInput(f"percentile must be a number, got {percentile!r}")
        if not 0 <= percentile <= 100:
            raise InvalidInput(f"percentile must be between 0 and 100, got {percentile}")

        count = await self._non_null_count(table, column, conditions)
        if count == 0:
            return None
        position = max(1, math.ceil(percentile / 100 * count))
        return await self._scalar(
            self.builder.ordered_values(table, column, 1, position - 1, conditions), "value"
        )

    async def group_concat(
        self,
        table: str,
        column: str,
        group_by: str,
        conditions: Conditions = None,
        separator: str = ",",
    ) -> list[dict[str, Any]]:
        """``{group_by: value, "concatenated": "a,b,c"}`` per group."""
        self.quoter.validate_table(table)
        return await self._fetch(
            self.builder.group_concat(table, column, group_by, conditions, separator)
        )

    async def distinct_values(
        self, table: str, column: str, conditions: Conditions = None
    ) -> list[Any]:
        self.quoter.validate_table(table)
        rows = await self._fetch(self.builder.distinct(table, column, conditions))
        return column_values(rows)
