"""Joins and relationship helpers."""

from collections.abc import Mapping, Sequence
from typing import Any, Optional, Union

from db_crud.models.specs import JoinSpec, JoinType
from db_crud.operations.base import OperationsBase


class RelationOperations(OperationsBase):
    """Two-table and multi-table joins plus has-one/has-many style lookups."""

    async def join(
        self,
        base_table: str,
        join_table: str,
        base_key: str,
        join_key: str,
        conditions: Optional[Mapping[str, Any]] = None,
        columns: Optional[Sequence[str]] = None,
        join_type: Union[str, JoinType] = JoinType.INNER,
        use_cache: bool = False,
    ) -> list[dict[str, Any]]:
        """
        Join two tables on ``base_key = join_key``.

        ``join_type`` is INNER, LEFT, RIGHT or FULL. Conditions apply to the
        base table.
        """
        self.quoter.validate_tables(base_table, join_table)
        statement = self.builder.join(
            base_table, join_table, base_key, join_key, conditions, columns, join_type
        )
        return await self._fetch(statement, use_cache)

    async def multi_join(
        self,
        base_table: str,
        joins: Sequence[Union[JoinSpec, Mapping[str, Any]]],
        base_alias: Optional[str] = None,
        conditions: Optional[Mapping[str, Any]] = None,
        columns: Optional[Sequence[str]] = None,
        use_cache: bool = False,
    ) -> list[dict[str, Any]]:
        """
        Join the base table to several tables.

        Each descriptor names ``table``, ``base_column``, ``join_column`` and
        optionally ``alias`` and ``type``. Columns may be qualified with an
        alias (``"o.total"``). One FULL join is allowed per call; without
        native support it runs as a UNION of two LEFT joins.

        Example:
            await db.multi_join(
                "users",
                [{"table": "orders", "alias": "o", "type": "LEFT",
                  "base_column": "id", "join_column": "user_id"}],
                base_alias="u",
                columns=["u.name", "o.total"],
            )
        """
        self.quoter.validate_table(base_table)
        statement = self.builder.multi_join(base_table, joins, base_alias, conditions, columns)
        return await self._fetch(statement, use_cache)

    async def has_one(
        self,
        parent_table: str,
        child_table: str,
        parent_id: Any,
        foreign_key: str = "parent_id",
        columns: Optional[Sequence[str]] = None,
    ) -> Optional[dict[str, Any]]:
        self.quoter.validate_tables(parent_table, child_table)
        return await self._fetch_one(
            self.builder.has_one(parent_table, child_table, parent_id, foreign_key, columns)
        )

    async def has_many(
        self,
        parent_table: str,
        child_table: str,
        parent_id: Any,
        foreign_key: str = "parent_id",
        columns: Optional[Sequence[str]] = None,
    ) -> list[dict[str, Any]]:
        self.quoter.validate_tables(parent_table, child_table)
        return await self._fetch(
            self.builder.has_many(parent_table, child_table, parent_id, foreign_key, columns)
        )

    async def belongs_to(
        self,
        child_table: str,
        parent_table: str,
        foreign_key_value: Any,
        owner_key: str = "id",
        columns: Optional[Sequence[str]] = None,
    ) -> Optional[dict[str, Any]]:
        """The parent row whose ``owner_key`` equals the child's foreign key value."""
        self.quoter.validate_tables(child_table, parent_table)
        return await self._fetch_one(
            self.builder.belongs_to(
                child_table, parent_table, foreign_key_value, owner_key, columns
            )
        )

    async def belongs_to_many(
        self,
        table: str,
        related_table: str,
        pivot_table: str,
        record_id: Any,
        columns: Optional[Sequence[str]] = None,
        foreign_pivot_key: Optional[str] = None,
        related_pivot_key: Optional[str] = None,
        related_key: str = "id",
    ) -> list[dict[str, Any]]:
        """Rows of ``related_table`` linked to ``record_id`` through ``pivot_table``."""
        self.quoter.validate_tables(table, related_table, pivot_table)
        return await self._fetch(
            self.builder.belongs_to_many(
                table,
                related_table,
                pivot_table,
                record_id,
                columns,
                foreign_pivot_key,
                related_pivot_key,
                related_key,
            )
        )
