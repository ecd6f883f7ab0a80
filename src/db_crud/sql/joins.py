"""Join and relation statements.

FULL joins are emitted natively where the dialect has FULL OUTER JOIN. Elsewhere
they are emulated as ``base LEFT JOIN other UNION other LEFT JOIN base``; the
WHERE clause is rendered once per half, so its parameters appear twice. UNION
removes the duplicate produced by rows matched in both halves.
"""

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, Optional, Union

from db_crud.errors import InvalidInput, UnsupportedJoinType
from db_crud.models.specs import JoinSpec, JoinType
from db_crud.sql.conditions import where_clause
from db_crud.sql.identifiers import WILDCARD, IdentifierQuoter
from db_crud.sql.statements import ParamCollector, Statement

if TYPE_CHECKING:
    from db_crud.adapters.base import BaseAdapter

JOIN_KEYWORDS = {
    JoinType.INNER: "INNER JOIN",
    JoinType.LEFT: "LEFT JOIN",
    JoinType.RIGHT: "RIGHT JOIN",
    JoinType.FULL: "FULL OUTER JOIN",
}


def _clean(*parts: str) -> str:
    return " ".join(part for part in parts if part)


def to_join_spec(value: Union[JoinSpec, Mapping[str, Any]]) -> JoinSpec:
    if isinstance(value, JoinSpec):
        return value
    if isinstance(value, Mapping):
        return JoinSpec.model_validate(dict(value))
    raise InvalidInput(f"Join descriptor must be a mapping, got {type(value).__name__}")


class JoinStatements:
    """Join builders, mixed into ``StatementBuilder``."""

    quoter: IdentifierQuoter
    adapter: "BaseAdapter"

    def _source(self, table: str, alias: str) -> str:
        quoted = self.quoter.table(table)
        if alias == table:
            return quoted
        return f"{quoted} AS {self.quoter.quote(alias, 'alias')}"

    def _join_clause(
        self, keyword: str, table: str, alias: str, left: str, right: str
    ) -> str:
        return f"{keyword} {self._source(table, alias)} ON {left} = {right}"

    def _spec_clause(self, base_alias: str, spec: JoinSpec) -> str:
        return self._join_clause(
            JOIN_KEYWORDS[spec.type],
            spec.table,
            spec.effective_alias,
            self.quoter.qualified(base_alias, spec.base_column),
            self.quoter.qualified(spec.effective_alias, spec.join_column),
        )

    def join(
        self,
        base_table: str,
        join_table: str,
        base_key: str,
        join_key: str,
        conditions: Optional[Mapping[str, Any]] = None,
        columns: Optional[Sequence[str]] = None,
        join_type: Union[str, JoinType] = JoinType.INNER,
    ) -> Statement:
        """Two-table join; conditions apply to the base table."""
        self.quoter.validate_tables(base_table, join_table)
        spec = JoinSpec(
            table=join_table,
            type=join_type,
            base_column=base_key,
            join_column=join_key,
        )
        return self.multi_join(base_table, [spec], conditions=conditions, columns=columns)

    def multi_join(
        self,
        base_table: str,
        joins: Sequence[Union[JoinSpec, Mapping[str, Any]]],
        base_alias: Optional[str] = None,
        conditions: Optional[Mapping[str, Any]] = None,
        columns: Optional[Sequence[str]] = None,
    ) -> Statement:
        """
        Join the base table to each descriptor in order.

        Conditions are qualified with the base alias. At most one FULL join
        is accepted per statement.

        Raises:
            ForbiddenTable: If any table is not whitelisted
            UnsupportedJoinType: For unknown join types or several FULL joins
        """
        self.quoter.validate_table(base_table)
        specs = [to_join_spec(join) for join in joins]
        self.quoter.validate_tables(*(spec.table for spec in specs))
        if not specs:
            raise InvalidInput("multi_join needs at least one join descriptor")

        base_alias = base_alias or base_table
        tables = [base_table] + [spec.table for spec in specs]
        full = [spec for spec in specs if spec.type is JoinType.FULL]
        if len(full) > 1:
            raise UnsupportedJoinType(
                "FULL", "only one FULL join is supported per statement"
            )

        params = ParamCollector()

        if not full or self.adapter.capabilities.full_outer_join:
            text = _clean(
                f"SELECT {self._select_list(columns)} FROM {self._source(base_table, base_alias)}",
                *(self._spec_clause(base_alias, spec) for spec in specs),
                where_clause(self._where_fragments(conditions, params, base_alias)),
            )
            return params.statement(text, tables)

        full_spec = full[0]
        full_alias = full_spec.effective_alias
        others = [spec for spec in specs if spec is not full_spec]

        # Both halves must produce the same column order for UNION
        if columns is None or list(columns) == [WILDCARD]:
            aliases = [base_alias, full_alias] + [spec.effective_alias for spec in others]
            select_list = ", ".join(
                f"{self.quoter.quote(alias, 'alias')}.{WILDCARD}" for alias in aliases
            )
        else:
            select_list = self._select_list(columns)

        base_ref = self.quoter.qualified(base_alias, full_spec.base_column)
        full_ref = self.quoter.qualified(full_alias, full_spec.join_column)
        other_clauses = [self._spec_clause(base_alias, spec) for spec in others]

        left_half = _clean(
            f"SELECT {select_list} FROM {self._source(base_table, base_alias)}",
            self._join_clause("LEFT JOIN", full_spec.table, full_alias, base_ref, full_ref),
            *other_clauses,
            where_clause(self._where_fragments(conditions, params, base_alias)),
        )
        mirrored_half = _clean(
            f"SELECT {select_list} FROM {self._source(full_spec.table, full_alias)}",
            self._join_clause("LEFT JOIN", base_table, base_alias, full_ref, base_ref),
            *other_clauses,
            where_clause(self._where_fragments(conditions, params, base_alias)),
        )
        return params.statement(f"{left_half} UNION {mirrored_half}", tables)

    def has_one(
        self,
        parent_table: str,
        child_table: str,
        parent_id: Any,
        foreign_key: str = "parent_id",
        columns: Optional[Sequence[str]] = None,
    ) -> Statement:
        self.quoter.validate_tables(parent_table, child_table)
        return self.select(
            child_table, columns=columns, where={foreign_key: parent_id}, limit=1
        )

    def has_many(
        self,
        parent_table: str,
        child_table: str,
        parent_id: Any,
        foreign_key: str = "parent_id",
        columns: Optional[Sequence[str]] = None,
    ) -> Statement:
        self.quoter.validate_tables(parent_table, child_table)
        return self.select(child_table, columns=columns, where={foreign_key: parent_id})

    def belongs_to(
        self,
        child_table: str,
        parent_table: str,
        foreign_key_value: Any,
        owner_key: str = "id",
        columns: Optional[Sequence[str]] = None,
    ) -> Statement:
        self.quoter.validate_tables(child_table, parent_table)
        return self.select(
            parent_table, columns=columns, where={owner_key: foreign_key_value}, limit=1
        )

    def belongs_to_many(
        self,
        table: str,
        related_table: str,
        pivot_table: str,
        record_id: Any,
        columns: Optional[Sequence[str]] = None,
        foreign_pivot_key: Optional[str] = None,
        related_pivot_key: Optional[str] = None,
        related_key: str = "id",
    ) -> Statement:
        """
        Rows of ``related_table`` linked to ``record_id`` through a pivot table.

        Pivot columns default to ``<table>_id`` and ``<related_table>_id``.
        """
        self.quoter.validate_tables(table, related_table, pivot_table)
        foreign_pivot_key = foreign_pivot_key or f"{table}_id"
        related_pivot_key = related_pivot_key or f"{related_table}_id"

        select_list = ", ".join(
            self.quoter.qualified(related_table, column)
            for column in (columns or [WILDCARD])
        )
        params = ParamCollector()
        text = (
            f"SELECT {select_list} FROM {self.quoter.table(related_table)} "
            f"INNER JOIN {self.quoter.table(pivot_table)} "
            f"ON {self.quoter.qualified(related_table, related_key)} = "
            f"{self.quoter.qualified(pivot_table, related_pivot_key)} "
            f"WHERE {self.quoter.qualified(pivot_table, foreign_pivot_key)} = "
            f"{params.add(record_id)}"
        )
        return params.statement(text, [related_table, pivot_table])
