"""Statement builder: structured inputs to parameterized SQL.

Each method validates its table against the whitelist, quotes every
identifier through ``IdentifierQuoter`` and returns a ``Statement`` whose
values are all bound parameters. Nothing here touches a connection.
"""

import re
from collections.abc import Mapping, Sequence
from numbers import Number
from typing import TYPE_CHECKING, Any, Optional, Union

from db_crud.errors import InconsistentRows, InvalidIdentifier, InvalidInput, UnsupportedOperator
from db_crud.models.specs import AggregateSpec, OrderBy, SortDirection, parse_direction
from db_crud.sql.conditions import (
    COMPARISON_OPERATORS,
    Condition,
    RawClause,
    decode_conditions,
    parse_operator,
    render_conditions,
    where_clause,
)
from db_crud.sql.identifiers import WILDCARD, IdentifierQuoter
from db_crud.sql.joins import JoinStatements
from db_crud.sql.statements import ParamCollector, Statement

if TYPE_CHECKING:
    from db_crud.adapters.base import BaseAdapter

Conditions = Union[Mapping[str, Any], Sequence[Condition], None]
Raw = Union[str, RawClause, None]

SOFT_DELETE_COLUMN = "deleted_at"
SELECT_ALIAS_PATTERN = re.compile(r"^\s*(\S+)\s+AS\s+(\S+)\s*$", re.IGNORECASE)


def _clean(*parts: str) -> str:
    return " ".join(part for part in parts if part)


def check_count(value: Any, name: str) -> Optional[int]:
    """Validate a LIMIT/OFFSET style value; ``None`` passes through."""
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidInput(f"{name} must be a non-negative integer, got {value!r}")
    return value


def _as_raw(value: Raw) -> Optional[RawClause]:
    if not value:
        return None
    if isinstance(value, RawClause):
        return value
    return RawClause(sql=value)


class StatementBuilder(JoinStatements):
    """Builds ``Statement`` objects for one whitelist and dialect."""

    def __init__(self, quoter: IdentifierQuoter, adapter: "BaseAdapter"):
        self.quoter = quoter
        self.adapter = adapter

    # Shared fragments

    def decode(self, conditions: Conditions) -> list[Condition]:
        if conditions is None:
            return []
        if isinstance(conditions, Mapping):
            return decode_conditions(conditions)
        decoded = list(conditions)
        for item in decoded:
            if not isinstance(item, Condition):
                raise InvalidInput(
                    f"Expected a condition map or Condition list, got {type(item).__name__}"
                )
        return decoded

    def _where_fragments(
        self,
        conditions: Conditions,
        params: ParamCollector,
        qualifier: Optional[str] = None,
    ) -> list[str]:
        return render_conditions(self.decode(conditions), self.quoter, params, qualifier)

    def _select_item(self, item: Any) -> str:
        if not isinstance(item, str):
            raise InvalidIdentifier(str(item), "column")
        item = item.strip()
        match = SELECT_ALIAS_PATTERN.match(item)
        if match:
            column, alias = match.groups()
            return f"{self.quoter.column(column)} AS {self.quoter.quote(alias, 'alias')}"
        return self.quoter.column(item)

    def _select_list(self, columns: Union[str, Sequence[str], None]) -> str:
        if columns is None:
            return WILDCARD
        if isinstance(columns, str):
            columns = columns.split(",")
        items = [self._select_item(column) for column in columns]
        if not items:
            raise InvalidInput("Column list must not be empty")
        return ", ".join(items)

    def _column_names(self, columns: Sequence[str]) -> str:
        return ", ".join(self.quoter.quote(column, "column") for column in columns)

    def _order_clause(self, order_by: Any) -> str:
        if not order_by:
            return ""
        if isinstance(order_by, (str, OrderBy, Mapping)):
            order_by = [order_by]
        terms = [OrderBy.parse(term) for term in order_by]
        return "ORDER BY " + ", ".join(
            f"{self.quoter.column(term.column)} {term.direction.value}" for term in terms
        )

    def _group_columns(self, group_by: Union[str, Sequence[str], None]) -> list[str]:
        if not group_by:
            return []
        if isinstance(group_by, str):
            group_by = [group_by]
        return [self.quoter.column(column) for column in group_by]

    def _limit(self, limit: Any, offset: Any = None) -> str:
        return self.adapter.limit_clause(
            check_count(limit, "limit"), check_count(offset, "offset")
        )

    def _uniform_rows(
        self, rows: Sequence[Mapping[str, Any]]
    ) -> tuple[list[str], list[list[Any]]]:
        """Column list of the first row plus each row's values in that order."""
        if not rows:
            raise InvalidInput("At least one row is required")
        if not isinstance(rows[0], Mapping) or not rows[0]:
            raise InvalidInput("Rows must be non-empty mappings")

        columns = list(rows[0])
        expected = set(columns)
        values = []
        for index, row in enumerate(rows):
            if not isinstance(row, Mapping):
                raise InvalidInput(f"Row {index} is not a mapping")
            if set(row) != expected:
                raise InconsistentRows(index, columns, list(row))
            values.append([row[column] for column in columns])
        return columns, values

    # Reads

    def select(
        self,
        table: str,
        columns: Union[str, Sequence[str], None] = None,
        where: Conditions = None,
        where_raw: Raw = None,
        order_by: Any = None,
        group_by: Union[str, Sequence[str], None] = None,
        having: Raw = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        distinct: bool = False,
    ) -> Statement:
        """
        SELECT with optional filtering, grouping, ordering and paging.

        An empty ``where`` renders no WHERE clause, so every row matches.
        ``where_raw`` and ``having`` are caller-trusted SQL and carry their
        own named parameters.
        """
        self.quoter.validate_table(table)
        return self._compose_select(
            table,
            self._select_list(columns),
            where=where,
            where_raw=where_raw,
            order_by=order_by,
            group_by=group_by,
            having=having,
            limit=limit,
            offset=offset,
            distinct=distinct,
        )

    def _compose_select(
        self,
        table: str,
        select_list: str,
        where: Conditions = None,
        where_raw: Raw = None,
        order_by: Any = None,
        group_by: Union[str, Sequence[str], None] = None,
        having: Raw = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        distinct: bool = False,
    ) -> Statement:
        quoted = self.quoter.table(table)
        params = ParamCollector()

        fragments = self._where_fragments(where, params)
        raw = _as_raw(where_raw)
        if raw:
            params.merge(raw.params)
            fragments.append(f"({raw.sql})")

        group_columns = self._group_columns(group_by)
        having_clause = ""
        raw_having = _as_raw(having)
        if raw_having:
            params.merge(raw_having.params)
            having_clause = f"HAVING {raw_having.sql}"

        text = _clean(
            f"SELECT {'DISTINCT ' if distinct else ''}{select_list} FROM {quoted}",
            where_clause(fragments),
            f"GROUP BY {', '.join(group_columns)}" if group_columns else "",
            having_clause,
            self._order_clause(order_by),
            self._limit(limit, offset),
        )
        return params.statement(text, [table])

    def count(
        self, table: str, where: Conditions = None, column: Optional[str] = None
    ) -> Statement:
        """``COUNT(*)``, or ``COUNT(column)`` to count non-null values."""
        quoted = self.quoter.table(table)
        params = ParamCollector()
        target = WILDCARD if column is None else self.quoter.column(column)
        text = _clean(
            f"SELECT COUNT({target}) AS {self.quoter.quote('count')} FROM {quoted}",
            where_clause(self._where_fragments(where, params)),
        )
        return params.statement(text, [table])

    def count_by(self, table: str, column: str, where: Conditions = None) -> Statement:
        quoted = self.quoter.table(table)
        params = ParamCollector()
        group_column = self.quoter.column(column)
        text = _clean(
            f"SELECT {group_column}, COUNT(*) AS {self.quoter.quote('count')} FROM {quoted}",
            where_clause(self._where_fragments(where, params)),
            f"GROUP BY {group_column}",
        )
        return params.statement(text, [table])

    def cursor_page(
        self,
        table: str,
        cursor_column: str,
        limit: int,
        cursor: Any = None,
        direction: Union[str, SortDirection] = SortDirection.ASC,
        where: Conditions = None,
    ) -> Statement:
        """Fetch ``limit + 1`` rows past ``cursor`` so the caller can detect more."""
        quoted = self.quoter.table(table)
        if not check_count(limit, "limit"):
            raise InvalidInput("Cursor pagination needs a positive limit")
        direction = parse_direction(direction)
        column = self.quoter.column(cursor_column)

        params = ParamCollector()
        fragments = self._where_fragments(where, params)
        if cursor is not None:
            operator = ">" if direction is SortDirection.ASC else "<"
            fragments.append(f"{column} {operator} {params.add(cursor)}")

        text = _clean(
            f"SELECT * FROM {quoted}",
            where_clause(fragments),
            f"ORDER BY {column} {direction.value}",
            self._limit(limit + 1),
        )
        return params.statement(text, [table])

    def random(self, table: str, count: int = 1) -> Statement:
        quoted = self.quoter.table(table)
        text = _clean(
            f"SELECT * FROM {quoted} ORDER BY {self.adapter.random_function()}",
            self._limit(count),
        )
        return Statement.raw(text, tables=[table])

    def search(self, table: str, fields: Sequence[str], keyword: str) -> Statement:
        """Rows where any of ``fields`` contains ``keyword`` (case-insensitive)."""
        quoted = self.quoter.table(table)
        if not fields:
            raise InvalidInput("search needs at least one field")
        params = ParamCollector()
        predicates = [
            self.adapter.like_predicate(
                self.quoter.column(field), params.add(f"%{keyword}%"), False
            )
            for field in fields
        ]
        text = f"SELECT * FROM {quoted} WHERE {' OR '.join(predicates)}"
        return params.statement(text, [table])

    def like(
        self, table: str, column: str, pattern: str, case_sensitive: bool = False
    ) -> Statement:
        """Rows where ``column`` matches a LIKE pattern (wildcards supplied by caller)."""
        quoted = self.quoter.table(table)
        params = ParamCollector()
        predicate = self.adapter.like_predicate(
            self.quoter.column(column), params.add(pattern), case_sensitive
        )
        return params.statement(f"SELECT * FROM {quoted} WHERE {predicate}", [table])

    def full_text(
        self,
        table: str,
        columns: Sequence[str],
        term: str,
        mode: str = "NATURAL LANGUAGE",
        limit: Optional[int] = 100,
        min_score: float = 0,
    ) -> Statement:
        """Full-text match ordered by relevance, highest first."""
        quoted = self.quoter.table(table)
        if not columns:
            raise InvalidInput("Full-text search needs at least one column")
        quoted_columns = [self.quoter.column(column) for column in columns]
        params = ParamCollector()

        # Each expression gets its own placeholder, bound to the same term
        relevance, _ = self.adapter.full_text(quoted_columns, mode, params.add(term))
        _, predicate = self.adapter.full_text(quoted_columns, mode, params.add(term))
        fragments = [predicate]
        if min_score:
            score, _ = self.adapter.full_text(quoted_columns, mode, params.add(term))
            fragments.append(f"{score} > {params.add(min_score)}")

        alias = self.quoter.quote("relevance", "alias")
        text = _clean(
            f"SELECT *, {relevance} AS {alias} FROM {quoted}",
            where_clause(fragments),
            f"ORDER BY {alias} DESC",
            self._limit(limit),
        )
        return params.statement(text, [table])

    def date_part_filter(self, table: str, column: str, part: str, value: int) -> Statement:
        """Rows whose YEAR/MONTH/DAY of ``column`` equals ``value``."""
        quoted = self.quoter.table(table)
        params = ParamCollector()
        expr = self.adapter.date_part(part, self.quoter.column(column))
        return params.statement(
            f"SELECT * FROM {quoted} WHERE {expr} = {params.add(value)}", [table]
        )

    def date_compare(
        self, table: str, column: str, value: Any, operator: str = "="
    ) -> Statement:
        """Compare the date portion of ``column`` against ``value``."""
        quoted = self.quoter.table(table)
        op = parse_operator(operator)
        if op not in COMPARISON_OPERATORS:
            raise UnsupportedOperator(operator)
        params = ParamCollector()
        expr = self.adapter.date_expr(self.quoter.column(column))
        return params.statement(
            f"SELECT * FROM {quoted} WHERE {expr} {op.value} {params.add(value)}", [table]
        )

    def json_extract(
        self,
        table: str,
        column: str,
        path: str,
        where: Conditions = None,
        id_field: str = "id",
    ) -> Statement:
        quoted = self.quoter.table(table)
        params = ParamCollector()
        expr = self.adapter.json_extract(self.quoter.column(column), params.add(path))
        text = _clean(
            f"SELECT {self.quoter.column(id_field)}, {expr} AS "
            f"{self.quoter.quote('extracted_value', 'alias')} FROM {quoted}",
            where_clause(self._where_fragments(where, params)),
        )
        return params.statement(text, [table])

    def json_contains(
        self, table: str, column: str, document: str, where: Conditions = None
    ) -> Statement:
        """Rows whose JSON ``column`` contains ``document`` (a JSON string)."""
        quoted = self.quoter.table(table)
        params = ParamCollector()
        fragments = [self.adapter.json_contains(self.quoter.column(column), params.add(document))]
        fragments.extend(self._where_fragments(where, params))
        return params.statement(f"SELECT * FROM {quoted} {where_clause(fragments)}", [table])

    # Analytics

    def aggregate(
        self,
        table: str,
        functions: Sequence[Union[AggregateSpec, Mapping[str, Any]]],
        group_by: Union[str, Sequence[str], None] = None,
        where: Conditions = None,
        having: Raw = None,
    ) -> Statement:
        """``SELECT group_cols, FUNC(col) AS alias, ...`` with optional grouping."""
        self.quoter.validate_table(table)
        specs = [
            spec if isinstance(spec, AggregateSpec) else AggregateSpec.model_validate(dict(spec))
            for spec in functions
        ]
        if not specs:
            raise InvalidInput("aggregate needs at least one function")

        select_items = self._group_columns(group_by) + [
            f"{spec.func}({self.quoter.column(spec.column)}) AS "
            f"{self.quoter.quote(spec.effective_alias, 'alias')}"
            for spec in specs
        ]
        return self._compose_select(
            table,
            ", ".join(select_items),
            where=where,
            group_by=group_by,
            having=having,
        )

    def distinct(self, table: str, column: str, where: Conditions = None) -> Statement:
        return self.select(table, columns=[column], where=where, distinct=True)

    def median(self, table: str, column: str, where: Conditions = None) -> Statement:
        """
        Median of the non-null values of ``column`` in one statement.

        Rows are ranked with ROW_NUMBER(); the middle one (odd count) or the
        middle two (even count) satisfy ``cnt <= 2 * rn <= cnt + 2``.
        """
        quoted = self.quoter.table(table)
        value = self.quoter.column(column)
        params = ParamCollector()
        fragments = [f"{value} IS NOT NULL"] + self._where_fragments(where, params)
        ranked = _clean(
            f"SELECT {value} AS v, ROW_NUMBER() OVER (ORDER BY {value}) AS rn, "
            f"COUNT(*) OVER () AS cnt FROM {quoted}",
            where_clause(fragments),
        )
        text = (
            f"SELECT AVG(ranked.v) AS median_value FROM ({ranked}) ranked "
            "WHERE 2 * ranked.rn BETWEEN ranked.cnt AND ranked.cnt + 2"
        )
        return params.statement(text, [table])

    def ordered_values(
        self,
        table: str,
        column: str,
        limit: int,
        offset: int = 0,
        where: Conditions = None,
    ) -> Statement:
        """Non-null values of ``column`` in ascending order, one page of them."""
        quoted = self.quoter.table(table)
        value = self.quoter.column(column)
        params = ParamCollector()
        fragments = [f"{value} IS NOT NULL"] + self._where_fragments(where, params)
        text = _clean(
            f"SELECT {value} AS {self.quoter.quote('value', 'alias')} FROM {quoted}",
            where_clause(fragments),
            f"ORDER BY {value} ASC",
            self._limit(limit, offset),
        )
        return params.statement(text, [table])

    def group_concat(
        self,
        table: str,
        column: str,
        group_by: str,
        where: Conditions = None,
        separator: str = ",",
    ) -> Statement:
        quoted = self.quoter.table(table)
        group_column = self.quoter.column(group_by)
        params = ParamCollector()
        concatenated = self.adapter.group_concat(
            self.quoter.column(column), separator, self.quoter, params
        )
        text = _clean(
            f"SELECT {group_column}, {concatenated} AS "
            f"{self.quoter.quote('concatenated', 'alias')} FROM {quoted}",
            where_clause(self._where_fragments(where, params)),
            f"GROUP BY {group_column}",
        )
        return params.statement(text, [table])

    # Writes

    def insert(self, table: str, payload: Mapping[str, Any], id_field: str = "id") -> Statement:
        """Single-row INSERT; asks for the generated id where the dialect needs RETURNING."""
        quoted = self.quoter.table(table)
        if not payload:
            raise InvalidInput("Insert payload must not be empty")
        params = ParamCollector()
        columns = self._column_names(list(payload))
        placeholders = ", ".join(params.extend(payload.values()))
        returning = self.adapter.returning_clause(self.quoter, id_field)
        text = _clean(f"INSERT INTO {quoted} ({columns}) VALUES ({placeholders})", returning)
        return params.statement(text, [table], returns_id=bool(returning))

    def bulk_insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> Statement:
        """
        One multi-row INSERT.

        Raises:
            InconsistentRows: If a row's column set differs from the first row's
        """
        quoted = self.quoter.table(table)
        columns, values = self._uniform_rows(rows)
        params = ParamCollector()
        groups = ", ".join(f"({', '.join(params.extend(row))})" for row in values)
        text = f"INSERT INTO {quoted} ({self._column_names(columns)}) VALUES {groups}"
        return params.statement(text, [table])

    def upsert(
        self,
        table: str,
        rows: Sequence[Mapping[str, Any]],
        conflict_keys: Sequence[str] = ("id",),
        preserve_columns: Sequence[str] = ("created_at",),
    ) -> Statement:
        """
        INSERT that updates the conflicting row instead of failing.

        Conflict keys and ``preserve_columns`` are never overwritten.
        """
        quoted = self.quoter.table(table)
        columns, values = self._uniform_rows(rows)
        keys = list(conflict_keys)
        if not keys:
            raise InvalidInput("upsert needs at least one conflict key")

        update_columns = [
            column
            for column in columns
            if column not in keys and column not in preserve_columns
        ]
        params = ParamCollector()
        groups = ", ".join(f"({', '.join(params.extend(row))})" for row in values)
        text = (
            f"INSERT INTO {quoted} ({self._column_names(columns)}) VALUES {groups} "
            f"{self.adapter.upsert_clause(self.quoter, keys, update_columns)}"
        )
        return params.statement(text, [table])

    def update(
        self, table: str, payload: Mapping[str, Any], where: Conditions
    ) -> Statement:
        """
        UPDATE ... SET ... WHERE.

        Raises:
            InvalidInput: If the payload or the conditions are empty
        """
        quoted = self.quoter.table(table)
        if not payload:
            raise InvalidInput("Update payload must not be empty")
        conditions = self.decode(where)
        if not conditions:
            raise InvalidInput(f"Refusing to update every row of '{table}' without conditions")

        params = ParamCollector()
        assignments = ", ".join(
            f"{self.quoter.quote(column, 'column')} = {params.add(value)}"
            for column, value in payload.items()
        )
        fragments = render_conditions(conditions, self.quoter, params)
        return params.statement(
            f"UPDATE {quoted} SET {assignments} {where_clause(fragments)}", [table]
        )

    def delete(self, table: str, where: Conditions, soft: bool = False) -> Statement:
        """Hard DELETE, or soft delete by stamping ``deleted_at``."""
        quoted = self.quoter.table(table)
        conditions = self.decode(where)
        if not conditions:
            raise InvalidInput(f"Refusing to delete every row of '{table}' without conditions")

        params = ParamCollector()
        clause = where_clause(render_conditions(conditions, self.quoter, params))
        if soft:
            marker = self.quoter.quote(SOFT_DELETE_COLUMN, "column")
            text = f"UPDATE {quoted} SET {marker} = CURRENT_TIMESTAMP {clause}"
        else:
            text = f"DELETE FROM {quoted} {clause}"
        return params.statement(text, [table])

    def restore(self, table: str, where: Conditions) -> Statement:
        """Clear the soft-delete marker."""
        quoted = self.quoter.table(table)
        conditions = self.decode(where)
        if not conditions:
            raise InvalidInput(f"Refusing to restore every row of '{table}' without conditions")

        params = ParamCollector()
        marker = self.quoter.quote(SOFT_DELETE_COLUMN, "column")
        clause = where_clause(render_conditions(conditions, self.quoter, params))
        return params.statement(f"UPDATE {quoted} SET {marker} = NULL {clause}", [table])

    def increment(
        self,
        table: str,
        where: Conditions,
        amounts: Mapping[str, Any],
        sign: str = "+",
        extra: Optional[Mapping[str, Any]] = None,
    ) -> Statement:
        """``SET col = col + :amount`` for each column; ``extra`` adds plain assignments."""
        quoted = self.quoter.table(table)
        if sign not in ("+", "-"):
            raise InvalidInput(f"Invalid sign: {sign!r}")
        if not amounts:
            raise InvalidInput("increment needs at least one column")
        conditions = self.decode(where)
        if not conditions:
            raise InvalidInput("increment needs conditions")

        params = ParamCollector()
        assignments = []
        for column, amount in amounts.items():
            if isinstance(amount, bool) or not isinstance(amount, Number):
                raise InvalidInput(f"Amount for '{column}' must be numeric, got {amount!r}")
            quoted_column = self.quoter.quote(column, "column")
            assignments.append(f"{quoted_column} = {quoted_column} {sign} {params.add(amount)}")
        for column, value in (extra or {}).items():
            assignments.append(f"{self.quoter.quote(column, 'column')} = {params.add(value)}")

        fragments = render_conditions(conditions, self.quoter, params)
        return params.statement(
            f"UPDATE {quoted} SET {', '.join(assignments)} {where_clause(fragments)}", [table]
        )

    def truncate(self, table: str) -> list[Statement]:
        quoted = self.quoter.table(table)
        return [
            Statement.raw(text, tables=[table])
            for text in self.adapter.truncate_statements(quoted)
        ]

    def maintenance(self, table: str, action: str) -> Statement:
        quoted = self.quoter.table(table)
        return Statement.raw(
            self.adapter.maintenance_statement(action, quoted), tables=[table]
        )
