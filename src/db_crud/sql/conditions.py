"""Condition maps: decoding and rendering of WHERE predicates.

A condition map is an ordered mapping from column name to either a literal
value (equality) or a filter descriptor ``{"operator": ..., "value": ...}``.
Maps are decoded once into ``Condition`` objects; rendering never inspects
raw caller values again.
"""

from collections.abc import Mapping, Sequence
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from db_crud.errors import InvalidInput, UnsupportedOperator
from db_crud.sql.identifiers import IdentifierQuoter
from db_crud.sql.statements import ParamCollector


class Operator(str, Enum):
    EQ = "="
    NE = "!="
    GT = ">"
    GE = ">="
    LT = "<"
    LE = "<="
    LIKE = "LIKE"
    IN = "IN"
    NOT_IN = "NOT IN"
    BETWEEN = "BETWEEN"
    NOT_BETWEEN = "NOT BETWEEN"
    IS_NULL = "IS NULL"
    IS_NOT_NULL = "IS NOT NULL"


COMPARISON_OPERATORS = frozenset(
    {Operator.EQ, Operator.NE, Operator.GT, Operator.GE, Operator.LT, Operator.LE}
)
UNARY_OPERATORS = frozenset({Operator.IS_NULL, Operator.IS_NOT_NULL})

_OPERATOR_ALIASES = {"<>": Operator.NE, "==": Operator.EQ}


def parse_operator(value: Any) -> Operator:
    """Normalize an operator token (case and whitespace insensitive)."""
    if isinstance(value, Operator):
        return value
    if not isinstance(value, str):
        raise UnsupportedOperator(repr(value))
    normalized = " ".join(value.split()).upper()
    if normalized in _OPERATOR_ALIASES:
        return _OPERATOR_ALIASES[normalized]
    try:
        return Operator(normalized)
    except ValueError:
        raise UnsupportedOperator(value) from None


class Filter(BaseModel):
    """Operator-tagged filter descriptor."""

    model_config = ConfigDict(frozen=True)

    operator: Operator = Operator.EQ
    value: Any = None

    @field_validator("operator", mode="before")
    @classmethod
    def validate_operator(cls, v: Any) -> Operator:
        return parse_operator(v)


class Condition(BaseModel):
    """One decoded predicate: ``column operator value``."""

    model_config = ConfigDict(frozen=True)

    column: str
    operator: Operator
    value: Any = None

    def render(
        self,
        quoter: IdentifierQuoter,
        params: ParamCollector,
        qualifier: Optional[str] = None,
    ) -> str:
        """Render to SQL, registering bound values with ``params``."""
        column = (
            quoter.qualified(qualifier, self.column)
            if qualifier
            else quoter.column(self.column)
        )
        op = self.operator

        if op in UNARY_OPERATORS:
            return f"{column} {op.value}"

        if op in (Operator.IN, Operator.NOT_IN):
            values = list(self.value)
            if not values:
                # IN () is not valid SQL; an empty set matches nothing
                return "1 = 0" if op is Operator.IN else "1 = 1"
            placeholders = ", ".join(params.extend(values))
            return f"{column} {op.value} ({placeholders})"

        if op in (Operator.BETWEEN, Operator.NOT_BETWEEN):
            low, high = self.value
            return f"{column} {op.value} {params.add(low)} AND {params.add(high)}"

        return f"{column} {op.value} {params.add(self.value)}"


def _coerce_sequence(value: Any) -> list[Any]:
    if isinstance(value, (str, bytes)) or not isinstance(value, (Sequence, set, frozenset)):
        return [value]
    return list(value)


def _coerce_range(column: str, value: Any) -> tuple[Any, Any]:
    if isinstance(value, Mapping):
        if "min" not in value or "max" not in value:
            raise InvalidInput(f"BETWEEN on '{column}' needs 'min' and 'max'")
        return value["min"], value["max"]
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)) and len(value) == 2:
        return value[0], value[1]
    raise InvalidInput(f"BETWEEN on '{column}' needs a {{min, max}} pair")


def make_condition(column: str, operator: Any, value: Any = None) -> Condition:
    """Build a condition, normalizing the value for the operator."""
    op = parse_operator(operator)

    if op in UNARY_OPERATORS:
        return Condition(column=column, operator=op)
    if op is Operator.LIKE:
        return Condition(column=column, operator=op, value=f"%{value}%")
    if op in (Operator.IN, Operator.NOT_IN):
        return Condition(column=column, operator=op, value=_coerce_sequence(value))
    if op in (Operator.BETWEEN, Operator.NOT_BETWEEN):
        return Condition(column=column, operator=op, value=_coerce_range(column, value))
    if value is None and op is Operator.EQ:
        return Condition(column=column, operator=Operator.IS_NULL)
    if value is None and op is Operator.NE:
        return Condition(column=column, operator=Operator.IS_NOT_NULL)
    return Condition(column=column, operator=op, value=value)


def decode_conditions(conditions: Optional[Mapping[str, Any]]) -> list[Condition]:
    """
    Decode a condition map into conditions, preserving key order.

    Literal values mean equality (``None`` means IS NULL). ``Filter``
    instances and mappings are filter descriptors; a mapping without an
    ``operator`` key means equality on its ``value``. ``Condition``
    instances pass through unchanged.
    """
    if not conditions:
        return []
    if not isinstance(conditions, Mapping):
        raise InvalidInput("Conditions must be a mapping of column to value")

    decoded = []
    for column, spec in conditions.items():
        if isinstance(spec, Condition):
            decoded.append(spec)
        elif isinstance(spec, Filter):
            decoded.append(make_condition(column, spec.operator, spec.value))
        elif isinstance(spec, Mapping):
            if "operator" not in spec and "value" not in spec:
                raise InvalidInput(
                    f"Filter for '{column}' needs an 'operator' or 'value' key"
                )
            descriptor = Filter.model_validate(dict(spec))
            decoded.append(make_condition(column, descriptor.operator, descriptor.value))
        else:
            decoded.append(make_condition(column, Operator.EQ, spec))
    return decoded


def render_conditions(
    conditions: Sequence[Condition],
    quoter: IdentifierQuoter,
    params: ParamCollector,
    qualifier: Optional[str] = None,
) -> list[str]:
    return [condition.render(quoter, params, qualifier) for condition in conditions]


def where_clause(fragments: Sequence[str], joiner: str = "AND") -> str:
    """``WHERE a AND b``, or an empty string for no fragments (matches all rows)."""
    if not fragments:
        return ""
    return "WHERE " + f" {joiner} ".join(fragments)


class RawClause(BaseModel):
    """Caller-trusted SQL fragment with its own named parameters."""

    model_config = ConfigDict(frozen=True)

    sql: str
    params: dict[str, Any] = Field(default_factory=dict)
