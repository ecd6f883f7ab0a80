"""Structured inputs for joins, aggregates and ordering."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from db_crud.errors import InvalidInput, UnsupportedJoinType


class JoinType(str, Enum):
    INNER = "INNER"
    LEFT = "LEFT"
    RIGHT = "RIGHT"
    FULL = "FULL"


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


AGGREGATE_FUNCTIONS = {"COUNT", "SUM", "AVG", "MIN", "MAX"}


def parse_direction(value: Any) -> SortDirection:
    """Normalize 'asc'/'DESC'/SortDirection to a SortDirection."""
    if isinstance(value, SortDirection):
        return value
    normalized = str(value or "ASC").strip().upper()
    try:
        return SortDirection(normalized)
    except ValueError:
        raise InvalidInput(f"Invalid sort direction: {value!r}") from None


class JoinSpec(BaseModel):
    """One edge of a join graph rooted at the base table."""

    table: str = Field(..., description="Joined table (must be whitelisted)")
    alias: Optional[str] = Field(None, description="Alias; defaults to the table name")
    type: JoinType = Field(default=JoinType.INNER, description="Join type")
    base_column: str = Field(..., description="Column on the base table")
    join_column: str = Field(..., description="Column on the joined table")

    @field_validator("type", mode="before")
    @classmethod
    def validate_type(cls, v: Any) -> JoinType:
        if isinstance(v, JoinType):
            return v
        normalized = str(v).strip().upper()
        if normalized == "FULL OUTER":
            normalized = "FULL"
        try:
            return JoinType(normalized)
        except ValueError:
            raise UnsupportedJoinType(str(v)) from None

    @property
    def effective_alias(self) -> str:
        return self.alias or self.table


class AggregateSpec(BaseModel):
    """``func(column) AS alias`` clause of an aggregate query."""

    func: str = Field(..., description="Aggregate function name")
    column: str = Field(..., description="Column name, or '*' for COUNT(*)")
    alias: Optional[str] = Field(None, description="Result alias; defaults to column")

    @field_validator("func", mode="before")
    @classmethod
    def validate_func(cls, v: Any) -> str:
        normalized = str(v).strip().upper()
        if normalized not in AGGREGATE_FUNCTIONS:
            raise InvalidInput(
                f"Unsupported aggregate function: {v!r}. "
                f"Supported: {', '.join(sorted(AGGREGATE_FUNCTIONS))}"
            )
        return normalized

    @model_validator(mode="after")
    def check_alias(self) -> "AggregateSpec":
        if self.column == "*" and not self.alias:
            raise InvalidInput("Aggregates over '*' need an explicit alias")
        return self

    @property
    def effective_alias(self) -> str:
        return self.alias or self.column


class OrderBy(BaseModel):
    """ORDER BY term."""

    column: str
    direction: SortDirection = SortDirection.ASC

    @field_validator("direction", mode="before")
    @classmethod
    def validate_direction(cls, v: Any) -> SortDirection:
        return parse_direction(v)

    @classmethod
    def parse(cls, value: Any) -> "OrderBy":
        """Accept ``"col"``, ``"col DESC"``, a mapping or an OrderBy."""
        if isinstance(value, OrderBy):
            return value
        if isinstance(value, str):
            parts = value.split()
            if len(parts) == 1:
                return cls(column=parts[0])
            if len(parts) == 2:
                return cls(column=parts[0], direction=parts[1])
            raise InvalidInput(f"Invalid ORDER BY term: {value!r}")
        if isinstance(value, dict):
            return cls.model_validate(value)
        raise InvalidInput(f"Invalid ORDER BY term: {value!r}")
