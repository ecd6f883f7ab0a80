"""Parameterized statement container and bind-parameter numbering."""

from typing import Any, Iterable, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from db_crud.errors import InvalidInput


class Statement(BaseModel):
    """SQL text plus its bind parameters, in placeholder order."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(..., description="SQL text with :name placeholders")
    params: dict[str, Any] = Field(
        default_factory=dict, description="Bind values keyed by placeholder name"
    )
    tables: frozenset[str] = Field(
        default_factory=frozenset, description="Tables the statement reads or writes"
    )
    returns_id: bool = Field(
        default=False, description="Result row carries the generated id (RETURNING)"
    )

    @property
    def values(self) -> list[Any]:
        """Bound values, left to right."""
        return list(self.params.values())

    @classmethod
    def raw(
        cls,
        text: str,
        params: Optional[Mapping[str, Any]] = None,
        tables: Iterable[str] = (),
    ) -> "Statement":
        return cls(text=text, params=dict(params or {}), tables=frozenset(tables))


class ParamCollector:
    """Hands out ``:p0, :p1, ...`` placeholders in the order values are added."""

    def __init__(self, prefix: str = "p"):
        self._prefix = prefix
        self._params: dict[str, Any] = {}
        self._counter = 0

    def add(self, value: Any) -> str:
        name = f"{self._prefix}{self._counter}"
        while name in self._params:
            self._counter += 1
            name = f"{self._prefix}{self._counter}"
        self._counter += 1
        self._params[name] = value
        return f":{name}"

    def extend(self, values: Iterable[Any]) -> list[str]:
        return [self.add(value) for value in values]

    def merge(self, named: Mapping[str, Any]) -> None:
        """Add caller-named parameters from a raw fragment."""
        for name, value in named.items():
            if name in self._params:
                raise InvalidInput(f"Parameter name collides with a generated one: {name}")
            self._params[name] = value

    @property
    def params(self) -> dict[str, Any]:
        return dict(self._params)

    def __len__(self) -> int:
        return len(self._params)

    def statement(self, text: str, tables: Iterable[str], returns_id: bool = False) -> Statement:
        return Statement(
            text=text,
            params=self.params,
            tables=frozenset(tables),
            returns_id=returns_id,
        )
