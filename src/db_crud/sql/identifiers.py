"""Identifier safety layer.

Every table and column name that ends up in statement text passes through
``IdentifierQuoter``. Table names must be whitelisted, and every identifier
must match a conservative charset before it is quoted with the dialect's
identifier preparer. Values never pass through here; they are always bound
as parameters.
"""

import re
from typing import Any, Iterable

from sqlalchemy.engine import Dialect

from db_crud.errors import ForbiddenTable, InvalidIdentifier, InvalidInput

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_$]*$")
WILDCARD = "*"

# Literal text allowed for GROUP_CONCAT separators (MySQL cannot bind them)
SEPARATOR_PATTERN = re.compile(r"^[^'\"\\\x00-\x1f]{0,16}$")


def check_identifier(name: Any, kind: str = "identifier") -> str:
    """Return ``name`` if it is a safe bare identifier, else raise."""
    if not isinstance(name, str) or not IDENTIFIER_PATTERN.match(name):
        raise InvalidIdentifier(str(name), kind)
    return name


class IdentifierQuoter:
    """Whitelist checks and identifier quoting for one dialect."""

    def __init__(self, allowed_tables: Iterable[str], dialect: Dialect):
        self.allowed_tables = frozenset(
            check_identifier(table, "table") for table in allowed_tables
        )
        self._preparer = dialect.identifier_preparer

    def is_allowed(self, table: str) -> bool:
        return table in self.allowed_tables

    def validate_table(self, table: str) -> str:
        """Raise ForbiddenTable unless ``table`` is whitelisted."""
        if not isinstance(table, str) or table not in self.allowed_tables:
            raise ForbiddenTable(str(table))
        return table

    def validate_tables(self, *tables: str) -> None:
        for table in tables:
            self.validate_table(table)

    def quote(self, name: str, kind: str = "identifier") -> str:
        return self._preparer.quote_identifier(check_identifier(name, kind))

    def table(self, table: str) -> str:
        """Validate against the whitelist and quote."""
        return self.quote(self.validate_table(table), "table")

    def column(self, name: str) -> str:
        """
        Quote a column reference.

        Accepts ``col``, ``qualifier.col``, ``qualifier.*`` and ``*``.
        """
        if name == WILDCARD:
            return WILDCARD
        if not isinstance(name, str):
            raise InvalidIdentifier(str(name), "column")

        parts = name.split(".")
        if len(parts) == 1:
            return self.quote(name, "column")
        if len(parts) == 2:
            qualifier, column = parts
            quoted_column = (
                WILDCARD if column == WILDCARD else self.quote(column, "column")
            )
            return f"{self.quote(qualifier, 'qualifier')}.{quoted_column}"
        raise InvalidIdentifier(name, "column")

    def columns(self, names: Iterable[str]) -> str:
        quoted = [self.column(name) for name in names]
        if not quoted:
            raise InvalidInput("Column list must not be empty")
        return ", ".join(quoted)

    def qualified(self, qualifier: str, column: str) -> str:
        """Quote ``column`` and prefix it with ``qualifier`` unless already qualified."""
        if isinstance(column, str) and "." in column:
            return self.column(column)
        return f"{self.quote(qualifier, 'qualifier')}.{self.column(column)}"

    def separator_literal(self, separator: str) -> str:
        """Render a short separator string as a SQL literal."""
        if not isinstance(separator, str) or not SEPARATOR_PATTERN.match(separator):
            raise InvalidInput(f"Invalid separator: {separator!r}")
        return f"'{separator}'"
