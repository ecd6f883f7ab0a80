"""Exception hierarchy for db-crud operations."""

from typing import Optional


class DbCrudError(Exception):
    """Base exception for db-crud errors."""


class ForbiddenTable(DbCrudError):
    """Table is not in the instance whitelist."""

    def __init__(self, table: str):
        self.table = table
        super().__init__(f"Table '{table}' is not allowed.")


class InvalidIdentifier(DbCrudError):
    """Identifier contains characters outside the safe identifier charset."""

    def __init__(self, identifier: str, kind: str = "identifier"):
        self.identifier = identifier
        self.kind = kind
        super().__init__(f"Invalid {kind}: {identifier!r}")


class InvalidInput(DbCrudError):
    """Structured input (conditions, payloads, specs) is malformed."""


class UnsupportedOperator(InvalidInput):
    """Filter descriptor names an operator outside the supported set."""

    def __init__(self, operator: str):
        self.operator = operator
        super().__init__(f"Unsupported operator: {operator}")


class UnsupportedJoinType(InvalidInput):
    """Join descriptor names an unknown join type, or too many FULL joins."""

    def __init__(self, join_type: str, reason: Optional[str] = None):
        self.join_type = join_type
        message = f"Unsupported join type: {join_type}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class InconsistentRows(InvalidInput):
    """Bulk rows do not share the same column set."""

    def __init__(self, index: int, expected: list[str], got: list[str]):
        self.index = index
        self.expected = expected
        self.got = got
        super().__init__(
            f"Row {index} has columns {got}, expected {expected} "
            "(all rows in a bulk statement must share the same columns)"
        )


class DangerousStatement(DbCrudError):
    """Raw statement contains a blocked keyword."""

    def __init__(self, keyword: str):
        self.keyword = keyword
        super().__init__(f"Dangerous SQL keyword detected: {keyword}")


class UnsupportedFeature(DbCrudError):
    """Operation is not available for the connected database dialect."""


class ProviderError(DbCrudError):
    """Failure raised by the database driver or connection pool."""

    def __init__(self, message: str, statement: Optional[str] = None):
        self.statement = statement
        super().__init__(message)


class NotFound(DbCrudError):
    """Requested record does not exist."""
