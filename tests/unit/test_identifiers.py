"""Unit tests for the identifier safety layer."""

import pytest
from sqlalchemy.dialects import mysql, sqlite

from db_crud.errors import ForbiddenTable, InvalidIdentifier, InvalidInput
from db_crud.sql.identifiers import IdentifierQuoter, check_identifier


@pytest.fixture
def quoter() -> IdentifierQuoter:
    return IdentifierQuoter(["users", "orders"], sqlite.dialect())


class TestCheckIdentifier:
    """Charset validation of bare identifiers."""

    @pytest.mark.parametrize("name", ["users", "_private", "col$1", "Mixed_Case9"])
    def test_accepts_safe_names(self, name):
        assert check_identifier(name) == name

    @pytest.mark.parametrize(
        "name",
        ["", "1abc", "a b", "a;b", 'a"b', "a`b", "name--", "users.id", None, 42],
    )
    def test_rejects_unsafe_names(self, name):
        with pytest.raises(InvalidIdentifier):
            check_identifier(name)

    def test_error_names_kind(self):
        with pytest.raises(InvalidIdentifier) as exc_info:
            check_identifier("bad name", "column")
        assert exc_info.value.kind == "column"
        assert "column" in str(exc_info.value)


class TestWhitelist:
    """Table whitelist enforcement."""

    def test_allowed_table_passes(self, quoter):
        assert quoter.validate_table("users") == "users"
        assert quoter.is_allowed("orders")

    def test_unlisted_table_is_forbidden(self, quoter):
        with pytest.raises(ForbiddenTable) as exc_info:
            quoter.validate_table("secrets")
        assert exc_info.value.table == "secrets"

    def test_lookup_is_case_sensitive(self, quoter):
        with pytest.raises(ForbiddenTable):
            quoter.validate_table("USERS")

    def test_non_string_table_is_forbidden(self, quoter):
        with pytest.raises(ForbiddenTable):
            quoter.validate_table(None)

    def test_validate_tables_checks_every_name(self, quoter):
        with pytest.raises(ForbiddenTable):
            quoter.validate_tables("users", "orders", "secrets")

    def test_whitelist_entries_must_be_identifiers(self):
        with pytest.raises(InvalidIdentifier):
            IdentifierQuoter(["users", "bad-name"], sqlite.dialect())


class TestQuoting:
    """Dialect quoting of table and column references."""

    def test_table_is_quoted(self, quoter):
        assert quoter.table("users") == '"users"'

    def test_reserved_word_is_quoted(self, quoter):
        assert quoter.quote("order", "column") == '"order"'

    def test_mysql_uses_backticks(self):
        quoter = IdentifierQuoter(["users"], mysql.dialect())
        assert quoter.table("users") == "`users`"
        assert quoter.column("users.name") == "`users`.`name`"

    def test_qualified_column(self, quoter):
        assert quoter.column("users.name") == '"users"."name"'

    def test_wildcards(self, quoter):
        assert quoter.column("*") == "*"
        assert quoter.column("users.*") == '"users".*'

    def test_too_many_parts_rejected(self, quoter):
        with pytest.raises(InvalidIdentifier):
            quoter.column("db.users.name")

    def test_injection_attempt_rejected(self, quoter):
        with pytest.raises(InvalidIdentifier):
            quoter.column("name; DROP TABLE users")

    def test_qualified_keeps_existing_qualifier(self, quoter):
        assert quoter.qualified("users", "name") == '"users"."name"'
        assert quoter.qualified("users", "o.total") == '"o"."total"'

    def test_empty_column_list_rejected(self, quoter):
        with pytest.raises(InvalidInput):
            quoter.columns([])

    def test_separator_literal(self, quoter):
        assert quoter.separator_literal(", ") == "', '"

    @pytest.mark.parametrize("separator", ["'", '"', "\\", "x" * 17, None])
    def test_separator_literal_rejects_unsafe(self, quoter, separator):
        with pytest.raises(InvalidInput):
            quoter.separator_literal(separator)
