"""Module tests for the facade: whitelist, cache, transactions, hooks and operations."""

import logging

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine

from db_crud import Database, HookContext, create_database
from db_crud.errors import (
    DangerousStatement,
    ForbiddenTable,
    InvalidIdentifier,
    InvalidInput,
    ProviderError,
)
from db_crud.models.status import CacheStats, PoolInfo

WHITELIST = {
    "users",
    "orders",
    "roles",
    "role_user",
    "audit_logs",
    "left_items",
    "right_items",
}


def noop(rows, index):
    return None


FORBIDDEN_CALLS = [
    ("insert", ("secrets", {"value": "x"})),
    ("insert_and_return", ("secrets", {"value": "x"})),
    ("bulk_insert", ("secrets", [{"value": "x"}])),
    ("upsert", ("secrets", {"id": 1, "value": "x"})),
    ("bulk_upsert", ("secrets", [{"id": 1, "value": "x"}])),
    ("find_or_create", ("secrets", {"value": "x"})),
    ("clone", ("secrets", 1)),
    ("update_by_id", ("secrets", 1, {"value": "y"})),
    ("update_where", ("secrets", {"id": 1}, {"value": "y"})),
    ("batch_update", ("secrets", [{"id": 1, "value": "y"}])),
    ("increment", ("secrets", 1, "id")),
    ("delete_by_id", ("secrets", 1)),
    ("batch_delete", ("secrets", [1])),
    ("restore", ("secrets", 1)),
    ("truncate", ("secrets",)),
    ("select", ("secrets",)),
    ("find_one", ("secrets", {"id": 1})),
    ("get_by_ids", ("secrets", [1])),
    ("first", ("secrets",)),
    ("random", ("secrets",)),
    ("pluck", ("secrets", "value")),
    ("chunk", ("secrets", 10, noop)),
    ("paginate", ("secrets",)),
    ("cursor_paginate", ("secrets",)),
    ("only_trashed", ("secrets",)),
    ("where_in", ("secrets", "id", [1])),
    ("where_contains", ("secrets", "value", "x")),
    ("where_year", ("secrets", "created_at", 2024)),
    ("created_today", ("secrets",)),
    ("search", ("secrets", ["value"], "x")),
    ("json_extract", ("secrets", "value", "$.a")),
    ("count", ("secrets",)),
    ("aggregate", ("secrets", [{"func": "MAX", "column": "id"}])),
    ("median", ("secrets", "id")),
    ("percentile", ("secrets", "id", 50)),
    ("group_concat", ("secrets", "value", "id")),
    ("distinct_values", ("secrets", "value")),
    ("join", ("users", "secrets", "id", "id")),
    ("multi_join", ("users", [{"table": "secrets", "base_column": "id", "join_column": "id"}])),
    ("has_many", ("users", "secrets", 1)),
    ("belongs_to", ("secrets", "users", 1)),
    ("get_table_schema", ("secrets",)),
    ("get_table_info", ("secrets",)),
    ("table_exists", ("secrets",)),
    ("analyze_table", ("secrets",)),
]


class TestWhitelist:
    """Every table argument is checked before anything reaches the database."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "method,args", FORBIDDEN_CALLS, ids=[call[0] for call in FORBIDDEN_CALLS]
    )
    async def test_forbidden_table(self, db: Database, statement_counter, method, args):
        with pytest.raises(ForbiddenTable) as exc_info:
            await getattr(db, method)(*args)
        assert exc_info.value.table == "secrets"
        assert statement_counter.count == 0

    @pytest.mark.asyncio
    async def test_invalid_column_name(self, db: Database, statement_counter):
        with pytest.raises(InvalidIdentifier):
            await db.find_one("users", {"name; DROP TABLE users": "x"})
        assert statement_counter.count == 0

    @pytest.mark.asyncio
    async def test_properties(self, db: Database):
        assert db.allowed_tables == frozenset(WHITELIST)
        assert db.dialect == "sqlite"


class TestCache:
    """Opt-in read caching with per-table invalidation."""

    @pytest.mark.asyncio
    async def test_repeated_read_hits_cache(self, cached_db: Database, statement_counter):
        await cached_db.insert("users", {"name": "Ann"})
        statement_counter.reset()

        first = await cached_db.find_one("users", {"id": 1}, use_cache=True)
        second = await cached_db.find_one("users", {"id": 1}, use_cache=True)

        assert first == second
        assert statement_counter.count == 1
        assert cached_db.get_cache_stats().hits == 1

    @pytest.mark.asyncio
    async def test_write_invalidates_same_table(self, cached_db: Database, statement_counter):
        await cached_db.insert("users", {"name": "Ann"})
        assert await cached_db.count("users", use_cache=True) == 1

        await cached_db.insert("users", {"name": "Bob"})
        statement_counter.reset()

        assert await cached_db.count("users", use_cache=True) == 2
        assert statement_counter.count == 1

    @pytest.mark.asyncio
    async def test_write_to_other_table_keeps_entry(
        self, cached_db: Database, statement_counter
    ):
        await cached_db.insert("users", {"name": "Ann"})
        await cached_db.count("users", use_cache=True)

        await cached_db.insert("orders", {"user_id": 1, "total": 3.0})
        statement_counter.reset()

        assert await cached_db.count("users", use_cache=True) == 1
        assert statement_counter.count == 0

    @pytest.mark.asyncio
    async def test_raw_write_invalidates(self, cached_db: Database, statement_counter):
        await cached_db.insert("users", {"name": "Ann", "age": 30})
        await cached_db.find_one("users", {"id": 1}, use_cache=True)

        await cached_db.query("UPDATE users SET age = :age WHERE id = :id", {"age": 31, "id": 1})
        statement_counter.reset()

        record = await cached_db.find_one("users", {"id": 1}, use_cache=True)
        assert record["age"] == 31
        assert statement_counter.count == 1

    @pytest.mark.asyncio
    async def test_cached_raw_write_invalidates(self, cached_db: Database, statement_counter):
        await cached_db.insert("users", {"name": "Ann"})
        rows = await cached_db.select_where("users", {"id": 1}, use_cache=True)
        assert rows[0]["name"] == "Ann"

        result = await cached_db.query(
            "UPDATE users SET name = :n WHERE id = 1", {"n": "Zed"}, use_cache=True
        )
        assert result == []
        statement_counter.reset()

        rows = await cached_db.select_where("users", {"id": 1}, use_cache=True)
        assert rows[0]["name"] == "Zed"
        assert statement_counter.count == 1

    @pytest.mark.asyncio
    async def test_cached_raw_read(self, cached_db: Database, statement_counter):
        await cached_db.insert("users", {"name": "Ann"})
        statement_counter.reset()

        sql = "SELECT name FROM users WHERE id = :id"
        assert await cached_db.query(sql, {"id": 1}, use_cache=True) == [{"name": "Ann"}]
        assert await cached_db.get_one(sql, {"id": 1}, use_cache=True) == {"name": "Ann"}
        assert statement_counter.count == 1

    @pytest.mark.asyncio
    async def test_zero_expiry_never_serves(self, make_db, statement_counter):
        db = await make_db(enable_query_cache=True, cache_expiry_ms=0)
        await db.count("users", use_cache=True)
        await db.count("users", use_cache=True)
        assert statement_counter.count == 2

    @pytest.mark.asyncio
    async def test_use_cache_ignored_when_disabled(self, db: Database, statement_counter):
        await db.count("users", use_cache=True)
        await db.count("users", use_cache=True)
        assert statement_counter.count == 2
        assert db.get_cache_stats().size == 0

    @pytest.mark.asyncio
    async def test_stats_and_clear(self, cached_db: Database):
        await cached_db.count("users", use_cache=True)
        await cached_db.count("orders", use_cache=True)

        stats = cached_db.get_cache_stats()
        assert isinstance(stats, CacheStats)
        assert stats.enabled is True
        assert stats.size == 2
        assert stats.tables == ["orders", "users"]

        cached_db.clear_cache("users")
        assert cached_db.get_cache_stats().tables == ["orders"]

        cached_db.clear_cache()
        assert cached_db.get_cache_stats().size == 0

    @pytest.mark.asyncio
    async def test_clear_cache_checks_whitelist(self, cached_db: Database):
        with pytest.raises(ForbiddenTable):
            cached_db.clear_cache("secrets")


class TestTransactions:
    @pytest.mark.asyncio
    async def test_commit(self, db: Database):
        async def body(tx):
            first = await tx.insert("users", {"name": "Ann"})
            second = await tx.insert("users", {"name": "Bob"})
            return [first, second]

        assert await db.transaction(body) == [1, 2]
        assert await db.count("users") == 2

    @pytest.mark.asyncio
    async def test_exception_rolls_back(self, db: Database):
        async def body(tx):
            await tx.insert("users", {"name": "Ann"})
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            await db.transaction(body)
        assert await db.count("users") == 0

    @pytest.mark.asyncio
    async def test_statement_failure_rolls_back(self, db: Database):
        async def body(tx):
            await tx.insert("users", {"name": "Ann", "email": "a@x.com"})
            await tx.insert("users", {"name": "Bob", "email": "a@x.com"})

        with pytest.raises(ProviderError):
            await db.transaction(body)
        assert await db.count("users") == 0

    @pytest.mark.asyncio
    async def test_sync_body(self, db: Database):
        assert await db.transaction(lambda tx: 42) == 42

    @pytest.mark.asyncio
    async def test_handle_helpers(self, db: Database):
        async def body(tx):
            user_id = await tx.insert("users", {"name": "Ann", "age": 30})
            await tx.insert("users", {"name": "Bob", "age": 40})
            assert await tx.update_by_id("users", user_id, {"age": 31}) == 1
            assert (await tx.find_one("users", {"id": user_id}))["age"] == 31
            assert len(await tx.select_where("users", order_by="id")) == 2
            assert await tx.delete_by_id("users", 2) == 1
            count = await tx.fetch_one("SELECT COUNT(*) AS n FROM users")
            return count["n"]

        assert await db.transaction(body) == 1
        assert await db.pluck("users", "name") == ["Ann"]

    @pytest.mark.asyncio
    async def test_handle_where_helpers(self, users_db: Database):
        async def body(tx):
            assert await tx.update_where("users", {"status": "inactive"}, {"age": 0}) == 2
            assert await tx.delete_where("users", {"age": 0}) == 2
            return await tx.fetch_all("SELECT name FROM users ORDER BY id")

        rows = await users_db.transaction(body)
        assert [row["name"] for row in rows] == ["Ann", "Bob", "Dee"]

    @pytest.mark.asyncio
    async def test_commit_invalidates_cache(self, cached_db: Database, statement_counter):
        await cached_db.insert("users", {"name": "Ann"})
        assert await cached_db.count("users", use_cache=True) == 1

        async def body(tx):
            await tx.execute("INSERT INTO users (name) VALUES (:name)", {"name": "Bob"})

        await cached_db.transaction(body)
        statement_counter.reset()

        assert await cached_db.count("users", use_cache=True) == 2
        assert statement_counter.count == 1


class TestHooks:
    @pytest.mark.asyncio
    async def test_before_hook_rewrites_data(self, db: Database):
        def tag(context: HookContext) -> HookContext:
            return context.model_copy(update={"data": {**context.data, "status": "hooked"}})

        db.add_hook("before", "insert", tag)
        user_id = await db.insert("users", {"name": "Ann"})
        assert (await db.find_one("users", {"id": user_id}))["status"] == "hooked"

    @pytest.mark.asyncio
    async def test_after_hook_sees_id(self, db: Database):
        seen = []

        async def record(context: HookContext) -> None:
            seen.append((context.table, context.id))

        db.add_hook("after", "insert", record)
        user_id = await db.insert("users", {"name": "Ann"})
        assert seen == [("users", user_id)]

    @pytest.mark.asyncio
    async def test_update_and_delete_contexts(self, users_db: Database):
        contexts = []
        users_db.add_hook("before", "update", contexts.append)
        users_db.add_hook("before", "delete", contexts.append)

        await users_db.update_by_id("users", 1, {"age": 50})
        await users_db.delete_by_id("users", 2, soft=True)

        update, delete = contexts
        assert update.operation == "update"
        assert update.conditions == {"id": 1}
        assert update.data == {"age": 50}
        assert delete.operation == "delete"
        assert delete.conditions == {"id": 2}
        assert delete.data == {"soft": True}

    @pytest.mark.asyncio
    async def test_disabled_hooks_do_not_run(self, make_db):
        db = await make_db(enable_hooks=False)

        def explode(context):
            raise AssertionError("hook should not run")

        db.add_hook("before", "insert", explode)
        assert await db.insert("users", {"name": "Ann"}) == 1

    @pytest.mark.asyncio
    async def test_invalid_return_aborts(self, db: Database, statement_counter):
        db.add_hook("before", "insert", lambda context: "nope")
        with pytest.raises(InvalidInput):
            await db.insert("users", {"name": "Ann"})
        assert statement_counter.count == 0

    @pytest.mark.asyncio
    async def test_remove_hook(self, db: Database):
        db.add_hook("before", "insert", lambda context: "nope")
        db.remove_hook("before", "insert")
        assert await db.insert("users", {"name": "Ann"}) == 1

    @pytest.mark.asyncio
    async def test_add_hook_validation(self, db: Database):
        with pytest.raises(InvalidInput):
            db.add_hook("before", "select", lambda context: None)
        with pytest.raises(InvalidInput):
            db.add_hook("during", "insert", lambda context: None)


class TestRawQueries:
    @pytest.mark.asyncio
    async def test_query_and_get_one(self, users_db: Database):
        rows = await users_db.query(
            "SELECT name FROM users WHERE age > :age ORDER BY age", {"age": 35}
        )
        assert rows == [{"name": "Eve"}, {"name": "Cid"}]
        assert await users_db.get_one("SELECT name FROM users WHERE id = :id", {"id": 2}) == {
            "name": "Bob"
        }
        assert await users_db.get_one("SELECT name FROM users WHERE id = 99") is None

    @pytest.mark.asyncio
    async def test_guarded_raw(self, users_db: Database, statement_counter):
        assert await users_db.raw("SELECT created_at FROM users WHERE id = 1")

        with pytest.raises(DangerousStatement) as exc_info:
            await users_db.raw("DROP TABLE users")
        assert exc_info.value.keyword == "DROP"
        with pytest.raises(DangerousStatement):
            await users_db.raw("delete from users")
        assert statement_counter.count == 1

    @pytest.mark.asyncio
    async def test_raw_unsafe(self, users_db: Database):
        await users_db.raw_unsafe("DELETE FROM users WHERE id = :id", {"id": 1})
        assert await users_db.count("users") == 4

    @pytest.mark.asyncio
    async def test_driver_error(self, db: Database):
        with pytest.raises(ProviderError):
            await db.query("SELECT * FROM no_such_table")

    @pytest.mark.asyncio
    async def test_slow_query_warning(self, db: Database, monkeypatch, caplog):
        monkeypatch.setattr(db.executor, "SLOW_QUERY_THRESHOLD_MS", -1)
        caplog.set_level(logging.WARNING, logger="db_crud.core.executor")

        await db.count("users")

        assert "Slow query" in caplog.text


class TestOperational:
    @pytest.mark.asyncio
    async def test_health_check(self, db: Database):
        status = await db.health_check()
        assert status.is_healthy
        assert status.error is None

        await db.dispose()
        assert db.connection.is_initialized is False
        status = await db.health_check()
        assert status.status == "unhealthy"
        assert status.error

    @pytest.mark.asyncio
    async def test_pool_info(self, db: Database):
        info = db.get_pool_info()
        assert isinstance(info, PoolInfo)
        assert info.pool_class
        assert info.checked_out == 0

    @pytest.mark.asyncio
    async def test_log_audit(self, db: Database):
        audit_id = await db.log_audit("update", "users", {"id": 1, "tags": {"a"}}, user_id=7)
        assert audit_id == 1

        entry = await db.find_one("audit_logs", {"id": audit_id})
        assert entry["action"] == "update"
        assert entry["table_name"] == "users"
        assert entry["data"] == '{"id":1,"tags":["a"]}'
        assert entry["user_id"] == 7

    @pytest.mark.asyncio
    async def test_log_audit_needs_whitelisted_table(self, sqlite_url):
        db = create_database(sqlite_url, ["users"])
        assert await db.log_audit("insert", "users", {}) is None

    @pytest.mark.asyncio
    async def test_log_audit_failure_is_swallowed(self, tmp_path):
        async with create_database(
            f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}", ["audit_logs"]
        ) as db:
            assert await db.log_audit("insert", "users", {"id": 1}) is None

    @pytest.mark.asyncio
    async def test_log_audit_unserializable_data(self, db: Database, caplog):
        with caplog.at_level(logging.WARNING, logger="db_crud"):
            assert await db.log_audit("create", "users", {"obj": object()}) is None
        assert "Audit logging failed" in caplog.text
        assert await db.count("audit_logs") == 0

    @pytest.mark.asyncio
    async def test_log_audit_hook_error(self, db: Database, caplog):
        def explode(context):
            raise ValueError("hook failed")

        db.add_hook("before", "insert", explode)
        with caplog.at_level(logging.WARNING, logger="db_crud"):
            assert await db.log_audit("create", "users", {"id": 1}) is None
        assert "hook failed" in caplog.text


class TestCreateDatabase:
    @pytest.mark.asyncio
    async def test_wraps_existing_engine(self, db: Database, sqlite_url):
        engine = create_async_engine(sqlite_url)
        try:
            async with create_database(engine, WHITELIST) as wrapped:
                await wrapped.insert("users", {"name": "Ann"})
                assert await wrapped.count("users") == 1

            async with engine.connect() as conn:
                result = await conn.execute(text("SELECT COUNT(*) FROM users"))
                assert result.scalar() == 1
        finally:
            await engine.dispose()

    def test_rejects_unknown_source(self):
        with pytest.raises(TypeError):
            create_database(42, ["users"])

    def test_options_mapping(self, sqlite_url):
        db = create_database(sqlite_url, ["users"], {"enable_query_cache": True})
        assert db.options.enable_query_cache is True
        assert db.get_cache_stats().enabled is True


class TestSchema:
    """Schema introspection and maintenance."""

    @pytest.mark.asyncio
    async def test_table_schema(self, db: Database):
        columns = {column.name: column for column in await db.get_table_schema("users")}
        assert {"id", "name", "email", "created_at", "deleted_at"} <= set(columns)
        assert columns["id"].primary_key is True
        assert columns["name"].nullable is False
        assert columns["status"].indexed is True

    @pytest.mark.asyncio
    async def test_table_indexes(self, db: Database):
        indexes = await db.get_table_indexes("users")
        assert indexes[0].primary is True
        assert indexes[0].columns == ["id"]
        assert "ix_users_status" in {index.name for index in indexes}

    @pytest.mark.asyncio
    async def test_table_info(self, users_db: Database):
        info = await users_db.get_table_info("users")
        assert info.name == "users"
        assert info.row_count == 5
        assert info.primary_key_columns == ["id"]

    @pytest.mark.asyncio
    async def test_list_tables_filtered_by_whitelist(self, db: Database):
        tables = await db.list_tables()
        assert set(tables) == WHITELIST
        assert "secrets" not in tables

    @pytest.mark.asyncio
    async def test_table_exists(self, db: Database, sqlite_url):
        assert await db.table_exists("users") is True

        async with create_database(sqlite_url, ["users", "ghosts"]) as other:
            assert await other.table_exists("ghosts") is False

    @pytest.mark.asyncio
    async def test_analyze_table(self, users_db: Database, statement_counter):
        await users_db.analyze_table("users")
        assert any("ANALYZE" in sql.upper() for sql in statement_counter.statements)

    @pytest.mark.asyncio
    async def test_optimize_table(self, users_db: Database, statement_counter):
        await users_db.optimize_table("users")
        assert statement_counter.statements == ["VACUUM"]
        assert await users_db.count("users") == 5

    @pytest.mark.asyncio
    async def test_database_stats(self, db: Database):
        stats = await db.get_database_stats()
        assert stats.table_count >= len(WHITELIST)
