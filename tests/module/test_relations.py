"""Module tests for joins and relationship lookups on SQLite."""

import pytest

from db_crud import Database
from db_crud.errors import ForbiddenTable, UnsupportedJoinType


@pytest.fixture
async def shop_db(users_db: Database, statement_counter) -> Database:
    """Five users, three orders (two for Ann, one for Bob) and two roles."""
    await users_db.insert("orders", {"user_id": 1, "total": 10.0})
    await users_db.insert("orders", {"user_id": 1, "total": 20.0})
    await users_db.insert("orders", {"user_id": 2, "total": 5.0})
    await users_db.insert("roles", {"name": "admin"})
    await users_db.insert("roles", {"name": "editor"})
    await users_db.query(
        "INSERT INTO role_user (users_id, roles_id) VALUES (1, 1), (1, 2), (2, 2)"
    )
    statement_counter.reset()
    return users_db


class TestJoin:
    """Two-table joins."""

    @pytest.mark.asyncio
    async def test_inner_join(self, shop_db: Database):
        rows = await shop_db.join(
            "users", "orders", "id", "user_id", columns=["users.name", "orders.total"]
        )
        assert sorted((row["name"], row["total"]) for row in rows) == [
            ("Ann", 10.0),
            ("Ann", 20.0),
            ("Bob", 5.0),
        ]

    @pytest.mark.asyncio
    async def test_left_join_keeps_unmatched(self, shop_db: Database):
        rows = await shop_db.join(
            "users",
            "orders",
            "id",
            "user_id",
            columns=["users.name", "orders.total"],
            join_type="left",
        )
        assert len(rows) == 6
        unmatched = sorted(row["name"] for row in rows if row["total"] is None)
        assert unmatched == ["Cid", "Dee", "Eve"]

    @pytest.mark.asyncio
    async def test_conditions_apply_to_base_table(self, shop_db: Database):
        rows = await shop_db.join(
            "users",
            "orders",
            "id",
            "user_id",
            conditions={"status": "active"},
            columns=["users.name", "orders.total"],
            join_type="LEFT",
        )
        assert sorted(row["name"] for row in rows) == ["Ann", "Ann", "Bob"]

    @pytest.mark.asyncio
    async def test_unknown_join_type(self, shop_db: Database, statement_counter):
        with pytest.raises(UnsupportedJoinType):
            await shop_db.join("users", "orders", "id", "user_id", join_type="CROSS")
        assert statement_counter.count == 0

    @pytest.mark.asyncio
    async def test_join_table_must_be_whitelisted(self, shop_db: Database, statement_counter):
        with pytest.raises(ForbiddenTable):
            await shop_db.join("users", "secrets", "id", "id")
        assert statement_counter.count == 0


class TestMultiJoin:
    @pytest.mark.asyncio
    async def test_aliases(self, shop_db: Database):
        rows = await shop_db.multi_join(
            "users",
            [
                {
                    "table": "orders",
                    "alias": "o",
                    "type": "LEFT",
                    "base_column": "id",
                    "join_column": "user_id",
                }
            ],
            base_alias="u",
            conditions={"name": "Ann"},
            columns=["u.name", "o.total"],
        )
        assert sorted(row["total"] for row in rows) == [10.0, 20.0]

    @pytest.mark.asyncio
    async def test_full_join_emulated(self, db: Database):
        await db.query("INSERT INTO left_items (id, label) VALUES (1, 'a1'), (2, 'a2')")
        await db.query(
            "INSERT INTO right_items (id, left_id, note) VALUES (1, 1, 'b1'), (2, 99, 'b2')"
        )

        rows = await db.multi_join(
            "left_items",
            [
                {
                    "table": "right_items",
                    "type": "FULL",
                    "base_column": "id",
                    "join_column": "left_id",
                }
            ],
            columns=[
                "left_items.id AS left_id",
                "left_items.label",
                "right_items.id AS right_id",
                "right_items.note",
            ],
        )

        pairs = sorted((row["label"] or "", row["note"] or "") for row in rows)
        assert pairs == [("", "b2"), ("a1", "b1"), ("a2", "")]

    @pytest.mark.asyncio
    async def test_two_full_joins_rejected(self, shop_db: Database, statement_counter):
        full = {"type": "FULL", "base_column": "id", "join_column": "user_id"}
        with pytest.raises(UnsupportedJoinType):
            await shop_db.multi_join(
                "users",
                [dict(full, table="orders", alias="o1"), dict(full, table="orders", alias="o2")],
            )
        assert statement_counter.count == 0


class TestRelationships:
    """has_one, has_many, belongs_to and belongs_to_many."""

    @pytest.mark.asyncio
    async def test_has_one(self, shop_db: Database):
        order = await shop_db.has_one("users", "orders", 2, foreign_key="user_id")
        assert order["total"] == 5.0
        assert await shop_db.has_one("users", "orders", 3, foreign_key="user_id") is None

    @pytest.mark.asyncio
    async def test_has_many(self, shop_db: Database):
        orders = await shop_db.has_many("users", "orders", 1, foreign_key="user_id")
        assert sorted(order["total"] for order in orders) == [10.0, 20.0]

    @pytest.mark.asyncio
    async def test_belongs_to(self, shop_db: Database):
        owner = await shop_db.belongs_to("orders", "users", 2, columns=["name"])
        assert owner == {"name": "Bob"}

    @pytest.mark.asyncio
    async def test_belongs_to_many(self, shop_db: Database):
        roles = await shop_db.belongs_to_many("users", "roles", "role_user", 1)
        assert sorted(role["name"] for role in roles) == ["admin", "editor"]

        roles = await shop_db.belongs_to_many(
            "users", "roles", "role_user", 2, columns=["name"]
        )
        assert roles == [{"name": "editor"}]

    @pytest.mark.asyncio
    async def test_pivot_must_be_whitelisted(self, shop_db: Database):
        with pytest.raises(ForbiddenTable):
            await shop_db.belongs_to_many("users", "roles", "secrets", 1)
