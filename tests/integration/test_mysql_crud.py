"""MySQL integration tests for the CRUD facade"""

from typing import AsyncGenerator, Optional

import pytest
from sqlalchemy import text

from db_crud import Database, create_database

pytestmark = [pytest.mark.mysql, pytest.mark.integration]

TABLES = ["crud_members", "crud_tickets"]

SCHEMA = [
    "DROP TABLE IF EXISTS crud_tickets",
    "DROP TABLE IF EXISTS crud_members",
    """
    CREATE TABLE crud_members (
        id INT AUTO_INCREMENT PRIMARY KEY,
        name VARCHAR(100) NOT NULL,
        email VARCHAR(255) UNIQUE,
        age INT,
        profile JSON,
        created_at DATETIME(6),
        updated_at DATETIME(6),
        deleted_at DATETIME(6)
    )
    """,
    """
    CREATE TABLE crud_tickets (
        id INT AUTO_INCREMENT PRIMARY KEY,
        member_id INT,
        title VARCHAR(100),
        created_at DATETIME(6),
        updated_at DATETIME(6)
    )
    """,
]


@pytest.fixture
async def mysql_db(mysql_database_url: Optional[str]) -> AsyncGenerator[Database, None]:
    """Facade over freshly created test tables"""
    if not mysql_database_url:
        pytest.skip("MYSQL_TEST_DATABASE_URL not set")

    db = create_database(mysql_database_url, TABLES)
    await db.initialize()
    async with db.connection.engine.begin() as conn:
        for ddl in SCHEMA:
            await conn.execute(text(ddl))

    yield db

    async with db.connection.engine.begin() as conn:
        for ddl in SCHEMA[:2]:
            await conn.execute(text(ddl))
    await db.dispose()


class TestMySQLWrites:
    """Inserts use lastrowid; upserts use ON DUPLICATE KEY UPDATE"""

    async def test_insert_and_find(self, mysql_db: Database):
        member_id = await mysql_db.insert("crud_members", {"name": "Ann", "email": "a@x.com"})
        record = await mysql_db.find_one("crud_members", {"id": member_id})
        assert record["name"] == "Ann"
        assert record["created_at"] == record["updated_at"]

    async def test_upsert_keeps_single_row(self, mysql_db: Database):
        await mysql_db.upsert("crud_members", {"email": "a@x.com", "name": "Ann"}, ["email"])
        await mysql_db.upsert("crud_members", {"email": "a@x.com", "name": "Annie"}, ["email"])

        assert await mysql_db.count("crud_members") == 1
        assert (await mysql_db.find_one("crud_members", {"email": "a@x.com"}))["name"] == "Annie"

    async def test_counters(self, mysql_db: Database):
        member_id = await mysql_db.insert("crud_members", {"name": "Ann", "age": 30})
        await mysql_db.increment("crud_members", member_id, "age", 5)
        await mysql_db.decrement("crud_members", member_id, "age")
        assert (await mysql_db.find_one("crud_members", {"id": member_id}))["age"] == 34

    async def test_truncate(self, mysql_db: Database):
        await mysql_db.bulk_insert("crud_members", [{"name": "Ann"}, {"name": "Bob"}])
        await mysql_db.truncate("crud_members")
        assert await mysql_db.count("crud_members") == 0


class TestMySQLReads:
    """Dialect-specific read paths"""

    async def test_emulated_full_join(self, mysql_db: Database):
        ann = await mysql_db.insert("crud_members", {"name": "Ann"})
        await mysql_db.insert("crud_members", {"name": "Bob"})
        await mysql_db.insert("crud_tickets", {"member_id": ann, "title": "t1"})
        await mysql_db.insert("crud_tickets", {"member_id": 999, "title": "orphan"})

        rows = await mysql_db.join(
            "crud_members",
            "crud_tickets",
            "id",
            "member_id",
            columns=["crud_members.name", "crud_tickets.title"],
            join_type="FULL",
        )
        assert sorted((row["name"] or "", row["title"] or "") for row in rows) == [
            ("", "orphan"),
            ("Ann", "t1"),
            ("Bob", ""),
        ]

    async def test_offset_without_limit(self, mysql_db: Database):
        await mysql_db.bulk_insert("crud_members", [{"name": n} for n in ("a", "b", "c")])
        rows = await mysql_db.select("crud_members", order_by="id", limit=0, offset=1)
        assert [row["name"] for row in rows] == ["b", "c"]

    async def test_group_concat(self, mysql_db: Database):
        await mysql_db.bulk_insert(
            "crud_members", [{"name": "Ann", "age": 30}, {"name": "Bob", "age": 30}]
        )
        rows = await mysql_db.group_concat("crud_members", "name", "age", separator="|")
        assert sorted(rows[0]["concatenated"].split("|")) == ["Ann", "Bob"]

    async def test_json_contains(self, mysql_db: Database):
        await mysql_db.insert("crud_members", {"name": "Ann", "profile": '{"role": "admin"}'})
        await mysql_db.insert("crud_members", {"name": "Bob", "profile": '{"role": "user"}'})

        rows = await mysql_db.json_contains("crud_members", "profile", {"role": "admin"})
        assert [row["name"] for row in rows] == ["Ann"]

    async def test_schema(self, mysql_db: Database):
        info = await mysql_db.get_table_info("crud_members")
        assert info.primary_key_columns == ["id"]
        assert info.extra_info
