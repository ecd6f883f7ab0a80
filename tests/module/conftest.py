"""Seed data shared by the SQLite facade tests."""

import pytest

from db_crud import Database

USERS = [
    {"name": "Ann", "email": "ann@example.com", "age": 31, "score": 88.5, "status": "active"},
    {"name": "Bob", "email": "bob@example.com", "age": 25, "score": 72.0, "status": "active"},
    {"name": "Cid", "email": "cid@example.com", "age": 42, "score": None, "status": "inactive"},
    {"name": "Dee", "email": "dee@example.com", "age": 19, "score": 95.0, "status": "pending"},
    {"name": "Eve", "email": "eve@example.com", "age": 37, "score": 60.0, "status": "inactive"},
]


async def seed_users(db: Database) -> None:
    await db.bulk_insert("users", USERS)


@pytest.fixture
async def users_db(db: Database, statement_counter) -> Database:
    """Default facade with five users (ids 1-5)"""
    await seed_users(db)
    statement_counter.reset()
    return db
