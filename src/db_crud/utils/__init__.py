"""Utility modules for db-crud."""

from db_crud.utils.serialization import cache_key, dumps

__all__ = [
    "cache_key",
    "dumps",
]
