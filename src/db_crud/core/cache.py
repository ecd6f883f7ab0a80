"""In-process query result cache with per-table invalidation."""

import logging
import re
import time
from typing import Any, Callable, Iterable, Optional

from db_crud.models.status import CacheStats

logger = logging.getLogger(__name__)

# Index bucket for entries whose tables could not be determined
ANY_TABLE = "*"

_WORD_PATTERN = re.compile(r"[A-Za-z_][A-Za-z0-9_$]*")


def referenced_tables(sql: str, candidates: Iterable[str]) -> set[str]:
    """Whitelisted table names that appear as whole words in ``sql``."""
    words = set(_WORD_PATTERN.findall(sql))
    return {table for table in candidates if table in words}


class QueryCache:
    """
    Time-expiring cache of read results.

    Entries are indexed by the tables their statement reads, so a write to
    one table drops exactly the entries that read it (plus the entries
    whose tables are unknown). Expiry is lazy: a stale entry is removed
    when it is next looked up.
    """

    def __init__(
        self,
        expiry_ms: int = 60_000,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.expiry_ms = expiry_ms
        self.enabled = enabled
        self._clock = clock
        self._entries: dict[str, tuple[list[dict[str, Any]], float]] = {}
        self._key_tables: dict[str, frozenset[str]] = {}
        self._table_keys: dict[str, set[str]] = {}
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[list[dict[str, Any]]]:
        """Cached rows for ``key``, or None on a miss or an expired entry."""
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None

        rows, timestamp = entry
        if (self._clock() - timestamp) * 1000 >= self.expiry_ms:
            self._remove(key)
            self.misses += 1
            logger.debug(f"Cache entry expired: {key[:80]}")
            return None

        self.hits += 1
        return [dict(row) for row in rows]

    def put(self, key: str, rows: list[dict[str, Any]], tables: Iterable[str]) -> None:
        """Store rows read from ``tables``; an empty set indexes under ANY_TABLE."""
        if key in self._entries:
            self._remove(key)

        index_tables = frozenset(tables) or frozenset({ANY_TABLE})
        self._entries[key] = ([dict(row) for row in rows], self._clock())
        self._key_tables[key] = index_tables
        for table in index_tables:
            self._table_keys.setdefault(table, set()).add(key)

    def invalidate_table(self, table: str) -> int:
        """Drop every entry that read ``table``; returns the number dropped."""
        keys = self._table_keys.get(table, set()) | self._table_keys.get(ANY_TABLE, set())
        for key in list(keys):
            self._remove(key)
        if keys:
            logger.debug(f"Invalidated {len(keys)} cache entries for table {table}")
        return len(keys)

    def invalidate_tables(self, tables: Iterable[str]) -> int:
        return sum(self.invalidate_table(table) for table in tables)

    def invalidate_all(self) -> None:
        self._entries.clear()
        self._key_tables.clear()
        self._table_keys.clear()

    def _remove(self, key: str) -> None:
        self._entries.pop(key, None)
        for table in self._key_tables.pop(key, frozenset()):
            keys = self._table_keys.get(table)
            if keys is not None:
                keys.discard(key)
                if not keys:
                    del self._table_keys[table]

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def stats(self) -> CacheStats:
        return CacheStats(
            size=len(self._entries),
            enabled=self.enabled,
            expiry_ms=self.expiry_ms,
            hits=self.hits,
            misses=self.misses,
            tables=sorted(table for table in self._table_keys if table != ANY_TABLE),
        )
