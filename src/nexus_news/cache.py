"""TTL key-value caches shared by the rate limiter and the pipeline.

Anything with ``get(key)`` and ``set(key, value, ttl)`` works as a cache
client; two are provided: an in-process dict and a SQLite table that several
worker processes can share.
"""
from __future__ import annotations

import hashlib
import json
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Protocol

TOPIC_DICTIONARY_KEY = "topic_dictionary"
TOPIC_DICTIONARY_TTL = 24 * 60 * 60
RELATED_POSTS_TTL = 60 * 60


class CacheClient(Protocol):
    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any, ttl: int) -> None: ...


class MemoryCache:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: int) -> None:
        with self._lock:
            now = self._clock()
            expired = [k for k, (expires_at, _) in self._entries.items() if expires_at <= now]
            for k in expired:
                del self._entries[k]
            self._entries[key] = (now + ttl, value)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class SQLiteCache:
    """JSON values in a single table; expired rows are ignored and pruned on write."""

    def __init__(self, db_path: Path, clock: Callable[[], float] = time.time):
        self.db_path = db_path
        self._clock = clock
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path, timeout=5)

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS cache_entries (
                    cache_key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    expires_at REAL NOT NULL
                )
                """
            )

    def get(self, key: str) -> Optional[Any]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT value FROM cache_entries WHERE cache_key = ? AND expires_at > ?",
                (key, self._clock()),
            ).fetchone()
        return json.loads(row[0]) if row else None

    def set(self, key: str, value: Any, ttl: int) -> None:
        now = self._clock()
        with self._connect() as conn:
            conn.execute("DELETE FROM cache_entries WHERE expires_at <= ?", (now,))
            conn.execute(
                """
                INSERT INTO cache_entries (cache_key, value, expires_at)
                VALUES (?, ?, ?)
                ON CONFLICT(cache_key) DO UPDATE SET
                    value=excluded.value,
                    expires_at=excluded.expires_at
                """,
                (key, json.dumps(value, ensure_ascii=False), now + ttl),
            )


def related_posts_key(category_ids: Iterable[int], limit: int) -> str:
    ordered = sorted(int(x) for x in category_ids)
    digest = hashlib.md5(f"{json.dumps(ordered)}_{limit}".encode("utf-8")).hexdigest()
    return f"related_posts:{digest}"


def build_cache(settings: Any) -> CacheClient:
    backend = str(getattr(settings, "cache_backend", "memory")).lower()
    if backend == "sqlite":
        return SQLiteCache(settings.cache_db_path)
    if backend != "memory":
        raise ValueError(f"Unknown cache backend: {backend}")
    return MemoryCache()
