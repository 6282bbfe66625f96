"""TTL cache for expensive lookups (centroids, amenities, crime-type titles).

Entries are stored as ``{"t": epoch_ms, "v": value}`` under plain string keys
(``centroid:{code}``, ``amenities:{code}``, ``crimeTypeTitles:v1``). Expiry
is checked on read; a stale or missing entry is a miss. There is no explicit
invalidation.
"""

import json
import logging
import math
import sqlite3
import time
from pathlib import Path
from typing import Any, Callable

import redis.asyncio as redis

from buurtinfo.config import settings
from buurtinfo.data.base import KeyValueStore

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000
CENTROID_TTL_MS = 7 * DAY_MS
AMENITIES_TTL_MS = 7 * DAY_MS
CRIME_TYPE_TITLES_TTL_MS = 30 * DAY_MS


def now_ms() -> int:
    return int(time.time() * 1000)


class SQLiteStore:
    def __init__(self, db_path: str = "data/buurtinfo_cache.db"):
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._ensure_tables()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_tables(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_cache (
                    cache_key TEXT PRIMARY KEY,
                    entry_json TEXT
                )
            """)

    async def get(self, key: str) -> dict[str, Any] | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT entry_json FROM kv_cache WHERE cache_key = ?", (key,)
            ).fetchone()
        if row is None:
            return None
        try:
            return json.loads(row["entry_json"])
        except (json.JSONDecodeError, TypeError):
            logger.warning("Corrupt cache entry for %s, ignoring", key)
            return None

    async def set(self, key: str, entry: dict[str, Any], ttl_ms: int | None = None) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO kv_cache (cache_key, entry_json) VALUES (?, ?)",
                (key, json.dumps(entry)),
            )


class RedisStore:
    def __init__(self, url: str | None = None, client: redis.Redis | None = None):
        self.url = url or settings.redis_url
        self._client = client

    async def _redis(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(self.url, decode_responses=True)
        return self._client

    async def get(self, key: str) -> dict[str, Any] | None:
        try:
            r = await self._redis()
            raw = await r.get(f"buurtinfo:{key}")
        except Exception:
            logger.warning("Redis unavailable, skipping cache read for %s", key)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Corrupt cache entry for %s, ignoring", key)
            return None

    async def set(self, key: str, entry: dict[str, Any], ttl_ms: int | None = None) -> None:
        try:
            r = await self._redis()
            if ttl_ms:
                await r.setex(f"buurtinfo:{key}", max(1, math.ceil(ttl_ms / 1000)), json.dumps(entry))
            else:
                await r.set(f"buurtinfo:{key}", json.dumps(entry))
        except Exception:
            logger.warning("Failed to write cache for %s", key)


class TTLCache:
    """Read-checked TTL cache over a key-value store.

    Concurrent misses for the same key may both fetch and both write; values
    for a key always have the same shape so the last write wins harmlessly.
    """

    def __init__(self, store: KeyValueStore, clock: Callable[[], int] = now_ms):
        self.store = store
        self.clock = clock

    async def get(self, key: str, ttl_ms: int) -> Any | None:
        entry = await self.store.get(key)
        if not isinstance(entry, dict) or not isinstance(entry.get("t"), (int, float)):
            return None
        if self.clock() - entry["t"] >= ttl_ms:
            logger.debug("Cache stale: %s", key)
            return None
        logger.debug("Cache hit: %s", key)
        return entry.get("v")

    async def set(self, key: str, value: Any, ttl_ms: int | None = None) -> None:
        await self.store.set(key, {"t": self.clock(), "v": value}, ttl_ms)


def build_cache() -> TTLCache:
    """Cache configured by ``settings.cache_backend``."""
    if settings.cache_backend == "redis":
        return TTLCache(RedisStore(settings.redis_url))
    if settings.cache_backend != "sqlite":
        raise ValueError(f"Unknown cache backend: {settings.cache_backend}")
    return TTLCache(SQLiteStore(settings.cache_db_path))
