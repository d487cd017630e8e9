"""
cache/store.py -- SQLite-backed cache for hazard feed responses.

Avoids hammering the public feeds (POWER, USGS, NWS, EONET) when many
requests ask about the same area. Stores raw JSON-serializable payloads
keyed by a caller-built string with a configurable TTL (default 15 minutes).
Shared by the CLI and the API.

Usage:
    cache = FeedCache()
    key = cache_key("usgs", lat=34.05, lon=-118.25)
    data = cache.get(key)                # returns payload or None
    cache.set(key, data)
    cache.purge_expired()                # call periodically to trim old entries
"""

import json
import sqlite3
import time
from pathlib import Path
from typing import Any, Optional, Union

_DEFAULT_DB = Path(__file__).parent / "safehaven_feeds.db"
_DEFAULT_TTL = 60 * 15  # 15 minutes in seconds

_DDL = """
CREATE TABLE IF NOT EXISTS feed_cache (
    cache_key   TEXT PRIMARY KEY,
    data        TEXT NOT NULL,
    cached_at   REAL NOT NULL
);
"""


def cache_key(source: str, **params: Any) -> str:
    """Build a stable key from a source name and query parameters.

    Floats are rounded to 2 decimals (about 1 km) so nearby lookups share
    an entry instead of each missing the cache.
    """
    parts = []
    for name in sorted(params):
        value = params[name]
        if isinstance(value, float):
            value = f"{value:.2f}"
        parts.append(f"{name}={value}")
    return f"{source}:" + "&".join(parts)


class FeedCache:
    def __init__(self, db_path: Union[Path, str] = _DEFAULT_DB, ttl: int = _DEFAULT_TTL) -> None:
        self.ttl = ttl
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute(_DDL)
        self._conn.commit()

    def get(self, key: str) -> Optional[Any]:
        """Return cached data for key if it exists and hasn't expired."""
        row = self._conn.execute(
            "SELECT data, cached_at FROM feed_cache WHERE cache_key = ?",
            (key,),
        ).fetchone()
        if row is None:
            return None
        data, cached_at = row
        if time.time() - cached_at > self.ttl:
            self._delete(key)
            return None
        return json.loads(data)

    def set(self, key: str, data: Any) -> None:
        """Store data for key, replacing any existing entry."""
        self._conn.execute(
            "INSERT OR REPLACE INTO feed_cache (cache_key, data, cached_at) VALUES (?, ?, ?)",
            (key, json.dumps(data), time.time()),
        )
        self._conn.commit()

    def purge_expired(self) -> int:
        """Delete all entries older than TTL. Returns number of rows removed."""
        cutoff = time.time() - self.ttl
        cursor = self._conn.execute("DELETE FROM feed_cache WHERE cached_at < ?", (cutoff,))
        self._conn.commit()
        return cursor.rowcount

    def _delete(self, key: str) -> None:
        self._conn.execute("DELETE FROM feed_cache WHERE cache_key = ?", (key,))
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()
