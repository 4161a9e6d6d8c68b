"""Local SQLite caching utility for provider API responses."""

import json
import sqlite3
import time
from pathlib import Path
from typing import Any, Optional

from buyindex.core.logger import logger


class SQLiteCache:
    """A minimal SQLite-backed key-value cache of JSON payloads with a time-to-live.

    Entries older than ``ttl_seconds`` are treated as misses and overwritten on
    the next ``set``. A ``ttl_seconds`` of 0 disables expiry.
    """

    def __init__(self, db_path: str = "output/.cache.db", ttl_seconds: int = 3600) -> None:
        """
        Initialize the SQLite cache.

        Args:
            db_path (str): Path to the SQLite database file, or ``":memory:"``.
            ttl_seconds (int): Maximum age of a usable entry.
        """
        self.db_path = db_path
        self.ttl_seconds = ttl_seconds
        self._memory_conn: Optional[sqlite3.Connection] = None
        if db_path == ":memory:":
            self._memory_conn = sqlite3.connect(":memory:", check_same_thread=False)
        else:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a connection to the SQLite database."""
        if self._memory_conn is not None:
            return self._memory_conn
        return sqlite3.connect(self.db_path, check_same_thread=False)

    def _init_db(self) -> None:
        """Create the cache table if it doesn't exist."""
        with self._get_connection() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS api_cache (
                    cache_key TEXT PRIMARY KEY,
                    response_data TEXT,
                    stored_at REAL NOT NULL
                )
                """
            )

    def get(self, key: str) -> Optional[Any]:
        """
        Retrieve a cached payload, parsed back from JSON.

        Args:
            key (str): The cache key.

        Returns:
            Optional[Any]: The cached payload if present and fresh, else None.
        """
        try:
            with self._get_connection() as conn:
                row = conn.execute(
                    "SELECT response_data, stored_at FROM api_cache WHERE cache_key = ?",
                    (key,)
                ).fetchone()
            if row:
                age = time.time() - row[1]
                if self.ttl_seconds and age > self.ttl_seconds:
                    logger.debug(f"Cache stale for key: {key} (age={age:.0f}s)")
                    return None
                logger.debug(f"Cache hit for key: {key}")
                return json.loads(row[0])
        except sqlite3.Error as e:
            logger.error(f"SQLite error retrieving cache for key {key}: {e}")
        except json.JSONDecodeError as e:
            logger.error(f"JSON decode error for cached key {key}: {e}")

        logger.debug(f"Cache miss for key: {key}")
        return None

    def set(self, key: str, value: Any) -> None:
        """
        Store a JSON-serialisable payload in the cache.

        Args:
            key (str): The cache key.
            value (Any): The payload to store.
        """
        try:
            value_str = json.dumps(value)
            with self._get_connection() as conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO api_cache (cache_key, response_data, stored_at)
                    VALUES (?, ?, ?)
                    """,
                    (key, value_str, time.time())
                )
        except (sqlite3.Error, TypeError) as e:
            logger.error(f"Error saving to cache for key {key}: {e}")
