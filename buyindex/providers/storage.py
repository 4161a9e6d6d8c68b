"""SQLite persistence for composite index values."""

import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Optional

from buyindex.core.logger import logger
from buyindex.providers.base import ScoreStorage


class SQLiteScoreStore(ScoreStorage):
    """Keeps the latest composite score per product, with its timestamp."""

    def __init__(self, db_path: str = "output/scores.db") -> None:
        """
        Args:
            db_path (str): SQLite file path, or ``":memory:"`` for tests.
        """
        self.db_path = db_path
        self._memory_conn: Optional[sqlite3.Connection] = None
        if db_path == ":memory:":
            self._memory_conn = sqlite3.connect(":memory:", check_same_thread=False)
        else:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        if self._memory_conn is not None:
            return self._memory_conn
        return sqlite3.connect(self.db_path, check_same_thread=False)

    def _init_db(self) -> None:
        with self._get_connection() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS composite_scores (
                    product_id TEXT PRIMARY KEY,
                    score INTEGER NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )

    def persist_composite_score(self, product_id: str, score: int) -> bool:
        try:
            with self._get_connection() as conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO composite_scores (product_id, score, updated_at)
                    VALUES (?, ?, ?)
                    """,
                    (product_id, int(score), datetime.now().isoformat(timespec="seconds")),
                )
        except sqlite3.Error as e:
            logger.error(f"SQLiteScoreStore: failed to persist {product_id}: {e}")
            return False
        logger.info(f"SQLiteScoreStore: {product_id} → {score}")
        return True

    def get_composite_score(self, product_id: str) -> Optional[int]:
        """Return the stored score of a product, or None if never persisted."""
        try:
            with self._get_connection() as conn:
                row = conn.execute(
                    "SELECT score FROM composite_scores WHERE product_id = ?",
                    (product_id,),
                ).fetchone()
        except sqlite3.Error as e:
            logger.error(f"SQLiteScoreStore: failed to read {product_id}: {e}")
            return None
        return row[0] if row else None
