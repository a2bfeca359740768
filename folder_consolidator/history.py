"""SQLite-backed store for the consolidation history."""

import json
import logging
import sqlite3
from pathlib import Path
from typing import Optional

from .models import ConsolidationOperation

logger = logging.getLogger(__name__)

HISTORY_KEY = "consolidation_history"


class HistoryStore:
    """
    Append-only log of completed merges.

    The whole log is kept as a single JSON blob in a key-value table. A blob
    that cannot be decoded is treated as an empty history.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        # Appends happen on the run's worker thread
        self.conn = sqlite3.connect(
            str(self.db_path), isolation_level=None, check_same_thread=False
        )
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._init_schema()

    def _init_schema(self) -> None:
        """Initialize database schema."""
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY,
                value BLOB
            );
        """)

    def __enter__(self) -> "HistoryStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        """Close the database connection."""
        self.conn.close()

    def get_value(self, key: str, default: Optional[bytes] = None) -> Optional[bytes]:
        """Get a raw stored value."""
        cursor = self.conn.execute(
            "SELECT value FROM settings WHERE key = ?", (key,)
        )
        row = cursor.fetchone()
        return row[0] if row else default

    def set_value(self, key: str, value: bytes) -> None:
        """Set a raw stored value."""
        self.conn.execute(
            "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
            (key, value)
        )

    def _decode(self, blob: Optional[bytes]) -> list[ConsolidationOperation]:
        """Decode the history blob. Raises ValueError, KeyError or TypeError when corrupt."""
        if blob is None:
            return []
        data = json.loads(blob)
        if not isinstance(data, list):
            raise ValueError("history blob is not a list")
        return [ConsolidationOperation.from_dict(item) for item in data]

    @staticmethod
    def _encode(operations: list[ConsolidationOperation]) -> bytes:
        return json.dumps([op.to_dict() for op in operations]).encode("utf-8")

    def load(self) -> list[ConsolidationOperation]:
        """All recorded operations in the order they were appended."""
        try:
            return self._decode(self.get_value(HISTORY_KEY))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Could not decode consolidation history, starting empty: %s", e)
            return []

    def append(self, operation: ConsolidationOperation) -> None:
        """Append one operation to the log."""
        try:
            operations = self._decode(self.get_value(HISTORY_KEY))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Discarding unreadable consolidation history: %s", e)
            operations = []
        operations.append(operation)
        self.set_value(HISTORY_KEY, self._encode(operations))

    def recent(self, limit: Optional[int] = None) -> list[ConsolidationOperation]:
        """Operations most-recent-first, optionally only the first limit."""
        operations = list(reversed(self.load()))
        return operations[:limit] if limit is not None else operations

    def count(self) -> int:
        return len(self.load())

    def clear(self) -> None:
        """Forget all recorded operations."""
        self.conn.execute("DELETE FROM settings WHERE key = ?", (HISTORY_KEY,))
