"""
Key/value stores backing the persisted cache gateway.

Values are strings; callers handle serialization.
"""
import sqlite3
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Optional, Protocol

from app.errors import StorageError

logger = logging.getLogger("cache.storage")

# Default database path
DEFAULT_DB_PATH = Path(__file__).parent.parent.parent / "cache" / "chart_data.db"


SCHEMA = """
CREATE TABLE IF NOT EXISTS cache_entries (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""


class KeyValueStore(Protocol):
    """
    Minimal string key/value store.

    Implementations raise StorageError when the backing store is unusable.
    """

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        ...


class InMemoryKeyValueStore:
    """Process-local store; mostly useful for tests."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class SQLiteKeyValueStore:
    """SQLite-backed store, so the cached payload survives restarts."""

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path or DEFAULT_DB_PATH)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        """Initialize database with schema."""
        with self._get_connection() as conn:
            conn.executescript(SCHEMA)
            conn.commit()

    @contextmanager
    def _get_connection(self):
        """Get a database connection, mapping sqlite errors to StorageError."""
        try:
            conn = sqlite3.connect(str(self.db_path))
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open {self.db_path}: {e}") from e
        try:
            yield conn
        except sqlite3.Error as e:
            raise StorageError(f"SQLite error on {self.db_path}: {e}") from e
        finally:
            conn.close()

    def get(self, key: str) -> Optional[str]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT value FROM cache_entries WHERE key = ?", (key,)
            ).fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        with self._get_connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO cache_entries (key, value) VALUES (?, ?)",
                (key, value),
            )
            conn.commit()

    def remove(self, key: str) -> None:
        with self._get_connection() as conn:
            conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
            conn.commit()
