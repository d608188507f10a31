"""SQLite storage backend, the persistent indexed tier."""

import os
import sqlite3
import threading
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path

from tierstore.exceptions import QuotaExceededError, StorageError, TransientStorageError
from tierstore.models import StoredEntry

from .base import BaseBackend


def _nearest_existing(path: Path) -> Path:
    """Walk up from path to the first directory that exists."""
    for candidate in (path, *path.parents):
        if candidate.exists():
            return candidate
    return Path("/")


class SQLiteBackend(BaseBackend):
    """SQLite-based storage with an index on expiry and model."""

    name = "sqlite"
    blocking = True

    def __init__(
        self,
        data_dir: Path,
        namespace: str = "",
        clock: Callable[[], float] | None = None,
    ):
        super().__init__(namespace, clock)
        self.data_dir = Path(data_dir)
        self.db_path = self.data_dir / f"{namespace or 'default'}.sqlite3"
        self._lock = threading.RLock()
        self.conn: sqlite3.Connection | None = None

    @property
    def connection(self) -> sqlite3.Connection:
        """Get the connection, ensuring it exists."""
        if self.conn is None:
            raise StorageError("Database connection not initialized")
        return self.conn

    def probe_available(self) -> bool:
        """SQLite needs a writable data directory (or a creatable one)."""
        if not sqlite3.sqlite_version:
            return False
        target = self.db_path if self.db_path.exists() else _nearest_existing(self.data_dir)
        return os.access(target, os.W_OK)

    def initialize(self) -> None:
        """Open the database and create the schema."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self.connection.row_factory = sqlite3.Row
        self.connection.execute("PRAGMA journal_mode=WAL")
        self.connection.executescript("""
            CREATE TABLE IF NOT EXISTS entries (
                key TEXT PRIMARY KEY,
                value BLOB NOT NULL,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL,
                version INTEGER NOT NULL DEFAULT 1,
                ttl INTEGER,
                model TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_entries_ttl ON entries(ttl);
            CREATE INDEX IF NOT EXISTS idx_entries_model ON entries(model, version);
        """)
        self.connection.commit()

    def close(self) -> None:
        """Close database connection."""
        if self.conn:
            self.connection.close()
            self.conn = None

    @contextmanager
    def _translate_errors(self) -> Iterator[None]:
        """Map sqlite failures onto the storage error taxonomy."""
        try:
            yield
        except sqlite3.OperationalError as e:
            message = str(e).lower()
            if "full" in message:
                raise QuotaExceededError(f"SQLite storage full: {e}") from e
            if "locked" in message or "busy" in message:
                raise TransientStorageError(f"SQLite busy: {e}") from e
            raise StorageError(f"SQLite error: {e}") from e

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> StoredEntry:
        return StoredEntry(
            key=row["key"],
            value=bytes(row["value"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            version=row["version"],
            ttl=row["ttl"],
            model=row["model"],
        )

    def _load(self, key: str) -> StoredEntry | None:
        with self._lock, self._translate_errors():
            cursor = self.connection.execute(
                "SELECT * FROM entries WHERE key = ?", (key,)
            )
            row = cursor.fetchone()
            return self._row_to_entry(row) if row else None

    def _store(self, entry: StoredEntry) -> None:
        with self._lock, self._translate_errors():
            self.connection.execute(
                """
                INSERT INTO entries (key, value, created_at, updated_at, version, ttl, model)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    created_at = excluded.created_at,
                    updated_at = excluded.updated_at,
                    version = excluded.version,
                    ttl = excluded.ttl,
                    model = excluded.model
            """,
                (
                    entry.key,
                    entry.value,
                    entry.created_at,
                    entry.updated_at,
                    entry.version,
                    entry.ttl,
                    entry.model,
                ),
            )
            self.connection.commit()

    def _discard(self, key: str) -> bool:
        with self._lock, self._translate_errors():
            cursor = self.connection.execute(
                "DELETE FROM entries WHERE key = ?", (key,)
            )
            self.connection.commit()
            return cursor.rowcount > 0

    def _load_all(self) -> list[StoredEntry]:
        with self._lock, self._translate_errors():
            cursor = self.connection.execute("SELECT * FROM entries ORDER BY key")
            return [self._row_to_entry(row) for row in cursor]

    def _discard_all(self) -> None:
        with self._lock, self._translate_errors():
            self.connection.execute("DELETE FROM entries")
            self.connection.commit()

    def count(self) -> int:
        """Count live entries with a single query."""
        with self._lock, self._translate_errors():
            cursor = self.connection.execute(
                "SELECT COUNT(*) FROM entries WHERE ttl IS NULL OR ttl > ?",
                (self.now_ms(),),
            )
            return cursor.fetchone()[0]

    def purge_expired(self) -> int:
        """Delete every expired row, returning how many were removed."""
        with self._lock, self._translate_errors():
            cursor = self.connection.execute(
                "DELETE FROM entries WHERE ttl IS NOT NULL AND ttl <= ?",
                (self.now_ms(),),
            )
            self.connection.commit()
            return cursor.rowcount

    def bulk_import(self, data: Mapping[str, bytes | StoredEntry]) -> None:
        """Import while holding the connection lock."""
        with self._lock:
            super().bulk_import(data)

    def get_statistics(self) -> dict[str, int]:
        """Live entries, stored rows and database file size."""
        entries = self.count()
        with self._lock, self._translate_errors():
            rows = self.connection.execute("SELECT COUNT(*) FROM entries").fetchone()[0]
        size = self.db_path.stat().st_size if self.db_path.exists() else 0
        return {"entries": entries, "rows": rows, "size_bytes": size}
