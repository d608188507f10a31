"""File system storage backend, the persistent simple tier."""

import errno
import fcntl
import json
import os
import tempfile
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path

import msgspec

from tierstore.exceptions import QuotaExceededError, StorageError
from tierstore.models import StoredEntry

from .base import BaseBackend

_QUOTA_ERRNOS = {errno.ENOSPC, errno.EDQUOT}


class FileSystemBackend(BaseBackend):
    """Simple file-based storage, one JSON record per key plus an index."""

    name = "filesystem"
    blocking = True

    def __init__(
        self,
        data_dir: Path,
        namespace: str = "",
        clock: Callable[[], float] | None = None,
    ):
        super().__init__(namespace, clock)
        self.data_dir = Path(data_dir) / (namespace or "default")
        self.entries_dir = self.data_dir / "entries"
        self.index_file = self.data_dir / "index.json"
        self.lock_file = self.data_dir / "index.lock"
        self._index: dict[str, str] = {}
        self._index_lock = threading.RLock()
        self._encoder = msgspec.json.Encoder()
        self._decoder = msgspec.json.Decoder(StoredEntry)

    def probe_available(self) -> bool:
        """Usable when the data directory, or its closest ancestor, is writable."""
        for candidate in (self.data_dir, *self.data_dir.parents):
            if candidate.exists():
                return candidate.is_dir() and os.access(candidate, os.W_OK)
        return False

    def initialize(self) -> None:
        """Create directory structure and load index."""
        self.entries_dir.mkdir(parents=True, exist_ok=True)
        with self._locked_index():
            pass

    def _load_index(self) -> None:
        """Load the index mapping keys to filenames."""
        if self.index_file.exists():
            try:
                with open(self.index_file) as f:
                    self._index = json.load(f)
            except (OSError, json.JSONDecodeError):
                self._index = {}

    @contextmanager
    def _locked_index(self) -> Iterator[dict[str, str]]:
        """Refresh the index from disk and save it back under an exclusive lock.

        Other instances may share the directory, so every change is merged
        into the index on disk rather than written from a stale copy.
        """
        with self._index_lock, open(self.lock_file, "a") as lock:
            fcntl.flock(lock.fileno(), fcntl.LOCK_EX)
            try:
                self._load_index()
                yield self._index
                self._save_index()
            finally:
                fcntl.flock(lock.fileno(), fcntl.LOCK_UN)

    def _refresh_index(self) -> None:
        with self._index_lock:
            self._load_index()

    def _atomic_write(self, directory: Path, target: Path, data: bytes) -> None:
        """Write bytes to a temp file and rename it over the target."""
        temp_fd, temp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
        try:
            with open(temp_fd, "wb") as f:
                f.write(data)
            Path(temp_path).rename(target)
        except OSError as e:
            Path(temp_path).unlink(missing_ok=True)
            if e.errno in _QUOTA_ERRNOS:
                raise QuotaExceededError(f"No space left in {directory}") from e
            raise StorageError(f"Failed to write {target.name}: {e}") from e

    def _save_index(self) -> None:
        """Save the index atomically."""
        data = json.dumps(self._index, indent=2, sort_keys=True).encode()
        self._atomic_write(self.data_dir, self.index_file, data)

    def _key_to_filename(self, key: str) -> str:
        """Convert key to a safe, collision-free filename."""
        safe_key = "".join(c if c.isalnum() or c in "-_" else "_" for c in key)
        filename = f"{safe_key}.json"
        taken = set(self._index.values())
        suffix = 1
        while filename in taken:
            filename = f"{safe_key}-{suffix}.json"
            suffix += 1
        return filename

    def _load(self, key: str) -> StoredEntry | None:
        with self._index_lock:
            filename = self._index.get(key)
        if filename is None:
            # Another instance may have added the key since the last refresh
            self._refresh_index()
            with self._index_lock:
                filename = self._index.get(key)
        if filename is None:
            return None

        path = self.entries_dir / filename
        try:
            with open(path, "rb") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    return self._decoder.decode(f.read())
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except FileNotFoundError:
            return None
        except msgspec.DecodeError as e:
            raise StorageError(f"Corrupted record for {key!r}: {e}") from e

    def _store(self, entry: StoredEntry) -> None:
        with self._locked_index() as index:
            filename = index.get(entry.key) or self._key_to_filename(entry.key)
            self._atomic_write(
                self.entries_dir,
                self.entries_dir / filename,
                self._encoder.encode(entry),
            )
            index[entry.key] = filename

    def _discard(self, key: str) -> bool:
        with self._locked_index() as index:
            filename = index.pop(key, None)
            if filename is None:
                return False
            (self.entries_dir / filename).unlink(missing_ok=True)
            return True

    def _load_all(self) -> list[StoredEntry]:
        self._refresh_index()
        with self._index_lock:
            keys = list(self._index)
        entries = []
        for key in keys:
            entry = self._load(key)
            if entry is not None:
                entries.append(entry)
        return entries

    def _discard_all(self) -> None:
        with self._locked_index() as index:
            for path in self.entries_dir.glob("*.json"):
                path.unlink(missing_ok=True)
            index.clear()
