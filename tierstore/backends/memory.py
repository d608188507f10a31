"""In-memory storage backend."""

from collections.abc import Callable
from copy import copy

from tierstore.exceptions import QuotaExceededError
from tierstore.models import StoredEntry

from .base import BaseBackend


class MemoryBackend(BaseBackend):
    """Volatile storage, always available.

    ``max_entries`` bounds the number of distinct keys; writing a new key past
    the bound raises QuotaExceededError so quota handling can be exercised
    without a real disk.
    """

    name = "memory"

    def __init__(
        self,
        namespace: str = "",
        clock: Callable[[], float] | None = None,
        max_entries: int | None = None,
    ):
        super().__init__(namespace, clock)
        self.max_entries = max_entries
        self._data: dict[str, StoredEntry] = {}

    def probe_available(self) -> bool:
        """Memory is always available."""
        return True

    def initialize(self) -> None:
        """Initialize the backend (no-op for memory)."""
        pass

    def _load(self, key: str) -> StoredEntry | None:
        entry = self._data.get(key)
        return copy(entry) if entry is not None else None

    def _store(self, entry: StoredEntry) -> None:
        if (
            self.max_entries is not None
            and entry.key not in self._data
            and len(self._data) >= self.max_entries
        ):
            raise QuotaExceededError(
                f"Memory backend limited to {self.max_entries} entries"
            )
        self._data[entry.key] = copy(entry)

    def _discard(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def _load_all(self) -> list[StoredEntry]:
        return [copy(entry) for entry in self._data.values()]

    def _discard_all(self) -> None:
        self._data.clear()

    def get_memory_usage(self) -> int:
        """Estimate payload memory usage in bytes."""
        return sum(len(key) + len(entry.value) for key, entry in self._data.items())

    def get_statistics(self) -> dict[str, int]:
        return {"entries": self.count(), "memory_bytes": self.get_memory_usage()}
