"""Base storage backend interface."""

import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping

from tierstore.models import StoredEntry


class BaseBackend(ABC):
    """Abstract base class for storage backends.

    Subclasses provide the storage primitives (``_load``, ``_store``,
    ``_discard``, ``_load_all``, ``_discard_all``). Entry bookkeeping and lazy
    TTL eviction are handled here so every backend expires entries the same way.
    """

    name = "base"
    # Blocking backends are driven through an executor by the orchestrator.
    blocking = False

    def __init__(self, namespace: str = "", clock: Callable[[], float] | None = None):
        self.namespace = namespace
        self._clock = clock or time.time

    @abstractmethod
    def probe_available(self) -> bool:
        """Check whether this backend can be used, without side effects."""
        pass

    @abstractmethod
    def initialize(self) -> None:
        """Initialize the backend."""
        pass

    def close(self) -> None:
        """Close backend resources."""
        pass

    @abstractmethod
    def _load(self, key: str) -> StoredEntry | None:
        """Load the raw record for a key, expired or not."""
        pass

    @abstractmethod
    def _store(self, entry: StoredEntry) -> None:
        """Persist a record, replacing any existing one."""
        pass

    @abstractmethod
    def _discard(self, key: str) -> bool:
        """Remove a record, returning whether it existed."""
        pass

    @abstractmethod
    def _load_all(self) -> list[StoredEntry]:
        """Load every raw record."""
        pass

    @abstractmethod
    def _discard_all(self) -> None:
        """Remove every record."""
        pass

    def now_ms(self) -> int:
        """Current time in epoch milliseconds according to the backend clock."""
        return int(self._clock() * 1000)

    def write(
        self,
        key: str,
        payload: bytes,
        ttl_seconds: float | None = None,
        *,
        version: int = 1,
        model: str | None = None,
    ) -> StoredEntry:
        """Write a payload, keeping ``created_at`` of a live existing entry.

        ``ttl_seconds=0`` stores an entry that is already expired.
        """
        if ttl_seconds is not None and ttl_seconds < 0:
            raise ValueError(f"ttl_seconds must be non-negative, got {ttl_seconds}")
        now = self.now_ms()
        existing = self._load(key)
        created_at = now
        if existing is not None and not existing.is_expired(now):
            created_at = existing.created_at

        entry = StoredEntry(
            key=key,
            value=payload,
            created_at=created_at,
            updated_at=now,
            version=version,
            ttl=now + int(ttl_seconds * 1000) if ttl_seconds is not None else None,
            model=model,
        )
        self._store(entry)
        return entry

    def read_entry(self, key: str) -> StoredEntry | None:
        """Read the live record for a key, evicting it if expired."""
        entry = self._load(key)
        if entry is None:
            return None
        if entry.is_expired(self.now_ms()):
            self._discard(key)
            return None
        return entry

    def read(self, key: str) -> bytes | None:
        """Read the payload for a key."""
        entry = self.read_entry(key)
        return entry.value if entry is not None else None

    def remove(self, key: str) -> bool:
        """Delete a key."""
        return self._discard(key)

    def clear_all(self) -> None:
        """Clear all data."""
        self._discard_all()

    def export_entries(self) -> dict[str, StoredEntry]:
        """Get every live record, evicting expired ones on the way."""
        now = self.now_ms()
        live = {}
        for entry in self._load_all():
            if entry.is_expired(now):
                self._discard(entry.key)
            else:
                live[entry.key] = entry
        return live

    def export_all(self) -> dict[str, bytes]:
        """Get every live payload by key."""
        return {key: entry.value for key, entry in self.export_entries().items()}

    def list_keys(self) -> list[str]:
        """Get all live keys."""
        return list(self.export_entries())

    def count(self) -> int:
        """Count live entries."""
        return len(self.export_entries())

    def exists(self, key: str) -> bool:
        """Check if a live entry exists for a key."""
        return self.read_entry(key) is not None

    def bulk_import(self, data: Mapping[str, bytes | StoredEntry]) -> None:
        """Import payloads, or complete records when moving between backends."""
        for key, item in data.items():
            if isinstance(item, StoredEntry):
                self._store(item)
            else:
                self.write(key, item)

    def purge_expired(self) -> int:
        """Delete every expired record, returning how many were removed."""
        now = self.now_ms()
        expired = [entry.key for entry in self._load_all() if entry.is_expired(now)]
        for key in expired:
            self._discard(key)
        return len(expired)

    def get_statistics(self) -> dict[str, int]:
        """Backend-specific figures for diagnostics."""
        return {"entries": self.count()}
