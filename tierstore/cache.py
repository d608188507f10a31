"""TTL read cache in front of the active backend.

Time-bounded only: there is no size limit and no LRU ordering. A record is
served while it is younger than the cache TTL *and* its entry has not passed
its own expiry, so the cache can never resurrect an expired entry.
"""

import time
from collections.abc import Callable
from copy import deepcopy
from typing import Any

from tierstore.models import CacheRecord

MISSING = object()


class ReadCache:
    """Decoded values keyed by storage key."""

    def __init__(self, ttl: float = 300.0, clock: Callable[[], float] | None = None):
        self.ttl = ttl
        self._clock = clock or time.time
        self._records: dict[str, CacheRecord] = {}
        self.hits = 0
        self.misses = 0

    def _is_fresh(self, record: CacheRecord, now: float) -> bool:
        if now - record.inserted_at >= self.ttl:
            return False
        return record.expires_at is None or now < record.expires_at

    def get(self, key: str) -> Any:
        """Return the cached value, or ``MISSING`` when absent or stale."""
        record = self._records.get(key)
        if record is None:
            self.misses += 1
            return MISSING
        if not self._is_fresh(record, self._clock()):
            del self._records[key]
            self.misses += 1
            return MISSING
        self.hits += 1
        return deepcopy(record.value)

    def set(self, key: str, value: Any, expires_at: float | None = None) -> None:
        """Replace the record for a key.

        ``expires_at`` is the entry's own absolute expiry in epoch seconds.
        """
        if self.ttl <= 0:
            return
        self._records[key] = CacheRecord(
            value=deepcopy(value), inserted_at=self._clock(), expires_at=expires_at
        )

    def invalidate(self, key: str) -> None:
        """Drop the record for a key."""
        self._records.pop(key, None)

    def clear(self) -> None:
        """Drop every record."""
        self._records.clear()

    def purge_expired(self) -> int:
        """Drop stale records, returning how many were removed."""
        now = self._clock()
        stale = [k for k, r in self._records.items() if not self._is_fresh(r, now)]
        for key in stale:
            del self._records[key]
        return len(stale)

    def __len__(self) -> int:
        return len(self._records)

    def get_stats(self) -> dict[str, Any]:
        """Hit and miss counters."""
        return {"size": len(self._records), "hits": self.hits, "misses": self.misses}
