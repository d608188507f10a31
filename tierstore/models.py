"""Core data models for stored entries and engine bookkeeping.

Key components:
- StoredEntry: persisted record wrapping one serialized payload
- CacheRecord: decoded value held by the read cache
- Snapshot / SnapshotDiff: point-in-time copies and their comparison
- AuditRecord: one committed mutation
- MetricsReport / BenchmarkResult: read-only views for collaborators
"""

import time
from typing import Any

import msgspec


def now_ms() -> int:
    """Current epoch time in milliseconds."""
    return int(time.time() * 1000)


class StoredEntry(msgspec.Struct, kw_only=True):
    """Persisted record for one key.

    ``value`` is the opaque output of the serialization pipeline. ``ttl`` is an
    absolute expiry in epoch milliseconds, or None for entries that never
    expire.
    """

    key: str
    value: bytes
    created_at: int
    updated_at: int
    version: int = 1
    ttl: int | None = None
    model: str | None = None

    def is_expired(self, at_ms: int) -> bool:
        """Check whether the entry is past its expiry at the given time."""
        return self.ttl is not None and at_ms >= self.ttl

    def remaining_ttl(self, at_ms: int) -> float | None:
        """Seconds left before expiry, None if the entry never expires."""
        if self.ttl is None:
            return None
        return max(self.ttl - at_ms, 0) / 1000


class CacheRecord(msgspec.Struct):
    """A decoded value held by the read cache.

    ``expires_at`` mirrors the stored entry's own expiry (epoch seconds).
    """

    value: Any
    inserted_at: float
    expires_at: float | None = None


class Snapshot(msgspec.Struct, frozen=True):
    """A named, deep-copied capture of the decoded data set."""

    name: str
    data: dict[str, Any]
    timestamp: int
    version: int


class SnapshotDiff(msgspec.Struct, frozen=True):
    """Key-level differences between two snapshots."""

    added: list[str] = msgspec.field(default_factory=list)
    removed: list[str] = msgspec.field(default_factory=list)
    changed: list[str] = msgspec.field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.changed)


class AuditRecord(msgspec.Struct, frozen=True):
    """One committed mutation."""

    action: str
    timestamp: int
    key: str | None = None
    approx_size: int = 0


class MetricsReport(msgspec.Struct, frozen=True, kw_only=True):
    """Point-in-time view of operation metrics."""

    reads: int
    writes: int
    deletes: int
    read_latency: list[float]
    write_latency: list[float]
    errors: list[str]
    avg_read_latency: float
    avg_write_latency: float


class OperationTiming(msgspec.Struct, frozen=True):
    """Total and per-operation time in milliseconds."""

    total: float
    avg: float


class BenchmarkResult(msgspec.Struct, frozen=True):
    """Write and read timings of a benchmark run."""

    iterations: int
    write: OperationTiming
    read: OperationTiming
