"""Operation metrics and the audit log."""

from collections.abc import Callable
from statistics import fmean

from tierstore.models import AuditRecord, MetricsReport, now_ms


def _mean(samples: list[float]) -> float:
    return fmean(samples) if samples else 0.0


class MetricsCollector:
    """Counters, latency samples and recorded errors for one storage instance."""

    def __init__(self):
        self.reads = 0
        self.writes = 0
        self.deletes = 0
        self.read_latency: list[float] = []
        self.write_latency: list[float] = []
        self.errors: list[Exception] = []

    def record_read(self, latency_ms: float) -> None:
        self.reads += 1
        self.read_latency.append(latency_ms)

    def record_write(self, latency_ms: float) -> None:
        self.writes += 1
        self.write_latency.append(latency_ms)

    def record_delete(self) -> None:
        self.deletes += 1

    def record_error(self, error: Exception) -> None:
        self.errors.append(error)

    def report(self) -> MetricsReport:
        """Snapshot the current state with averages computed on demand."""
        return MetricsReport(
            reads=self.reads,
            writes=self.writes,
            deletes=self.deletes,
            read_latency=list(self.read_latency),
            write_latency=list(self.write_latency),
            errors=[f"{type(e).__name__}: {e}" for e in self.errors],
            avg_read_latency=_mean(self.read_latency),
            avg_write_latency=_mean(self.write_latency),
        )


class AuditLog:
    """Append-only record of committed mutations, kept for the process lifetime."""

    def __init__(self, clock: Callable[[], int] = now_ms):
        self._clock = clock
        self._records: list[AuditRecord] = []

    def record(self, action: str, key: str | None = None, approx_size: int = 0) -> AuditRecord:
        """Append one record."""
        entry = AuditRecord(
            action=action, timestamp=self._clock(), key=key, approx_size=approx_size
        )
        self._records.append(entry)
        return entry

    def records(self, action: str | None = None) -> list[AuditRecord]:
        """Get records, optionally only those of one action."""
        if action is None:
            return list(self._records)
        return [r for r in self._records if r.action == action]

    def __len__(self) -> int:
        return len(self._records)
