"""Tiered storage orchestrator.

``TieredStorage`` is the public facade. It selects the active backend, runs
hooks, drives the serialization pipeline, keeps the read cache coherent,
records metrics and the audit log, publishes events and propagates changes to
peers. The collaborators it composes each own their own state:

- backends (``tierstore.backends``): where payloads live
- ``SerializationPipeline``: value <-> payload
- ``ReadCache``: decoded values for recently read or written keys
- ``MigrationRegistry``: versioned per-model transforms
- ``SnapshotManager``: named point-in-time copies
- ``EventBus``, ``MetricsCollector``, ``AuditLog``: observation

Every public operation is a coroutine. Failures are caught once at the
operation boundary, recorded, published as an ``error`` event and re-raised.
"""

import asyncio
import functools
import inspect
import logging
import random
import time
from collections.abc import AsyncIterator, Callable, Iterable, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any

from tierstore.backends import BaseBackend, FileSystemBackend, MemoryBackend, SQLiteBackend
from tierstore.cache import MISSING, ReadCache
from tierstore.config import StorageConfig, load_config
from tierstore.events import EventBus, EventType, Handler, Subscription
from tierstore.exceptions import (
    MigrationError,
    QuotaExceededError,
    SerializationError,
    StorageError,
    TransientStorageError,
    ValidationError,
)
from tierstore.formats import dump_data, load_data
from tierstore.metrics import AuditLog, MetricsCollector
from tierstore.migrations import MigrationRegistry, MigrationStats, MigrationStep, Transform
from tierstore.models import (
    AuditRecord,
    BenchmarkResult,
    MetricsReport,
    OperationTiming,
    Snapshot,
    SnapshotDiff,
    StoredEntry,
)
from tierstore.query import QueryBuilder
from tierstore.serialization import Encryptor, SerializationPipeline, hydrate, normalize
from tierstore.snapshots import SnapshotManager
from tierstore.sync import MessageType, SyncMessage, Transport, make_message, new_origin_id

logger = logging.getLogger(__name__)

RETRY_DELAY = 0.05

Validator = Callable[[str, Any], bool | None]
ConflictResolver = Callable[[SyncMessage, int], bool]


@dataclass
class Hooks:
    """Interception points around mutations.

    ``before_*`` hooks may return ``False`` to veto the operation silently;
    ``before_write`` may also return a replacement value. ``after_*`` hooks
    are informational and run after the change is committed. Any hook may be
    a coroutine function.
    """

    before_write: Callable[[str, Any, dict[str, Any]], Any] | None = None
    after_write: Callable[[str, Any, dict[str, Any]], Any] | None = None
    before_delete: Callable[[str], Any] | None = None
    after_delete: Callable[[str], Any] | None = None
    before_clear: Callable[[], Any] | None = None
    after_clear: Callable[[], Any] | None = None

    @classmethod
    def coerce(cls, hooks: "Hooks | Mapping[str, Callable[..., Any]] | None") -> "Hooks":
        if hooks is None:
            return cls()
        if isinstance(hooks, Hooks):
            return hooks
        unknown = set(hooks) - {f.name for f in fields(cls)}
        if unknown:
            raise ValueError(f"Unknown hooks: {', '.join(sorted(unknown))}")
        return cls(**hooks)


async def _resolve(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class TieredStorage:
    """Key-value storage over the best available backend."""

    def __init__(
        self,
        config: StorageConfig | None = None,
        *,
        backends: list[BaseBackend] | None = None,
        hooks: Hooks | Mapping[str, Callable[..., Any]] | None = None,
        encryption: Encryptor | None = None,
        transport: Transport | None = None,
        validators: Iterable[Validator] = (),
        resolve_conflict: ConflictResolver | None = None,
        clock: Callable[[], float] | None = None,
        origin_id: str | None = None,
        **options: Any,
    ):
        config = config or StorageConfig()
        if options:
            config = StorageConfig.from_dict({**config.to_dict(), **options})
        self.config = config
        self.namespace = config.namespace
        self.version = config.version
        self.profile = config.resolved_profile
        self.safe_mode = config.safe_mode
        if config.debug:
            logging.getLogger("tierstore").setLevel(logging.DEBUG)

        self._clock = clock or time.time
        self.hooks = Hooks.coerce(hooks)
        self.validators = list(validators)
        self.resolve_conflict = resolve_conflict

        self.pipeline = SerializationPipeline(
            self.profile.serialization, self.profile.compression, encryption
        )
        self.cache = ReadCache(config.cache_ttl, clock=self._clock)
        self.events = EventBus()
        self.metrics = MetricsCollector()
        self.audit = AuditLog(clock=self._now_ms)
        self.snapshots = SnapshotManager()
        self.migrations = MigrationRegistry()
        self._migrating: set[tuple[str, str]] = set()

        # Last commit time per key, for last-write-wins against peers
        self._modified: dict[str, int] = {}
        self._cleared_at: int | None = None

        # Writes in flight per key; overlapping writes never populate the cache
        self._inflight: dict[str, int] = {}
        self._contended: set[str] = set()
        self._write_gen: dict[str, int] = {}

        self.backends = backends if backends is not None else self._default_backends()
        self._active_index = self._select_backend()

        self.origin_id = origin_id or new_origin_id()
        self.transport = transport
        self._detach_transport = transport.subscribe(self._on_message) if transport else None

        logger.debug(
            "Storage %r ready on %s backend (%s)",
            self.namespace,
            self.backend.name,
            self.pipeline.describe(),
        )

    def __repr__(self) -> str:
        return f"TieredStorage(namespace={self.namespace!r}, backend={self.backend.name!r})"

    async def __aenter__(self) -> "TieredStorage":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        """Detach from the sync transport and close every backend."""
        if self._detach_transport is not None:
            self._detach_transport()
            self._detach_transport = None
        for backend in self.backends:
            backend.close()

    # Backend selection

    def _default_backends(self) -> list[BaseBackend]:
        data_dir = self.config.data_path
        factories = {
            "sqlite": lambda: SQLiteBackend(data_dir, self.namespace, self._clock),
            "filesystem": lambda: FileSystemBackend(data_dir, self.namespace, self._clock),
            "memory": lambda: MemoryBackend(self.namespace, self._clock),
        }
        return [factories[name]() for name in self.config.backends]

    def _select_backend(self, start: int = 0) -> int:
        """Probe candidates in priority order from ``start``; initialize the first usable one."""
        for index in range(start, len(self.backends)):
            backend = self.backends[index]
            try:
                if not backend.probe_available():
                    logger.debug("Backend %s not available", backend.name)
                    continue
                backend.initialize()
            except Exception as e:
                logger.warning("Backend %s failed to start: %s", backend.name, e)
                continue
            return index
        raise StorageError("No storage backend available", code="NO_BACKEND")

    @property
    def backend(self) -> BaseBackend:
        """The active backend."""
        return self.backends[self._active_index]

    @property
    def current_backend(self) -> str:
        return self.backend.name

    def supports(self) -> dict[str, Any]:
        """Availability of each configured backend and the one in use."""
        result: dict[str, Any] = {}
        for backend in self.backends:
            try:
                result[backend.name] = backend.probe_available()
            except Exception as e:
                logger.debug("Probe of %s failed: %s", backend.name, e)
                result[backend.name] = False
        result["current"] = self.backend.name
        return result

    async def _run_on(self, backend: BaseBackend, method: str, *args: Any, **kwargs: Any) -> Any:
        call = functools.partial(getattr(backend, method), *args, **kwargs)
        if backend.blocking:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, call)
        return call()

    async def _call(self, method: str, *args: Any, **kwargs: Any) -> Any:
        """Call the active backend, retrying transient errors and falling back when full."""
        attempts = 0
        while True:
            try:
                return await self._run_on(self.backend, method, *args, **kwargs)
            except TransientStorageError as e:
                attempts += 1
                if attempts > self.profile.max_retries:
                    raise
                logger.warning(
                    "%s on %s failed (%s), retry %d/%d",
                    method,
                    self.backend.name,
                    e,
                    attempts,
                    self.profile.max_retries,
                )
                await asyncio.sleep(RETRY_DELAY * attempts)
            except QuotaExceededError:
                if not await self._fall_back():
                    raise
                attempts = 0

    async def _fall_back(self) -> bool:
        """Switch to the next available lower-priority backend."""
        old = self.backend
        try:
            index = self._select_backend(self._active_index + 1)
        except StorageError:
            logger.error("Backend %s is full and no fallback is left", old.name)
            return False
        self._active_index = index
        logger.warning("Backend %s is full, falling back to %s", old.name, self.backend.name)
        await self._move_entries(old, self.backend)
        return True

    async def _move_entries(self, source: BaseBackend, target: BaseBackend) -> None:
        """Best-effort copy-verify-delete of live entries between backends."""
        try:
            entries = await self._run_on(source, "export_entries")
            await self._run_on(target, "bulk_import", entries)
            missing = set(entries) - set(await self._run_on(target, "list_keys"))
            if missing:
                logger.warning(
                    "Kept %d entries on %s: copy to %s incomplete",
                    len(entries),
                    source.name,
                    target.name,
                )
                return
            await self._run_on(source, "clear_all")
            logger.info("Moved %d entries from %s to %s", len(entries), source.name, target.name)
        except StorageError as e:
            logger.warning("Could not move entries from %s to %s: %s", source.name, target.name, e)

    # Operation plumbing

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    @asynccontextmanager
    async def _boundary(self, action: str, key: str | None = None) -> AsyncIterator[None]:
        """Record, publish and re-raise any failure of one public operation."""
        try:
            yield
        except Exception as e:
            self.metrics.record_error(e)
            logger.error("%s failed%s: %s", action, f" for {key!r}" if key else "", e)
            data: dict[str, Any] = {"action": action, "error": e}
            if key is not None:
                data["key"] = key
            self.events.emit(EventType.ERROR, **data)
            raise

    def _cache_entry(self, entry: StoredEntry, value: Any) -> None:
        expires_at = entry.ttl / 1000 if entry.ttl is not None else None
        self.cache.set(entry.key, value, expires_at)

    def _begin_write(self, key: str) -> None:
        if self._inflight.get(key):
            self._contended.add(key)
        self._inflight[key] = self._inflight.get(key, 0) + 1
        self._write_gen[key] = self._write_gen.get(key, 0) + 1

    def _end_write(self, key: str) -> bool:
        """Finish a write; returns whether its value may be cached.

        Blocking backends can commit overlapping writes in one order and
        resume them in another, so a contended key is only ever invalidated.
        """
        contended = key in self._contended
        remaining = self._inflight[key] - 1
        if remaining:
            self._inflight[key] = remaining
        else:
            del self._inflight[key]
            self._contended.discard(key)
        return not contended

    async def _broadcast(self, type: MessageType, **payload: Any) -> None:
        if self.transport is None:
            return
        message = make_message(type, self.origin_id, self._now_ms(), **payload)
        try:
            await self.transport.post(message)
        except Exception:
            logger.exception("Failed to broadcast %s message", type.value)

    def _validate(self, key: str, value: Any) -> None:
        """Safe-mode checks run before a write reaches the pipeline."""
        logger.warning("Safe mode: validating write of %r", key)
        if not isinstance(key, str) or not key:
            raise ValidationError(str(key), "key must be a non-empty string")
        try:
            normalize(value)
        except SerializationError as e:
            raise ValidationError(key, str(e)) from e
        for validator in self.validators:
            if validator(key, value) is False:
                name = getattr(validator, "__name__", repr(validator))
                raise ValidationError(key, f"rejected by {name}")

    # Events

    def on(self, event: EventType | str, handler: Handler) -> Subscription:
        """Subscribe to an event; the returned token unsubscribes."""
        return self.events.subscribe(event, handler)

    def off(self, event: EventType | str, handler: Handler) -> None:
        self.events.unsubscribe(event, handler)

    # Core operations

    async def write(
        self,
        key: str,
        value: Any,
        *,
        ttl_seconds: float | None = None,
        model: str | None = None,
        force: bool = False,
    ) -> bool:
        """Store a value. Returns False when a hook vetoed the write."""
        start = time.perf_counter()
        options = {"ttl_seconds": ttl_seconds, "model": model, "force": force}
        async with self._boundary("write", key):
            if self.hooks.before_write:
                result = await _resolve(self.hooks.before_write(key, value, options))
                if result is False:
                    logger.debug("Write of %r vetoed by hook", key)
                    return False
                if result is not None:
                    value = result

            if self.safe_mode and not force:
                self._validate(key, value)

            version = self.migrations.latest_version(model) if model else 1
            payload = await self.pipeline.encode(value)
            self._begin_write(key)
            try:
                entry = await self._call(
                    "write", key, payload, ttl_seconds, version=version, model=model
                )
            finally:
                cacheable = self._end_write(key)

            if cacheable:
                self._cache_entry(entry, value)
            else:
                self.cache.invalidate(key)
            self._modified[key] = max(self._modified.get(key, 0), entry.updated_at)
            self.audit.record("write", key, len(payload))
            self.metrics.record_write(_elapsed_ms(start))
            await self._broadcast(
                MessageType.WRITE,
                key=key,
                value=normalize(value),
                ttl_seconds=ttl_seconds,
                model=model,
            )
            if self.hooks.after_write:
                await _resolve(self.hooks.after_write(key, value, options))
            self.events.emit(EventType.CHANGE, key=key, value=value, action="write")
            return True

    async def read(self, key: str, default: Any = None) -> Any:
        """Get a value, or ``default`` when the key is absent or expired."""
        start = time.perf_counter()
        async with self._boundary("read", key):
            cached = self.cache.get(key)
            if cached is not MISSING:
                self.metrics.record_read(_elapsed_ms(start))
                return cached

            generation = self._write_gen.get(key, 0)
            entry = await self._call("read_entry", key)
            if entry is None:
                self.metrics.record_read(_elapsed_ms(start))
                return default

            value = await self.pipeline.decode(entry.value)
            marker = (entry.model, key)
            if marker in self._migrating:
                # A transform is reading its own key; hand back the stored value
                self.metrics.record_read(_elapsed_ms(start))
                return value
            if self.migrations.needs_migration(entry.model, entry.version):
                value, entry = await self._migrate_entry(entry, value)

            if key not in self._inflight and self._write_gen.get(key, 0) == generation:
                self._cache_entry(entry, value)
            self.metrics.record_read(_elapsed_ms(start))
            return value

    async def delete(self, key: str) -> bool:
        """Remove a key. Returns whether it existed."""
        async with self._boundary("delete", key):
            if self.hooks.before_delete:
                if await _resolve(self.hooks.before_delete(key)) is False:
                    logger.debug("Delete of %r vetoed by hook", key)
                    return False

            existed = await self._call("remove", key)
            self.cache.invalidate(key)
            self._modified[key] = self._now_ms()
            self.audit.record("delete", key)
            self.metrics.record_delete()
            await self._broadcast(MessageType.DELETE, key=key)
            if self.hooks.after_delete:
                await _resolve(self.hooks.after_delete(key))
            self.events.emit(EventType.DELETE, key=key, action="delete")
            return existed

    async def clear(self) -> bool:
        """Remove every key. Returns False when a hook vetoed the clear."""
        async with self._boundary("clear"):
            if self.hooks.before_clear:
                if await _resolve(self.hooks.before_clear()) is False:
                    logger.debug("Clear vetoed by hook")
                    return False

            await self._clear_state(self._now_ms())
            self.audit.record("clear")
            await self._broadcast(MessageType.CLEAR)
            if self.hooks.after_clear:
                await _resolve(self.hooks.after_clear())
            self.events.emit(EventType.CLEAR, action="clear")
            return True

    async def _clear_state(self, timestamp: int) -> None:
        await self._call("clear_all")
        self.cache.clear()
        self._modified.clear()
        self._cleared_at = timestamp

    async def has(self, key: str) -> bool:
        """Whether a live entry exists for the key."""
        async with self._boundary("has", key):
            return await self._call("exists", key)

    async def count(self) -> int:
        """Number of live entries."""
        async with self._boundary("count"):
            return await self._call("count")

    async def keys(self) -> list[str]:
        """All live keys."""
        async with self._boundary("keys"):
            return await self._call("list_keys")

    # Bulk operations run one item at a time and stop at the first error

    async def write_many(
        self,
        items: Mapping[str, Any] | Iterable[tuple[str, Any]],
        *,
        ttl_seconds: float | None = None,
        model: str | None = None,
    ) -> int:
        """Write several values in order; returns how many were stored."""
        pairs = items.items() if isinstance(items, Mapping) else items
        written = 0
        for key, value in pairs:
            if await self.write(key, value, ttl_seconds=ttl_seconds, model=model):
                written += 1
        return written

    async def read_many(self, keys: Iterable[str]) -> dict[str, Any]:
        """Read several keys in order."""
        results = {}
        for key in keys:
            results[key] = await self.read(key)
        return results

    async def delete_many(self, keys: Iterable[str]) -> int:
        """Delete several keys in order; returns how many existed."""
        removed = 0
        for key in keys:
            if await self.delete(key):
                removed += 1
        return removed

    # Export and import

    async def _export(self) -> dict[str, Any]:
        entries = await self._call("export_entries")
        return {key: await self.pipeline.decode(entry.value) for key, entry in entries.items()}

    async def export_all(self) -> dict[str, Any]:
        """Decoded mapping of every live entry."""
        async with self._boundary("export"):
            return await self._export()

    async def _import(
        self, data: Mapping[str, Any], *, replace: bool = False, timestamp: int | None = None
    ) -> int:
        """Encode everything first so a bad value leaves stored data untouched."""
        payloads = {key: await self.pipeline.encode(value) for key, value in data.items()}
        timestamp = timestamp if timestamp is not None else self._now_ms()
        if replace:
            await self._clear_state(timestamp)
        self.cache.clear()
        await self._call("bulk_import", payloads)
        for key in payloads:
            self._modified[key] = timestamp
        return sum(len(payload) for payload in payloads.values())

    async def import_all(self, data: Mapping[str, Any]) -> int:
        """Store every value of a mapping; returns how many were imported."""
        async with self._boundary("import"):
            size = await self._import(data)
            self.audit.record("import", approx_size=size)
            await self._broadcast(
                MessageType.IMPORT,
                data={key: normalize(value) for key, value in data.items()},
                replace=False,
            )
            self.events.emit(EventType.IMPORT, action="import", count=len(data))
            return len(data)

    async def export_as(self, fmt: str = "json") -> str | bytes:
        """Export in ``json``, ``ndjson`` or ``msgpack`` form."""
        async with self._boundary("export"):
            return dump_data(await self._export(), fmt)

    async def import_from(self, raw: str | bytes, fmt: str = "json") -> int:
        """Import data produced by ``export_as``."""
        async with self._boundary("import"):
            data = load_data(raw, fmt)
        return await self.import_all(data)

    # Query

    def query(self) -> QueryBuilder:
        """Start a query over the decoded, non-expired data."""
        return QueryBuilder(source=self.export_all)

    # Snapshots

    async def save_snapshot(self, name: str) -> Snapshot:
        """Capture a deep copy of the current data under a name."""
        async with self._boundary("save_snapshot"):
            snapshot = self.snapshots.save(name, await self._export(), self.version)
            logger.debug("Saved snapshot %s with %d keys", name, len(snapshot.data))
            return snapshot

    async def load_snapshot(self, name: str) -> None:
        """Replace all live data with a snapshot's content."""
        async with self._boundary("load_snapshot"):
            data = self.snapshots.restore_data(name)
            size = await self._import(data, replace=True)
            self.audit.record("load_snapshot", approx_size=size)
            await self._broadcast(
                MessageType.IMPORT,
                data={key: normalize(value) for key, value in data.items()},
                replace=True,
            )
            self.events.emit(EventType.IMPORT, action="load_snapshot", snapshot=name)

    def list_snapshots(self) -> list[Snapshot]:
        return self.snapshots.list()

    def delete_snapshot(self, name: str) -> None:
        self.snapshots.delete(name)

    def compare_snapshots(self, first: str, second: str) -> SnapshotDiff:
        """Keys added, removed and changed going from ``first`` to ``second``."""
        return self.snapshots.compare(first, second)

    # Migrations

    def register_migration(
        self, model: str, from_version: int, to_version: int, transform: Transform
    ) -> MigrationStep:
        """Register a single-step transform for a model."""
        return self.migrations.register(model, from_version, to_version, transform)

    async def _persist_migrated(
        self, entry: StoredEntry, value: Any, to_version: int | None = None
    ) -> tuple[Any, StoredEntry]:
        """Migrate one decoded entry along its chain and write it back."""
        assert entry.model is not None
        marker = (entry.model, entry.key)
        self._migrating.add(marker)
        try:
            value, version = await self.migrations.migrate(
                entry.model, value, entry.version, to_version
            )
            payload = await self.pipeline.encode(value)
            remaining = entry.remaining_ttl(self.backend.now_ms())
            updated = await self._call(
                "write",
                entry.key,
                payload,
                max(remaining, 0.001) if remaining is not None else None,
                version=version,
                model=entry.model,
            )
        finally:
            self._migrating.discard(marker)
        return value, updated

    async def _migrate_entry(self, entry: StoredEntry, value: Any) -> tuple[Any, StoredEntry]:
        value, updated = await self._persist_migrated(entry, value)
        logger.info(
            "Migrated %r (%s v%d -> v%d) on read",
            entry.key,
            entry.model,
            entry.version,
            updated.version,
        )
        return value, updated

    async def migrate_model(
        self, model: str, from_version: int, to_version: int | None = None
    ) -> MigrationStats:
        """Migrate every entry of a model stored at ``from_version``.

        Entries are migrated and persisted one at a time with no cross-key
        transaction. A failure raises ``MigrationError`` whose ``migrated``
        count tells the caller how far the run got; already migrated entries
        are no longer at ``from_version``, so rerunning resumes with the rest.
        """
        async with self._boundary("migrate"):
            self.migrations.get_step(model, from_version)
            stats = MigrationStats(
                model=model, from_version=from_version, started_at=datetime.now()
            )
            entries = await self._call("export_entries")
            targets = [
                entry
                for entry in entries.values()
                if entry.model == model and entry.version == from_version
            ]
            stats.total_entries = len(targets)

            for entry in targets:
                try:
                    value = await self.pipeline.decode(entry.value)
                    await self._persist_migrated(entry, value, to_version)
                except Exception as e:
                    stats.errors.append(f"{entry.key}: {e}")
                    raise MigrationError(
                        f"Migrating {model} v{from_version} failed at {entry.key!r}: {e}",
                        migrated=stats.migrated_entries,
                    ) from e
                self.cache.invalidate(entry.key)
                stats.migrated_entries += 1

            stats.completed_at = datetime.now()
            self.audit.record("migrate", approx_size=stats.migrated_entries)
            self.events.emit(
                EventType.IMPORT, action="migrate", model=model, count=stats.migrated_entries
            )
            logger.info("Migrated %d %s entries from v%d", stats.migrated_entries, model, from_version)
            return stats

    # Peer sync

    async def _on_message(self, message: SyncMessage) -> None:
        if message.origin_id != self.origin_id:
            await self.apply_remote(message)

    def _accepts(self, message: SyncMessage, key: str) -> bool:
        """Last-write-wins for one key unless a conflict resolver says otherwise."""
        local = self._modified.get(key, self._cleared_at)
        if local is None or message.timestamp >= local:
            return True
        if self.resolve_conflict is not None:
            return bool(self.resolve_conflict(message, local))
        logger.debug(
            "Dropping stale %s for %r from %s", message.type.value, key, message.origin_id
        )
        return False

    async def _clear_remote(self, message: SyncMessage) -> bool:
        """Clear every key not committed locally after the message.

        Returns whether anything was cleared.
        """
        kept = {key for key in self._modified if not self._accepts(message, key)}
        cleared_at = max(message.timestamp, self._cleared_at or 0)
        if not kept:
            await self._clear_state(cleared_at)
            return True

        removed = [key for key in await self._call("list_keys") if key not in kept]
        for key in removed:
            await self._call("remove", key)
            self.cache.invalidate(key)
            self._modified.pop(key, None)
        self._cleared_at = cleared_at
        logger.debug("Kept %d newer keys against clear from %s", len(kept), message.origin_id)
        return bool(removed)

    async def apply_remote(self, message: SyncMessage) -> bool:
        """Apply a peer's mutation locally.

        Conflicts are settled per key: a clear or import only touches keys
        whose last local commit is not newer than the message. Hooks, audit
        and re-broadcast are skipped; the matching event is still published
        with ``remote=True``. Returns whether anything was applied.
        """
        if message.origin_id == self.origin_id:
            return False
        payload = message.payload
        key = payload.get("key")
        async with self._boundary("sync", key):
            if message.type == MessageType.WRITE:
                if not self._accepts(message, key):
                    return False
                value = hydrate(payload["value"])
                model = payload.get("model")
                version = self.migrations.latest_version(model) if model else 1
                encoded = await self.pipeline.encode(value)
                await self._call(
                    "write", key, encoded, payload.get("ttl_seconds"), version=version, model=model
                )
                self.cache.invalidate(key)
                self._modified[key] = message.timestamp
                self.events.emit(EventType.CHANGE, key=key, value=value, action="write", remote=True)
            elif message.type == MessageType.DELETE:
                if not self._accepts(message, key):
                    return False
                await self._call("remove", key)
                self.cache.invalidate(key)
                self._modified[key] = message.timestamp
                self.events.emit(EventType.DELETE, key=key, action="delete", remote=True)
            elif message.type == MessageType.CLEAR:
                if not await self._clear_remote(message):
                    return False
                self.events.emit(EventType.CLEAR, action="clear", remote=True)
            elif message.type == MessageType.IMPORT:
                data = {
                    k: hydrate(v)
                    for k, v in payload.get("data", {}).items()
                    if self._accepts(message, k)
                }
                cleared = payload.get("replace", False) and await self._clear_remote(message)
                if not data and not cleared:
                    return False
                await self._import(data, timestamp=message.timestamp)
                self.events.emit(EventType.IMPORT, action="import", count=len(data), remote=True)

            logger.debug("Applied %s from %s", message.type.value, message.origin_id)
            return True

    # Observation

    def get_metrics(self) -> MetricsReport:
        return self.metrics.report()

    def get_audit_log(self) -> list[AuditRecord]:
        return self.audit.records()

    async def get_statistics(self) -> dict[str, Any]:
        """Active backend figures, cache counters and event listener counts."""
        async with self._boundary("statistics"):
            backend_stats = await self._call("get_statistics")
        return {
            "backend": self.backend.name,
            **backend_stats,
            "cache": self.cache.get_stats(),
            "listeners": {t.value: self.events.listener_count(t) for t in EventType},
        }

    async def purge_expired(self) -> int:
        """Physically remove expired entries instead of waiting for lazy eviction."""
        async with self._boundary("purge"):
            removed = await self._call("purge_expired")
            self.cache.purge_expired()
            if removed:
                logger.info("Purged %d expired entries from %s", removed, self.backend.name)
            return removed

    async def benchmark(self, iterations: int = 1000, cleanup: bool = True) -> BenchmarkResult:
        """Time sequential writes then reads of small random records."""
        keys = [f"bench-write-{i}" for i in range(iterations)]

        start = time.perf_counter()
        for key in keys:
            await self.write(key, {"data": random.random()})
        write_total = _elapsed_ms(start)

        start = time.perf_counter()
        for key in keys:
            await self.read(key)
        read_total = _elapsed_ms(start)

        if cleanup:
            await self.delete_many(keys)

        per = max(iterations, 1)
        return BenchmarkResult(
            iterations=iterations,
            write=OperationTiming(total=write_total, avg=write_total / per),
            read=OperationTiming(total=read_total, avg=read_total / per),
        )

    # Aliases

    save = write
    load = read
    remove = delete
    reset = clear
    exists = has
    size = count
    all = export_all
    save_many = write_many
    load_many = read_many


_RUNTIME_OPTIONS = (
    "backends",
    "hooks",
    "encryption",
    "transport",
    "validators",
    "resolve_conflict",
    "clock",
    "origin_id",
)


def use_store(namespace: str, **options: Any) -> TieredStorage:
    """Create a storage instance for a namespace.

    Configuration options are layered over the config files and
    ``TIERSTORE_*`` environment variables; runtime collaborators (hooks,
    transport, encryption, ...) are passed straight through.
    """
    runtime = {name: options.pop(name) for name in _RUNTIME_OPTIONS if name in options}
    return TieredStorage(load_config(namespace=namespace, **options), **runtime)
