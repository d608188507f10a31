"""Tiered key-value storage.

Stores values on the best available backend (SQLite, JSON files, memory)
through a reversible serialization pipeline, with a TTL read cache, a query
builder, snapshots, versioned migrations and best-effort peer sync:

    async with use_store("app") as store:
        await store.write("user:1", {"name": "Ada"}, ttl_seconds=3600)
        await store.read("user:1")
"""

__version__ = "1.0.0"

from tierstore.config import PROFILES, Profile, StorageConfig, load_config
from tierstore.events import Event, EventBus, EventType, Subscription
from tierstore.exceptions import (
    DecryptionError,
    MigrationError,
    NotFoundError,
    QuotaExceededError,
    SerializationError,
    StorageError,
    TransientStorageError,
    ValidationError,
)
from tierstore.models import (
    AuditRecord,
    BenchmarkResult,
    MetricsReport,
    Snapshot,
    SnapshotDiff,
    StoredEntry,
)
from tierstore.query import Operator, QueryBuilder
from tierstore.serialization import SerializationPipeline, ValueKind
from tierstore.storage import Hooks, TieredStorage, use_store
from tierstore.sync import LocalChannel, SyncMessage

__all__ = [
    "__version__",
    "AuditRecord",
    "BenchmarkResult",
    "DecryptionError",
    "Event",
    "EventBus",
    "EventType",
    "Hooks",
    "LocalChannel",
    "MetricsReport",
    "MigrationError",
    "NotFoundError",
    "Operator",
    "PROFILES",
    "Profile",
    "QueryBuilder",
    "QuotaExceededError",
    "SerializationError",
    "SerializationPipeline",
    "Snapshot",
    "SnapshotDiff",
    "StorageConfig",
    "StorageError",
    "StoredEntry",
    "Subscription",
    "SyncMessage",
    "TieredStorage",
    "TransientStorageError",
    "ValidationError",
    "ValueKind",
    "load_config",
    "use_store",
]
